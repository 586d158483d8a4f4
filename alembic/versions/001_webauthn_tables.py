"""Create webauthn_challenge and passkey_credential tables.

Revision ID: 001_webauthn_tables
Revises:
Create Date: 2026-10-18
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import JSONB

# revision identifiers, used by Alembic.
revision: str = "001_webauthn_tables"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

_JSON = sa.JSON().with_variant(JSONB(), "postgresql")


def upgrade() -> None:
    """Create challenge and credential tables."""
    op.create_table(
        "webauthn_challenge",
        sa.Column("id", sa.Uuid(as_uuid=False), primary_key=True),
        sa.Column("challenge", sa.String(128), nullable=False),
        sa.Column("user_handle", sa.String(128), nullable=True),
        sa.Column("account_id", sa.String(255), nullable=True),
        sa.Column("ceremony_type", sa.String(20), nullable=False),
        sa.Column("options", _JSON, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("used", sa.Boolean(), nullable=False, server_default=sa.false()),
    )
    op.create_index(
        "ix_webauthn_challenge_challenge",
        "webauthn_challenge",
        ["challenge"],
        unique=True,
    )
    op.create_index(
        "ix_webauthn_challenge_expires_at",
        "webauthn_challenge",
        ["expires_at"],
    )

    op.create_table(
        "passkey_credential",
        sa.Column("id", sa.Uuid(as_uuid=False), primary_key=True),
        sa.Column("account_id", sa.String(255), nullable=False),
        sa.Column("credential_id", sa.String(255), nullable=False),
        sa.Column("public_key", sa.LargeBinary(), nullable=False),
        sa.Column("attestation_type", sa.String(32), nullable=False, server_default="none"),
        sa.Column("aaguid", sa.String(64), nullable=True),
        sa.Column("sign_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("transports", _JSON, nullable=True),
        sa.Column("device_name", sa.String(255), nullable=True),
        sa.Column("user_agent", sa.Text(), nullable=True),
        sa.Column("last_used_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )
    op.create_index(
        "ix_passkey_credential_credential_id",
        "passkey_credential",
        ["credential_id"],
        unique=True,
    )
    op.create_index(
        "ix_passkey_credential_account_id",
        "passkey_credential",
        ["account_id"],
    )


def downgrade() -> None:
    """Drop challenge and credential tables."""
    op.drop_index("ix_passkey_credential_account_id", table_name="passkey_credential")
    op.drop_index("ix_passkey_credential_credential_id", table_name="passkey_credential")
    op.drop_table("passkey_credential")
    op.drop_index("ix_webauthn_challenge_expires_at", table_name="webauthn_challenge")
    op.drop_index("ix_webauthn_challenge_challenge", table_name="webauthn_challenge")
    op.drop_table("webauthn_challenge")
