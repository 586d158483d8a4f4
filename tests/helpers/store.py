"""Direct row reads for asserting on stored state."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from passgate.storage.entities import WebauthnChallenge


async def load_challenge(session: AsyncSession, challenge: str) -> WebauthnChallenge | None:
    """Fetch a challenge row by its text, whatever its state."""
    result = await session.execute(
        select(WebauthnChallenge)
        .where(WebauthnChallenge.challenge == challenge)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()
