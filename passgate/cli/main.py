"""CLI entry point and commands.

- serve: Run the API server
- sweep: Delete expired and consumed challenges once
- credentials: List an account's passkeys
- hash-password: Produce a bcrypt hash for AUTH_PASSWORD_HASH
"""

# Configure logging early before other imports
import passgate.logging_config  # noqa: F401

import asyncio
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from passgate.settings import get_settings

app = typer.Typer(
    name="passgate",
    help="WebAuthn passkey relying party with a session second-factor gate",
    add_completion=False,
    no_args_is_help=True,
)

console = Console()


@app.command()
def serve(
    host: Annotated[
        Optional[str],  # noqa: UP007
        typer.Option("--host", "-h", help="Host to bind to (default: API_HOST)"),
    ] = None,
    port: Annotated[
        Optional[int],  # noqa: UP007
        typer.Option("--port", "-p", help="Port to bind to (default: API_PORT)"),
    ] = None,
    reload: Annotated[
        bool,
        typer.Option("--reload", "-r", help="Enable auto-reload for development"),
    ] = False,
) -> None:
    """Start the Passgate API server with uvicorn."""
    import uvicorn

    settings = get_settings()
    host = host or settings.api_host
    port = port or settings.api_port

    console.print(
        Panel(
            f"[bold green]Starting Passgate API Server[/bold green]\n"
            f"Host: {host}\n"
            f"Port: {port}\n"
            f"Workers: {settings.api_workers}\n"
            f"Reload: {reload}",
            title="Passgate",
            border_style="green",
        )
    )

    uvicorn.run(
        "passgate.api.main:get_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        workers=settings.api_workers if not reload else 1,
        log_level="info",
    )


@app.command()
def sweep(
    retention_hours: Annotated[
        Optional[int],  # noqa: UP007
        typer.Option(
            "--retention-hours",
            help="Keep consumed challenges this long (default: CONSUMED_CHALLENGE_RETENTION_HOURS)",
        ),
    ] = None,
) -> None:
    """Delete expired challenges and old consumed ones."""
    expired, consumed = asyncio.run(_run_sweep(retention_hours))
    console.print(
        f"[green]Removed {expired} expired and {consumed} consumed challenges.[/green]"
    )


async def _run_sweep(retention_hours: int | None) -> tuple[int, int]:
    from passgate.scheduler import sweep_consumed_challenges, sweep_expired_challenges
    from passgate.storage import close_db

    try:
        expired = await sweep_expired_challenges()
        consumed = await sweep_consumed_challenges(retention_hours)
    finally:
        await close_db()
    return expired, consumed


@app.command()
def credentials(
    account: Annotated[str, typer.Argument(help="Account (username) to inspect")],
) -> None:
    """List the active passkeys of an account."""
    asyncio.run(_list_credentials(account))


async def _list_credentials(account: str) -> None:
    from passgate.storage import close_db, get_session
    from passgate.webauthn.credentials import CredentialManager

    try:
        async with get_session() as session:
            creds = await CredentialManager(session).list_for_account(account)
    finally:
        await close_db()

    if not creds:
        console.print(f"[yellow]No passkeys registered for {account}.[/yellow]")
        return

    table = Table(title=f"Passkeys for {account} ({len(creds)})", show_header=True)
    table.add_column("ID", style="cyan")
    table.add_column("Device")
    table.add_column("Counter", justify="right")
    table.add_column("Created")
    table.add_column("Last used")

    for cred in creds:
        table.add_row(
            cred.id,
            cred.device_name or "-",
            str(cred.sign_count),
            cred.created_at.isoformat(timespec="seconds") if cred.created_at else "-",
            cred.last_used_at.isoformat(timespec="seconds") if cred.last_used_at else "never",
        )

    console.print(table)


@app.command("hash-password")
def hash_password(
    password: Annotated[
        str,
        typer.Option(prompt=True, hide_input=True, confirmation_prompt=True, help="Password to hash"),
    ],
) -> None:
    """Print a bcrypt hash suitable for AUTH_PASSWORD_HASH."""
    import bcrypt

    console.print(bcrypt.hashpw(password.encode(), bcrypt.gensalt()).decode())


if __name__ == "__main__":
    app()
