"""OTP maintenance commands."""

import asyncio

import typer
from rich.console import Console
from rich.table import Table

from creativehub.config import settings
from creativehub.database import get_session_context
from creativehub.services.otp import OtpPolicy, normalize_email, utc_clock
from creativehub.services.otp_store import OtpStore

console = Console()
app = typer.Typer(help="One-time passcode commands")


@app.command("status")
def status(email: str = typer.Argument(..., help="Account email")):
    """Show the live OTP for an email, if any. The code itself is never printed."""
    policy = OtpPolicy.from_settings(settings)

    async def _status():
        async with get_session_context() as session:
            record = await OtpStore(session).find_latest(normalize_email(email))
            if record is None:
                console.print(f"[dim]No OTP on record for {email}[/dim]")
                return

            now = utc_clock()
            expired = policy.is_expired(record.created_at, now)

            table = Table(title=f"OTP for {record.subject_email}")
            table.add_column("Field", style="cyan")
            table.add_column("Value")
            table.add_row("Purpose", record.purpose.value if record.purpose else "(legacy)")
            table.add_row("Verified", "Yes" if record.verified else "No")
            table.add_row("Attempts left", str(policy.attempts_left(record.attempts)))
            table.add_row(
                "Expires in",
                "[red]expired[/red]" if expired else f"{policy.remaining_seconds(record.created_at, now)}s",
            )
            console.print(table)

    asyncio.run(_status())


@app.command("purge-expired")
def purge_expired():
    """Delete OTP records whose validity window has passed."""
    policy = OtpPolicy.from_settings(settings)

    async def _purge():
        async with get_session_context() as session:
            deleted = await OtpStore(session).purge_expired(policy)
            console.print(f"[green]Deleted {deleted} expired OTP record(s)[/green]")

    asyncio.run(_purge())
