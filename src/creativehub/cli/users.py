"""Account management commands."""

import asyncio

import typer
from rich.console import Console
from rich.table import Table

from creativehub.database import get_session_context
from creativehub.exceptions import ValidationError
from creativehub.models import Privilege
from creativehub.services.accounts import AccountStore
from creativehub.services.passwords import MIN_PASSWORD_LENGTH, hash_password

console = Console()
app = typer.Typer(help="User management commands")


def _check_password(password: str) -> None:
    if len(password) < MIN_PASSWORD_LENGTH:
        console.print(f"[red]Error:[/red] Password must be at least {MIN_PASSWORD_LENGTH} characters")
        raise typer.Exit(1)


@app.command("list")
def list_users(
    limit: int = typer.Option(100, "--limit", "-l", help="Maximum number of users to show"),
):
    """List accounts."""

    async def _list():
        async with get_session_context() as session:
            users = await AccountStore(session).list_all(limit=limit)

            table = Table(title="Users")
            table.add_column("ID", style="cyan")
            table.add_column("Email", style="green")
            table.add_column("Name")
            table.add_column("Privilege", style="magenta")
            table.add_column("Created", style="dim")

            for user in users:
                privilege = (
                    "[bold magenta]privileged[/bold magenta]" if user.is_privileged else "standard"
                )
                created = user.created_at.strftime("%Y-%m-%d") if user.created_at else "-"
                table.add_row(user.id, user.email, user.name or "-", privilege, created)

            console.print(table)

    asyncio.run(_list())


@app.command("create")
def create_user(
    email: str = typer.Argument(..., help="User email"),
    password: str = typer.Option(
        ..., "--password", "-p", prompt=True, hide_input=True, confirmation_prompt=True
    ),
    name: str | None = typer.Option(None, "--name", "-n", help="Display name"),
    phone: str = typer.Option("", "--phone", help="Phone number"),
    admin: bool = typer.Option(False, "--admin", help="Create a privileged account"),
):
    """Create a new account."""
    _check_password(password)

    async def _create():
        async with get_session_context() as session:
            privilege = Privilege.PRIVILEGED if admin else Privilege.STANDARD
            try:
                user = await AccountStore(session).create(
                    email=email,
                    password_hash=hash_password(password),
                    name=name,
                    phone=phone,
                    privilege=privilege,
                )
            except ValidationError as e:
                console.print(f"[red]Error:[/red] {e.message}")
                raise typer.Exit(1) from e
            console.print(f"[green]Created user:[/green] {user.email} ({privilege.value})")

    asyncio.run(_create())


def _set_privilege(email: str, privilege: Privilege) -> None:
    async def _update():
        async with get_session_context() as session:
            accounts = AccountStore(session)
            user = await accounts.find_by_email(email)
            if not user:
                console.print(f"[red]Error:[/red] User {email} not found")
                raise typer.Exit(1)

            if user.privilege == privilege:
                console.print(f"[yellow]Warning:[/yellow] User {email} is already {privilege.value}")
                return

            await accounts.set_privilege(user, privilege)
            console.print(f"[green]{email} is now {privilege.value}[/green]")
            console.print("[dim]Takes effect at the user's next login[/dim]")

    asyncio.run(_update())


@app.command("grant-admin")
def grant_admin(email: str = typer.Argument(..., help="User email")):
    """Make an account privileged (OTP step-up at login)."""
    _set_privilege(email, Privilege.PRIVILEGED)


@app.command("revoke-admin")
def revoke_admin(email: str = typer.Argument(..., help="User email")):
    """Return an account to standard privilege."""
    _set_privilege(email, Privilege.STANDARD)


@app.command("set-password")
def set_password(
    email: str = typer.Argument(..., help="User email"),
    password: str = typer.Option(
        ..., "--password", "-p", prompt=True, hide_input=True, confirmation_prompt=True
    ),
):
    """Reset an account's password."""
    _check_password(password)

    async def _set():
        async with get_session_context() as session:
            accounts = AccountStore(session)
            user = await accounts.find_by_email(email)
            if not user:
                console.print(f"[red]Error:[/red] User {email} not found")
                raise typer.Exit(1)

            await accounts.set_password(user, hash_password(password))
            console.print(f"[green]Password updated for:[/green] {user.email}")

    asyncio.run(_set())
