"""CLI commands using Typer."""

import typer

from creativehub.cli.db import app as db_app
from creativehub.cli.otp import app as otp_app
from creativehub.cli.users import app as users_app

app = typer.Typer(name="creativehub", help="Creative Hub auth service CLI")

# Register sub-apps
app.add_typer(db_app, name="db")
app.add_typer(users_app, name="users")
app.add_typer(otp_app, name="otp")


@app.command()
def version():
    """Show version information."""
    from creativehub import __version__

    typer.echo(f"Creative Hub v{__version__}")


@app.command()
def serve(
    host: str = typer.Option("0.0.0.0", help="Host to bind to"),
    port: int = typer.Option(8000, help="Port to bind to"),
    reload: bool = typer.Option(False, help="Enable auto-reload"),
):
    """Run the API server."""
    import uvicorn

    from creativehub.logging import get_uvicorn_log_config

    uvicorn.run(
        "creativehub.main:app",
        host=host,
        port=port,
        reload=reload,
        log_config=get_uvicorn_log_config(),
    )


if __name__ == "__main__":
    app()
