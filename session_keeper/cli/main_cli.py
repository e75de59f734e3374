# session_keeper/cli/main_cli.py
import typer
from . import admin_cli
from .utils_cli import configure_cli_logging

# Main CLI application with help enabled when no arguments are provided
app = typer.Typer(
    name="session-keeper",
    help="Session Keeper Command Line Interface.",
    no_args_is_help=True
)

# Register admin commands under 'admin' subcommand
app.add_typer(admin_cli.app, name="admin")


@app.callback()
def main_callback():
    """
    Session Keeper main CLI application.
    Use 'session-keeper admin --help' for store commands.
    """
    configure_cli_logging()


@app.command("generate-id")
def generate_id():
    """Print a freshly generated session ID."""
    from ..sessions import EntropyUnavailableError, SecureSessionTokenGenerator
    from ..settings import settings

    try:
        typer.echo(SecureSessionTokenGenerator(settings.session_token_bytes).generate())
    except EntropyUnavailableError as e:
        typer.secho(f"Error: {e}", fg=typer.colors.RED)
        raise typer.Exit(code=1)


def cli_entry_point():
    """Entry point function for console script registration in pyproject.toml"""
    app()


if __name__ == "__main__":
    cli_entry_point()
