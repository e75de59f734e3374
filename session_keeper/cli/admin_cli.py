# session_keeper/cli/admin_cli.py
import typer
from typing import Optional
from typing_extensions import Annotated

from .utils_cli import echo_json, run_with_store

app = typer.Typer(
    name="admin",
    help="Inspect and manage stored sessions.",
    no_args_is_help=True
)


def _require_well_formed(session_id: str) -> str:
    from ..sessions import is_well_formed_session_id
    from ..settings import settings

    if not is_well_formed_session_id(session_id, settings.session_token_bytes):
        typer.secho(
            f"Error: '{session_id}' is not a well-formed session ID "
            f"({settings.session_token_bytes * 2} lowercase hex characters expected).",
            fg=typer.colors.RED
        )
        raise typer.Exit(code=1)
    return session_id


@app.command("inspect")
def inspect_session(
    session_id: Annotated[str, typer.Argument(help="The session ID to inspect.")]
):
    """Show the stored fields and remaining TTL of a session."""
    _require_well_formed(session_id)

    async def _inspect(store):
        fields = await store.hgetall(session_id)
        ttl = await store.ttl(session_id) if hasattr(store, "ttl") else None
        return fields, ttl

    fields, ttl = run_with_store(_inspect)
    if not fields:
        typer.secho(f"No session found for ID {session_id[:8]}...", fg=typer.colors.YELLOW)
        raise typer.Exit(code=1)
    echo_json("Session fields", fields)
    typer.echo(f"TTL: {ttl}s")


@app.command("clear")
def clear_session(
    session_id: Annotated[str, typer.Argument(help="The session ID to clear.")],
    force: bool = typer.Option(False, "--force", "-f", help="Skip confirmation prompt.")
):
    """Delete a session. Clearing an absent session succeeds."""
    _require_well_formed(session_id)

    if not force:
        typer.confirm(f"Are you sure you want to clear session {session_id[:8]}...?", abort=True)

    async def _clear(store):
        await store.clear(session_id)

    run_with_store(_clear)
    typer.secho(f"Session {session_id[:8]}... cleared.", fg=typer.colors.GREEN)


@app.command("resolve")
def resolve_session(
    token: Annotated[
        Optional[str],
        typer.Option("--token", "-t", help="Token to present. Omit to create a new session.")
    ] = None
):
    """Run a single resolution against the configured store and print the outcome."""
    from ..sessions import build_session_manager
    from ..settings import settings

    async def _resolve(store):
        manager = build_session_manager(store, settings)
        return await manager.resolve(token)

    resolution = run_with_store(_resolve)
    echo_json("Resolution", {
        "session_id": resolution.session_id,
        "is_new": resolution.is_new,
        "rotated": resolution.rotated,
        "changed": resolution.changed,
    })


@app.callback()
def admin_callback():
    """
    Session Keeper admin commands. They talk to the store selected by
    STORAGE_BACKEND; with the in-memory backend state does not outlive the command.
    """
    pass


if __name__ == "__main__":
    app()
