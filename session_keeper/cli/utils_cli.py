# session_keeper/cli/utils_cli.py
import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Dict, TypeVar

import typer
from redis.exceptions import RedisError

from .config import KEEPER_CLI_LOG_LEVEL

T = TypeVar("T")


def configure_cli_logging() -> None:
    logging.basicConfig(
        level=KEEPER_CLI_LOG_LEVEL,
        format='%(asctime)s CLI - [%(levelname)s] - %(message)s'
    )


def run_with_store(operation: Callable[[Any], Awaitable[T]]) -> T:
    """
    Builds the configured session store, runs one async operation against
    it and tears the store down again. Store failures end the command with
    exit code 1.
    """
    # Imported lazily so that settings are read after .env has been loaded
    from ..sessions import SessionError, build_session_store
    from ..settings import settings

    async def _runner() -> T:
        store = build_session_store(settings)
        await store.initialize()
        try:
            return await operation(store)
        finally:
            await store.teardown()

    try:
        return asyncio.run(_runner())
    except SessionError as e:
        typer.secho(f"CLI: Session store error - {e}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    except (RedisError, OSError) as e:
        typer.secho(f"CLI: Connection Error - Could not reach the session store. Error: {e}", fg=typer.colors.RED)
        raise typer.Exit(code=1)


def echo_json(title: str, data: Dict[str, Any]) -> None:
    typer.echo(typer.style(f"CLI: {title}:", fg=typer.colors.CYAN))
    typer.echo(json.dumps(data, indent=2, sort_keys=True))
