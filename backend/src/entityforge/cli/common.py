"""Helpers shared by CLI commands."""

import asyncio
from pathlib import Path
from typing import Any, Awaitable, Callable

import click

from entityforge.core.errors import EntityForgeError
from entityforge.metadata.store import EntityMetadataStore
from entityforge.persistence.config import DatabaseConfig, create_database
from entityforge.persistence.database import Database


def resolve_base_path() -> Path:
    """Project root: the parent of backend/ when run from there, else cwd."""
    cwd = Path.cwd()
    if cwd.name == "backend":
        return cwd.parent
    return cwd


def run_with_database(action: Callable[[Database], Awaitable[Any]]) -> Any:
    """Connect to the configured database, run ``action`` and disconnect.

    Metadata tables are created if missing. EntityForge errors are reported
    on stderr and end the command with exit code 1.
    """
    config = DatabaseConfig.from_env(resolve_base_path())
    if config.sqlite_path:
        Path(config.sqlite_path).parent.mkdir(parents=True, exist_ok=True)

    async def _run() -> Any:
        db = create_database(config)
        await db.connect()
        try:
            await EntityMetadataStore(db).create_all()
            return await action(db)
        finally:
            await db.close()

    try:
        return asyncio.run(_run())
    except EntityForgeError as e:
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(1)
