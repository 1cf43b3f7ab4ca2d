"""Database CLI commands."""

import click

from entityforge.cli.common import run_with_database
from entityforge.persistence.database import Database


@click.group()
def db():
    """Database commands."""
    pass


@db.command()
def init():
    """Create the metadata tables (tenants, entities, fields, relationships)."""

    async def _noop(database: Database) -> str:
        return database.dialect_name

    dialect = run_with_database(_noop)
    click.echo(f"Metadata tables ready ({dialect}).")
