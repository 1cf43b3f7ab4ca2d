"""EntityForge CLI entry point."""

import logging

import click


@click.group()
@click.option("--verbose", "-v", is_flag=True, default=False, help="Enable debug logging.")
def cli(verbose: bool):
    """EntityForge: dynamic tenant entities and generic data access."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


# Register subcommand groups
from entityforge.cli.db_cmd import db  # noqa: E402
from entityforge.cli.entities_cmd import entities  # noqa: E402
from entityforge.cli.tenants_cmd import tenants  # noqa: E402

cli.add_command(db)
cli.add_command(tenants)
cli.add_command(entities)
