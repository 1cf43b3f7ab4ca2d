"""Tenant CLI commands."""

import click

from entityforge.cli.common import run_with_database
from entityforge.metadata.store import TenantStore


@click.group()
def tenants():
    """Tenant commands."""
    pass


@tenants.command()
@click.argument("external_id")
@click.option("--name", default=None, help="Display name (defaults to the external id).")
def create(external_id: str, name: str | None):
    """Create the tenant for EXTERNAL_ID, or show it if it already exists."""

    async def _create(database):
        return await TenantStore(database).get_or_create(external_id, name)

    tenant = run_with_database(_create)
    click.echo(f"{tenant.id}  {tenant.slug}  {tenant.name}")
