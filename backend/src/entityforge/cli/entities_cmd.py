"""Entity CLI commands: list, show, create, delete, ddl."""

import json
from pathlib import Path

import click

from entityforge.cli.common import run_with_database
from entityforge.core.errors import EntityForgeError
from entityforge.engine.entities import EntityEngine
from entityforge.metadata.loader import EntityFileLoader
from entityforge.schema.generator import DIALECTS, SchemaGenerator

tenant_option = click.option(
    "--tenant", "tenant_id", required=True, help="Tenant id (see 'entityforge tenants create')."
)


def _load(path: Path):
    # Blocks live beside the entities/ directory the file sits in
    loader = EntityFileLoader(path.resolve().parent.parent)
    try:
        loader.load_blocks()
        return loader.load_file(path)
    except EntityForgeError as e:
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(1)


@click.group()
def entities():
    """Entity commands."""
    pass


@entities.command("list")
@tenant_option
def list_entities(tenant_id: str):
    """List the tenant's entities, newest first."""

    async def _list(database):
        return await EntityEngine(database).list_entities(tenant_id)

    found = run_with_database(_list)
    if not found:
        click.echo("No entities.")
        return
    for entity in found:
        click.echo(f"  {entity.name:<24} {entity.label} ({len(entity.fields)} fields)")


@entities.command()
@tenant_option
@click.argument("name")
def show(tenant_id: str, name: str):
    """Print an entity definition as JSON."""

    async def _show(database):
        return await EntityEngine(database).get_entity(tenant_id, name)

    entity = run_with_database(_show)
    if entity is None:
        click.echo(f"Error: Entity '{name}' not found", err=True)
        raise SystemExit(1)
    click.echo(json.dumps(entity.model_dump(mode="json", by_alias=True, exclude_none=True), indent=2))


@entities.command()
@tenant_option
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def create(tenant_id: str, path: Path):
    """Create an entity (and its table) from a YAML file."""
    entity_input = _load(path)

    async def _create(database):
        return await EntityEngine(database).create_entity(tenant_id, entity_input)

    entity = run_with_database(_create)
    click.echo(f"Created entity '{entity.name}' with {len(entity.fields)} field(s).")


@entities.command()
@tenant_option
@click.argument("name")
@click.option("--yes", is_flag=True, default=False, help="Skip the confirmation prompt.")
def delete(tenant_id: str, name: str, yes: bool):
    """Delete an entity and drop its table. All records are lost."""
    if not yes:
        click.confirm(f"Drop entity '{name}' and all of its records?", abort=True)

    async def _delete(database):
        await EntityEngine(database).delete_entity(tenant_id, name)

    run_with_database(_delete)
    click.echo(f"Deleted entity '{name}'.")


@entities.command()
@tenant_option
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--dialect",
    type=click.Choice(sorted(DIALECTS)),
    default="postgresql",
    show_default=True,
    help="SQL dialect to render.",
)
def ddl(tenant_id: str, path: Path, dialect: str):
    """Print the DDL an entity file would produce, without a database."""
    entity_input = _load(path)
    try:
        statements = SchemaGenerator(None).render_ddl(tenant_id, entity_input, dialect)
    except EntityForgeError as e:
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(1)
    for statement in statements:
        click.echo(f"{statement};\n")
