"""Schema generator: realize and destroy physical entity tables.

DDL is generated once, at entity creation time, from the entity's field
list. ``generate_table`` has create-if-absent semantics; it never alters an
existing table.
"""

from __future__ import annotations

import logging
from typing import Any

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncConnection
from sqlalchemy.schema import CreateIndex, CreateTable

from entityforge.core.errors import InvalidIdentifier, SchemaGenerationError, StorageError
from entityforge.core.identifiers import physical_table_name
from entityforge.persistence.database import Database
from entityforge.schema.tables import build_entity_table, relation_targets

logger = logging.getLogger(__name__)

DIALECTS = {
    "postgresql": postgresql.dialect,
    "sqlite": sqlite.dialect,
}


async def _has_table(conn: AsyncConnection, table_name: str) -> bool:
    return await conn.run_sync(
        lambda sync_conn: sa.inspect(sync_conn).has_table(table_name)
    )


class SchemaGenerator:
    """Emits and executes DDL for tenant entity tables."""

    def __init__(self, db: Database):
        self.db = db

    def _build(self, tenant_id: str, entity: Any) -> sa.Table:
        try:
            return build_entity_table(tenant_id, entity)
        except InvalidIdentifier as e:
            raise SchemaGenerationError(
                f"Cannot generate table for entity '{getattr(entity, 'name', entity)}': {e}"
            ) from e

    async def generate_table(self, tenant_id: str, entity: Any) -> str:
        """Create the entity's table and unique indexes if they don't exist.

        Relation targets must already exist (self-references excepted).

        Args:
            tenant_id: Owning tenant.
            entity: EntityInput/EntityDefinition to realize.

        Returns:
            The physical table name.

        Raises:
            SchemaGenerationError: On an invalid identifier, a missing relation
                target, or when the store rejects the DDL.
        """
        table = self._build(tenant_id, entity)
        targets = relation_targets(tenant_id, entity)

        try:
            async with self.db.transaction(f"generate table {table.name}") as conn:
                for field_name, target in targets.items():
                    if not await _has_table(conn, target):
                        raise SchemaGenerationError(
                            f"Relation field '{field_name}' of '{entity.name}' references "
                            f"'{entity.get_field(field_name).entity}', whose table "
                            f"'{target}' does not exist"
                        )

                await conn.execute(CreateTable(table, if_not_exists=True))
                for index in sorted(table.indexes, key=lambda i: i.name):
                    await conn.execute(CreateIndex(index, if_not_exists=True))
        except StorageError as e:
            raise SchemaGenerationError(
                f"Failed to generate table '{table.name}': {e}"
            ) from e

        logger.info("Table %s ready for entity %s", table.name, entity.name)
        return table.name

    async def drop_table(self, tenant_id: str, entity_name: str) -> None:
        """Drop the entity's table if it exists, with its dependent objects.

        Irreversible; no backup is taken.
        """
        try:
            table_name = physical_table_name(tenant_id, entity_name)
        except InvalidIdentifier as e:
            raise SchemaGenerationError(f"Cannot drop table for '{entity_name}': {e}") from e

        try:
            async with self.db.transaction(f"drop table {table_name}") as conn:
                # table_name passed the identifier check above
                quoted = conn.dialect.identifier_preparer.quote(table_name)
                cascade = " CASCADE" if conn.dialect.name == "postgresql" else ""
                await conn.execute(sa.text(f"DROP TABLE IF EXISTS {quoted}{cascade}"))
        except StorageError as e:
            raise SchemaGenerationError(f"Failed to drop table '{table_name}': {e}") from e

        logger.info("Dropped table %s", table_name)

    async def table_exists(self, tenant_id: str, entity_name: str) -> bool:
        table_name = physical_table_name(tenant_id, entity_name)
        async with self.db.transaction(f"inspect {table_name}") as conn:
            return await _has_table(conn, table_name)

    async def column_names(self, tenant_id: str, entity_name: str) -> list[str]:
        """Column names of an existing physical table, in table order."""
        table_name = physical_table_name(tenant_id, entity_name)
        async with self.db.transaction(f"inspect {table_name}") as conn:
            columns = await conn.run_sync(
                lambda sync_conn: sa.inspect(sync_conn).get_columns(table_name)
            )
        return [c["name"] for c in columns]

    def render_ddl(self, tenant_id: str, entity: Any, dialect: str = "postgresql") -> list[str]:
        """Render the DDL generate_table would execute, without a connection.

        Args:
            tenant_id: Owning tenant.
            entity: Entity to render.
            dialect: "postgresql" or "sqlite".
        """
        if dialect not in DIALECTS:
            raise ValueError(
                f"Unsupported dialect '{dialect}'. Allowed: {', '.join(sorted(DIALECTS))}"
            )
        table = self._build(tenant_id, entity)
        compiled_dialect = DIALECTS[dialect]()
        statements = [
            str(CreateTable(table, if_not_exists=True).compile(dialect=compiled_dialect)).strip()
        ]
        for index in sorted(table.indexes, key=lambda i: i.name):
            statements.append(
                str(CreateIndex(index, if_not_exists=True).compile(dialect=compiled_dialect)).strip()
            )
        return statements
