"""Data Engine: generic CRUD over tenant entity tables.

Every statement is built with SQLAlchemy Core from the Table derived from
the EntityDefinition (see ``entityforge.schema.tables``), so identifiers
come only from validated metadata and every value is a bound parameter.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Mapping

import sqlalchemy as sa

from entityforge.core.errors import MissingRequiredFieldError, NotFoundError, ValidationError
from entityforge.metadata.models import EntityDefinition
from entityforge.persistence.database import Database
from entityforge.persistence.records import (
    Record,
    coerce_value,
    parse_uuid,
    shape_row,
    utcnow,
    value_kinds,
)
from entityforge.schema.tables import build_entity_table

logger = logging.getLogger(__name__)

_DIRECTIONS = ("asc", "desc")


def _is_missing(value: Any) -> bool:
    """A required field needs a truthy value: None, "", 0, False, [] and {} are missing."""
    return not value


def _unknown_keys(keys: list[str], what: str) -> ValidationError:
    names = ", ".join(f'"{k}"' for k in keys)
    return ValidationError(
        f"Unknown {what}: {names}",
        [{"loc": [k], "msg": f"Unknown {what}"} for k in keys],
    )


class DataEngine:
    """Create, read, list, update, delete and count records of any entity."""

    def __init__(self, db: Database):
        self.db = db

    # ------------------------------------------------------------------
    # Statement building
    # ------------------------------------------------------------------

    def _table(self, tenant_id: str, entity: EntityDefinition) -> sa.Table:
        return build_entity_table(tenant_id, entity)

    def _writable(self, entity: EntityDefinition, data: Mapping[str, Any]) -> dict[str, Any]:
        """Coerce payload values for writable columns.

        System columns and computed fields are dropped; any other key the
        entity doesn't have is an error.
        """
        system = set(entity.system_columns)
        computed = {f.name for f in entity.fields if f.type == "computed"}
        kinds = value_kinds(entity)

        unknown = [k for k in data if k not in kinds and k not in computed]
        if unknown:
            raise _unknown_keys(unknown, "field")

        values: dict[str, Any] = {}
        for key, value in data.items():
            if key in system or key in computed:
                continue
            values[key] = coerce_value(key, kinds[key], value)
        return values

    def _filters(
        self,
        table: sa.Table,
        entity: EntityDefinition,
        where: Mapping[str, Any] | None,
    ) -> list[Any]:
        """Equality conditions for ``where``, plus the soft-delete filter."""
        kinds = value_kinds(entity)
        conditions: list[Any] = []

        where = where or {}
        unknown = [k for k in where if k not in kinds]
        if unknown:
            raise _unknown_keys(unknown, "filter field")

        for key, value in where.items():
            column = table.c[key]
            if value is None:
                conditions.append(column.is_(None))
            else:
                conditions.append(column == coerce_value(key, kinds[key], value))

        if entity.soft_delete:
            conditions.append(table.c.deleted_at.is_(None))
        return conditions

    def _ordering(
        self,
        table: sa.Table,
        entity: EntityDefinition,
        order_by: str | Mapping[str, str] | None,
    ) -> list[Any]:
        """Parse ``order_by`` into ORDER BY clauses.

        Accepts "field", "field desc", "a desc, b" or {"field": "asc"|"desc"}.
        Without an order, newest records come first when the entity has
        timestamps, with ``id`` breaking ties so pages are stable.
        """
        if not order_by:
            if entity.timestamps:
                return [table.c.created_at.desc(), table.c.id.desc()]
            return []

        if isinstance(order_by, str):
            pairs = []
            for part in order_by.split(","):
                tokens = part.split()
                if not tokens:
                    continue
                if len(tokens) > 2:
                    raise ValidationError(f"Invalid order clause: '{part.strip()}'")
                pairs.append((tokens[0], tokens[1] if len(tokens) == 2 else "asc"))
        else:
            pairs = list(order_by.items())

        kinds = value_kinds(entity)
        clauses = []
        for name, direction in pairs:
            if name not in kinds:
                raise _unknown_keys([name], "order field")
            direction = str(direction).lower()
            if direction not in _DIRECTIONS:
                raise ValidationError(
                    f"Invalid sort direction '{direction}' for '{name}'. Use asc or desc"
                )
            column = table.c[name]
            clauses.append(column.desc() if direction == "desc" else column.asc())
        return clauses

    @staticmethod
    def _check_page(name: str, value: int | None) -> None:
        if value is None:
            return
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise ValidationError(
                f"{name} must be a non-negative integer",
                [{"loc": [name], "msg": "must be a non-negative integer"}],
            )

    def _check_required(
        self, entity: EntityDefinition, data: Mapping[str, Any], partial: bool
    ) -> None:
        for field in entity.required_fields:
            if partial and field.name not in data:
                continue
            if _is_missing(data.get(field.name)):
                raise MissingRequiredFieldError(field.name)

    async def _fetch(
        self, tenant_id: str, entity: EntityDefinition, record_id: uuid.UUID
    ) -> Record | None:
        table = self._table(tenant_id, entity)
        stmt = sa.select(table).where(
            table.c.id == record_id, *self._filters(table, entity, None)
        )
        async with self.db.transaction(f"select from {table.name}") as conn:
            row = (await conn.execute(stmt)).mappings().first()
        return shape_row(row, value_kinds(entity)) if row else None

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def create(
        self, tenant_id: str, entity: EntityDefinition, data: Mapping[str, Any]
    ) -> Record:
        """Insert a record and return it as stored.

        Absent fields take their configured ``defaultValue``.

        Raises:
            MissingRequiredFieldError: A required field has no value.
            ValidationError: Unknown keys or values that don't fit their column.
            StorageError: The store rejected the insert (e.g. a unique violation).
        """
        payload = dict(data)
        for field in entity.stored_fields:
            default = getattr(field, "default_value", None)
            if default is not None and field.name not in payload:
                payload[field.name] = default

        self._check_required(entity, payload, partial=False)
        values = self._writable(entity, payload)

        record_id = uuid.uuid4()
        values["id"] = record_id
        if entity.timestamps:
            now = utcnow()
            values["created_at"] = now
            values["updated_at"] = now

        table = self._table(tenant_id, entity)
        stmt = sa.insert(table).values(**values).returning(*table.c)
        async with self.db.transaction(f"insert into {table.name}") as conn:
            row = (await conn.execute(stmt)).mappings().one()
        logger.debug("Inserted %s into %s", record_id, table.name)
        return shape_row(row, value_kinds(entity))

    async def find_many(
        self,
        tenant_id: str,
        entity: EntityDefinition,
        where: Mapping[str, Any] | None = None,
        order_by: str | Mapping[str, str] | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[Record]:
        """Filtered, sorted, paginated read.

        Args:
            tenant_id: Owning tenant.
            entity: Entity whose table is read.
            where: Equality filters {field: value}; None matches NULL.
            order_by: Sort specification; defaults to newest first.
            limit: Maximum number of records.
            offset: Number of records to skip.
        """
        self._check_page("limit", limit)
        self._check_page("offset", offset)

        table = self._table(tenant_id, entity)
        stmt = (
            sa.select(table)
            .where(*self._filters(table, entity, where))
            .order_by(*self._ordering(table, entity, order_by))
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        if offset:
            stmt = stmt.offset(offset)

        kinds = value_kinds(entity)
        async with self.db.transaction(f"select from {table.name}") as conn:
            rows = (await conn.execute(stmt)).mappings().all()
        return [shape_row(row, kinds) for row in rows]

    async def find_one(
        self, tenant_id: str, entity: EntityDefinition, record_id: Any
    ) -> Record | None:
        """Record by id, or None if there is no such record."""
        parsed = parse_uuid(record_id)
        if parsed is None:
            return None
        return await self._fetch(tenant_id, entity, parsed)

    async def update(
        self,
        tenant_id: str,
        entity: EntityDefinition,
        record_id: Any,
        data: Mapping[str, Any],
    ) -> Record:
        """Apply a partial update and return the updated record.

        ``id``, ``created_at``, ``updated_at`` and ``deleted_at`` in ``data``
        are ignored; ``updated_at`` is stamped with the current time.

        Raises:
            NotFoundError: No record has this id.
            MissingRequiredFieldError: A required field is being cleared.
            ValidationError: Unknown keys or values that don't fit their column.
        """
        parsed = parse_uuid(record_id)
        if parsed is None:
            raise NotFoundError(f"Record '{record_id}' not found")

        self._check_required(entity, data, partial=True)
        values = self._writable(entity, data)
        if entity.timestamps:
            values["updated_at"] = utcnow()

        table = self._table(tenant_id, entity)
        if values:
            stmt = (
                sa.update(table)
                .where(table.c.id == parsed, *self._filters(table, entity, None))
                .values(**values)
                .returning(*table.c)
            )
            async with self.db.transaction(f"update {table.name}") as conn:
                row = (await conn.execute(stmt)).mappings().first()
            if row is None:
                raise NotFoundError(f"Record '{record_id}' not found")
            return shape_row(row, value_kinds(entity))

        record = await self._fetch(tenant_id, entity, parsed)
        if record is None:
            raise NotFoundError(f"Record '{record_id}' not found")
        return record

    async def delete(self, tenant_id: str, entity: EntityDefinition, record_id: Any) -> None:
        """Delete a record by id. Deleting a missing record is not an error.

        Entities with ``softDelete`` keep the row and stamp ``deleted_at``.
        """
        parsed = parse_uuid(record_id)
        if parsed is None:
            return

        table = self._table(tenant_id, entity)
        if entity.soft_delete:
            stmt = (
                sa.update(table)
                .where(table.c.id == parsed, table.c.deleted_at.is_(None))
                .values(deleted_at=utcnow())
            )
        else:
            stmt = sa.delete(table).where(table.c.id == parsed)

        async with self.db.transaction(f"delete from {table.name}") as conn:
            result = await conn.execute(stmt)
        logger.debug("Deleted %s row(s) from %s", result.rowcount, table.name)

    async def count(
        self,
        tenant_id: str,
        entity: EntityDefinition,
        where: Mapping[str, Any] | None = None,
    ) -> int:
        """Number of records matching the equality filter."""
        table = self._table(tenant_id, entity)
        stmt = (
            sa.select(sa.func.count())
            .select_from(table)
            .where(*self._filters(table, entity, where))
        )
        async with self.db.transaction(f"count {table.name}") as conn:
            return (await conn.execute(stmt)).scalar_one()
