"""Build SQLAlchemy Table objects for tenant entities.

The same Table is used to emit DDL (SchemaGenerator) and to build DML
(DataEngine), so the physical shape of a table is derived from the
EntityDefinition in exactly one place.

Layout of every entity table::

    id          UUID PRIMARY KEY
    <field>     one column per non-computed field, NOT NULL iff required
    created_at  TIMESTAMP NOT NULL   (timestamps)
    updated_at  TIMESTAMP NOT NULL   (timestamps)
    deleted_at  TIMESTAMP NULL       (softDelete)

Relation fields get a foreign key to ``<target table>.id``; unique fields
get a unique index.
"""

from __future__ import annotations

import uuid
from typing import Any

import sqlalchemy as sa

from entityforge.core.identifiers import (
    foreign_key_name,
    physical_table_name,
    sanitize_identifier,
    unique_index_name,
)
from entityforge.core.types import column_spec
from entityforge.persistence.records import utcnow


def build_entity_table(
    tenant_id: str,
    entity: Any,
    metadata: sa.MetaData | None = None,
) -> sa.Table:
    """Build the Table for ``entity`` in ``tenant_id``'s namespace.

    Args:
        tenant_id: Owning tenant.
        entity: EntityInput/EntityDefinition.
        metadata: MetaData to attach to (a fresh one by default).

    Raises:
        InvalidIdentifier: If the entity, a field, or a derived name is not
            a valid SQL identifier.
    """
    metadata = metadata if metadata is not None else sa.MetaData()
    table_name = physical_table_name(tenant_id, entity.name)

    columns: list[sa.Column] = [
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4),
    ]

    for field in entity.fields:
        spec = column_spec(field)
        if spec is None:
            continue
        column_name = sanitize_identifier(field.name)
        args: list[Any] = [column_name, spec.sa_type()]

        if field.type == "relation":
            target_table = physical_table_name(tenant_id, field.entity)
            if target_table != table_name and target_table not in metadata.tables:
                # Stand-in so the foreign key can be resolved at compile time
                sa.Table(
                    target_table,
                    metadata,
                    sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
                )
            args.append(
                sa.ForeignKey(
                    f"{target_table}.id",
                    name=foreign_key_name(table_name, field.name),
                    ondelete="CASCADE" if field.cascade_delete else None,
                )
            )

        columns.append(sa.Column(*args, nullable=spec.nullable))

    if entity.timestamps:
        columns.append(
            sa.Column(
                "created_at",
                sa.DateTime(),
                nullable=False,
                default=utcnow,
                server_default=sa.func.now(),
            )
        )
        columns.append(
            sa.Column(
                "updated_at",
                sa.DateTime(),
                nullable=False,
                default=utcnow,
                server_default=sa.func.now(),
            )
        )
    if entity.soft_delete:
        columns.append(sa.Column("deleted_at", sa.DateTime(), nullable=True))

    table = sa.Table(table_name, metadata, *columns)

    for field in entity.stored_fields:
        if field.unique:
            sa.Index(
                unique_index_name(table_name, field.name),
                table.c[field.name],
                unique=True,
            )

    return table


def relation_targets(tenant_id: str, entity: Any) -> dict[str, str]:
    """Map relation field names to the physical tables they reference.

    Self-references are left out.
    """
    own_table = physical_table_name(tenant_id, entity.name)
    targets: dict[str, str] = {}
    for field in entity.relation_fields:
        target = physical_table_name(tenant_id, field.entity)
        if target != own_table:
            targets[field.name] = target
    return targets
