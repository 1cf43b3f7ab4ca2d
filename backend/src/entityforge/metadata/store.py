"""Entity metadata persistence.

Stores the abstract schema independently of the physical tables:

    tenants        isolation boundary
    entities       one header row per entity, unique on (tenant_id, name),
                   with the lifecycle ``phase`` of its physical table
    fields         one row per field; structured columns for querying plus
                   the full per-type configuration as a JSON payload
    relationships  declared relationships (metadata only)

The JSON ``config`` payload is authoritative when rebuilding definitions;
the structured columns exist for querying only.
"""

from __future__ import annotations

import hashlib
import logging
import re
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any

import sqlalchemy as sa
from sqlalchemy.exc import IntegrityError

from entityforge.core.errors import DuplicateEntityError, StorageError
from entityforge.metadata.models import (
    EntityDefinition,
    EntityInput,
    RelationshipDefinition,
    RelationshipInput,
    Tenant,
)
from entityforge.persistence.database import Database
from entityforge.persistence.records import utcnow

logger = logging.getLogger(__name__)


class EntityPhase(str, Enum):
    """Lifecycle of an entity's metadata and physical table.

    Creation:  METADATA_PENDING -> METADATA_WRITTEN -> TABLE_READY
    Deletion:  TABLE_READY -> DROP_PENDING -> (rows removed)
    """

    METADATA_PENDING = "metadata_pending"
    METADATA_WRITTEN = "metadata_written"
    TABLE_READY = "table_ready"
    DROP_PENDING = "drop_pending"


catalog = sa.MetaData()

tenants_table = sa.Table(
    "tenants",
    catalog,
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column("name", sa.Text, nullable=False),
    sa.Column("slug", sa.Text, nullable=False, unique=True),
    sa.Column("external_id", sa.Text, unique=True),
    sa.Column("created_at", sa.DateTime, nullable=False),
    sa.Column("updated_at", sa.DateTime, nullable=False),
)

entities_table = sa.Table(
    "entities",
    catalog,
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column(
        "tenant_id",
        sa.String(36),
        sa.ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
    ),
    sa.Column("name", sa.Text, nullable=False),
    sa.Column("label", sa.Text, nullable=False),
    sa.Column("plural_label", sa.Text),
    sa.Column("description", sa.Text),
    sa.Column("icon", sa.Text),
    sa.Column("timestamps", sa.Boolean, nullable=False, default=True),
    sa.Column("soft_delete", sa.Boolean, nullable=False, default=False),
    sa.Column("phase", sa.String(32), nullable=False),
    sa.Column("created_at", sa.DateTime, nullable=False),
    sa.Column("updated_at", sa.DateTime, nullable=False),
    sa.UniqueConstraint("tenant_id", "name", name="uq_entities_tenant_name"),
)

fields_table = sa.Table(
    "fields",
    catalog,
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column(
        "entity_id",
        sa.String(36),
        sa.ForeignKey("entities.id", ondelete="CASCADE"),
        nullable=False,
    ),
    sa.Column("name", sa.Text, nullable=False),
    sa.Column("label", sa.Text),
    sa.Column("type", sa.Text, nullable=False),
    sa.Column("required", sa.Boolean, nullable=False, default=False),
    sa.Column("unique", sa.Boolean, nullable=False, default=False),
    sa.Column("description", sa.Text),
    sa.Column("config", sa.JSON, nullable=False),
    sa.Column("position", sa.Integer, nullable=False),
    sa.Column("created_at", sa.DateTime, nullable=False),
    sa.Column("updated_at", sa.DateTime, nullable=False),
    sa.UniqueConstraint("entity_id", "name", name="uq_fields_entity_name"),
)

relationships_table = sa.Table(
    "relationships",
    catalog,
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column(
        "tenant_id",
        sa.String(36),
        sa.ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
    ),
    sa.Column("name", sa.Text, nullable=False),
    sa.Column("type", sa.Text, nullable=False),
    sa.Column("from_entity", sa.Text, nullable=False),
    sa.Column("to_entity", sa.Text, nullable=False),
    sa.Column("foreign_key", sa.Text),
    sa.Column("through_table", sa.Text),
    sa.Column("cascade_delete", sa.Boolean, nullable=False, default=False),
    sa.Column("inverse_name", sa.Text),
    sa.Column("created_at", sa.DateTime, nullable=False),
    sa.Column("updated_at", sa.DateTime, nullable=False),
    sa.UniqueConstraint("tenant_id", "name", name="uq_relationships_tenant_name"),
)


@dataclass
class StoredEntity:
    """An entity definition together with its lifecycle phase."""

    definition: EntityDefinition
    phase: EntityPhase

    @property
    def id(self) -> str:
        return self.definition.id  # type: ignore[return-value]


def _is_integrity_error(error: StorageError) -> bool:
    return isinstance(error.__cause__, IntegrityError)


class EntityMetadataStore:
    """Reads and writes entity/field metadata. Dialect-neutral via SQLAlchemy Core."""

    def __init__(self, db: Database):
        self.db = db

    async def create_all(self) -> None:
        """Create the metadata tables if they don't exist."""
        async with self.db.transaction("create metadata tables") as conn:
            await conn.run_sync(catalog.create_all)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _row_to_stored(self, row: Any, field_rows: list[Any]) -> StoredEntity:
        ordered = sorted(field_rows, key=lambda r: r["position"])
        definition = EntityDefinition(
            id=row["id"],
            tenant_id=row["tenant_id"],
            name=row["name"],
            label=row["label"],
            plural_label=row["plural_label"],
            description=row["description"],
            icon=row["icon"],
            timestamps=row["timestamps"],
            soft_delete=row["soft_delete"],
            fields=[dict(r["config"]) for r in ordered],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )
        return StoredEntity(definition=definition, phase=EntityPhase(row["phase"]))

    async def _load(self, conn: Any, entity_rows: list[Any]) -> list[StoredEntity]:
        if not entity_rows:
            return []
        ids = [r["id"] for r in entity_rows]
        result = await conn.execute(
            sa.select(fields_table).where(fields_table.c.entity_id.in_(ids))
        )
        by_entity: dict[str, list[Any]] = {}
        for field_row in result.mappings():
            by_entity.setdefault(field_row["entity_id"], []).append(field_row)
        return [self._row_to_stored(r, by_entity.get(r["id"], [])) for r in entity_rows]

    # ------------------------------------------------------------------
    # Entities
    # ------------------------------------------------------------------

    async def insert_entity(
        self,
        tenant_id: str,
        entity: EntityInput,
        phase: EntityPhase = EntityPhase.METADATA_WRITTEN,
    ) -> StoredEntity:
        """Insert the entity header and its ordered fields in one transaction.

        Raises:
            DuplicateEntityError: (tenant_id, name) already exists.
            StorageError: Any other storage failure.
        """
        now = utcnow()
        entity_id = str(uuid.uuid4())
        field_rows = [
            {
                "id": str(uuid.uuid4()),
                "entity_id": entity_id,
                "name": field.name,
                "label": field.label,
                "type": field.type,
                "required": field.required,
                "unique": field.unique,
                "description": field.description,
                "config": field.to_config(),
                "position": index,
                "created_at": now,
                "updated_at": now,
            }
            for index, field in enumerate(entity.fields)
        ]

        try:
            async with self.db.transaction(f"insert entity {entity.name}") as conn:
                await conn.execute(
                    sa.insert(entities_table).values(
                        id=entity_id,
                        tenant_id=tenant_id,
                        name=entity.name,
                        label=entity.label,
                        plural_label=entity.plural_label,
                        description=entity.description,
                        icon=entity.icon,
                        timestamps=entity.timestamps,
                        soft_delete=entity.soft_delete,
                        phase=phase.value,
                        created_at=now,
                        updated_at=now,
                    )
                )
                await conn.execute(sa.insert(fields_table), field_rows)
                result = await conn.execute(
                    sa.select(entities_table).where(entities_table.c.id == entity_id)
                )
                loaded = await self._load(conn, [result.mappings().one()])
        except StorageError as e:
            # The unique constraint is what makes concurrent creates safe
            if _is_integrity_error(e) and await self.get_entity(tenant_id, entity.name):
                raise DuplicateEntityError(entity.name) from e
            raise
        return loaded[0]

    async def get_entity(self, tenant_id: str, name: str) -> StoredEntity | None:
        """Lookup by (tenant, name)."""
        async with self.db.transaction(f"load entity {name}") as conn:
            result = await conn.execute(
                sa.select(entities_table).where(
                    entities_table.c.tenant_id == tenant_id,
                    entities_table.c.name == name,
                )
            )
            rows = list(result.mappings())
            loaded = await self._load(conn, rows)
        return loaded[0] if loaded else None

    async def list_entities(self, tenant_id: str) -> list[StoredEntity]:
        """All entities of a tenant, newest first."""
        async with self.db.transaction("list entities") as conn:
            result = await conn.execute(
                sa.select(entities_table)
                .where(entities_table.c.tenant_id == tenant_id)
                .order_by(entities_table.c.created_at.desc())
            )
            rows = list(result.mappings())
            return await self._load(conn, rows)

    async def set_phase(self, entity_id: str, phase: EntityPhase) -> None:
        async with self.db.transaction(f"set entity phase {phase.value}") as conn:
            await conn.execute(
                sa.update(entities_table)
                .where(entities_table.c.id == entity_id)
                .values(phase=phase.value, updated_at=utcnow())
            )

    async def delete_entity(self, entity_id: str) -> None:
        """Delete an entity header with its fields."""
        async with self.db.transaction("delete entity metadata") as conn:
            await conn.execute(
                sa.delete(fields_table).where(fields_table.c.entity_id == entity_id)
            )
            await conn.execute(
                sa.delete(entities_table).where(entities_table.c.id == entity_id)
            )

    # ------------------------------------------------------------------
    # Relationships
    # ------------------------------------------------------------------

    async def insert_relationship(
        self, tenant_id: str, relationship: RelationshipInput
    ) -> RelationshipDefinition:
        now = utcnow()
        values = {
            "id": str(uuid.uuid4()),
            "tenant_id": tenant_id,
            "name": relationship.name,
            "type": relationship.type,
            "from_entity": relationship.from_entity,
            "to_entity": relationship.to_entity,
            "foreign_key": relationship.foreign_key,
            "through_table": relationship.through_table,
            "cascade_delete": relationship.cascade_delete,
            "inverse_name": relationship.inverse_name,
            "created_at": now,
            "updated_at": now,
        }
        try:
            async with self.db.transaction(f"insert relationship {relationship.name}") as conn:
                await conn.execute(sa.insert(relationships_table).values(**values))
        except StorageError as e:
            if _is_integrity_error(e):
                raise DuplicateEntityError(
                    relationship.name,
                    f'Relationship "{relationship.name}" already exists',
                ) from e
            raise
        values.pop("updated_at")
        return RelationshipDefinition(**values)

    async def list_relationships(self, tenant_id: str) -> list[RelationshipDefinition]:
        async with self.db.transaction("list relationships") as conn:
            result = await conn.execute(
                sa.select(relationships_table)
                .where(relationships_table.c.tenant_id == tenant_id)
                .order_by(relationships_table.c.created_at)
            )
            rows = list(result.mappings())
        return [
            RelationshipDefinition(
                id=r["id"],
                tenant_id=r["tenant_id"],
                name=r["name"],
                type=r["type"],
                from_entity=r["from_entity"],
                to_entity=r["to_entity"],
                foreign_key=r["foreign_key"],
                through_table=r["through_table"],
                cascade_delete=r["cascade_delete"],
                inverse_name=r["inverse_name"],
                created_at=r["created_at"],
            )
            for r in rows
        ]

    async def delete_relationships_for(self, tenant_id: str, entity_name: str) -> int:
        """Remove relationships that mention an entity on either side."""
        async with self.db.transaction("delete relationships") as conn:
            result = await conn.execute(
                sa.delete(relationships_table).where(
                    relationships_table.c.tenant_id == tenant_id,
                    sa.or_(
                        relationships_table.c.from_entity == entity_name,
                        relationships_table.c.to_entity == entity_name,
                    ),
                )
            )
            return result.rowcount


_SLUG_CHARS = re.compile(r"[^a-z0-9]")


def slugify(external_id: str) -> str:
    """Derive a URL-safe tenant slug from an external identity."""
    return _SLUG_CHARS.sub("-", external_id.lower())


def hashed_slug(external_id: str) -> str:
    """Slug made unique with the first 8 hex chars of the external id's SHA-1."""
    digest = hashlib.sha1(external_id.encode("utf-8")).hexdigest()[:8]
    return f"{slugify(external_id)}-{digest}"


class TenantStore:
    """Tenants: created on first access, never merged or split."""

    def __init__(self, db: Database):
        self.db = db

    def _row_to_tenant(self, row: Any) -> Tenant:
        return Tenant(
            id=row["id"],
            name=row["name"],
            slug=row["slug"],
            external_id=row["external_id"],
            created_at=row["created_at"],
        )

    async def get(self, tenant_id: str) -> Tenant | None:
        async with self.db.transaction("load tenant") as conn:
            result = await conn.execute(
                sa.select(tenants_table).where(tenants_table.c.id == tenant_id)
            )
            row = result.mappings().first()
        return self._row_to_tenant(row) if row else None

    async def get_by_external_id(self, external_id: str) -> Tenant | None:
        async with self.db.transaction("load tenant") as conn:
            result = await conn.execute(
                sa.select(tenants_table).where(tenants_table.c.external_id == external_id)
            )
            row = result.mappings().first()
        return self._row_to_tenant(row) if row else None

    async def _insert(self, values: dict[str, Any]) -> Tenant | None:
        """Insert a tenant row; None when its slug belongs to another identity."""
        try:
            async with self.db.transaction("create tenant") as conn:
                await conn.execute(sa.insert(tenants_table).values(**values))
        except StorageError as e:
            if not _is_integrity_error(e):
                raise
            # Lost a race with a concurrent first access
            existing = await self.get_by_external_id(values["external_id"])
            if existing:
                return existing
            logger.debug("Tenant slug %s is taken", values["slug"])
            return None

        logger.info("Created tenant %s for %s", values["id"], values["external_id"])
        return self._row_to_tenant(values)

    async def get_or_create(self, external_id: str, name: str | None = None) -> Tenant:
        """Find the tenant linked to an external identity, creating it if absent.

        The slug is derived from the external id. When another identity
        already holds it (``org.a`` and ``org-a``), a short hash of the
        external id is appended.

        Args:
            external_id: Identity-provider id of the organization or user.
            name: Display name for a newly created tenant.
        """
        tenant = await self.get_by_external_id(external_id)
        if tenant:
            return tenant

        now = utcnow()
        values = {
            "id": str(uuid.uuid4()),
            "name": name or external_id,
            "external_id": external_id,
            "created_at": now,
            "updated_at": now,
        }
        tenant = await self._insert({**values, "slug": slugify(external_id)})
        if tenant is None:
            tenant = await self._insert({**values, "slug": hashed_slug(external_id)})
        if tenant is None:
            raise StorageError(f"No free slug for tenant '{external_id}'")
        return tenant
