"""Entity Engine: entity lifecycle orchestration.

Creating an entity touches two resources that cannot share a transaction:
the metadata rows and the physical table. Progress is recorded in the
entity header's ``phase`` so a crash between the steps is detected and
finished (or undone) the next time the entity is accessed:

    create:  metadata_written -> (generate table) -> table_ready
    delete:  drop_pending -> (drop table) -> metadata removed

An entity that other entities' relation fields point at cannot be deleted;
dependents have to go first.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping

from entityforge.core.errors import (
    DuplicateEntityError,
    NotFoundError,
    SchemaGenerationError,
    ValidationError,
)
from entityforge.metadata.models import (
    EntityDefinition,
    EntityInput,
    RelationshipDefinition,
    RelationshipInput,
    validate_entity_input,
    validate_relationship_input,
)
from entityforge.metadata.store import EntityMetadataStore, EntityPhase, StoredEntity
from entityforge.persistence.database import Database
from entityforge.schema.generator import SchemaGenerator

logger = logging.getLogger(__name__)


class EntityEngine:
    """Create, read, list and delete tenant entities."""

    def __init__(
        self,
        db: Database,
        store: EntityMetadataStore | None = None,
        schema_generator: SchemaGenerator | None = None,
    ):
        self.db = db
        self.store = store or EntityMetadataStore(db)
        self.schema_generator = schema_generator or SchemaGenerator(db)

    # ------------------------------------------------------------------
    # Lifecycle recovery
    # ------------------------------------------------------------------

    async def _realize(self, tenant_id: str, stored: StoredEntity) -> EntityDefinition:
        """Generate the table for written metadata, rolling back on failure."""
        definition = stored.definition
        try:
            await self.schema_generator.generate_table(tenant_id, definition)
        except SchemaGenerationError:
            logger.warning(
                "Rolling back metadata of entity %s for tenant %s: table generation failed",
                definition.name,
                tenant_id,
            )
            await self.store.delete_entity(stored.id)
            raise
        await self.store.set_phase(stored.id, EntityPhase.TABLE_READY)
        return definition

    async def _finish_drop(self, tenant_id: str, stored: StoredEntity) -> None:
        name = stored.definition.name
        await self.schema_generator.drop_table(tenant_id, name)
        await self.store.delete_relationships_for(tenant_id, name)
        await self.store.delete_entity(stored.id)

    async def _dependents(self, tenant_id: str, name: str) -> list[str]:
        """Names of other entities with a relation field targeting ``name``."""
        return [
            stored.definition.name
            for stored in await self.store.list_entities(tenant_id)
            if stored.definition.name != name
            and any(
                f.type == "relation" and f.entity == name for f in stored.definition.fields
            )
        ]

    async def _settle(self, tenant_id: str, stored: StoredEntity) -> EntityDefinition | None:
        """Bring an entity to a final state, returning it if it exists."""
        if stored.phase == EntityPhase.TABLE_READY:
            return stored.definition

        name = stored.definition.name
        if stored.phase == EntityPhase.DROP_PENDING:
            logger.warning("Completing interrupted deletion of entity %s", name)
            try:
                await self._finish_drop(tenant_id, stored)
            except SchemaGenerationError as e:
                # Stays drop_pending; retried on the next access
                logger.warning("Deletion of entity %s still pending: %s", name, e)
            return None

        logger.warning("Resuming interrupted creation of entity %s", name)
        try:
            return await self._realize(tenant_id, stored)
        except SchemaGenerationError:
            return None

    # ------------------------------------------------------------------
    # Entities
    # ------------------------------------------------------------------

    async def create_entity(
        self, tenant_id: str, data: EntityInput | Mapping[str, Any]
    ) -> EntityDefinition:
        """Validate, persist and realize a new entity.

        Args:
            tenant_id: Owning tenant.
            data: EntityInput or raw definition mapping (camelCase or snake_case).

        Returns:
            The definition as reconstructed from the metadata store.

        Raises:
            ValidationError: Input does not match the entity definition shape.
            DuplicateEntityError: The tenant already has an entity with this name.
            SchemaGenerationError: The physical table could not be created; the
                metadata has been removed again.
        """
        entity = validate_entity_input(data)

        if await self.get_entity(tenant_id, entity.name) is not None:
            raise DuplicateEntityError(entity.name)

        stored = await self.store.insert_entity(
            tenant_id, entity, EntityPhase.METADATA_WRITTEN
        )
        definition = await self._realize(tenant_id, stored)

        logger.info("Created entity %s for tenant %s", entity.name, tenant_id)
        return definition

    async def get_entity(self, tenant_id: str, name: str) -> EntityDefinition | None:
        """Return the entity definition, or None if the tenant has no such entity."""
        stored = await self.store.get_entity(tenant_id, name)
        if stored is None:
            return None
        return await self._settle(tenant_id, stored)

    async def require_entity(self, tenant_id: str, name: str) -> EntityDefinition:
        entity = await self.get_entity(tenant_id, name)
        if entity is None:
            raise NotFoundError(f"Entity '{name}' not found")
        return entity

    async def list_entities(self, tenant_id: str) -> list[EntityDefinition]:
        """All entities of a tenant, newest first."""
        result = []
        for stored in await self.store.list_entities(tenant_id):
            definition = await self._settle(tenant_id, stored)
            if definition is not None:
                result.append(definition)
        return result

    async def update_entity(self, tenant_id: str, name: str, data: Any) -> EntityDefinition:
        raise NotImplementedError(
            "Updating entities is not supported; fields are fixed once the table exists"
        )

    async def delete_entity(self, tenant_id: str, name: str) -> None:
        """Drop the entity's table and remove its metadata. Irreversible.

        Raises:
            NotFoundError: The entity does not exist.
            ValidationError: Relation fields of other entities still point at it.
        """
        stored = await self.store.get_entity(tenant_id, name)
        if stored is None:
            raise NotFoundError(f"Entity '{name}' not found")

        dependents = await self._dependents(tenant_id, name)
        if dependents:
            raise ValidationError(
                f"Entity '{name}' is referenced by: {', '.join(dependents)}. "
                "Delete those entities first",
                [{"loc": [d], "msg": f"Has a relation to '{name}'"} for d in dependents],
            )

        await self.store.set_phase(stored.id, EntityPhase.DROP_PENDING)
        await self._finish_drop(tenant_id, stored)
        logger.info("Deleted entity %s for tenant %s", name, tenant_id)

    # ------------------------------------------------------------------
    # Relationships
    # ------------------------------------------------------------------

    async def define_relationship(
        self, tenant_id: str, data: RelationshipInput | Mapping[str, Any]
    ) -> RelationshipDefinition:
        """Record a relationship between two existing entities (metadata only).

        Raises:
            ValidationError: Input does not match the relationship shape.
            NotFoundError: Either endpoint entity does not exist.
            DuplicateEntityError: The relationship name is taken.
        """
        relationship = validate_relationship_input(data)
        for name in {relationship.from_entity, relationship.to_entity}:
            await self.require_entity(tenant_id, name)
        return await self.store.insert_relationship(tenant_id, relationship)

    async def list_relationships(self, tenant_id: str) -> list[RelationshipDefinition]:
        return await self.store.list_relationships(tenant_id)
