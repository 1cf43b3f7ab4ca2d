"""Entity, field, relationship and tenant definitions.

Field configuration is a discriminated union on ``type``: each variant
carries only the options that make sense for it (select options, relation
target, numeric bounds, currency code, computed formula) and validates them
independently.

Input accepts both camelCase (``pluralLabel``, ``softDelete``,
``relationType``) and snake_case keys. Serialized configuration uses
camelCase.
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Annotated, Any, Literal, Mapping, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, model_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from entityforge.core.errors import ValidationError

NAME_PATTERN = r"^[a-z_][a-z0-9_]*$"

Identifier = Annotated[str, Field(pattern=NAME_PATTERN, min_length=1, max_length=63)]

RelationshipType = Literal["one-to-one", "one-to-many", "many-to-many"]


class DefinitionModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_config(self) -> dict[str, Any]:
        """JSON-safe camelCase payload, as stored in the metadata store."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ---------------------------------------------------------------------------
# Fields
# ---------------------------------------------------------------------------


class BaseFieldDefinition(DefinitionModel):
    name: Identifier
    label: str | None = None
    description: str | None = None
    required: bool = False
    unique: bool = False


class TextField(BaseFieldDefinition):
    type: Literal["text"]
    min_length: int | None = Field(default=None, ge=0)
    max_length: int | None = Field(default=None, ge=0)
    pattern: str | None = None
    default_value: str | None = None

    @model_validator(mode="after")
    def _check(self) -> TextField:
        if (
            self.min_length is not None
            and self.max_length is not None
            and self.min_length > self.max_length
        ):
            raise ValueError("minLength must not exceed maxLength")
        if self.pattern is not None:
            try:
                re.compile(self.pattern)
            except re.error as e:
                raise ValueError(f"pattern is not a valid regular expression: {e}")
        return self


class NumberField(BaseFieldDefinition):
    type: Literal["number"]
    min: float | None = None
    max: float | None = None
    decimals: int | None = Field(default=None, ge=0)
    default_value: float | None = None

    @model_validator(mode="after")
    def _check_bounds(self) -> NumberField:
        if self.min is not None and self.max is not None and self.min > self.max:
            raise ValueError("min must not exceed max")
        return self


class SelectOption(DefinitionModel):
    label: str
    value: str


def _check_options(options: list[SelectOption]) -> set[str]:
    values = [o.value for o in options]
    if len(set(values)) != len(values):
        raise ValueError("option values must be unique")
    return set(values)


class SelectField(BaseFieldDefinition):
    type: Literal["select"]
    options: list[SelectOption] = Field(min_length=1)
    default_value: str | None = None

    @model_validator(mode="after")
    def _check_options(self) -> SelectField:
        values = _check_options(self.options)
        if self.default_value is not None and self.default_value not in values:
            raise ValueError(f"defaultValue '{self.default_value}' is not one of the options")
        return self

    @property
    def option_values(self) -> list[str]:
        return [o.value for o in self.options]


class MultiSelectField(BaseFieldDefinition):
    type: Literal["multiselect"]
    options: list[SelectOption] = Field(min_length=1)
    default_value: list[str] | None = None

    @model_validator(mode="after")
    def _check_options(self) -> MultiSelectField:
        values = _check_options(self.options)
        for value in self.default_value or []:
            if value not in values:
                raise ValueError(f"defaultValue '{value}' is not one of the options")
        return self

    @property
    def option_values(self) -> list[str]:
        return [o.value for o in self.options]


class RelationField(BaseFieldDefinition):
    type: Literal["relation"]
    entity: Identifier  # Target entity name
    relation_type: RelationshipType
    cascade_delete: bool = False


class CurrencyField(BaseFieldDefinition):
    type: Literal["currency"]
    currency: str = Field(default="USD", pattern=r"^[A-Z]{3}$")
    default_value: float | None = None


class ComputedField(BaseFieldDefinition):
    type: Literal["computed"]
    formula: str = Field(min_length=1)


class SimpleField(BaseFieldDefinition):
    """Field types without extra configuration."""

    type: Literal[
        "boolean", "date", "datetime", "time", "email", "url", "phone", "json", "file", "image"
    ]


FieldDefinition = Annotated[
    Union[
        TextField,
        NumberField,
        SelectField,
        MultiSelectField,
        RelationField,
        CurrencyField,
        ComputedField,
        SimpleField,
    ],
    Field(discriminator="type"),
]

_field_adapter: TypeAdapter[Any] = TypeAdapter(FieldDefinition)


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------


class EntityInput(DefinitionModel):
    """What a tenant provides to declare an entity."""

    name: Identifier
    label: str = Field(min_length=1)
    plural_label: str | None = None
    description: str | None = None
    icon: str | None = None
    fields: list[FieldDefinition] = Field(min_length=1)
    timestamps: bool = True
    soft_delete: bool = False

    @model_validator(mode="after")
    def _check_field_names(self) -> EntityInput:
        reserved = set(self.system_columns)
        seen: set[str] = set()
        for f in self.fields:
            if f.name in reserved:
                raise ValueError(f"Field name '{f.name}' is reserved")
            if f.name in seen:
                raise ValueError(f"Duplicate field name '{f.name}'")
            seen.add(f.name)
        return self

    @property
    def system_columns(self) -> tuple[str, ...]:
        """Columns managed by the engine rather than the tenant."""
        columns = ["id"]
        if self.timestamps:
            columns += ["created_at", "updated_at"]
        if self.soft_delete:
            columns.append("deleted_at")
        return tuple(columns)

    def get_field(self, name: str) -> Any:
        for f in self.fields:
            if f.name == name:
                return f
        return None

    @property
    def stored_fields(self) -> list[Any]:
        """Fields that have a physical column (everything but computed)."""
        return [f for f in self.fields if f.type != "computed"]

    @property
    def required_fields(self) -> list[Any]:
        return [f for f in self.stored_fields if f.required]

    @property
    def relation_fields(self) -> list[RelationField]:
        return [f for f in self.fields if f.type == "relation"]


class EntityDefinition(EntityInput):
    """An entity as persisted for a tenant."""

    id: str | None = None
    tenant_id: str
    created_at: datetime | None = None
    updated_at: datetime | None = None


# ---------------------------------------------------------------------------
# Relationships and tenants
# ---------------------------------------------------------------------------


class RelationshipInput(DefinitionModel):
    """Declared relationship between two entities (metadata only)."""

    name: Identifier
    type: RelationshipType
    from_entity: Identifier
    to_entity: Identifier
    foreign_key: Identifier | None = None
    through_table: Identifier | None = None
    cascade_delete: bool = False
    inverse_name: Identifier | None = None


class RelationshipDefinition(RelationshipInput):
    id: str | None = None
    tenant_id: str
    created_at: datetime | None = None


class Tenant(DefinitionModel):
    id: str
    name: str
    slug: str = Field(pattern=r"^[a-z0-9-]+$")
    external_id: str | None = None
    created_at: datetime | None = None


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _error_list(exc: PydanticValidationError) -> list[dict[str, Any]]:
    return [{"loc": list(e["loc"]), "msg": e["msg"]} for e in exc.errors()]


def _wrap(exc: PydanticValidationError, what: str) -> ValidationError:
    errors = _error_list(exc)
    summary = "; ".join(
        f"{'.'.join(str(p) for p in e['loc']) or what}: {e['msg']}" for e in errors
    )
    return ValidationError(f"Invalid {what}: {summary}", errors)


def validate_entity_input(data: EntityInput | Mapping[str, Any]) -> EntityInput:
    """Validate raw input into an EntityInput.

    Raises:
        ValidationError: If the input does not match the entity definition shape.
    """
    if isinstance(data, EntityInput):
        return data
    try:
        return EntityInput.model_validate(data)
    except PydanticValidationError as e:
        raise _wrap(e, "entity definition") from e


def validate_relationship_input(
    data: RelationshipInput | Mapping[str, Any],
) -> RelationshipInput:
    if isinstance(data, RelationshipInput):
        return data
    try:
        return RelationshipInput.model_validate(data)
    except PydanticValidationError as e:
        raise _wrap(e, "relationship") from e


def parse_field(config: Mapping[str, Any]) -> Any:
    """Rebuild a field definition from its stored configuration payload."""
    return _field_adapter.validate_python(dict(config))
