"""Field type registry with physical storage mapping."""

from dataclasses import dataclass
from typing import Any, Callable, Mapping

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql
from sqlalchemy.types import TypeEngine


@dataclass(frozen=True)
class FieldType:
    name: str
    storage_type: str | None  # None: not stored (computed)
    value_kind: str  # record value variant, see persistence.records


# Built-in field types
FIELD_TYPES: dict[str, FieldType] = {
    "text": FieldType(name="text", storage_type="TEXT", value_kind="text"),
    "email": FieldType(name="email", storage_type="TEXT", value_kind="text"),
    "url": FieldType(name="url", storage_type="TEXT", value_kind="text"),
    "phone": FieldType(name="phone", storage_type="TEXT", value_kind="text"),
    # Allowed values are not enforced by the store
    "select": FieldType(name="select", storage_type="TEXT", value_kind="text"),
    "multiselect": FieldType(
        name="multiselect",
        storage_type="TEXT",  # JSON array stored as text
        value_kind="text_list",
    ),
    "number": FieldType(name="number", storage_type="NUMERIC", value_kind="number"),
    "currency": FieldType(
        name="currency",
        storage_type="NUMERIC(19, 4)",
        value_kind="number",
    ),
    "boolean": FieldType(name="boolean", storage_type="BOOLEAN", value_kind="boolean"),
    "date": FieldType(name="date", storage_type="DATE", value_kind="date"),
    "datetime": FieldType(name="datetime", storage_type="TIMESTAMP", value_kind="timestamp"),
    "time": FieldType(name="time", storage_type="TIMESTAMP", value_kind="timestamp"),
    "json": FieldType(name="json", storage_type="JSONB", value_kind="document"),
    "relation": FieldType(
        name="relation",
        storage_type="UUID",  # Foreign key to the target entity's id
        value_kind="reference",
    ),
    "file": FieldType(name="file", storage_type="TEXT", value_kind="text"),  # URL/path
    "image": FieldType(name="image", storage_type="TEXT", value_kind="text"),  # URL/path
    "computed": FieldType(name="computed", storage_type=None, value_kind="none"),
}


# Physical type name -> SQLAlchemy type factory. Names are the PostgreSQL
# spelling; other dialects get SQLAlchemy's closest equivalent.
STORAGE_TYPES: dict[str, Callable[[], TypeEngine]] = {
    "TEXT": sa.Text,
    "NUMERIC": sa.Numeric,
    "NUMERIC(19, 4)": lambda: sa.Numeric(19, 4),
    "BOOLEAN": sa.Boolean,
    "DATE": sa.Date,
    "TIMESTAMP": sa.DateTime,
    "JSONB": lambda: sa.JSON().with_variant(postgresql.JSONB(), "postgresql"),
    "UUID": lambda: sa.Uuid(as_uuid=True),
}


@dataclass(frozen=True)
class ColumnSpec:
    """Physical column type and nullability for one field."""

    storage_type: str
    nullable: bool

    def sa_type(self) -> TypeEngine:
        return STORAGE_TYPES[self.storage_type]()


def get_field_type(type_name: str) -> FieldType:
    """Get field type definition, defaulting to text if unknown."""
    return FIELD_TYPES.get(type_name, FIELD_TYPES["text"])


def get_storage_type(type_name: str) -> str | None:
    """Get the physical column type for a field type (None for computed)."""
    return get_field_type(type_name).storage_type


def map_field_type(
    type_name: str, config: Mapping[str, Any] | None = None
) -> ColumnSpec | None:
    """Map a field type and its configuration to a column spec.

    Args:
        type_name: One of FIELD_TYPES.
        config: The field's configuration; only ``required`` affects storage.

    Returns:
        ColumnSpec, or None when the type emits no column.
    """
    storage_type = get_storage_type(type_name)
    if storage_type is None:
        return None
    required = bool((config or {}).get("required", False))
    return ColumnSpec(storage_type=storage_type, nullable=not required)


def column_spec(field: Any) -> ColumnSpec | None:
    """Column spec for a field definition (anything with .type and .required)."""
    return map_field_type(field.type, {"required": field.required})
