"""Generic record representation and value shaping.

A record is a mapping from field name to a value drawn from a closed set of
variants mirroring the physical column types:

    text       -> str
    text_list  -> list[str]        (multiselect, stored as JSON text)
    number     -> Decimal
    boolean    -> bool
    date       -> datetime.date
    timestamp  -> datetime.datetime (naive, UTC)
    document   -> JSON-compatible value
    reference  -> uuid.UUID on write, str on read

Incoming payload values are coerced into these variants before they are
bound as statement parameters; rows coming back are shaped into plain,
JSON-friendly dicts.
"""

from __future__ import annotations

import json
import uuid
from datetime import UTC, date, datetime, time
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping, Union

from entityforge.core.errors import ValidationError
from entityforge.core.types import get_field_type

RecordValue = Union[str, Decimal, int, float, bool, date, datetime, list, dict, None]
Record = dict[str, RecordValue]

_TRUE_STRINGS = {"true", "1", "yes"}
_FALSE_STRINGS = {"false", "0", "no"}

# Value kinds of the system-managed columns
SYSTEM_VALUE_KINDS: dict[str, str] = {
    "id": "reference",
    "created_at": "timestamp",
    "updated_at": "timestamp",
    "deleted_at": "timestamp",
}


def utcnow() -> datetime:
    """Current UTC time as a naive datetime, the storage convention."""
    return datetime.now(UTC).replace(tzinfo=None)


def _invalid(name: str, message: str) -> ValidationError:
    return ValidationError(
        f'Invalid value for field "{name}": {message}',
        [{"loc": [name], "msg": message}],
    )


def parse_uuid(value: Any) -> uuid.UUID | None:
    """Parse a record id, returning None when it cannot be a UUID."""
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (ValueError, AttributeError, TypeError):
        return None


def _to_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        result = value
    elif isinstance(value, date):
        result = datetime.combine(value, time())
    elif isinstance(value, str):
        try:
            result = datetime.fromisoformat(value)
        except ValueError:
            # Time-only values ("14:30") are anchored to the epoch date
            result = datetime.combine(date(1970, 1, 1), time.fromisoformat(value))
    else:
        raise ValueError(f"expected an ISO timestamp, got {type(value).__name__}")
    if result.tzinfo is not None:
        result = result.astimezone(UTC).replace(tzinfo=None)
    return result


def _to_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return date.fromisoformat(value[:10]) if "T" in value else date.fromisoformat(value)
    raise ValueError(f"expected an ISO date, got {type(value).__name__}")


def _to_number(value: Any) -> Decimal:
    if isinstance(value, bool):
        raise ValueError("expected a number, got bool")
    if isinstance(value, (int, float, Decimal, str)):
        try:
            result = Decimal(str(value))
        except InvalidOperation:
            raise ValueError(f"'{value}' is not a number")
        if not result.is_finite():
            raise ValueError(f"'{value}' is not a finite number")
        return result
    raise ValueError(f"expected a number, got {type(value).__name__}")


def _to_boolean(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    raise ValueError(f"expected a boolean, got {value!r}")


def _to_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float, Decimal)) and not isinstance(value, bool):
        return str(value)
    raise ValueError(f"expected text, got {type(value).__name__}")


def _to_text_list(value: Any) -> str:
    if isinstance(value, str):
        return json.dumps([value])
    if isinstance(value, (list, tuple)) and all(isinstance(v, str) for v in value):
        return json.dumps(list(value))
    raise ValueError("expected a list of strings")


def _to_reference(value: Any) -> uuid.UUID:
    parsed = parse_uuid(value)
    if parsed is None:
        raise ValueError(f"'{value}' is not a valid id")
    return parsed


_COERCERS = {
    "text": _to_text,
    "text_list": _to_text_list,
    "number": _to_number,
    "boolean": _to_boolean,
    "date": _to_date,
    "timestamp": _to_timestamp,
    "reference": _to_reference,
}


def coerce_value(name: str, value_kind: str, value: Any) -> Any:
    """Coerce one payload value to the variant of its column.

    Raises:
        ValidationError: If the value cannot represent the column's type.
    """
    if value is None:
        return None
    if value_kind == "document":
        try:
            json.dumps(value)
        except (TypeError, ValueError) as e:
            raise _invalid(name, f"not JSON serializable ({e})") from e
        return value
    coercer = _COERCERS.get(value_kind, _to_text)
    try:
        return coercer(value)
    except ValueError as e:
        raise _invalid(name, str(e)) from e


def value_kinds(entity: Any) -> dict[str, str]:
    """Map every stored column of an entity to its value kind."""
    kinds = {
        column: SYSTEM_VALUE_KINDS[column] for column in entity.system_columns
    }
    for field in entity.stored_fields:
        kinds[field.name] = get_field_type(field.type).value_kind
    return kinds


def shape_row(row: Mapping[str, Any], kinds: Mapping[str, str]) -> Record:
    """Turn a result row into a plain record dict."""
    record: Record = {}
    for key, value in row.items():
        kind = kinds.get(key)
        if isinstance(value, uuid.UUID):
            value = str(value)
        elif kind == "text_list" and isinstance(value, str):
            try:
                decoded = json.loads(value)
            except ValueError:
                decoded = value
            value = decoded if isinstance(decoded, list) else value
        record[key] = value
    return record
