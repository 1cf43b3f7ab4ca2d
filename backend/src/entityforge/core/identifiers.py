"""SQL identifier validation and physical naming.

Every table, column, index and constraint name passes through
``sanitize_identifier`` before it reaches a statement. Values are never
interpolated; they are always bound parameters.

Physical table naming
---------------------
For tenant T and entity E the table is ``tenant_{T'}_{E}`` where T' is the
tenant id with every character outside ``[A-Za-z0-9_]`` replaced by ``_``.
PostgreSQL silently truncates identifiers longer than 63 bytes, which could
make two tenants' tables collide, so longer names are cut and suffixed with
a short SHA-1 digest of the full name instead.
"""

from __future__ import annotations

import hashlib
import re

from entityforge.core.errors import InvalidIdentifier

IDENTIFIER_PATTERN = re.compile(r"[a-zA-Z_][a-zA-Z0-9_]*")

# PostgreSQL NAMEDATALEN - 1
MAX_IDENTIFIER_LENGTH = 63

TABLE_PREFIX = "tenant"

_NON_IDENTIFIER_CHARS = re.compile(r"[^a-zA-Z0-9_]")


def sanitize_identifier(identifier: str) -> str:
    """Return ``identifier`` unchanged if it is a valid SQL identifier.

    Raises:
        InvalidIdentifier: If the value is not a string matching
            ``^[a-zA-Z_][a-zA-Z0-9_]*$``.
    """
    if not isinstance(identifier, str) or not IDENTIFIER_PATTERN.fullmatch(identifier):
        raise InvalidIdentifier(identifier)
    return identifier


def is_valid_identifier(identifier: str) -> bool:
    """Check an identifier without raising."""
    return isinstance(identifier, str) and IDENTIFIER_PATTERN.fullmatch(identifier) is not None


def _fit(name: str) -> str:
    """Shorten a name to the identifier limit, keeping it deterministic."""
    if len(name) <= MAX_IDENTIFIER_LENGTH:
        return name
    digest = hashlib.sha1(name.encode("utf-8")).hexdigest()[:8]
    return f"{name[: MAX_IDENTIFIER_LENGTH - len(digest) - 1]}_{digest}"


def tenant_key(tenant_id: str) -> str:
    """Convert a tenant id (e.g. a UUID) into an identifier-safe fragment."""
    key = _NON_IDENTIFIER_CHARS.sub("_", str(tenant_id))
    if not key:
        raise InvalidIdentifier(tenant_id)
    return key


def physical_table_name(tenant_id: str, entity_name: str) -> str:
    """Deterministic physical table name for a (tenant, entity) pair.

    Example:
        physical_table_name("3f2a-9c", "customers") -> "tenant_3f2a_9c_customers"
    """
    name = f"{TABLE_PREFIX}_{tenant_key(tenant_id)}_{sanitize_identifier(entity_name)}"
    return sanitize_identifier(_fit(name))


def unique_index_name(table_name: str, field_name: str) -> str:
    """Name of the unique index backing a ``unique`` field."""
    name = f"{sanitize_identifier(table_name)}_{sanitize_identifier(field_name)}_unique"
    return sanitize_identifier(_fit(name))


def foreign_key_name(table_name: str, field_name: str) -> str:
    """Name of the foreign key constraint for a relation field."""
    name = f"{sanitize_identifier(table_name)}_{sanitize_identifier(field_name)}_fkey"
    return sanitize_identifier(_fit(name))
