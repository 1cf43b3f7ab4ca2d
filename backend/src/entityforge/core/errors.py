"""Error taxonomy for EntityForge.

Every failure raised by the engines derives from EntityForgeError so callers
can tell request-level mistakes (identifiers, validation, duplicates) apart
from storage failures that may be worth retrying:

- InvalidIdentifier: a name cannot be used as a SQL identifier
- ValidationError: input shape or record payload violations
- MissingRequiredFieldError: a record write lacks a required field
- DuplicateEntityError: entity/relationship name already taken in a tenant
- NotFoundError: entity or record is absent
- SchemaGenerationError: DDL for a physical table could not be executed
- StorageError: any other failure of the underlying store (cause chained)
"""

from typing import Any


class EntityForgeError(Exception):
    """Base class for all EntityForge errors."""


class InvalidIdentifier(EntityForgeError, ValueError):
    """Raised when a string is not a valid SQL identifier."""

    def __init__(self, identifier: Any):
        self.identifier = identifier
        super().__init__(f"Invalid SQL identifier: {identifier!r}")


class ValidationError(EntityForgeError):
    """Raised when input fails shape validation.

    Attributes:
        errors: List of {"loc": [...], "msg": "..."} entries, one per problem.
    """

    def __init__(self, message: str, errors: list[dict[str, Any]] | None = None):
        super().__init__(message)
        self.errors = errors or []


class MissingRequiredFieldError(ValidationError):
    """Raised when a record write lacks a value for a required field."""

    def __init__(self, field: str):
        self.field = field
        super().__init__(
            f'Field "{field}" is required',
            [{"loc": [field], "msg": "Field is required"}],
        )


class DuplicateEntityError(EntityForgeError):
    """Raised when an entity name already exists within a tenant."""

    def __init__(self, name: str, message: str | None = None):
        self.name = name
        super().__init__(message or f'Entity "{name}" already exists')


class NotFoundError(EntityForgeError):
    """Raised when an entity or record does not exist."""


class SchemaGenerationError(EntityForgeError):
    """Raised when physical table DDL cannot be built or executed."""


class StorageError(EntityForgeError):
    """Raised for any failure of the underlying relational store.

    The original driver/SQLAlchemy exception is available as ``__cause__``.
    """


class StorageTimeoutError(StorageError):
    """Raised when a storage call exceeds the configured deadline."""
