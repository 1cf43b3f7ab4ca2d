"""Physical table construction and DDL execution."""

from entityforge.schema.generator import SchemaGenerator
from entityforge.schema.tables import build_entity_table

__all__ = ["SchemaGenerator", "build_entity_table"]
