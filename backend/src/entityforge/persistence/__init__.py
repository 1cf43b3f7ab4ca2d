"""Persistence layer - storage handle, configuration and record shaping."""

from entityforge.persistence.config import DatabaseConfig, create_database
from entityforge.persistence.database import Database

__all__ = ["Database", "DatabaseConfig", "create_database"]
