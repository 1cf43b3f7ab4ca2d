"""Database configuration and storage handle factory."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from entityforge.persistence.database import Database


def _env_flag(name: str) -> bool:
    return os.environ.get(name, "").lower() in ("1", "true", "yes")


@dataclass
class DatabaseConfig:
    """Database connection configuration.

    Supports sqlite:/// and postgresql:// URL schemes.
    """

    url: str
    timeout: float | None = None  # Per-call storage deadline in seconds
    echo: bool = False

    @classmethod
    def from_env(cls, base_path: Path | None = None) -> DatabaseConfig:
        """Create config from environment variables.

        Resolution order:
        1. DATABASE_URL env var (standard)
        2. ENTITYFORGE_DB_PATH env var (converted to sqlite:/// URL)
        3. Default: sqlite:///{base_path}/data/entityforge.db
        """
        timeout_raw = os.environ.get("ENTITYFORGE_STATEMENT_TIMEOUT")
        timeout = float(timeout_raw) if timeout_raw else None
        echo = _env_flag("ENTITYFORGE_SQL_ECHO")

        url = os.environ.get("DATABASE_URL")
        if url:
            return cls(url=url, timeout=timeout, echo=echo)

        db_path = os.environ.get("ENTITYFORGE_DB_PATH")
        if db_path:
            return cls(url=f"sqlite:///{db_path}", timeout=timeout, echo=echo)

        if base_path:
            return cls(
                url=f"sqlite:///{base_path / 'data' / 'entityforge.db'}",
                timeout=timeout,
                echo=echo,
            )

        return cls(url="sqlite:///entityforge.db", timeout=timeout, echo=echo)

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith("sqlite")

    @property
    def is_postgresql(self) -> bool:
        return self.url.startswith("postgresql")

    @property
    def sqlite_path(self) -> str | None:
        """Filesystem path of a SQLite database, None for memory or other schemes."""
        if not self.is_sqlite:
            return None
        path = self.url.split(":///", 1)[1] if ":///" in self.url else ""
        if not path or path == ":memory:":
            return None
        return path

    @property
    def sqlalchemy_url(self) -> str:
        """URL suitable for SQLAlchemy async engine creation.

        postgresql:// URLs use the psycopg (v3) driver, sqlite:/// URLs use
        aiosqlite. URLs that already name a driver are left alone.
        """
        if self.url.startswith("postgresql://"):
            return self.url.replace("postgresql://", "postgresql+psycopg://", 1)
        if self.url.startswith("sqlite://"):
            return self.url.replace("sqlite://", "sqlite+aiosqlite://", 1)
        return self.url


def create_database(config: DatabaseConfig) -> Database:
    """Create a storage handle based on the database URL scheme.

    Args:
        config: Database configuration with URL.

    Returns:
        A Database instance (not yet connected).

    Raises:
        ValueError: For unsupported URL schemes.
    """
    from entityforge.persistence.database import Database

    if config.is_sqlite or config.is_postgresql:
        return Database(config.sqlalchemy_url, timeout=config.timeout, echo=config.echo)

    raise ValueError(f"Unsupported database URL scheme: {config.url}")
