"""Entity lifecycle and generic record access."""

from entityforge.engine.data import DataEngine
from entityforge.engine.entities import EntityEngine

__all__ = ["DataEngine", "EntityEngine"]
