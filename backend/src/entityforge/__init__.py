"""EntityForge: tenant-defined entities realized as physical tables, with generic CRUD."""

__version__ = "0.1.0"
