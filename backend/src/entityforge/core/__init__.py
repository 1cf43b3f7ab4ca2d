"""Error taxonomy, identifiers and field types."""
