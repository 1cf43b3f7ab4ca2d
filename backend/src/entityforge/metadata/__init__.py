"""Entity definitions, YAML loading and the metadata store."""
