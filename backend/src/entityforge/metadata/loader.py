"""Load entity definitions from YAML files.

An entity file looks like::

    entity: customers          # "name" is accepted too
    label: Customer
    pluralLabel: Customers
    includes:
      - block: address         # fields from blocks/address.yaml
        prefix: billing_
    fields:
      - name: email
        type: email
        required: true
        unique: true

Labels default to a title-cased version of the name. Blocks are reusable
field lists stored as ``blocks/<name>.yaml`` next to the ``entities``
directory.
"""

from pathlib import Path
from typing import Any

import yaml

from entityforge.core.errors import ValidationError
from entityforge.metadata.models import EntityInput, validate_entity_input


def to_label(name: str) -> str:
    """Convert snake_case to Title Case."""
    return " ".join(part.capitalize() for part in name.split("_") if part)


class EntityFileLoader:
    """Loads entity definitions and field blocks from a metadata directory."""

    def __init__(self, metadata_path: Path | None = None):
        self.metadata_path = metadata_path
        self.blocks: dict[str, list[dict]] = {}

    def load_blocks(self) -> None:
        """Load reusable field blocks from blocks/*.yaml."""
        if self.metadata_path is None:
            return
        blocks_path = self.metadata_path / "blocks"
        if not blocks_path.exists():
            return

        for yaml_file in sorted(blocks_path.glob("*.yaml")):
            with open(yaml_file) as f:
                data = yaml.safe_load(f)
                if data and "block" in data:
                    self.blocks[data["block"]] = data.get("fields", [])

    def load_file(self, path: Path) -> EntityInput:
        """Load and validate a single entity file.

        Raises:
            ValidationError: The file is not valid YAML or not a valid entity.
        """
        try:
            with open(path) as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValidationError(f"Invalid YAML in {path}: {e}") from e

        if not isinstance(data, dict):
            raise ValidationError(f"{path} does not contain an entity definition")
        return self.resolve(data)

    def resolve(self, data: dict[str, Any]) -> EntityInput:
        """Expand blocks and defaults, then validate."""
        data = dict(data)
        name = data.pop("entity", None) or data.get("name")
        if not name:
            raise ValidationError("Entity definition has no name")
        data["name"] = name
        data.setdefault("label", to_label(name))

        all_fields: list[dict] = []
        for include in data.pop("includes", None) or []:
            block_name = include["block"]
            if block_name not in self.blocks:
                raise ValidationError(f"Unknown block '{block_name}' in entity '{name}'")
            prefix = include.get("prefix", "")
            for block_field in self.blocks[block_name]:
                field_copy = block_field.copy()
                if prefix:
                    field_copy["name"] = prefix + field_copy["name"]
                all_fields.append(field_copy)
        all_fields.extend(
            dict(f) if isinstance(f, dict) else f for f in data.get("fields") or []
        )

        for field in all_fields:
            if isinstance(field, dict) and field.get("name"):
                field.setdefault("label", to_label(field["name"]))
        data["fields"] = all_fields

        return validate_entity_input(data)
