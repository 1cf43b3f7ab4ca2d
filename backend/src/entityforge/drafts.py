"""Entity drafts from free text.

The text generator itself (an LLM service) lives outside EntityForge and is
consumed through ``EntityDraftGenerator``: given a prompt it returns the
model's raw reply. This module turns that reply into a validated
EntityInput which the caller may review and then pass to
``EntityEngine.create_entity``.
"""

from __future__ import annotations

import json
import re
from typing import Any, Protocol, runtime_checkable

from entityforge.core.errors import ValidationError
from entityforge.metadata.models import EntityInput, validate_entity_input

DRAFT_INSTRUCTIONS = """\
Convert the description into one entity definition for a business application.
Return only a JSON object of the form:
{"name": "customers", "label": "Customer", "pluralLabel": "Customers",
 "description": "...", "icon": "users",
 "fields": [{"name": "email", "label": "Email", "type": "email", "required": true}]}
Names are snake_case. Field types: text, number, boolean, date, datetime, time,
email, url, phone, currency, json, file, image, select (with "options":
[{"label": ..., "value": ...}]), multiselect. Do not add id, created_at or
updated_at; the system adds them."""

_FENCE = re.compile(r"```(?:json)?\s*(\{.*\})\s*```", re.DOTALL)

# Types generators tend to produce that map onto a supported type
_TYPE_ALIASES = {"textarea": "text", "string": "text", "integer": "number", "decimal": "number"}


@runtime_checkable
class EntityDraftGenerator(Protocol):
    """External text-generation service."""

    async def generate(self, prompt: str) -> str: ...


def _normalize_field(field: Any) -> Any:
    if not isinstance(field, dict):
        return field
    field = dict(field)
    # Options and other settings are sometimes nested under "config"
    config = field.pop("config", None)
    if isinstance(config, dict):
        for key, value in config.items():
            field.setdefault(key, value)
    if isinstance(field.get("type"), str):
        field["type"] = _TYPE_ALIASES.get(field["type"], field["type"])
    return field


def parse_entity_draft(text: str) -> EntityInput:
    """Extract and validate an entity definition from generator output.

    The JSON object may be bare or wrapped in a ``` fence.

    Raises:
        ValidationError: No JSON object could be parsed, or it is not a valid
            entity definition.
    """
    match = _FENCE.search(text)
    raw = match.group(1) if match else text.strip()
    try:
        data = json.loads(raw)
    except ValueError as e:
        raise ValidationError(f"Failed to parse entity draft: {e}") from e
    if not isinstance(data, dict):
        raise ValidationError("Entity draft must be a JSON object")

    if isinstance(data.get("fields"), list):
        data["fields"] = [_normalize_field(f) for f in data["fields"]]
    return validate_entity_input(data)


async def draft_entity(generator: EntityDraftGenerator, prompt: str) -> EntityInput:
    """Ask the generator for a draft and validate it."""
    if not prompt.strip():
        raise ValidationError("Prompt must not be empty")
    reply = await generator.generate(f"{DRAFT_INSTRUCTIONS}\n\nDescription: {prompt}")
    if not reply:
        raise ValidationError("Entity draft generator returned an empty response")
    return parse_entity_draft(reply)
