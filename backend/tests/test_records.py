"""Tests for record value coercion and row shaping."""

import uuid
from datetime import date, datetime
from decimal import Decimal

import pytest

from entityforge.core.errors import ValidationError
from entityforge.metadata.models import validate_entity_input
from entityforge.persistence.records import (
    coerce_value,
    parse_uuid,
    shape_row,
    utcnow,
    value_kinds,
)


class TestCoerceValue:
    def test_none_passes_through(self):
        assert coerce_value("x", "number", None) is None

    def test_numbers(self):
        assert coerce_value("n", "number", 3) == Decimal("3")
        assert coerce_value("n", "number", "12.50") == Decimal("12.50")
        assert coerce_value("n", "number", 0.5) == Decimal("0.5")

    @pytest.mark.parametrize("value", [True, "abc", "NaN", [1]])
    def test_bad_numbers(self, value):
        with pytest.raises(ValidationError) as exc_info:
            coerce_value("amount", "number", value)
        assert exc_info.value.errors[0]["loc"] == ["amount"]

    @pytest.mark.parametrize(
        "value,expected",
        [(True, True), (False, False), (1, True), (0, False), ("true", True), ("No", False)],
    )
    def test_booleans(self, value, expected):
        assert coerce_value("b", "boolean", value) is expected

    def test_bad_boolean(self):
        with pytest.raises(ValidationError):
            coerce_value("b", "boolean", "maybe")

    def test_timestamp_normalized_to_naive_utc(self):
        result = coerce_value("t", "timestamp", "2024-01-02T03:04:05+02:00")
        assert result == datetime(2024, 1, 2, 1, 4, 5)
        assert result.tzinfo is None

    def test_time_only_anchored_to_epoch(self):
        assert coerce_value("t", "timestamp", "14:30") == datetime(1970, 1, 1, 14, 30)

    def test_bad_timestamp(self):
        with pytest.raises(ValidationError):
            coerce_value("t", "timestamp", "yesterday")

    def test_dates(self):
        assert coerce_value("d", "date", "2024-03-01") == date(2024, 3, 1)
        assert coerce_value("d", "date", "2024-03-01T10:00:00") == date(2024, 3, 1)
        assert coerce_value("d", "date", datetime(2024, 3, 1, 9)) == date(2024, 3, 1)

    def test_text(self):
        assert coerce_value("s", "text", "hello") == "hello"
        assert coerce_value("s", "text", 42) == "42"
        with pytest.raises(ValidationError):
            coerce_value("s", "text", {"a": 1})

    def test_text_list_stored_as_json(self):
        assert coerce_value("tags", "text_list", ["a", "b"]) == '["a", "b"]'
        with pytest.raises(ValidationError):
            coerce_value("tags", "text_list", [1, 2])

    def test_reference(self):
        value = uuid.uuid4()
        assert coerce_value("r", "reference", str(value)) == value
        with pytest.raises(ValidationError):
            coerce_value("r", "reference", "not-a-uuid")

    def test_document_must_be_json(self):
        assert coerce_value("j", "document", {"a": [1, 2]}) == {"a": [1, 2]}
        with pytest.raises(ValidationError):
            coerce_value("j", "document", {1, 2})


class TestShaping:
    def test_parse_uuid(self):
        value = uuid.uuid4()
        assert parse_uuid(str(value)) == value
        assert parse_uuid(value) is value
        assert parse_uuid("nope") is None
        assert parse_uuid(None) is None

    def test_value_kinds(self):
        entity = validate_entity_input(
            {
                "name": "tasks",
                "label": "Task",
                "softDelete": True,
                "fields": [
                    {"name": "title", "type": "text"},
                    {"name": "due", "type": "date"},
                    {"name": "score", "type": "computed", "formula": "1"},
                ],
            }
        )
        assert value_kinds(entity) == {
            "id": "reference",
            "created_at": "timestamp",
            "updated_at": "timestamp",
            "deleted_at": "timestamp",
            "title": "text",
            "due": "date",
        }

    def test_shape_row(self):
        record_id = uuid.uuid4()
        row = {"id": record_id, "tags": '["a", "b"]', "title": "T"}
        shaped = shape_row(row, {"id": "reference", "tags": "text_list", "title": "text"})
        assert shaped == {"id": str(record_id), "tags": ["a", "b"], "title": "T"}

    def test_utcnow_is_naive(self):
        assert utcnow().tzinfo is None
