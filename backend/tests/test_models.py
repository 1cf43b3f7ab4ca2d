"""Tests for entity, field and relationship definitions."""

import pytest

from entityforge.core.errors import ValidationError
from entityforge.metadata.models import (
    ComputedField,
    EntityInput,
    RelationField,
    SelectField,
    SimpleField,
    parse_field,
    validate_entity_input,
    validate_relationship_input,
)


def entity(**overrides):
    data = {
        "name": "customers",
        "label": "Customer",
        "fields": [{"name": "email", "type": "email", "required": True}],
    }
    data.update(overrides)
    return data


class TestEntityInput:
    def test_defaults(self):
        result = validate_entity_input(entity())
        assert result.timestamps is True
        assert result.soft_delete is False
        assert result.system_columns == ("id", "created_at", "updated_at")

    def test_accepts_camel_case(self):
        result = validate_entity_input(entity(pluralLabel="Customers", softDelete=True))
        assert result.plural_label == "Customers"
        assert result.soft_delete is True
        assert "deleted_at" in result.system_columns

    def test_accepts_snake_case(self):
        result = validate_entity_input(entity(plural_label="Customers", soft_delete=True))
        assert result.soft_delete is True

    def test_passes_through_existing_input(self):
        existing = EntityInput.model_validate(entity())
        assert validate_entity_input(existing) is existing

    @pytest.mark.parametrize("name", ["Customers", "1customers", "customer-list", "", "a" * 64])
    def test_invalid_names(self, name):
        with pytest.raises(ValidationError):
            validate_entity_input(entity(name=name))

    def test_requires_a_field(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_entity_input(entity(fields=[]))
        assert exc_info.value.errors[0]["loc"] == ["fields"]

    def test_duplicate_field_names(self):
        fields = [{"name": "email", "type": "email"}, {"name": "email", "type": "text"}]
        with pytest.raises(ValidationError, match="Duplicate field name"):
            validate_entity_input(entity(fields=fields))

    def test_reserved_field_names(self):
        with pytest.raises(ValidationError, match="reserved"):
            validate_entity_input(entity(fields=[{"name": "id", "type": "text"}]))
        with pytest.raises(ValidationError, match="reserved"):
            validate_entity_input(entity(fields=[{"name": "created_at", "type": "datetime"}]))

    def test_timestamp_names_free_without_timestamps(self):
        result = validate_entity_input(
            entity(timestamps=False, fields=[{"name": "created_at", "type": "datetime"}])
        )
        assert result.system_columns == ("id",)

    def test_unknown_field_type(self):
        with pytest.raises(ValidationError):
            validate_entity_input(entity(fields=[{"name": "x", "type": "textarea"}]))

    def test_field_helpers(self):
        result = validate_entity_input(
            entity(
                fields=[
                    {"name": "email", "type": "email", "required": True},
                    {"name": "total", "type": "computed", "formula": "a + b", "required": True},
                    {
                        "name": "owner",
                        "type": "relation",
                        "entity": "users",
                        "relationType": "one-to-many",
                    },
                ]
            )
        )
        assert [f.name for f in result.stored_fields] == ["email", "owner"]
        assert [f.name for f in result.required_fields] == ["email"]
        assert [f.name for f in result.relation_fields] == ["owner"]
        assert result.get_field("missing") is None


class TestFieldVariants:
    def test_simple_field(self):
        assert isinstance(parse_field({"name": "active", "type": "boolean"}), SimpleField)

    def test_select_requires_options(self):
        with pytest.raises(ValidationError):
            validate_entity_input(entity(fields=[{"name": "status", "type": "select"}]))

    def test_select_default_must_be_an_option(self):
        field = {
            "name": "status",
            "type": "select",
            "options": [{"label": "Open", "value": "open"}],
            "defaultValue": "done",
        }
        with pytest.raises(ValidationError, match="not one of the options"):
            validate_entity_input(entity(fields=[field]))

    def test_select_option_values_unique(self):
        field = {
            "name": "status",
            "type": "select",
            "options": [{"label": "Open", "value": "open"}, {"label": "Opened", "value": "open"}],
        }
        with pytest.raises(ValidationError, match="unique"):
            validate_entity_input(entity(fields=[field]))

    def test_multiselect_defaults_checked(self):
        field = {
            "name": "tags",
            "type": "multiselect",
            "options": [{"label": "A", "value": "a"}],
            "defaultValue": ["a", "b"],
        }
        with pytest.raises(ValidationError):
            validate_entity_input(entity(fields=[field]))

    def test_relation_config(self):
        field = parse_field(
            {
                "name": "customer",
                "type": "relation",
                "entity": "customers",
                "relationType": "one-to-many",
                "cascadeDelete": True,
            }
        )
        assert isinstance(field, RelationField)
        assert field.entity == "customers"
        assert field.cascade_delete is True

    def test_relation_requires_target(self):
        with pytest.raises(ValidationError):
            validate_entity_input(
                entity(fields=[{"name": "customer", "type": "relation", "relationType": "one-to-one"}])
            )

    def test_number_bounds(self):
        with pytest.raises(ValidationError, match="min must not exceed max"):
            validate_entity_input(entity(fields=[{"name": "n", "type": "number", "min": 5, "max": 1}]))

    def test_text_pattern_must_compile(self):
        with pytest.raises(ValidationError, match="regular expression"):
            validate_entity_input(entity(fields=[{"name": "t", "type": "text", "pattern": "("}]))

    def test_currency_code(self):
        assert parse_field({"name": "price", "type": "currency"}).currency == "USD"
        with pytest.raises(ValidationError):
            validate_entity_input(entity(fields=[{"name": "p", "type": "currency", "currency": "usd"}]))

    def test_computed_requires_formula(self):
        assert isinstance(
            parse_field({"name": "total", "type": "computed", "formula": "price * qty"}),
            ComputedField,
        )
        with pytest.raises(ValidationError):
            validate_entity_input(entity(fields=[{"name": "total", "type": "computed"}]))

    def test_config_round_trip(self):
        field = parse_field(
            {
                "name": "status",
                "type": "select",
                "required": True,
                "options": [{"label": "Open", "value": "open"}],
                "defaultValue": "open",
            }
        )
        config = field.to_config()
        assert config["defaultValue"] == "open"
        assert parse_field(config) == field
        assert isinstance(field, SelectField)


class TestRelationshipInput:
    def test_valid(self):
        rel = validate_relationship_input(
            {
                "name": "customer_orders",
                "type": "one-to-many",
                "fromEntity": "customers",
                "toEntity": "orders",
                "inverseName": "customer",
            }
        )
        assert rel.from_entity == "customers"
        assert rel.cascade_delete is False

    def test_invalid_type(self):
        with pytest.raises(ValidationError):
            validate_relationship_input(
                {"name": "r", "type": "many", "fromEntity": "a", "toEntity": "b"}
            )
