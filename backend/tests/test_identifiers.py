"""Tests for identifier validation and physical naming."""

import pytest

from entityforge.core.errors import InvalidIdentifier
from entityforge.core.identifiers import (
    MAX_IDENTIFIER_LENGTH,
    foreign_key_name,
    is_valid_identifier,
    physical_table_name,
    sanitize_identifier,
    tenant_key,
    unique_index_name,
)


class TestSanitizeIdentifier:
    @pytest.mark.parametrize("name", ["customers", "_private", "Order_Items", "a1", "x"])
    def test_valid_identifiers_unchanged(self, name):
        assert sanitize_identifier(name) == name

    @pytest.mark.parametrize(
        "name",
        ["drop table;", "a-b", "1abc", "", "name\n", "na me", 'x"; --', "ä"],
    )
    def test_invalid_identifiers_rejected(self, name):
        with pytest.raises(InvalidIdentifier) as exc_info:
            sanitize_identifier(name)
        assert exc_info.value.identifier == name

    def test_non_string_rejected(self):
        with pytest.raises(InvalidIdentifier):
            sanitize_identifier(None)

    def test_invalid_identifier_is_value_error(self):
        with pytest.raises(ValueError):
            sanitize_identifier("a-b")

    def test_is_valid_identifier(self):
        assert is_valid_identifier("ok_name")
        assert not is_valid_identifier("not ok")


class TestPhysicalTableName:
    def test_prefix_tenant_and_entity(self):
        assert physical_table_name("acme", "customers") == "tenant_acme_customers"

    def test_tenant_characters_replaced(self):
        assert physical_table_name("3f2a-9c", "customers") == "tenant_3f2a_9c_customers"
        assert tenant_key("a.b c") == "a_b_c"

    def test_deterministic(self):
        tenant_id = "6f1c2d4e-8a9b-4c3d-9e8f-0a1b2c3d4e5f"
        assert physical_table_name(tenant_id, "orders") == physical_table_name(
            tenant_id, "orders"
        )

    def test_distinct_tenants_get_distinct_tables(self):
        assert physical_table_name("t1", "orders") != physical_table_name("t2", "orders")

    def test_long_names_shortened_within_limit(self):
        tenant_id = "6f1c2d4e-8a9b-4c3d-9e8f-0a1b2c3d4e5f"
        first = physical_table_name(tenant_id, "customer_support_ticket_comments")
        second = physical_table_name(tenant_id, "customer_support_ticket_attachments")

        assert len(first) <= MAX_IDENTIFIER_LENGTH
        assert len(second) <= MAX_IDENTIFIER_LENGTH
        assert first != second
        assert is_valid_identifier(first)

    def test_invalid_entity_name_rejected(self):
        with pytest.raises(InvalidIdentifier):
            physical_table_name("acme", "bad-name")

    def test_empty_tenant_rejected(self):
        with pytest.raises(InvalidIdentifier):
            physical_table_name("", "customers")


class TestConstraintNames:
    def test_unique_index_name(self):
        assert unique_index_name("tenant_a_customers", "email") == "tenant_a_customers_email_unique"

    def test_foreign_key_name(self):
        assert foreign_key_name("tenant_a_orders", "customer") == "tenant_a_orders_customer_fkey"

    def test_long_constraint_names_shortened(self):
        table = "t" * 60
        assert len(unique_index_name(table, "email")) <= MAX_IDENTIFIER_LENGTH
