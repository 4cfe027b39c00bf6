"""Tests for ordersync/utils/normalization.py."""

from ordersync.utils.normalization import (
    clean_order_fields,
    normalize_optional,
    normalize_reference,
)

# ── normalize_reference ───────────────────────────────────────────────


class TestNormalizeReference:
    def test_trims_and_collapses(self):
        assert normalize_reference(" Foo   Bar ") == "Foo Bar"

    def test_equivalent_forms_compare_equal(self):
        assert normalize_reference(" Foo   Bar ") == normalize_reference("Foo Bar") == "Foo Bar"

    def test_tabs_and_newlines(self):
        assert normalize_reference("CT-2024\t\n 0042") == "CT-2024 0042"

    def test_none_is_empty(self):
        assert normalize_reference(None) == ""

    def test_whitespace_only_is_empty(self):
        assert normalize_reference("   ") == ""

    def test_numbers_are_stringified(self):
        assert normalize_reference(12345) == "12345"

    def test_idempotent(self):
        once = normalize_reference("  a  b   c ")
        assert normalize_reference(once) == once


class TestNormalizeOptional:
    def test_keeps_absent_value_absent(self):
        assert normalize_optional(None) is None
        assert normalize_optional("") == ""

    def test_normalizes_present_value(self):
        assert normalize_optional(" SN  001 ") == "SN 001"


# ── clean_order_fields ────────────────────────────────────────────────


class TestCleanOrderFields:
    def test_reference_fields_normalized(self):
        raw = {"contract_ref": " CT  1 ", "company_name": "Atlas   Telecom ", "phone": None}
        cleaned = clean_order_fields(raw)
        assert cleaned["contract_ref"] == "CT 1"
        assert cleaned["company_name"] == "Atlas Telecom"
        assert cleaned["phone"] == ""

    def test_input_not_mutated(self):
        raw = {"contract_ref": " CT  1 "}
        clean_order_fields(raw)
        assert raw["contract_ref"] == " CT  1 "

    def test_optional_fields_only_touched_when_present(self):
        cleaned = clean_order_fields({"contract_ref": "X", "serial_number": " S  9 "})
        assert cleaned["serial_number"] == "S 9"
        assert "external_ref" not in cleaned

    def test_other_fields_untouched(self):
        cleaned = clean_order_fields({"contract_ref": "X", "city": "  Rabat  "})
        assert cleaned["city"] == "  Rabat  "
