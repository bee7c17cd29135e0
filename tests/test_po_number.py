"""
Unit tests for PO number extraction from invoice text.
"""

from invoice_reconciliation.resolution.po_number import (
    extract_po_number, extract_po_numbers, normalize_po_number
)


class TestNormalizePONumber:
    """Test cases for PO number normalization."""

    def test_already_normalized(self):
        """Test a normalized number is unchanged."""
        assert normalize_po_number("PO-2024-00031") == "PO-2024-00031"

    def test_lowercase_without_dash(self):
        """Test lowercase input without a dash after PO."""
        assert normalize_po_number("po2024-00031") == "PO-2024-00031"

    def test_hash_prefix(self):
        """Test a hash between PO and the number."""
        assert normalize_po_number("PO#12345") == "PO-12345"

    def test_bare_number(self):
        """Test a bare number gets the PO prefix."""
        assert normalize_po_number(" 12345 ") == "PO-12345"


class TestExtractPONumbers:
    """Test cases for PO number extraction."""

    def test_dashed_po_number(self):
        """Test the canonical PO-YYYY-NNNNN form."""
        assert extract_po_numbers("Service for March, ref PO-2024-00031 net 30") == ["PO-2024-00031"]

    def test_spaced_po_number(self):
        """Test spaces in place of dashes."""
        assert extract_po_number("po 2024 00031") == "PO-2024-00031"

    def test_purchase_order_label(self):
        """Labelled and bare forms of the same number are reported once."""
        assert extract_po_numbers("Purchase Order #: PO-2024-00031") == ["PO-2024-00031"]

    def test_purchase_order_label_without_prefix(self):
        """A labelled number without the PO prefix gets one."""
        assert extract_po_number("purchase order # 2024-00031") == "PO-2024-00031"

    def test_po_abbreviation(self):
        """Test the P.O. # abbreviation."""
        assert extract_po_numbers("Ref P.O. # 12345") == ["PO-12345"]

    def test_multiple_numbers_in_order(self):
        """Distinct numbers are returned in order of appearance."""
        text = "Covers PO-2024-00031 and PO-2024-00032"
        assert extract_po_numbers(text) == ["PO-2024-00031", "PO-2024-00032"]

    def test_label_without_digits_ignored(self):
        """Labels not followed by a number yield nothing."""
        assert extract_po_numbers("Purchase Order Number pending") == []

    def test_empty_text(self):
        """Test text without a PO number."""
        assert extract_po_numbers(None) == []
        assert extract_po_numbers("") == []
        assert extract_po_number("Invoice total $500.00") is None

    def test_unseparated_digits_not_split(self):
        """A run of digits after PO is not split into year and sequence parts."""
        assert extract_po_numbers("PO 123456789") == []
        assert extract_po_numbers("PO202400031") == []
        assert extract_po_number("PO2024-00031") == "PO-2024-00031"
