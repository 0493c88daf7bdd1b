"""Display form of invoice numbers and the value objects that carry it."""

import pytest
from hypothesis import given
from hypothesis import strategies as st

from invoice_kernel.domain.dtos import AllocatedNumber, InvoicePage, OrderLineSnapshot
from invoice_kernel.domain.numbering import (
    affix_error,
    format_invoice_number,
    parse_invoice_number,
)

affixes = st.text(alphabet="ABCDEFGHIJKLMNOPQRSTUVWXYZ-/", max_size=6)


class TestFormat:

    def test_plain_concatenation(self):
        assert format_invoice_number("FAC-", 12, "") == "FAC-12"

    def test_suffix(self):
        assert format_invoice_number("INV-", 7, "/B") == "INV-7/B"

    def test_no_padding(self):
        assert format_invoice_number("FAC-", 1, "") == "FAC-1"

    @pytest.mark.parametrize("number", [0, -1])
    def test_non_positive_numbers_rejected(self, number):
        with pytest.raises(ValueError):
            format_invoice_number("FAC-", number, "")

    def test_allocated_number_display(self):
        assert AllocatedNumber(number=3, prefix="FAC-", suffix="-X").display == "FAC-3-X"


class TestParse:

    def test_parses_known_shape(self):
        assert parse_invoice_number("FAC-12", "FAC-", "") == 12

    def test_other_prefix(self):
        assert parse_invoice_number("INV-12", "FAC-", "") is None

    def test_padded_number_is_not_a_display_form(self):
        assert parse_invoice_number("FAC-012", "FAC-", "") is None

    def test_prefix_is_literal(self):
        assert parse_invoice_number("FACX12", "FAC.", "") is None

    @given(prefix=affixes, suffix=affixes, number=st.integers(min_value=1, max_value=10**9))
    def test_parse_inverts_format(self, prefix, suffix, number):
        display = format_invoice_number(prefix, number, suffix)
        assert parse_invoice_number(display, prefix, suffix) == number


class TestAffixes:

    @pytest.mark.parametrize(
        "prefix, suffix",
        [("FAC-", ""), ("", ""), ("INV-", "/24"), ("A1B", "C")],
    )
    def test_delimited_affixes_accepted(self, prefix, suffix):
        assert affix_error(prefix, suffix) is None

    def test_prefix_ending_in_digit(self):
        assert "prefix" in affix_error("FAC-1", "")

    def test_suffix_starting_with_digit(self):
        assert "suffix" in affix_error("FAC-", "2024")


class TestValueObjects:

    def test_line_total(self):
        assert OrderLineSnapshot("V", qty=3, price_cents=250).line_total_cents == 750

    def test_zero_quantity_rejected(self):
        with pytest.raises(ValueError):
            OrderLineSnapshot("V", qty=0, price_cents=250)

    def test_negative_price_rejected(self):
        with pytest.raises(ValueError):
            OrderLineSnapshot("V", qty=1, price_cents=-1)

    def test_free_line_allowed(self):
        assert OrderLineSnapshot("V", qty=1, price_cents=0).line_total_cents == 0

    @pytest.mark.parametrize(
        "total, per_page, expected",
        [(0, 20, 0), (1, 20, 1), (20, 20, 1), (21, 20, 2), (100, 10, 10)],
    )
    def test_total_pages(self, total, per_page, expected):
        page = InvoicePage(invoices=(), total=total, page=1, per_page=per_page)
        assert page.total_pages == expected
