"""
Tests for currency symbol escaping and multi-locale money parsing.
"""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

import re
from decimal import Decimal

import pytest

from receipt_engine.models.receipt import CurrencyContext
from receipt_engine.utils.currency import (
    build_symbol_amount_pattern,
    escape_currency_symbol,
)
from receipt_engine.utils.money import MoneyFormat, format_hint_for, parse_money


class TestEscapeCurrencySymbol:
    """Symbols from the caller must be literal inside patterns."""

    @pytest.mark.parametrize("symbol", ["$", "₽", "R$"])
    def test_escaped_symbol_matches_itself_literally(self, symbol):
        escaped = escape_currency_symbol(symbol)
        assert escaped is not None
        assert re.fullmatch(escaped, symbol)

    def test_dollar_is_escaped(self):
        assert escape_currency_symbol("$") == r"\$"
        assert escape_currency_symbol("R$") == r"R\$"

    def test_dollar_does_not_act_as_anchor(self):
        pattern = re.compile(escape_currency_symbol("$") + r"\d+")
        assert pattern.search("Total $45")
        assert not pattern.search("Total 45")

    def test_non_ascii_symbol_passes_through(self):
        assert escape_currency_symbol("₽") == "₽"

    @pytest.mark.parametrize("symbol", ["", "   ", "1$", None])
    def test_unusable_symbols(self, symbol):
        assert escape_currency_symbol(symbol) is None

    def test_malformed_context_disables_symbol_pattern(self):
        currency = CurrencyContext(symbol="  ", code="USD")
        assert build_symbol_amount_pattern(currency) is None
        assert build_symbol_amount_pattern(None) is None


class TestSymbolAmountPattern:

    def test_symbol_before_amount(self):
        pattern = build_symbol_amount_pattern(CurrencyContext(symbol="$", code="USD"))
        match = pattern.search("Total: $1,234.56")
        assert match.group('amount') == "1,234.56"

    def test_symbol_after_amount(self):
        pattern = build_symbol_amount_pattern(CurrencyContext(symbol="₽", code="RUB"))
        match = pattern.search("Итого 250,00 ₽")
        assert match.group('amount_after') == "250,00"
        assert match.group('amount') is None

    def test_multi_char_symbol(self):
        pattern = build_symbol_amount_pattern(CurrencyContext(symbol="R$", code="BRL"))
        match = pattern.search("Total R$ 12,50")
        assert match.group('amount') == "12,50"

    def test_letter_symbol_not_glued_to_word(self):
        pattern = build_symbol_amount_pattern(CurrencyContext(symbol="kr", code="SEK"))
        assert pattern.search("Summa 99,00 kr")
        assert not pattern.search("Bookkraft 12")


class TestParseMoney:

    def test_us_thousands(self):
        assert parse_money("1,234.56") == Decimal("1234.56")

    def test_european_thousands(self):
        assert parse_money("1.234,56") == Decimal("1234.56")
        assert parse_money("1.234,56", format_hint=MoneyFormat.EUROPEAN) == Decimal("1234.56")

    def test_comma_decimal_autodetected(self):
        assert parse_money("12,50") == Decimal("12.50")

    def test_plain_numbers(self):
        assert parse_money("45") == Decimal("45")
        assert parse_money("12.5") == Decimal("12.5")

    def test_ambiguous_grouping_rejected_with_wrong_hint(self):
        assert parse_money("12,50", format_hint=MoneyFormat.US) is None
        assert parse_money("1,23,4.00") is None

    @pytest.mark.parametrize("value", ["", "abc", "-5.00", "1.2.3", "12.345", None])
    def test_invalid_amounts(self, value):
        # "12.345" has a three digit fraction and no thousands meaning in US format
        assert parse_money(value, format_hint=MoneyFormat.US) is None

    def test_implausibly_large_amount_rejected(self):
        assert parse_money("999999999999.00") is None

    def test_format_hint_for_context(self):
        assert format_hint_for(None) == MoneyFormat.AUTO
        assert format_hint_for(CurrencyContext(symbol="€", decimal_separator=",")) == MoneyFormat.EUROPEAN
        assert format_hint_for(CurrencyContext(symbol="$", decimal_separator=".")) == MoneyFormat.US

    def test_unknown_separator_treated_as_absent(self):
        assert CurrencyContext(symbol="$", decimal_separator=";").decimal_separator is None
