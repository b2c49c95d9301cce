"""
Tests for individual field extractors.

Extractors only propose candidates; ranking is covered in test_scoring.py
and end-to-end selection in test_parser.py.
"""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from datetime import date
from decimal import Decimal

from receipt_engine.models.receipt import CurrencyContext
from receipt_engine.services.extractors import (
    ExtractionHints,
    EXTRACTORS,
    extract_address_candidates,
    extract_cashier_candidates,
    extract_date_candidates,
    extract_payment_method_candidates,
    extract_phone_candidates,
    extract_price_candidates,
    extract_receipt_number_candidates,
    extract_store_candidates,
    extract_tax_candidates,
    extract_title_candidates,
    extract_total_candidates,
    extract_warranty_candidates,
    extract_website_candidates,
    is_meaningful_line,
)
from receipt_engine.services.normalizer import normalize_text
from receipt_engine.utils.candidates import DATE_AMBIGUOUS, DATE_NAMED_MONTH, DATE_UNAMBIGUOUS

USD = CurrencyContext(symbol="$", code="USD", decimal_separator=".")
EUR = CurrencyContext(symbol="€", code="EUR", decimal_separator=",")
TODAY = date(2024, 6, 1)


def run(extractor, text, currency=None, **hints):
    hints.setdefault('today', TODAY)
    return extractor(normalize_text(text), currency, ExtractionHints(**hints))


def values(candidates):
    return [c.value for c in candidates]


class TestAmountExtractors:

    def test_total_keyword_never_matches_subtotal(self):
        candidates = run(extract_total_candidates, "Subtotal: $41.40\nTotal: $45.00", USD)
        assert Decimal("45.00") in values(candidates)
        assert Decimal("41.40") not in values(candidates)

    def test_total_symbol_amount_needs_keyword_line(self):
        assert run(extract_total_candidates, "Coffee $4.50\nMuffin $3.25", USD) == []

    def test_total_keyword_on_previous_line(self):
        candidates = run(extract_total_candidates, "TOTAL\n$45.00", USD)
        assert set(values(candidates)) == {Decimal("45.00")}
        assert all(c.keyword == "total" for c in candidates)

    def test_total_keyword_does_not_skip_words(self):
        assert run(extract_total_candidates, "TOTAL QTY 3", USD) == []

        candidates = run(extract_total_candidates, "TOTAL TIP 5.00", USD)
        assert all(c.pattern_id != 'total_keyword' for c in candidates)

    def test_total_keyword_with_prefixed_dollar_sign(self):
        candidates = run(extract_total_candidates, "Total: US$ 45.00")
        assert [c.value for c in candidates if c.pattern_id == 'total_keyword'] == [Decimal("45.00")]

        brl = CurrencyContext(symbol="R$", code="BRL", decimal_separator=",")
        candidates = run(extract_total_candidates, "Total R$ 12,50", brl)
        assert [c.value for c in candidates if c.pattern_id == 'total_keyword'] == [Decimal("12.50")]

    def test_total_amount_due(self):
        candidates = run(extract_total_candidates, "Amount Due: 18.20")
        assert Decimal("18.20") in values(candidates)

    def test_tax_rate_is_not_the_amount(self):
        candidates = run(extract_tax_candidates, "Sales Tax 8.5% $42.50", USD)
        assert Decimal("42.50") in values(candidates)
        assert Decimal("8.5") not in values(candidates)

    def test_vat_with_comma_decimal(self):
        candidates = run(extract_tax_candidates, "TVA 2,08 €", EUR)
        assert Decimal("2.08") in values(candidates)

    def test_price_bare_number(self):
        candidates = run(extract_price_candidates, "12.50")
        assert values(candidates) == [Decimal("12.50")]
        assert candidates[0].pattern_id == "bare_number"

    def test_price_ignores_dates_and_percentages(self):
        candidates = run(extract_price_candidates, "03.04.2024\nDiscount 15.5%")
        assert candidates == []

    def test_thousands_separator(self):
        candidates = run(extract_total_candidates, "Total: $1,234.56", USD)
        assert Decimal("1234.56") in values(candidates)

    def test_symbol_with_regex_metacharacters(self):
        brl = CurrencyContext(symbol="R$", code="BRL", decimal_separator=",")
        candidates = run(extract_total_candidates, "Total R$ 12,50", brl)
        assert values(candidates)
        assert set(values(candidates)) == {Decimal("12.50")}

    def test_malformed_currency_still_uses_keywords(self):
        broken = CurrencyContext(symbol="", code="USD")
        candidates = run(extract_total_candidates, "Total: 45.00", broken)
        assert Decimal("45.00") in values(candidates)


class TestDateExtractor:

    def test_named_month_formats(self):
        for text in ("March 4, 2024", "4 Mar 2024", "Purchased on 4th March 2024", "04-Mar-24"):
            candidates = run(extract_date_candidates, text)
            assert values(candidates) == [date(2024, 3, 4)], text
            assert candidates[0].family == DATE_NAMED_MONTH

    def test_iso_date(self):
        candidates = run(extract_date_candidates, "2024-03-15 10:22")
        assert values(candidates) == [date(2024, 3, 15)]
        assert candidates[0].family == DATE_UNAMBIGUOUS

    def test_unambiguous_numeric_date(self):
        candidates = run(extract_date_candidates, "Date: 03/15/2024")
        assert values(candidates) == [date(2024, 3, 15)]
        assert candidates[0].family == DATE_UNAMBIGUOUS
        assert candidates[0].keyword == "date"

    def test_ambiguous_numeric_date_keeps_both_readings(self):
        candidates = run(extract_date_candidates, "03/04/2024")
        assert values(candidates) == [date(2024, 3, 4), date(2024, 4, 3)]
        assert all(c.family == DATE_AMBIGUOUS for c in candidates)

    def test_comma_decimal_context_prefers_day_first(self):
        candidates = run(extract_date_candidates, "03/04/2024", EUR)
        assert values(candidates) == [date(2024, 4, 3), date(2024, 3, 4)]
        assert candidates[0].reading == "DMY"

    def test_two_digit_year(self):
        assert values(run(extract_date_candidates, "15/03/24")) == [date(2024, 3, 15)]

    def test_invalid_and_implausible_dates_dropped(self):
        assert run(extract_date_candidates, "02/30/2024") == []
        assert run(extract_date_candidates, "01/15/1990") == []
        assert run(extract_date_candidates, "12/31/2030") == []


class TestStoreAndTitle:

    def test_store_skips_document_label(self):
        candidates = run(extract_store_candidates, "RECEIPT\nCOSTCO WHOLESALE\n123 Main St")
        assert values(candidates) == ["COSTCO WHOLESALE"]

    def test_brand_keyword_candidate(self):
        text = "Welcome!\nThanks for visiting\nTARGET STORE 0421"
        candidates = run(extract_store_candidates, text, brand_keywords=("target",))
        brand = [c for c in candidates if c.pattern_id == "store_brand_keyword"]
        assert values(brand) == ["TARGET STORE 0421"]
        assert brand[0].weight > 0.5

    def test_labeled_store(self):
        candidates = run(extract_store_candidates, "Merchant: Corner Books")
        assert "Corner Books" in values(candidates)

    def test_meaningful_line(self):
        assert is_meaningful_line("BEST BUY #1234")
        assert not is_meaningful_line("RECEIPT")
        assert not is_meaningful_line("12.99")
        assert not is_meaningful_line("Tel: 555-123-4567")
        assert not is_meaningful_line("March 4, 2024")

    def test_title_from_category_keyword_strips_price(self):
        text = 'BEST BUY\nSamsung 55" QLED TV 499.99\nTotal 499.99'
        candidates = run(extract_title_candidates, text, category_keywords=("tv",))
        assert candidates[0].value == 'Samsung 55" QLED TV'
        assert candidates[0].keyword == "tv"

    def test_title_fallback_skips_store_line(self):
        candidates = run(extract_title_candidates, "CORNER BOOKS\nThe Hobbit Hardcover\n12.99")
        assert values(candidates) == ["The Hobbit Hardcover"]

    def test_title_labeled(self):
        candidates = run(extract_title_candidates, "Product: Dyson V11 Vacuum")
        assert "Dyson V11 Vacuum" in values(candidates)


class TestIdentifierExtractors:

    def test_receipt_number_variants(self):
        text = "Receipt #: 004512\nTransaction ID: TX-99812\nInvoice #INV-2024-001"
        assert values(run(extract_receipt_number_candidates, text)) == ["004512", "TX-99812", "INV-2024-001"]

    def test_receipt_label_without_number(self):
        assert run(extract_receipt_number_candidates, "RECEIPT COPY") == []

    def test_cashier(self):
        assert values(run(extract_cashier_candidates, "Served by: John D")) == ["John D"]
        assert values(run(extract_cashier_candidates, "Cashier: Maria")) == ["Maria"]

    def test_cashier_is_not_cash_payment(self):
        assert run(extract_payment_method_candidates, "Cashier: Maria") == []


class TestContactExtractors:

    def test_phone_with_keyword(self):
        candidates = run(extract_phone_candidates, "Tel: (415) 555-0199")
        assert values(candidates) == ["(415) 555-0199"]
        assert candidates[0].keyword == "tel"

    def test_phone_excludes_money_and_dates(self):
        assert run(extract_phone_candidates, "12.99 14.99 3.50") == []
        assert run(extract_phone_candidates, "2024-03-04 14:35") == []

    def test_phone_excludes_identifier_lines(self):
        assert run(extract_phone_candidates, "Order # 5551234567") == []

    def test_website_forms(self):
        text = "www.bestbuy.com\nVisit https://shop.example.com/help\nexample.co.uk"
        assert values(run(extract_website_candidates, text)) == [
            "https://shop.example.com/help", "www.bestbuy.com", "example.co.uk",
        ]

    def test_email_is_not_a_website(self):
        assert run(extract_website_candidates, "Contact: help@shop.com") == []

    def test_street_address_joined_with_postal_line(self):
        text = "BEST BUY\n1234 Market St\nSan Francisco, CA 94103\nTel: 415-555-0199"
        candidates = run(extract_address_candidates, text)
        assert candidates[0].value == "1234 Market St San Francisco, CA 94103"

    def test_european_address(self):
        candidates = run(extract_address_candidates, "CAFE DE FLORE\nRue de Rivoli 99\n75001 Paris")
        assert candidates[0].value == "Rue de Rivoli 99 75001 Paris"

    def test_labeled_address(self):
        candidates = run(extract_address_candidates, "Address: 12 High Street, Leeds")
        assert candidates[0].value == "12 High Street, Leeds"
        assert candidates[0].pattern_id == "address_labeled"


class TestWarrantyAndPayment:

    def test_warranty_with_continuation(self):
        text = "LIMITED WARRANTY 1 YEAR\nfrom date of purchase\nThank you"
        candidates = run(extract_warranty_candidates, text)
        assert values(candidates) == ["LIMITED WARRANTY 1 YEAR from date of purchase"]

    def test_warranty_without_continuation(self):
        text = "Warranty: 2 years parts.\nCustomer Copy"
        assert values(run(extract_warranty_candidates, text)) == ["Warranty: 2 years parts."]

    def test_guarantee_is_weaker(self):
        candidates = run(extract_warranty_candidates, "30 day money back guarantee")
        assert candidates[0].pattern_id == "guarantee_line"
        assert candidates[0].weight < 0.5

    def test_card_brand_with_masked_number(self):
        candidates = run(extract_payment_method_candidates, "VISA ************4821")
        assert candidates[0].value == "VISA"
        assert candidates[0].pattern_id == "payment_card_masked"

    def test_wallet_and_label(self):
        candidates = run(extract_payment_method_candidates, "Paid with: Apple Pay")
        assert "Apple Pay" in values(candidates)

    def test_cash(self):
        assert values(run(extract_payment_method_candidates, "CASH 50.00")) == ["CASH"]


class TestExtractorContract:

    def test_every_extractor_handles_empty_text(self):
        for field_name, extractor in EXTRACTORS.items():
            assert run(extractor, "") == [], field_name

    def test_every_extractor_handles_garbage(self):
        for field_name, extractor in EXTRACTORS.items():
            assert isinstance(run(extractor, "%%% ### @@@\n\x07\x08", USD), list), field_name
