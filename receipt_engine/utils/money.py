"""
Shared money parsing utilities with multi-locale support.

Handles various number formats:
- US: 1,234.56
- European: 1.234,56
- Plain: 1234, 12.5, 12,50
"""

from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Optional
import re

from receipt_engine.models.receipt import CurrencyContext

# Larger values on a receipt are almost always IDs or phone numbers
MAX_AMOUNT = Decimal('100000000')


class MoneyFormat(Enum):
    """Money format locale hints."""
    US = "US"  # 1,234.56
    EUROPEAN = "EUROPEAN"  # 1.234,56
    AUTO = "AUTO"  # Auto-detect based on patterns


def format_hint_for(currency: Optional[CurrencyContext]) -> MoneyFormat:
    """Map the caller's decimal separator onto a MoneyFormat hint."""
    if currency is None or currency.decimal_separator is None:
        return MoneyFormat.AUTO
    if currency.decimal_separator == ',':
        return MoneyFormat.EUROPEAN
    return MoneyFormat.US


def parse_money(
    amount_str: str,
    format_hint: Optional[MoneyFormat] = None,
) -> Optional[Decimal]:
    """
    Parse an amount token with multi-locale support.

    Args:
        amount_str: Amount text without currency symbol (e.g., "1,234.56")
        format_hint: Optional locale hint (US, EUROPEAN, AUTO)

    Returns:
        Non-negative Decimal, or None if the token is not a well-formed amount

    Examples:
        >>> parse_money("1,234.56")
        Decimal('1234.56')
        >>> parse_money("1.234,56", format_hint=MoneyFormat.EUROPEAN)
        Decimal('1234.56')
        >>> parse_money("1.234") is None
        True
    """
    if not amount_str or not isinstance(amount_str, str):
        return None

    cleaned = amount_str.strip().replace(' ', '')
    if not cleaned or cleaned.startswith('-'):
        return None

    detected_format = format_hint or MoneyFormat.AUTO
    if detected_format == MoneyFormat.AUTO:
        detected_format = _detect_money_format(cleaned)

    decimal_sep = ',' if detected_format == MoneyFormat.EUROPEAN else '.'

    try:
        result = _parse_with_separator(cleaned, decimal_sep)
    except (InvalidOperation, ValueError):
        return None

    if result is None or not result.is_finite() or result < 0:
        return None

    if result > MAX_AMOUNT:
        return None

    return result


def _detect_money_format(amount_str: str) -> MoneyFormat:
    """
    Auto-detect money format based on separator patterns.

    Heuristics:
    - If ends with ,XX or ,X (comma + 1-2 digits), assume European
    - If dot comes before the last comma, assume European
    - Otherwise assume US
    """
    if re.search(r',\d{1,2}$', amount_str):
        return MoneyFormat.EUROPEAN

    if '.' in amount_str and ',' in amount_str:
        if amount_str.index('.') < amount_str.rindex(','):
            return MoneyFormat.EUROPEAN

    return MoneyFormat.US


def _parse_with_separator(amount_str: str, decimal_sep: str) -> Optional[Decimal]:
    """
    Parse with a known decimal separator; the other one is the thousands mark.

    Thousands groups must be exactly three digits and the fraction at most
    two, so "1.234" read as US and "12,50" read as US are both rejected
    rather than misread.
    """
    thousands_sep = ',' if decimal_sep == '.' else '.'

    if amount_str.count(decimal_sep) > 1:
        return None

    whole, _, fraction = amount_str.partition(decimal_sep)
    if fraction and (len(fraction) > 2 or not fraction.isdigit()):
        return None

    groups = whole.split(thousands_sep)
    if len(groups) > 1:
        if not 1 <= len(groups[0]) <= 3:
            return None
        if any(len(group) != 3 for group in groups[1:]):
            return None

    digits = ''.join(groups)
    if not digits.isdigit():
        return None

    if fraction:
        return Decimal(f"{digits}.{fraction}")
    return Decimal(digits)
