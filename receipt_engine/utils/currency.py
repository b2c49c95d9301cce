"""
Currency symbol helpers.

The active symbol comes from the caller and can contain regex
metacharacters ("$", "R$", "C$") or non-ASCII text ("₽", "zł", "лв").
It must pass through escape_currency_symbol before it is embedded in
any pattern.
"""

import logging
import re
from typing import Optional

from receipt_engine.models.receipt import CurrencyContext

logger = logging.getLogger(__name__)

# Number token shared by every amount pattern: grouped thousands with an
# optional 1-2 digit fraction, or a plain run of digits with a fraction.
AMOUNT_TOKEN = r'\d{1,3}(?:[.,]\d{3})+(?:[.,]\d{1,2})?|\d+(?:[.,]\d{1,2})?'


def escape_currency_symbol(symbol: Optional[str]) -> Optional[str]:
    """
    Escape a currency symbol for literal use inside a regex.

    Args:
        symbol: Symbol from the caller's CurrencyContext

    Returns:
        Escaped pattern text, or None when the symbol is unusable
        (empty, whitespace only, or containing digits)

    Examples:
        >>> escape_currency_symbol("$")
        '\\\\$'
        >>> escape_currency_symbol("R$")
        'R\\\\$'
        >>> escape_currency_symbol("₽")
        '₽'
    """
    if not symbol or not isinstance(symbol, str):
        return None

    cleaned = symbol.strip()
    if not cleaned or any(ch.isdigit() for ch in cleaned):
        return None

    # Inner whitespace ("C $") may be printed as one or more spaces
    parts = [re.escape(part) for part in cleaned.split()]
    return r'\s*'.join(parts)


def build_symbol_amount_pattern(currency: Optional[CurrencyContext]) -> Optional[re.Pattern]:
    """
    Compile the symbol-anchored amount pattern for one run.

    Matches the amount with the symbol before it ("$ 12.50", "R$12,50") or
    after it ("12,50 €", "100 Kč"). A leading symbol puts the amount in
    group 'amount', a trailing one in group 'amount_after'; exactly one of
    the two is set per match. Returns None when the context has no usable
    symbol, in which case callers fall back to keyword and bare-number
    matching.
    """
    if currency is None:
        return None

    escaped = escape_currency_symbol(currency.symbol)
    if escaped is None:
        logger.debug("Currency symbol %r unusable, symbol patterns disabled", currency.symbol)
        return None

    # Letter symbols ("kr", "CHF") must not be glued to a surrounding word
    leading = r'(?<![A-Za-z])' if currency.symbol.strip()[0].isalpha() else ''
    trailing = r'(?![A-Za-z])' if currency.symbol.strip()[-1].isalpha() else ''

    pattern = (
        rf'{leading}{escaped}{trailing}\s?(?P<amount>{AMOUNT_TOKEN})(?![\d])'
        rf'|(?<![\d.,])(?P<amount_after>{AMOUNT_TOKEN})\s?{leading}{escaped}{trailing}'
    )
    return re.compile(pattern)
