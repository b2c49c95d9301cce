"""
Field extractors for receipt text.

Every extractor is a pure function
    (NormalizedText, CurrencyContext, ExtractionHints) -> list[Candidate]
that reads only its arguments and returns an empty list when nothing
matches. Pattern tables are module-level and compiled once.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Callable, List, Optional

from receipt_engine.models.receipt import CurrencyContext
from receipt_engine.services.normalizer import NormalizedText
from receipt_engine.utils.candidates import (
    Candidate,
    DATE_AMBIGUOUS,
    DATE_NAMED_MONTH,
    DATE_UNAMBIGUOUS,
    FAMILY_FALLBACK,
    FAMILY_LABELED,
    FAMILY_SHAPED,
    create_amount_candidate,
    create_date_candidate,
    create_text_candidate,
    find_keyword_before,
)
from receipt_engine.utils.currency import AMOUNT_TOKEN, build_symbol_amount_pattern
from receipt_engine.utils.money import format_hint_for, parse_money

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PatternSpec:
    """A named regex pattern with example and notes for documentation."""
    name: str
    pattern: str
    example: str
    notes: Optional[str] = None
    weight: float = 0.5
    family: int = FAMILY_LABELED
    flags: int = re.IGNORECASE
    compiled: re.Pattern = field(default=None, init=False, compare=False, repr=False)

    def __post_init__(self):
        object.__setattr__(self, 'compiled', re.compile(self.pattern, self.flags))


@dataclass(frozen=True)
class ExtractionHints:
    """Optional caller context for one run. Read-only."""
    brand_keywords: tuple[str, ...] = ()
    category_keywords: tuple[str, ...] = ()
    today: date = field(default_factory=date.today)
    window_years: int = 20


Extractor = Callable[[NormalizedText, Optional[CurrencyContext], ExtractionHints], List[Candidate]]


# ---------------------------------------------------------------------------
# Shared shapes
# ---------------------------------------------------------------------------

# Amount that is not part of a longer number, date, time or percentage
_AMOUNT_TAIL = r'(?![\d%]|[.,:/-]\d|\s?%)'

BARE_AMOUNT_RE = re.compile(
    r'(?<![\w.,:/-])(?P<amount>\d{1,3}(?:[.,]\d{3})+[.,]\d{1,2}|\d+[.,]\d{1,2})' + _AMOUNT_TAIL
)

# Symbols commonly printed on receipts; used only to spot price-shaped lines
_ANY_SYMBOL_AMOUNT_RE = re.compile(r'[$€£¥₽₹₩₺₪]\s?\d')

_MONTH_NAMES = {
    'jan': 1, 'feb': 2, 'mar': 3, 'apr': 4, 'may': 5, 'jun': 6,
    'jul': 7, 'aug': 8, 'sep': 9, 'oct': 10, 'nov': 11, 'dec': 12,
}
MONTH_RE = (
    r'(?<![a-z])(?:jan(?:uary)?|feb(?:ruary)?|mar(?:ch)?|apr(?:il)?|may|june?|july?'
    r'|aug(?:ust)?|sep(?:t(?:ember)?)?|oct(?:ober)?|nov(?:ember)?|dec(?:ember)?)(?![a-z])'
)

PHONE_RE = re.compile(r'(?<![\w.,/])(?P<value>\+?\(?\d[\d ().-]{5,20}\d\)?)(?![\w]|[.,]\d)')

# Line prefixes that mark a line as belonging to some other field
FIELD_LABEL_RE = re.compile(
    r'^(?:sub\s*-?\s*total|total|grand\s+total|tax|vat|gst|hst|pst|amount|balance|change'
    r'|date|time|cashier|clerk|server|receipt|rcpt|transaction|trans|order|invoice|tel|phone|fax'
    r'|visa|mastercard|amex|debit|credit|cash|card|auth|ref|qty|item\s*#|sku)\b|^(?:www\.|https?://)',
    re.IGNORECASE
)

DOCUMENT_LABEL_RE = re.compile(
    r'^(?:sales\s+|tax\s+|customer\s+|store\s+|merchant\s+)?'
    r'(?:receipt|invoice|bill|order|copy|duplicate|original)(?:\s+copy)?\W*$'
    r'|^thank(?:s|\s+you)\b|^welcome\W*$|^\W*$',
    re.IGNORECASE
)


def _line_candidates_context(norm: NormalizedText, offset: int) -> tuple[int, int]:
    return norm.line_index(offset), norm.line_count


def _has_amount(line: str) -> bool:
    return bool(BARE_AMOUNT_RE.search(line) or _ANY_SYMBOL_AMOUNT_RE.search(line))


def _has_date(line: str) -> bool:
    return any(spec.compiled.search(line) for spec in DATE_PATTERNS)


def _has_phone(line: str) -> bool:
    for match in PHONE_RE.finditer(line):
        if 7 <= _digit_count(match.group('value')) <= 15:
            return True
    return False


def _digit_count(value: str) -> int:
    return sum(ch.isdigit() for ch in value)


def is_meaningful_line(line: str) -> bool:
    """
    A line that can name a store or product.

    Excludes price, date and phone shaped lines, purely numeric lines,
    document labels ("RECEIPT", "Thank you") and other fields' labels.
    """
    if len(line) < 2 or sum(ch.isalpha() for ch in line) < 2:
        return False
    if DOCUMENT_LABEL_RE.search(line) or FIELD_LABEL_RE.match(line):
        return False
    if _has_amount(line) or _has_date(line) or _has_phone(line):
        return False
    if _is_address_line(line):
        return False
    return True


def _keyword_regex(keywords) -> Optional[re.Pattern]:
    cleaned = [kw.strip() for kw in keywords if kw and kw.strip()]
    if not cleaned:
        return None
    # Longest first so "best buy" wins over "best"
    cleaned.sort(key=len, reverse=True)
    alternation = '|'.join(r'\s+'.join(re.escape(part) for part in kw.split()) for kw in cleaned)
    return re.compile(rf'(?<!\w)(?:{alternation})(?!\w)', re.IGNORECASE)


# ---------------------------------------------------------------------------
# Price / tax / total
# ---------------------------------------------------------------------------

# Separator between keyword and number: optional colon/hash, optional
# currency symbol ("$", "€", "R$", "US$"). Words are never skipped, so
# "TOTAL QTY 3" is not a total.
_KEYWORD_GAP = r'[^\S\n]*[:#]?[^\S\n]*(?:[a-z]{0,2}[^\w\s:#%]{1,2}[^\S\n]?)?'

_TOTAL_KEYWORDS = (
    r'grand\s+total|total\s+due|amount\s+due|balance\s+due|amount\s+paid|total\s+amount'
    r'|(?<![a-z])(?<!sub\s)(?<!sub-)total'
)
_TAX_KEYWORDS = (
    r'(?<![a-z])(?:sales\s+tax|tax|vat|gst|hst|pst|iva|mwst|tva)(?![a-z])'
)
_PRICE_KEYWORDS = (
    r'sub\s*-?\s*total|(?<![a-z])(?:unit\s+)?price(?![a-z])|(?<![a-z])amount(?![a-z])|(?<![a-z])total'
)

TOTAL_KEYWORD_RE = re.compile(rf'(?:{_TOTAL_KEYWORDS})(?![a-z])', re.IGNORECASE)
TAX_KEYWORD_RE = re.compile(_TAX_KEYWORDS, re.IGNORECASE)
PRICE_KEYWORD_RE = re.compile(rf'(?:{_PRICE_KEYWORDS})(?![a-z])', re.IGNORECASE)

TOTAL_PATTERNS = [
    PatternSpec(
        name='total_keyword',
        pattern=rf'(?P<keyword>{_TOTAL_KEYWORDS})(?![a-z]){_KEYWORD_GAP}(?P<amount>{AMOUNT_TOKEN}){_AMOUNT_TAIL}',
        example='Total: $45.00',
        notes='Total / Amount Due / Balance Due; never Subtotal',
        weight=0.45,
    ),
]

TAX_PATTERNS = [
    PatternSpec(
        name='tax_keyword',
        pattern=rf'(?P<keyword>{_TAX_KEYWORDS}){_KEYWORD_GAP}(?P<amount>{AMOUNT_TOKEN}){_AMOUNT_TAIL}',
        example='Tax: $3.60',
        weight=0.45,
    ),
    PatternSpec(
        name='tax_rate_keyword',
        pattern=(
            rf'(?P<keyword>{_TAX_KEYWORDS})[^\S\n]*\(?\d{{1,2}}(?:[.,]\d{{1,3}})?[^\S\n]?%\)?'
            rf'{_KEYWORD_GAP}(?P<amount>{AMOUNT_TOKEN}){_AMOUNT_TAIL}'
        ),
        example='VAT 20% 4.17',
        notes='Rate printed between keyword and amount',
        weight=0.45,
    ),
]

PRICE_PATTERNS = [
    PatternSpec(
        name='price_subtotal',
        pattern=rf'(?P<keyword>sub\s*-?\s*total){_KEYWORD_GAP}(?P<amount>{AMOUNT_TOKEN}){_AMOUNT_TAIL}',
        example='Subtotal: $41.40',
        weight=0.5,
    ),
    PatternSpec(
        name='price_label',
        pattern=(
            rf'(?P<keyword>(?<![a-z])(?:unit\s+)?price|(?<![a-z])amount)(?![a-z])'
            rf'{_KEYWORD_GAP}(?P<amount>{AMOUNT_TOKEN}){_AMOUNT_TAIL}'
        ),
        example='Price: 499.99',
        weight=0.45,
    ),
    PatternSpec(
        name='price_total',
        pattern=rf'(?P<keyword>{_TOTAL_KEYWORDS})(?![a-z]){_KEYWORD_GAP}(?P<amount>{AMOUNT_TOKEN}){_AMOUNT_TAIL}',
        example='Total 45.00',
        notes='Single-item receipts: the total is the price',
        weight=0.35,
    ),
]

SYMBOL_WEIGHT = 0.3
BARE_WEIGHT = {
    'total_amount': 0.1,
    'tax_amount': 0.1,
    'price': 0.15,
}


def _keyword_for_line(
    norm: NormalizedText,
    start: int,
    keyword_re: re.Pattern
) -> tuple[Optional[str], int]:
    """
    Keyword anchoring an amount at `start`.

    Looks back along the same line first; failing that, accepts a
    keyword-only line directly above ("Total" / "$45.00").
    """
    keyword, distance = find_keyword_before(norm.text, start, keyword_re, window=80)
    if keyword is not None:
        return keyword, distance

    index = norm.line_index(start)
    if index == 0:
        return None, distance

    previous = norm.lines[index - 1]
    match = keyword_re.search(previous)
    if match and not re.search(r'\d', previous):
        line_start = norm.line_offsets[index]
        return match.group(0).lower(), (len(previous) - match.end()) + 1 + (start - line_start)

    return None, distance


def _amount_candidates(
    norm: NormalizedText,
    currency: Optional[CurrencyContext],
    field_name: str,
    patterns: List[PatternSpec],
    keyword_re: re.Pattern,
    require_keyword: bool,
) -> List[Candidate]:
    """
    Run the three amount families for one field.

    (a) currency-symbol anchored, (b) keyword anchored, (c) bare decimals.
    With require_keyword, families (a) and (c) only count when a field
    keyword anchors the line.
    """
    candidates: List[Candidate] = []
    format_hint = format_hint_for(currency)
    text = norm.text

    # (b) keyword anchored
    for spec in patterns:
        for match in spec.compiled.finditer(text):
            amount = parse_money(match.group('amount'), format_hint=format_hint)
            if amount is None:
                continue
            line_position, line_count = _line_candidates_context(norm, match.start('amount'))
            candidates.append(create_amount_candidate(
                field=field_name,
                value=amount,
                pattern_id=spec.name,
                match_span=match.span('amount'),
                raw_match=match.group('amount'),
                weight=spec.weight,
                family=FAMILY_LABELED,
                line_position=line_position,
                line_count=line_count,
                keyword=match.group('keyword').lower(),
                keyword_distance=match.start('amount') - match.end('keyword'),
            ))

    # (a) currency-symbol anchored
    symbol_re = build_symbol_amount_pattern(currency)
    if symbol_re is not None:
        for match in symbol_re.finditer(text):
            group = 'amount' if match.group('amount') is not None else 'amount_after'
            candidate = _loose_amount_candidate(
                norm, format_hint, field_name, match, group, 'currency_symbol',
                SYMBOL_WEIGHT, FAMILY_SHAPED, keyword_re, require_keyword,
            )
            if candidate is not None:
                candidates.append(candidate)

    # (c) bare decimal numbers
    for match in BARE_AMOUNT_RE.finditer(text):
        candidate = _loose_amount_candidate(
            norm, format_hint, field_name, match, 'amount', 'bare_number',
            BARE_WEIGHT[field_name], FAMILY_FALLBACK, keyword_re, require_keyword,
        )
        if candidate is not None:
            candidates.append(candidate)

    return candidates


def _loose_amount_candidate(
    norm: NormalizedText,
    format_hint,
    field_name: str,
    match: re.Match,
    group: str,
    pattern_id: str,
    weight: float,
    family: int,
    keyword_re: re.Pattern,
    require_keyword: bool,
) -> Optional[Candidate]:
    amount = parse_money(match.group(group), format_hint=format_hint)
    if amount is None:
        return None

    start = match.start(group)
    keyword, distance = _keyword_for_line(norm, start, keyword_re)
    if require_keyword and keyword is None:
        return None

    line_position, line_count = _line_candidates_context(norm, start)
    return create_amount_candidate(
        field=field_name,
        value=amount,
        pattern_id=pattern_id,
        match_span=match.span(group),
        raw_match=match.group(group),
        weight=weight,
        family=family,
        line_position=line_position,
        line_count=line_count,
        keyword=keyword,
        keyword_distance=distance,
    )


def extract_total_candidates(norm, currency, hints) -> List[Candidate]:
    """Total / Amount Due candidates; symbol and bare numbers need a total keyword."""
    return _amount_candidates(norm, currency, 'total_amount', TOTAL_PATTERNS, TOTAL_KEYWORD_RE, True)


def extract_tax_candidates(norm, currency, hints) -> List[Candidate]:
    """Tax / VAT / GST candidates; symbol and bare numbers need a tax keyword."""
    return _amount_candidates(norm, currency, 'tax_amount', TAX_PATTERNS, TAX_KEYWORD_RE, True)


def extract_price_candidates(norm, currency, hints) -> List[Candidate]:
    """Purchase price candidates; any amount qualifies, keywords raise the weight."""
    return _amount_candidates(norm, currency, 'price', PRICE_PATTERNS, PRICE_KEYWORD_RE, False)


# ---------------------------------------------------------------------------
# Purchase date
# ---------------------------------------------------------------------------

DATE_KEYWORD_RE = re.compile(
    r'purchase\s+date|date\s+of\s+purchase|transaction\s+date|sale\s+date|date|purchased|issued|sold\s+on',
    re.IGNORECASE
)

DATE_PATTERNS = [
    PatternSpec(
        name='date_month_day_year',
        pattern=rf'(?P<month>{MONTH_RE})\.?[^\S\n]+(?P<day>\d{{1,2}})(?:st|nd|rd|th)?,?[^\S\n]+(?P<year>\d{{4}})(?!\d)',
        example='March 4, 2024',
        weight=0.7,
        family=DATE_NAMED_MONTH,
    ),
    PatternSpec(
        name='date_day_month_year',
        pattern=(
            rf'(?<!\d)(?P<day>\d{{1,2}})(?:st|nd|rd|th)?(?:[^\S\n]+|-)(?:of[^\S\n]+)?'
            rf'(?P<month>{MONTH_RE})\.?,?(?:[^\S\n]+|-)(?P<year>\d{{4}}|\d{{2}}(?=\b))(?!\d)'
        ),
        example='4 Mar 2024, 04-Mar-24',
        weight=0.7,
        family=DATE_NAMED_MONTH,
    ),
    PatternSpec(
        name='date_iso',
        pattern=r'(?<![\d.,/-])(?P<year>\d{4})(?P<sep>[-/.])(?P<month>\d{1,2})(?P=sep)(?P<day>\d{1,2})(?![\d]|[.,/-]\d)',
        example='2024-03-04',
        weight=0.5,
        family=DATE_UNAMBIGUOUS,
    ),
    PatternSpec(
        name='date_numeric',
        pattern=r'(?<![\d.,/-])(?P<first>\d{1,2})(?P<sep>[-/.])(?P<second>\d{1,2})(?P=sep)(?P<year>\d{4}|\d{2})(?![\d]|[.,/-]\d)',
        example='03/04/2024, 13.04.24',
        notes='D/M/Y or M/D/Y; both readings kept when both are valid',
        weight=0.5,
        family=DATE_UNAMBIGUOUS,
    ),
]

AMBIGUOUS_DATE_WEIGHT = 0.2


def _expand_year(year: str, today: date) -> int:
    value = int(year)
    if len(year) == 2:
        value += 2000
        if value > today.year + 1:
            value -= 100
    return value


def _date_window(hints: ExtractionHints) -> tuple[date, date]:
    today = hints.today
    try:
        earliest = today.replace(year=today.year - hints.window_years)
    except ValueError:
        # Feb 29 with a non-leap target year
        earliest = today.replace(year=today.year - hints.window_years, day=28)
    return earliest, today + timedelta(days=1)


def _make_date(year: int, month: int, day: int, window: tuple[date, date]) -> Optional[date]:
    try:
        value = date(year, month, day)
    except ValueError:
        return None
    if not window[0] <= value <= window[1]:
        return None
    return value


def _numeric_readings(first: int, second: int, prefer_day_first: bool) -> list[tuple[str, int, int]]:
    """(reading, month, day) pairs in preference order."""
    mdy = ('MDY', first, second)
    dmy = ('DMY', second, first)
    return [dmy, mdy] if prefer_day_first else [mdy, dmy]


def extract_date_candidates(norm, currency, hints) -> List[Candidate]:
    """
    Purchase date candidates from named-month, ISO and numeric formats.

    Numeric dates where both M/D and D/M readings are valid yield two
    ambiguous candidates; the preferred reading is produced first.
    """
    candidates: List[Candidate] = []
    window = _date_window(hints)
    prefer_day_first = currency is not None and currency.decimal_separator == ','
    text = norm.text

    for spec in DATE_PATTERNS:
        for match in spec.compiled.finditer(text):
            line_position, line_count = _line_candidates_context(norm, match.start())
            year = _expand_year(match.group('year'), hints.today)

            if spec.family == DATE_NAMED_MONTH:
                month = _MONTH_NAMES[match.group('month')[:3].lower()]
                found = [(None, _make_date(year, month, int(match.group('day')), window))]
            elif spec.name == 'date_iso':
                found = [(None, _make_date(year, int(match.group('month')), int(match.group('day')), window))]
            else:
                first, second = int(match.group('first')), int(match.group('second'))
                found = []
                for reading, month, day in _numeric_readings(first, second, prefer_day_first):
                    value = _make_date(year, month, day, window)
                    if value is not None and value not in [v for _, v in found]:
                        found.append((reading, value))

            found = [(reading, value) for reading, value in found if value is not None]
            if not found:
                continue

            ambiguous = len(found) > 1
            for reading, value in found:
                candidates.append(create_date_candidate(
                    value=value,
                    pattern_id=f"{spec.name}_{reading.lower()}" if reading else spec.name,
                    match_span=match.span(),
                    raw_match=match.group(0),
                    weight=AMBIGUOUS_DATE_WEIGHT if ambiguous else spec.weight,
                    kind=DATE_AMBIGUOUS if ambiguous else spec.family,
                    line_position=line_position,
                    line_count=line_count,
                    text=text,
                    keyword_re=DATE_KEYWORD_RE,
                    reading=reading,
                ))

    return candidates


# ---------------------------------------------------------------------------
# Store and title
# ---------------------------------------------------------------------------

# The store name is expected within the receipt header
STORE_HEADER_LINES = 8

STORE_LABEL_SPEC = PatternSpec(
    name='store_labeled',
    pattern=r'^(?P<keyword>store|shop|merchant|retailer|vendor|seller|sold\s+by|purchased\s+at|bought\s+at)\s*:\s*(?P<value>\S.{1,60})$',
    example='Merchant: Best Buy #1234',
    weight=0.6,
)

TITLE_LABEL_SPEC = PatternSpec(
    name='title_labeled',
    pattern=r'^(?P<keyword>item|product|description|desc|article|model|service)\s*:\s*(?P<value>\S.{2,80})$',
    example='Product: Samsung 55" QLED TV',
    weight=0.6,
)

_TRAILING_AMOUNT_RE = re.compile(r'[^\S\n]+[^\w\s]{0,3}[^\S\n]?\d[\d.,]*[.,]\d{1,2}[^\S\n]*[A-Z]{0,3}$')


def _strip_trailing_amount(line: str) -> str:
    return _TRAILING_AMOUNT_RE.sub('', line).strip()


def _labeled_candidates(norm: NormalizedText, spec: PatternSpec, field_name: str) -> List[Candidate]:
    candidates = []
    for index, line in enumerate(norm.lines):
        match = spec.compiled.match(line)
        if not match:
            continue
        start = norm.line_offsets[index] + match.start('value')
        value = match.group('value')
        candidates.append(create_text_candidate(
            field=field_name,
            value=value,
            pattern_id=spec.name,
            match_span=(start, start + len(value)),
            weight=spec.weight,
            family=FAMILY_LABELED,
            line_position=index,
            line_count=norm.line_count,
            keyword=match.group('keyword'),
            keyword_distance=match.start('value') - match.end('keyword'),
        ))
    return candidates


def _first_meaningful_line(norm: NormalizedText, limit: int) -> Optional[int]:
    for index, line in enumerate(norm.lines[:limit]):
        if is_meaningful_line(line):
            return index
    return None


def extract_store_candidates(norm, currency, hints) -> List[Candidate]:
    """
    Store name candidates.

    1. First meaningful header line (early-line bonus at ranking)
    2. Lines carrying a caller brand keyword (higher weight)
    3. Labeled lines ("Merchant: ...")
    """
    candidates: List[Candidate] = []

    first = _first_meaningful_line(norm, STORE_HEADER_LINES)
    if first is not None:
        candidates.append(create_text_candidate(
            field='store',
            value=norm.lines[first],
            pattern_id='store_first_line',
            match_span=norm.line_span(first),
            weight=0.45,
            family=FAMILY_FALLBACK,
            line_position=first,
            line_count=norm.line_count,
        ))

    brand_re = _keyword_regex(hints.brand_keywords)
    if brand_re is not None:
        for index, line in enumerate(norm.lines):
            match = brand_re.search(line)
            if match:
                candidates.append(create_text_candidate(
                    field='store',
                    value=line,
                    pattern_id='store_brand_keyword',
                    match_span=norm.line_span(index),
                    weight=0.7,
                    family=FAMILY_SHAPED,
                    line_position=index,
                    line_count=norm.line_count,
                    keyword=match.group(0),
                ))

    candidates.extend(_labeled_candidates(norm, STORE_LABEL_SPEC, 'store'))
    return candidates


def extract_title_candidates(norm, currency, hints) -> List[Candidate]:
    """
    Title candidates.

    Lines carrying a caller category keyword win; labeled item lines come
    next; otherwise the first meaningful line below the store line.
    """
    candidates: List[Candidate] = []

    category_re = _keyword_regex(hints.category_keywords)
    if category_re is not None:
        for index, line in enumerate(norm.lines):
            if FIELD_LABEL_RE.match(line) or _has_date(line):
                continue
            match = category_re.search(line)
            if not match:
                continue
            value = _strip_trailing_amount(line)
            if not value:
                continue
            start = norm.line_offsets[index]
            candidates.append(create_text_candidate(
                field='title',
                value=value,
                pattern_id='title_category_keyword',
                match_span=(start, start + len(value)),
                weight=0.7,
                family=FAMILY_SHAPED,
                line_position=index,
                line_count=norm.line_count,
                keyword=match.group(0),
            ))

    candidates.extend(_labeled_candidates(norm, TITLE_LABEL_SPEC, 'title'))

    store_line = _first_meaningful_line(norm, STORE_HEADER_LINES)
    brand_re = _keyword_regex(hints.brand_keywords)
    for index, line in enumerate(norm.lines):
        if index == store_line or not is_meaningful_line(line):
            continue
        if brand_re is not None and brand_re.search(line):
            continue
        if any(spec.compiled.search(line) for spec in WARRANTY_PATTERNS):
            continue
        candidates.append(create_text_candidate(
            field='title',
            value=line,
            pattern_id='title_first_line',
            match_span=norm.line_span(index),
            weight=0.3,
            family=FAMILY_FALLBACK,
            line_position=index,
            line_count=norm.line_count,
        ))
        break

    return candidates


# ---------------------------------------------------------------------------
# Receipt number
# ---------------------------------------------------------------------------

_ID_TOKEN = r'(?P<value>(?=[A-Z0-9-]*\d)[A-Z0-9][A-Z0-9-]{2,})(?![\w-])'

RECEIPT_NUMBER_PATTERNS = [
    PatternSpec(
        name='receipt_number',
        pattern=rf'(?P<keyword>receipt\s*(?:#|no\.?|number|num\.?|id)|rcpt\s*(?:#|no\.?)?)\s*[:#]?\s*{_ID_TOKEN}',
        example='Receipt #: 004512',
        weight=0.6,
    ),
    PatternSpec(
        name='transaction_id',
        pattern=rf'(?P<keyword>trans(?:action)?\.?\s*(?:id|#|no\.?|number))\s*[:#]?\s*{_ID_TOKEN}',
        example='Transaction ID: TX-99812',
        weight=0.5,
    ),
    PatternSpec(
        name='order_number',
        pattern=rf'(?P<keyword>(?:order|invoice)\s*(?:#|no\.?|number|id))\s*[:#]?\s*{_ID_TOKEN}',
        example='Order # 112-5599',
        weight=0.45,
    ),
]


def _keyword_value_candidates(norm: NormalizedText, specs: List[PatternSpec], field_name: str) -> List[Candidate]:
    candidates = []
    for spec in specs:
        for match in spec.compiled.finditer(norm.text):
            value = match.group('value')
            line_position, line_count = _line_candidates_context(norm, match.start('value'))
            candidates.append(create_text_candidate(
                field=field_name,
                value=value,
                pattern_id=spec.name,
                match_span=match.span('value'),
                weight=spec.weight,
                family=spec.family,
                line_position=line_position,
                line_count=line_count,
                keyword=match.group('keyword'),
                keyword_distance=match.start('value') - match.end('keyword'),
            ))
    return candidates


def extract_receipt_number_candidates(norm, currency, hints) -> List[Candidate]:
    """Receipt # / Transaction ID / Order # followed by a token with a digit."""
    return _keyword_value_candidates(norm, RECEIPT_NUMBER_PATTERNS, 'receipt_number')


# ---------------------------------------------------------------------------
# Address, phone, website
# ---------------------------------------------------------------------------

ADDRESS_LABEL_SPEC = PatternSpec(
    name='address_labeled',
    pattern=r'^(?P<keyword>address|addr|location)\.?\s*:\s*(?P<value>\S.{4,100})$',
    example='Address: 12 High Street',
    weight=0.6,
)

STREET_LINE_PATTERNS = [
    PatternSpec(
        name='address_street',
        pattern=(
            r'^\d{1,6}[A-Z]?(?:-\d{1,4})?,?\s+(?:[\w.\'-]+\s+){0,5}'
            r'(?:street|st|avenue|ave|road|rd|boulevard|blvd|drive|dr|lane|ln|way|court|ct|place|pl'
            r'|highway|hwy|parkway|pkwy|square|sq|terrace|circle|cir|plaza)\b\.?(?:[\s,].*)?$'
        ),
        example='1234 Market St, Suite 5',
        weight=0.5,
        family=FAMILY_SHAPED,
    ),
    PatternSpec(
        name='address_street_name_first',
        pattern=(
            r'^(?:[\w.\'-]+\s+){0,4}[\w.\'-]*(?:stra(?:ss|ß)e|str\.|weg|platz|gasse|straat|laan|vej|gatan|gata)'
            r'\s*\d{1,5}[a-z]?\b.*$'
            r'|^(?:rue|via|calle|avenida|av\.|rua|ul\.|ulica)\s+.+\d.*$'
        ),
        example='Hauptstraße 12, Rue de Rivoli 99',
        weight=0.45,
        family=FAMILY_SHAPED,
    ),
]

POSTAL_LINE_RE = re.compile(
    r'\b[A-Z]{2}\s+\d{5}(?:-\d{4})?\b'                 # US: CA 94103
    r'|\b[A-Z]\d[A-Z]\s?\d[A-Z]\d\b'                    # CA: M5V 2T6
    r'|\b[A-Z]{1,2}\d[A-Z\d]?\s+\d[A-Z]{2}\b'           # UK: EC1V 8BT
    r'|^\d{4,5}\s+[A-ZÀ-Ýa-zà-ÿ][\w .\'-]{2,}$'         # EU: 75001 Paris
    r'|^\d{2}-\d{3}\s+[A-ZÀ-Ýa-zà-ÿ]'                   # PL: 00-950 Warszawa
)


def _is_address_line(line: str) -> bool:
    if POSTAL_LINE_RE.search(line):
        return True
    return any(spec.compiled.match(line) for spec in STREET_LINE_PATTERNS)


def extract_address_candidates(norm, currency, hints) -> List[Candidate]:
    """
    Store address candidates.

    Street lines absorb a following postal-code line; postal lines on
    their own are a weaker fallback.
    """
    candidates = _labeled_candidates(norm, ADDRESS_LABEL_SPEC, 'store_address')
    consumed = set()

    for index, line in enumerate(norm.lines):
        for spec in STREET_LINE_PATTERNS:
            if not spec.compiled.match(line):
                continue
            start, end = norm.line_span(index)
            value = line
            if index + 1 < norm.line_count and POSTAL_LINE_RE.search(norm.lines[index + 1]):
                value = f"{line} {norm.lines[index + 1]}"
                end = norm.line_span(index + 1)[1]
                consumed.add(index + 1)
            candidates.append(create_text_candidate(
                field='store_address',
                value=value,
                pattern_id=spec.name,
                match_span=(start, end),
                weight=spec.weight,
                family=spec.family,
                line_position=index,
                line_count=norm.line_count,
            ))
            break

    for index, line in enumerate(norm.lines):
        if index in consumed or _has_amount(line) or not POSTAL_LINE_RE.search(line):
            continue
        candidates.append(create_text_candidate(
            field='store_address',
            value=line,
            pattern_id='address_postal_line',
            match_span=norm.line_span(index),
            weight=0.35,
            family=FAMILY_FALLBACK,
            line_position=index,
            line_count=norm.line_count,
        ))

    return candidates


PHONE_KEYWORD_RE = re.compile(r'(?<![a-z])(?:tel(?:ephone)?|phone|ph|call|fon|mob(?:ile)?)(?![a-z])\.?', re.IGNORECASE)

# Long digit runs on these lines are identifiers, not phone numbers
_NON_PHONE_LINE_RE = re.compile(
    r'(?<![a-z])(?:receipt|rcpt|trans(?:action)?|order|invoice|card|acct|account|auth|ref|approval'
    r'|terminal|term|store\s*#|sku|upc|barcode|serial|s/n|lot)(?![a-z])',
    re.IGNORECASE
)


def extract_phone_candidates(norm, currency, hints) -> List[Candidate]:
    """7-15 digit sequences with common separators; Tel/Phone keyword bonus."""
    candidates: List[Candidate] = []

    for index, line in enumerate(norm.lines):
        for match in PHONE_RE.finditer(line):
            value = match.group('value').strip(' .-')
            if value.count('(') != value.count(')'):
                value = value.strip('()')
            digits = _digit_count(value)
            if not 7 <= digits <= 15:
                continue
            if _has_date(value) or re.search(r'[.,]\d{2}(?!\d)', value):
                continue

            start_in_line = line.find(value, match.start())
            keyword, distance = find_keyword_before(line, start_in_line, PHONE_KEYWORD_RE, window=20)
            if keyword is None and _NON_PHONE_LINE_RE.search(line):
                continue

            has_separators = bool(re.search(r'[ ().-]', value)) or value.startswith('+')
            if keyword is not None:
                pattern_id, weight, family = 'phone_keyword', 0.55, FAMILY_LABELED
            elif has_separators:
                pattern_id, weight, family = 'phone_shaped', 0.45, FAMILY_SHAPED
            else:
                pattern_id, weight, family = 'phone_digits', 0.25, FAMILY_FALLBACK

            start = norm.line_offsets[index] + start_in_line
            candidates.append(create_text_candidate(
                field='store_phone',
                value=value,
                pattern_id=pattern_id,
                match_span=(start, start + len(value)),
                weight=weight,
                family=family,
                line_position=index,
                line_count=norm.line_count,
                keyword=keyword,
                keyword_distance=distance,
            ))

    return candidates


WEBSITE_KEYWORD_RE = re.compile(r'(?<![a-z])(?:website|web|visit(?:\s+us)?(?:\s+at)?|online\s+at|url)(?![a-z])', re.IGNORECASE)

_TLDS = (
    r'com|net|org|info|biz|shop|store|online|io|co|us|uk|ca|de|fr|es|it|nl|be|ch|at|se|no|dk|fi'
    r'|pl|cz|pt|ie|eu|au|nz|br|mx|ru|in|jp'
)

WEBSITE_PATTERNS = [
    PatternSpec(
        name='website_url',
        pattern=r'(?<![\w@])https?://[^\s<>"\']+',
        example='https://shop.example.com/help',
        weight=0.6,
        family=FAMILY_LABELED,
    ),
    PatternSpec(
        name='website_www',
        pattern=r'(?<![\w@/.])www\.[a-z0-9-]+(?:\.[a-z0-9-]+)+(?:/[^\s]*)?',
        example='www.example.com',
        weight=0.55,
        family=FAMILY_SHAPED,
    ),
    PatternSpec(
        name='website_domain',
        pattern=(
            rf'(?<![\w@/.-])(?:[a-z0-9][a-z0-9-]*\.)+(?:{_TLDS})(?:\.[a-z]{{2}})?'
            rf'(?![\w@-]|\.[a-z0-9])(?:/[^\s]*)?'
        ),
        example='example.co.uk',
        weight=0.4,
        family=FAMILY_FALLBACK,
    ),
]


def extract_website_candidates(norm, currency, hints) -> List[Candidate]:
    """URLs, www hosts and bare domains; e-mail addresses never match."""
    candidates: List[Candidate] = []
    claimed = []

    for spec in WEBSITE_PATTERNS:
        for match in spec.compiled.finditer(norm.text):
            value = match.group(0).rstrip('.,;:)]')
            start = match.start()
            span = (start, start + len(value))
            # www hosts are also domains; keep only the most specific match
            if any(span[0] < other[1] and other[0] < span[1] for other in claimed):
                continue
            claimed.append(span)

            keyword, distance = find_keyword_before(norm.text, start, WEBSITE_KEYWORD_RE, window=30)
            line_position, line_count = _line_candidates_context(norm, start)
            candidates.append(create_text_candidate(
                field='store_website',
                value=value,
                pattern_id=spec.name,
                match_span=span,
                weight=spec.weight,
                family=spec.family,
                line_position=line_position,
                line_count=line_count,
                keyword=keyword,
                keyword_distance=distance,
            ))

    return candidates


# ---------------------------------------------------------------------------
# Warranty, payment method, cashier
# ---------------------------------------------------------------------------

WARRANTY_PATTERNS = [
    PatternSpec(
        name='warranty_line',
        pattern=r'(?<![a-z])warrant(?:y|ies|ee)(?![a-z])',
        example='2 YEAR LIMITED WARRANTY',
        weight=0.6,
    ),
    PatternSpec(
        name='guarantee_line',
        pattern=r'(?<![a-z])guarant(?:ee|y)(?![a-z])',
        example='30 day money back guarantee',
        weight=0.35,
    ),
]


def _is_continuation(line: str, next_line: str) -> bool:
    """Whether next_line continues the sentence started on line."""
    if FIELD_LABEL_RE.match(next_line) or _has_date(next_line):
        return False
    if re.search(r':\s*\S', next_line) and not next_line[0].islower():
        return False
    if _has_amount(next_line) and not re.search(r'[a-z]{3}', next_line):
        return False
    if any(spec.compiled.search(next_line) for spec in WARRANTY_PATTERNS):
        return False
    return not line.rstrip().endswith(('.', '!')) or next_line[:1].islower()


def extract_warranty_candidates(norm, currency, hints) -> List[Candidate]:
    """The line mentioning a warranty plus one continuation line."""
    candidates: List[Candidate] = []

    for spec in WARRANTY_PATTERNS:
        for index, line in enumerate(norm.lines):
            match = spec.compiled.search(line)
            if not match:
                continue
            start, end = norm.line_span(index)
            value = line
            if index + 1 < norm.line_count and _is_continuation(line, norm.lines[index + 1]):
                value = f"{line} {norm.lines[index + 1]}"
                end = norm.line_span(index + 1)[1]
            candidates.append(create_text_candidate(
                field='warranty_info',
                value=value,
                pattern_id=spec.name,
                match_span=(start, end),
                weight=spec.weight,
                family=spec.family,
                line_position=index,
                line_count=norm.line_count,
                keyword=match.group(0),
            ))

    return candidates


PAYMENT_LABEL_SPEC = PatternSpec(
    name='payment_labeled',
    pattern=(
        r'(?P<keyword>payment(?:\s+(?:method|type))?|paid\s+(?:by|with|via)|tender(?:ed)?|pay\s+method)'
        r'\s*:?\s*(?P<value>[A-Za-z][A-Za-z ]{1,24}[A-Za-z])'
    ),
    example='Paid with: Apple Pay',
    weight=0.6,
)

PAYMENT_PATTERNS = [
    PatternSpec(
        name='payment_card_masked',
        pattern=(
            r'(?P<value>(?<![a-z])(?:visa|master\s?card|amex|american\s+express|discover|maestro|jcb|union\s?pay'
            r'|diners(?:\s+club)?)(?:\s+(?:credit|debit))?(?:\s+card)?)(?![a-z])[^\n]{0,12}?[*xX#•]{2,}[^\S\n]*\d{4}'
        ),
        example='VISA ************4821',
        weight=0.55,
        family=FAMILY_LABELED,
    ),
    PatternSpec(
        name='payment_card_brand',
        pattern=(
            r'(?P<value>(?<![a-z])(?:visa|master\s?card|amex|american\s+express|discover|maestro|jcb|union\s?pay)'
            r'(?:\s+(?:credit|debit))?(?:\s+card)?)(?![a-z])'
        ),
        example='MASTERCARD',
        weight=0.45,
        family=FAMILY_SHAPED,
    ),
    PatternSpec(
        name='payment_wallet',
        pattern=r'(?P<value>(?<![a-z])(?:apple\s+pay|google\s+pay|samsung\s+pay|paypal|venmo|zelle|contactless|tap\s+to\s+pay))(?![a-z])',
        example='Apple Pay',
        weight=0.45,
        family=FAMILY_SHAPED,
    ),
    PatternSpec(
        name='payment_generic',
        pattern=(
            r'(?P<value>(?<![a-z])(?:credit\s+card|debit\s+card|gift\s+card|store\s+credit|bank\s+transfer'
            r'|money\s+order|cheque|personal\s+check|debit|ec[\s-]?karte))(?![a-z])'
        ),
        example='DEBIT',
        weight=0.4,
        family=FAMILY_SHAPED,
    ),
    PatternSpec(
        name='payment_cash',
        pattern=r'(?P<value>(?<![a-z])cash(?![a-z])(?!\s+back))',
        example='CASH 50.00',
        weight=0.3,
        family=FAMILY_FALLBACK,
    ),
]


def extract_payment_method_candidates(norm, currency, hints) -> List[Candidate]:
    """Card brands, wallets and tender keywords; the value is the matched text."""
    candidates: List[Candidate] = []

    for match in PAYMENT_LABEL_SPEC.compiled.finditer(norm.text):
        value = match.group('value')
        line_position, line_count = _line_candidates_context(norm, match.start('value'))
        candidates.append(create_text_candidate(
            field='payment_method',
            value=value,
            pattern_id=PAYMENT_LABEL_SPEC.name,
            match_span=match.span('value'),
            weight=PAYMENT_LABEL_SPEC.weight,
            family=FAMILY_LABELED,
            line_position=line_position,
            line_count=line_count,
            keyword=match.group('keyword'),
            keyword_distance=match.start('value') - match.end('keyword'),
        ))

    for spec in PAYMENT_PATTERNS:
        for match in spec.compiled.finditer(norm.text):
            line_position, line_count = _line_candidates_context(norm, match.start('value'))
            candidates.append(create_text_candidate(
                field='payment_method',
                value=match.group('value'),
                pattern_id=spec.name,
                match_span=match.span('value'),
                weight=spec.weight,
                family=spec.family,
                line_position=line_position,
                line_count=line_count,
            ))

    return candidates


CASHIER_PATTERNS = [
    PatternSpec(
        name='cashier_labeled',
        pattern=(
            r'(?<![a-z])(?P<keyword>cashier|clerk|served\s+by|server|operator|associate|sales\s*person)(?![a-z])'
            r'(?:[^\S\n]*(?:#|(?:no|id|name)(?![a-z])\.?))?[^\S\n]*[:#]?[^\S\n]*'
            r'(?P<value>(?!(?:copy|receipt|total)\b)[A-Za-z0-9][\w.\'-]*(?:[^\S\n][A-Z][\w.\'-]*)?)'
        ),
        example='Cashier: Maria G.',
        weight=0.5,
    ),
]


def extract_cashier_candidates(norm, currency, hints) -> List[Candidate]:
    """Cashier / clerk / served-by name or number."""
    return _keyword_value_candidates(norm, CASHIER_PATTERNS, 'cashier')


# Field name -> extractor, in ranking priority order
EXTRACTORS: dict[str, Extractor] = {
    'total_amount': extract_total_candidates,
    'tax_amount': extract_tax_candidates,
    'price': extract_price_candidates,
    'purchase_date': extract_date_candidates,
    'store': extract_store_candidates,
    'title': extract_title_candidates,
    'receipt_number': extract_receipt_number_candidates,
    'store_address': extract_address_candidates,
    'store_phone': extract_phone_candidates,
    'store_website': extract_website_candidates,
    'warranty_info': extract_warranty_candidates,
    'payment_method': extract_payment_method_candidates,
    'cashier': extract_cashier_candidates,
}
