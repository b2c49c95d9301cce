"""
Candidate dataclasses for extraction scoring.

Each candidate represents a potential extracted value with metadata
used for scoring and selection.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Optional, Any
import re

# Pattern families, most specific first. Ranking prefers a higher family
# when scores tie.
FAMILY_LABELED = 3  # keyword-anchored ("Total:", "Receipt #", "Item:")
FAMILY_SHAPED = 2   # symbol-anchored amounts, structural shapes
FAMILY_FALLBACK = 1  # bare numbers, first-line heuristics

# Date format kinds, stored in DateCandidate.family
DATE_NAMED_MONTH = 3
DATE_UNAMBIGUOUS = 2
DATE_AMBIGUOUS = 1

NO_KEYWORD_DISTANCE = 999


@dataclass
class Candidate:
    """Base class for extraction candidates."""
    field: str
    value: Any
    pattern_id: str
    match_span: tuple[int, int]  # (start, end) in the normalized text
    weight: float  # Pattern specificity weight
    raw_match: str = ""  # Matched text as it appears in the input
    family: int = FAMILY_FALLBACK
    keyword: Optional[str] = None  # Anchoring keyword, if any
    keyword_distance: int = NO_KEYWORD_DISTANCE  # Characters from keyword to match
    line_position: int = 0
    line_count: int = 1
    sequence: int = 0  # Production order, last tie-breaker

    @property
    def start_offset(self) -> int:
        return self.match_span[0]

    @property
    def has_keyword(self) -> bool:
        return self.keyword is not None


@dataclass
class AmountCandidate(Candidate):
    """
    Candidate for price, tax or total.

    Scoring factors:
    - weight: pattern family (keyword > currency symbol > bare number)
    - keyword_distance: characters between the keyword and the number
    - line_position: totals and taxes trend toward the bottom
    """
    value: Decimal


@dataclass
class DateCandidate(Candidate):
    """
    Candidate for the purchase date.

    family holds the format kind: named month beats unambiguous numeric
    beats ambiguous numeric (03/04/2024).
    """
    value: date
    reading: Optional[str] = None  # 'MDY' or 'DMY' for numeric dates


def find_keyword_before(
    text: str,
    start: int,
    keyword_re: re.Pattern,
    window: int = 40
) -> tuple[Optional[str], int]:
    """
    Find the closest keyword preceding a match on the same line.

    Args:
        text: Normalized text
        start: Start offset of the match
        keyword_re: Compiled keyword pattern
        window: Maximum characters to look back

    Returns:
        (keyword, distance) or (None, NO_KEYWORD_DISTANCE)
    """
    line_start = text.rfind('\n', 0, start) + 1
    context_start = max(line_start, start - window)
    context = text[context_start:start]

    best = None
    for match in keyword_re.finditer(context):
        best = match

    if best is None:
        return None, NO_KEYWORD_DISTANCE

    distance = len(context) - best.end()
    return best.group(0).lower(), distance


# Helper functions for creating candidates

def create_amount_candidate(
    field: str,
    value: Decimal,
    pattern_id: str,
    match_span: tuple[int, int],
    raw_match: str,
    weight: float,
    family: int,
    line_position: int,
    line_count: int,
    keyword: Optional[str] = None,
    keyword_distance: Optional[int] = None,
) -> AmountCandidate:
    """
    Create AmountCandidate for the keyword the caller found (if any).

    Without a keyword the distance is pinned to NO_KEYWORD_DISTANCE.
    """
    if keyword is None or keyword_distance is None:
        distance = NO_KEYWORD_DISTANCE
    else:
        distance = keyword_distance

    return AmountCandidate(
        field=field,
        value=value,
        pattern_id=pattern_id,
        match_span=match_span,
        weight=weight,
        raw_match=raw_match,
        family=family,
        keyword=keyword,
        keyword_distance=distance,
        line_position=line_position,
        line_count=line_count,
    )


def create_date_candidate(
    value: date,
    pattern_id: str,
    match_span: tuple[int, int],
    raw_match: str,
    weight: float,
    kind: int,
    line_position: int,
    line_count: int,
    text: str,
    keyword_re: Optional[re.Pattern] = None,
    reading: Optional[str] = None,
) -> DateCandidate:
    """Create DateCandidate with a strong-prefix check ("Date:", "Purchased")."""
    keyword, distance = (None, NO_KEYWORD_DISTANCE)
    if keyword_re is not None:
        keyword, distance = find_keyword_before(text, match_span[0], keyword_re, window=20)

    return DateCandidate(
        field='purchase_date',
        value=value,
        pattern_id=pattern_id,
        match_span=match_span,
        weight=weight,
        raw_match=raw_match,
        family=kind,
        keyword=keyword,
        keyword_distance=distance,
        line_position=line_position,
        line_count=line_count,
        reading=reading,
    )


def create_text_candidate(
    field: str,
    value: str,
    pattern_id: str,
    match_span: tuple[int, int],
    weight: float,
    family: int,
    line_position: int,
    line_count: int,
    keyword: Optional[str] = None,
    keyword_distance: int = 0,
) -> Candidate:
    """
    Create a Candidate for a free-text field (store, title, phone, ...).

    The value doubles as raw_match: text fields are always taken verbatim
    from the normalized text.
    """
    value = value.strip()
    return Candidate(
        field=field,
        value=value,
        pattern_id=pattern_id,
        match_span=match_span,
        weight=weight,
        raw_match=value,
        family=family,
        keyword=keyword.lower() if keyword else None,
        keyword_distance=keyword_distance if keyword else NO_KEYWORD_DISTANCE,
        line_position=line_position,
        line_count=line_count,
    )
