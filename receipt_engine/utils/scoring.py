"""
Scoring and selection for extraction candidates.

score = keyword proximity bonus + pattern specificity weight
        + position bonus - overlap penalty

Scores are clamped to [0.0, 1.0]. Each field gets exactly one winner or
none; the rest are kept for the optional audit list.
"""

from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence

from receipt_engine.config import Settings
from receipt_engine.models.receipt import EXTRACTED_FIELDS, ConfidenceLevel
from receipt_engine.utils.candidates import Candidate

__all__ = [
    'ScoredCandidate', 'RankedField',
    'score_candidate', 'ranking_key', 'rank_field', 'rank_candidates',
    'confidence_level', 'spans_overlap',
]

# Keyword proximity: full bonus when adjacent, none past the window
KEYWORD_BONUS = 0.3
KEYWORD_WINDOW = 40.0

# Dates: format kind must dominate, so the keyword bonus stays small
FIELD_KEYWORD_BONUS = {
    'purchase_date': 0.1,
}

# Totals, taxes and payment lines trend toward the bottom of a receipt
LATE_POSITION_BONUS = {
    'total_amount': 0.1,
    'tax_amount': 0.05,
    'payment_method': 0.05,
}

# Earlier dates are usually the transaction date, not an expiry/return date
EARLY_POSITION_BONUS = {
    'purchase_date': 0.05,
}

# Store names sit in the header; title lines just below it
EARLY_LINE_BOOST = {
    'store': {0: 0.15, 1: 0.1, 2: 0.05},
    'title': {0: 0.05, 1: 0.05, 2: 0.03},
}

# A field may not reuse a span already won by the fields listed here.
BLOCKED_BY = {
    'tax_amount': ('total_amount',),
    'price': ('tax_amount',),
}


@dataclass(frozen=True)
class ScoredCandidate:
    candidate: Candidate
    score: float
    overlap_penalty: float = 0.0


@dataclass
class RankedField:
    """Ranking outcome for one field."""
    field: str
    winner: Optional[ScoredCandidate] = None
    scored: List[ScoredCandidate] = field(default_factory=list)

    @property
    def score(self) -> float:
        return self.winner.score if self.winner else 0.0


def keyword_proximity_bonus(candidate: Candidate) -> float:
    """Bonus for a keyword close in front of the match."""
    if not candidate.has_keyword:
        return 0.0

    max_bonus = FIELD_KEYWORD_BONUS.get(candidate.field, KEYWORD_BONUS)
    closeness = max(0.0, 1.0 - candidate.keyword_distance / KEYWORD_WINDOW)
    return max_bonus * closeness


def position_bonus(candidate: Candidate) -> float:
    """Bonus from where the match sits among the receipt lines."""
    line = candidate.line_position
    last_line = max(1, candidate.line_count - 1)

    if candidate.field in LATE_POSITION_BONUS:
        return LATE_POSITION_BONUS[candidate.field] * min(1.0, line / last_line)

    if candidate.field in EARLY_POSITION_BONUS:
        return EARLY_POSITION_BONUS[candidate.field] * max(0.0, 1.0 - line / last_line)

    if candidate.field in EARLY_LINE_BOOST:
        return EARLY_LINE_BOOST[candidate.field].get(line, 0.0)

    return 0.0


def score_candidate(candidate: Candidate, overlap_penalty: float = 0.0) -> float:
    """
    Score one candidate.

    Args:
        candidate: Candidate to score
        overlap_penalty: Penalty for reusing a span claimed by another field

    Returns:
        Score from 0.0 to 1.0
    """
    base_score = (
        keyword_proximity_bonus(candidate)
        + candidate.weight
        + position_bonus(candidate)
        - overlap_penalty
    )

    # Clamp to [0.0, 1.0]
    return max(0.0, min(1.0, base_score))


def ranking_key(scored: ScoredCandidate) -> tuple:
    """
    Sort key: best first.

    Ties on score are broken by explicit keyword, then pattern family,
    then earlier position, then production order.
    """
    candidate = scored.candidate
    return (
        -round(scored.score, 9),
        0 if candidate.has_keyword else 1,
        -candidate.family,
        candidate.start_offset,
        candidate.sequence,
    )


def spans_overlap(a: tuple[int, int], b: tuple[int, int]) -> bool:
    return a[0] < b[1] and b[0] < a[1]


def rank_field(
    field_name: str,
    candidates: Sequence[Candidate],
    blocked_spans: Iterable[tuple[int, int]] = (),
    overlap_penalty: float = 1.0,
    min_score: float = 0.1,
) -> RankedField:
    """
    Rank all candidates for one field and pick the winner.

    Args:
        field_name: Field being ranked
        candidates: Candidates produced for this field
        blocked_spans: Spans already won by higher-priority fields
        overlap_penalty: Subtracted when a candidate overlaps a blocked span
        min_score: Winners must reach this score

    Returns:
        RankedField with winner (or None) and every scored candidate
    """
    blocked = list(blocked_spans)
    scored = []

    for candidate in candidates:
        penalty = overlap_penalty if any(spans_overlap(candidate.match_span, span) for span in blocked) else 0.0
        scored.append(ScoredCandidate(candidate, score_candidate(candidate, penalty), penalty))

    scored.sort(key=ranking_key)

    # A span claimed by a blocking field never wins, whatever the penalty size
    winner = next(
        (s for s in scored if s.overlap_penalty == 0.0 and s.score >= min_score),
        None
    )

    return RankedField(field=field_name, winner=winner, scored=scored)


def rank_candidates(
    candidates_by_field: dict[str, List[Candidate]],
    settings: Settings
) -> dict[str, RankedField]:
    """
    Rank every field in priority order, claiming winning spans as we go.

    Args:
        candidates_by_field: Extractor output keyed by field name
        settings: Ranking thresholds and penalties

    Returns:
        RankedField per field in EXTRACTED_FIELDS order
    """
    claimed: dict[str, tuple[int, int]] = {}
    ranked = {}

    for field_name in EXTRACTED_FIELDS:
        blocked_spans = [
            claimed[other]
            for other in BLOCKED_BY.get(field_name, ())
            if other in claimed
        ]

        result = rank_field(
            field_name,
            candidates_by_field.get(field_name, []),
            blocked_spans=blocked_spans,
            overlap_penalty=settings.OVERLAP_PENALTY,
            min_score=settings.MIN_CANDIDATE_SCORE,
        )

        if result.winner is not None:
            claimed[field_name] = result.winner.candidate.match_span

        ranked[field_name] = result

    return ranked


def confidence_level(score: float, settings: Settings) -> ConfidenceLevel:
    """Map a winning score onto low / medium / high."""
    if score >= settings.CONFIDENCE_HIGH:
        return ConfidenceLevel.HIGH
    if score >= settings.CONFIDENCE_MEDIUM:
        return ConfidenceLevel.MEDIUM
    return ConfidenceLevel.LOW
