"""
Tests for candidate scoring, tie-breaks and cross-field overlap handling.
"""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from decimal import Decimal

from receipt_engine.config import Settings
from receipt_engine.models.receipt import ConfidenceLevel
from receipt_engine.utils.candidates import (
    FAMILY_FALLBACK,
    FAMILY_LABELED,
    FAMILY_SHAPED,
    create_amount_candidate,
    create_text_candidate,
)
from receipt_engine.utils.scoring import (
    confidence_level,
    rank_candidates,
    rank_field,
    score_candidate,
)


def amount(field, value, span, weight, family=FAMILY_SHAPED, keyword=None, keyword_distance=None,
           line_position=0, line_count=1):
    return create_amount_candidate(
        field=field,
        value=Decimal(value),
        pattern_id=f"test_{field}",
        match_span=span,
        raw_match=value,
        weight=weight,
        family=family,
        line_position=line_position,
        line_count=line_count,
        keyword=keyword,
        keyword_distance=keyword_distance,
    )


class TestScoreCandidate:

    def test_score_is_sum_of_parts(self):
        candidate = amount('price', "5.00", (0, 4), 0.3, keyword='price', keyword_distance=0)
        assert abs(score_candidate(candidate) - 0.6) < 1e-9

    def test_keyword_bonus_decays_with_distance(self):
        near = amount('price', "5.00", (0, 4), 0.3, keyword='price', keyword_distance=2)
        far = amount('price', "5.00", (0, 4), 0.3, keyword='price', keyword_distance=30)
        assert score_candidate(near) > score_candidate(far) > 0.3

    def test_late_total_scores_higher(self):
        early = amount('total_amount', "5.00", (0, 4), 0.45, line_position=0, line_count=10)
        late = amount('total_amount', "5.00", (0, 4), 0.45, line_position=9, line_count=10)
        assert score_candidate(late) > score_candidate(early)

    def test_score_clamped(self):
        strong = amount('total_amount', "5.00", (0, 4), 0.95, keyword='total', keyword_distance=0,
                        line_position=5, line_count=6)
        assert score_candidate(strong) == 1.0
        assert score_candidate(strong, overlap_penalty=5.0) == 0.0


class TestRankField:

    def test_keyword_breaks_score_tie(self):
        plain = amount('price', "1.00", (0, 4), 0.5)
        # Past the proximity window: keyword present but worth no bonus
        anchored = amount('price', "2.00", (50, 54), 0.5, keyword='price', keyword_distance=60)
        ranked = rank_field('price', [plain, anchored])
        assert ranked.winner.candidate is anchored

    def test_family_breaks_tie(self):
        bare = amount('price', "1.00", (0, 4), 0.5, family=FAMILY_FALLBACK)
        labeled = amount('price', "2.00", (10, 14), 0.5, family=FAMILY_LABELED)
        assert rank_field('price', [bare, labeled]).winner.candidate is labeled

    def test_earlier_position_breaks_tie(self):
        later = amount('price', "1.00", (20, 24), 0.5)
        earlier = amount('price', "2.00", (5, 9), 0.5)
        assert rank_field('price', [later, earlier]).winner.candidate is earlier

    def test_sequence_is_last_tie_break(self):
        first = amount('price', "1.00", (5, 9), 0.5)
        second = amount('price', "2.00", (5, 9), 0.5)
        first.sequence, second.sequence = 0, 1
        assert rank_field('price', [second, first]).winner.candidate is first

    def test_below_minimum_never_wins(self):
        weak = amount('price', "1.00", (0, 4), 0.05)
        ranked = rank_field('price', [weak], min_score=0.1)
        assert ranked.winner is None
        assert len(ranked.scored) == 1

    def test_no_candidates(self):
        ranked = rank_field('store', [])
        assert ranked.winner is None
        assert ranked.score == 0.0

    def test_scored_list_best_first(self):
        candidates = [amount('price', str(i), (i, i + 1), 0.1 * i) for i in range(1, 6)]
        scored = rank_field('price', candidates).scored[:3]
        assert [s.candidate.value for s in scored] == [Decimal("5"), Decimal("4"), Decimal("3")]


class TestRankCandidates:

    def test_total_span_never_wins_tax(self):
        total = amount('total_amount', "45.00", (10, 15), 0.45, keyword='total', keyword_distance=2)
        tax_same_span = amount('tax_amount', "45.00", (10, 15), 0.45, keyword='tax', keyword_distance=1)
        tax_elsewhere = amount('tax_amount', "3.60", (30, 34), 0.2)

        ranked = rank_candidates(
            {'total_amount': [total], 'tax_amount': [tax_same_span, tax_elsewhere]},
            Settings()
        )

        assert ranked['total_amount'].winner.candidate is total
        assert ranked['tax_amount'].winner.candidate is tax_elsewhere
        assert ranked['tax_amount'].scored[-1].overlap_penalty > 0

    def test_blocked_field_left_empty_rather_than_reusing_span(self):
        total = amount('total_amount', "5.00", (0, 4), 0.45, keyword='total', keyword_distance=0)
        tax = amount('tax_amount', "5.00", (0, 4), 0.45, keyword='tax', keyword_distance=0)
        ranked = rank_candidates({'total_amount': [total], 'tax_amount': [tax]}, Settings(OVERLAP_PENALTY=0.01))
        assert ranked['tax_amount'].winner is None

    def test_price_may_share_total_span(self):
        total = amount('total_amount', "45.00", (10, 15), 0.45, keyword='total', keyword_distance=0)
        price = amount('price', "45.00", (10, 15), 0.35, keyword='total', keyword_distance=0)
        ranked = rank_candidates({'total_amount': [total], 'price': [price]}, Settings())
        assert ranked['price'].winner.candidate is price

    def test_every_field_reported(self):
        ranked = rank_candidates({}, Settings())
        assert 'cashier' in ranked
        assert all(r.winner is None for r in ranked.values())

    def test_text_candidates_rank(self):
        first_line = create_text_candidate('store', "CORNER BOOKS", 'store_first_line', (0, 12), 0.45,
                                           FAMILY_FALLBACK, 0, 5)
        brand = create_text_candidate('store', "CORNER BOOKS", 'store_brand_keyword', (0, 12), 0.7,
                                      FAMILY_SHAPED, 0, 5, keyword="Corner Books")
        ranked = rank_candidates({'store': [first_line, brand]}, Settings())
        assert ranked['store'].winner.candidate is brand
        assert ranked['store'].winner.candidate.keyword == "corner books"


class TestConfidenceLevel:

    def test_thresholds(self):
        settings = Settings()
        assert confidence_level(0.9, settings) == ConfidenceLevel.HIGH
        assert confidence_level(0.75, settings) == ConfidenceLevel.HIGH
        assert confidence_level(0.6, settings) == ConfidenceLevel.MEDIUM
        assert confidence_level(0.2, settings) == ConfidenceLevel.LOW
