"""
Receipt parser service: runs the field extractors over normalized OCR text
and aggregates the ranked winners into one ExtractionResult.
"""

import logging
import math
import threading
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeoutError
from datetime import date
from typing import Dict, Iterable, List, Optional

from receipt_engine.config import Settings, settings as default_settings
from receipt_engine.models.receipt import (
    AuditEntry,
    CurrencyContext,
    ExtractionResult,
    FieldConfidence,
)
from receipt_engine.services.extractors import EXTRACTORS, Extractor, ExtractionHints
from receipt_engine.services.normalizer import NormalizedText, is_traceable, normalize_text
from receipt_engine.utils.candidates import Candidate
from receipt_engine.utils.scoring import RankedField, confidence_level, rank_candidates

logger = logging.getLogger(__name__)


class ExtractionCancelled(Exception):
    """Raised when the caller's cancel event is set during a run."""


class ReceiptParser:
    """
    Service for turning OCR text into a confidence-ranked ExtractionResult.

    Holds only immutable configuration, so one instance can serve
    concurrent calls. Currency and keyword hints travel with each call.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        extractors: Optional[Dict[str, Extractor]] = None,
    ):
        self.settings = settings or default_settings
        self._extractors = tuple((extractors if extractors is not None else EXTRACTORS).items())

    def parse(
        self,
        raw_text: str,
        currency: Optional[CurrencyContext] = None,
        brand_keywords: Iterable[str] = (),
        category_keywords: Iterable[str] = (),
        include_candidates: bool = False,
        cancel_event: Optional[threading.Event] = None,
        today: Optional[date] = None,
    ) -> ExtractionResult:
        """
        Parse receipt text and propose a value for every field it can find.

        Args:
            raw_text: OCR output, never modified
            currency: Caller's active currency; None disables symbol matching
            brand_keywords: Known store names that boost store candidates
            category_keywords: Product words that pick the title line
            include_candidates: Attach every scored candidate as an audit list
            cancel_event: Checked between extractors; set it to abandon the run
            today: Reference date for the plausible date window

        Returns:
            ExtractionResult (all fields absent for blank input)

        Raises:
            ExtractionCancelled: cancel_event was set before the run finished
        """
        raw_text = raw_text if isinstance(raw_text, str) else ""
        self._check_cancelled(cancel_event)

        norm = normalize_text(raw_text, self.settings.MAX_INPUT_CHARS)
        if norm.is_empty:
            return ExtractionResult(raw_text=raw_text, truncated=norm.truncated, partial=norm.truncated)

        hints = ExtractionHints(
            brand_keywords=tuple(brand_keywords or ()),
            category_keywords=tuple(category_keywords or ()),
            today=today or date.today(),
            window_years=self.settings.DATE_WINDOW_YEARS,
        )

        candidates_by_field, timed_out = self._run_extractors(norm, currency, hints, cancel_event)
        self._check_cancelled(cancel_event)

        for field_name, candidates in candidates_by_field.items():
            candidates_by_field[field_name] = self._traceable(candidates, norm.source)

        ranked = rank_candidates(candidates_by_field, self.settings)
        result = self._aggregate(ranked, raw_text, norm, timed_out, include_candidates)

        logger.debug(
            "Extracted %d fields (partial=%s, truncated=%s)",
            len(result.extracted_fields()), result.partial, result.truncated
        )
        return result

    @staticmethod
    def _check_cancelled(cancel_event: Optional[threading.Event]) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise ExtractionCancelled("Extraction cancelled by caller")

    def _run_extractors(
        self,
        norm: NormalizedText,
        currency: Optional[CurrencyContext],
        hints: ExtractionHints,
        cancel_event: Optional[threading.Event],
    ) -> tuple[Dict[str, List[Candidate]], List[str]]:
        """
        Run every extractor under its time budget.

        Results are collected in registry order whatever order the workers
        finish in. Returns (candidates per field, fields that ran out of time).
        """
        budget = self.settings.FIELD_TIME_BUDGET_MS / 1000.0
        workers = self.settings.MAX_WORKERS
        candidates_by_field: Dict[str, List[Candidate]] = {}
        timed_out: List[str] = []

        if workers <= 0:
            for field_name, extractor in self._extractors:
                self._check_cancelled(cancel_event)
                try:
                    candidates, elapsed = _timed_call(extractor, norm, currency, hints)
                except Exception:
                    logger.warning("Extractor for %s failed", field_name, exc_info=True)
                    candidates_by_field[field_name] = []
                    continue
                self._collect(field_name, candidates, elapsed, budget, candidates_by_field, timed_out)
            return candidates_by_field, timed_out

        executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="receipt-extractor")
        try:
            futures = [
                (field_name, executor.submit(_timed_call, extractor, norm, currency, hints))
                for field_name, extractor in self._extractors
            ]
            # Queued extractors wait for a free worker, so the overall
            # deadline grows with the number of rounds
            rounds = math.ceil(len(futures) / workers)
            deadline = time.monotonic() + budget * rounds

            for field_name, future in futures:
                self._check_cancelled(cancel_event)
                try:
                    candidates, elapsed = future.result(timeout=max(0.0, deadline - time.monotonic()))
                except FuturesTimeoutError:
                    logger.warning("Extractor for %s exceeded its %.0f ms budget", field_name, budget * 1000)
                    candidates_by_field[field_name] = []
                    timed_out.append(field_name)
                    continue
                except Exception:
                    logger.warning("Extractor for %s failed", field_name, exc_info=True)
                    candidates_by_field[field_name] = []
                    continue
                self._collect(field_name, candidates, elapsed, budget, candidates_by_field, timed_out)
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        return candidates_by_field, timed_out

    @staticmethod
    def _collect(
        field_name: str,
        candidates: List[Candidate],
        elapsed: float,
        budget: float,
        candidates_by_field: Dict[str, List[Candidate]],
        timed_out: List[str],
    ) -> None:
        if elapsed > budget:
            logger.warning(
                "Extractor for %s took %.0f ms (budget %.0f ms), discarding",
                field_name, elapsed * 1000, budget * 1000
            )
            candidates_by_field[field_name] = []
            timed_out.append(field_name)
            return

        for sequence, candidate in enumerate(candidates):
            candidate.sequence = sequence
        candidates_by_field[field_name] = list(candidates)

    @staticmethod
    def _traceable(candidates: List[Candidate], source: str) -> List[Candidate]:
        """Drop candidates whose matched text cannot be found in the processed input."""
        kept = []
        for candidate in candidates:
            if is_traceable(candidate.raw_match, source):
                kept.append(candidate)
            else:
                logger.debug(
                    "Dropping untraceable %s candidate %r (%s)",
                    candidate.field, candidate.raw_match, candidate.pattern_id
                )
        return kept

    def _aggregate(
        self,
        ranked: Dict[str, RankedField],
        raw_text: str,
        norm: NormalizedText,
        timed_out: List[str],
        include_candidates: bool,
    ) -> ExtractionResult:
        values = {}
        confidence = {}
        audit = []

        for field_name, outcome in ranked.items():
            if outcome.winner is not None:
                values[field_name] = outcome.winner.candidate.value
                confidence[field_name] = confidence_level(outcome.winner.score, self.settings)

            if include_candidates:
                for scored in outcome.scored:
                    candidate = scored.candidate
                    audit.append(AuditEntry(
                        field=field_name,
                        value=str(candidate.value),
                        raw_match=candidate.raw_match,
                        start_offset=candidate.start_offset,
                        score=round(scored.score, 4),
                        pattern_id=candidate.pattern_id,
                        won=scored is outcome.winner,
                    ))

        return ExtractionResult(
            **values,
            confidence=FieldConfidence(**confidence),
            raw_text=raw_text,
            partial=bool(timed_out) or norm.truncated,
            truncated=norm.truncated,
            timed_out_fields=tuple(timed_out),
            audit=tuple(audit),
        )


def _timed_call(extractor: Extractor, norm, currency, hints) -> tuple[List[Candidate], float]:
    started = time.monotonic()
    candidates = extractor(norm, currency, hints)
    return candidates, time.monotonic() - started


def extract_receipt(
    raw_text: str,
    currency: Optional[CurrencyContext] = None,
    **kwargs
) -> ExtractionResult:
    """Parse with default settings. See ReceiptParser.parse for arguments."""
    return ReceiptParser().parse(raw_text, currency=currency, **kwargs)
