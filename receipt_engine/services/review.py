"""
Per-field merge of reviewed extraction results into a stored record.

Nothing reaches the record unless the user accepted it: a field left out
of the decision keeps whatever value the record already had.
"""

import logging
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, ValidationError

from receipt_engine.models.receipt import EXTRACTED_FIELDS, ExtractionResult, ReceiptRecord

logger = logging.getLogger(__name__)


class ReviewError(ValueError):
    """Raised for decisions naming unknown fields or carrying invalid overrides."""


class ReviewDecision(BaseModel):
    """
    What the user decided on the review screen.

    accepted: fields to copy from the extraction result
    rejected: fields explicitly declined (never copied, even with accept_all)
    overrides: user-edited values; an override counts as acceptance
    accept_all: accept every extracted field not rejected
    fill_empty: only write fields that are empty on the record
    """
    model_config = ConfigDict(frozen=True)

    accepted: tuple[str, ...] = ()
    rejected: tuple[str, ...] = ()
    overrides: Dict[str, Any] = {}
    accept_all: bool = False
    fill_empty: bool = False


class MergeOutcome(BaseModel):
    """Merged record plus which fields were written and which were left alone."""
    model_config = ConfigDict(frozen=True)

    record: ReceiptRecord
    applied: tuple[str, ...] = ()
    skipped: tuple[str, ...] = ()


def _validate_field_names(decision: ReviewDecision) -> None:
    named = list(decision.accepted) + list(decision.rejected) + list(decision.overrides)
    unknown = sorted({name for name in named if name not in EXTRACTED_FIELDS})
    if unknown:
        raise ReviewError(f"Unknown field(s): {', '.join(unknown)}")

    conflicting = sorted(set(decision.rejected) & (set(decision.accepted) | set(decision.overrides)))
    if conflicting:
        raise ReviewError(f"Field(s) both accepted and rejected: {', '.join(conflicting)}")


def apply_review(
    record: Optional[ReceiptRecord],
    result: ExtractionResult,
    decision: ReviewDecision,
) -> MergeOutcome:
    """
    Merge accepted fields of an extraction result into a record.

    Args:
        record: Current stored record (None for a new one)
        result: Proposed values from ReceiptParser
        decision: User's accept/reject/override choices

    Returns:
        MergeOutcome with a new record; the inputs are not modified

    Raises:
        ReviewError: unknown field name, conflicting choice or invalid override
    """
    _validate_field_names(decision)
    record = record or ReceiptRecord()

    if decision.accept_all:
        accepted = [name for name in EXTRACTED_FIELDS if name not in decision.rejected]
    else:
        accepted = [name for name in EXTRACTED_FIELDS if name in decision.accepted]

    updates: Dict[str, Any] = {}
    applied: List[str] = []
    skipped: List[str] = []

    for field_name in EXTRACTED_FIELDS:
        if field_name in decision.overrides:
            value = decision.overrides[field_name]
        elif field_name in accepted:
            value = result.value_of(field_name)
            # Accepting a field the engine did not find changes nothing
            if value is None:
                if field_name in decision.accepted:
                    skipped.append(field_name)
                continue
        else:
            continue

        if decision.fill_empty and getattr(record, field_name) is not None:
            skipped.append(field_name)
            continue

        updates[field_name] = value
        applied.append(field_name)

    try:
        merged = ReceiptRecord.model_validate({**record.model_dump(), **updates})
    except ValidationError as e:
        raise ReviewError(f"Invalid override value: {e}") from e

    logger.info("Review merge applied %s, skipped %s", applied, skipped)
    return MergeOutcome(record=merged, applied=tuple(applied), skipped=tuple(skipped))
