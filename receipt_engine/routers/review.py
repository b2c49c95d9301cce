"""
Review API router: merge user-approved fields into a receipt record.
"""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from receipt_engine.models.receipt import ExtractionResult, ReceiptRecord
from receipt_engine.services.review import MergeOutcome, ReviewDecision, ReviewError, apply_review

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/review", tags=["review"])


class MergeRequest(BaseModel):
    """Request model for merging a reviewed extraction into a record."""
    record: Optional[ReceiptRecord] = None
    result: ExtractionResult
    decision: ReviewDecision


@router.post("/merge", response_model=MergeOutcome)
def merge_review(request: MergeRequest):
    """
    Apply the user's per-field decisions.

    Fields not accepted keep their current record value.

    Returns:
        Merged record with applied and skipped field names
    """
    try:
        return apply_review(request.record, request.result, request.decision)
    except ReviewError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error("Review merge failed", exc_info=True)
        raise HTTPException(
            status_code=500,
            detail=f"Failed to merge review: {str(e)}"
        )
