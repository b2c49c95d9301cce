"""
Extraction API router: OCR text in, proposed receipt fields out.
"""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from receipt_engine.models.receipt import CurrencyContext, ExtractionResult
from receipt_engine.services.parser import ReceiptParser

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/extract", tags=["extract"])


class ExtractRequest(BaseModel):
    """Request model for one extraction run."""
    raw_text: str
    currency: Optional[CurrencyContext] = None
    brand_keywords: list[str] = Field(default_factory=list)
    category_keywords: list[str] = Field(default_factory=list)
    include_candidates: bool = False


@router.post("", response_model=ExtractionResult)
def extract(request: ExtractRequest):
    """
    Extract proposed field values from recognized receipt text.

    The result is a proposal for the review screen; nothing is stored.
    """
    try:
        return ReceiptParser().parse(
            request.raw_text,
            currency=request.currency,
            brand_keywords=request.brand_keywords,
            category_keywords=request.category_keywords,
            include_candidates=request.include_candidates,
        )
    except Exception as e:
        logger.error("Extraction failed", exc_info=True)
        raise HTTPException(
            status_code=500,
            detail=f"Failed to extract receipt: {str(e)}"
        )
