"""
Pydantic models for extraction input, output and the reviewed record.
"""

import logging
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

logger = logging.getLogger(__name__)

# Every field the engine can propose, in ranking priority order.
# Amount fields come first so their spans are claimed before the rest.
EXTRACTED_FIELDS = (
    'total_amount',
    'tax_amount',
    'price',
    'purchase_date',
    'store',
    'title',
    'receipt_number',
    'store_address',
    'store_phone',
    'store_website',
    'warranty_info',
    'payment_method',
    'cashier',
)


class ConfidenceLevel(str, Enum):
    """Coarse confidence shown next to each proposed value."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class CurrencyContext(BaseModel):
    """
    Active currency supplied by the caller for one extraction run.

    The symbol is only ever used through utils.currency, which escapes it
    before it reaches a regex. A blank symbol is accepted and simply turns
    off symbol-anchored matching.
    """
    model_config = ConfigDict(frozen=True)

    symbol: str = ""
    code: str = ""
    decimal_separator: Optional[str] = None  # "." or ","; None auto-detects

    @field_validator('decimal_separator')
    @classmethod
    def _known_separator(cls, value: Optional[str]) -> Optional[str]:
        if value in (None, '.', ','):
            return value
        logger.debug("Ignoring unknown decimal separator %r", value)
        return None


class FieldConfidence(BaseModel):
    """Confidence level per field; None where the field was not extracted."""
    model_config = ConfigDict(frozen=True)

    title: Optional[ConfidenceLevel] = None
    store: Optional[ConfidenceLevel] = None
    price: Optional[ConfidenceLevel] = None
    tax_amount: Optional[ConfidenceLevel] = None
    total_amount: Optional[ConfidenceLevel] = None
    purchase_date: Optional[ConfidenceLevel] = None
    warranty_info: Optional[ConfidenceLevel] = None
    payment_method: Optional[ConfidenceLevel] = None
    receipt_number: Optional[ConfidenceLevel] = None
    store_address: Optional[ConfidenceLevel] = None
    store_phone: Optional[ConfidenceLevel] = None
    store_website: Optional[ConfidenceLevel] = None
    cashier: Optional[ConfidenceLevel] = None


class AuditEntry(BaseModel):
    """One scored candidate, kept only when the caller asks for the audit list."""
    model_config = ConfigDict(frozen=True)

    field: str
    value: str
    raw_match: str
    start_offset: int
    score: float
    pattern_id: str
    won: bool = False


class ExtractionResult(BaseModel):
    """
    Proposed values for one OCR run.

    Built once by ReceiptParser and never modified afterwards. Values are
    proposals only; services.review decides what reaches a stored record.
    """
    model_config = ConfigDict(frozen=True)

    title: Optional[str] = None
    store: Optional[str] = None
    price: Optional[Decimal] = Field(default=None, ge=0)
    tax_amount: Optional[Decimal] = Field(default=None, ge=0)
    total_amount: Optional[Decimal] = Field(default=None, ge=0)
    purchase_date: Optional[date] = None
    warranty_info: Optional[str] = None
    payment_method: Optional[str] = None
    receipt_number: Optional[str] = None
    store_address: Optional[str] = None
    store_phone: Optional[str] = None
    store_website: Optional[str] = None
    cashier: Optional[str] = None

    confidence: FieldConfidence = FieldConfidence()
    raw_text: str = ""
    partial: bool = False
    truncated: bool = False
    timed_out_fields: tuple[str, ...] = ()
    audit: tuple[AuditEntry, ...] = ()

    def value_of(self, field_name: str) -> Any:
        """Return the proposed value for a field name from EXTRACTED_FIELDS."""
        if field_name not in EXTRACTED_FIELDS:
            raise KeyError(field_name)
        return getattr(self, field_name)

    def extracted_fields(self) -> list[str]:
        """Names of fields that carry a value, in ranking order."""
        return [name for name in EXTRACTED_FIELDS if getattr(self, name) is not None]


class ReceiptRecord(BaseModel):
    """Shape of a stored receipt as far as the review merge is concerned."""
    model_config = ConfigDict(frozen=True)

    title: Optional[str] = None
    store: Optional[str] = None
    price: Optional[Decimal] = Field(default=None, ge=0)
    tax_amount: Optional[Decimal] = Field(default=None, ge=0)
    total_amount: Optional[Decimal] = Field(default=None, ge=0)
    purchase_date: Optional[date] = None
    warranty_info: Optional[str] = None
    payment_method: Optional[str] = None
    receipt_number: Optional[str] = None
    store_address: Optional[str] = None
    store_phone: Optional[str] = None
    store_website: Optional[str] = None
    cashier: Optional[str] = None
