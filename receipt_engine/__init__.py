"""Receipt data extraction engine."""

from receipt_engine.models.receipt import CurrencyContext, ExtractionResult, ReceiptRecord
from receipt_engine.services.parser import ExtractionCancelled, ReceiptParser, extract_receipt
from receipt_engine.services.review import ReviewDecision, ReviewError, apply_review

__version__ = "0.1.0"

__all__ = [
    'CurrencyContext', 'ExtractionResult', 'ReceiptRecord',
    'ExtractionCancelled', 'ReceiptParser', 'extract_receipt',
    'ReviewDecision', 'ReviewError', 'apply_review',
]
