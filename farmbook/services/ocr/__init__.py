"""Receipt reading services package."""

from farmbook.services.ocr.gemini_service import (
    AllModelsFailedError,
    GeminiReceiptService,
    ReceiptOCRError,
    ReceiptParseError,
    parse_receipt_response,
    should_proceed,
)

__all__ = [
    "AllModelsFailedError",
    "GeminiReceiptService",
    "ReceiptOCRError",
    "ReceiptParseError",
    "parse_receipt_response",
    "should_proceed",
]
