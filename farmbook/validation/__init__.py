"""Receipt validation package."""

from farmbook.validation.validator import ReceiptValidator

__all__ = ["ReceiptValidator"]
