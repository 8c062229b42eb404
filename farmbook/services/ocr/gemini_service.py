"""
Receipt Reading Service using Gemini

A receipt photo is sent to a Gemini vision model together with a prompt
asking for a small JSON object (amount, date, category, description,
raw text). The result is a ReceiptData proposal the user reviews before
anything is saved.

DESIGN DECISION: Models are tried in a configured order
(gemini-2.0-flash-exp -> gemini-1.5-flash -> gemini-pro by default).
Experimental models come and go; falling through to an older model
keeps receipt entry working when one is withdrawn or rate limited.
"""

import json
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Optional

import google.generativeai as genai
import structlog

from farmbook.config import GeminiSettings, get_settings
from farmbook.models.ledger import ReceiptCategory, ReceiptData


logger = structlog.get_logger(__name__)


RECEIPT_PROMPT = """You are reading a receipt for a small Japanese farm's bookkeeping.

Extract the following and respond with ONLY a JSON object:
{
  "amount": total amount paid as a number (no currency symbols or commas),
  "date": purchase date as "YYYY-MM-DD",
  "category": one of "Seed", "Fertilizer", "Equipment", "Other",
  "description": shop name and a short summary of what was bought,
  "ocr_text": all text you can read on the receipt
}

Use null for anything you cannot read. Do not guess amounts."""


class ReceiptOCRError(Exception):
    """Base exception for receipt reading errors."""
    pass


class ReceiptParseError(ReceiptOCRError):
    """Model replied with something that isn't the expected JSON."""
    pass


class AllModelsFailedError(ReceiptOCRError):
    """Every model in the fallback chain failed."""

    def __init__(self, tried_models: list[str], message: str):
        self.tried_models = tried_models
        super().__init__(message)


def _strip_code_fences(text: str) -> str:
    """Remove ```json fences the model likes to wrap its answer in."""
    return text.replace("```json", "").replace("```", "").strip()


def _safe_decimal(value: Any) -> Optional[Decimal]:
    """Convert a model-supplied amount to Decimal, tolerating '¥1,200'."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.replace(",", "").replace("¥", "").replace("円", "").strip()
        if not value:
            return None
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    return amount if amount >= 0 else None


def _safe_date(value: Any) -> Optional[date]:
    """Parse the model's date, accepting a few common layouts."""
    if not isinstance(value, str) or not value.strip():
        return None
    for fmt in ("%Y-%m-%d", "%Y/%m/%d", "%Y.%m.%d", "%Y年%m月%d日"):
        try:
            return datetime.strptime(value.strip(), fmt).date()
        except ValueError:
            continue
    return None


def parse_receipt_response(text: str, model_name: Optional[str] = None) -> ReceiptData:
    """
    Turn a model reply into ReceiptData.

    Raises:
        ReceiptParseError: If no JSON object can be found in the reply
    """
    cleaned = _strip_code_fences(text)
    start = cleaned.find("{")
    end = cleaned.rfind("}") + 1
    if start < 0 or end <= start:
        raise ReceiptParseError("Receipt reader did not return JSON")

    try:
        data = json.loads(cleaned[start:end])
    except json.JSONDecodeError as e:
        raise ReceiptParseError(f"Receipt reader returned invalid JSON: {e}")
    if not isinstance(data, dict):
        raise ReceiptParseError("Receipt reader returned JSON that is not an object")

    return ReceiptData(
        amount=_safe_decimal(data.get("amount")),
        receipt_date=_safe_date(data.get("date")),
        category=data.get("category") or ReceiptCategory.OTHER,
        description=(data.get("description") or None),
        ocr_text=(data.get("ocr_text") or None),
        model_used=model_name,
    )


def should_proceed(receipt: ReceiptData) -> tuple[bool, Optional[str]]:
    """
    Decide whether a proposal is worth showing for review.

    Returns: (should_proceed, note_for_user or None)
    """
    if receipt.amount is None and receipt.receipt_date is None:
        return False, (
            "❌ Nothing could be read from this photo. "
            "Please retake it or enter the amount manually."
        )
    if receipt.amount is None:
        return True, "⚠️ The total could not be read. Please enter it before saving."
    return True, None


class GeminiReceiptService:
    """
    Receipt reader with a model fallback chain.

    IMPORTANT BOUNDARIES:
    1. This service ONLY proposes data - it never saves anything
    2. Amounts the model could not read stay empty rather than guessed
    """

    def __init__(
        self,
        settings: Optional[GeminiSettings] = None,
        model_factory: Optional[Callable[[str], Any]] = None,
    ):
        self._settings = settings or get_settings().gemini
        self._model_factory = model_factory or self._create_model
        self._configured = False

    def _create_model(self, model_name: str):
        """Create a Gemini model handle."""
        if not self._configured:
            genai.configure(api_key=self._settings.api_key)
            self._configured = True
        return genai.GenerativeModel(
            model_name=model_name,
            generation_config={
                "temperature": self._settings.temperature,
                "max_output_tokens": self._settings.max_tokens,
            },
        )

    @property
    def models(self) -> list[str]:
        return self._settings.receipt_models_list

    async def analyze(self, image_bytes: bytes, mime_type: str = "image/jpeg") -> ReceiptData:
        """
        Read a receipt photo.

        Returns:
            ReceiptData from the first model that produced usable JSON

        Raises:
            AllModelsFailedError: If every model failed
        """
        tried = []
        last_error: Optional[Exception] = None

        for model_name in self.models:
            tried.append(model_name)
            try:
                model = self._model_factory(model_name)
                response = await model.generate_content_async([
                    RECEIPT_PROMPT,
                    {"mime_type": mime_type, "data": image_bytes},
                ])
                return parse_receipt_response(response.text, model_name)
            except Exception as e:
                last_error = e
                logger.warning(
                    "receipt_model_failed",
                    model=model_name,
                    error=str(e),
                )

        raise AllModelsFailedError(
            tried_models=tried,
            message=f"Could not read the receipt with any model: {last_error}",
        )
