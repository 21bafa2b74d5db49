"""
Receipt Extraction using Gemini Vision

This service handles:
1. Checking the image payload (image mime type, size limit)
2. Sending the image to Gemini with a fixed extraction instruction
3. Parsing the loosely-typed JSON reply into ReceiptFields
4. Classifying provider failures into user-facing messages

CRITICAL: The extracted fields are a PROPOSAL. This service never
writes a transaction; the scan flow hands the fields to the user,
who confirms (or edits) them before they are saved.

Exactly one model call per scan. No retries: a failed scan is
reported and the user decides whether to try again.
"""

import json
import math
import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Optional, Union

import google.generativeai as genai
import structlog
from dateutil import parser as date_parser

from src.config import get_settings
from src.models.receipt import (
    ImagePayload,
    ParsedError,
    ParsedOk,
    ParsedReceipt,
    ReceiptFields,
    ScanErrorKind,
    ScanResult,
)
from src.models.transaction import Category
from src.services.receipt.errors import (
    INVALID_IMAGE_MESSAGE,
    MISSING_API_KEY_MESSAGE,
    ErrorClassifier,
    ImageTooLargeError,
    InvalidImageError,
    MissingApiKeyError,
    ReceiptScanError,
)


logger = structlog.get_logger(__name__)

REQUIRED_FIELDS = ("name", "amount", "date", "category")
INCOMPLETE_DATA_MESSAGE = "AI returned incomplete data."
INVALID_AMOUNT_MESSAGE = "Invalid amount extracted from receipt."

_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_CODE_FENCE = re.compile(r"```(?:json)?\n?", re.IGNORECASE)


def build_extraction_prompt() -> str:
    """Instruction sent alongside the receipt image."""
    categories = ", ".join(Category.values())
    return f"""Analyze this receipt image and extract the following information:

1. name: The merchant name or a short description of the purchase
2. amount: The total amount paid, as a number (no currency symbol)
3. date: The date of the purchase in YYYY-MM-DD format
4. category: One of the following categories: {categories}

Respond with ONLY a JSON object in this exact format:
{{"name": "merchant name", "amount": 12.34, "date": "2024-01-31", "category": "Food"}}

If you are not sure about the category, use "Other"."""


def strip_code_fences(text: str) -> str:
    """Remove ```json / ``` markdown wrapping around a reply."""
    return _CODE_FENCE.sub("", text or "").strip()


def normalize_receipt_date(value: Any, today: date) -> str:
    """
    Return the receipt date as YYYY-MM-DD.

    Exact YYYY-MM-DD strings naming a real day pass through. Anything
    else goes through a generic date parse; unparseable values become
    `today`.
    """
    text = str(value).strip()
    if _ISO_DATE.match(text):
        try:
            return date.fromisoformat(text).isoformat()
        except ValueError:
            pass

    try:
        default = datetime(today.year, today.month, today.day)
        return date_parser.parse(text, default=default).date().isoformat()
    except (ValueError, OverflowError, TypeError):
        logger.warning("receipt_date_unparseable", raw_date=text)
        return today.isoformat()


def _parse_amount(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    if not amount.is_finite() or amount <= 0:
        return None
    result = float(amount)
    if not math.isfinite(result) or result <= 0:
        return None
    return result


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    return isinstance(value, str) and not value.strip()


def parse_receipt_response(text: str, today: Optional[date] = None) -> ParsedReceipt:
    """
    Parse the model's reply into ReceiptFields.

    Every field is checked for presence and range before the typed
    record is built; the reply's shape is never trusted.
    """
    today = today or date.today()
    cleaned = strip_code_fences(text)

    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        return ParsedError(
            reason=f"Failed to parse AI response. Raw error: {e}",
            error_kind=ScanErrorKind.PARSE,
        )

    if not isinstance(data, dict):
        return ParsedError(
            reason="Failed to parse AI response. Raw error: expected a JSON object",
            error_kind=ScanErrorKind.PARSE,
        )

    if any(_is_missing(data.get(field)) for field in REQUIRED_FIELDS):
        return ParsedError(reason=INCOMPLETE_DATA_MESSAGE)

    category = Category.lookup(str(data["category"]).strip())
    if category is None:
        logger.info("receipt_category_coerced", raw_category=data["category"])
        category = Category.OTHER

    amount = _parse_amount(data["amount"])
    if amount is None:
        return ParsedError(reason=INVALID_AMOUNT_MESSAGE)

    return ParsedOk(
        fields=ReceiptFields(
            name=str(data["name"]).strip(),
            amount=amount,
            date=normalize_receipt_date(data["date"], today),
            category=category,
        )
    )


class GeminiReceiptService:
    """
    Extracts transaction fields from a receipt image with Gemini.

    IMPORTANT BOUNDARIES:
    1. One outbound call per scan, no retry
    2. Never persists anything
    3. Never raises: every outcome is a ScanResult
    """

    def __init__(
        self,
        model: Optional[Any] = None,
        classifier: Optional[ErrorClassifier] = None,
        max_upload_bytes: Optional[int] = None,
        today: Optional[Callable[[], date]] = None,
    ):
        """
        Initialize the service.

        Args:
            model: Object with an async `generate_content_async`. Built
                   from settings on first use when omitted.
            classifier: Provider error classifier
            max_upload_bytes: Upload limit (defaults to settings)
            today: Clock used for the date fallback
        """
        self._model = model
        self._classifier = classifier or ErrorClassifier()
        self._app_settings = get_settings().app
        self._max_upload_bytes = max_upload_bytes or self._app_settings.max_upload_size_bytes
        self._today = today or date.today

    def _get_model(self):
        """Get or create the Gemini model."""
        if self._model is None:
            api_key = get_settings().gemini_api_key()
            if not api_key:
                raise MissingApiKeyError(MISSING_API_KEY_MESSAGE)
            gemini = get_settings().gemini
            genai.configure(api_key=api_key)
            self._model = genai.GenerativeModel(
                model_name=gemini.model_name,
                generation_config={
                    "temperature": gemini.temperature,
                    "max_output_tokens": gemini.max_tokens,
                },
            )
        return self._model

    def check_image(self, image: Union[ImagePayload, str]) -> ImagePayload:
        """
        Decode (if needed) and check an image payload.

        Raises:
            InvalidImageError: Not an image, or not decodable
            ImageTooLargeError: Over the upload limit
        """
        if isinstance(image, str):
            try:
                image = ImagePayload.from_data_url(image)
            except ValueError as e:
                raise InvalidImageError(INVALID_IMAGE_MESSAGE) from e

        if not image.is_image or not image.data:
            raise InvalidImageError(INVALID_IMAGE_MESSAGE)

        if image.size_bytes > self._max_upload_bytes:
            limit_mb = self._max_upload_bytes // (1024 * 1024)
            raise ImageTooLargeError(
                f"Image file is too large. Please select an image smaller than {limit_mb}MB."
            )
        return image

    async def scan(self, image: Union[ImagePayload, str]) -> ScanResult:
        """
        Extract receipt fields from an image.

        Args:
            image: ImagePayload or a `data:image/...;base64,...` URL

        Returns:
            ScanResult with the fields, or a classified failure
        """
        try:
            payload = self.check_image(image)
            model = self._get_model()
        except ReceiptScanError as e:
            return ScanResult.fail(e.kind, str(e))

        try:
            response = await model.generate_content_async(
                [
                    build_extraction_prompt(),
                    {"mime_type": payload.mime_type, "data": payload.data},
                ]
            )
            text = response.text
        except Exception as e:
            kind, message = self._classifier.classify(e)
            logger.warning(
                "receipt_scan_provider_error",
                error_kind=kind.value,
                error=str(e),
            )
            return ScanResult.fail(kind, message)

        parsed = parse_receipt_response(text, today=self._today())
        if isinstance(parsed, ParsedError):
            logger.warning("receipt_scan_parse_failed", reason=parsed.reason)
            return ScanResult.fail(parsed.error_kind, parsed.reason)

        return ScanResult.ok(parsed.fields)
