"""Receipt extraction package."""

from src.services.receipt.errors import (
    DEFAULT_ERROR_RULES,
    ErrorClassifier,
    ErrorRule,
    ImageTooLargeError,
    InvalidImageError,
    MissingApiKeyError,
    ReceiptScanError,
)
from src.services.receipt.gemini_service import (
    GeminiReceiptService,
    build_extraction_prompt,
    normalize_receipt_date,
    parse_receipt_response,
    strip_code_fences,
)

__all__ = [
    "DEFAULT_ERROR_RULES",
    "ErrorClassifier",
    "ErrorRule",
    "GeminiReceiptService",
    "ImageTooLargeError",
    "InvalidImageError",
    "MissingApiKeyError",
    "ReceiptScanError",
    "build_extraction_prompt",
    "normalize_receipt_date",
    "parse_receipt_response",
    "strip_code_fences",
]
