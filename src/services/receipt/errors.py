"""
Receipt Scan Errors and Provider Error Classification

Provider failures arrive as exceptions whose only reliable signal is
the message text. The classifier walks an ordered table of substring
rules and the first match decides the user-facing message. Anything
unmatched surfaces its raw message.

New rules can be added with `ErrorClassifier.register()` without
touching the call sites.
"""

from dataclasses import dataclass
from typing import Iterable, Optional, Union

from src.models.receipt import ScanErrorKind


class ReceiptScanError(Exception):
    """Base exception for receipt scanning."""

    kind = ScanErrorKind.UPSTREAM


class InvalidImageError(ReceiptScanError):
    """Payload is not a decodable image."""

    kind = ScanErrorKind.INVALID_INPUT


class ImageTooLargeError(ReceiptScanError):
    """Payload exceeds the configured upload limit."""

    kind = ScanErrorKind.INVALID_INPUT


class MissingApiKeyError(ReceiptScanError):
    """Gemini is not configured."""

    kind = ScanErrorKind.CONFIGURATION


INVALID_IMAGE_MESSAGE = "Invalid image format. Please select a valid image file."
MISSING_API_KEY_MESSAGE = (
    "Gemini API key not configured. Please add GEMINI_API_KEY to your .env file."
)


@dataclass(frozen=True)
class ErrorRule:
    """
    One row of the classification table.

    `message` may contain `{raw}`, replaced with the original error text.
    """

    patterns: tuple[str, ...]
    kind: ScanErrorKind
    message: str

    def matches(self, text: str) -> bool:
        return any(pattern in text for pattern in self.patterns)

    def render(self, raw: str) -> str:
        return self.message.format(raw=raw)


DEFAULT_ERROR_RULES: tuple[ErrorRule, ...] = (
    ErrorRule(
        patterns=("API key", "API_KEY"),
        kind=ScanErrorKind.AUTHENTICATION,
        message="Invalid API key. Please check your Gemini API configuration.",
    ),
    ErrorRule(
        patterns=("JSON", "parse"),
        kind=ScanErrorKind.PARSE,
        message="Failed to parse AI response. Raw error: {raw}",
    ),
    ErrorRule(
        patterns=("quota", "limit", "QUOTA"),
        kind=ScanErrorKind.QUOTA,
        message="API quota exceeded. Please try again later.",
    ),
    ErrorRule(
        patterns=("PERMISSION_DENIED",),
        kind=ScanErrorKind.PERMISSION,
        message="API access denied. Please check your API key permissions.",
    ),
    ErrorRule(
        patterns=("INVALID_ARGUMENT",),
        kind=ScanErrorKind.INVALID_ARGUMENT,
        message="Invalid image format. Please try with a different image.",
    ),
    ErrorRule(
        patterns=("UNAVAILABLE", "network"),
        kind=ScanErrorKind.UNAVAILABLE,
        message="Service temporarily unavailable. Please try again.",
    ),
)


class ErrorClassifier:
    """
    Maps provider error messages to (kind, user-facing message).

    Rules are tested in order; the first match wins.
    """

    def __init__(
        self,
        rules: Optional[Iterable[ErrorRule]] = None,
        default_kind: ScanErrorKind = ScanErrorKind.UPSTREAM,
        default_message: str = "Scan failed: {raw}",
    ):
        self._rules = list(DEFAULT_ERROR_RULES if rules is None else rules)
        self._default_kind = default_kind
        self._default_message = default_message

    @property
    def rules(self) -> tuple[ErrorRule, ...]:
        return tuple(self._rules)

    def register(self, rule: ErrorRule, position: Optional[int] = None) -> None:
        """Add a rule at the end of the table, or at `position`."""
        if position is None:
            self._rules.append(rule)
        else:
            self._rules.insert(position, rule)

    def classify(self, error: Union[BaseException, str]) -> tuple[ScanErrorKind, str]:
        raw = str(error)
        for rule in self._rules:
            if rule.matches(raw):
                return rule.kind, rule.render(raw)
        return self._default_kind, self._default_message.format(raw=raw)
