"""
Receipt Scan Models

CRITICAL: Fields extracted from a receipt are PROPOSED data.
They pre-fill the transaction form and the user confirms them;
nothing here is ever persisted directly.
"""

import base64
import binascii
import re
from datetime import date
from enum import Enum
from typing import Literal, Optional, Union

from pydantic import BaseModel, Field

from src.models.transaction import Category, TransactionForm


_DATA_URL_PATTERN = re.compile(r"^data:(image/[\w.+-]+);base64,(.+)$", re.DOTALL)


class ScanStep(str, Enum):
    """States of the receipt scan flow."""
    CHOOSE = "choose"
    CAPTURING = "capturing"
    LOADING = "loading"
    CONFIRM = "confirm"
    ERROR = "error"


class ScanErrorKind(str, Enum):
    """Classification of a failed scan."""
    INVALID_INPUT = "invalid_input"
    CONFIGURATION = "configuration"
    AUTHENTICATION = "authentication"
    PARSE = "parse"
    QUOTA = "quota"
    PERMISSION = "permission"
    INVALID_ARGUMENT = "invalid_argument"
    UNAVAILABLE = "unavailable"
    INVALID_DATA = "invalid_data"
    UPSTREAM = "upstream"


class ImagePayload(BaseModel):
    """An encoded image plus its mime type."""

    mime_type: str = Field(..., description="e.g. image/jpeg")
    data: bytes = Field(..., description="Raw image bytes")

    @property
    def size_bytes(self) -> int:
        return len(self.data)

    @property
    def is_image(self) -> bool:
        return self.mime_type.lower().startswith("image/")

    @classmethod
    def from_data_url(cls, data_url: str) -> "ImagePayload":
        """
        Decode a `data:image/<type>;base64,<payload>` URL.

        Raises:
            ValueError: If the URL is not a base64 image data URL
        """
        match = _DATA_URL_PATTERN.match(data_url or "")
        if not match:
            raise ValueError("Not a base64 image data URL")
        mime_type, payload = match.groups()
        try:
            data = base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ValueError(f"Invalid base64 payload: {e}") from e
        return cls(mime_type=mime_type, data=data)

    def to_data_url(self) -> str:
        encoded = base64.b64encode(self.data).decode("ascii")
        return f"data:{self.mime_type};base64,{encoded}"


class ReceiptFields(BaseModel):
    """Normalized fields extracted from a receipt."""

    name: str = Field(..., min_length=1)
    amount: float = Field(..., gt=0)
    date: str = Field(
        ...,
        pattern=r"^\d{4}-\d{2}-\d{2}$",
        description="YYYY-MM-DD"
    )
    category: Category = Category.OTHER

    def to_form(self, **overrides) -> TransactionForm:
        """
        Build the transaction form the user confirms.

        `overrides` holds any fields the user edited before saving.
        """
        values = {
            "name": self.name,
            "amount": f"{self.amount:.2f}",
            "category": self.category.value,
            "date": date.fromisoformat(self.date),
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return TransactionForm(**values)


class ParsedOk(BaseModel):
    kind: Literal["ok"] = "ok"
    fields: ReceiptFields


class ParsedError(BaseModel):
    kind: Literal["error"] = "error"
    reason: str
    error_kind: ScanErrorKind = ScanErrorKind.INVALID_DATA


ParsedReceipt = Union[ParsedOk, ParsedError]


class ScanResult(BaseModel):
    """Outcome of one receipt scan, in the uniform result shape."""

    success: bool
    data: Optional[ReceiptFields] = None
    error: Optional[str] = None
    error_kind: Optional[ScanErrorKind] = None

    @classmethod
    def ok(cls, fields: ReceiptFields) -> "ScanResult":
        return cls(success=True, data=fields)

    @classmethod
    def fail(cls, kind: ScanErrorKind, message: str) -> "ScanResult":
        return cls(success=False, error=message, error_kind=kind)
