"""
Tests for the Gemini receipt adapter.

Gemini is replaced by FakeModel; no network calls are made.
"""

import json
from datetime import date

import pytest

from src.models import Category, ImagePayload, ParsedError, ParsedOk, ScanErrorKind
from src.services.receipt import (
    ErrorClassifier,
    ErrorRule,
    GeminiReceiptService,
    normalize_receipt_date,
    parse_receipt_response,
    strip_code_fences,
)
from tests.factories import FakeModel


TODAY = date(2024, 11, 15)
PNG = ImagePayload(mime_type="image/png", data=b"\x89PNG\r\n\x1a\n fake image")


def reply(**fields):
    return json.dumps(fields)


def make_service(model, **kwargs):
    return GeminiReceiptService(model=model, today=lambda: TODAY, **kwargs)


class TestResponseParsing:
    """The model's reply is never trusted."""

    def test_strip_code_fences(self):
        assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'
        assert strip_code_fences('```\n{"a": 1}```') == '{"a": 1}'
        assert strip_code_fences('{"a": 1}') == '{"a": 1}'

    def test_fenced_reply_parses(self):
        text = "```json\n" + reply(name="Corner Shop", amount=12.5, date="2024-11-03", category="Groceries") + "\n```"
        parsed = parse_receipt_response(text, TODAY)
        assert isinstance(parsed, ParsedOk)
        assert parsed.fields.name == "Corner Shop"
        assert parsed.fields.amount == 12.5
        assert parsed.fields.category is Category.GROCERIES

    def test_unknown_category_becomes_other(self):
        parsed = parse_receipt_response(
            reply(name="Vet", amount=40, date="2024-11-03", category="Pets"), TODAY
        )
        assert parsed.fields.category is Category.OTHER

    @pytest.mark.parametrize("missing", ["name", "amount", "date", "category"])
    def test_missing_field(self, missing):
        fields = {"name": "Shop", "amount": 5, "date": "2024-11-03", "category": "Food"}
        del fields[missing]
        parsed = parse_receipt_response(json.dumps(fields), TODAY)
        assert isinstance(parsed, ParsedError)
        assert parsed.reason == "AI returned incomplete data."
        assert parsed.error_kind == ScanErrorKind.INVALID_DATA

    def test_blank_name_is_missing(self):
        parsed = parse_receipt_response(
            reply(name="  ", amount=5, date="2024-11-03", category="Food"), TODAY
        )
        assert parsed.reason == "AI returned incomplete data."

    @pytest.mark.parametrize("amount", [0, -3, "abc", True, "NaN"])
    def test_invalid_amount(self, amount):
        parsed = parse_receipt_response(
            reply(name="Shop", amount=amount, date="2024-11-03", category="Food"), TODAY
        )
        assert isinstance(parsed, ParsedError)
        assert parsed.reason == "Invalid amount extracted from receipt."

    def test_numeric_string_amount(self):
        parsed = parse_receipt_response(
            reply(name="Shop", amount="12.50", date="2024-11-03", category="Food"), TODAY
        )
        assert parsed.fields.amount == 12.5

    def test_not_json(self):
        parsed = parse_receipt_response("I could not read this receipt", TODAY)
        assert parsed.error_kind == ScanErrorKind.PARSE
        assert parsed.reason.startswith("Failed to parse AI response.")

    def test_json_array_rejected(self):
        parsed = parse_receipt_response("[1, 2, 3]", TODAY)
        assert parsed.error_kind == ScanErrorKind.PARSE


class TestDateNormalization:
    """Receipt dates always come back as YYYY-MM-DD."""

    @pytest.mark.parametrize("raw, expected", [
        ("2024-11-03", "2024-11-03"),
        ("Nov 3, 2024", "2024-11-03"),
        ("2024/11/03", "2024-11-03"),
        ("illegible", "2024-11-15"),
        ("2024-02-30", "2024-11-15"),
    ])
    def test_normalize(self, raw, expected):
        assert normalize_receipt_date(raw, TODAY) == expected


class TestErrorClassifier:
    """Provider errors map to kinds by ordered substring rules."""

    @pytest.mark.parametrize("raw, kind", [
        ("400 API key not valid. Please pass a valid API key.", ScanErrorKind.AUTHENTICATION),
        ("Could not parse model output", ScanErrorKind.PARSE),
        ("429 Resource has been exhausted (e.g. check quota).", ScanErrorKind.QUOTA),
        ("403 PERMISSION_DENIED", ScanErrorKind.PERMISSION),
        ("400 INVALID_ARGUMENT", ScanErrorKind.INVALID_ARGUMENT),
        ("503 UNAVAILABLE", ScanErrorKind.UNAVAILABLE),
        ("network is unreachable", ScanErrorKind.UNAVAILABLE),
    ])
    def test_default_rules(self, raw, kind):
        assert ErrorClassifier().classify(RuntimeError(raw))[0] == kind

    def test_first_match_wins(self):
        kind, message = ErrorClassifier().classify("API_KEY_INVALID: quota project not set")
        assert kind == ScanErrorKind.AUTHENTICATION
        assert message == "Invalid API key. Please check your Gemini API configuration."

    def test_parse_message_includes_raw(self):
        _, message = ErrorClassifier().classify("JSON decode failure")
        assert message == "Failed to parse AI response. Raw error: JSON decode failure"

    def test_unmatched_falls_through(self):
        kind, message = ErrorClassifier().classify(RuntimeError("boom"))
        assert kind == ScanErrorKind.UPSTREAM
        assert message == "Scan failed: boom"

    def test_registered_rule_takes_priority(self):
        classifier = ErrorClassifier()
        classifier.register(
            ErrorRule(patterns=("DEADLINE_EXCEEDED",), kind=ScanErrorKind.UNAVAILABLE, message="Timed out."),
            position=0,
        )
        assert classifier.classify("504 DEADLINE_EXCEEDED")[1] == "Timed out."


class TestScan:
    """End-to-end scans against a fake model."""

    async def test_success_makes_one_call(self):
        model = FakeModel(text=reply(name="Starbucks", amount=4.5, date="2024-11-03", category="Food"))
        result = await make_service(model).scan(PNG)

        assert result.success
        assert result.data.name == "Starbucks"
        assert result.data.date == "2024-11-03"
        assert len(model.calls) == 1
        prompt, image = model.calls[0]
        assert "YYYY-MM-DD" in prompt
        assert image == {"mime_type": "image/png", "data": PNG.data}

    async def test_data_url_input(self):
        model = FakeModel(text=reply(name="Shop", amount=1, date="2024-11-03", category="Food"))
        result = await make_service(model).scan(PNG.to_data_url())
        assert result.success

    async def test_non_image_rejected_before_call(self):
        model = FakeModel(text="{}")
        result = await make_service(model).scan(ImagePayload(mime_type="application/pdf", data=b"%PDF"))

        assert result.error_kind == ScanErrorKind.INVALID_INPUT
        assert result.error == "Invalid image format. Please select a valid image file."
        assert model.calls == []

    async def test_bad_data_url_rejected(self):
        model = FakeModel(text="{}")
        result = await make_service(model).scan("data:text/plain;base64,aGVsbG8=")
        assert result.error_kind == ScanErrorKind.INVALID_INPUT
        assert model.calls == []

    async def test_oversized_image_rejected(self):
        model = FakeModel(text="{}")
        service = make_service(model, max_upload_bytes=1024 * 1024)
        big = ImagePayload(mime_type="image/jpeg", data=b"x" * (1024 * 1024 + 1))

        result = await service.scan(big)
        assert result.error_kind == ScanErrorKind.INVALID_INPUT
        assert result.error == "Image file is too large. Please select an image smaller than 1MB."
        assert model.calls == []

    async def test_provider_error_classified(self):
        model = FakeModel(error=RuntimeError("429 quota exceeded"))
        result = await make_service(model).scan(PNG)

        assert not result.success
        assert result.error_kind == ScanErrorKind.QUOTA
        assert result.error == "API quota exceeded. Please try again later."
        assert len(model.calls) == 1

    async def test_bad_reply_is_a_failure(self):
        model = FakeModel(text=reply(name="Shop", amount=0, date="2024-11-03", category="Food"))
        result = await make_service(model).scan(PNG)
        assert result.error == "Invalid amount extracted from receipt."
        assert result.error_kind == ScanErrorKind.INVALID_DATA

    async def test_missing_api_key(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)

        result = await GeminiReceiptService().scan(PNG)
        assert result.error_kind == ScanErrorKind.CONFIGURATION
        assert "GEMINI_API_KEY" in result.error
