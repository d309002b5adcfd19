"""
Tests for receipt parsing.
"""

import pytest

from conftest import FakeModel, run
from wealth.agents import AIConfigurationError, ReceiptParsingAgent, parse_receipt_response
from wealth.agents.receipts import (
    RECEIPT_PROMPT,
    UNPARSEABLE_MESSAGE,
    UNREADABLE_MESSAGE,
    extract_json_object,
)
from wealth.config import get_settings


class TestExtractJsonObject:
    """Tests for cleaning model output."""

    def test_strips_markdown_fence(self):
        text = '```json\n{"amount": 1}\n```'
        assert extract_json_object(text) == '{"amount": 1}'

    def test_keeps_outer_object_from_chatty_output(self):
        text = 'Sure! Here it is: {"amount": 1, "merchantName": "A"} Hope that helps.'
        assert extract_json_object(text) == '{"amount": 1, "merchantName": "A"}'


class TestParseReceiptResponse:
    """Model output is never trusted and never raises."""

    def test_valid_response(self):
        parsed = parse_receipt_response(
            '{"amount": 23.1, "merchantName": "Corner Cafe", "description": "Latte",'
            ' "category": "Food", "date": "2024-05-01"}'
        )
        assert parsed.amount == 23.1
        assert parsed.merchant_name == "Corner Cafe"
        assert parsed.category == "Food"

    def test_invalid_json_is_null_filled(self):
        parsed = parse_receipt_response("I can't read this receipt, sorry.")
        assert parsed.to_response() == {
            "amount": None,
            "merchantName": None,
            "description": UNPARSEABLE_MESSAGE,
            "category": None,
            "date": None,
        }

    def test_json_array_is_unparseable(self):
        assert parse_receipt_response("[1, 2]").description == UNPARSEABLE_MESSAGE

    def test_placeholder_merchant_is_unreadable(self):
        parsed = parse_receipt_response('{"amount": 10, "merchantName": "Receipt parsed"}')
        assert parsed.description == UNREADABLE_MESSAGE
        assert parsed.amount is None

    def test_no_amount_and_no_merchant_is_unreadable(self):
        parsed = parse_receipt_response('{"amount": null, "merchantName": null, "description": "?"}')
        assert parsed.description == UNREADABLE_MESSAGE


class TestReceiptParsingAgent:
    """Tests for the vision agent with a fake model."""

    def test_sends_prompt_and_inline_image(self):
        model = FakeModel('{"amount": 5, "merchantName": "Kiosk"}')
        agent = ReceiptParsingAgent(model=model)

        parsed = run(agent.parse_receipt(b"\x89PNG...", "image/png"))

        assert parsed.merchant_name == "Kiosk"
        prompt, image = model.calls[0]
        assert prompt == RECEIPT_PROMPT
        assert image == {"mime_type": "image/png", "data": b"\x89PNG..."}

    def test_defaults_to_jpeg(self):
        model = FakeModel('{"amount": 5, "merchantName": "Kiosk"}')
        run(ReceiptParsingAgent(model=model).parse_receipt(b"data"))
        assert model.calls[0][1]["mime_type"] == "image/jpeg"

    def test_model_errors_propagate(self):
        agent = ReceiptParsingAgent(model=FakeModel(RuntimeError("quota")))
        with pytest.raises(RuntimeError, match="quota"):
            run(agent.parse_receipt(b"data"))

    def test_missing_api_key(self, monkeypatch):
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        monkeypatch.setattr(get_settings().__class__, "gemini", property(lambda self: _NoKey()))
        agent = ReceiptParsingAgent()

        assert agent.is_configured is False
        with pytest.raises(AIConfigurationError, match="API key not configured"):
            run(agent.parse_receipt(b"data"))


class _NoKey:
    api_key = None
    is_configured = False
    vision_model_name = "gemini-2.0-flash"
    model_name = "gemini-1.5-flash"
    max_tokens = 1024
    temperature = 0.2
