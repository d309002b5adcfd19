"""
Receipt Parsing Agent

CRITICAL BOUNDARIES:
- CAN: Read a receipt image and propose amount, merchant, items,
  category and date
- CANNOT: Save anything. The proposal only pre-fills the transaction
  form and the user submits it
- MUST: Return a null-filled result instead of guessing when the model
  output is unusable

The vision model is a READER, not a BOOKKEEPER.
"""

import json
import re
from typing import Any, Optional

import structlog
from pydantic import ValidationError

from wealth.agents.gemini import build_model, generate_text
from wealth.config import get_settings
from wealth.models.finance import ParsedReceipt


logger = structlog.get_logger(__name__)


RECEIPT_CATEGORIES = [
    "Grocery", "Food", "Restaurant", "Transport", "Fuel",
    "Shopping", "Bills", "Health", "Entertainment", "Other",
]

RECEIPT_PROMPT = f"""You are an expert receipt parser. Analyze this receipt image carefully and extract ALL the following information:

IMPORTANT: Look at the actual receipt in the image. Extract REAL data, not placeholder text.

Return ONLY a valid JSON object with these exact fields:
{{
  "amount": <the total amount as a number, e.g. 123.45, or null if not visible>,
  "merchantName": "<name of the store/restaurant/business>",
  "description": "<list of main items purchased, separated by comma>",
  "category": "<category: choose from {', '.join(RECEIPT_CATEGORIES)}>",
  "date": "<date in YYYY-MM-DD format if visible, otherwise null>"
}}

RULES:
1. amount: Extract the TOTAL/GRAND TOTAL value as a number only (no currency symbol)
2. merchantName: The business/store name (NOT generic text like "Receipt" or "Invoice")
3. description: What was purchased (items, products, services)
4. category: Pick the MOST APPROPRIATE category based on merchant and items
5. date: Extract the date if visible, format as YYYY-MM-DD
6. Return ONLY the JSON object, no markdown, no code blocks, no extra text

If any field is not visible or unclear, set to null.
Be accurate and extract real values from the receipt image."""

UNPARSEABLE_MESSAGE = (
    "Could not parse receipt. Please ensure the image is clear and contains a valid receipt."
)
UNREADABLE_MESSAGE = (
    "Receipt image not readable. Please try with better lighting or a clearer image."
)

# Merchant names the model produces when it can't actually read the image
PLACEHOLDER_MERCHANTS = {"Receipt parsed", "Unknown merchant"}


def extract_json_object(text: str) -> str:
    """Strip markdown fences and keep the outermost {...} block."""
    cleaned = text.strip()
    if "```" in cleaned:
        cleaned = re.sub(r"```json\n?", "", cleaned)
        cleaned = re.sub(r"```\n?", "", cleaned).strip()

    match = re.search(r"\{[\s\S]*\}", cleaned)
    if match:
        cleaned = match.group(0)
    return cleaned


def parse_receipt_response(text: str) -> ParsedReceipt:
    """
    Turn raw model output into a ParsedReceipt.

    Never raises: unusable output becomes a null-filled receipt whose
    description tells the user what went wrong.
    """
    try:
        data = json.loads(extract_json_object(text))
    except json.JSONDecodeError:
        logger.warning("receipt_json_invalid", raw=text[:200])
        return ParsedReceipt.unreadable(UNPARSEABLE_MESSAGE)

    if not isinstance(data, dict):
        logger.warning("receipt_json_not_object", raw=text[:200])
        return ParsedReceipt.unreadable(UNPARSEABLE_MESSAGE)

    merchant = data.get("merchantName")
    if merchant in PLACEHOLDER_MERCHANTS or (not data.get("amount") and not merchant):
        logger.warning("receipt_placeholder_data", merchant=merchant)
        return ParsedReceipt.unreadable(UNREADABLE_MESSAGE)

    try:
        return ParsedReceipt.model_validate(data)
    except ValidationError as e:
        logger.warning("receipt_fields_invalid", error=str(e))
        return ParsedReceipt.unreadable(UNPARSEABLE_MESSAGE)


class ReceiptParsingAgent:
    """
    Sends receipt images to the Gemini vision model.

    BOUNDARIES:
    - NEVER persists data
    - NEVER fills in fields the model did not read
    """

    def __init__(self, model: Optional[Any] = None):
        self._settings = get_settings().gemini
        self._model = model

    @property
    def is_configured(self) -> bool:
        return self._model is not None or self._settings.is_configured

    def _get_model(self) -> Any:
        if self._model is None:
            self._model = build_model(
                self._settings.vision_model_name,
                max_output_tokens=self._settings.max_tokens,
            )
        return self._model

    async def parse_receipt(
        self,
        image_bytes: bytes,
        mime_type: Optional[str] = None,
    ) -> ParsedReceipt:
        """
        Extract receipt fields from an image.

        The SDK base64-encodes the inline image data on the wire.

        Raises:
            AIConfigurationError: If no API key is configured
            Exception: Whatever the API call raises after retries
        """
        model = self._get_model()
        text = await generate_text(
            model,
            [
                RECEIPT_PROMPT,
                {"mime_type": mime_type or "image/jpeg", "data": image_bytes},
            ],
        )
        logger.info("receipt_model_responded", size_bytes=len(image_bytes), chars=len(text))
        return parse_receipt_response(text)
