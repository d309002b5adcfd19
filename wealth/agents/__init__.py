"""
AI agents module.
"""

from wealth.agents.gemini import AIConfigurationError
from wealth.agents.insights import InsightAgent, fallback_insights, savings_rate
from wealth.agents.receipts import ReceiptParsingAgent, parse_receipt_response

__all__ = [
    "AIConfigurationError",
    "InsightAgent",
    "ReceiptParsingAgent",
    "fallback_insights",
    "parse_receipt_response",
    "savings_rate",
]
