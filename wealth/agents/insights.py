"""
Insight Agent

Turns one month of figures into three short pieces of advice.

CRITICAL BOUNDARIES:
- The model only sees totals the app computed; it never sees raw
  transactions and never produces numbers that get stored
- On any failure the caller falls back to templated sentences built
  from the same totals
"""

import json
import re
from typing import Any, Optional

import structlog

from wealth.agents.gemini import build_model, generate_text
from wealth.config import get_settings
from wealth.models.finance import InsightRequest


logger = structlog.get_logger(__name__)


def savings_rate(total_income: float, total_expenses: float) -> float:
    """Percentage of income kept; 0 when there is no income."""
    if total_income <= 0:
        return 0.0
    return (total_income - total_expenses) / total_income * 100


def build_insight_prompt(request: InsightRequest, currency: str = "$") -> str:
    net = request.total_income - request.total_expenses
    rate = (
        f"{savings_rate(request.total_income, request.total_expenses):.1f}"
        if request.total_income > 0
        else "0"
    )
    categories = ", ".join(
        f"{name}: {currency}{amount:.2f}" for name, amount in request.categories.items()
    )
    return f"""
Analyze this financial data and provide 3 concise, actionable insights.
Focus on spending patterns and practical advice.
Keep it friendly and conversational.

Financial Data for {request.month} {request.year}:
- Total Income: {currency}{request.total_income:.2f}
- Total Expenses: {currency}{request.total_expenses:.2f}
- Net Income: {currency}{net:.2f}
- Savings Rate: {rate}%
- Expense Categories: {categories}

Format the response as a JSON array of strings, like this:
["insight 1", "insight 2", "insight 3"]
"""


def parse_insights(text: str) -> list[str]:
    """
    Parse the model's JSON array.

    Raises:
        ValueError: If the text is not a JSON array of strings
    """
    cleaned = re.sub(r"```(?:json)?\n?", "", text).strip()
    data = json.loads(cleaned)
    if not isinstance(data, list) or not all(isinstance(item, str) for item in data):
        raise ValueError("Expected a JSON array of insight strings")
    return data


def fallback_insights(
    total_income: float,
    total_expenses: float,
    currency: str = "$",
) -> list[str]:
    """Templated insights used when the model can't be reached or parsed."""
    net = total_income - total_expenses
    return [
        f"Your spending was {currency}{total_expenses:.2f} this month. "
        "Consider reviewing high-expense categories.",
        f"Net income after expenses: {currency}{net:.2f}. "
        "Focus on maintaining positive cash flow.",
        "Track recurring expenses and identify opportunities to reduce spending "
        "in non-essential categories.",
    ]


class InsightAgent:
    """
    Generates monthly spending insights with Gemini.
    """

    def __init__(self, model: Optional[Any] = None):
        self._settings = get_settings().gemini
        self._currency = get_settings().app.currency_symbol
        self._model = model

    @property
    def is_configured(self) -> bool:
        return self._model is not None or self._settings.is_configured

    @property
    def currency(self) -> str:
        return self._currency

    def _get_model(self) -> Any:
        if self._model is None:
            self._model = build_model(
                self._settings.model_name,
                max_output_tokens=self._settings.max_tokens,
            )
        return self._model

    async def generate_insights(self, request: InsightRequest) -> list[str]:
        """
        Ask the model for insights on one month.

        Raises:
            AIConfigurationError: If no API key is configured
            ValueError: If the response is not a JSON array of strings
        """
        model = self._get_model()
        text = await generate_text(model, build_insight_prompt(request, self._currency))
        insights = parse_insights(text)
        logger.info("insights_model_responded", month=request.month, year=request.year, count=len(insights))
        return insights
