"""
Shared Gemini plumbing for the agents.
"""

from typing import Any

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from wealth.config import get_settings


# Transient API failures worth another attempt. Anything else (bad
# request, blocked prompt, bad key) fails immediately.
RETRYABLE_ERRORS = (
    google_exceptions.ResourceExhausted,
    google_exceptions.ServiceUnavailable,
    google_exceptions.DeadlineExceeded,
    google_exceptions.InternalServerError,
)


class AIConfigurationError(Exception):
    """No Gemini API key is configured."""
    pass


def build_model(model_name: str, max_output_tokens: int) -> genai.GenerativeModel:
    """
    Configure the SDK and return a model handle.

    Raises:
        AIConfigurationError: If GEMINI_API_KEY is not set
    """
    settings = get_settings().gemini
    if not settings.is_configured:
        raise AIConfigurationError("API key not configured")

    genai.configure(api_key=settings.api_key)
    return genai.GenerativeModel(
        model_name=model_name,
        generation_config={
            "temperature": settings.temperature,
            "max_output_tokens": max_output_tokens,
        },
    )


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    retry=retry_if_exception_type(RETRYABLE_ERRORS),
    reraise=True,
)
async def generate_text(model: Any, contents: Any) -> str:
    """Call the model and return the response text."""
    response = await model.generate_content_async(contents)
    return response.text
