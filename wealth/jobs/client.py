"""
Inngest client for the `wealth` app.
"""

import logging
from typing import Optional

import inngest

from wealth.config import get_settings


RECURRING_PROCESS_EVENT = "transaction.recurring.process"

# Inngest retries failed steps with exponential backoff on its side;
# two retries after the first attempt.
FUNCTION_RETRIES = 2


def create_inngest_client(logger: Optional[logging.Logger] = None) -> inngest.Inngest:
    settings = get_settings().inngest
    return inngest.Inngest(
        app_id=settings.app_id,
        is_production=settings.is_production,
        event_key=settings.event_key,
        signing_key=settings.signing_key,
        logger=logger or logging.getLogger("wealth.jobs"),
    )
