"""
Background jobs: Inngest client, functions and their plain bodies.
"""

from wealth.jobs.client import RECURRING_PROCESS_EVENT, create_inngest_client
from wealth.jobs.functions import create_functions
from wealth.jobs.tasks import JobTasks

__all__ = [
    "JobTasks",
    "RECURRING_PROCESS_EVENT",
    "create_functions",
    "create_inngest_client",
]
