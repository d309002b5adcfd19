"""
Notification delivery for budget alerts and monthly reports.
"""

from wealth.services.notifications.notifier import (
    LoggingNotifier,
    Notification,
    NotifierInterface,
    SMTPNotifier,
    budget_alert_notification,
    create_notifier,
    monthly_report_notification,
)

__all__ = [
    "LoggingNotifier",
    "Notification",
    "NotifierInterface",
    "SMTPNotifier",
    "budget_alert_notification",
    "create_notifier",
    "monthly_report_notification",
]
