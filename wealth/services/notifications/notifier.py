"""
Notification Delivery

DESIGN DECISION: Jobs build a Notification and hand it to a notifier.
Delivery is behind an interface so that:
1. Deployments without SMTP still run every job (notifications are logged)
2. Tests can capture notifications instead of sending mail
"""

import asyncio
import smtplib
from abc import ABC, abstractmethod
from decimal import Decimal
from email.message import EmailMessage
from typing import Optional

import structlog
from pydantic import BaseModel, Field
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from wealth.config import get_settings
from wealth.models.finance import FinancialInsight, User


logger = structlog.get_logger(__name__)


class Notification(BaseModel):
    """An outgoing message to one user."""

    to: str = Field(..., min_length=3)
    subject: str = Field(..., max_length=200)
    body: str
    kind: str = Field(..., description="budget_alert or monthly_report")


class NotifierInterface(ABC):
    """Delivers notifications."""

    @abstractmethod
    async def send(self, notification: Notification) -> bool:
        """
        Deliver a notification.

        Returns:
            True if the notification was handed off
        """
        pass


class LoggingNotifier(NotifierInterface):
    """Writes notifications to the structured log instead of sending them."""

    async def send(self, notification: Notification) -> bool:
        logger.info(
            "notification_logged",
            to=notification.to,
            subject=notification.subject,
            kind=notification.kind,
        )
        return True


class SMTPNotifier(NotifierInterface):
    """Sends notifications as plain-text email."""

    def __init__(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        use_tls: Optional[bool] = None,
        sender: Optional[str] = None,
    ):
        settings = get_settings().notifications
        self._host = host or settings.host
        self._port = port or settings.port
        self._username = username or settings.username
        self._password = password or settings.password
        self._use_tls = settings.use_tls if use_tls is None else use_tls
        self._sender = sender or settings.sender

    def _build_message(self, notification: Notification) -> EmailMessage:
        message = EmailMessage()
        message["From"] = self._sender
        message["To"] = notification.to
        message["Subject"] = notification.subject
        message.set_content(notification.body)
        return message

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type((smtplib.SMTPException, OSError)),
        reraise=True,
    )
    def _deliver(self, message: EmailMessage) -> None:
        with smtplib.SMTP(self._host, self._port, timeout=30) as smtp:
            if self._use_tls:
                smtp.starttls()
            if self._username and self._password:
                smtp.login(self._username, self._password)
            smtp.send_message(message)

    async def send(self, notification: Notification) -> bool:
        try:
            await asyncio.to_thread(self._deliver, self._build_message(notification))
        except (smtplib.SMTPException, OSError) as e:
            logger.error(
                "notification_failed",
                to=notification.to,
                kind=notification.kind,
                error=str(e),
            )
            return False

        logger.info("notification_sent", to=notification.to, kind=notification.kind)
        return True


def create_notifier() -> NotifierInterface:
    """SMTP when configured, otherwise log-only."""
    if get_settings().notifications.is_configured:
        return SMTPNotifier()
    return LoggingNotifier()


def _money(value: Decimal | float) -> str:
    symbol = get_settings().app.currency_symbol
    return f"{symbol}{float(value):,.2f}"


def budget_alert_notification(
    user: User,
    account_name: str,
    budget_amount: Decimal,
    total_expenses: Decimal,
    percent_used: float,
) -> Notification:
    remaining = budget_amount - total_expenses
    body = "\n".join([
        f"Hi {user.name or 'there'},",
        "",
        f"You've used {percent_used:.1f}% of your monthly budget on {account_name}.",
        "",
        f"Budget: {_money(budget_amount)}",
        f"Spent so far: {_money(total_expenses)}",
        f"Remaining: {_money(remaining)}",
    ])
    return Notification(
        to=user.email,
        subject=f"Budget Alert for {account_name}",
        body=body,
        kind="budget_alert",
    )


def monthly_report_notification(user: User, insight: FinancialInsight) -> Notification:
    lines = [
        f"Hi {user.name or 'there'},",
        "",
        f"Here's your financial summary for {insight.month} {insight.year}.",
        "",
        f"Total income: {_money(insight.total_income)}",
        f"Total expenses: {_money(insight.total_expenses)}",
        f"Net: {_money(insight.net_income)}",
    ]
    if insight.categories:
        lines += ["", "Expenses by category:"]
        for category, amount in sorted(insight.categories.items(), key=lambda kv: -kv[1]):
            lines.append(f"  {category}: {_money(amount)}")
    if insight.insights:
        lines += ["", "Insights:"]
        lines += [f"  - {text}" for text in insight.insights]

    return Notification(
        to=user.email,
        subject=f"Your Monthly Financial Report - {insight.month} {insight.year}",
        body="\n".join(lines),
        kind="monthly_report",
    )
