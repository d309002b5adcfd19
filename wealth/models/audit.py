"""
Audit Models for Wealth

Every mutating action in the system is logged for audit purposes.
This provides:
1. Traceability of every balance change
2. Debugging information when a job or action fails
3. A history the user can inspect

DESIGN DECISION: Audit logs are append-only. Only the cleanup job
removes events, and only once they fall out of the retention window.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Accounts
    ACCOUNT_CREATED = "account_created"
    ACCOUNT_UPDATED = "account_updated"
    ACCOUNT_DELETED = "account_deleted"
    DEFAULT_ACCOUNT_CHANGED = "default_account_changed"

    # Transactions
    TRANSACTION_CREATED = "transaction_created"
    TRANSACTION_UPDATED = "transaction_updated"
    TRANSACTIONS_DELETED = "transactions_deleted"
    RECURRING_TRANSACTION_PROCESSED = "recurring_transaction_processed"

    # Receipts
    RECEIPT_SCANNED = "receipt_scanned"
    RECEIPT_UNREADABLE = "receipt_unreadable"

    # Budgets & insights
    BUDGET_UPDATED = "budget_updated"
    BUDGET_ALERT_SENT = "budget_alert_sent"
    INSIGHTS_GENERATED = "insights_generated"
    MONTHLY_REPORT_SENT = "monthly_report_sent"

    # Maintenance
    DATA_CLEANED_UP = "data_cleaned_up"

    # System events
    ACTION_FAILED = "action_failed"
    SYSTEM_ERROR = "system_error"
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every significant action creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    user_id: Optional[UUID] = Field(
        default=None,
        description="Owner of the entity, when there is one"
    )
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'account', 'transaction', 'budget')"
    )
    entity_id: Optional[UUID] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., one job run)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "user_id": str(self.user_id) if self.user_id else None,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.account_created(user_id, account_id, name)
        event = AuditEventBuilder.transactions_deleted(user_id, ids, changes)
    """

    @staticmethod
    def account_created(
        user_id: UUID,
        account_id: UUID,
        name: str,
        is_default: bool,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCOUNT_CREATED,
            user_id=user_id,
            entity_type="account",
            entity_id=account_id,
            description=f"Account created: {name}",
            details={
                "name": name,
                "is_default": is_default,
            },
            is_user_action=True,
        )

    @staticmethod
    def account_updated(
        user_id: UUID,
        account_id: UUID,
        fields: list[str],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCOUNT_UPDATED,
            user_id=user_id,
            entity_type="account",
            entity_id=account_id,
            description=f"Account updated: {', '.join(fields) or 'no fields'}",
            details={"fields": fields},
            is_user_action=True,
        )

    @staticmethod
    def account_deleted(
        user_id: UUID,
        account_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCOUNT_DELETED,
            user_id=user_id,
            entity_type="account",
            entity_id=account_id,
            description="Account deleted",
            is_user_action=True,
        )

    @staticmethod
    def default_account_changed(
        user_id: UUID,
        account_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DEFAULT_ACCOUNT_CHANGED,
            user_id=user_id,
            entity_type="account",
            entity_id=account_id,
            description="Default account changed",
            is_user_action=True,
        )

    @staticmethod
    def transaction_created(
        user_id: UUID,
        transaction_id: UUID,
        account_id: UUID,
        balance_change: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_CREATED,
            user_id=user_id,
            entity_type="transaction",
            entity_id=transaction_id,
            description=f"Transaction created ({balance_change})",
            details={
                "account_id": str(account_id),
                "balance_change": balance_change,
            },
            is_user_action=True,
        )

    @staticmethod
    def transaction_updated(
        user_id: UUID,
        transaction_id: UUID,
        balance_changes: dict[str, str],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_UPDATED,
            user_id=user_id,
            entity_type="transaction",
            entity_id=transaction_id,
            description="Transaction updated",
            details={"balance_changes": balance_changes},
            is_user_action=True,
        )

    @staticmethod
    def transactions_deleted(
        user_id: UUID,
        transaction_ids: list[UUID],
        balance_changes: dict[str, str],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTIONS_DELETED,
            user_id=user_id,
            entity_type="transaction",
            description=f"{len(transaction_ids)} transaction(s) deleted",
            details={
                "transaction_ids": [str(t) for t in transaction_ids],
                "balance_changes": balance_changes,
            },
            is_user_action=True,
        )

    @staticmethod
    def recurring_processed(
        user_id: UUID,
        template_id: UUID,
        occurrence_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECURRING_TRANSACTION_PROCESSED,
            user_id=user_id,
            entity_type="transaction",
            entity_id=occurrence_id,
            correlation_id=correlation_id,
            description="Recurring transaction occurrence created",
            details={"template_id": str(template_id)},
        )

    @staticmethod
    def receipt_scanned(
        readable: bool,
        mime_type: str,
        size_bytes: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=(
                AuditEventType.RECEIPT_SCANNED
                if readable
                else AuditEventType.RECEIPT_UNREADABLE
            ),
            severity=AuditSeverity.INFO if readable else AuditSeverity.WARNING,
            entity_type="receipt",
            correlation_id=correlation_id,
            description="Receipt scanned" if readable else "Receipt could not be read",
            details={
                "mime_type": mime_type,
                "size_bytes": size_bytes,
            },
            is_user_action=True,
        )

    @staticmethod
    def budget_updated(
        user_id: UUID,
        budget_id: UUID,
        amount: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BUDGET_UPDATED,
            user_id=user_id,
            entity_type="budget",
            entity_id=budget_id,
            description=f"Budget set to {amount}",
            details={"amount": amount},
            is_user_action=True,
        )

    @staticmethod
    def budget_alert_sent(
        user_id: UUID,
        budget_id: UUID,
        percent_used: float,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BUDGET_ALERT_SENT,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            entity_type="budget",
            entity_id=budget_id,
            correlation_id=correlation_id,
            description=f"Budget alert sent at {percent_used:.1f}% used",
            details={"percent_used": round(percent_used, 1)},
        )

    @staticmethod
    def insights_generated(
        user_id: UUID,
        insight_id: UUID,
        month: str,
        year: int,
        fallback: bool,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INSIGHTS_GENERATED,
            severity=AuditSeverity.WARNING if fallback else AuditSeverity.INFO,
            user_id=user_id,
            entity_type="insight",
            entity_id=insight_id,
            description=f"Insights for {month} {year}" + (" (fallback)" if fallback else ""),
            details={
                "month": month,
                "year": year,
                "fallback": fallback,
            },
        )

    @staticmethod
    def monthly_report_sent(
        user_id: UUID,
        month: str,
        year: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MONTHLY_REPORT_SENT,
            user_id=user_id,
            entity_type="user",
            entity_id=user_id,
            correlation_id=correlation_id,
            description=f"Monthly report sent for {month} {year}",
            details={"month": month, "year": year},
        )

    @staticmethod
    def data_cleaned_up(
        insights_deleted: int,
        audit_events_deleted: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DATA_CLEANED_UP,
            correlation_id=correlation_id,
            description=(
                f"Cleanup removed {insights_deleted} insight(s) "
                f"and {audit_events_deleted} audit event(s)"
            ),
            details={
                "insights_deleted": insights_deleted,
                "audit_events_deleted": audit_events_deleted,
            },
        )

    @staticmethod
    def action_failed(
        action: str,
        error_message: str,
        user_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACTION_FAILED,
            severity=AuditSeverity.ERROR,
            user_id=user_id,
            description=f"Action failed: {action}",
            error_message=error_message,
            details={"action": action},
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"External service error: {service}",
            error_message=error_message,
            details={
                "service": service,
            },
            correlation_id=correlation_id,
        )
