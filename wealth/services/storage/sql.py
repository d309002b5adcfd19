"""
SQL Storage Implementation

DESIGN DECISION: A relational database behind SQLAlchemy is the storage
backend because:
1. Balance changes need real transactions (row + balance commit together)
2. Uniqueness rules (one insight per user/month/year, one budget per
   user) are enforced by the database
3. SQLite for development and tests, Postgres in production, same code

The implementation follows the abstract interface, so actions and jobs
never import SQLAlchemy.
"""

from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Iterator, Optional
from uuid import UUID, uuid4

import structlog
from pydantic import BaseModel
from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    create_engine,
    delete,
    func,
    or_,
    select,
    update,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker
from sqlalchemy.pool import StaticPool
from tenacity import retry, stop_after_attempt, wait_exponential

from wealth.config import get_settings
from wealth.models.audit import AuditEvent, AuditEventType, AuditSeverity
from wealth.models.finance import (
    MONTH_NAMES,
    Account,
    Budget,
    FinancialInsight,
    Transaction,
    TransactionStatus,
    TransactionType,
    User,
    reversal_changes,
)
from wealth.services.storage.interface import (
    AccountStorageInterface,
    AuditStorageInterface,
    BudgetStorageInterface,
    ConnectionError,
    DuplicateError,
    InsightStorageInterface,
    NotFoundError,
    StorageError,
    TransactionStorageInterface,
    UserStorageInterface,
)


logger = structlog.get_logger(__name__)


# =============================================================================
# TABLES
# =============================================================================

class Base(DeclarativeBase):
    pass


class UserRow(Base):
    __tablename__ = "users"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    clerk_user_id: Mapped[str] = mapped_column(String(100), unique=True, index=True)
    email: Mapped[str] = mapped_column(String(255), unique=True)
    name: Mapped[Optional[str]] = mapped_column(String(200))
    image_url: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime)
    updated_at: Mapped[datetime] = mapped_column(DateTime)


class AccountRow(Base):
    __tablename__ = "accounts"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    name: Mapped[str] = mapped_column(String(100))
    type: Mapped[str] = mapped_column(String(20))
    balance: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=Decimal("0.00"))
    is_default: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime)
    updated_at: Mapped[datetime] = mapped_column(DateTime)


class TransactionRow(Base):
    __tablename__ = "transactions"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    account_id: Mapped[UUID] = mapped_column(ForeignKey("accounts.id", ondelete="CASCADE"), index=True)
    type: Mapped[str] = mapped_column(String(10))
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2))
    description: Mapped[Optional[str]] = mapped_column(Text)
    date: Mapped[datetime] = mapped_column(DateTime, index=True)
    category: Mapped[str] = mapped_column(String(50))
    receipt_url: Mapped[Optional[str]] = mapped_column(Text)
    is_recurring: Mapped[bool] = mapped_column(Boolean, default=False)
    recurring_interval: Mapped[Optional[str]] = mapped_column(String(10))
    next_recurring_date: Mapped[Optional[datetime]] = mapped_column(DateTime)
    last_processed: Mapped[Optional[datetime]] = mapped_column(DateTime)
    status: Mapped[str] = mapped_column(String(10), default=TransactionStatus.COMPLETED.value)
    created_at: Mapped[datetime] = mapped_column(DateTime)
    updated_at: Mapped[datetime] = mapped_column(DateTime)


class BudgetRow(Base):
    __tablename__ = "budgets"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), unique=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2))
    last_alert_sent: Mapped[Optional[datetime]] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime)
    updated_at: Mapped[datetime] = mapped_column(DateTime)


class InsightRow(Base):
    __tablename__ = "financial_insights"
    __table_args__ = (
        UniqueConstraint("user_id", "month", "year", name="uq_insight_user_month_year"),
    )

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    month: Mapped[str] = mapped_column(String(20))
    year: Mapped[int] = mapped_column(Integer)
    total_income: Mapped[Decimal] = mapped_column(Numeric(14, 2))
    total_expenses: Mapped[Decimal] = mapped_column(Numeric(14, 2))
    net_income: Mapped[Decimal] = mapped_column(Numeric(14, 2))
    savings_rate: Mapped[float] = mapped_column(Float)
    categories: Mapped[dict] = mapped_column(JSON, default=dict)
    insights: Mapped[list] = mapped_column(JSON, default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime)
    updated_at: Mapped[datetime] = mapped_column(DateTime, index=True)


class AuditRow(Base):
    __tablename__ = "audit_events"

    # No foreign keys: audit events outlive the rows they describe.
    event_id: Mapped[UUID] = mapped_column(primary_key=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime, index=True)
    event_type: Mapped[str] = mapped_column(String(50))
    severity: Mapped[str] = mapped_column(String(10))
    user_id: Mapped[Optional[UUID]] = mapped_column(index=True)
    entity_type: Mapped[Optional[str]] = mapped_column(String(30))
    entity_id: Mapped[Optional[UUID]]
    correlation_id: Mapped[Optional[UUID]] = mapped_column(index=True)
    description: Mapped[str] = mapped_column(String(500))
    details: Mapped[Optional[dict]] = mapped_column(JSON)
    error_code: Mapped[Optional[str]] = mapped_column(String(50))
    error_message: Mapped[Optional[str]] = mapped_column(Text)
    is_user_action: Mapped[bool] = mapped_column(Boolean, default=False)


def _column_values(model: BaseModel, exclude: Optional[set[str]] = None) -> dict[str, Any]:
    """Model fields as column values (enums stored by value)."""
    values = model.model_dump(exclude=exclude)
    return {
        key: value.value if isinstance(value, Enum) else value
        for key, value in values.items()
    }


def _apply_balance_changes(session: Session, changes: dict[UUID, Decimal]) -> None:
    """Increment account balances in SQL so concurrent writers don't clobber each other."""
    now = datetime.utcnow()
    for account_id, change in changes.items():
        if not change:
            continue
        session.execute(
            update(AccountRow)
            .where(AccountRow.id == account_id)
            .values(balance=AccountRow.balance + change, updated_at=now)
            .execution_options(synchronize_session=False)
        )


# =============================================================================
# CLIENT
# =============================================================================

class SQLAlchemyClient:
    """
    Low-level database client wrapper.

    Owns the engine and session factory and provides retry logic
    for establishing the connection.
    """

    def __init__(self, url: Optional[str] = None, echo: Optional[bool] = None):
        self._settings = get_settings().database
        self._url = url or self._settings.url
        self._echo = self._settings.echo if echo is None else echo
        self._engine: Optional[Engine] = None
        self._session_factory: Optional[sessionmaker] = None

    @property
    def url(self) -> str:
        return self._url

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> Engine:
        """
        Create the engine and check that the database answers.
        """
        if self._engine is None:
            kwargs: dict[str, Any] = {
                "echo": self._echo,
                "pool_pre_ping": self._settings.pool_pre_ping,
            }
            if self._url.startswith("sqlite"):
                kwargs["connect_args"] = {"check_same_thread": False}
                if self._url in ("sqlite://", "sqlite:///:memory:"):
                    # One shared connection, otherwise every session sees an empty database
                    kwargs["poolclass"] = StaticPool
            try:
                engine = create_engine(self._url, **kwargs)
                with engine.connect():
                    pass
            except Exception as e:
                raise ConnectionError(f"Failed to connect to database: {e}")
            self._engine = engine
            self._session_factory = sessionmaker(bind=engine, expire_on_commit=False)

        return self._engine

    def init_schema(self) -> None:
        """Create missing tables."""
        Base.metadata.create_all(self.connect())

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        """
        One unit of work: commit on success, roll back on any error.
        """
        self.connect()
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except IntegrityError as e:
            session.rollback()
            raise DuplicateError(str(e.orig))
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def dispose(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
            self._session_factory = None


class _SQLStorage:
    """Shared plumbing for the table-specific storages."""

    def __init__(self, client: Optional[SQLAlchemyClient] = None):
        self._client = client or SQLAlchemyClient()


# =============================================================================
# IMPLEMENTATIONS
# =============================================================================

class SQLUserStorage(_SQLStorage, UserStorageInterface):
    """Users keyed by their Clerk user id."""

    async def get_user_by_clerk_id(self, clerk_user_id: str) -> Optional[User]:
        try:
            with self._client.session_scope() as session:
                row = session.scalar(
                    select(UserRow).where(UserRow.clerk_user_id == clerk_user_id)
                )
                return User.model_validate(row, from_attributes=True) if row else None
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to get user: {e}")

    async def get_user(self, user_id: UUID) -> Optional[User]:
        try:
            with self._client.session_scope() as session:
                row = session.get(UserRow, user_id)
                return User.model_validate(row, from_attributes=True) if row else None
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to get user: {e}")

    async def upsert_user(self, user: User) -> User:
        try:
            with self._client.session_scope() as session:
                row = session.scalar(
                    select(UserRow).where(UserRow.clerk_user_id == user.clerk_user_id)
                )
                if row is None:
                    row = UserRow(**_column_values(user))
                    session.add(row)
                else:
                    row.email = user.email
                    row.name = user.name
                    row.image_url = user.image_url
                    row.updated_at = datetime.utcnow()
                session.flush()
                return User.model_validate(row, from_attributes=True)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save user: {e}")

    async def list_users(self) -> list[User]:
        try:
            with self._client.session_scope() as session:
                rows = session.scalars(select(UserRow).order_by(UserRow.created_at))
                return [User.model_validate(row, from_attributes=True) for row in rows]
        except Exception as e:
            raise StorageError(f"Failed to list users: {e}")


class SQLAccountStorage(_SQLStorage, AccountStorageInterface):
    """Accounts and their default flag."""

    EDITABLE_FIELDS = {"name", "type", "balance"}

    def _owned(self, session: Session, account_id: UUID, user_id: UUID) -> Optional[AccountRow]:
        return session.scalar(
            select(AccountRow).where(
                AccountRow.id == account_id,
                AccountRow.user_id == user_id,
            )
        )

    async def list_accounts(self, user_id: UUID) -> list[Account]:
        try:
            with self._client.session_scope() as session:
                rows = session.scalars(
                    select(AccountRow)
                    .where(AccountRow.user_id == user_id)
                    .order_by(AccountRow.is_default.desc(), AccountRow.created_at.desc())
                )
                return [Account.model_validate(row, from_attributes=True) for row in rows]
        except Exception as e:
            raise StorageError(f"Failed to list accounts: {e}")

    async def get_account(self, account_id: UUID, user_id: UUID) -> Optional[Account]:
        try:
            with self._client.session_scope() as session:
                row = self._owned(session, account_id, user_id)
                return Account.model_validate(row, from_attributes=True) if row else None
        except Exception as e:
            raise StorageError(f"Failed to get account: {e}")

    async def get_default_account(self, user_id: UUID) -> Optional[Account]:
        try:
            with self._client.session_scope() as session:
                row = session.scalar(
                    select(AccountRow).where(
                        AccountRow.user_id == user_id,
                        AccountRow.is_default.is_(True),
                    )
                )
                return Account.model_validate(row, from_attributes=True) if row else None
        except Exception as e:
            raise StorageError(f"Failed to get default account: {e}")

    async def count_accounts(self, user_id: UUID) -> int:
        try:
            with self._client.session_scope() as session:
                return session.scalar(
                    select(func.count()).select_from(AccountRow).where(AccountRow.user_id == user_id)
                ) or 0
        except Exception as e:
            raise StorageError(f"Failed to count accounts: {e}")

    async def create_account(self, account: Account) -> Account:
        try:
            with self._client.session_scope() as session:
                if account.is_default:
                    session.execute(
                        update(AccountRow)
                        .where(AccountRow.user_id == account.user_id, AccountRow.is_default.is_(True))
                        .values(is_default=False)
                        .execution_options(synchronize_session=False)
                    )
                row = AccountRow(**_column_values(account))
                session.add(row)
                session.flush()
                return Account.model_validate(row, from_attributes=True)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to create account: {e}")

    async def update_account(
        self,
        account_id: UUID,
        user_id: UUID,
        changes: dict[str, Any],
    ) -> Account:
        try:
            with self._client.session_scope() as session:
                row = self._owned(session, account_id, user_id)
                if row is None:
                    raise NotFoundError("Account not found")
                for field, value in changes.items():
                    if field not in self.EDITABLE_FIELDS or value is None:
                        continue
                    setattr(row, field, value.value if isinstance(value, Enum) else value)
                row.updated_at = datetime.utcnow()
                session.flush()
                return Account.model_validate(row, from_attributes=True)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update account: {e}")

    async def set_default_account(self, account_id: UUID, user_id: UUID) -> Account:
        try:
            with self._client.session_scope() as session:
                row = self._owned(session, account_id, user_id)
                if row is None:
                    raise NotFoundError("Account not found")
                session.execute(
                    update(AccountRow)
                    .where(
                        AccountRow.user_id == user_id,
                        AccountRow.is_default.is_(True),
                        AccountRow.id != account_id,
                    )
                    .values(is_default=False)
                    .execution_options(synchronize_session=False)
                )
                row.is_default = True
                row.updated_at = datetime.utcnow()
                session.flush()
                return Account.model_validate(row, from_attributes=True)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to set default account: {e}")

    async def delete_account(self, account_id: UUID, user_id: UUID) -> bool:
        try:
            with self._client.session_scope() as session:
                result = session.execute(
                    delete(AccountRow).where(
                        AccountRow.id == account_id,
                        AccountRow.user_id == user_id,
                    )
                )
                return result.rowcount > 0
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to delete account: {e}")


class SQLTransactionStorage(_SQLStorage, TransactionStorageInterface):
    """Transactions, always written together with the balances they move."""

    def _to_model(self, row: TransactionRow) -> Transaction:
        return Transaction.model_validate(row, from_attributes=True)

    async def get_transaction(
        self,
        transaction_id: UUID,
        user_id: Optional[UUID] = None,
    ) -> Optional[Transaction]:
        try:
            with self._client.session_scope() as session:
                stmt = select(TransactionRow).where(TransactionRow.id == transaction_id)
                if user_id is not None:
                    stmt = stmt.where(TransactionRow.user_id == user_id)
                row = session.scalar(stmt)
                return self._to_model(row) if row else None
        except Exception as e:
            raise StorageError(f"Failed to get transaction: {e}")

    async def list_transactions(
        self,
        user_id: UUID,
        account_id: Optional[UUID] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        type: Optional[TransactionType] = None,
        limit: Optional[int] = None,
    ) -> list[Transaction]:
        try:
            with self._client.session_scope() as session:
                stmt = select(TransactionRow).where(TransactionRow.user_id == user_id)
                if account_id is not None:
                    stmt = stmt.where(TransactionRow.account_id == account_id)
                if date_from is not None:
                    stmt = stmt.where(TransactionRow.date >= date_from)
                if date_to is not None:
                    stmt = stmt.where(TransactionRow.date <= date_to)
                if type is not None:
                    stmt = stmt.where(TransactionRow.type == type.value)
                stmt = stmt.order_by(TransactionRow.date.desc(), TransactionRow.created_at.desc())
                if limit is not None:
                    stmt = stmt.limit(limit)
                return [self._to_model(row) for row in session.scalars(stmt)]
        except Exception as e:
            raise StorageError(f"Failed to list transactions: {e}")

    async def count_transactions(self, account_id: UUID) -> int:
        try:
            with self._client.session_scope() as session:
                return session.scalar(
                    select(func.count())
                    .select_from(TransactionRow)
                    .where(TransactionRow.account_id == account_id)
                ) or 0
        except Exception as e:
            raise StorageError(f"Failed to count transactions: {e}")

    async def sum_expenses(
        self,
        account_id: UUID,
        date_from: datetime,
        date_to: datetime,
    ) -> Decimal:
        try:
            with self._client.session_scope() as session:
                total = session.scalar(
                    select(func.sum(TransactionRow.amount)).where(
                        TransactionRow.account_id == account_id,
                        TransactionRow.type == TransactionType.EXPENSE.value,
                        TransactionRow.date >= date_from,
                        TransactionRow.date <= date_to,
                    )
                )
                return Decimal(str(total)) if total is not None else Decimal("0.00")
        except Exception as e:
            raise StorageError(f"Failed to sum expenses: {e}")

    async def create_transaction(self, transaction: Transaction) -> Transaction:
        try:
            with self._client.session_scope() as session:
                if session.get(AccountRow, transaction.account_id) is None:
                    raise NotFoundError("Account not found")
                row = TransactionRow(**_column_values(transaction))
                session.add(row)
                _apply_balance_changes(
                    session, {transaction.account_id: transaction.balance_effect}
                )
                session.flush()
                return self._to_model(row)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to create transaction: {e}")

    async def update_transaction(
        self,
        transaction: Transaction,
    ) -> tuple[Transaction, dict[UUID, Decimal]]:
        try:
            with self._client.session_scope() as session:
                row = session.scalars(
                    select(TransactionRow)
                    .where(
                        TransactionRow.id == transaction.id,
                        TransactionRow.user_id == transaction.user_id,
                    )
                    .with_for_update()
                ).first()
                if row is None:
                    raise NotFoundError("Transaction not found")
                if session.get(AccountRow, transaction.account_id) is None:
                    raise NotFoundError("Account not found")

                changes = reversal_changes([self._to_model(row)])
                changes[transaction.account_id] = (
                    changes.get(transaction.account_id, Decimal("0.00"))
                    + transaction.balance_effect
                )

                for field, value in _column_values(transaction, exclude={"id", "created_at"}).items():
                    setattr(row, field, value)
                _apply_balance_changes(session, changes)
                session.flush()
                return self._to_model(row), changes
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update transaction: {e}")

    async def delete_transactions(
        self,
        transaction_ids: list[UUID],
        user_id: UUID,
    ) -> list[Transaction]:
        if not transaction_ids:
            return []
        try:
            with self._client.session_scope() as session:
                # RETURNING hands back only the rows this statement removed
                rows = session.scalars(
                    delete(TransactionRow)
                    .where(
                        TransactionRow.id.in_(transaction_ids),
                        TransactionRow.user_id == user_id,
                    )
                    .returning(TransactionRow)
                ).all()
                deleted = [self._to_model(row) for row in rows]
                _apply_balance_changes(session, reversal_changes(deleted))
                return deleted
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to delete transactions: {e}")

    async def list_due_recurring_transactions(self, now: datetime) -> list[Transaction]:
        try:
            with self._client.session_scope() as session:
                rows = session.scalars(
                    select(TransactionRow).where(
                        TransactionRow.is_recurring.is_(True),
                        TransactionRow.status == TransactionStatus.COMPLETED.value,
                        or_(
                            TransactionRow.next_recurring_date.is_(None),
                            TransactionRow.next_recurring_date <= now,
                        ),
                    )
                )
                return [self._to_model(row) for row in rows]
        except Exception as e:
            raise StorageError(f"Failed to list recurring transactions: {e}")

    async def record_recurring_occurrence(
        self,
        template_id: UUID,
        occurrence: Transaction,
        next_recurring_date: datetime,
        processed_at: datetime,
    ) -> Optional[Transaction]:
        try:
            with self._client.session_scope() as session:
                # Advancing the schedule is the claim on this occurrence.
                # A second delivery matches no row and inserts nothing.
                claimed = session.execute(
                    update(TransactionRow)
                    .where(
                        TransactionRow.id == template_id,
                        TransactionRow.is_recurring.is_(True),
                        or_(
                            TransactionRow.next_recurring_date.is_(None),
                            TransactionRow.next_recurring_date <= processed_at,
                        ),
                    )
                    .values(
                        last_processed=processed_at,
                        next_recurring_date=next_recurring_date,
                        updated_at=processed_at,
                    )
                    .execution_options(synchronize_session=False)
                )
                if claimed.rowcount == 0:
                    return None

                row = TransactionRow(**_column_values(occurrence))
                session.add(row)
                _apply_balance_changes(
                    session, {occurrence.account_id: occurrence.balance_effect}
                )
                session.flush()
                return self._to_model(row)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to record recurring transaction: {e}")

class SQLBudgetStorage(_SQLStorage, BudgetStorageInterface):
    """One budget row per user."""

    async def get_budget(self, user_id: UUID) -> Optional[Budget]:
        try:
            with self._client.session_scope() as session:
                row = session.scalar(select(BudgetRow).where(BudgetRow.user_id == user_id))
                return Budget.model_validate(row, from_attributes=True) if row else None
        except Exception as e:
            raise StorageError(f"Failed to get budget: {e}")

    async def upsert_budget(self, user_id: UUID, amount: Decimal) -> Budget:
        try:
            with self._client.session_scope() as session:
                now = datetime.utcnow()
                row = session.scalar(select(BudgetRow).where(BudgetRow.user_id == user_id))
                if row is None:
                    row = BudgetRow(
                        id=uuid4(),
                        user_id=user_id,
                        amount=amount,
                        created_at=now,
                        updated_at=now,
                    )
                    session.add(row)
                else:
                    row.amount = amount
                    row.updated_at = now
                session.flush()
                return Budget.model_validate(row, from_attributes=True)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save budget: {e}")

    async def list_budgets(self) -> list[Budget]:
        try:
            with self._client.session_scope() as session:
                rows = session.scalars(select(BudgetRow))
                return [Budget.model_validate(row, from_attributes=True) for row in rows]
        except Exception as e:
            raise StorageError(f"Failed to list budgets: {e}")

    async def mark_alert_sent(self, budget_id: UUID, sent_at: datetime) -> None:
        try:
            with self._client.session_scope() as session:
                row = session.get(BudgetRow, budget_id)
                if row is None:
                    raise NotFoundError(f"Budget not found: {budget_id}")
                row.last_alert_sent = sent_at
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update budget: {e}")


class SQLInsightStorage(_SQLStorage, InsightStorageInterface):
    """Monthly insights, upserted by (user, month, year)."""

    UPDATABLE_FIELDS = (
        "total_income",
        "total_expenses",
        "net_income",
        "savings_rate",
        "categories",
        "insights",
    )

    async def upsert_insight(self, insight: FinancialInsight) -> FinancialInsight:
        if insight.user_id is None:
            raise StorageError("Insight has no owner")
        try:
            with self._client.session_scope() as session:
                row = session.scalar(
                    select(InsightRow).where(
                        InsightRow.user_id == insight.user_id,
                        InsightRow.month == insight.month,
                        InsightRow.year == insight.year,
                    )
                )
                if row is None:
                    row = InsightRow(**_column_values(insight))
                    session.add(row)
                else:
                    for field in self.UPDATABLE_FIELDS:
                        setattr(row, field, getattr(insight, field))
                    row.updated_at = datetime.utcnow()
                session.flush()
                return FinancialInsight.model_validate(row, from_attributes=True)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save insight: {e}")

    async def get_insight(
        self,
        user_id: UUID,
        month: str,
        year: int,
    ) -> Optional[FinancialInsight]:
        try:
            with self._client.session_scope() as session:
                row = session.scalar(
                    select(InsightRow).where(
                        InsightRow.user_id == user_id,
                        InsightRow.month == month,
                        InsightRow.year == year,
                    )
                )
                return FinancialInsight.model_validate(row, from_attributes=True) if row else None
        except Exception as e:
            raise StorageError(f"Failed to get insight: {e}")

    async def list_insights(self, user_id: UUID) -> list[FinancialInsight]:
        try:
            with self._client.session_scope() as session:
                rows = session.scalars(select(InsightRow).where(InsightRow.user_id == user_id))
                insights = [FinancialInsight.model_validate(row, from_attributes=True) for row in rows]
        except Exception as e:
            raise StorageError(f"Failed to list insights: {e}")

        # Month names don't sort chronologically in SQL
        insights.sort(key=lambda i: (i.year, MONTH_NAMES.index(i.month)), reverse=True)
        return insights

    async def delete_insights_before(self, cutoff: datetime) -> int:
        try:
            with self._client.session_scope() as session:
                result = session.execute(
                    delete(InsightRow).where(InsightRow.updated_at < cutoff)
                )
                return result.rowcount
        except Exception as e:
            raise StorageError(f"Failed to delete insights: {e}")


class SQLAuditStorage(_SQLStorage, AuditStorageInterface):
    """
    SQL implementation of audit log storage.

    Audit events are append-only.
    """

    def _event_to_row(self, event: AuditEvent) -> AuditRow:
        return AuditRow(
            event_id=event.event_id,
            timestamp=event.timestamp,
            event_type=event.event_type.value,
            severity=event.severity.value,
            user_id=event.user_id,
            entity_type=event.entity_type,
            entity_id=event.entity_id,
            correlation_id=event.correlation_id,
            description=event.description,
            details=event.details or None,
            error_code=event.error_code,
            error_message=event.error_message,
            is_user_action=event.is_user_action,
        )

    def _row_to_event(self, row: AuditRow) -> AuditEvent:
        return AuditEvent(
            event_id=row.event_id,
            timestamp=row.timestamp,
            event_type=AuditEventType(row.event_type),
            severity=AuditSeverity(row.severity),
            user_id=row.user_id,
            entity_type=row.entity_type,
            entity_id=row.entity_id,
            correlation_id=row.correlation_id,
            description=row.description,
            details=row.details or {},
            error_code=row.error_code,
            error_message=row.error_message,
            is_user_action=row.is_user_action,
        )

    async def append_event(self, event: AuditEvent) -> bool:
        try:
            with self._client.session_scope() as session:
                session.add(self._event_to_row(event))
            return True
        except Exception as e:
            # Audit logging must not break the main flow
            logger.warning("audit_event_write_failed", error=str(e), event_id=str(event.event_id))
            return False

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        try:
            with self._client.session_scope() as session:
                rows = session.scalars(
                    select(AuditRow)
                    .where(AuditRow.entity_type == entity_type, AuditRow.entity_id == entity_id)
                    .order_by(AuditRow.timestamp)
                )
                return [self._row_to_event(row) for row in rows]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

    async def get_recent_events(
        self,
        limit: int = 100,
        user_id: Optional[UUID] = None,
    ) -> list[AuditEvent]:
        try:
            with self._client.session_scope() as session:
                stmt = select(AuditRow)
                if user_id is not None:
                    stmt = stmt.where(AuditRow.user_id == user_id)
                rows = session.scalars(stmt.order_by(AuditRow.timestamp.desc()).limit(limit))
                return [self._row_to_event(row) for row in rows]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

    async def delete_events_before(self, cutoff: datetime) -> int:
        try:
            with self._client.session_scope() as session:
                result = session.execute(delete(AuditRow).where(AuditRow.timestamp < cutoff))
                return result.rowcount
        except Exception as e:
            raise StorageError(f"Failed to delete audit events: {e}")
