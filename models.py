from datetime import date, datetime
from enum import Enum
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base


class TransactionType(str, Enum):
    income = "income"
    expense = "expense"


class TransactionStatus(str, Enum):
    pending = "pending"
    paid = "paid"
    overdue = "overdue"


class EditScope(str, Enum):
    single = "single"
    future = "future"
    all = "all"


class SeriesKind(str, Enum):
    single = "single"
    installment = "installment"
    fixed = "fixed"


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class Category(Base, TimestampMixin):
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    name: Mapped[str] = mapped_column(String(50), nullable=False)
    type: Mapped[TransactionType] = mapped_column(
        SAEnum(TransactionType), nullable=False
    )
    color: Mapped[Optional[str]] = mapped_column(String(7))

    transactions: Mapped[list["Transaction"]] = relationship(
        "Transaction", back_populates="category"
    )

    __table_args__ = (
        UniqueConstraint("user_id", "type", "name", name="uq_category_user_type_name"),
    )


class Account(Base, TimestampMixin):
    __tablename__ = "accounts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    name: Mapped[str] = mapped_column(String(50), nullable=False)
    color: Mapped[Optional[str]] = mapped_column(String(7))
    initial_balance_cents: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )

    transactions: Mapped[list["Transaction"]] = relationship(
        "Transaction", back_populates="account"
    )

    __table_args__ = (UniqueConstraint("user_id", "name", name="uq_account_user_name"),)


class Tag(Base, TimestampMixin):
    __tablename__ = "tags"
    __table_args__ = (UniqueConstraint("user_id", "name", name="uq_tag_user_name"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    name: Mapped[str] = mapped_column(String(30), nullable=False)
    color: Mapped[Optional[str]] = mapped_column(String(9))

    transactions: Mapped[list["Transaction"]] = relationship(
        "Transaction", secondary="transaction_tags", back_populates="tags"
    )


transaction_tags = Table(
    "transaction_tags",
    Base.metadata,
    Column("transaction_id", Integer, ForeignKey("transactions.id"), primary_key=True),
    Column("tag_id", Integer, ForeignKey("tags.id"), primary_key=True),
)


class Transaction(Base, TimestampMixin):
    """A stored transaction row.

    The same table holds three kinds of records: one-off transactions, series
    roots (fixed or installment) and overrides that replace a single month of
    a series. Roots never carry ``parent_transaction_id``; overrides always do.
    """

    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    type: Mapped[TransactionType] = mapped_column(
        SAEnum(TransactionType), nullable=False
    )
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str] = mapped_column(String(255), nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    category_id: Mapped[int] = mapped_column(
        ForeignKey("categories.id"), nullable=False
    )
    account_id: Mapped[int] = mapped_column(ForeignKey("accounts.id"), nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    paid_date: Mapped[Optional[date]] = mapped_column(Date)
    status: Mapped[TransactionStatus] = mapped_column(
        SAEnum(TransactionStatus), nullable=False, default=TransactionStatus.pending
    )

    start_date: Mapped[Optional[date]] = mapped_column(Date)
    day_of_month: Mapped[Optional[int]] = mapped_column(Integer)
    is_fixed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    installments: Mapped[Optional[int]] = mapped_column(Integer)
    end_date: Mapped[Optional[date]] = mapped_column(Date)
    cancelled_occurrences: Mapped[list[str]] = mapped_column(
        JSON, default=list, nullable=False
    )

    is_override: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    override_for_date: Mapped[Optional[date]] = mapped_column(Date)
    parent_transaction_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("transactions.id")
    )

    category: Mapped["Category"] = relationship(
        "Category", back_populates="transactions"
    )
    account: Mapped["Account"] = relationship("Account", back_populates="transactions")
    tags: Mapped[list["Tag"]] = relationship(
        "Tag", secondary="transaction_tags", back_populates="transactions"
    )

    __table_args__ = (
        UniqueConstraint(
            "parent_transaction_id",
            "override_for_date",
            name="uq_txn_parent_override_date",
        ),
        Index("ix_transactions_user_due_date", "user_id", "due_date"),
        Index("ix_transactions_parent", "parent_transaction_id", "override_for_date"),
        CheckConstraint("amount_cents > 0", name="ck_transactions_amount_positive"),
        CheckConstraint(
            "day_of_month IS NULL OR (day_of_month BETWEEN 1 AND 31)",
            name="ck_transactions_day_of_month",
        ),
        CheckConstraint(
            "NOT (is_fixed AND installments IS NOT NULL AND installments > 1)",
            name="ck_transactions_fixed_or_installments",
        ),
    )

    @property
    def series_kind(self) -> SeriesKind:
        if self.installments is not None and self.installments > 1:
            return SeriesKind.installment
        if self.installments == 1 and self.start_date is not None:
            # Installment series truncated down to its first installment.
            return SeriesKind.installment
        if self.is_fixed:
            return SeriesKind.fixed
        # A fixed series cut short keeps recurring until its end date.
        if not self.is_override and self.end_date is not None:
            return SeriesKind.fixed
        return SeriesKind.single

    @property
    def series_start(self) -> date:
        return self.start_date or self.due_date

    @property
    def billing_day(self) -> int:
        return self.day_of_month or self.series_start.day

    @property
    def tag_ids(self) -> list[int]:
        return [tag.id for tag in self.tags]
