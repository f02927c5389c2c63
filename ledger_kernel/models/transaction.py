"""
Module: ledger_kernel.models.transaction
Responsibility: ORM persistence for posted ledger transactions and the
    debit/credit entries they own.
Architecture position: Kernel > Models.  May import from db/ and domain/.

Invariants enforced:
    - transaction_number is unique (uq_transaction_number) and is allocated
      from a locked counter row, never from a count of existing rows.
    - (transaction_type, reference_id) is unique (uq_transaction_reference):
      a source sale or invoice posts at most once.
    - Entries belong to exactly one transaction and share its lifetime.
    - Each entry is one-sided; sum(debit) == sum(credit) per transaction.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    JSON,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import TrackedBase, UUIDString
from ledger_kernel.domain.entries import EntryRecord, TransactionRecord

if TYPE_CHECKING:
    from ledger_kernel.models.account import Account


class TransactionType(str, Enum):
    SALE = "sale"
    PURCHASE = "purchase"
    PAYMENT = "payment"
    RECEIPT = "receipt"
    EXPENSE = "expense"
    INCOME = "income"
    TRANSFER = "transfer"
    ADJUSTMENT = "adjustment"
    JOURNAL = "journal"


class TransactionStatus(str, Enum):
    """Posting only ever moves draft -> posted."""

    DRAFT = "draft"
    POSTED = "posted"


def _enum_value(value) -> str:
    return getattr(value, "value", value)


class LedgerTransaction(TrackedBase):
    """A posted sale or invoice with its balanced entries."""

    __tablename__ = "ledger_transactions"
    __table_args__ = (
        UniqueConstraint("transaction_number", name="uq_transaction_number"),
        UniqueConstraint(
            "transaction_type", "reference_id", name="uq_transaction_reference"
        ),
        Index("idx_transaction_date", "date"),
        Index("idx_transaction_status", "status"),
        Index("idx_transaction_sales_person", "sales_person_id"),
    )

    transaction_number: Mapped[str] = mapped_column(String(20), nullable=False)

    date: Mapped[datetime] = mapped_column(nullable=False)

    description: Mapped[str] = mapped_column(String(500), nullable=False)

    transaction_type: Mapped[TransactionType] = mapped_column(String(20), nullable=False)

    # Human-readable source document number (invoice number)
    reference: Mapped[str] = mapped_column(String(100), nullable=False)

    # Identifier of the source sale/invoice
    reference_id: Mapped[str] = mapped_column(String(100), nullable=False)

    # Total in the transaction currency
    amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    base_currency: Mapped[str] = mapped_column(String(3), nullable=False)

    # Total in the base currency as received on the fact
    base_amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    exchange_rate: Mapped[Decimal] = mapped_column(Numeric(38, 18), nullable=False)

    payment_method: Mapped[str] = mapped_column(String(20), nullable=False)

    status: Mapped[TransactionStatus] = mapped_column(
        String(20),
        nullable=False,
        default=TransactionStatus.DRAFT.value,
    )

    customer_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    sales_person_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    sales_outlet: Mapped[str | None] = mapped_column(String(100), nullable=True)

    notes: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    # Provenance: sales person, outlet, original sale snapshot
    transaction_metadata: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    entries: Mapped[list["TransactionEntry"]] = relationship(
        back_populates="transaction",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="TransactionEntry.line_seq",
    )

    def __repr__(self) -> str:
        return f"<LedgerTransaction {self.transaction_number} {self.status}>"

    @property
    def is_posted(self) -> bool:
        return self.status == TransactionStatus.POSTED.value

    @property
    def total_debits(self) -> Decimal:
        return sum((e.debit for e in self.entries), Decimal("0"))

    @property
    def total_credits(self) -> Decimal:
        return sum((e.credit for e in self.entries), Decimal("0"))

    @property
    def is_balanced(self) -> bool:
        return self.total_debits == self.total_credits

    def to_record(self) -> TransactionRecord:
        return TransactionRecord(
            transaction_id=str(self.id),
            transaction_number=self.transaction_number,
            date=self.date,
            description=self.description,
            transaction_type=_enum_value(self.transaction_type),
            reference=self.reference,
            reference_id=self.reference_id,
            amount=self.amount,
            currency=self.currency,
            base_currency=self.base_currency,
            base_amount=self.base_amount,
            exchange_rate=self.exchange_rate,
            payment_method=self.payment_method,
            status=_enum_value(self.status),
            created_by=self.created_by,
            notes=self.notes,
            metadata=dict(self.transaction_metadata or {}),
            entries=tuple(
                EntryRecord(
                    account_code=e.account.code,
                    debit=e.debit,
                    credit=e.credit,
                    description=e.description,
                )
                for e in self.entries
            ),
        )


class TransactionEntry(TrackedBase):
    """One debit or credit line of a ledger transaction."""

    __tablename__ = "transaction_entries"
    __table_args__ = (
        UniqueConstraint("transaction_id", "line_seq", name="uq_entry_line_seq"),
        CheckConstraint("debit >= 0 AND credit >= 0", name="chk_entry_non_negative"),
        Index("idx_entry_transaction", "transaction_id"),
        Index("idx_entry_account", "account_id"),
    )

    transaction_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("ledger_transactions.id"),
        nullable=False,
    )

    account_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=False,
    )

    line_seq: Mapped[int] = mapped_column(Integer, nullable=False)

    debit: Mapped[Decimal] = mapped_column(
        Numeric(38, 9), nullable=False, default=Decimal("0")
    )

    credit: Mapped[Decimal] = mapped_column(
        Numeric(38, 9), nullable=False, default=Decimal("0")
    )

    description: Mapped[str] = mapped_column(String(500), nullable=False, default="")

    transaction: Mapped["LedgerTransaction"] = relationship(back_populates="entries")

    account: Mapped["Account"] = relationship(lazy="joined")

    def __repr__(self) -> str:
        return f"<TransactionEntry {self.line_seq}: Dr {self.debit} Cr {self.credit}>"
