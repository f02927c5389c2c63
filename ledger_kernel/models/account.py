"""
Module: ledger_kernel.models.account
Responsibility: ORM persistence for ledger accounts and their running balance.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - code is unique (uq_account_code), so concurrent get-or-create cannot
      produce duplicates.
    - current_balance equals the sum of (debit - credit) over every entry
      posted against the account.  Only the posting service mutates it, and
      only through an atomic in-database increment.
"""

from decimal import Decimal
from enum import Enum

from sqlalchemy import Boolean, Index, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase


class AccountType(str, Enum):
    """Types of accounts in the chart of accounts."""

    ASSET = "asset"
    LIABILITY = "liability"
    EQUITY = "equity"
    REVENUE = "revenue"
    EXPENSE = "expense"


class Account(TrackedBase):
    """
    A ledger account identified by a stable code (CASH, SALES, ...).

    Created lazily by the account directory on first use with a zero
    balance.  Never deleted by this system.
    """

    __tablename__ = "accounts"
    __table_args__ = (
        UniqueConstraint("code", name="uq_account_code"),
        Index("idx_account_type", "account_type"),
    )

    code: Mapped[str] = mapped_column(String(50), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    account_type: Mapped[AccountType] = mapped_column(String(20), nullable=False)

    # Grouping used by reports (e.g. "Current Assets")
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)

    description: Mapped[str | None] = mapped_column(String(500), nullable=True)

    current_balance: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        nullable=False,
        default=Decimal("0"),
    )

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<Account {self.code}: {self.name} ({self.account_type})>"
