"""
Module: ledger_kernel.selectors.transaction_selector
Responsibility: Read-only queries over posted transactions and account
    balances.
Architecture position: Kernel > Selectors.  May import from db/, models/
    and domain/.  Never adds, flushes, commits or deletes.

Balance reconciliation:
    Stored ``current_balance`` is a cache of sum(debit - credit) over every
    entry against the account.  ``derived_balance`` recomputes it from the
    entries and ``find_balance_mismatches`` reports accounts where the two
    disagree.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ledger_kernel.domain.entries import TransactionRecord
from ledger_kernel.models.account import Account
from ledger_kernel.models.transaction import (
    LedgerTransaction,
    TransactionEntry,
    TransactionType,
)


@dataclass(frozen=True)
class TransactionPage:
    items: tuple[TransactionRecord, ...]
    page: int
    limit: int
    total: int

    @property
    def pages(self) -> int:
        return (self.total + self.limit - 1) // self.limit if self.limit else 0


@dataclass(frozen=True)
class BalanceMismatch:
    account_code: str
    stored: Decimal
    derived: Decimal


class TransactionSelector:
    """Read access to ledger transactions."""

    def __init__(self, session: Session):
        self.session = session

    def get_by_number(self, transaction_number: str) -> TransactionRecord | None:
        txn = self.session.execute(
            select(LedgerTransaction).where(
                LedgerTransaction.transaction_number == transaction_number
            )
        ).scalar_one_or_none()
        return txn.to_record() if txn else None

    def get_by_reference(
        self, reference_id: str, transaction_type: str = TransactionType.SALE.value
    ) -> TransactionRecord | None:
        txn = self.session.execute(
            select(LedgerTransaction).where(
                LedgerTransaction.transaction_type == transaction_type,
                LedgerTransaction.reference_id == reference_id,
            )
        ).scalar_one_or_none()
        return txn.to_record() if txn else None

    def count(self) -> int:
        return self.session.execute(
            select(func.count()).select_from(LedgerTransaction)
        ).scalar_one()

    def list_sales_by_sales_person(
        self,
        sales_person_id: str,
        *,
        start: datetime | None = None,
        end: datetime | None = None,
        sales_outlet: str | None = None,
        page: int = 1,
        limit: int = 50,
    ) -> TransactionPage:
        """Posted sales recorded by one sales person, newest first."""
        if page < 1 or limit < 1:
            raise ValueError("page and limit must be positive")

        conditions = [
            LedgerTransaction.transaction_type == TransactionType.SALE.value,
            LedgerTransaction.sales_person_id == sales_person_id,
        ]
        if start is not None:
            conditions.append(LedgerTransaction.date >= start)
        if end is not None:
            conditions.append(LedgerTransaction.date <= end)
        if sales_outlet is not None:
            conditions.append(LedgerTransaction.sales_outlet == sales_outlet)

        total = self.session.execute(
            select(func.count()).select_from(LedgerTransaction).where(*conditions)
        ).scalar_one()

        rows = self.session.execute(
            select(LedgerTransaction)
            .where(*conditions)
            .order_by(
                LedgerTransaction.date.desc(),
                LedgerTransaction.transaction_number.desc(),
            )
            .offset((page - 1) * limit)
            .limit(limit)
        ).scalars().all()

        return TransactionPage(
            items=tuple(r.to_record() for r in rows),
            page=page,
            limit=limit,
            total=total,
        )

    # ------------------------------------------------------------------
    # Balances
    # ------------------------------------------------------------------

    def stored_balance(self, account_code: str) -> Decimal | None:
        return self.session.execute(
            select(Account.current_balance).where(Account.code == account_code)
        ).scalar_one_or_none()

    def derived_balance(self, account_code: str) -> Decimal:
        """sum(debit - credit) over every entry posted to the account."""
        value = self.session.execute(
            select(
                func.coalesce(
                    func.sum(TransactionEntry.debit - TransactionEntry.credit), 0
                )
            )
            .join(Account, TransactionEntry.account_id == Account.id)
            .where(Account.code == account_code)
        ).scalar_one()
        return Decimal(str(value))

    def find_balance_mismatches(
        self, tolerance: Decimal = Decimal("0.000001")
    ) -> list[BalanceMismatch]:
        accounts = self.session.execute(
            select(Account).order_by(Account.code)
        ).scalars().all()
        mismatches = []
        for account in accounts:
            derived = self.derived_balance(account.code)
            if abs(Decimal(account.current_balance) - derived) > tolerance:
                mismatches.append(
                    BalanceMismatch(account.code, account.current_balance, derived)
                )
        return mismatches
