"""
Entry construction -- pure functional core of sale posting.

Responsibility:
    Converts a ``SaleFact`` into the transaction currency and builds the
    balanced set of debit/credit lines for it.  No I/O: the posting service
    resolves accounts, allocates numbers and persists.

Invariants enforced:
    - Every entry is one-sided (exactly one of debit/credit is non-zero)
      and non-negative.
    - Net is derived as ``converted_total - converted_tax`` in the
      transaction currency, so debits equal credits by construction.
    - No line is ever emitted with a zero amount.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from ledger_kernel.db.types import round_money
from ledger_kernel.domain.currency import CurrencyRegistry
from ledger_kernel.domain.facts import SaleFact, SaleKind
from ledger_kernel.exceptions import (
    InvalidEntryError,
    InvalidSaleFactError,
    LedgerImbalanceError,
)

ZERO = Decimal("0")
ONE = Decimal("1")

# Fraction of the currency's smallest unit allowed between the two sides
BALANCE_TOLERANCE_FACTOR = Decimal("1e-9")


class StandardAccount(str, Enum):
    """Accounts every sale posting touches."""

    CASH = "CASH"
    SALES = "SALES"
    TAX_PAY = "TAX_PAY"
    AR = "AR"


@dataclass(frozen=True)
class ProposedEntry:
    """One debit or credit line before it is bound to an account row."""

    account_code: str
    debit: Decimal = ZERO
    credit: Decimal = ZERO
    description: str = ""

    def __post_init__(self) -> None:
        if self.debit < 0 or self.credit < 0:
            raise InvalidEntryError(self.account_code, "amounts must be non-negative")
        if (self.debit > 0) == (self.credit > 0):
            raise InvalidEntryError(
                self.account_code, "exactly one of debit or credit must be non-zero"
            )

    @property
    def balance_delta(self) -> Decimal:
        return self.debit - self.credit


@dataclass(frozen=True)
class ConvertedAmounts:
    """Sale amounts expressed in the transaction currency."""

    currency: str
    exchange_rate: Decimal
    total: Decimal
    tax: Decimal
    net: Decimal


def convert_sale_amounts(
    fact: SaleFact,
    currency: str,
    base_currency: str,
    exchange_rate: Decimal,
) -> ConvertedAmounts:
    """
    Convert the fact's base-currency amounts into ``currency``.

    ``total`` and ``tax`` are multiplied and rounded to the currency's minor
    unit; ``net`` is their difference.  Same-currency conversion uses a rate
    of exactly 1 whatever rate the caller supplied.

    Raises:
        InvalidSaleFactError: If the converted total rounds to zero.
    """
    rate = ONE if currency == base_currency else exchange_rate
    places = CurrencyRegistry.get_decimal_places(currency)

    total = round_money(fact.total * rate, places)
    tax = round_money(fact.total_tax * rate, places)
    if total <= 0:
        raise InvalidSaleFactError(
            fact.reference_id, f"total converts to {total} {currency}"
        )

    return ConvertedAmounts(
        currency=currency,
        exchange_rate=rate,
        total=total,
        tax=tax,
        net=total - tax,
    )


def _debit_description(fact: SaleFact) -> str:
    if fact.kind is SaleKind.POS:
        return f"POS Sale - {fact.reference}"
    if fact.is_paid:
        return f"Invoice Payment - {fact.reference}"
    return f"Accounts Receivable - {fact.reference}"


def build_sale_entries(
    fact: SaleFact, amounts: ConvertedAmounts
) -> tuple[ProposedEntry, ...]:
    """
    Build the lines for one sale.

    Debit CASH (POS sale or paid invoice) or AR (unpaid invoice) for the
    total, credit SALES for net, credit TAX_PAY for tax when tax > 0.
    """
    debit_account = StandardAccount.CASH if fact.is_paid else StandardAccount.AR

    entries = [
        ProposedEntry(
            account_code=debit_account.value,
            debit=amounts.total,
            description=_debit_description(fact),
        )
    ]
    if amounts.net > 0:
        entries.append(
            ProposedEntry(
                account_code=StandardAccount.SALES.value,
                credit=amounts.net,
                description=f"Sales Revenue - {fact.reference}",
            )
        )
    if amounts.tax > 0:
        entries.append(
            ProposedEntry(
                account_code=StandardAccount.TAX_PAY.value,
                credit=amounts.tax,
                description=f"Tax Collected - {fact.reference}",
            )
        )
    return tuple(entries)


def assert_balanced(entries, currency: str) -> None:
    """
    Raise if debits and credits differ by more than the tolerance.

    Raises:
        LedgerImbalanceError: On imbalance.
    """
    debits = sum((e.debit for e in entries), ZERO)
    credits = sum((e.credit for e in entries), ZERO)
    tolerance = CurrencyRegistry.get_rounding_tolerance(currency) * BALANCE_TOLERANCE_FACTOR
    if abs(debits - credits) > tolerance:
        raise LedgerImbalanceError(debits, credits, currency)


# ---------------------------------------------------------------------------
# Outbound record
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EntryRecord:
    account_code: str
    debit: Decimal
    credit: Decimal
    description: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "account": self.account_code,
            "debit": str(self.debit),
            "credit": str(self.credit),
            "description": self.description,
        }


@dataclass(frozen=True)
class TransactionRecord:
    """Posted transaction as handed back to the sales flow."""

    transaction_id: str
    transaction_number: str
    date: datetime
    description: str
    transaction_type: str
    reference: str
    reference_id: str
    amount: Decimal
    currency: str
    base_currency: str
    base_amount: Decimal
    exchange_rate: Decimal
    payment_method: str
    status: str
    created_by: str
    notes: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    entries: tuple[EntryRecord, ...] = ()

    @property
    def total_debits(self) -> Decimal:
        return sum((e.debit for e in self.entries), ZERO)

    @property
    def total_credits(self) -> Decimal:
        return sum((e.credit for e in self.entries), ZERO)

    def to_dict(self) -> dict[str, Any]:
        return {
            "transactionNumber": self.transaction_number,
            "date": self.date.isoformat(),
            "description": self.description,
            "type": self.transaction_type,
            "reference": self.reference,
            "referenceId": self.reference_id,
            "amount": str(self.amount),
            "currency": self.currency,
            "exchangeRate": str(self.exchange_rate),
            "paymentMethod": self.payment_method,
            "entries": [e.to_dict() for e in self.entries],
            "status": self.status,
            "createdBy": self.created_by,
            "metadata": self.metadata,
        }
