"""ORM models for the sales ledger."""

from ledger_kernel.models.account import Account, AccountType
from ledger_kernel.models.currency_settings import (
    SINGLETON_KEY,
    CurrencySettings,
    SupportedCurrency,
    UpdateFrequencyValue,
)
from ledger_kernel.models.sequence import SequenceCounter
from ledger_kernel.models.transaction import (
    LedgerTransaction,
    TransactionEntry,
    TransactionStatus,
    TransactionType,
)

__all__ = [
    "Account",
    "AccountType",
    "CurrencySettings",
    "SupportedCurrency",
    "UpdateFrequencyValue",
    "SINGLETON_KEY",
    "SequenceCounter",
    "LedgerTransaction",
    "TransactionEntry",
    "TransactionStatus",
    "TransactionType",
]
