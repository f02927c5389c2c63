"""
Typed exception hierarchy for the sales ledger.

Every error carries a machine-readable ``code`` class attribute and its
context as structured attributes, so callers catch by type and log or
serialise by field rather than parsing messages.

    LedgerKernelError (base)
    |
    +-- RateProviderError
    |   +-- TransportError
    |   +-- MalformedResponseError
    |   +-- RateNotFoundError
    |
    +-- CompositeResolutionFailure
    |
    +-- PostingError
    |   +-- LedgerImbalanceError
    |   +-- InvalidEntryError
    |   +-- InvalidSaleFactError
    |
    +-- AccountError
    |   +-- AccountResolutionError
    |
    +-- CurrencyError
    |   +-- InvalidExchangeRateError
    |   +-- CurrencySettingsNotFoundError
    |
    +-- PersistenceError

Error codes
-----------

Category   | Code                        | When raised
-----------|-----------------------------|------------------------------------------
Provider   | RATE_TRANSPORT_ERROR        | Timeout, connection failure, non-2xx
           | RATE_MALFORMED_RESPONSE     | Body not JSON / rate not a positive number
           | RATE_NOT_FOUND              | Valid body without the target currency
           | RATE_RESOLUTION_FAILED      | Every provider in the chain failed
-----------|-----------------------------|------------------------------------------
Posting    | LEDGER_IMBALANCE            | Debits != credits beyond tolerance
           | INVALID_ENTRY               | Entry with both/neither sides or negative
           | INVALID_SALE_FACT           | Inbound sale/invoice fact is unusable
-----------|-----------------------------|------------------------------------------
Account    | ACCOUNT_RESOLUTION_FAILED   | Account missing and no definition for it
-----------|-----------------------------|------------------------------------------
Currency   | INVALID_EXCHANGE_RATE       | Rate is zero, negative or not a number
           | CURRENCY_SETTINGS_NOT_FOUND | Singleton settings row does not exist
-----------|-----------------------------|------------------------------------------
Storage    | PERSISTENCE_ERROR           | Database failure while writing
"""

from decimal import Decimal
from typing import Any


class LedgerKernelError(Exception):
    """
    Base exception for all ledger errors.

    All subclasses must have a ``code`` class attribute for
    machine-readable error identification.
    """

    code: str = "LEDGER_KERNEL_ERROR"


# Rate provider exceptions


class RateProviderError(LedgerKernelError):
    """Base exception for a single provider's failure to produce a rate."""

    code: str = "RATE_PROVIDER_ERROR"

    def __init__(self, provider_key: str, base: str, target: str, reason: str):
        self.provider_key = provider_key
        self.base = base
        self.target = target
        self.reason = reason
        super().__init__(f"{provider_key} {base}->{target}: {reason}")


class TransportError(RateProviderError):
    """Timeout, connection failure or non-2xx status."""

    code: str = "RATE_TRANSPORT_ERROR"

    def __init__(
        self,
        provider_key: str,
        base: str,
        target: str,
        reason: str,
        status_code: int | None = None,
    ):
        self.status_code = status_code
        super().__init__(provider_key, base, target, reason)


class MalformedResponseError(RateProviderError):
    """Body is not JSON, not an object, or the rate is not a positive number."""

    code: str = "RATE_MALFORMED_RESPONSE"


class RateNotFoundError(RateProviderError):
    """Provider answered but does not quote the target currency."""

    code: str = "RATE_NOT_FOUND"

    def __init__(self, provider_key: str, base: str, target: str):
        super().__init__(
            provider_key, base, target, f"rate for {target} not found in response"
        )


class CompositeResolutionFailure(LedgerKernelError):
    """
    Every provider in the chain failed for one currency pair.

    ``failures`` keeps each attempt in the order it was made; ``last_error``
    is the final provider's error.
    """

    code: str = "RATE_RESOLUTION_FAILED"

    def __init__(self, base: str, target: str, failures: tuple[Any, ...]):
        self.base = base
        self.target = target
        self.failures = tuple(failures)
        tried = ", ".join(f.provider_key for f in self.failures) or "none"
        super().__init__(
            f"All exchange rate providers failed for {base}->{target} "
            f"(tried: {tried})"
        )

    @property
    def last_error(self) -> Exception | None:
        if not self.failures:
            return None
        return self.failures[-1].error


# Posting exceptions


class PostingError(LedgerKernelError):
    """Base exception for posting errors."""

    code: str = "POSTING_ERROR"


class LedgerImbalanceError(PostingError):
    """Transaction debits and credits do not balance."""

    code: str = "LEDGER_IMBALANCE"

    def __init__(self, debits: Decimal, credits: Decimal, currency: str):
        self.debits = debits
        self.credits = credits
        self.currency = currency
        super().__init__(
            f"Transaction is unbalanced: debits={debits}, credits={credits} "
            f"({currency})"
        )


class InvalidEntryError(PostingError):
    """An entry breaks the one-sided, non-negative rule."""

    code: str = "INVALID_ENTRY"

    def __init__(self, account_code: str, reason: str):
        self.account_code = account_code
        self.reason = reason
        super().__init__(f"Invalid entry for account {account_code}: {reason}")


class InvalidSaleFactError(PostingError):
    """The inbound sale or invoice cannot be posted."""

    code: str = "INVALID_SALE_FACT"

    def __init__(self, reference_id: str | None, reason: str):
        self.reference_id = reference_id
        self.reason = reason
        super().__init__(f"Invalid sale fact {reference_id or '<unknown>'}: {reason}")


# Account exceptions


class AccountError(LedgerKernelError):
    """Base exception for account errors."""

    code: str = "ACCOUNT_ERROR"


class AccountResolutionError(AccountError):
    """Account could not be found or created."""

    code: str = "ACCOUNT_RESOLUTION_FAILED"

    def __init__(self, account_code: str, reason: str = "no definition for account"):
        self.account_code = account_code
        self.reason = reason
        super().__init__(f"Cannot resolve account {account_code}: {reason}")


# Currency exceptions


class CurrencyError(LedgerKernelError):
    """Base exception for currency errors."""

    code: str = "CURRENCY_ERROR"


class InvalidExchangeRateError(CurrencyError):
    """Rate is zero, negative or not a number."""

    code: str = "INVALID_EXCHANGE_RATE"

    def __init__(self, currency: str, rate: Any):
        self.currency = currency
        self.rate = rate
        super().__init__(f"Invalid exchange rate for {currency}: {rate!r}")


class CurrencySettingsNotFoundError(CurrencyError):
    """The currency settings singleton has not been created."""

    code: str = "CURRENCY_SETTINGS_NOT_FOUND"

    def __init__(self):
        super().__init__("Currency settings have not been configured")


# Storage exceptions


class PersistenceError(LedgerKernelError):
    """Database failure while writing a posting."""

    code: str = "PERSISTENCE_ERROR"

    def __init__(self, operation: str, reason: str):
        self.operation = operation
        self.reason = reason
        super().__init__(f"Persistence failure during {operation}: {reason}")
