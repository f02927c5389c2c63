"""
SalesPostingService -- turns a completed sale or invoice into a posted,
balanced ledger transaction.

Responsibility:
    Resolves the sales accounts, settles on the transaction currency and
    rate, builds entries through the pure domain core, allocates the
    transaction number, persists the transaction and applies every account
    balance delta.  All of it runs inside one SAVEPOINT, so a failure at
    any step leaves neither a partial transaction nor a partial balance
    update behind.

Invariants enforced:
    - sum(debit) == sum(credit) is checked before anything is written.
    - Transaction numbers come from the locked counter (SequenceService).
    - Account balances move via ``current_balance = current_balance + :delta``
      in the same database transaction as the entries.
    - A source document posts at most once: a repeat post of the same
      (type, reference_id) returns the existing transaction.

Failure modes:
    - InvalidSaleFactError: fact converts to a zero total.
    - AccountResolutionError: an account could not be found or created.
    - LedgerImbalanceError: entries do not balance (never swallowed).
    - PersistenceError: any other database failure during the write.

Transactional behaviour:
    Flushes only.  The caller commits; until then nothing is visible to
    other sessions.
"""

import time
from collections import defaultdict
from decimal import Decimal
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.entries import (
    ONE,
    ConvertedAmounts,
    TransactionRecord,
    assert_balanced,
    build_sale_entries,
    convert_sale_amounts,
)
from ledger_kernel.domain.facts import PaymentMethod, SaleFact, SaleKind
from ledger_kernel.exceptions import PersistenceError
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.account import Account
from ledger_kernel.models.transaction import (
    LedgerTransaction,
    TransactionEntry,
    TransactionStatus,
    TransactionType,
)
from ledger_kernel.services.account_directory import AccountDirectory
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.currency_settings_service import (
    CurrencySettingsService,
    CurrencySettingsSnapshot,
)
from ledger_kernel.services.sequence_service import SequenceService

logger = get_logger("services.posting")

SYSTEM_ACTOR = "system"


def _describe(fact: SaleFact) -> str:
    if fact.kind is SaleKind.POS:
        return f"POS Sale - {fact.reference} - {fact.customer_name or 'Walk-in Customer'}"
    return f"Invoice Sale - {fact.reference} - {fact.customer_name or 'Customer'}"


def _notes(fact: SaleFact) -> str:
    person = fact.sales_person.name if fact.sales_person else SYSTEM_ACTOR
    if fact.kind is SaleKind.POS:
        return f"Auto-generated transaction for POS sale. Sales Person: {person}"
    return f"Auto-generated transaction for invoice sale. Created by: {person}"


def _metadata(
    fact: SaleFact, amounts: ConvertedAmounts, base_currency: str
) -> dict[str, Any]:
    metadata: dict[str, Any] = {
        "salesPerson": fact.sales_person.to_dict() if fact.sales_person else None,
        "salesOutlet": fact.sales_outlet,
        "conversion": {
            "baseCurrency": base_currency,
            "baseTotal": str(fact.total),
            "baseTax": str(fact.total_tax),
            "currency": amounts.currency,
            "exchangeRate": str(amounts.exchange_rate),
        },
    }
    if fact.kind is SaleKind.POS:
        metadata["posTransaction"] = True
        metadata["originalSaleData"] = {
            "items": len(fact.items),
            "paymentMethod": fact.payment_method,
            "tenderedAmount": (
                str(fact.tendered_amount) if fact.tendered_amount is not None else None
            ),
            "displayCurrency": fact.display_currency,
        }
    else:
        metadata["invoiceTransaction"] = True
        metadata["originalInvoiceData"] = {
            "type": fact.invoice_type,
            "paymentTerms": fact.payment_terms,
            "status": fact.invoice_status,
        }
    return metadata


class SalesPostingService(BaseService):
    """
    Posts sale facts to the ledger.

    Non-goals:
        - Does NOT commit; the caller owns the transaction.
        - Does NOT roll back the source sale when posting fails.
    """

    def __init__(
        self,
        session,
        clock: Clock | None = None,
        default_base_currency: str = "USD",
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._default_base_currency = default_base_currency
        self._accounts = AccountDirectory(session)
        self._settings = CurrencySettingsService(session)
        self._sequences = SequenceService(session)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def post(self, fact: SaleFact) -> TransactionRecord:
        """
        Post ``fact`` and return the resulting transaction record.

        Reposting a fact whose reference_id was already posted returns the
        existing record without writing anything.
        """
        t0 = time.monotonic()
        with LogContext.bind(reference_id=fact.reference_id):
            existing = self._find_existing(fact)
            if existing is not None:
                logger.info(
                    "posting_already_exists",
                    extra={"transaction_number": existing.transaction_number},
                )
                return existing.to_record()

            try:
                with self.session.begin_nested():
                    transaction = self._post_new(fact)
            except IntegrityError as exc:
                # A concurrent post of the same source document won the race
                existing = self._find_existing(fact)
                if existing is not None:
                    logger.info(
                        "posting_already_exists",
                        extra={"transaction_number": existing.transaction_number},
                    )
                    return existing.to_record()
                raise PersistenceError("post", str(exc.orig)) from exc
            except SQLAlchemyError as exc:
                raise PersistenceError("post", str(exc)) from exc

            logger.info(
                "posting_completed",
                extra={
                    "transaction_number": transaction.transaction_number,
                    "amount": transaction.amount,
                    "currency": transaction.currency,
                    "entry_count": len(transaction.entries),
                    "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                },
            )
            return transaction.to_record()

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _find_existing(self, fact: SaleFact) -> LedgerTransaction | None:
        return self.session.execute(
            select(LedgerTransaction).where(
                LedgerTransaction.transaction_type == TransactionType.SALE.value,
                LedgerTransaction.reference_id == fact.reference_id,
            )
        ).scalar_one_or_none()

    def _resolve_currency(
        self, fact: SaleFact, settings: CurrencySettingsSnapshot | None
    ) -> tuple[str, str, Decimal]:
        """Return (base_currency, transaction_currency, exchange_rate)."""
        base = settings.base_currency if settings else self._default_base_currency
        display = settings.default_display_currency if settings else None
        currency = fact.currency or display or base

        if currency == base:
            return base, currency, ONE

        supported_rate = settings.rate_for(currency) if settings else None
        if fact.exchange_rate is not None:
            if supported_rate is None:
                logger.warning(
                    "posting_currency_not_supported",
                    extra={"currency": currency, "exchange_rate": fact.exchange_rate},
                )
            return base, currency, fact.exchange_rate
        if supported_rate is not None:
            return base, currency, supported_rate

        logger.warning(
            "posting_rate_defaulted",
            extra={"currency": currency, "base_currency": base},
        )
        return base, currency, ONE

    def _post_new(self, fact: SaleFact) -> LedgerTransaction:
        # 1. Accounts
        accounts = self._accounts.resolve_sales_accounts().by_code()

        # 2-4. Currency, rate and converted amounts
        base, currency, rate = self._resolve_currency(fact, self._settings.snapshot())
        amounts = convert_sale_amounts(fact, currency, base, rate)

        # 5. Entries
        proposed = build_sale_entries(fact, amounts)
        assert_balanced(proposed, currency)

        # 6. Number
        transaction_number = self._sequences.next_transaction_number()

        # 7. Persist
        created_by = fact.sales_person.id if fact.sales_person else SYSTEM_ACTOR
        transaction = LedgerTransaction(
            transaction_number=transaction_number,
            date=fact.invoice_date or self._clock.now(),
            description=_describe(fact),
            transaction_type=TransactionType.SALE.value,
            reference=fact.reference,
            reference_id=fact.reference_id,
            amount=amounts.total,
            currency=currency,
            base_currency=base,
            base_amount=fact.total,
            exchange_rate=amounts.exchange_rate,
            payment_method=PaymentMethod.normalize(fact.payment_method).value,
            status=TransactionStatus.POSTED.value,
            customer_id=fact.customer_id,
            sales_person_id=fact.sales_person.id if fact.sales_person else None,
            sales_outlet=fact.sales_outlet,
            notes=_notes(fact),
            transaction_metadata=_metadata(fact, amounts, base),
            created_by=created_by,
        )
        for line_seq, entry in enumerate(proposed, start=1):
            transaction.entries.append(
                TransactionEntry(
                    account_id=accounts[entry.account_code].id,
                    account=accounts[entry.account_code],
                    line_seq=line_seq,
                    debit=entry.debit,
                    credit=entry.credit,
                    description=entry.description,
                    created_by=created_by,
                )
            )
        self.session.add(transaction)
        self.session.flush()

        # 8. Balances
        deltas: dict[str, Decimal] = defaultdict(Decimal)
        for entry in proposed:
            deltas[entry.account_code] += entry.balance_delta
        self._apply_balance_deltas(accounts, deltas)

        return transaction

    def _apply_balance_deltas(
        self, accounts: dict[str, Account], deltas: dict[str, Decimal]
    ) -> None:
        # Sorted so concurrent postings lock account rows in the same order
        for code in sorted(deltas):
            delta = deltas[code]
            if delta == 0:
                continue
            account = accounts[code]
            self.session.execute(
                update(Account)
                .where(Account.id == account.id)
                .values(current_balance=Account.current_balance + delta)
                .execution_options(synchronize_session=False)
            )
            self.session.expire(account, ["current_balance"])
            logger.debug(
                "account_balance_applied",
                extra={"account_code": code, "delta": delta},
            )
