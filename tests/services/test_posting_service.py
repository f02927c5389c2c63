"""
Tests for SalesPostingService -- sale facts to balanced ledger transactions.

Covers:
- The ZWL worked example (base USD, rate 30)
- Running balances and reconciliation against entries
- CASH vs AR debit selection
- Rate fallback (fact, settings, default 1)
- Idempotent repost and transaction numbering
- All-or-nothing persistence
"""

from datetime import datetime, timezone
from decimal import Decimal
from unittest import mock

import pytest
from sqlalchemy import update
from sqlalchemy.exc import OperationalError

from ledger_kernel.domain.entries import ProposedEntry
from ledger_kernel.domain.facts import SaleKind, SalesPerson
from ledger_kernel.exceptions import LedgerImbalanceError, PersistenceError
from ledger_kernel.models.account import Account
from ledger_kernel.selectors.transaction_selector import TransactionSelector
from ledger_kernel.services.currency_settings_service import (
    CurrencySettingsService,
    SettingsSeed,
)
from ledger_kernel.services.posting_service import SalesPostingService


@pytest.fixture
def settings(session):
    CurrencySettingsService(session).get_or_create_singleton(SettingsSeed())


@pytest.fixture
def poster(session, clock):
    return SalesPostingService(session, clock)


@pytest.fixture
def selector(session):
    return TransactionSelector(session)


def lines(record) -> dict[str, tuple[Decimal, Decimal]]:
    return {e.account_code: (e.debit, e.credit) for e in record.entries}


# =============================================================================
# Worked example
# =============================================================================


class TestZwlSale:
    def test_converted_entries(self, poster, settings, make_fact, selector):
        fact = make_fact(total="45000", total_tax="6750", currency="ZWL", exchange_rate="30")

        record = poster.post(fact)

        assert record.currency == "ZWL"
        assert record.base_currency == "USD"
        assert record.amount == Decimal("1350000")
        assert record.base_amount == Decimal("45000")
        assert lines(record) == {
            "CASH": (Decimal("1350000"), Decimal("0")),
            "SALES": (Decimal("0"), Decimal("1147500")),
            "TAX_PAY": (Decimal("0"), Decimal("202500")),
        }
        assert record.total_debits == record.total_credits
        assert selector.stored_balance("CASH") == Decimal("1350000")
        assert selector.stored_balance("SALES") == Decimal("-1147500")
        assert selector.stored_balance("TAX_PAY") == Decimal("-202500")

    def test_entry_descriptions(self, poster, settings, make_fact):
        record = poster.post(make_fact(total="115", total_tax="15", reference="POS-00042"))
        descriptions = {e.account_code: e.description for e in record.entries}
        assert descriptions == {
            "CASH": "POS Sale - POS-00042",
            "SALES": "Sales Revenue - POS-00042",
            "TAX_PAY": "Tax Collected - POS-00042",
        }


# =============================================================================
# Balances
# =============================================================================


class TestBalances:
    def test_balances_accumulate(self, poster, settings, make_fact, selector):
        poster.post(make_fact(total="100"))
        poster.post(make_fact(total="50", total_tax="5"))

        assert selector.stored_balance("CASH") == Decimal("150")
        assert selector.stored_balance("SALES") == Decimal("-145")
        assert selector.stored_balance("TAX_PAY") == Decimal("-5")
        assert selector.find_balance_mismatches() == []

    def test_zero_tax_omits_tax_line(self, poster, settings, make_fact):
        record = poster.post(make_fact(total="100"))
        assert set(lines(record)) == {"CASH", "SALES"}

    def test_all_accounts_created_on_first_post(self, poster, settings, make_fact, selector):
        poster.post(make_fact(total="100"))
        assert selector.stored_balance("AR") == Decimal("0")


class TestDebitAccount:
    def test_unpaid_invoice_debits_receivable(self, poster, settings, make_fact):
        record = poster.post(
            make_fact(kind=SaleKind.INVOICE, total="200", invoice_status="sent")
        )
        assert lines(record)["AR"] == (Decimal("200"), Decimal("0"))
        assert record.entries[0].description.startswith("Accounts Receivable - INV-")

    def test_paid_invoice_debits_cash(self, poster, settings, make_fact):
        record = poster.post(
            make_fact(kind=SaleKind.INVOICE, total="200", invoice_status="Paid")
        )
        assert "CASH" in lines(record)
        assert "AR" not in lines(record)
        assert record.entries[0].description.startswith("Invoice Payment - INV-")

    def test_invoice_date_becomes_transaction_date(self, poster, settings, make_fact):
        invoice_date = datetime(2025, 5, 30, 14, 0, tzinfo=timezone.utc)
        record = poster.post(
            make_fact(kind=SaleKind.INVOICE, total="10", invoice_date=invoice_date)
        )
        assert record.date == invoice_date


# =============================================================================
# Currency and rate selection
# =============================================================================


class TestRateSelection:
    def test_settings_rate_when_fact_has_none(self, poster, settings, make_fact):
        record = poster.post(make_fact(total="10", currency="ZWL"))
        assert record.exchange_rate == Decimal("30")
        assert record.amount == Decimal("300")

    def test_fact_rate_wins_over_settings(self, poster, settings, make_fact):
        record = poster.post(make_fact(total="10", currency="ZWL", exchange_rate="26.5"))
        assert record.amount == Decimal("265")

    def test_unsupported_currency_with_fact_rate(
        self, poster, settings, make_fact, captured_logs
    ):
        record = poster.post(make_fact(total="100", currency="EUR", exchange_rate="0.875"))

        assert record.amount == Decimal("87.5")
        assert any(
            r["message"] == "posting_currency_not_supported" for r in captured_logs()
        )

    def test_unsupported_currency_without_rate_defaults_to_one(
        self, poster, settings, make_fact, captured_logs
    ):
        record = poster.post(make_fact(total="100", currency="EUR"))

        assert record.exchange_rate == Decimal("1")
        assert record.amount == Decimal("100")
        defaulted = [r for r in captured_logs() if r["message"] == "posting_rate_defaulted"]
        assert defaulted and defaulted[0]["level"] == "WARNING"

    def test_base_currency_ignores_supplied_rate(self, poster, settings, make_fact):
        record = poster.post(make_fact(total="100", currency="USD", exchange_rate="30"))
        assert record.exchange_rate == Decimal("1")
        assert record.amount == Decimal("100")

    def test_missing_currency_uses_display_currency(self, session, clock, make_fact):
        CurrencySettingsService(session).get_or_create_singleton(
            SettingsSeed(default_display_currency="ZWL")
        )
        record = SalesPostingService(session, clock).post(make_fact(total="10"))
        assert record.currency == "ZWL"
        assert record.amount == Decimal("300")

    def test_no_settings_uses_default_base(self, session, clock, make_fact):
        poster = SalesPostingService(session, clock, default_base_currency="USD")
        record = poster.post(make_fact(total="10", currency="ZWL", exchange_rate="30"))
        assert record.base_currency == "USD"
        assert record.amount == Decimal("300")

    def test_jpy_rounds_to_whole_yen(self, poster, settings, make_fact):
        record = poster.post(make_fact(total="10.55", currency="JPY", exchange_rate="150"))
        assert record.amount == Decimal("1583")


# =============================================================================
# Numbering and idempotency
# =============================================================================


class TestNumbering:
    def test_sequential_numbers(self, poster, settings, make_fact):
        numbers = [poster.post(make_fact(total="1")).transaction_number for _ in range(3)]
        assert numbers == ["TXN000001", "TXN000002", "TXN000003"]

    def test_repost_returns_existing(self, poster, settings, make_fact, selector, captured_logs):
        fact = make_fact(total="100")

        first = poster.post(fact)
        second = poster.post(fact)

        assert second.transaction_number == first.transaction_number
        assert selector.count() == 1
        assert selector.stored_balance("CASH") == Decimal("100")
        assert any(r["message"] == "posting_already_exists" for r in captured_logs())

    def test_repost_ignores_changed_amounts(self, poster, settings, make_fact, selector):
        poster.post(make_fact(total="100", reference_id="sale-1"))
        record = poster.post(make_fact(total="999", reference_id="sale-1"))
        assert record.amount == Decimal("100")
        assert selector.count() == 1


# =============================================================================
# Atomicity
# =============================================================================


class TestAtomicity:
    def test_failed_balance_update_rolls_back_everything(
        self, poster, settings, make_fact, selector
    ):
        with mock.patch.object(
            SalesPostingService,
            "_apply_balance_deltas",
            side_effect=OperationalError("UPDATE accounts", {}, Exception("disk full")),
        ):
            with pytest.raises(PersistenceError) as exc_info:
                poster.post(make_fact(total="100"))

        assert exc_info.value.operation == "post"
        assert selector.count() == 0
        assert selector.stored_balance("CASH") is None

        record = poster.post(make_fact(total="100"))
        assert record.transaction_number == "TXN000001"

    def test_imbalance_propagates_unwrapped(self, poster, settings, make_fact, selector):
        unbalanced = (
            ProposedEntry("CASH", debit=Decimal("100")),
            ProposedEntry("SALES", credit=Decimal("90")),
        )
        with mock.patch(
            "ledger_kernel.services.posting_service.build_sale_entries",
            return_value=unbalanced,
        ):
            with pytest.raises(LedgerImbalanceError) as exc_info:
                poster.post(make_fact(total="100"))

        assert exc_info.value.debits == Decimal("100")
        assert exc_info.value.credits == Decimal("90")
        assert selector.count() == 0


# =============================================================================
# Outbound record
# =============================================================================


class TestRecord:
    def test_pos_metadata_and_notes(self, poster, settings, make_fact):
        fact = make_fact(
            total="45000",
            total_tax="6750",
            currency="ZWL",
            exchange_rate="30",
            customer_name="Tendai",
            payment_method="Card",
            sales_outlet="Harare CBD",
            items=({"sku": "A1"}, {"sku": "B2"}),
            sales_person=SalesPerson("u-7", "Rudo", "rudo@example.com"),
        )

        record = poster.post(fact)

        assert record.description == f"POS Sale - {fact.reference} - Tendai"
        assert record.payment_method == "credit_card"
        assert record.created_by == "u-7"
        assert record.notes.endswith("Sales Person: Rudo")
        assert record.metadata["posTransaction"] is True
        assert record.metadata["salesOutlet"] == "Harare CBD"
        assert record.metadata["conversion"] == {
            "baseCurrency": "USD",
            "baseTotal": "45000",
            "baseTax": "6750",
            "currency": "ZWL",
            "exchangeRate": "30",
        }
        assert record.metadata["originalSaleData"]["items"] == 2

    def test_invoice_defaults(self, poster, settings, make_fact):
        record = poster.post(make_fact(kind=SaleKind.INVOICE, total="10", payment_terms="net30"))
        assert record.description.endswith(" - Customer")
        assert record.created_by == "system"
        assert record.metadata["invoiceTransaction"] is True
        assert record.metadata["originalInvoiceData"]["paymentTerms"] == "net30"
        assert record.payment_method == "cash"

    def test_to_dict(self, poster, settings, make_fact):
        data = poster.post(make_fact(total="100", reference="POS-00009")).to_dict()
        assert data["transactionNumber"] == "TXN000001"
        assert data["type"] == "sale"
        assert data["reference"] == "POS-00009"
        assert data["status"] == "posted"
        assert data["date"] == "2025-06-02T09:00:00+00:00"
        assert [e["account"] for e in data["entries"]] == ["CASH", "SALES"]


# =============================================================================
# Selector
# =============================================================================


class TestSelector:
    def test_lookup_by_number_and_reference(self, poster, settings, make_fact, selector):
        record = poster.post(make_fact(total="100", reference_id="pos-abc"))
        assert selector.get_by_number(record.transaction_number).reference_id == "pos-abc"
        assert selector.get_by_reference("pos-abc").transaction_number == record.transaction_number
        assert selector.get_by_reference("missing") is None

    def test_list_by_sales_person(self, poster, settings, make_fact, selector, clock):
        rudo = SalesPerson("u-7", "Rudo")
        poster.post(make_fact(total="10", sales_person=rudo, sales_outlet="A"))
        clock.advance(60)
        poster.post(make_fact(total="20", sales_person=rudo, sales_outlet="B"))
        poster.post(make_fact(total="30", sales_person=SalesPerson("u-8", "Farai")))

        page = selector.list_sales_by_sales_person("u-7")
        assert page.total == 2
        assert [r.amount for r in page.items] == [Decimal("20"), Decimal("10")]
        assert selector.list_sales_by_sales_person("u-7", sales_outlet="A").total == 1

    def test_paging(self, poster, settings, make_fact, selector):
        rudo = SalesPerson("u-7", "Rudo")
        for _ in range(3):
            poster.post(make_fact(total="1", sales_person=rudo))
        page = selector.list_sales_by_sales_person("u-7", page=2, limit=2)
        assert (page.total, page.pages, len(page.items)) == (3, 2, 1)
        with pytest.raises(ValueError):
            selector.list_sales_by_sales_person("u-7", page=0)

    def test_mismatch_detected(self, poster, settings, make_fact, selector, session):
        poster.post(make_fact(total="100"))
        session.execute(update(Account).where(Account.code == "CASH").values(current_balance=1))

        mismatches = selector.find_balance_mismatches()
        assert [m.account_code for m in mismatches] == ["CASH"]
        assert mismatches[0].derived == Decimal("100")
