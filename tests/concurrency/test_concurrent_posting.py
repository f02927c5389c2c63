"""
Concurrent posting tests.

Every thread uses its own session, as the sales flow does.  On SQLite the
writers serialise on BEGIN IMMEDIATE; the assertions are the same ones a
PostgreSQL run must satisfy:

- No duplicate transaction numbers, no gaps
- Stored balances equal the sum of every posted delta
- One transaction per source document however many posts race
- One row per standard account however many first uses race

Skip with: pytest -m "not slow_locks"
"""

import threading
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal

import pytest

from ledger_kernel.db.engine import session_scope
from ledger_kernel.selectors.transaction_selector import TransactionSelector
from ledger_kernel.services.account_directory import AccountDirectory
from ledger_kernel.services.posting_service import SalesPostingService
from ledger_kernel.services.sequence_service import SequenceService

pytestmark = pytest.mark.slow_locks

THREADS = 8


def run_together(fn, count=THREADS):
    """Start ``count`` calls of ``fn(i)`` behind a barrier; return results in order."""
    barrier = threading.Barrier(count)

    def _call(i):
        barrier.wait(timeout=10)
        return fn(i)

    with ThreadPoolExecutor(max_workers=count) as pool:
        return list(pool.map(_call, range(count)))


@pytest.fixture
def post(session_factory, clock):
    def _post(fact):
        with session_scope(session_factory) as s:
            return SalesPostingService(s, clock).post(fact)

    return _post


class TestConcurrentPosting:
    def test_unique_contiguous_numbers(self, seeded_settings, post, make_fact):
        facts = [make_fact(total="10") for _ in range(THREADS)]

        records = run_together(lambda i: post(facts[i]))

        numbers = sorted(r.transaction_number for r in records)
        assert numbers == [f"TXN{n:06d}" for n in range(1, THREADS + 1)]

    def test_balances_equal_sum_of_postings(
        self, seeded_settings, post, make_fact, session_factory
    ):
        facts = [make_fact(total=str(10 * (i + 1)), total_tax="2") for i in range(THREADS)]

        run_together(lambda i: post(facts[i]))

        total = sum(Decimal(10 * (i + 1)) for i in range(THREADS))
        with session_scope(session_factory) as s:
            selector = TransactionSelector(s)
            assert selector.count() == THREADS
            assert selector.stored_balance("CASH") == total
            assert selector.stored_balance("TAX_PAY") == Decimal(-2 * THREADS)
            assert selector.stored_balance("SALES") == -(total - 2 * THREADS)
            assert selector.find_balance_mismatches() == []

    def test_same_document_posts_once(
        self, seeded_settings, post, make_fact, session_factory
    ):
        fact = make_fact(total="100", reference_id="pos-race")

        records = run_together(lambda i: post(fact))

        assert len({r.transaction_number for r in records}) == 1
        with session_scope(session_factory) as s:
            selector = TransactionSelector(s)
            assert selector.count() == 1
            assert selector.stored_balance("CASH") == Decimal("100")


class TestConcurrentFirstUse:
    def test_accounts_created_once(self, session_factory):
        def resolve(_):
            with session_scope(session_factory) as s:
                return {
                    code: account.id
                    for code, account in AccountDirectory(s).resolve_sales_accounts().by_code().items()
                }

        results = run_together(resolve)

        assert all(r == results[0] for r in results)
        assert sorted(results[0]) == ["AR", "CASH", "SALES", "TAX_PAY"]

    def test_sequence_counter_created_once(self, session_factory):
        def allocate(_):
            with session_scope(session_factory) as s:
                return SequenceService(s).next_value("race_sequence")

        values = run_together(allocate)

        assert sorted(values) == list(range(1, THREADS + 1))
