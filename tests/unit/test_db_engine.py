"""
Tests for ledger_kernel.db -- engine lifecycle, session_scope and the
UTC datetime column type.
"""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import inspect, select

from ledger_kernel.db.base import UTCDateTime
from ledger_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_engine,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
    session_scope,
)
from ledger_kernel.models.sequence import SequenceCounter


@pytest.fixture
def global_engine(tmp_path):
    engine = init_engine_from_url(f"sqlite:///{tmp_path / 'global.db'}")
    create_tables()
    yield engine
    reset_engine()


class TestEngineLifecycle:
    def test_uninitialised(self):
        reset_engine()
        with pytest.raises(RuntimeError, match="not initialized"):
            get_engine()
        with pytest.raises(RuntimeError):
            get_session_factory()

    def test_create_and_drop_tables(self, global_engine):
        assert "ledger_transactions" in inspect(global_engine).get_table_names()
        drop_tables()
        assert inspect(global_engine).get_table_names() == []

    def test_reinit_replaces_engine(self, global_engine, tmp_path):
        replacement = init_engine_from_url(f"sqlite:///{tmp_path / 'other.db'}")
        assert get_engine() is replacement
        assert replacement is not global_engine


class TestSessionScope:
    def test_commits(self, global_engine):
        with session_scope() as s:
            s.add(SequenceCounter(name="scope_test", current_value=5))

        with session_scope() as s:
            counter = s.execute(
                select(SequenceCounter).where(SequenceCounter.name == "scope_test")
            ).scalar_one()
            assert counter.current_value == 5

    def test_rolls_back_on_error(self, global_engine):
        with pytest.raises(ZeroDivisionError):
            with session_scope() as s:
                s.add(SequenceCounter(name="scope_test", current_value=5))
                s.flush()
                1 / 0

        with session_scope() as s:
            assert s.execute(select(SequenceCounter)).scalars().all() == []


class TestUTCDateTime:
    def test_naive_rejected(self):
        with pytest.raises(ValueError, match="Naive datetime"):
            UTCDateTime().process_bind_param(datetime(2025, 6, 2, 9, 0), None)

    def test_aware_converted_to_utc(self):
        harare = timezone(timedelta(hours=2))
        value = UTCDateTime().process_bind_param(datetime(2025, 6, 2, 11, 0, tzinfo=harare), None)
        assert value == datetime(2025, 6, 2, 9, 0, tzinfo=timezone.utc)
        assert value.utcoffset() == timedelta(0)

    def test_naive_result_tagged_utc(self):
        value = UTCDateTime().process_result_value(datetime(2025, 6, 2, 9, 0), None)
        assert value.tzinfo is timezone.utc
