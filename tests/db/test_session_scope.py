"""Tests for the engine module's transactional helpers."""

from uuid import uuid4

import pytest
from sqlalchemy import select

from ledger_kernel.db.engine import get_engine, is_postgres, session_scope
from ledger_kernel.services.sequence_service import SequenceCounter


def _counter_exists(name: str) -> bool:
    with session_scope() as s:
        return s.execute(
            select(SequenceCounter.id).where(SequenceCounter.name == name)
        ).first() is not None


class TestSessionScope:
    def test_commits_on_success(self, db_tables):
        name = f"scope:{uuid4().hex[:12]}"
        with session_scope() as s:
            s.add(SequenceCounter(name=name, current_value=1))

        assert _counter_exists(name)

        with session_scope() as s:
            s.delete(s.execute(select(SequenceCounter).where(SequenceCounter.name == name))
                     .scalar_one())
        assert not _counter_exists(name)

    def test_rolls_back_on_error(self, db_tables):
        name = f"scope:{uuid4().hex[:12]}"
        with pytest.raises(RuntimeError):
            with session_scope() as s:
                s.add(SequenceCounter(name=name, current_value=1))
                s.flush()
                raise RuntimeError("abort")

        assert not _counter_exists(name)


def test_dialect_detection(db_engine):
    assert is_postgres() == (get_engine().dialect.name == "postgresql")
