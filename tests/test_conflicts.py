from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from tick_trader.errors import PersistenceFailure
from tick_trader.execution.book import SignalBook
from tick_trader.execution.repository import InMemorySignalRepository, JsonFileSignalRepository
from tick_trader.policy.conflicts import Accepted, ConflictResolver, Rejected
from tick_trader.types import ActiveSignal, OutcomeResult, Side, TradeProposal, TradeType

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _active(sid: str, confidence: float, *, side: Side = Side.BUY, entry: float = 100.0, priority: int = 3, symbol: str = "V25") -> ActiveSignal:
    tp = entry * (1.025 if side == Side.BUY else 0.975)
    sl = entry * (0.99 if side == Side.BUY else 1.01)
    return ActiveSignal(
        id=sid,
        symbol=symbol,
        side=side,
        entry_price=entry,
        take_profit=tp,
        stop_loss=sl,
        confidence=confidence,
        trade_type=TradeType.DAY,
        timeframe="M15",
        priority=priority,
        created_at=T0,
        expiry_time=T0 + timedelta(hours=4),
    )


def _proposal(confidence: float, *, side: Side = Side.BUY, entry: float = 100.2, priority: int = 3, symbol: str = "V25") -> TradeProposal:
    tp = entry * (1.025 if side == Side.BUY else 0.975)
    sl = entry * (0.99 if side == Side.BUY else 1.01)
    return TradeProposal(
        symbol=symbol,
        side=side,
        entry_price=entry,
        take_profit=tp,
        stop_loss=sl,
        confidence=confidence,
        trade_type=TradeType.DAY,
        timeframe="M15",
        priority=priority,
        position_size=1.0,
        risk_reward_ratio=2.5,
        expiry_time=T0 + timedelta(hours=4),
    )


def _book(*signals: ActiveSignal) -> SignalBook:
    book = SignalBook(InMemorySignalRepository())
    for s in signals:
        book.add(s)
    return book


def test_weaker_proposal_is_rejected():
    book = _book(_active("a", 70.0))
    res = ConflictResolver().admit(_proposal(65.0), book, when=T0)
    assert isinstance(res, Rejected)
    assert res.conflicts == ("a",)
    assert [s.id for s in book.active()] == ["a"]


def test_stronger_proposal_replaces_active():
    repo = InMemorySignalRepository()
    book = SignalBook(repo)
    book.add(_active("a", 70.0))
    res = ConflictResolver().admit(_proposal(75.0), book, when=T0 + timedelta(minutes=5))
    assert isinstance(res, Accepted)
    assert res.displaced_ids == ("a",)
    assert not book.is_active("a")
    assert book.is_active(res.signal.id)

    [outcome] = repo.list_outcomes("a")
    assert outcome.result == OutcomeResult.REPLACED
    assert outcome.pnl_percent == 0.0
    assert outcome.exit_price == 100.0
    stored = repo.get_signal("a")
    assert not stored.is_active
    assert stored.result == OutcomeResult.REPLACED


def test_confidence_tie_broken_by_priority():
    r = ConflictResolver()
    active = [_active("a", 80.0, priority=3)]
    assert isinstance(r.resolve(_proposal(80.0, priority=2), active), Accepted)
    assert isinstance(r.resolve(_proposal(80.0, priority=3), active), Rejected)


def test_opposite_side_always_conflicts():
    r = ConflictResolver()
    sell = _proposal(60.0, side=Side.SELL, entry=150.0)
    assert r.conflicts_with(sell, _active("a", 70.0))


def test_distant_entry_same_side_coexists():
    book = _book(_active("a", 90.0))
    res = ConflictResolver().admit(_proposal(60.0, entry=105.0), book, when=T0)
    assert isinstance(res, Accepted)
    assert res.displaced_ids == ()
    assert len(book.active()) == 2


def test_other_symbol_never_conflicts():
    r = ConflictResolver()
    assert not r.conflicts_with(_proposal(50.0, symbol="V75"), _active("a", 90.0))


class _OutcomeFailingRepo(InMemorySignalRepository):
    def append_outcomes(self, outcomes):
        raise PersistenceFailure("outcomes unavailable")


class _FlushLimitRepo(JsonFileSignalRepository):
    """Fails any write that would store two outcomes."""

    def _flush(self):
        if len(self._state["outcomes"]) >= 2:
            raise PersistenceFailure("disk full")
        super()._flush()


def test_failed_replacement_leaves_book_unchanged():
    repo = _OutcomeFailingRepo()
    book = SignalBook(repo)
    book.add(_active("a", 70.0))
    with pytest.raises(PersistenceFailure):
        ConflictResolver().admit(_proposal(75.0), book, when=T0)
    assert [s.id for s in book.active()] == ["a"]
    assert [s.id for s in repo.list_active()] == ["a"]
    assert repo.list_outcomes() == []


def test_failed_double_replacement_writes_no_outcomes(tmp_path):
    repo = _FlushLimitRepo(tmp_path / "signals.json")
    book = SignalBook(repo)
    book.add(_active("a", 70.0))
    book.add(_active("b", 72.0, entry=100.5))
    with pytest.raises(PersistenceFailure):
        ConflictResolver().admit(_proposal(80.0), book, when=T0)
    assert sorted(s.id for s in book.active()) == ["a", "b"]
    assert sorted(s.id for s in repo.list_active()) == ["a", "b"]
    assert repo.list_outcomes() == []

    reopened = JsonFileSignalRepository(tmp_path / "signals.json")
    assert reopened.list_outcomes() == []
    assert sorted(s.id for s in reopened.list_active()) == ["a", "b"]


def test_double_replacement_records_both_outcomes(tmp_path):
    repo = JsonFileSignalRepository(tmp_path / "signals.json")
    book = SignalBook(repo)
    book.add(_active("a", 70.0))
    book.add(_active("b", 72.0, entry=100.5))
    res = ConflictResolver().admit(_proposal(80.0), book, when=T0)
    assert isinstance(res, Accepted)
    assert sorted(res.displaced_ids) == ["a", "b"]
    assert sorted((o.signal_id, o.result) for o in repo.list_outcomes()) == [
        ("a", OutcomeResult.REPLACED),
        ("b", OutcomeResult.REPLACED),
    ]
    assert [s.id for s in book.active()] == [res.signal.id]
