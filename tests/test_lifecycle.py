from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from tick_trader.clock import ManualClock, VirtualScheduler
from tick_trader.data.ticks import TickBuffer
from tick_trader.execution.book import SignalBook
from tick_trader.execution.notifier import MemoryAlertSink
from tick_trader.execution.repository import InMemorySignalRepository
from tick_trader.risk.manager import RiskManager
from tick_trader.tracking.lifecycle import LifecycleTracker, closing_decision
from tick_trader.types import ActiveSignal, AlertKind, CloseReason, OutcomeResult, PriceTick, Side, TradeType, Urgency

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _signal(sid: str = "s1", side: Side = Side.BUY, *, expiry_minutes: int = 240) -> ActiveSignal:
    buy = side == Side.BUY
    return ActiveSignal(
        id=sid,
        symbol="V25",
        side=side,
        entry_price=100.0,
        take_profit=102.0 if buy else 98.0,
        stop_loss=99.0 if buy else 101.0,
        confidence=85.0,
        trade_type=TradeType.DAY,
        timeframe="M15",
        priority=2,
        created_at=T0,
        expiry_time=T0 + timedelta(minutes=expiry_minutes),
    )


def _setup(*signals: ActiveSignal):
    repo = InMemorySignalRepository()
    book = SignalBook(repo)
    for s in signals:
        book.add(s)
    clock = ManualClock(T0)
    buffer = TickBuffer()
    sink = MemoryAlertSink()
    tracker = LifecycleTracker(book, RiskManager(), buffer=buffer, sink=sink, clock=clock)
    return repo, book, clock, buffer, sink, tracker


def _tick(price: float, at: datetime) -> PriceTick:
    return PriceTick("V25", price, at)


def test_take_profit_closes_once():
    repo, book, _, _, sink, tracker = _setup(_signal())
    at = T0 + timedelta(minutes=1)
    [out] = tracker.on_tick(_tick(102.0, at))
    assert out.result == OutcomeResult.WIN
    assert out.close_reason == CloseReason.TAKE_PROFIT_HIT
    assert out.pnl_percent == pytest.approx(2.0)

    assert tracker.on_tick(_tick(102.5, at)) == []
    assert len(repo.list_outcomes()) == 1
    assert tracker.risk.profile.winning_trades == 1
    assert repo.load_risk_profile()["total_trades"] == 1
    [alert] = sink.alerts
    assert alert.kind == AlertKind.SIGNAL_CLOSED
    assert alert.urgency == Urgency.LOW


def test_sell_stop_loss():
    _, book, _, _, sink, tracker = _setup(_signal(side=Side.SELL))
    [out] = tracker.on_tick(_tick(101.0, T0 + timedelta(minutes=1)))
    assert out.result == OutcomeResult.LOSS
    assert out.pnl_percent == pytest.approx(-1.0)
    assert not book.active()
    assert tracker.risk.profile.consecutive_losses == 1
    assert sink.alerts[0].urgency == Urgency.MEDIUM


def test_expiry_wins_over_levels():
    sig = _signal(expiry_minutes=10)
    assert closing_decision(sig, 102.0, T0 + timedelta(minutes=11)) == (OutcomeResult.EXPIRED, CloseReason.EXPIRED)
    assert closing_decision(sig, 100.5, T0 + timedelta(minutes=5)) is None

    _, _, _, _, _, tracker = _setup(sig)
    [out] = tracker.on_tick(_tick(102.0, T0 + timedelta(minutes=11)))
    assert out.result == OutcomeResult.EXPIRED
    assert out.is_win
    assert tracker.risk.profile.winning_trades == 1


def test_sweep_closes_expired_on_fresh_price():
    _, book, clock, buffer, _, tracker = _setup(_signal(expiry_minutes=10))
    now = clock.advance(11 * 60)
    buffer.append(_tick(100.5, now - timedelta(seconds=10)))
    [out] = tracker.sweep()
    assert out.result == OutcomeResult.EXPIRED
    assert out.exit_price == 100.5
    assert not book.active()


def test_sweep_skips_symbol_with_stale_feed():
    _, book, clock, buffer, _, tracker = _setup(_signal(expiry_minutes=10))
    buffer.append(_tick(100.5, T0 + timedelta(minutes=1)))
    clock.advance(11 * 60)
    assert tracker.sweep() == []
    assert book.is_active("s1")


def test_sweep_runs_on_schedule():
    _, book, clock, buffer, _, tracker = _setup(_signal(expiry_minutes=1))
    sched = VirtualScheduler(clock)
    tracker.start(sched)
    buffer.append(_tick(100.2, T0 + timedelta(seconds=58)))
    sched.advance(66)
    assert not book.active()
    tracker.stop()


def test_subscriber_errors_do_not_block_others():
    _, _, _, _, _, tracker = _setup(_signal())
    seen = []

    def broken(outcome):
        raise RuntimeError("boom")

    tracker.subscribe(broken)
    tracker.subscribe(seen.append)
    tracker.on_tick(_tick(98.0, T0 + timedelta(minutes=1)))
    assert [o.signal_id for o in seen] == ["s1"]
