from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Callable, Optional

from tick_trader.clock import Clock, Job, Scheduler, SystemClock
from tick_trader.config import TrackerConfig
from tick_trader.data.ticks import TickBuffer
from tick_trader.errors import FeedGap, PersistenceFailure
from tick_trader.execution.book import SignalBook
from tick_trader.execution.notifier import AlertSink, deliver
from tick_trader.risk.manager import RiskManager
from tick_trader.types import (
    ActiveSignal,
    AlertAction,
    AlertKind,
    CloseReason,
    OutcomeResult,
    PriceTick,
    Side,
    SignalOutcome,
    TacticalAlert,
    Urgency,
)
from tick_trader.utils import utc

logger = logging.getLogger(__name__)


def closing_decision(sig: ActiveSignal, price: float, at: datetime) -> Optional[tuple[OutcomeResult, CloseReason]]:
    if sig.expiry_time is not None and utc(at) > utc(sig.expiry_time):
        return OutcomeResult.EXPIRED, CloseReason.EXPIRED
    if sig.side == Side.BUY:
        if price >= sig.take_profit:
            return OutcomeResult.WIN, CloseReason.TAKE_PROFIT_HIT
        if price <= sig.stop_loss:
            return OutcomeResult.LOSS, CloseReason.STOP_LOSS_HIT
    else:
        if price <= sig.take_profit:
            return OutcomeResult.WIN, CloseReason.TAKE_PROFIT_HIT
        if price >= sig.stop_loss:
            return OutcomeResult.LOSS, CloseReason.STOP_LOSS_HIT
    return None


class LifecycleTracker:
    def __init__(
        self,
        book: SignalBook,
        risk: RiskManager,
        *,
        cfg: TrackerConfig = TrackerConfig(),
        buffer: TickBuffer | None = None,
        sink: AlertSink | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.book = book
        self.risk = risk
        self.cfg = cfg
        self.buffer = buffer
        self.sink = sink
        self.clock = clock or SystemClock()
        self._subscribers: list[Callable[[SignalOutcome], None]] = []
        self._sub_lock = threading.Lock()
        self._job: Job | None = None
        self._scheduler: Scheduler | None = None

    def subscribe(self, callback: Callable[[SignalOutcome], None]) -> None:
        with self._sub_lock:
            self._subscribers.append(callback)

    def on_tick(self, tick: PriceTick) -> list[SignalOutcome]:
        out: list[SignalOutcome] = []
        for sig in self.book.active(tick.symbol):
            decision = closing_decision(sig, tick.price, tick.timestamp)
            if decision is None:
                continue
            outcome = self._close(sig, tick.price, decision, tick.timestamp)
            if outcome is not None:
                out.append(outcome)
        return out

    def sweep(self, now: datetime | None = None) -> list[SignalOutcome]:
        now = utc(now or self.clock.now())
        out: list[SignalOutcome] = []
        for symbol in sorted(self.book.symbols()):
            expired = [s for s in self.book.active(symbol) if s.expiry_time is not None and now > utc(s.expiry_time)]
            if not expired:
                continue
            if self.buffer is None:
                continue
            try:
                tick = self.buffer.fresh_last(symbol, now, self.cfg.feed_gap_seconds)
            except FeedGap as e:
                logger.warning("sweep_skipped symbol=%s reason=%s", symbol, e)
                continue
            for sig in expired:
                outcome = self._close(sig, tick.price, (OutcomeResult.EXPIRED, CloseReason.EXPIRED), now)
                if outcome is not None:
                    out.append(outcome)
        return out

    def start(self, scheduler: Scheduler) -> None:
        if self._job is not None:
            return
        self._scheduler = scheduler
        self._job = scheduler.every(self.cfg.sweep_interval_seconds, self.sweep, name="lifecycle-sweep")

    def stop(self) -> None:
        if self._job is not None and self._scheduler is not None:
            self._scheduler.cancel(self._job)
        self._job = None
        self._scheduler = None

    def _close(
        self,
        sig: ActiveSignal,
        price: float,
        decision: tuple[OutcomeResult, CloseReason],
        at: datetime,
    ) -> Optional[SignalOutcome]:
        result, reason = decision
        try:
            outcome = self.book.close(sig.id, exit_price=price, result=result, reason=reason, at=at)
        except PersistenceFailure:
            logger.exception("signal_close_failed id=%s", sig.id)
            return None
        if outcome is None:
            return None
        logger.info(
            "signal_closed id=%s symbol=%s result=%s reason=%s exit=%.5f pnl=%.3f",
            outcome.signal_id, outcome.symbol, outcome.result.value, outcome.close_reason.value,
            outcome.exit_price, outcome.pnl_percent,
        )
        profile = self.risk.update_trade_result(outcome.pnl_percent, outcome.is_win)
        try:
            self.book.repository.save_risk_profile(profile.to_dict())
        except PersistenceFailure:
            logger.exception("risk_profile_save_failed")
        self._publish(outcome)
        deliver(self.sink, self._closed_alert(outcome))
        return outcome

    def _publish(self, outcome: SignalOutcome) -> None:
        with self._sub_lock:
            subs = list(self._subscribers)
        for cb in subs:
            try:
                cb(outcome)
            except Exception:
                logger.exception("closure_subscriber_error id=%s", outcome.signal_id)

    @staticmethod
    def _closed_alert(outcome: SignalOutcome) -> TacticalAlert:
        urgency = Urgency.MEDIUM if outcome.result == OutcomeResult.LOSS else Urgency.LOW
        return TacticalAlert(
            signal_id=outcome.signal_id,
            symbol=outcome.symbol,
            kind=AlertKind.SIGNAL_CLOSED,
            message=f"{outcome.side.value} {outcome.symbol} closed {outcome.result.value} ({outcome.pnl_percent:+.2f}%)",
            action=AlertAction.MONITOR,
            urgency=urgency,
            timestamp=outcome.closed_at,
        )
