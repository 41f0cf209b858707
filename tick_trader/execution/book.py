from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from threading import RLock
from typing import Callable, Iterable, Optional

from tick_trader.errors import PersistenceFailure
from tick_trader.execution.repository import InMemorySignalRepository, SignalRepository, closed_copy
from tick_trader.types import ActiveSignal, CloseReason, OutcomeResult, Side, SignalOutcome
from tick_trader.utils import profit_percent

logger = logging.getLogger(__name__)

Resolve = Callable[[ActiveSignal, list[ActiveSignal]], Iterable[ActiveSignal]]


def _tighter(side: Side, new: float, old: Optional[float]) -> bool:
    if old is None:
        return True
    return new > old if side == Side.BUY else new < old


class SignalBook:
    """Owns the set of open signals. Callers only ever see frozen copies."""

    def __init__(self, repository: SignalRepository | None = None) -> None:
        self.repository = repository or InMemorySignalRepository()
        self._lock = RLock()
        self._signals: dict[str, ActiveSignal] = {s.id: s for s in self.repository.list_active()}
        if self._signals:
            logger.info("book_restored active=%d", len(self._signals))

    def add(self, signal: ActiveSignal) -> ActiveSignal:
        with self._lock:
            self.repository.create_signal(signal)
            self._signals[signal.id] = signal
            return signal

    def get(self, signal_id: str) -> Optional[ActiveSignal]:
        with self._lock:
            return self._signals.get(signal_id)

    def is_active(self, signal_id: str) -> bool:
        with self._lock:
            return signal_id in self._signals

    def active(self, symbol: str | None = None) -> list[ActiveSignal]:
        with self._lock:
            return [s for s in self._signals.values() if symbol is None or s.symbol == symbol]

    def symbols(self) -> set[str]:
        with self._lock:
            return {s.symbol for s in self._signals.values()}

    def _outcome(
        self,
        sig: ActiveSignal,
        *,
        exit_price: float,
        result: OutcomeResult,
        reason: CloseReason,
        at: datetime,
    ) -> tuple[ActiveSignal, SignalOutcome]:
        pnl = 0.0 if result == OutcomeResult.REPLACED else profit_percent(sig.side, sig.entry_price, exit_price)
        closed = closed_copy(sig, exit_price=exit_price, result=result, pnl_percent=pnl, closed_at=at)
        outcome = SignalOutcome(
            signal_id=sig.id,
            symbol=sig.symbol,
            side=sig.side,
            entry_price=sig.entry_price,
            exit_price=exit_price,
            result=result,
            pnl_percent=pnl,
            close_reason=reason,
            closed_at=at,
            confidence=sig.confidence,
        )
        return closed, outcome

    def close(
        self,
        signal_id: str,
        *,
        exit_price: float,
        result: OutcomeResult,
        reason: CloseReason,
        at: datetime,
    ) -> Optional[SignalOutcome]:
        """Close an open signal once. Returns None if it is already closed."""
        with self._lock:
            sig = self._signals.get(signal_id)
            if sig is None:
                return None
            closed, outcome = self._outcome(sig, exit_price=exit_price, result=result, reason=reason, at=at)
            self.repository.update_signal(closed)
            try:
                self.repository.append_outcome(outcome)
            except PersistenceFailure:
                self._undo([lambda: self.repository.update_signal(sig)])
                raise
            del self._signals[signal_id]
            return outcome

    def admit(self, signal: ActiveSignal, resolve: Resolve) -> list[SignalOutcome]:
        """Run `resolve` against the open set and commit atomically.

        `resolve` returns the signals to displace or raises to reject.
        """
        with self._lock:
            displaced = list(resolve(signal, list(self._signals.values())))
            undo: list[Callable[[], None]] = []
            outcomes: list[SignalOutcome] = []
            try:
                self.repository.create_signal(signal)
                undo.append(lambda: self.repository.delete_signal(signal.id))
                for old in displaced:
                    closed, outcome = self._outcome(
                        old,
                        exit_price=old.entry_price,
                        result=OutcomeResult.REPLACED,
                        reason=CloseReason.REPLACED,
                        at=signal.created_at,
                    )
                    self.repository.update_signal(closed)
                    undo.append(lambda old=old: self.repository.update_signal(old))
                    outcomes.append(outcome)
                if outcomes:
                    self.repository.append_outcomes(outcomes)
            except PersistenceFailure:
                self._undo(undo)
                raise
            for old in displaced:
                self._signals.pop(old.id, None)
            self._signals[signal.id] = signal
            return outcomes

    def update_protection(
        self,
        signal_id: str,
        *,
        current_profit_percent: float,
        peak_profit_percent: float,
        recommended_stop_loss: Optional[float] = None,
    ) -> Optional[ActiveSignal]:
        with self._lock:
            sig = self._signals.get(signal_id)
            if sig is None:
                return None
            stop = sig.recommended_stop_loss
            if recommended_stop_loss is not None and _tighter(sig.side, recommended_stop_loss, stop):
                stop = recommended_stop_loss
            updated = replace(
                sig,
                current_profit_percent=current_profit_percent,
                peak_profit_percent=max(sig.peak_profit_percent, peak_profit_percent),
                recommended_stop_loss=stop,
            )
            if updated != sig:
                self.repository.update_signal(updated)
                self._signals[signal_id] = updated
            return updated

    def _undo(self, steps: list[Callable[[], None]]) -> None:
        for step in reversed(steps):
            try:
                step()
            except PersistenceFailure:
                logger.exception("book_compensation_failed")
