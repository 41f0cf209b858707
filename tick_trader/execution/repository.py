from __future__ import annotations

import json
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import asdict, replace
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from tick_trader.errors import PersistenceFailure
from tick_trader.types import ActiveSignal, CloseReason, OutcomeResult, Side, SignalOutcome, TradeType

logger = logging.getLogger(__name__)


def _ts(dt: datetime | None) -> str | None:
    return None if dt is None else dt.isoformat()


def _parse_ts(s: str | None) -> datetime | None:
    return None if s is None else datetime.fromisoformat(s)


def signal_to_dict(sig: ActiveSignal) -> dict[str, Any]:
    d = asdict(sig)
    d["side"] = sig.side.value
    d["trade_type"] = sig.trade_type.value
    d["result"] = None if sig.result is None else sig.result.value
    d["reasoning"] = list(sig.reasoning)
    for k in ("created_at", "expiry_time", "closed_at"):
        d[k] = _ts(getattr(sig, k))
    return d


def signal_from_dict(d: dict[str, Any]) -> ActiveSignal:
    d = dict(d)
    d["side"] = Side(d["side"])
    d["trade_type"] = TradeType(d["trade_type"])
    d["result"] = None if d.get("result") is None else OutcomeResult(d["result"])
    d["reasoning"] = tuple(d.get("reasoning") or ())
    for k in ("created_at", "expiry_time", "closed_at"):
        d[k] = _parse_ts(d.get(k))
    return ActiveSignal(**d)


def outcome_to_dict(o: SignalOutcome) -> dict[str, Any]:
    d = asdict(o)
    d["side"] = o.side.value
    d["result"] = o.result.value
    d["close_reason"] = o.close_reason.value
    d["closed_at"] = _ts(o.closed_at)
    return d


def outcome_from_dict(d: dict[str, Any]) -> SignalOutcome:
    d = dict(d)
    d["side"] = Side(d["side"])
    d["result"] = OutcomeResult(d["result"])
    d["close_reason"] = CloseReason(d["close_reason"])
    d["closed_at"] = _parse_ts(d["closed_at"])
    return SignalOutcome(**d)


class SignalRepository(ABC):
    @abstractmethod
    def create_signal(self, signal: ActiveSignal) -> None:
        pass

    @abstractmethod
    def update_signal(self, signal: ActiveSignal) -> None:
        pass

    @abstractmethod
    def delete_signal(self, signal_id: str) -> None:
        pass

    @abstractmethod
    def get_signal(self, signal_id: str) -> Optional[ActiveSignal]:
        pass

    @abstractmethod
    def list_active(self) -> list[ActiveSignal]:
        pass

    @abstractmethod
    def append_outcome(self, outcome: SignalOutcome) -> None:
        pass

    @abstractmethod
    def append_outcomes(self, outcomes: list[SignalOutcome]) -> None:
        """Append all of `outcomes` or none of them."""

    @abstractmethod
    def list_outcomes(self, signal_id: str | None = None) -> list[SignalOutcome]:
        pass

    @abstractmethod
    def load_risk_profile(self) -> Optional[dict[str, Any]]:
        pass

    @abstractmethod
    def save_risk_profile(self, profile: dict[str, Any]) -> None:
        pass


class InMemorySignalRepository(SignalRepository):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._signals: dict[str, ActiveSignal] = {}
        self._outcomes: list[SignalOutcome] = []
        self._risk: Optional[dict[str, Any]] = None

    def create_signal(self, signal: ActiveSignal) -> None:
        with self._lock:
            if signal.id in self._signals:
                raise PersistenceFailure(f"signal {signal.id} already exists")
            self._signals[signal.id] = signal

    def update_signal(self, signal: ActiveSignal) -> None:
        with self._lock:
            if signal.id not in self._signals:
                raise PersistenceFailure(f"signal {signal.id} not found")
            self._signals[signal.id] = signal

    def delete_signal(self, signal_id: str) -> None:
        with self._lock:
            self._signals.pop(signal_id, None)

    def get_signal(self, signal_id: str) -> Optional[ActiveSignal]:
        with self._lock:
            return self._signals.get(signal_id)

    def list_active(self) -> list[ActiveSignal]:
        with self._lock:
            return [s for s in self._signals.values() if s.is_active]

    def append_outcome(self, outcome: SignalOutcome) -> None:
        with self._lock:
            self._outcomes.append(outcome)

    def append_outcomes(self, outcomes: list[SignalOutcome]) -> None:
        with self._lock:
            self._outcomes.extend(outcomes)

    def list_outcomes(self, signal_id: str | None = None) -> list[SignalOutcome]:
        with self._lock:
            return [o for o in self._outcomes if signal_id is None or o.signal_id == signal_id]

    def load_risk_profile(self) -> Optional[dict[str, Any]]:
        with self._lock:
            return None if self._risk is None else dict(self._risk)

    def save_risk_profile(self, profile: dict[str, Any]) -> None:
        with self._lock:
            self._risk = dict(profile)


class JsonFileSignalRepository(SignalRepository):
    """Keeps the whole state in one JSON document, rewritten atomically on every change."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()
        self._state: dict[str, Any] = {"signals": {}, "outcomes": [], "risk_profile": None}
        if self.path.exists():
            try:
                self._state.update(json.loads(self.path.read_text(encoding="utf-8")))
            except (OSError, ValueError) as e:
                raise PersistenceFailure(f"cannot read {self.path}: {e}") from e

    def _flush(self) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self.path.with_name(f".{self.path.name}.tmp")
            tmp.write_text(json.dumps(self._state, separators=(",", ":"), ensure_ascii=False), encoding="utf-8")
            tmp.replace(self.path)
        except (OSError, TypeError, ValueError) as e:
            raise PersistenceFailure(f"cannot write {self.path}: {e}") from e

    def _mutate(self, apply) -> None:
        with self._lock:
            before = json.loads(json.dumps(self._state))
            apply(self._state)
            try:
                self._flush()
            except PersistenceFailure:
                self._state = before
                raise

    def create_signal(self, signal: ActiveSignal) -> None:
        if self.get_signal(signal.id) is not None:
            raise PersistenceFailure(f"signal {signal.id} already exists")
        self._mutate(lambda st: st["signals"].__setitem__(signal.id, signal_to_dict(signal)))

    def update_signal(self, signal: ActiveSignal) -> None:
        if self.get_signal(signal.id) is None:
            raise PersistenceFailure(f"signal {signal.id} not found")
        self._mutate(lambda st: st["signals"].__setitem__(signal.id, signal_to_dict(signal)))

    def delete_signal(self, signal_id: str) -> None:
        self._mutate(lambda st: st["signals"].pop(signal_id, None))

    def get_signal(self, signal_id: str) -> Optional[ActiveSignal]:
        with self._lock:
            raw = self._state["signals"].get(signal_id)
        return None if raw is None else signal_from_dict(raw)

    def list_active(self) -> list[ActiveSignal]:
        with self._lock:
            raws = list(self._state["signals"].values())
        return [s for s in map(signal_from_dict, raws) if s.is_active]

    def append_outcome(self, outcome: SignalOutcome) -> None:
        self._mutate(lambda st: st["outcomes"].append(outcome_to_dict(outcome)))

    def append_outcomes(self, outcomes: list[SignalOutcome]) -> None:
        rows = [outcome_to_dict(o) for o in outcomes]
        self._mutate(lambda st: st["outcomes"].extend(rows))

    def list_outcomes(self, signal_id: str | None = None) -> list[SignalOutcome]:
        with self._lock:
            raws = list(self._state["outcomes"])
        out = [outcome_from_dict(r) for r in raws]
        return [o for o in out if signal_id is None or o.signal_id == signal_id]

    def load_risk_profile(self) -> Optional[dict[str, Any]]:
        with self._lock:
            rp = self._state.get("risk_profile")
            return None if rp is None else dict(rp)

    def save_risk_profile(self, profile: dict[str, Any]) -> None:
        self._mutate(lambda st: st.__setitem__("risk_profile", dict(profile)))


def closed_copy(
    sig: ActiveSignal,
    *,
    exit_price: float,
    result: OutcomeResult,
    pnl_percent: float,
    closed_at: datetime,
) -> ActiveSignal:
    return replace(sig, is_active=False, exit_price=exit_price, result=result, pnl_percent=pnl_percent, closed_at=closed_at)
