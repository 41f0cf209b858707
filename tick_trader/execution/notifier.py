from __future__ import annotations

import json
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import asdict
from pathlib import Path
from typing import Any, Iterable

from tick_trader.errors import NotificationFailure
from tick_trader.types import TacticalAlert, Urgency

logger = logging.getLogger(__name__)


def alert_to_dict(alert: TacticalAlert) -> dict[str, Any]:
    d = asdict(alert)
    d["kind"] = alert.kind.value
    d["action"] = alert.action.value
    d["urgency"] = alert.urgency.value
    d["timestamp"] = alert.timestamp.isoformat()
    return d


class AlertSink(ABC):
    @abstractmethod
    def send(self, alert: TacticalAlert) -> None:
        pass


class LoggingAlertSink(AlertSink):
    def __init__(self, name: str = "tick_trader.alerts") -> None:
        self._log = logging.getLogger(name)

    def send(self, alert: TacticalAlert) -> None:
        level = logging.WARNING if alert.urgency == Urgency.HIGH else logging.INFO
        self._log.log(
            level,
            "alert kind=%s id=%s symbol=%s action=%s urgency=%s sl=%s msg=%s",
            alert.kind.value,
            alert.signal_id,
            alert.symbol,
            alert.action.value,
            alert.urgency.value,
            alert.recommended_stop_loss,
            alert.message,
        )


class JsonlAlertSink(AlertSink):
    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()

    def send(self, alert: TacticalAlert) -> None:
        line = json.dumps(alert_to_dict(alert), separators=(",", ":"), ensure_ascii=False)
        try:
            with self._lock:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with self.path.open("a", encoding="utf-8") as f:
                    f.write(line + "\n")
        except OSError as e:
            raise NotificationFailure(f"cannot append to {self.path}: {e}") from e


class CompositeAlertSink(AlertSink):
    def __init__(self, sinks: Iterable[AlertSink]) -> None:
        self.sinks = list(sinks)

    def send(self, alert: TacticalAlert) -> None:
        failed: list[str] = []
        for sink in self.sinks:
            try:
                sink.send(alert)
            except Exception as e:
                failed.append(f"{type(sink).__name__}: {e}")
        if failed:
            raise NotificationFailure("; ".join(failed))


class MemoryAlertSink(AlertSink):
    def __init__(self) -> None:
        self.alerts: list[TacticalAlert] = []

    def send(self, alert: TacticalAlert) -> None:
        self.alerts.append(alert)


def deliver(sink: AlertSink | None, alert: TacticalAlert) -> bool:
    if sink is None:
        return False
    try:
        sink.send(alert)
        return True
    except Exception:
        logger.exception("alert_delivery_failed id=%s kind=%s", alert.signal_id, alert.kind.value)
        return False
