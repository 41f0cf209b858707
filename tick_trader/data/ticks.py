from __future__ import annotations

import threading
from collections import deque
from datetime import datetime

import pandas as pd

from tick_trader.errors import FeedGap, InsufficientData
from tick_trader.types import PriceTick
from tick_trader.utils import check_price, utc


class TickBuffer:
    """Bounded per-symbol tick history."""

    def __init__(self, limit: int = 500) -> None:
        self.limit = limit
        self._lock = threading.Lock()
        self._ticks: dict[str, deque[PriceTick]] = {}

    def append(self, tick: PriceTick) -> PriceTick:
        price = check_price(tick.price)
        clean = PriceTick(tick.symbol, price, utc(tick.timestamp), tick.volume)
        with self._lock:
            buf = self._ticks.setdefault(tick.symbol, deque(maxlen=self.limit))
            buf.append(clean)
        return clean

    def __len__(self) -> int:
        with self._lock:
            return sum(len(b) for b in self._ticks.values())

    def count(self, symbol: str) -> int:
        with self._lock:
            return len(self._ticks.get(symbol, ()))

    def symbols(self) -> list[str]:
        with self._lock:
            return list(self._ticks)

    def _window(self, symbol: str, window: int | None) -> list[PriceTick]:
        with self._lock:
            ticks = list(self._ticks.get(symbol, ()))
        return ticks if window is None else ticks[-window:]

    def prices(self, symbol: str, window: int | None = None) -> pd.Series:
        ticks = self._window(symbol, window)
        return pd.Series([t.price for t in ticks], index=[t.timestamp for t in ticks], dtype=float)

    def volumes(self, symbol: str, window: int | None = None) -> pd.Series:
        ticks = self._window(symbol, window)
        return pd.Series([1.0 if t.volume is None else t.volume for t in ticks], index=[t.timestamp for t in ticks], dtype=float)

    def require(self, symbol: str, need: int, window: int | None = None) -> pd.Series:
        s = self.prices(symbol, window)
        if len(s) < need:
            raise InsufficientData(symbol, len(s), need)
        return s

    def last(self, symbol: str) -> PriceTick | None:
        with self._lock:
            buf = self._ticks.get(symbol)
            return buf[-1] if buf else None

    def fresh_last(self, symbol: str, now: datetime, max_age_seconds: float) -> PriceTick:
        tick = self.last(symbol)
        if tick is None:
            raise FeedGap(f"{symbol}: no ticks received")
        age = (utc(now) - tick.timestamp).total_seconds()
        if age > max_age_seconds:
            raise FeedGap(f"{symbol}: last tick {age:.0f}s old")
        return tick
