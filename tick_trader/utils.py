from __future__ import annotations

import math
from datetime import datetime, timezone

from tick_trader.errors import InvalidPrice, InvariantViolation
from tick_trader.types import Side


def utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def profit_percent(side: Side, entry_price: float, price: float) -> float:
    if entry_price == 0:
        return 0.0
    return side.sign * (price - entry_price) / entry_price * 100.0


def offset_price(side: Side, entry_price: float, percent: float) -> float:
    """Price `percent` into profit (positive) or loss (negative) from entry."""
    return entry_price * (1.0 + side.sign * percent / 100.0)


def entries_within(a: float, b: float, tolerance: float) -> bool:
    if a == 0:
        return False
    return abs(a - b) / abs(a) < tolerance


def check_price(price: float) -> float:
    p = float(price)
    if math.isnan(p) or math.isinf(p) or p <= 0:
        raise InvalidPrice(f"unusable price {price!r}")
    return p


def assert_level_order(side: Side, entry: float, take_profit: float, stop_loss: float) -> None:
    if side == Side.BUY:
        ok = stop_loss < entry < take_profit
    else:
        ok = take_profit < entry < stop_loss
    if not ok:
        raise InvariantViolation(f"{side.value} levels out of order: sl={stop_loss} entry={entry} tp={take_profit}")


def assert_confidence(confidence: float) -> None:
    if not 0.0 <= confidence <= 100.0:
        raise InvariantViolation(f"confidence {confidence} outside [0, 100]")


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))
