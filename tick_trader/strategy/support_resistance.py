from __future__ import annotations

from dataclasses import dataclass

import numpy as np
import pandas as pd

from tick_trader.indicators.swings import find_swings
from tick_trader.types import Side, Trend


@dataclass(frozen=True)
class MarketStructure:
    trend: Trend
    support: float | None
    resistance: float | None
    slope_percent: float


def trend_slope_percent(prices: pd.Series) -> float:
    if len(prices) < 2:
        return 0.0
    y = prices.to_numpy(dtype=float)
    slope = float(np.polyfit(np.arange(len(y)), y, 1)[0])
    mean = float(y.mean())
    return 0.0 if mean == 0 else slope / mean * 100.0


def market_structure(
    prices: pd.Series,
    *,
    lookback: int = 20,
    min_points: int = 20,
    slope_threshold: float = 0.01,
) -> MarketStructure:
    prices = prices.reset_index(drop=True)
    if len(prices) < min_points:
        lo = float(prices.min()) if len(prices) else None
        hi = float(prices.max()) if len(prices) else None
        return MarketStructure("SIDEWAYS", lo, hi, 0.0)

    slope = trend_slope_percent(prices)
    trend: Trend = "UPTREND" if slope > slope_threshold else "DOWNTREND" if slope < -slope_threshold else "SIDEWAYS"

    recent = prices.tail(lookback).reset_index(drop=True)
    swings = find_swings(recent, left=1, right=1)
    lows = [s.price for s in swings if s.kind == "low"]
    highs = [s.price for s in swings if s.kind == "high"]
    support = max(lows) if lows else float(recent.min())
    resistance = min(highs) if highs else float(recent.max())
    return MarketStructure(trend, support, resistance, slope)


def tighten_to_levels(
    side: Side,
    entry: float,
    take_profit: float,
    stop_loss: float,
    structure: MarketStructure,
    *,
    buffer_percent: float = 0.5,
) -> tuple[float, float]:
    """Pull TP/SL in toward nearby structure, keeping both on their side of entry."""
    b = buffer_percent / 100.0
    sup, res = structure.support, structure.resistance
    if side == Side.BUY:
        if sup is not None and 0 < sup < entry:
            level = sup * (1 - b)
            if stop_loss < level < entry:
                stop_loss = level
        if res is not None and res > entry:
            level = res * (1 - b)
            if entry < level < take_profit:
                take_profit = level
    else:
        if res is not None and res > entry:
            level = res * (1 + b)
            if entry < level < stop_loss:
                stop_loss = level
        if sup is not None and 0 < sup < entry:
            level = sup * (1 + b)
            if take_profit < level < entry:
                take_profit = level
    return take_profit, stop_loss
