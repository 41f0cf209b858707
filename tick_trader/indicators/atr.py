from __future__ import annotations

import pandas as pd


def tick_true_range(prices: pd.Series) -> pd.Series:
    # ticks carry no high/low, so true range is the absolute move between ticks
    return prices.diff().abs()


def atr(prices: pd.Series, period: int = 14) -> pd.Series:
    return tick_true_range(prices).rolling(period, min_periods=period).mean()


def last_atr(prices: pd.Series, period: int = 14) -> float:
    if len(prices) < period + 1:
        return 0.0
    return float(atr(prices, period).iloc[-1])
