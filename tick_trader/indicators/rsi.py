from __future__ import annotations

import pandas as pd

NEUTRAL_RSI = 50.0


def rsi(series: pd.Series, period: int = 14) -> pd.Series:
    delta = series.diff()
    gains = delta.clip(lower=0.0)
    losses = (-delta).clip(lower=0.0)
    avg_gain = gains.rolling(period, min_periods=period).mean()
    avg_loss = losses.rolling(period, min_periods=period).mean()
    out = 100.0 - 100.0 / (1.0 + avg_gain / avg_loss)
    out = out.where(avg_loss > 0, 100.0)
    out = out.where((avg_gain > 0) | (avg_loss > 0), NEUTRAL_RSI)
    return out.where(avg_gain.notna())


def last_rsi(series: pd.Series, period: int = 14) -> float:
    if len(series) < period + 1:
        return NEUTRAL_RSI
    value = rsi(series, period).iloc[-1]
    return NEUTRAL_RSI if pd.isna(value) else float(value)
