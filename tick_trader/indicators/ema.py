from __future__ import annotations

import pandas as pd


def sma(series: pd.Series, period: int) -> pd.Series:
    return series.rolling(period, min_periods=period).mean()


def ema(series: pd.Series, period: int) -> pd.Series:
    return series.ewm(span=period, adjust=False).mean()


def ema_slope(series: pd.Series, lookback: int = 5) -> pd.Series:
    return series.diff(lookback) / lookback


def last_sma(series: pd.Series, period: int) -> float:
    if len(series) < period:
        return float(series.iloc[-1]) if len(series) else 0.0
    return float(series.iloc[-period:].mean())


def last_ema(series: pd.Series, period: int) -> float:
    if len(series) < period:
        return float(series.iloc[-1]) if len(series) else 0.0
    return float(ema(series, period).iloc[-1])
