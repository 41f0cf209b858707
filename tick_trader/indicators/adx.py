from __future__ import annotations

import pandas as pd


def adx(prices: pd.Series, period: int = 14) -> pd.Series:
    delta = prices.diff()
    plus_dm = delta.clip(lower=0.0)
    minus_dm = (-delta).clip(lower=0.0)
    tr = delta.abs()
    tr_mean = tr.rolling(period, min_periods=period).mean()
    plus_di = 100.0 * plus_dm.rolling(period, min_periods=period).mean() / tr_mean
    minus_di = 100.0 * minus_dm.rolling(period, min_periods=period).mean() / tr_mean
    di_sum = plus_di + minus_di
    dx = (100.0 * (plus_di - minus_di).abs() / di_sum).where(di_sum > 0, 0.0)
    return dx.rolling(period, min_periods=period).mean()


def last_adx(prices: pd.Series, period: int = 14) -> float:
    if len(prices) < 2 * period:
        return 0.0
    value = adx(prices, period).iloc[-1]
    return 0.0 if pd.isna(value) else float(value)
