from __future__ import annotations

from dataclasses import dataclass

import pandas as pd

from tick_trader.indicators.ema import ema


@dataclass(frozen=True)
class MACDValue:
    macd: float
    signal: float
    histogram: float


def macd(series: pd.Series, fast: int = 12, slow: int = 26, signal: int = 9) -> pd.DataFrame:
    line = ema(series, fast) - ema(series, slow)
    sig = ema(line, signal)
    return pd.DataFrame({"macd": line, "signal": sig, "histogram": line - sig})


def last_macd(series: pd.Series, fast: int = 12, slow: int = 26, signal: int = 9) -> MACDValue:
    if len(series) < slow:
        return MACDValue(0.0, 0.0, 0.0)
    row = macd(series, fast, slow, signal).iloc[-1]
    return MACDValue(float(row["macd"]), float(row["signal"]), float(row["histogram"]))
