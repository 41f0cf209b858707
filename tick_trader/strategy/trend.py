from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

import pandas as pd

from tick_trader.indicators.ema import last_sma
from tick_trader.indicators.rsi import last_rsi
from tick_trader.types import Trend

Bias = Literal["BUY", "SELL", "HOLD"]


@dataclass(frozen=True)
class TimeframeAlignment:
    h1_trend: Trend
    m15_signal: Bias
    m5_signal: Bias
    alignment: bool
    alignment_score: float

    def agrees_with(self, side: str) -> bool:
        return self.alignment and self.m15_signal == side


def _bias(rsi: float, low: float, high: float) -> Bias:
    if rsi < low:
        return "BUY"
    if rsi > high:
        return "SELL"
    return "HOLD"


def analyze_timeframes(prices: pd.Series) -> TimeframeAlignment:
    # long/medium/short windows over the same tick stream stand in for H1/M15/M5
    price = float(prices.iloc[-1])
    h1_sma = last_sma(prices, 50)
    h1: Trend = "UPTREND" if price > h1_sma else "DOWNTREND" if price < h1_sma else "SIDEWAYS"
    m15 = _bias(last_rsi(prices, 14), 30, 70)
    m5 = _bias(last_rsi(prices, 7), 25, 75)

    aligned = (h1 == "UPTREND" and m15 == "BUY" and m5 == "BUY") or (
        h1 == "DOWNTREND" and m15 == "SELL" and m5 == "SELL"
    )
    score = 0.0
    if h1 == "UPTREND" and "BUY" in (m15, m5):
        score += 40
    if h1 == "DOWNTREND" and "SELL" in (m15, m5):
        score += 40
    if m15 == m5 and m15 != "HOLD":
        score += 30
    if aligned:
        score = 100.0
    return TimeframeAlignment(h1, m15, m5, aligned, score)
