from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

import pandas as pd

from tick_trader.indicators.macd import last_macd
from tick_trader.indicators.obv import last_obv
from tick_trader.indicators.rsi import last_rsi

VolumeTrend = Literal["INCREASING", "DECREASING", "STABLE"]


@dataclass(frozen=True)
class VolumeAnalysis:
    obv: float
    volume_trend: VolumeTrend
    rsi_divergence: bool
    macd_divergence: bool
    volume_confirmation: bool


def analyze_volume(prices: pd.Series, volumes: pd.Series | None = None, *, lag: int = 5) -> VolumeAnalysis:
    prices = prices.reset_index(drop=True)
    if volumes is None:
        volumes = pd.Series(1.0, index=prices.index)
    volumes = volumes.reset_index(drop=True).fillna(1.0)

    recent = volumes.tail(10)
    previous = volumes.iloc[-20:-10]
    trend: VolumeTrend = "STABLE"
    if len(previous) and len(recent):
        if recent.mean() > previous.mean() * 1.1:
            trend = "INCREASING"
        elif recent.mean() < previous.mean() * 0.9:
            trend = "DECREASING"

    rsi_div = macd_div = False
    if len(prices) > lag:
        earlier = prices.iloc[:-lag]
        up = prices.iloc[-1] > prices.iloc[-1 - lag]
        down = prices.iloc[-1] < prices.iloc[-1 - lag]
        rsi_now, rsi_then = last_rsi(prices), last_rsi(earlier)
        macd_now, macd_then = last_macd(prices).macd, last_macd(earlier).macd
        rsi_div = (up and rsi_now < rsi_then) or (down and rsi_now > rsi_then)
        macd_div = (up and macd_now < macd_then) or (down and macd_now > macd_then)

    confirmed = trend == "INCREASING" and not rsi_div and not macd_div
    return VolumeAnalysis(last_obv(prices, volumes), trend, rsi_div, macd_div, confirmed)
