from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

import pandas as pd

from tick_trader.config import SymbolProfile
from tick_trader.indicators.adx import last_adx
from tick_trader.indicators.bollinger import bollinger_bands
from tick_trader.types import VolatilityRegime


MarketRegime = Literal["TRENDING", "RANGING"]
Strategy = Literal["BREAKOUT", "PULLBACK", "REVERSAL", "SCALP"]


@dataclass(frozen=True)
class RegimeInfo:
    type: MarketRegime
    strength: float
    adx: float
    bollinger_width: float
    recommended_strategy: Strategy


def classify_regime(*, adx: float, bollinger_width: float = 0.0, profile: SymbolProfile = SymbolProfile()) -> RegimeInfo:
    regime: MarketRegime = "TRENDING" if adx > profile.adx_trending else "RANGING"
    strength = min(100.0, adx * 2.0)
    strategy: Strategy = "SCALP"
    if regime == "TRENDING" and adx > profile.adx_breakout:
        strategy = "BREAKOUT"
    elif regime == "TRENDING" and adx > profile.adx_pullback:
        strategy = "PULLBACK"
    elif regime == "RANGING":
        strategy = "REVERSAL"
    return RegimeInfo(regime, strength, adx, bollinger_width, strategy)


def detect_regime(prices: pd.Series, *, profile: SymbolProfile = SymbolProfile(), adx_period: int = 14) -> RegimeInfo:
    adx = last_adx(prices, adx_period)
    width = bollinger_bands(prices).width_percent
    return classify_regime(adx=adx, bollinger_width=width, profile=profile)


def classify_volatility(atr_value: float, profile: SymbolProfile = SymbolProfile()) -> VolatilityRegime:
    if atr_value < profile.volatility_normal * 0.5:
        return "LOW"
    if atr_value < profile.volatility_normal:
        return "NORMAL"
    if atr_value < profile.volatility_high:
        return "HIGH"
    return "EXTREME"


def volatility_factor(regime: VolatilityRegime) -> float:
    # stop-distance multiplier handed to the risk manager
    return {"LOW": 0.8, "NORMAL": 1.0, "HIGH": 1.2, "EXTREME": 1.5}[regime]
