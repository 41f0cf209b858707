from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

import numpy as np
import pandas as pd

from tick_trader.config import ClassifierConfig
from tick_trader.types import IndicatorSnapshot, Timeframe, TradeType

FeatureRegime = Literal["TRENDING", "RANGING", "VOLATILE"]
FeatureRisk = Literal["LOW", "MEDIUM", "HIGH"]

# ties resolve in this order
_TYPE_ORDER = (TradeType.SCALP, TradeType.DAY, TradeType.SWING)


@dataclass(frozen=True)
class MarketFeatures:
    volatility: float
    momentum: float
    volume_strength: float
    trend_strength: float
    risk_level: FeatureRisk
    expected_duration: float
    regime: FeatureRegime


@dataclass(frozen=True)
class Classification:
    trade_type: TradeType
    timeframe: Timeframe
    priority: int
    score: float
    expected_duration: float
    risk_level: FeatureRisk
    reasoning: tuple[str, ...]


def market_features(
    prices: pd.Series,
    volumes: pd.Series | None,
    snapshot: IndicatorSnapshot,
    *,
    base_duration_minutes: float = 60.0,
) -> MarketFeatures:
    p = prices.to_numpy(dtype=float)
    if len(p) < 2:
        return MarketFeatures(0.0, 0.0, 0.5, 0.0, "LOW", base_duration_minutes, "RANGING")

    returns = np.diff(p) / p[:-1]
    volatility = float(np.std(returns)) * 100.0

    price_mom = abs((p[-1] - p[0]) / p[0]) * 100.0
    rsi_mom = abs(snapshot.rsi - 50.0) / 50.0
    macd_mom = abs(snapshot.macd) / 10.0
    momentum = (price_mom + rsi_mom + macd_mom) / 3.0

    if volumes is None or len(volumes) < 2:
        volume_strength = 0.5
    else:
        v = volumes.fillna(1.0).to_numpy(dtype=float)
        avg = float(v.mean())
        volume_strength = min(float(v[-5:].mean()) / avg, 3.0) if avg > 0 else 0.5

    price = p[-1]
    sma_d = abs(price - snapshot.sma20) / snapshot.sma20 if snapshot.sma20 else 0.0
    ema_d = abs(price - snapshot.ema50) / snapshot.ema50 if snapshot.ema50 else 0.0
    trend_strength = (sma_d + ema_d) * 100.0

    if volatility > 2 or momentum > 1.5:
        risk: FeatureRisk = "HIGH"
    elif volatility > 1 or momentum > 0.8:
        risk = "MEDIUM"
    else:
        risk = "LOW"

    duration = round(base_duration_minutes / (1 + volatility) / (1 + momentum) * (1 + trend_strength / 2))

    if volatility > 2:
        regime: FeatureRegime = "VOLATILE"
    elif trend_strength > 1:
        regime = "TRENDING"
    else:
        regime = "RANGING"
    return MarketFeatures(volatility, momentum, volume_strength, trend_strength, risk, float(duration), regime)


def _scalp_score(confidence: float, f: MarketFeatures) -> float:
    s = 0.0
    s += 30 if confidence > 85 else 15 if confidence > 75 else 0
    s += 25 if f.volatility > 1.5 else 10 if f.volatility > 1 else 0
    s += 20 if f.momentum > 1 else 10 if f.momentum > 0.5 else 0
    s += 15 if f.volume_strength > 1.5 else 0
    s += 10 if f.regime == "VOLATILE" else 0
    return s


def _day_score(confidence: float, f: MarketFeatures) -> float:
    s = 10.0
    s += 25 if confidence > 75 else 20 if confidence > 60 else 0
    s += 20 if 0.5 < f.volatility < 2 else 0
    s += 20 if 0.3 < f.momentum < 1.5 else 0
    s += 15 if f.volume_strength > 0.8 else 0
    s += 10 if f.risk_level == "MEDIUM" else 0
    return s


def _swing_score(confidence: float, f: MarketFeatures) -> float:
    s = 0.0
    s += 20 if confidence > 60 else 15 if confidence > 40 else 0
    s += 30 if f.trend_strength > 1 else 15 if f.trend_strength > 0.5 else 0
    s += 15 if f.volatility < 1.5 else 0
    s += 15 if 0.2 < f.momentum < 1 else 0
    s += 15 if f.regime == "TRENDING" else 0
    s += 10 if f.risk_level == "LOW" else 0
    return s


def _timeframe(trade_type: TradeType, f: MarketFeatures) -> Timeframe:
    if trade_type == TradeType.SCALP:
        return "M1" if f.volatility > 2 else "M5"
    if trade_type == TradeType.DAY:
        return "M5" if f.momentum > 1 else "M15"
    return "H1" if f.trend_strength > 1.5 else "H4"


def _defining_features_strong(trade_type: TradeType, f: MarketFeatures) -> bool:
    if trade_type == TradeType.SCALP:
        return f.volatility > 1.5 and f.momentum > 1
    if trade_type == TradeType.DAY:
        return f.momentum > 0.5 and f.volume_strength > 1
    return f.trend_strength > 1 and f.regime == "TRENDING"


def priority_rank(trade_type: TradeType, confidence: float, f: MarketFeatures, cfg: ClassifierConfig = ClassifierConfig()) -> int:
    # 1 is the most urgent rank
    rank = cfg.base_priority
    if confidence > 85:
        rank -= 2
    elif confidence > 75:
        rank -= 1
    elif confidence < 60:
        rank += 1
    if f.risk_level == "HIGH":
        rank += 1
    elif f.risk_level == "LOW":
        rank -= 1
    if _defining_features_strong(trade_type, f):
        rank -= 1
    return max(cfg.min_priority, min(cfg.max_priority, rank))


class SignalClassifier:
    def __init__(self, cfg: ClassifierConfig = ClassifierConfig()) -> None:
        self.cfg = cfg

    def features(self, prices: pd.Series, volumes: pd.Series | None, snapshot: IndicatorSnapshot) -> MarketFeatures:
        return market_features(prices, volumes, snapshot, base_duration_minutes=self.cfg.base_duration_minutes)

    def classify(self, candidate, features: MarketFeatures) -> Classification:
        conf = candidate.confidence
        scores = {
            TradeType.SCALP: _scalp_score(conf, features),
            TradeType.DAY: _day_score(conf, features),
            TradeType.SWING: _swing_score(conf, features),
        }
        best = max(_TYPE_ORDER, key=lambda t: (scores[t], -_TYPE_ORDER.index(t)))
        why = [
            f"classified_{best.value.lower()}",
            f"risk_{features.risk_level.lower()}",
            f"expected_duration_{int(features.expected_duration)}m",
        ]
        if _defining_features_strong(best, features):
            why.append("defining_features_strong")
        return Classification(
            trade_type=best,
            timeframe=_timeframe(best, features),
            priority=priority_rank(best, conf, features, self.cfg),
            score=scores[best],
            expected_duration=features.expected_duration,
            risk_level=features.risk_level,
            reasoning=tuple(why),
        )
