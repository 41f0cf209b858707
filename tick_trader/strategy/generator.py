from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

import pandas as pd

from tick_trader.config import DEFAULT_CONFIG, EngineConfig, GeneratorConfig
from tick_trader.indicators.engine import compute_snapshot
from tick_trader.market_regime.regime import RegimeInfo, classify_volatility, detect_regime
from tick_trader.strategy.support_resistance import MarketStructure, market_structure, tighten_to_levels
from tick_trader.strategy.traps import NO_TRAP, LiquidityTrap, detect_liquidity_trap
from tick_trader.strategy.trend import TimeframeAlignment, analyze_timeframes
from tick_trader.strategy.volume import VolumeAnalysis, analyze_volume
from tick_trader.types import CandidateSignal, Hold, IndicatorSnapshot, Side, VolatilityRegime
from tick_trader.utils import assert_confidence, assert_level_order, clamp, offset_price

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MarketContext:
    structure: MarketStructure
    regime: RegimeInfo
    volatility: VolatilityRegime
    timeframes: TimeframeAlignment | None = None
    volume: VolumeAnalysis | None = None
    trap: LiquidityTrap = NO_TRAP
    short_trend_percent: float = 0.0
    change_percent: float = 0.0

    @property
    def high_volatility(self) -> bool:
        return self.volatility in ("HIGH", "EXTREME")


def _pct_change(prices: pd.Series, lookback: int) -> float:
    if len(prices) < lookback:
        return 0.0
    first = float(prices.iloc[-lookback])
    return 0.0 if first == 0 else (float(prices.iloc[-1]) - first) / first * 100.0


def build_context(
    prices: pd.Series,
    volumes: pd.Series | None,
    snapshot: IndicatorSnapshot,
    *,
    cfg: EngineConfig = DEFAULT_CONFIG,
) -> MarketContext:
    profile = cfg.profile(snapshot.symbol)
    return MarketContext(
        structure=market_structure(prices, min_points=cfg.generator.min_points),
        regime=detect_regime(prices, profile=profile, adx_period=cfg.indicators.adx_period),
        volatility=classify_volatility(snapshot.atr, profile),
        timeframes=analyze_timeframes(prices),
        volume=analyze_volume(prices, volumes),
        trap=detect_liquidity_trap(prices),
        short_trend_percent=_pct_change(prices, 5),
        change_percent=_pct_change(prices, 10),
    )


def score_snapshot(snap: IndicatorSnapshot, ctx: MarketContext) -> tuple[float, float, list[str]]:
    bull = bear = 0.0
    why: list[str] = []
    price = snap.price

    if snap.rsi < 30:
        bull += 25
        why.append("rsi_extremely_oversold")
    elif snap.rsi < 40:
        bull += 15
        why.append("rsi_oversold")
    elif snap.rsi > 70:
        bear += 25
        why.append("rsi_extremely_overbought")
    elif snap.rsi > 60:
        bear += 15
        why.append("rsi_overbought")

    if snap.macd > snap.macd_signal and snap.macd_histogram > 0:
        bull += 20
        why.append("macd_bullish")
    elif snap.macd < snap.macd_signal and snap.macd_histogram < 0:
        bear += 20
        why.append("macd_bearish")

    if price > snap.sma20 and price > snap.ema50 and snap.sma20 > snap.ema50:
        bull += 15
        why.append("price_above_moving_averages")
    elif price < snap.sma20 and price < snap.ema50 and snap.sma20 < snap.ema50:
        bear += 15
        why.append("price_below_moving_averages")

    pos = snap.bollinger_position
    if pos < 0.1:
        bull += 20
        why.append("bollinger_lower_band")
    elif pos > 0.9:
        bear += 20
        why.append("bollinger_upper_band")

    if ctx.short_trend_percent > 0.2 and ctx.change_percent > 0.1:
        bull += 10
        why.append("bullish_momentum")
    elif ctx.short_trend_percent < -0.2 and ctx.change_percent < -0.1:
        bear += 10
        why.append("bearish_momentum")

    st = ctx.structure
    if st.trend == "UPTREND" and (st.support is None or price > st.support):
        bull += 10
        why.append("structure_uptrend")
    elif st.trend == "DOWNTREND" and (st.resistance is None or price < st.resistance):
        bear += 10
        why.append("structure_downtrend")
    return bull, bear, why


def _adjust(side: Side, confidence: float, snap: IndicatorSnapshot, ctx: MarketContext, cfg: GeneratorConfig, why: list[str]) -> float:
    if ctx.timeframes is not None and ctx.timeframes.agrees_with(side.value):
        confidence += cfg.alignment_bonus
        why.append("timeframes_aligned")
    if ctx.regime.type == "TRENDING" and ctx.regime.strength > cfg.strong_trend_strength:
        confidence += cfg.trend_regime_bonus
        why.append("strong_trend")
    if ctx.volume is not None and ctx.volume.volume_confirmation:
        confidence += cfg.volume_bonus
        why.append("volume_confirms")
    if ctx.regime.recommended_strategy == "REVERSAL":
        if (side == Side.BUY and snap.rsi < 30) or (side == Side.SELL and snap.rsi > 70):
            confidence += cfg.reversal_bonus
            why.append("ranging_reversal")
    if ctx.trap.detected:
        confidence -= cfg.trap_penalty
        why.append(f"liquidity_trap_{ctx.trap.trap_type.lower()}")
    if ctx.high_volatility:
        confidence -= cfg.volatility_penalty
        why.append(f"volatility_{ctx.volatility.lower()}")
    return clamp(confidence, 0.0, cfg.final_confidence_cap)


def raw_levels(side: Side, entry: float, confidence: float, ctx: MarketContext, cfg: GeneratorConfig) -> tuple[float, float]:
    tp_pct, sl_pct = cfg.level_tiers[-1][1:]
    for floor, tp, sl in cfg.level_tiers:
        if confidence >= floor:
            tp_pct, sl_pct = tp, sl
            break
    if ctx.high_volatility:
        tp_pct *= cfg.high_volatility_level_scale
        sl_pct *= cfg.high_volatility_level_scale
    take_profit = offset_price(side, entry, tp_pct)
    stop_loss = offset_price(side, entry, -sl_pct)
    return tighten_to_levels(side, entry, take_profit, stop_loss, ctx.structure, buffer_percent=cfg.level_buffer_percent)


def evaluate(
    snap: IndicatorSnapshot,
    ctx: MarketContext,
    *,
    cfg: GeneratorConfig = GeneratorConfig(),
    timestamp: datetime | None = None,
) -> CandidateSignal | Hold:
    if snap.points < cfg.min_points:
        return Hold(snap.symbol, "insufficient_data")

    bull, bear, why = score_snapshot(snap, ctx)
    gap = abs(bull - bear)
    if gap < cfg.min_score_separation or bull == bear:
        return Hold(snap.symbol, "no_edge", confidence=max(bull, bear), reasoning=tuple(why))

    side = Side.BUY if bull > bear else Side.SELL
    confidence = min(cfg.base_confidence + gap, cfg.technical_confidence_cap)
    confidence = _adjust(side, confidence, snap, ctx, cfg, why)
    assert_confidence(confidence)

    take_profit, stop_loss = raw_levels(side, snap.price, confidence, ctx, cfg)
    assert_level_order(side, snap.price, take_profit, stop_loss)
    return CandidateSignal(
        symbol=snap.symbol,
        side=side,
        confidence=confidence,
        entry_price=snap.price,
        raw_take_profit=take_profit,
        raw_stop_loss=stop_loss,
        reasoning=tuple(why),
        snapshot=snap,
        timestamp=timestamp or snap.timestamp,
        meta={"context": ctx, "bullish_score": bull, "bearish_score": bear},
    )


class SignalGenerator:
    def __init__(self, cfg: EngineConfig = DEFAULT_CONFIG) -> None:
        self.cfg = cfg

    def generate(
        self,
        symbol: str,
        prices: pd.Series,
        volumes: pd.Series | None = None,
        *,
        timestamp: datetime | None = None,
    ) -> CandidateSignal | Hold:
        if len(prices) < self.cfg.generator.min_points:
            return Hold(symbol, "insufficient_data")
        prices = prices.astype(float).reset_index(drop=True)
        snap = compute_snapshot(symbol, prices, volumes, cfg=self.cfg.indicators, timestamp=timestamp)
        ctx = build_context(prices, volumes, snap, cfg=self.cfg)
        out = evaluate(snap, ctx, cfg=self.cfg.generator, timestamp=timestamp)
        if isinstance(out, CandidateSignal):
            logger.info("candidate symbol=%s side=%s confidence=%.1f", symbol, out.side.value, out.confidence)
        else:
            logger.debug("hold symbol=%s reason=%s", symbol, out.reason)
        return out
