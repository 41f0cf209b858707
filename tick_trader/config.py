from __future__ import annotations

import json
from dataclasses import dataclass, field, fields, is_dataclass, replace
from pathlib import Path
from typing import Any


@dataclass(frozen=True)
class SymbolProfile:
    # ATR thresholds are in price units of the instrument
    volatility_normal: float = 10.0
    volatility_high: float = 25.0
    adx_trending: float = 25.0
    adx_breakout: float = 30.0
    adx_pullback: float = 20.0
    base_stop_loss_percent: float = 1.0


DEFAULT_SYMBOL_PROFILES: dict[str, SymbolProfile] = {
    "V10": SymbolProfile(volatility_normal=5.0, volatility_high=15.0, base_stop_loss_percent=0.8),
    "V25": SymbolProfile(volatility_normal=10.0, volatility_high=25.0, base_stop_loss_percent=1.0),
    "V75": SymbolProfile(volatility_normal=50.0, volatility_high=150.0, base_stop_loss_percent=1.2),
    "BULL": SymbolProfile(volatility_normal=10.0, volatility_high=25.0, base_stop_loss_percent=1.5),
    "BEAR": SymbolProfile(volatility_normal=10.0, volatility_high=25.0, base_stop_loss_percent=1.5),
}


@dataclass(frozen=True)
class IndicatorConfig:
    rsi_period: int = 14
    macd_fast: int = 12
    macd_slow: int = 26
    macd_signal: int = 9
    sma_period: int = 20
    ema_period: int = 50
    bollinger_period: int = 20
    bollinger_std: float = 2.0
    atr_period: int = 14
    adx_period: int = 14
    history_limit: int = 500


@dataclass(frozen=True)
class GeneratorConfig:
    min_points: int = 20
    min_score_separation: float = 20.0
    base_confidence: float = 40.0
    technical_confidence_cap: float = 85.0
    final_confidence_cap: float = 95.0
    alignment_bonus: float = 10.0
    trend_regime_bonus: float = 5.0
    volume_bonus: float = 5.0
    reversal_bonus: float = 5.0
    trap_penalty: float = 15.0
    volatility_penalty: float = 15.0
    strong_trend_strength: float = 70.0
    level_buffer_percent: float = 0.5
    high_volatility_level_scale: float = 1.1
    signal_lifetime_minutes: int = 240
    # (min confidence, take-profit %, stop-loss %) checked top-down
    level_tiers: tuple[tuple[float, float, float], ...] = (
        (85.0, 2.5, 1.5),
        (80.0, 2.0, 1.5),
        (75.0, 1.8, 1.5),
        (0.0, 1.5, 2.0),
    )


@dataclass(frozen=True)
class RiskConfig:
    reward_ratio: float = 2.5
    minimum_risk_reward: float = 2.0
    max_loss_percent: float = 2.0
    max_consecutive_losses: int = 3
    max_drawdown: float = 15.0
    stop_cap_fraction: float = 0.8
    trailing_fraction: float = 0.6
    account_balance: float = 10000.0
    min_recommended_confidence: float = 75.0
    # (lower bound, risk percent) checked top-down
    confidence_tiers: tuple[tuple[float, float], ...] = (
        (90.0, 1.5),
        (80.0, 1.2),
        (75.0, 1.0),
        (70.0, 0.8),
        (60.0, 0.5),
        (0.0, 0.3),
    )
    loss_multipliers: tuple[float, ...] = (1.0, 0.9, 0.8, 0.6)


@dataclass(frozen=True)
class ClassifierConfig:
    base_priority: int = 3
    min_priority: int = 1
    max_priority: int = 5
    base_duration_minutes: float = 60.0


@dataclass(frozen=True)
class ConflictConfig:
    entry_tolerance: float = 0.01


@dataclass(frozen=True)
class TrackerConfig:
    sweep_interval_seconds: float = 5.0
    feed_gap_seconds: float = 120.0


@dataclass(frozen=True)
class TacticalConfig:
    interval_seconds: float = 60.0
    throttle_seconds: float = 300.0
    trend_window: int = 10
    trend_weight: float = 30.0
    momentum_rsi_period: int = 7
    momentum_weight: float = 0.25
    favorable_weight: float = 20.0
    adverse_weight: float = 25.0
    proximity_weight: float = 25.0
    favorable_threshold: float = 0.5
    adverse_threshold: float = -0.3
    strong_threshold: float = 75.0
    weakening_threshold: float = 50.0
    critical_threshold: float = 25.0
    drawdown_alert: float = 2.5
    drawdown_min_peak: float = 2.0
    feed_gap_seconds: float = 120.0
    # (min peak %, tier, mode, value): "lock" keeps a fraction of the peak, "breakeven" a fixed % past entry
    profit_tiers: tuple[tuple[float, str, str, float], ...] = (
        (5.0, "HUGE", "lock", 0.75),
        (3.0, "LARGE", "lock", 0.60),
        (2.0, "MEDIUM", "breakeven", 1.0),
        (1.0, "SMALL", "breakeven", 0.3),
    )


@dataclass(frozen=True)
class EngineConfig:
    symbols: tuple[str, ...] = ("V10", "V25", "V75")
    generation_interval_seconds: float = 600.0
    retry_attempts: int = 3
    retry_delay_seconds: float = 5.0
    history_window: int = 100
    indicators: IndicatorConfig = field(default_factory=IndicatorConfig)
    generator: GeneratorConfig = field(default_factory=GeneratorConfig)
    risk: RiskConfig = field(default_factory=RiskConfig)
    classifier: ClassifierConfig = field(default_factory=ClassifierConfig)
    conflicts: ConflictConfig = field(default_factory=ConflictConfig)
    tracker: TrackerConfig = field(default_factory=TrackerConfig)
    tactical: TacticalConfig = field(default_factory=TacticalConfig)
    symbol_profiles: dict[str, SymbolProfile] = field(default_factory=lambda: dict(DEFAULT_SYMBOL_PROFILES))
    default_profile: SymbolProfile = field(default_factory=SymbolProfile)

    def profile(self, symbol: str) -> SymbolProfile:
        return self.symbol_profiles.get(symbol.upper(), self.default_profile)


DEFAULT_CONFIG = EngineConfig()


def _merge(obj: Any, overrides: dict[str, Any]) -> Any:
    known = {f.name: f for f in fields(obj)}
    changes: dict[str, Any] = {}
    for key, value in overrides.items():
        if key not in known:
            raise ValueError(f"Unknown config key '{key}' for {type(obj).__name__}")
        current = getattr(obj, key)
        if key == "symbol_profiles":
            profiles = dict(current)
            for sym, prof in value.items():
                base = profiles.get(sym.upper(), SymbolProfile())
                profiles[sym.upper()] = _merge(base, prof)
            changes[key] = profiles
        elif is_dataclass(current) and isinstance(value, dict):
            changes[key] = _merge(current, value)
        elif isinstance(current, tuple):
            changes[key] = tuple(tuple(v) if isinstance(v, list) else v for v in value)
        else:
            changes[key] = value
    return replace(obj, **changes)


def config_from_dict(overrides: dict[str, Any], base: EngineConfig = DEFAULT_CONFIG) -> EngineConfig:
    return _merge(base, overrides)


def load_config(path: str | Path | None) -> EngineConfig:
    if not path:
        return DEFAULT_CONFIG
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    return config_from_dict(raw)
