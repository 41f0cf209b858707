from __future__ import annotations

import pandas as pd

from tick_trader.config import DEFAULT_CONFIG
from tick_trader.market_regime.regime import classify_regime, classify_volatility, detect_regime, volatility_factor


def test_regime_trending_breakout():
    r = classify_regime(adx=35.0)
    assert r.type == "TRENDING"
    assert r.recommended_strategy == "BREAKOUT"
    assert r.strength == 70.0


def test_regime_trending_pullback():
    r = classify_regime(adx=27.0)
    assert r.type == "TRENDING"
    assert r.recommended_strategy == "PULLBACK"


def test_regime_ranging_reversal():
    r = classify_regime(adx=10.0)
    assert r.type == "RANGING"
    assert r.recommended_strategy == "REVERSAL"
    assert r.strength == 20.0


def test_strength_caps_at_100():
    assert classify_regime(adx=80.0).strength == 100.0


def test_volatility_uses_symbol_profile():
    v25 = DEFAULT_CONFIG.profile("V25")
    assert classify_volatility(2.0, v25) == "LOW"
    assert classify_volatility(7.0, v25) == "NORMAL"
    assert classify_volatility(20.0, v25) == "HIGH"
    assert classify_volatility(30.0, v25) == "EXTREME"
    v75 = DEFAULT_CONFIG.profile("v75")
    assert classify_volatility(30.0, v75) == "NORMAL"


def test_unknown_symbol_gets_default_profile():
    assert DEFAULT_CONFIG.profile("XYZ") == DEFAULT_CONFIG.default_profile


def test_volatility_factor_widens_with_regime():
    assert volatility_factor("LOW") < volatility_factor("NORMAL") < volatility_factor("HIGH") < volatility_factor("EXTREME")


def test_detect_regime_on_trend():
    prices = pd.Series([100.0 + k for k in range(60)])
    r = detect_regime(prices)
    assert r.type == "TRENDING"
    assert r.bollinger_width > 0
