from __future__ import annotations

from dataclasses import replace

import numpy as np
import pandas as pd
import pytest

from tick_trader.config import DEFAULT_CONFIG
from tick_trader.market_regime.regime import classify_regime
from tick_trader.strategy.generator import MarketContext, SignalGenerator, evaluate
from tick_trader.strategy.support_resistance import MarketStructure, market_structure, tighten_to_levels
from tick_trader.strategy.traps import LiquidityTrap
from tick_trader.types import CandidateSignal, Hold, IndicatorSnapshot, Side


def _snap(**kw) -> IndicatorSnapshot:
    base = dict(
        symbol="V25",
        timestamp=None,
        price=100.0,
        rsi=50.0,
        macd=0.0,
        macd_signal=0.0,
        macd_histogram=0.0,
        sma20=100.0,
        ema50=100.0,
        bollinger_upper=102.0,
        bollinger_middle=100.0,
        bollinger_lower=98.0,
        atr=7.0,
        adx=10.0,
        obv=0.0,
        points=60,
    )
    base.update(kw)
    return IndicatorSnapshot(**base)


def _ctx(**kw) -> MarketContext:
    base = dict(
        structure=MarketStructure("SIDEWAYS", None, None, 0.0),
        regime=classify_regime(adx=10.0),
        volatility="NORMAL",
    )
    base.update(kw)
    return MarketContext(**base)


def _oversold() -> IndicatorSnapshot:
    return _snap(
        rsi=28.0,
        macd=1.0,
        macd_signal=0.5,
        macd_histogram=0.5,
        sma20=101.0,
        ema50=100.5,
        bollinger_upper=104.0,
        bollinger_middle=102.0,
        bollinger_lower=99.9,
    )


def _overbought() -> IndicatorSnapshot:
    return _snap(
        rsi=75.0,
        macd=-1.0,
        macd_signal=-0.5,
        macd_histogram=-0.5,
        sma20=99.0,
        ema50=99.5,
        bollinger_upper=100.1,
        bollinger_middle=98.0,
        bollinger_lower=96.0,
    )


def test_oversold_ranging_market_buys():
    out = evaluate(_oversold(), _ctx())
    assert isinstance(out, CandidateSignal)
    assert out.side == Side.BUY
    assert out.confidence == pytest.approx(90.0)
    assert out.raw_take_profit == pytest.approx(102.5)
    assert out.raw_stop_loss == pytest.approx(98.5)
    assert out.meta["bullish_score"] == 65
    assert out.meta["bearish_score"] == 0
    assert "ranging_reversal" in out.reasoning


def test_overbought_ranging_market_sells():
    out = evaluate(_overbought(), _ctx())
    assert isinstance(out, CandidateSignal)
    assert out.side == Side.SELL
    assert out.confidence == pytest.approx(90.0)
    assert out.raw_take_profit == pytest.approx(97.5)
    assert out.raw_stop_loss == pytest.approx(101.5)


def test_neutral_market_holds():
    out = evaluate(_snap(), _ctx())
    assert isinstance(out, Hold)
    assert out.reason == "no_edge"


def test_short_history_holds():
    assert evaluate(_snap(points=10), _ctx()).reason == "insufficient_data"
    out = SignalGenerator().generate("V25", pd.Series([100.0, 101.0, 99.0]))
    assert isinstance(out, Hold)
    assert out.reason == "insufficient_data"


def test_high_volatility_penalises_and_widens():
    out = evaluate(_oversold(), _ctx(volatility="HIGH"))
    assert isinstance(out, CandidateSignal)
    assert out.confidence == pytest.approx(75.0)
    assert out.raw_take_profit == pytest.approx(100 * (1 + 1.8 * 1.1 / 100))
    assert out.raw_stop_loss == pytest.approx(100 * (1 - 1.5 * 1.1 / 100))


def test_liquidity_trap_penalty():
    trap = LiquidityTrap(True, "STOP_HUNT", 8.0, False, False, "MEDIUM")
    out = evaluate(_oversold(), _ctx(trap=trap))
    assert out.confidence == pytest.approx(75.0)
    assert "liquidity_trap_stop_hunt" in out.reasoning


def test_trend_regime_skips_reversal_bonus():
    out = evaluate(_oversold(), _ctx(regime=classify_regime(adx=27.0)))
    assert out.confidence == pytest.approx(85.0)


def test_levels_pulled_in_toward_structure():
    st = MarketStructure("SIDEWAYS", 99.5, 101.0, 0.0)
    tp, sl = tighten_to_levels(Side.BUY, 100.0, 102.5, 98.5, st)
    assert tp == pytest.approx(101.0 * 0.995)
    assert sl == pytest.approx(99.5 * 0.995)

    tp, sl = tighten_to_levels(Side.SELL, 100.0, 97.5, 101.5, st)
    assert tp == pytest.approx(99.5 * 1.005)
    assert sl == pytest.approx(101.0 * 1.005)


def test_levels_never_cross_entry():
    # support above a BUY entry must not drag the stop past it
    st = MarketStructure("UPTREND", 100.4, 100.2, 0.1)
    tp, sl = tighten_to_levels(Side.BUY, 100.0, 102.5, 98.5, st)
    assert sl < 100.0 < tp


def test_structure_on_short_series_is_sideways_range():
    st = market_structure(pd.Series([3.0, 1.0, 2.0]))
    assert st.trend == "SIDEWAYS"
    assert (st.support, st.resistance) == (1.0, 3.0)


def test_structure_detects_uptrend():
    st = market_structure(pd.Series(np.linspace(100, 110, 40)))
    assert st.trend == "UPTREND"
    assert st.slope_percent > 0


@pytest.mark.parametrize("seed", range(8))
def test_generated_signals_keep_invariants(seed):
    rng = np.random.default_rng(seed)
    prices = pd.Series(1000 + np.cumsum(rng.normal(0, 2.0, 120)))
    gen = SignalGenerator(DEFAULT_CONFIG)
    for end in range(20, 121, 10):
        out = gen.generate("V25", prices.iloc[:end])
        if isinstance(out, Hold):
            continue
        assert 0 <= out.confidence <= 95
        if out.side == Side.BUY:
            assert out.raw_stop_loss < out.entry_price < out.raw_take_profit
        else:
            assert out.raw_take_profit < out.entry_price < out.raw_stop_loss


def test_generator_respects_custom_separation():
    cfg = replace(DEFAULT_CONFIG, generator=replace(DEFAULT_CONFIG.generator, min_score_separation=70.0))
    out = evaluate(_oversold(), _ctx(), cfg=cfg.generator)
    assert isinstance(out, Hold)
