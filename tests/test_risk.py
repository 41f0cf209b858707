from __future__ import annotations

from types import SimpleNamespace

import pytest

from tick_trader.config import config_from_dict
from tick_trader.risk.manager import RiskManager, RiskParams, RiskProfile
from tick_trader.types import Side


def _params(rr: float, max_loss: float = 1.0) -> RiskParams:
    return RiskParams(
        entry_price=100.0,
        stop_loss=99.0,
        take_profit=100.0 + rr,
        position_size=1.0,
        risk_reward_ratio=rr,
        risk_amount=100.0,
        reward_amount=100.0 * rr,
        risk_percent=1.0,
        max_loss_percent=max_loss,
        max_gain_percent=rr,
    )


def test_sizing_uses_confidence_tier_and_stop_cap():
    rm = RiskManager()
    p = rm.size("V25", Side.BUY, 1000.0, 85.0)
    assert p.risk_percent == pytest.approx(1.2)
    # base stop 1.0% capped at 0.8 * 1.2 = 0.96%
    assert p.max_loss_percent == pytest.approx(0.96)
    assert p.stop_loss == pytest.approx(990.4)
    assert p.take_profit == pytest.approx(1024.0)
    assert p.risk_reward_ratio == pytest.approx(2.5)
    assert p.position_size == pytest.approx(120.0 / 9.6)


def test_sell_levels_mirror_buy():
    p = RiskManager().size("V25", Side.SELL, 1000.0, 85.0)
    assert p.take_profit < 1000.0 < p.stop_loss


def test_three_losses_scale_risk_down():
    rm = RiskManager()
    base = rm.size("V25", Side.BUY, 1000.0, 85.0).risk_percent
    for _ in range(3):
        rm.update_trade_result(-0.5, False)
    assert rm.profile.consecutive_losses == 3
    assert rm.loss_multiplier() == pytest.approx(0.6)
    assert rm.size("V25", Side.BUY, 1000.0, 85.0).risk_percent == pytest.approx(base * 0.6)


def test_win_resets_loss_streak():
    rm = RiskManager()
    rm.update_trade_result(-0.5, False)
    rm.update_trade_result(1.0, True)
    p = rm.profile
    assert p.consecutive_losses == 0
    assert p.total_trades == 2
    assert p.win_rate == pytest.approx(50.0)


def test_validation_rejects_low_risk_reward():
    rm = RiskManager(config_from_dict({"risk": {"minimum_risk_reward": 2.5}}))
    v = rm.validate(SimpleNamespace(confidence=90.0), _params(1.8))
    assert not v.is_valid
    assert any(w.startswith("risk_reward") for w in v.warnings)


def test_low_confidence_only_warns():
    rm = RiskManager()
    v = rm.validate(SimpleNamespace(confidence=70.0), _params(2.5))
    assert v.is_valid
    assert any("confidence" in w for w in v.warnings)


def test_oversized_stop_rejected():
    v = RiskManager().validate(SimpleNamespace(confidence=90.0), _params(2.5, max_loss=3.0))
    assert not v.is_valid


def test_drawdown_halts_until_reset():
    rm = RiskManager()
    for _ in range(4):
        rm.update_trade_result(-4.0, False)
    assert rm.profile.halted
    v = rm.validate(SimpleNamespace(confidence=90.0), _params(2.5))
    assert not v.is_valid
    rm.reset()
    assert not rm.profile.halted
    assert rm.profile.current_drawdown == 0.0
    assert rm.validate(SimpleNamespace(confidence=90.0), _params(2.5)).is_valid


def test_profile_round_trip_and_report():
    rm = RiskManager(profile=RiskProfile.from_dict({"total_trades": 4, "winning_trades": 1, "total_pnl": -2.0, "unknown": 1}))
    assert rm.profile.win_rate == pytest.approx(25.0)
    rep = rm.report()
    assert rep["statistics"]["average_pnl"] == pytest.approx(-0.5)
    assert any("win rate" in r for r in rep["recommendations"])
    assert RiskProfile.from_dict(rm.profile.to_dict()) == rm.profile
