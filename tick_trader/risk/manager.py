from __future__ import annotations

import logging
import threading
from dataclasses import asdict, dataclass, field, replace
from typing import Any, Optional

from tick_trader.config import DEFAULT_CONFIG, EngineConfig
from tick_trader.types import Side
from tick_trader.utils import offset_price

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RiskProfile:
    consecutive_losses: int = 0
    total_trades: int = 0
    winning_trades: int = 0
    total_pnl: float = 0.0
    current_drawdown: float = 0.0
    max_drawdown_reached: float = 0.0
    halted: bool = False

    @property
    def win_rate(self) -> float:
        return self.winning_trades / self.total_trades * 100.0 if self.total_trades else 0.0

    @property
    def average_pnl(self) -> float:
        return self.total_pnl / self.total_trades if self.total_trades else 0.0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "RiskProfile":
        return cls(**{k: d[k] for k in cls.__dataclass_fields__ if k in d})


@dataclass(frozen=True)
class RiskParams:
    entry_price: float
    stop_loss: float
    take_profit: float
    position_size: float
    risk_reward_ratio: float
    risk_amount: float
    reward_amount: float
    risk_percent: float
    max_loss_percent: float
    max_gain_percent: float
    trailing_stop: Optional[float] = None
    loss_multiplier: float = 1.0


@dataclass(frozen=True)
class RiskValidation:
    is_valid: bool
    warnings: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)


class RiskManager:
    def __init__(self, cfg: EngineConfig = DEFAULT_CONFIG, profile: RiskProfile | None = None) -> None:
        self.cfg = cfg
        self._lock = threading.Lock()
        self._profile = profile or RiskProfile()

    @property
    def profile(self) -> RiskProfile:
        with self._lock:
            return self._profile

    def confidence_risk_percent(self, confidence: float) -> float:
        tiers = self.cfg.risk.confidence_tiers
        for floor, pct in tiers:
            if confidence >= floor:
                return pct
        return tiers[-1][1]

    def loss_multiplier(self, consecutive_losses: int | None = None) -> float:
        n = self.profile.consecutive_losses if consecutive_losses is None else consecutive_losses
        mults = self.cfg.risk.loss_multipliers
        return mults[min(n, len(mults) - 1)]

    def size(
        self,
        symbol: str,
        side: Side,
        entry_price: float,
        confidence: float,
        volatility: float = 1.0,
        account_balance: float | None = None,
    ) -> RiskParams:
        rc = self.cfg.risk
        balance = rc.account_balance if account_balance is None else account_balance
        mult = self.loss_multiplier()
        risk_pct = self.confidence_risk_percent(confidence) * mult
        risk_amount = balance * risk_pct / 100.0

        base_stop = self.cfg.profile(symbol).base_stop_loss_percent * volatility
        stop_pct = min(base_stop, risk_pct * rc.stop_cap_fraction)
        tp_pct = stop_pct * rc.reward_ratio

        stop_loss = offset_price(side, entry_price, -stop_pct)
        take_profit = offset_price(side, entry_price, tp_pct)
        stop_dist = abs(entry_price - stop_loss)
        size = risk_amount / stop_dist if stop_dist > 0 else 0.0
        rr = abs(take_profit - entry_price) / stop_dist if stop_dist > 0 else 0.0
        return RiskParams(
            entry_price=entry_price,
            stop_loss=stop_loss,
            take_profit=take_profit,
            position_size=size,
            risk_reward_ratio=rr,
            risk_amount=risk_amount,
            reward_amount=risk_amount * rc.reward_ratio,
            risk_percent=risk_pct,
            max_loss_percent=stop_pct,
            max_gain_percent=tp_pct,
            trailing_stop=offset_price(side, entry_price, -stop_pct * rc.trailing_fraction),
            loss_multiplier=mult,
        )

    def validate(self, candidate: Any, params: RiskParams) -> RiskValidation:
        rc = self.cfg.risk
        prof = self.profile
        warnings: list[str] = []
        recs: list[str] = []
        ok = True

        if params.risk_reward_ratio < rc.minimum_risk_reward:
            warnings.append(f"risk_reward {params.risk_reward_ratio:.2f} below minimum {rc.minimum_risk_reward:.2f}")
            ok = False
        if params.max_loss_percent > rc.max_loss_percent:
            warnings.append(f"max_loss {params.max_loss_percent:.2f}% exceeds {rc.max_loss_percent:.2f}%")
            ok = False
        if prof.consecutive_losses >= rc.max_consecutive_losses:
            warnings.append(f"{prof.consecutive_losses} consecutive losses, position size reduced")
            recs.append("consider pausing trading")
        if candidate.confidence < rc.min_recommended_confidence:
            warnings.append(f"confidence {candidate.confidence:.1f} below recommended {rc.min_recommended_confidence:.0f}")
            recs.append("wait for higher confidence signals")
        if prof.halted:
            warnings.append("maximum drawdown reached, trading halted")
            ok = False
        return RiskValidation(ok, warnings, recs)

    def update_trade_result(self, pnl: float, is_win: bool) -> RiskProfile:
        with self._lock:
            p = self._profile
            losses = 0 if is_win else p.consecutive_losses + 1
            if pnl < 0:
                dd = p.current_drawdown + abs(pnl)
            else:
                dd = max(0.0, p.current_drawdown - pnl)
            max_dd = max(p.max_drawdown_reached, dd)
            halted = p.halted or max_dd > self.cfg.risk.max_drawdown
            if halted and not p.halted:
                logger.warning("risk_halted max_drawdown=%.2f limit=%.2f", max_dd, self.cfg.risk.max_drawdown)
            self._profile = replace(
                p,
                consecutive_losses=losses,
                total_trades=p.total_trades + 1,
                winning_trades=p.winning_trades + (1 if is_win else 0),
                total_pnl=p.total_pnl + pnl,
                current_drawdown=dd,
                max_drawdown_reached=max_dd,
                halted=halted,
            )
            return self._profile

    def reset(self) -> RiskProfile:
        with self._lock:
            self._profile = replace(self._profile, halted=False, current_drawdown=0.0, max_drawdown_reached=0.0, consecutive_losses=0)
            logger.info("risk_reset")
            return self._profile

    def statistics(self) -> dict[str, Any]:
        p = self.profile
        return {
            "total_trades": p.total_trades,
            "win_rate": p.win_rate,
            "average_pnl": p.average_pnl,
            "total_pnl": p.total_pnl,
            "consecutive_losses": p.consecutive_losses,
            "current_drawdown": p.current_drawdown,
            "max_drawdown_reached": p.max_drawdown_reached,
            "risk_reward_ratio": self.cfg.risk.reward_ratio,
            "should_reduce_risk": p.consecutive_losses >= self.cfg.risk.max_consecutive_losses,
            "halted": p.halted,
        }

    def report(self) -> dict[str, Any]:
        stats = self.statistics()
        recs: list[str] = []
        if stats["total_trades"] and stats["win_rate"] < 60:
            recs.append("win rate below 60%, review signal quality")
        if stats["consecutive_losses"] >= 2:
            recs.append("multiple consecutive losses, reduce position size")
        if stats["average_pnl"] < 0:
            recs.append("average pnl negative, review strategy")
        if stats["current_drawdown"] > 10:
            recs.append("drawdown high, consider a break")
        summary = (
            f"{stats['total_trades']} trades, {stats['win_rate']:.1f}% win rate, "
            f"{stats['risk_reward_ratio']}:1 risk-reward"
        )
        return {"summary": summary, "statistics": stats, "recommendations": recs}
