from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

import pandas as pd

from tick_trader.clock import Clock, Job, Scheduler, SystemClock
from tick_trader.config import TacticalConfig
from tick_trader.data.ticks import TickBuffer
from tick_trader.errors import FeedGap, PersistenceFailure
from tick_trader.execution.book import SignalBook
from tick_trader.execution.notifier import AlertSink, deliver
from tick_trader.indicators.rsi import last_rsi
from tick_trader.types import (
    ActiveSignal,
    AlertAction,
    AlertKind,
    HealthState,
    HealthStatus,
    PriceAction,
    ProfitTier,
    ProtectionRecommendation,
    RiskLevel,
    Side,
    SignalOutcome,
    TacticalAlert,
    Urgency,
)
from tick_trader.utils import clamp, offset_price, profit_percent, utc

logger = logging.getLogger(__name__)


@dataclass
class AlertState:
    last_alert_time: Optional[datetime] = None
    last_notification_time: Optional[datetime] = None
    peak_profit_percent: float = 0.0
    last_profit_tier: Optional[ProfitTier] = None
    last_protection_tier: Optional[ProfitTier] = None
    last_status: Optional[HealthState] = None
    last_health_score: Optional[float] = None
    last_price: Optional[float] = None


def trend_aligned(side: Side, prices: pd.Series, window: int = 10) -> bool:
    if len(prices) < window:
        return True
    recent = prices.iloc[-window:]
    rising = float(recent.iloc[-1]) - float(recent.iloc[0]) > 0
    return rising if side == Side.BUY else not rising


def stop_proximity(side: Side, entry: float, stop_loss: float, price: float) -> float:
    """0 at entry (or better), 1 at the stop."""
    full = abs(entry - stop_loss)
    if full == 0:
        return 0.0
    remaining = (price - stop_loss) * side.sign
    return clamp(1.0 - remaining / full, 0.0, 1.0)


def risk_level_for(proximity: float) -> RiskLevel:
    remaining = 1.0 - proximity
    if remaining > 0.8:
        return "LOW"
    if remaining > 0.5:
        return "MEDIUM"
    if remaining > 0.2:
        return "HIGH"
    return "EXTREME"


def status_for(score: float, cfg: TacticalConfig) -> HealthState:
    if score >= cfg.strong_threshold:
        return HealthState.STRONG
    if score >= cfg.weakening_threshold:
        return HealthState.WEAKENING
    if score >= cfg.critical_threshold:
        return HealthState.CRITICAL
    return HealthState.INVALIDATED


def protection_for(
    side: Side,
    entry: float,
    current: float,
    peak: float,
    cfg: TacticalConfig = TacticalConfig(),
) -> ProtectionRecommendation:
    drawdown = peak - current
    for floor, tier, mode, value in cfg.profit_tiers:
        if peak < floor:
            continue
        locked = peak * value if mode == "lock" else value
        protect = current < locked
        return ProtectionRecommendation(
            should_protect=protect,
            recommended_stop_loss=offset_price(side, entry, locked) if protect else None,
            profit_tier=tier,  # type: ignore[arg-type]
            protection_percent=locked / peak * 100.0 if peak > 0 else 0.0,
            locked_profit_percent=locked,
            current_profit_percent=current,
            peak_profit_percent=peak,
            drawdown_from_peak=drawdown,
            reason=f"{tier.lower()}_tier_{mode}",
        )
    return ProtectionRecommendation(False, None, "NONE", 0.0, 0.0, current, peak, drawdown, "below_first_tier")


class TacticalAssistant:
    def __init__(
        self,
        book: SignalBook,
        buffer: TickBuffer,
        *,
        cfg: TacticalConfig = TacticalConfig(),
        sink: AlertSink | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.book = book
        self.buffer = buffer
        self.cfg = cfg
        self.sink = sink
        self.clock = clock or SystemClock()
        self._lock = threading.Lock()
        self._states: dict[str, AlertState] = {}
        self._health: dict[str, HealthStatus] = {}
        self._job: Job | None = None
        self._scheduler: Scheduler | None = None

    def assess(self, sig: ActiveSignal, prices: pd.Series, price: float, now: datetime, *, previous_peak: float = 0.0) -> HealthStatus:
        cfg = self.cfg
        aligned = trend_aligned(sig.side, prices, cfg.trend_window)
        rsi = last_rsi(prices, cfg.momentum_rsi_period)
        directional_rsi = rsi if sig.side == Side.BUY else 100.0 - rsi
        momentum = (directional_rsi - 50.0) * cfg.momentum_weight

        current = profit_percent(sig.side, sig.entry_price, price)
        if current > cfg.favorable_threshold:
            action: PriceAction = "FAVORABLE"
            action_pts = cfg.favorable_weight
        elif current < cfg.adverse_threshold:
            action = "ADVERSE"
            action_pts = -cfg.adverse_weight
        else:
            action = "NEUTRAL"
            action_pts = 0.0

        proximity = stop_proximity(sig.side, sig.entry_price, sig.stop_loss, price)
        score = 50.0 + (cfg.trend_weight if aligned else -cfg.trend_weight) + momentum + action_pts - cfg.proximity_weight * proximity
        score = clamp(score, 0.0, 100.0)
        status = status_for(score, cfg)
        risk = risk_level_for(proximity)

        peak = max(previous_peak, sig.peak_profit_percent, current)
        protection = protection_for(sig.side, sig.entry_price, current, peak, cfg)
        return HealthStatus(
            signal_id=sig.id,
            symbol=sig.symbol,
            side=sig.side,
            status=status,
            health_score=score,
            trend_aligned=aligned,
            momentum_strength=directional_rsi,
            price_action=action,
            risk_level=risk,
            current_price=price,
            entry_price=sig.entry_price,
            unrealized_pnl=(price - sig.entry_price) * sig.side.sign * sig.position_size,
            current_profit_percent=current,
            peak_profit_percent=peak,
            protection=protection,
            recommendations=tuple(self._recommendations(status, current, risk, protection)),
            checked_at=now,
        )

    @staticmethod
    def _recommendations(status: HealthState, current: float, risk: RiskLevel, protection: ProtectionRecommendation) -> list[str]:
        out: list[str] = []
        if protection.should_protect and protection.recommended_stop_loss is not None:
            out.append(f"move stop to {protection.recommended_stop_loss:.5f} to lock {protection.locked_profit_percent:.2f}%")
        if status == HealthState.INVALIDATED:
            out.append("thesis invalidated, close the position")
        elif status == HealthState.CRITICAL:
            out.append("close now to lock profit" if current > 0 else "consider closing to limit losses")
        elif status == HealthState.WEAKENING:
            out.append("tighten stop" if current > 0 else "monitor closely, consider reducing size")
        if risk == "EXTREME":
            out.append("price very close to stop loss")
        elif risk == "HIGH":
            out.append("consider tightening stop loss")
        if not out:
            out.append("signal healthy, continue monitoring")
        return out

    def _throttle_ok(self, state: AlertState, now: datetime) -> bool:
        if state.last_alert_time is None:
            return True
        return (now - state.last_alert_time).total_seconds() >= self.cfg.throttle_seconds

    def _decide(self, sig: ActiveSignal, health: HealthStatus, state: AlertState, now: datetime) -> Optional[TacticalAlert]:
        prot = health.protection
        prev = state.last_status

        def alert(kind: AlertKind, message: str, action: AlertAction, urgency: Urgency, stop: float | None = None) -> TacticalAlert:
            return TacticalAlert(sig.id, sig.symbol, kind, message, action, urgency, now, stop)

        if health.status == HealthState.INVALIDATED and prev != HealthState.INVALIDATED:
            return alert(
                AlertKind.INVALIDATED,
                f"{sig.symbol} {sig.side.value} invalidated (health {health.health_score:.0f})",
                AlertAction.CLOSE_MANUAL,
                Urgency.HIGH,
            )
        if not self._throttle_ok(state, now):
            return None
        if prot.should_protect and state.last_protection_tier != prot.profit_tier:
            action = AlertAction.BREAKEVEN if prot.profit_tier in ("SMALL", "MEDIUM") else AlertAction.PROTECT_PROFITS
            return alert(
                AlertKind.PROFIT_PROTECTION,
                f"{sig.symbol} {prot.profit_tier} profit fell to {prot.current_profit_percent:.2f}% "
                f"from peak {prot.peak_profit_percent:.2f}%, lock {prot.locked_profit_percent:.2f}%",
                action,
                Urgency.MEDIUM,
                prot.recommended_stop_loss,
            )
        # warnings are not repeated within the tier of the previous alert
        if state.last_profit_tier == prot.profit_tier:
            return None
        if prev == HealthState.STRONG and health.status == HealthState.WEAKENING:
            return alert(
                AlertKind.WARNING,
                f"{sig.symbol} {sig.side.value} weakening (health {health.health_score:.0f})",
                AlertAction.ADJUST_SL,
                Urgency.MEDIUM,
            )
        if prev in (HealthState.STRONG, HealthState.WEAKENING) and health.status == HealthState.CRITICAL:
            return alert(
                AlertKind.CRITICAL,
                f"{sig.symbol} {sig.side.value} critical (health {health.health_score:.0f})",
                AlertAction.CLOSE_MANUAL if health.current_profit_percent <= 0 else AlertAction.ADJUST_SL,
                Urgency.MEDIUM,
            )
        if prot.peak_profit_percent >= self.cfg.drawdown_min_peak and prot.drawdown_from_peak > self.cfg.drawdown_alert:
            return alert(
                AlertKind.WARNING,
                f"{sig.symbol} gave back {prot.drawdown_from_peak:.2f}% from peak {prot.peak_profit_percent:.2f}%",
                AlertAction.TRAIL,
                Urgency.MEDIUM,
            )
        return None

    def check_signal(self, sig: ActiveSignal, now: datetime | None = None) -> Optional[TacticalAlert]:
        now = utc(now or self.clock.now())
        try:
            tick = self.buffer.fresh_last(sig.symbol, now, self.cfg.feed_gap_seconds)
        except FeedGap as e:
            logger.debug("health_skipped id=%s reason=%s", sig.id, e)
            return None
        window = max(self.cfg.trend_window, self.cfg.momentum_rsi_period + 1) * 2
        prices = self.buffer.prices(sig.symbol, window)

        with self._lock:
            state = self._states.setdefault(sig.id, AlertState(peak_profit_percent=sig.peak_profit_percent))
            previous_peak = state.peak_profit_percent
        health = self.assess(sig, prices, tick.price, now, previous_peak=previous_peak)
        prot = health.protection
        stop = None
        if prot.should_protect and prot.recommended_stop_loss is not None:
            tighter = prot.recommended_stop_loss > sig.stop_loss if sig.side == Side.BUY else prot.recommended_stop_loss < sig.stop_loss
            stop = prot.recommended_stop_loss if tighter else None
        try:
            updated = self.book.update_protection(
                sig.id,
                current_profit_percent=health.current_profit_percent,
                peak_profit_percent=health.peak_profit_percent,
                recommended_stop_loss=stop,
            )
        except PersistenceFailure:
            logger.exception("protection_update_failed id=%s", sig.id)
            updated = self.book.get(sig.id)

        with self._lock:
            if updated is None:
                self._states.pop(sig.id, None)
                self._health.pop(sig.id, None)
                return None
            state = self._states.setdefault(sig.id, state)
            alert = self._decide(sig, health, state, now)
            state.peak_profit_percent = max(state.peak_profit_percent, health.peak_profit_percent)
            state.last_status = health.status
            state.last_health_score = health.health_score
            state.last_price = tick.price
            if alert is not None:
                state.last_alert_time = now
                if alert.kind != AlertKind.INVALIDATED:
                    state.last_profit_tier = prot.profit_tier
                if alert.kind == AlertKind.PROFIT_PROTECTION:
                    state.last_protection_tier = prot.profit_tier
            self._health[sig.id] = health

        logger.debug(
            "health id=%s status=%s score=%.1f profit=%.2f peak=%.2f",
            sig.id, health.status.value, health.health_score, health.current_profit_percent, health.peak_profit_percent,
        )
        if alert is not None:
            if deliver(self.sink, alert):
                with self._lock:
                    if sig.id in self._states:
                        self._states[sig.id].last_notification_time = now
        return alert

    def run_cycle(self, now: datetime | None = None) -> list[TacticalAlert]:
        now = utc(now or self.clock.now())
        alerts: list[TacticalAlert] = []
        live = self.book.active()
        live_ids = {s.id for s in live}
        with self._lock:
            for stale in [k for k in self._states if k not in live_ids]:
                self._states.pop(stale, None)
                self._health.pop(stale, None)
        for sig in live:
            alert = self.check_signal(sig, now)
            if alert is not None:
                alerts.append(alert)
        return alerts

    def get_health(self, signal_id: str) -> Optional[HealthStatus]:
        with self._lock:
            return self._health.get(signal_id)

    def alert_state(self, signal_id: str) -> Optional[AlertState]:
        with self._lock:
            st = self._states.get(signal_id)
            return None if st is None else AlertState(**vars(st))

    def forget(self, outcome: SignalOutcome) -> None:
        with self._lock:
            self._states.pop(outcome.signal_id, None)
            self._health.pop(outcome.signal_id, None)

    def start(self, scheduler: Scheduler) -> None:
        if self._job is not None:
            return
        self._scheduler = scheduler
        self._job = scheduler.every(self.cfg.interval_seconds, self.run_cycle, name="tactical")

    def stop(self) -> None:
        if self._job is not None and self._scheduler is not None:
            self._scheduler.cancel(self._job)
        self._job = None
        self._scheduler = None
