from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Iterable, Optional

from tick_trader.clock import Clock, Job, Scheduler, SystemClock, ThreadScheduler
from tick_trader.config import DEFAULT_CONFIG, EngineConfig
from tick_trader.data.ticks import TickBuffer
from tick_trader.errors import ConflictRejected, InsufficientData, InvalidPrice, InvariantViolation, RiskRejected
from tick_trader.execution.book import SignalBook
from tick_trader.execution.notifier import AlertSink
from tick_trader.execution.repository import InMemorySignalRepository, SignalRepository
from tick_trader.indicators.engine import IndicatorEngine
from tick_trader.market_regime.regime import volatility_factor
from tick_trader.policy.classifier import SignalClassifier
from tick_trader.policy.conflicts import ConflictResolver, Rejected, default_expiry
from tick_trader.risk.manager import RiskManager, RiskProfile
from tick_trader.strategy.generator import SignalGenerator
from tick_trader.tracking.lifecycle import LifecycleTracker
from tick_trader.tracking.tactical import TacticalAssistant
from tick_trader.types import ActiveSignal, Hold, HealthStatus, PriceTick, SignalOutcome, TradeProposal
from tick_trader.utils import assert_level_order, utc

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SymbolReport:
    symbol: str
    status: str
    reason: str = ""
    signal_id: Optional[str] = None
    confidence: Optional[float] = None
    displaced: tuple[str, ...] = ()


@dataclass(frozen=True)
class GenerationReport:
    started_at: datetime
    finished_at: datetime
    skipped: bool = False
    attempts: int = 0
    results: tuple[SymbolReport, ...] = ()
    error: Optional[str] = None

    @property
    def accepted(self) -> list[SymbolReport]:
        return [r for r in self.results if r.status == "accepted"]


class Engine:
    def __init__(
        self,
        cfg: EngineConfig = DEFAULT_CONFIG,
        *,
        repository: SignalRepository | None = None,
        sink: AlertSink | None = None,
        clock: Clock | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.cfg = cfg
        self.clock = clock or SystemClock()
        self._sleep = sleep
        self.repository = repository or InMemorySignalRepository()
        self.sink = sink

        saved = self.repository.load_risk_profile()
        self.risk = RiskManager(cfg, RiskProfile.from_dict(saved) if saved else None)
        self.book = SignalBook(self.repository)
        self.buffer = TickBuffer(cfg.indicators.history_limit)
        self.indicators = IndicatorEngine(cfg.indicators)
        self.generator = SignalGenerator(cfg)
        self.classifier = SignalClassifier(cfg.classifier)
        self.resolver = ConflictResolver(cfg.conflicts)
        self.tracker = LifecycleTracker(self.book, self.risk, cfg=cfg.tracker, buffer=self.buffer, sink=sink, clock=self.clock)
        self.tactical = TacticalAssistant(self.book, self.buffer, cfg=cfg.tactical, sink=sink, clock=self.clock)
        self.tracker.subscribe(self.tactical.forget)

        self._gen_lock = threading.Lock()
        self._scheduler: Scheduler | None = None
        self._owns_scheduler = False
        self._gen_job: Job | None = None
        self._ticks = 0
        self._rejected_ticks = 0
        self._last_report: GenerationReport | None = None

    # tick path

    def on_tick(self, tick: PriceTick) -> list[SignalOutcome]:
        try:
            clean = self.buffer.append(tick)
        except InvalidPrice as e:
            self._rejected_ticks += 1
            logger.warning("tick_rejected symbol=%s reason=%s", tick.symbol, e)
            return []
        self._ticks += 1
        self.indicators.update(
            clean.symbol,
            self.buffer.prices(clean.symbol),
            self.buffer.volumes(clean.symbol),
            timestamp=clean.timestamp,
        )
        return self.tracker.on_tick(clean)

    # generation path

    def propose(self, symbol: str, now: datetime) -> SymbolReport:
        gc = self.cfg.generator
        try:
            prices = self.buffer.require(symbol, gc.min_points, window=self.cfg.history_window)
        except InsufficientData as e:
            return SymbolReport(symbol, "hold", f"insufficient_data have={e.have} need={e.need}")
        volumes = self.buffer.volumes(symbol, window=self.cfg.history_window)

        candidate = self.generator.generate(symbol, prices, volumes, timestamp=now)
        if isinstance(candidate, Hold):
            return SymbolReport(symbol, "hold", candidate.reason, confidence=candidate.confidence)

        try:
            ctx = candidate.meta["context"]
            params = self.risk.size(
                symbol,
                candidate.side,
                candidate.entry_price,
                candidate.confidence,
                volatility=volatility_factor(ctx.volatility),
            )
            validation = self.risk.validate(candidate, params)
            if not validation.is_valid:
                raise RiskRejected(symbol, validation.warnings)
            assert_level_order(candidate.side, candidate.entry_price, params.take_profit, params.stop_loss)

            features = self.classifier.features(prices, volumes, candidate.snapshot)
            cls = self.classifier.classify(candidate, features)
            proposal = TradeProposal(
                symbol=symbol,
                side=candidate.side,
                entry_price=candidate.entry_price,
                take_profit=params.take_profit,
                stop_loss=params.stop_loss,
                confidence=candidate.confidence,
                trade_type=cls.trade_type,
                timeframe=cls.timeframe,
                priority=cls.priority,
                position_size=params.position_size,
                risk_reward_ratio=params.risk_reward_ratio,
                reasoning=candidate.reasoning + cls.reasoning + tuple(validation.warnings),
                expiry_time=default_expiry(now, gc.signal_lifetime_minutes),
            )
            res = self.resolver.admit(proposal, self.book, when=now)
            if isinstance(res, Rejected):
                raise ConflictRejected(symbol, list(res.conflicts))
        except RiskRejected as e:
            logger.info("proposal_risk_rejected symbol=%s warnings=%s", symbol, "; ".join(e.warnings))
            return SymbolReport(symbol, "risk_rejected", "; ".join(e.warnings), confidence=candidate.confidence)
        except ConflictRejected as e:
            return SymbolReport(symbol, "conflict_rejected", ",".join(e.conflicting_ids), confidence=candidate.confidence)

        sig = res.signal
        return SymbolReport(symbol, "accepted", "", sig.id if sig else None, candidate.confidence, res.displaced_ids)

    def trigger_generation(self, symbols: Iterable[str] | None = None) -> GenerationReport:
        started = utc(self.clock.now())
        syms = list(symbols) if symbols is not None else list(self.cfg.symbols)
        if not self._gen_lock.acquire(blocking=False):
            logger.info("generation_skipped reason=already_running")
            return GenerationReport(started, started, skipped=True)
        try:
            attempts = 0
            last_error: str | None = None
            while attempts < self.cfg.retry_attempts:
                attempts += 1
                try:
                    results = tuple(self.propose(s, started) for s in syms)
                    report = GenerationReport(started, utc(self.clock.now()), attempts=attempts, results=tuple(results))
                    self._last_report = report
                    logger.info(
                        "generation_done symbols=%d accepted=%d attempts=%d",
                        len(syms), len(report.accepted), attempts,
                    )
                    return report
                except InvariantViolation:
                    raise
                except Exception as e:  # noqa: BLE001
                    last_error = str(e)
                    logger.exception("generation_error attempt=%d", attempts)
                    if attempts < self.cfg.retry_attempts:
                        self._sleep(self.cfg.retry_delay_seconds)
            report = GenerationReport(started, utc(self.clock.now()), attempts=attempts, error=last_error)
            self._last_report = report
            logger.error("generation_abandoned attempts=%d error=%s", attempts, last_error)
            return report
        finally:
            self._gen_lock.release()

    # control surface

    def get_active_signals(self) -> list[ActiveSignal]:
        return self.book.active()

    def get_health(self, signal_id: str) -> Optional[HealthStatus]:
        return self.tactical.get_health(signal_id)

    def get_risk_statistics(self) -> dict[str, Any]:
        return self.risk.statistics()

    def reset_risk(self) -> RiskProfile:
        profile = self.risk.reset()
        self.repository.save_risk_profile(profile.to_dict())
        return profile

    def get_status(self) -> dict[str, Any]:
        last = self._last_report
        return {
            "time_utc": utc(self.clock.now()).isoformat(),
            "running": self._scheduler is not None,
            "symbols": sorted(set(self.cfg.symbols) | set(self.buffer.symbols())),
            "ticks": self._ticks,
            "rejected_ticks": self._rejected_ticks,
            "active_signals": len(self.book.active()),
            "halted": self.risk.profile.halted,
            "last_generation": None if last is None else {
                "started_at": last.started_at.isoformat(),
                "skipped": last.skipped,
                "attempts": last.attempts,
                "accepted": len(last.accepted),
                "error": last.error,
            },
        }

    # scheduling

    def start(self, scheduler: Scheduler | None = None) -> None:
        if self._scheduler is not None:
            return
        self._owns_scheduler = scheduler is None
        self._scheduler = scheduler or ThreadScheduler()
        self.tracker.start(self._scheduler)
        self.tactical.start(self._scheduler)
        self._gen_job = self._scheduler.every(
            self.cfg.generation_interval_seconds, lambda: self.trigger_generation(), name="generation"
        )
        logger.info("engine_started symbols=%s", ",".join(self.cfg.symbols))

    def stop(self) -> None:
        if self._scheduler is None:
            return
        self.tracker.stop()
        self.tactical.stop()
        if self._gen_job is not None:
            self._scheduler.cancel(self._gen_job)
        if self._owns_scheduler:
            self._scheduler.stop()
        self._scheduler = None
        self._gen_job = None
        logger.info("engine_stopped")
