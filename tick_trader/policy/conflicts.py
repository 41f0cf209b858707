from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from uuid import uuid4

from tick_trader.config import ConflictConfig
from tick_trader.errors import ConflictRejected
from tick_trader.execution.book import SignalBook
from tick_trader.types import ActiveSignal, SignalOutcome, TradeProposal
from tick_trader.utils import entries_within

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Accepted:
    signal: ActiveSignal | None = None
    displaced: tuple[SignalOutcome, ...] = ()
    displaced_ids: tuple[str, ...] = ()


@dataclass(frozen=True)
class Rejected:
    reason: str
    conflicts: tuple[str, ...] = ()


def make_active_signal(proposal: TradeProposal, *, when: datetime | None = None) -> ActiveSignal:
    created = when or datetime.now(timezone.utc)
    return ActiveSignal(
        id=uuid4().hex,
        symbol=proposal.symbol,
        side=proposal.side,
        entry_price=float(proposal.entry_price),
        take_profit=float(proposal.take_profit),
        stop_loss=float(proposal.stop_loss),
        confidence=float(proposal.confidence),
        trade_type=proposal.trade_type,
        timeframe=proposal.timeframe,
        priority=int(proposal.priority),
        created_at=created,
        expiry_time=proposal.expiry_time,
        position_size=float(proposal.position_size),
        reasoning=tuple(proposal.reasoning),
    )


class ConflictResolver:
    def __init__(self, cfg: ConflictConfig = ConflictConfig()) -> None:
        self.cfg = cfg

    def conflicts_with(self, proposal, active: ActiveSignal) -> bool:
        if active.symbol != proposal.symbol:
            return False
        if active.side != proposal.side:
            return True
        return entries_within(active.entry_price, proposal.entry_price, self.cfg.entry_tolerance)

    @staticmethod
    def beats(proposal, other: ActiveSignal) -> bool:
        if proposal.confidence != other.confidence:
            return proposal.confidence > other.confidence
        return proposal.priority < other.priority

    def resolve(self, proposal, active_signals: list[ActiveSignal]) -> Accepted | Rejected:
        conflicts = [a for a in active_signals if self.conflicts_with(proposal, a)]
        losers = [a.id for a in conflicts if not self.beats(proposal, a)]
        if losers:
            return Rejected("outranked_by_active", tuple(losers))
        return Accepted(displaced_ids=tuple(a.id for a in conflicts))

    def _displace(self, signal: ActiveSignal, active: list[ActiveSignal]) -> list[ActiveSignal]:
        res = self.resolve(signal, active)
        if isinstance(res, Rejected):
            raise ConflictRejected(signal.symbol, list(res.conflicts))
        ids = set(res.displaced_ids)
        return [a for a in active if a.id in ids]

    def admit(self, proposal: TradeProposal, book: SignalBook, *, when: datetime | None = None) -> Accepted | Rejected:
        signal = make_active_signal(proposal, when=when)
        try:
            outcomes = book.admit(signal, self._displace)
        except ConflictRejected as e:
            logger.info("proposal_rejected symbol=%s side=%s conflicts=%s", proposal.symbol, proposal.side.value, ",".join(e.conflicting_ids))
            return Rejected("outranked_by_active", tuple(e.conflicting_ids))
        for o in outcomes:
            logger.info("signal_replaced id=%s by=%s", o.signal_id, signal.id)
        logger.info(
            "signal_opened id=%s symbol=%s side=%s confidence=%.1f entry=%.5f tp=%.5f sl=%.5f",
            signal.id, signal.symbol, signal.side.value, signal.confidence,
            signal.entry_price, signal.take_profit, signal.stop_loss,
        )
        return Accepted(signal, tuple(outcomes), tuple(o.signal_id for o in outcomes))


def default_expiry(created: datetime, minutes: float) -> datetime:
    return created + timedelta(minutes=minutes)
