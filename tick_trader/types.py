from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Literal, Optional


class Side(str, Enum):
    BUY = "BUY"
    SELL = "SELL"

    @property
    def sign(self) -> int:
        return 1 if self is Side.BUY else -1


class OutcomeResult(str, Enum):
    WIN = "WIN"
    LOSS = "LOSS"
    EXPIRED = "EXPIRED"
    REPLACED = "REPLACED"


class CloseReason(str, Enum):
    TAKE_PROFIT_HIT = "TAKE_PROFIT_HIT"
    STOP_LOSS_HIT = "STOP_LOSS_HIT"
    EXPIRED = "EXPIRED"
    REPLACED = "REPLACED"


class TradeType(str, Enum):
    SCALP = "SCALP"
    DAY = "DAY"
    SWING = "SWING"


class HealthState(str, Enum):
    STRONG = "STRONG"
    WEAKENING = "WEAKENING"
    CRITICAL = "CRITICAL"
    INVALIDATED = "INVALIDATED"


class AlertKind(str, Enum):
    INVALIDATED = "INVALIDATED"
    CRITICAL = "CRITICAL"
    WARNING = "WARNING"
    PROFIT_PROTECTION = "PROFIT_PROTECTION"
    SIGNAL_CLOSED = "SIGNAL_CLOSED"


class AlertAction(str, Enum):
    MONITOR = "MONITOR"
    ADJUST_SL = "ADJUST_SL"
    CLOSE_MANUAL = "CLOSE_MANUAL"
    BREAKEVEN = "BREAKEVEN"
    TRAIL = "TRAIL"
    PROTECT_PROFITS = "PROTECT_PROFITS"


class Urgency(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


Trend = Literal["UPTREND", "DOWNTREND", "SIDEWAYS"]
VolatilityRegime = Literal["LOW", "NORMAL", "HIGH", "EXTREME"]
RiskLevel = Literal["LOW", "MEDIUM", "HIGH", "EXTREME"]
PriceAction = Literal["FAVORABLE", "NEUTRAL", "ADVERSE"]
ProfitTier = Literal["NONE", "SMALL", "MEDIUM", "LARGE", "HUGE"]
Timeframe = Literal["M1", "M5", "M15", "H1", "H4"]


@dataclass(frozen=True)
class PriceTick:
    symbol: str
    price: float
    timestamp: datetime
    volume: float | None = None


@dataclass(frozen=True)
class IndicatorSnapshot:
    symbol: str
    timestamp: datetime | None
    price: float
    rsi: float
    macd: float
    macd_signal: float
    macd_histogram: float
    sma20: float
    ema50: float
    bollinger_upper: float
    bollinger_middle: float
    bollinger_lower: float
    atr: float
    adx: float
    obv: float
    points: int

    @property
    def bollinger_position(self) -> float:
        width = self.bollinger_upper - self.bollinger_lower
        if width <= 0:
            return 0.5
        return (self.price - self.bollinger_lower) / width


@dataclass(frozen=True)
class CandidateSignal:
    symbol: str
    side: Side
    confidence: float
    entry_price: float
    raw_take_profit: float
    raw_stop_loss: float
    reasoning: tuple[str, ...]
    snapshot: IndicatorSnapshot
    timestamp: datetime | None = None
    meta: dict = field(default_factory=dict)


@dataclass(frozen=True)
class Hold:
    symbol: str
    reason: str
    confidence: float = 0.0
    reasoning: tuple[str, ...] = ()


@dataclass(frozen=True)
class TradeProposal:
    symbol: str
    side: Side
    entry_price: float
    take_profit: float
    stop_loss: float
    confidence: float
    trade_type: TradeType
    timeframe: Timeframe
    priority: int
    position_size: float
    risk_reward_ratio: float
    reasoning: tuple[str, ...] = ()
    expiry_time: Optional[datetime] = None


@dataclass(frozen=True)
class ActiveSignal:
    id: str
    symbol: str
    side: Side
    entry_price: float
    take_profit: float
    stop_loss: float
    confidence: float
    trade_type: TradeType
    timeframe: Timeframe
    priority: int
    created_at: datetime
    is_active: bool = True
    expiry_time: Optional[datetime] = None
    position_size: float = 0.0
    reasoning: tuple[str, ...] = ()
    current_profit_percent: float = 0.0
    peak_profit_percent: float = 0.0
    recommended_stop_loss: Optional[float] = None
    exit_price: Optional[float] = None
    result: Optional[OutcomeResult] = None
    pnl_percent: Optional[float] = None
    closed_at: Optional[datetime] = None


@dataclass(frozen=True)
class SignalOutcome:
    signal_id: str
    symbol: str
    side: Side
    entry_price: float
    exit_price: float
    result: OutcomeResult
    pnl_percent: float
    close_reason: CloseReason
    closed_at: datetime
    confidence: float = 0.0

    @property
    def is_win(self) -> bool:
        return self.result == OutcomeResult.WIN or (self.result == OutcomeResult.EXPIRED and self.pnl_percent > 0)


@dataclass(frozen=True)
class ProtectionRecommendation:
    should_protect: bool
    recommended_stop_loss: Optional[float]
    profit_tier: ProfitTier
    protection_percent: float
    locked_profit_percent: float
    current_profit_percent: float
    peak_profit_percent: float
    drawdown_from_peak: float
    reason: str = ""


@dataclass(frozen=True)
class HealthStatus:
    signal_id: str
    symbol: str
    side: Side
    status: HealthState
    health_score: float
    trend_aligned: bool
    momentum_strength: float
    price_action: PriceAction
    risk_level: RiskLevel
    current_price: float
    entry_price: float
    unrealized_pnl: float
    current_profit_percent: float
    peak_profit_percent: float
    protection: ProtectionRecommendation
    recommendations: tuple[str, ...]
    checked_at: datetime


@dataclass(frozen=True)
class TacticalAlert:
    signal_id: str
    symbol: str
    kind: AlertKind
    message: str
    action: AlertAction
    urgency: Urgency
    timestamp: datetime
    recommended_stop_loss: Optional[float] = None
