from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

import pandas as pd

TrapType = Literal["STOP_HUNT", "FAKE_BREAKOUT", "REJECTION", "NONE"]


@dataclass(frozen=True)
class LiquidityTrap:
    detected: bool
    trap_type: TrapType
    wick_percent: float
    structure_break: bool
    rejection: bool
    risk_level: Literal["LOW", "MEDIUM", "HIGH"]


NO_TRAP = LiquidityTrap(False, "NONE", 0.0, False, False, "LOW")


def detect_liquidity_trap(
    prices: pd.Series,
    *,
    fake_breakout_wick: float = 3.0,
    stop_hunt_wick: float = 5.0,
) -> LiquidityTrap:
    if len(prices) < 20:
        return NO_TRAP
    prices = prices.reset_index(drop=True)
    cur = float(prices.iloc[-1])
    prev = float(prices.iloc[-2])
    last10 = prices.tail(10)
    rng = float(last10.max() - last10.min())
    # last tick's move as a share of the recent range
    wick = abs(cur - prev) / rng * 100.0 if rng > 0 else 0.0

    window = prices.iloc[-20:-10]
    resistance = float(window.max())
    support = float(window.min())
    broke = cur > resistance or cur < support
    rejected = broke and ((cur > resistance and cur < prev) or (cur < support and cur > prev))

    if rejected:
        return LiquidityTrap(True, "REJECTION", wick, broke, True, "HIGH")
    if broke and wick > fake_breakout_wick:
        return LiquidityTrap(True, "FAKE_BREAKOUT", wick, broke, False, "MEDIUM")
    if wick > stop_hunt_wick:
        return LiquidityTrap(True, "STOP_HUNT", wick, broke, False, "MEDIUM")
    return LiquidityTrap(False, "NONE", wick, broke, False, "LOW")
