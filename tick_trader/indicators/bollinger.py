from __future__ import annotations

from dataclasses import dataclass

import pandas as pd


@dataclass(frozen=True)
class Bands:
    upper: float
    middle: float
    lower: float

    @property
    def width_percent(self) -> float:
        if self.middle == 0:
            return 0.0
        return (self.upper - self.lower) / self.middle * 100.0


def bollinger_bands(series: pd.Series, period: int = 20, num_std: float = 2.0) -> Bands:
    if len(series) < period:
        mid = float(series.iloc[-1]) if len(series) else 0.0
        return Bands(mid, mid, mid)
    window = series.iloc[-period:]
    mid = float(window.mean())
    sd = float(window.std(ddof=0))
    return Bands(mid + num_std * sd, mid, mid - num_std * sd)
