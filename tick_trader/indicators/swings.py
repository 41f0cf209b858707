from __future__ import annotations

from dataclasses import dataclass

import pandas as pd


@dataclass(frozen=True)
class SwingPoint:
    idx: int
    price: float
    kind: str


def find_swings(prices: pd.Series, left: int = 1, right: int = 1) -> list[SwingPoint]:
    values = prices.to_numpy()
    out: list[SwingPoint] = []
    n = len(values)
    for i in range(left, n - right):
        p = values[i]
        neighbours = list(values[i - left : i]) + list(values[i + 1 : i + right + 1])
        if all(p > q for q in neighbours):
            out.append(SwingPoint(i, float(p), "high"))
        elif all(p < q for q in neighbours):
            out.append(SwingPoint(i, float(p), "low"))
    return out
