from __future__ import annotations

import numpy as np
import pandas as pd


def obv(prices: pd.Series, volumes: pd.Series | None = None) -> pd.Series:
    if volumes is None:
        volumes = pd.Series(1.0, index=prices.index)
    direction = np.sign(prices.diff().fillna(0.0))
    return (direction * volumes.fillna(1.0)).cumsum()


def last_obv(prices: pd.Series, volumes: pd.Series | None = None) -> float:
    if len(prices) < 2:
        return 0.0
    return float(obv(prices, volumes).iloc[-1])
