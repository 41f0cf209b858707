from __future__ import annotations

import threading
from datetime import datetime

import pandas as pd

from tick_trader.config import IndicatorConfig
from tick_trader.indicators.adx import last_adx
from tick_trader.indicators.atr import last_atr
from tick_trader.indicators.bollinger import bollinger_bands
from tick_trader.indicators.ema import last_ema, last_sma
from tick_trader.indicators.macd import last_macd
from tick_trader.indicators.obv import last_obv
from tick_trader.indicators.rsi import last_rsi
from tick_trader.types import IndicatorSnapshot


def compute_snapshot(
    symbol: str,
    prices: pd.Series,
    volumes: pd.Series | None = None,
    *,
    cfg: IndicatorConfig = IndicatorConfig(),
    timestamp: datetime | None = None,
) -> IndicatorSnapshot:
    prices = prices.astype(float).reset_index(drop=True)
    if volumes is not None:
        volumes = volumes.astype(float).reset_index(drop=True)
    m = last_macd(prices, cfg.macd_fast, cfg.macd_slow, cfg.macd_signal)
    bands = bollinger_bands(prices, cfg.bollinger_period, cfg.bollinger_std)
    return IndicatorSnapshot(
        symbol=symbol,
        timestamp=timestamp,
        price=float(prices.iloc[-1]) if len(prices) else 0.0,
        rsi=last_rsi(prices, cfg.rsi_period),
        macd=m.macd,
        macd_signal=m.signal,
        macd_histogram=m.histogram,
        sma20=last_sma(prices, cfg.sma_period),
        ema50=last_ema(prices, cfg.ema_period),
        bollinger_upper=bands.upper,
        bollinger_middle=bands.middle,
        bollinger_lower=bands.lower,
        atr=last_atr(prices, cfg.atr_period),
        adx=last_adx(prices, cfg.adx_period),
        obv=last_obv(prices, volumes),
        points=len(prices),
    )


class IndicatorEngine:
    def __init__(self, cfg: IndicatorConfig = IndicatorConfig()) -> None:
        self.cfg = cfg
        self._lock = threading.Lock()
        self._latest: dict[str, IndicatorSnapshot] = {}

    def update(
        self,
        symbol: str,
        prices: pd.Series,
        volumes: pd.Series | None = None,
        *,
        timestamp: datetime | None = None,
    ) -> IndicatorSnapshot | None:
        if len(prices) == 0:
            return None
        window = prices.iloc[-self.cfg.history_limit :]
        vols = None if volumes is None else volumes.iloc[-self.cfg.history_limit :]
        snap = compute_snapshot(symbol, window, vols, cfg=self.cfg, timestamp=timestamp)
        with self._lock:
            self._latest[symbol] = snap
        return snap

    def snapshot(self, symbol: str) -> IndicatorSnapshot | None:
        with self._lock:
            return self._latest.get(symbol)
