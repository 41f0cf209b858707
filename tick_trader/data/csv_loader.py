from __future__ import annotations

import time
from pathlib import Path
from typing import Iterator

import pandas as pd

from tick_trader.types import PriceTick


def load_ticks_csv(
    path: str | Path,
    *,
    time_col: str = "time",
    symbol: str | None = None,
) -> pd.DataFrame:
    p = Path(path)
    # feed writers may still hold the file
    retries = 3
    while retries > 0:
        try:
            df = pd.read_csv(p)
            break
        except (PermissionError, pd.errors.EmptyDataError):
            retries -= 1
            if retries == 0:
                raise
            time.sleep(0.5)
    if time_col not in df.columns:
        raise ValueError(f"Missing '{time_col}' column in {p}")
    if "price" not in df.columns:
        raise ValueError(f"Missing 'price' column in {p}")
    if "symbol" not in df.columns:
        if symbol is None:
            raise ValueError(f"Missing 'symbol' column in {p} and no symbol given")
        df["symbol"] = symbol
    if "volume" not in df.columns:
        df["volume"] = 1.0
    df[time_col] = pd.to_datetime(df[time_col], errors="raise", utc=True)
    df = df[[time_col, "symbol", "price", "volume"]].copy()
    df = df.sort_values(time_col, kind="stable").reset_index(drop=True)
    return df.rename(columns={time_col: "time"})


def iter_ticks(df: pd.DataFrame) -> Iterator[PriceTick]:
    for row in df.itertuples(index=False):
        vol = None if pd.isna(row.volume) else float(row.volume)
        yield PriceTick(str(row.symbol), float(row.price), row.time.to_pydatetime(), vol)
