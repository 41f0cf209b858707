from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone

import pytest

from tick_trader.clock import ManualClock, VirtualScheduler
from tick_trader.config import DEFAULT_CONFIG, config_from_dict, load_config
from tick_trader.data.csv_loader import iter_ticks, load_ticks_csv
from tick_trader.data.ticks import TickBuffer
from tick_trader.errors import FeedGap, InsufficientData, InvalidPrice
from tick_trader.types import PriceTick

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def test_buffer_rejects_unusable_prices():
    buf = TickBuffer()
    for bad in (float("nan"), float("inf"), 0.0, -3.0):
        with pytest.raises(InvalidPrice):
            buf.append(PriceTick("V10", bad, T0))
    assert len(buf) == 0


def test_buffer_is_bounded_and_normalises_time():
    buf = TickBuffer(limit=3)
    for k in range(5):
        buf.append(PriceTick("V10", 100.0 + k, datetime(2024, 1, 1, 0, 0, k)))
    assert buf.count("V10") == 3
    assert list(buf.prices("V10")) == [102.0, 103.0, 104.0]
    assert list(buf.volumes("V10")) == [1.0, 1.0, 1.0]
    assert buf.last("V10").timestamp.tzinfo is not None


def test_require_reports_shortfall():
    buf = TickBuffer()
    buf.append(PriceTick("V10", 100.0, T0))
    with pytest.raises(InsufficientData) as e:
        buf.require("V10", 20)
    assert (e.value.have, e.value.need) == (1, 20)


def test_fresh_last_detects_feed_gap():
    buf = TickBuffer()
    with pytest.raises(FeedGap):
        buf.fresh_last("V10", T0, 60)
    buf.append(PriceTick("V10", 100.0, T0))
    assert buf.fresh_last("V10", T0 + timedelta(seconds=30), 60).price == 100.0
    with pytest.raises(FeedGap):
        buf.fresh_last("V10", T0 + timedelta(seconds=90), 60)


def test_csv_loader_sorts_and_fills(tmp_path):
    path = tmp_path / "ticks.csv"
    path.write_text("time,price\n2024-01-01T00:00:02Z,101.5\n2024-01-01T00:00:01Z,100.0\n")
    df = load_ticks_csv(path, symbol="V10")
    assert list(df.columns) == ["time", "symbol", "price", "volume"]
    ticks = list(iter_ticks(df))
    assert [t.price for t in ticks] == [100.0, 101.5]
    assert ticks[0].symbol == "V10"
    assert ticks[0].volume == 1.0
    assert ticks[0].timestamp == T0 + timedelta(seconds=1)


def test_csv_loader_requires_price(tmp_path):
    path = tmp_path / "ticks.csv"
    path.write_text("time,symbol\n2024-01-01T00:00:01Z,V10\n")
    with pytest.raises(ValueError):
        load_ticks_csv(path)


def test_config_overrides(tmp_path):
    cfg = config_from_dict({"symbol_profiles": {"v25": {"base_stop_loss_percent": 0.5}}, "risk": {"loss_multipliers": [1.0, 0.5]}})
    assert cfg.profile("V25").base_stop_loss_percent == 0.5
    assert cfg.profile("V25").volatility_normal == 10.0
    assert cfg.risk.loss_multipliers == (1.0, 0.5)
    assert DEFAULT_CONFIG.profile("V25").base_stop_loss_percent == 1.0

    with pytest.raises(ValueError):
        config_from_dict({"risk": {"bogus": 1}})

    path = tmp_path / "cfg.json"
    path.write_text(json.dumps({"symbols": ["V10"], "generation_interval_seconds": 60}))
    loaded = load_config(path)
    assert loaded.symbols == ("V10",)
    assert loaded.generation_interval_seconds == 60
    assert load_config(None) is DEFAULT_CONFIG


def test_virtual_scheduler_runs_due_jobs():
    clock = ManualClock(T0)
    sched = VirtualScheduler(clock)
    seen: list[datetime] = []
    job = sched.every(60, lambda: seen.append(clock.now()), name="probe")

    def broken():
        raise RuntimeError("job failure")

    sched.every(30, broken, name="broken")
    sched.advance(125)
    assert seen == [T0 + timedelta(seconds=60), T0 + timedelta(seconds=120)]
    assert clock.now() == T0 + timedelta(seconds=125)

    sched.cancel(job)
    sched.advance(120)
    assert len(seen) == 2
