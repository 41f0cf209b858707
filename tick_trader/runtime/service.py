from __future__ import annotations

import argparse
import json
import logging
import os
import time as time_mod
from datetime import datetime
from pathlib import Path
from typing import Any

import pandas as pd

from tick_trader.clock import ManualClock, VirtualScheduler
from tick_trader.config import EngineConfig, config_from_dict, load_config
from tick_trader.data.csv_loader import iter_ticks, load_ticks_csv
from tick_trader.execution.notifier import AlertSink, CompositeAlertSink, JsonlAlertSink, LoggingAlertSink
from tick_trader.execution.repository import InMemorySignalRepository, JsonFileSignalRepository, SignalRepository
from tick_trader.runtime.engine import Engine


def _write_status(path: Path, status: dict[str, Any]) -> None:
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(status, separators=(",", ":"), ensure_ascii=False, default=str))
    tmp.replace(path)


def _build_config(args: argparse.Namespace) -> EngineConfig:
    cfg = load_config(args.config or None)
    overrides: dict[str, Any] = {}
    if args.symbols:
        overrides["symbols"] = [s.strip().upper() for s in args.symbols.split(",") if s.strip()]
    if args.interval_seconds:
        overrides["generation_interval_seconds"] = float(args.interval_seconds)
    return config_from_dict(overrides, base=cfg) if overrides else cfg


def _build_sink(alerts_file: str) -> AlertSink:
    sinks: list[AlertSink] = [LoggingAlertSink()]
    if alerts_file:
        sinks.append(JsonlAlertSink(alerts_file))
    return CompositeAlertSink(sinks)


def _build_repository(state_file: str) -> SignalRepository:
    return JsonFileSignalRepository(state_file) if state_file else InMemorySignalRepository()


def replay(engine: Engine, scheduler: VirtualScheduler, ticks: pd.DataFrame) -> int:
    """Feed recorded ticks, advancing virtual time so timers fire between them."""
    n = 0
    for tick in iter_ticks(ticks):
        delta = (tick.timestamp - scheduler.clock.now()).total_seconds()
        if delta > 0:
            scheduler.advance(delta)
        engine.on_tick(tick)
        n += 1
    return n


def run_once(engine: Engine, path: str, last_seen: datetime | None) -> tuple[int, datetime | None]:
    df = load_ticks_csv(path)
    if last_seen is not None:
        df = df[df["time"] > pd.Timestamp(last_seen)]
    n = 0
    for tick in iter_ticks(df):
        engine.on_tick(tick)
        last_seen = tick.timestamp
        n += 1
    return n, last_seen


def main() -> int:
    ap = argparse.ArgumentParser()
    ap.add_argument("--ticks", required=True, help="CSV with time,symbol,price[,volume]")
    ap.add_argument("--mode", choices=["replay", "poll"], default="replay")
    ap.add_argument("--config", default="")
    ap.add_argument("--symbols", default="")
    ap.add_argument("--interval-seconds", type=float, default=0.0)
    ap.add_argument("--poll-seconds", type=int, default=5)
    ap.add_argument("--state-file", default="")
    ap.add_argument("--alerts-file", default="")
    ap.add_argument("--status-file", default="service_status.json")
    ap.add_argument("--log-file", default="")
    args = ap.parse_args()

    log_level = os.environ.get("TICK_TRADER_LOG_LEVEL", "INFO").upper()
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if args.log_file:
        handlers.append(logging.FileHandler(args.log_file, encoding="utf-8"))
    logging.basicConfig(level=getattr(logging, log_level, logging.INFO), handlers=handlers, format="%(asctime)s %(levelname)s %(message)s")

    cfg = _build_config(args)
    status_path = Path(args.status_file)
    repo = _build_repository(args.state_file)
    sink = _build_sink(args.alerts_file)

    if args.mode == "replay":
        ticks = load_ticks_csv(args.ticks)
        start = ticks["time"].iloc[0].to_pydatetime() if len(ticks) else None
        clock = ManualClock(start)
        scheduler = VirtualScheduler(clock)
        engine = Engine(cfg, repository=repo, sink=sink, clock=clock, sleep=lambda _s: None)
        engine.start(scheduler)
        n = replay(engine, scheduler, ticks)
        engine.stop()
        status = engine.get_status()
        status["replayed_ticks"] = n
        status["risk"] = engine.get_risk_statistics()
        _write_status(status_path, status)
        logging.info("replay_done ticks=%d active=%d", n, status["active_signals"])
        return 0

    engine = Engine(cfg, repository=repo, sink=sink)
    engine.start()
    last_seen: datetime | None = None
    try:
        while True:
            try:
                n, last_seen = run_once(engine, args.ticks, last_seen)
                status = engine.get_status()
                status["new_ticks"] = n
                status["last_error"] = None
            except Exception as e:  # noqa: BLE001
                logging.exception("service_run_error")
                status = engine.get_status()
                status["new_ticks"] = 0
                status["last_error"] = str(e)
            _write_status(status_path, status)
            time_mod.sleep(max(1, int(args.poll_seconds)))
    except KeyboardInterrupt:
        pass
    finally:
        engine.stop()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
