#!/usr/bin/env python3
"""Offline replay examples -- drive the sync loop with canned thermostat
snapshots instead of the ecobee API.

Directly runnable (no ecobee account, InfluxDB or MQTT broker required).

Usage::

    python examples/offline_replay_example.py            # Case 1 (default)
    python examples/offline_replay_example.py --case 2   # Callback aggregation
    python examples/offline_replay_example.py --case 3   # Weather always current
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from typing import Any

from ecobee_sync import Normalizer, Snapshot, Synchronizer, TemperatureUnit
from ecobee_sync.sinks import ConsoleSink

# ---------------------------------------------------------------------------
# Canned data
# ---------------------------------------------------------------------------


def _snapshot(interval: int) -> Snapshot:
    """A thermostat read taken during 5-minute runtime interval *interval*."""
    minute = interval % 12 * 5
    temps = [700 + interval, 702 + interval, 704 + interval]
    return Snapshot.model_validate(
        {
            "identifier": "511234567890",
            "name": "Main Floor",
            "utcTime": f"2024-01-15 12:{minute:02d}:10",
            "runtime": {
                "runtimeInterval": interval,
                "lastStatusModified": f"2024-01-15 12:{minute:02d}:00",
                "actualAQScore": 80,
                "actualAQAccuracy": 3,
                "actualCO2": 650,
                "actualVOC": 300,
            },
            "extendedRuntime": {
                "lastReadingTimestamp": f"2024-01-15 12:{minute:02d}:00",
                "runtimeInterval": interval,
                "actualTemperature": temps,
                "actualHumidity": [40, 41, 41],
                "desiredHeat": [690, 690, 690],
                "desiredCool": [760, 760, 760],
                "dmOffset": [0, 0, 0],
                "hvacMode": ["heatStage1On", "heatStage1On", "heatOff"],
                "heatPump1": [300, 300, 0],
                "fan": [300, 300, 45],
            },
            "remoteSensors": [
                {
                    "id": "rs:100",
                    "name": "Bedroom",
                    "capability": [
                        {"id": "1", "type": "temperature", "value": str(680 + interval)},
                        {"id": "2", "type": "occupancy", "value": "false"},
                    ],
                }
            ],
            "weather": {
                "timestamp": "2024-01-15 11:55:00",
                "weatherStation": "KBOS",
                "forecasts": [{"temperature": 300, "pressure": 1016, "windSpeed": 10, "visibility": 16093}],
            },
        }
    )


class ReplayClient:
    """Stands in for EcobeeClient; every fetch returns the next interval."""

    def __init__(self, start: int = 42) -> None:
        self.interval = start

    async def fetch_snapshot(self, thermostat_id: str) -> Snapshot:
        snap = _snapshot(self.interval)
        self.interval += 1
        return snap


# ---------------------------------------------------------------------------
# Case 1: Console sink -- what gets written each cycle
# ---------------------------------------------------------------------------


def run_case_1() -> None:
    """Print every record the engine publishes over three cycles.

    Knobs demonstrated:
      - ConsoleSink(fmt="text")  -> human-readable dump
      - equipment=["heat_pump_1"] -> adds heat_pump_1_run_time
      - cycles=3                 -> stop after three polls
    """
    print("=== Case 1: Console sink ===\n")

    sync = Synchronizer(
        ReplayClient(),
        "511234567890",
        sinks=[ConsoleSink(fmt="text")],
        normalizer=Normalizer(equipment=["heat_pump_1"]),
        poll_interval_s=1.0,
    )
    sync.run(cycles=3)


# ---------------------------------------------------------------------------
# Case 2: Callback sink -- per-stream counts, Celsius
# ---------------------------------------------------------------------------


def run_case_2() -> None:
    """Count records per stream with a plain function.

    Weather and air quality only appear in the first cycle: their
    watermarks do not move in the replayed data.
    """
    print("=== Case 2: Callback aggregation ===\n")

    counts: dict[str, int] = {}

    def tally(records: list[Any]) -> None:
        stream = records[0].stream
        counts[stream] = counts.get(stream, 0) + len(records)
        print(f"  {stream:<12} +{len(records)}")

    sync = Synchronizer(
        ReplayClient(),
        "511234567890",
        sinks=[],
        normalizer=Normalizer(unit=TemperatureUnit.CELSIUS),
        poll_interval_s=0.5,
    )
    sync.add_sink(tally)
    sync.run(cycles=4)
    print(f"\n  Totals: {counts}")


# ---------------------------------------------------------------------------
# Case 3: Weather "always current"
# ---------------------------------------------------------------------------


def run_case_3() -> None:
    """One sink receives the weather every cycle stamped with the current
    time, the other only when the observation changes.
    """
    print("=== Case 3: Weather always current ===\n")

    async def main() -> None:
        dashboard = ConsoleSink(fmt="json", name="dashboard", always_write_weather=True)
        history = ConsoleSink(fmt="text", name="history")
        sync = Synchronizer(ReplayClient(), "511234567890", sinks=[dashboard, history], poll_interval_s=0.5)
        await sync.start()
        try:
            for _ in range(2):
                report = await sync.run_cycle()
                print(f"\n  cycle wrote {report.written}, unchanged {report.unchanged}\n")
        finally:
            await sync.close()

    asyncio.run(main())


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

_CASES = {1: run_case_1, 2: run_case_2, 3: run_case_3}

if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Offline replay examples")
    parser.add_argument("--case", type=int, default=1, choices=sorted(_CASES))
    args = parser.parse_args()
    logging.basicConfig(level=logging.WARNING, format="%(name)-30s %(levelname)-7s %(message)s")
    _CASES[args.case]()
