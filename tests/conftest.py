"""Shared fixtures: a realistic thermostat snapshot and an in-memory sink."""

from __future__ import annotations

import copy
from typing import Any

import pytest

from ecobee_sync.models import Snapshot, SyncRecord
from ecobee_sync.sinks.base import Sink

_BASE_PAYLOAD: dict[str, Any] = {
    "identifier": "511234567890",
    "name": "Main Floor",
    "thermostatRev": "240115120000",
    "modelNumber": "nikeSmart",
    "utcTime": "2024-01-15 12:03:10",
    "thermostatTime": "2024-01-15 07:03:10",
    "equipmentStatus": "heatPump,fan",
    "runtime": {
        "connected": True,
        "lastStatusModified": "2024-01-15 12:00:00",
        "runtimeInterval": 42,
        "actualTemperature": 705,
        "actualHumidity": 41,
        "desiredHeat": 690,
        "desiredCool": 760,
        "desiredHumidity": 36,
        "desiredDehumidity": 60,
        "desiredFanMode": "auto",
        "actualAQScore": 80,
        "actualAQAccuracy": 3,
        "actualCO2": 650,
        "actualVOC": 300,
    },
    "extendedRuntime": {
        "lastReadingTimestamp": "2024-01-15 12:00:00",
        "runtimeDate": "2024-01-15",
        "runtimeInterval": 42,
        "actualTemperature": [701, 703, 705],
        "actualHumidity": [40, 41, 41],
        "desiredHeat": [690, 690, 690],
        "desiredCool": [760, 760, 760],
        "desiredHumidity": [36, 36, 36],
        "desiredDehumidity": [60, 60, 60],
        "dmOffset": [0, 0, -20],
        "hvacMode": ["heatStage1On", "heatStage1On", "heatOff"],
        "heatPump1": [300, 300, 0],
        "heatPump2": [0, 0, 0],
        "auxHeat1": [0, 15, 0],
        "auxHeat2": [0, 0, 0],
        "auxHeat3": [0, 0, 0],
        "cool1": [0, 0, 0],
        "cool2": [0, 0, 0],
        "fan": [300, 300, 45],
        "humidifier": [0, 120, 0],
        "dehumidifier": [0, 0, 0],
        "economizer": [0, 0, 0],
        "ventilator": [0, 0, 0],
    },
    "remoteSensors": [
        {
            "id": "ei:0",
            "name": "Main Floor",
            "type": "thermostat",
            "inUse": True,
            "capability": [
                {"id": "1", "type": "temperature", "value": "705"},
                {"id": "2", "type": "humidity", "value": "41"},
                {"id": "3", "type": "occupancy", "value": "true"},
            ],
        },
        {
            "id": "rs:100",
            "name": "Bedroom",
            "type": "ecobee3_remote_sensor",
            "code": "ABCD",
            "inUse": False,
            "capability": [
                {"id": "1", "type": "temperature", "value": "682"},
                {"id": "2", "type": "occupancy", "value": "false"},
            ],
        },
        {
            "id": "rs:101",
            "name": "Garage",
            "type": "ecobee3_remote_sensor",
            "capability": [{"id": "1", "type": "temperature", "value": "0"}],
        },
    ],
    "weather": {
        "timestamp": "2024-01-15 11:55:00",
        "weatherStation": "KBOS",
        "forecasts": [
            {
                "condition": "Cloudy",
                "temperature": 300,
                "pressure": 1016,
                "relativeHumidity": 70,
                "dewpoint": 215,
                "visibility": 16093,
                "windSpeed": 10,
                "windBearing": 270,
                "windDirection": "W",
            },
            {"condition": "Snow", "temperature": 250},
        ],
    },
}


def snapshot_payload(
    *,
    runtime_interval: int = 42,
    utc_time: str = "2024-01-15 12:03:10",
    weather_timestamp: str = "2024-01-15 11:55:00",
    status_modified: str = "2024-01-15 12:00:00",
) -> dict[str, Any]:
    payload = copy.deepcopy(_BASE_PAYLOAD)
    payload["utcTime"] = utc_time
    payload["runtime"]["runtimeInterval"] = runtime_interval
    payload["runtime"]["lastStatusModified"] = status_modified
    payload["extendedRuntime"]["runtimeInterval"] = runtime_interval
    payload["weather"]["timestamp"] = weather_timestamp
    return payload


@pytest.fixture
def make_payload():
    """Factory for raw API thermostat dicts."""
    return snapshot_payload


@pytest.fixture
def make_snapshot():
    """Factory for decoded snapshots."""

    def _make(**kwargs: Any) -> Snapshot:
        return Snapshot.model_validate(snapshot_payload(**kwargs))

    return _make


@pytest.fixture
def snapshot(make_snapshot) -> Snapshot:
    return make_snapshot()


# -----------------------------------------------------------------------
# In-memory sink
# -----------------------------------------------------------------------


class RecordingSink(Sink):
    """Keeps every successful write; can be told to fail."""

    def __init__(self, *, fail_times: int = 0, always_fail: bool = False, **kwargs: Any) -> None:
        kwargs.setdefault("retry_delay_s", 0.0)
        super().__init__(**kwargs)
        self.fail_times = fail_times
        self.always_fail = always_fail
        self.writes: list[list[SyncRecord]] = []
        self.attempts = 0
        self.connected = False
        self.closed = False

    @property
    def records(self) -> list[SyncRecord]:
        return [rec for batch in self.writes for rec in batch]

    def records_for(self, stream: str) -> list[SyncRecord]:
        return [rec for rec in self.records if rec.stream == stream]

    async def connect(self) -> None:
        self.connected = True

    async def write(self, records: list[SyncRecord]) -> None:
        self.attempts += 1
        if self.always_fail or self.attempts <= self.fail_times:
            raise ConnectionError(f"{self.name} unavailable")
        self.writes.append(list(records))

    async def flush(self) -> None:
        """No-op."""

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def recording_sink():
    """Factory for :class:`RecordingSink` instances."""
    return RecordingSink
