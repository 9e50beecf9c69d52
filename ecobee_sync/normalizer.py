"""Turns a decoded :class:`~ecobee_sync.models.Snapshot` into sink records.

One builder per stream.  Builders are pure: they read the snapshot, apply
the unit conversions and field tables, and return immutable
:class:`~ecobee_sync.models.SyncRecord` objects.  Deduplication is not
their concern; the synchronizer decides which builders to call.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from datetime import datetime, timedelta

from ecobee_sync.errors import DecodeError
from ecobee_sync.fields import (
    AIR_QUALITY_FIELDS,
    EQUIPMENT_FLAGS,
    RUNTIME_FIELDS,
    SENSOR_FIELDS,
    WEATHER_FIELDS,
    RuntimeSlot,
    SensorReading,
    build_fields,
)
from ecobee_sync.models import (
    RemoteSensor,
    Snapshot,
    StreamType,
    SyncRecord,
    parse_api_timestamp,
)
from ecobee_sync.units import TemperatureUnit

__all__ = ["Normalizer", "RUNTIME_SAMPLE_OFFSETS"]

logger = logging.getLogger("ecobee_sync.normalizer")

THERMOSTAT_NAME_TAG = "thermostat_name"
SOURCE_TAG = "source"
SOURCE = "ecobee"

# Extended runtime slots relative to lastReadingTimestamp
RUNTIME_SAMPLE_OFFSETS: tuple[timedelta, ...] = (
    timedelta(minutes=-5),
    timedelta(0),
    timedelta(minutes=5),
)

_SLUG_RE = re.compile(r"[^a-z0-9]+")


def _slug(text: str) -> str:
    return _SLUG_RE.sub("_", text.lower()).strip("_") or "unnamed"


class Normalizer:
    """Builds records for every stream of a snapshot.

    Parameters:
        unit: Unit for runtime and sensor temperatures.  Weather always
            carries both units.
        equipment: Equipment flags (see ``EQUIPMENT_FLAGS``) whose run-time
            fields should be emitted.
    """

    def __init__(
        self,
        *,
        unit: TemperatureUnit = TemperatureUnit.FAHRENHEIT,
        equipment: Iterable[str] = (),
    ) -> None:
        self.unit = unit
        self.equipment = frozenset(equipment)
        unknown = self.equipment.difference(EQUIPMENT_FLAGS)
        if unknown:
            raise ValueError(f"Unknown equipment flags: {sorted(unknown)}")

    def _tags(self, snapshot: Snapshot, **extra: str) -> dict[str, str]:
        return {THERMOSTAT_NAME_TAG: snapshot.name, SOURCE_TAG: SOURCE, **extra}

    # ------------------------------------------------------------------
    # Stream markers
    # ------------------------------------------------------------------

    @staticmethod
    def runtime_marker(snapshot: Snapshot) -> int:
        return snapshot.extended_runtime.runtime_interval

    @staticmethod
    def sensor_marker(snapshot: Snapshot) -> datetime:
        return parse_api_timestamp(snapshot.utc_time)

    @staticmethod
    def weather_marker(snapshot: Snapshot) -> datetime:
        return parse_api_timestamp(snapshot.weather.timestamp)

    @staticmethod
    def air_quality_marker(snapshot: Snapshot) -> datetime:
        return parse_api_timestamp(snapshot.runtime.last_status_modified)

    # ------------------------------------------------------------------
    # Builders
    # ------------------------------------------------------------------

    def runtime_records(self, snapshot: Snapshot) -> list[SyncRecord]:
        """Three records, one per extended-runtime slot (-5 min, 0, +5 min)."""
        ext = snapshot.extended_runtime
        base = parse_api_timestamp(ext.last_reading_timestamp)
        records = []
        for index, offset in enumerate(RUNTIME_SAMPLE_OFFSETS):
            slot = RuntimeSlot(ext=ext, index=index, unit=self.unit)
            records.append(
                SyncRecord(
                    stream=StreamType.RUNTIME,
                    measurement="ecobee_runtime",
                    category="runtime",
                    timestamp=base + offset,
                    tags=self._tags(snapshot),
                    fields=build_fields(RUNTIME_FIELDS, slot, self.equipment),
                )
            )
        return records

    def sensor_records(self, snapshot: Snapshot) -> list[SyncRecord]:
        """One record per remote sensor that reported a temperature.

        A temperature of exactly zero means "no reading" and the sensor is
        skipped.
        """
        observed = self.sensor_marker(snapshot)
        records = []
        for sensor in snapshot.remote_sensors:
            reading = self._read_sensor(sensor)
            if not reading.temperature:
                logger.debug("Sensor '%s' has no temperature reading - skipped", sensor.name)
                continue
            records.append(
                SyncRecord(
                    stream=StreamType.SENSOR,
                    measurement="ecobee_sensor",
                    category=f"sensors/{_slug(sensor.name or sensor.id)}",
                    timestamp=observed,
                    tags=self._tags(snapshot, sensor_name=sensor.name, sensor_id=sensor.id),
                    fields=build_fields(SENSOR_FIELDS, reading),
                )
            )
        return records

    def _read_sensor(self, sensor: RemoteSensor) -> SensorReading:
        temperature: int | None = None
        occupied: bool | None = None
        humidity: int | None = None
        for cap in sensor.capability:
            if cap.type == "temperature":
                try:
                    temperature = int(cap.value)
                except ValueError:
                    logger.warning("Error reading temperature %r for sensor '%s'", cap.value, sensor.name)
            elif cap.type == "occupancy":
                occupied = cap.value == "true"
            elif cap.type == "humidity":
                try:
                    humidity = int(cap.value)
                except ValueError:
                    logger.warning("Error reading humidity %r for sensor '%s'", cap.value, sensor.name)
        return SensorReading(temperature=temperature, occupied=occupied, humidity=humidity, unit=self.unit)

    def weather_record(self, snapshot: Snapshot) -> SyncRecord:
        """Current-conditions record from the first forecast entry."""
        weather = snapshot.weather
        if not weather.forecasts:
            raise DecodeError("weather block has no forecasts")
        tags = self._tags(snapshot)
        if weather.weather_station:
            tags["weather_station"] = weather.weather_station
        return SyncRecord(
            stream=StreamType.WEATHER,
            measurement="ecobee_weather",
            category="weather",
            timestamp=self.weather_marker(snapshot),
            tags=tags,
            fields=build_fields(WEATHER_FIELDS, weather.forecasts[0]),
        )

    def air_quality_record(self, snapshot: Snapshot) -> SyncRecord | None:
        """Air-quality record, or ``None`` if the thermostat has no AQ sensor."""
        fields = build_fields(AIR_QUALITY_FIELDS, snapshot.runtime)
        if not fields:
            return None
        return SyncRecord(
            stream=StreamType.AIR_QUALITY,
            measurement="ecobee_air_quality",
            category="air_quality",
            timestamp=self.air_quality_marker(snapshot),
            tags=self._tags(snapshot),
            fields=fields,
        )
