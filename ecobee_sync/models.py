"""Data models shared across the synchronization engine.

Two groups live here:

- The decoded thermostat API objects (``Snapshot`` and its blocks,
  ``ThermostatSummary``, ``EquipmentStatus``).  Field names are
  snake_case; the API's camelCase names are accepted as aliases.
- ``SyncRecord`` - the normalized record format that every sink receives.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from ecobee_sync.errors import DecodeError

__all__ = [
    "EquipmentStatus",
    "ExtendedRuntime",
    "RemoteSensor",
    "RemoteSensorCapability",
    "Runtime",
    "Snapshot",
    "StreamType",
    "SyncRecord",
    "ThermostatSummary",
    "Weather",
    "WeatherForecast",
    "parse_api_timestamp",
    "parse_equipment_status",
    "parse_thermostat_summary",
]

API_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def parse_api_timestamp(value: str) -> datetime:
    """Parse an API ``"YYYY-MM-DD HH:MM:SS"`` timestamp as UTC.

    Raises:
        DecodeError: if *value* does not match the format.
    """
    try:
        return datetime.strptime(value, API_TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)
    except (TypeError, ValueError) as exc:
        raise DecodeError(f"unparsable timestamp {value!r}") from exc


class _ApiModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", protected_namespaces=())


# -----------------------------------------------------------------------
# Snapshot blocks
# -----------------------------------------------------------------------


class Runtime(_ApiModel):
    """Latest single-sample readings."""

    connected: bool = True
    last_status_modified: str = Field("", alias="lastStatusModified")
    runtime_interval: int = Field(0, alias="runtimeInterval")
    actual_temperature: int = Field(0, alias="actualTemperature")
    actual_humidity: int = Field(0, alias="actualHumidity")
    desired_heat: int = Field(0, alias="desiredHeat")
    desired_cool: int = Field(0, alias="desiredCool")
    desired_humidity: int = Field(0, alias="desiredHumidity")
    desired_dehumidity: int = Field(0, alias="desiredDehumidity")
    desired_fan_mode: str = Field("", alias="desiredFanMode")
    actual_aq_score: int | None = Field(None, alias="actualAQScore")
    actual_aq_accuracy: int | None = Field(None, alias="actualAQAccuracy")
    actual_co2: int | None = Field(None, alias="actualCO2")
    actual_voc: int | None = Field(None, alias="actualVOC")


class ExtendedRuntime(_ApiModel):
    """Rolling window of the last three 5-minute samples.

    Index 0 is the sample five minutes before ``last_reading_timestamp``,
    index 1 is at it, index 2 is five minutes after it.
    """

    last_reading_timestamp: str = Field("", alias="lastReadingTimestamp")
    runtime_date: str = Field("", alias="runtimeDate")
    runtime_interval: int = Field(0, alias="runtimeInterval")
    actual_temperature: list[int] = Field(default_factory=list, alias="actualTemperature")
    actual_humidity: list[int] = Field(default_factory=list, alias="actualHumidity")
    desired_heat: list[int] = Field(default_factory=list, alias="desiredHeat")
    desired_cool: list[int] = Field(default_factory=list, alias="desiredCool")
    desired_humidity: list[int] = Field(default_factory=list, alias="desiredHumidity")
    desired_dehumidity: list[int] = Field(default_factory=list, alias="desiredDehumidity")
    dm_offset: list[int] = Field(default_factory=list, alias="dmOffset")
    hvac_mode: list[str] = Field(default_factory=list, alias="hvacMode")
    heat_pump1: list[int] = Field(default_factory=list, alias="heatPump1")
    heat_pump2: list[int] = Field(default_factory=list, alias="heatPump2")
    aux_heat1: list[int] = Field(default_factory=list, alias="auxHeat1")
    aux_heat2: list[int] = Field(default_factory=list, alias="auxHeat2")
    aux_heat3: list[int] = Field(default_factory=list, alias="auxHeat3")
    cool1: list[int] = Field(default_factory=list, alias="cool1")
    cool2: list[int] = Field(default_factory=list, alias="cool2")
    fan: list[int] = Field(default_factory=list, alias="fan")
    humidifier: list[int] = Field(default_factory=list, alias="humidifier")
    dehumidifier: list[int] = Field(default_factory=list, alias="dehumidifier")
    economizer: list[int] = Field(default_factory=list, alias="economizer")
    ventilator: list[int] = Field(default_factory=list, alias="ventilator")


class RemoteSensorCapability(_ApiModel):
    id: str = ""
    type: str = ""
    value: str = ""


class RemoteSensor(_ApiModel):
    id: str = ""
    name: str = ""
    type: str = ""
    code: str = ""
    in_use: bool = Field(False, alias="inUse")
    capability: list[RemoteSensorCapability] = Field(default_factory=list)


class WeatherForecast(_ApiModel):
    weather_symbol: int = Field(0, alias="weatherSymbol")
    date_time: str = Field("", alias="dateTime")
    condition: str = ""
    temperature: int = 0
    pressure: int = 0
    relative_humidity: int = Field(0, alias="relativeHumidity")
    dewpoint: int = 0
    visibility: int = 0
    wind_speed: int = Field(0, alias="windSpeed")
    wind_gust: int = Field(0, alias="windGust")
    wind_direction: str = Field("", alias="windDirection")
    wind_bearing: int = Field(0, alias="windBearing")
    pop: int = 0
    temp_high: int = Field(0, alias="tempHigh")
    temp_low: int = Field(0, alias="tempLow")
    sky: int = 0


class Weather(_ApiModel):
    timestamp: str = ""
    weather_station: str = Field("", alias="weatherStation")
    forecasts: list[WeatherForecast] = Field(default_factory=list)


class Snapshot(_ApiModel):
    """A single point-in-time read of one thermostat."""

    identifier: str
    name: str = ""
    thermostat_rev: str = Field("", alias="thermostatRev")
    model_number: str = Field("", alias="modelNumber")
    last_modified: str = Field("", alias="lastModified")
    thermostat_time: str = Field("", alias="thermostatTime")
    utc_time: str = Field("", alias="utcTime")
    equipment_status: str = Field("", alias="equipmentStatus")
    runtime: Runtime = Field(default_factory=Runtime)
    extended_runtime: ExtendedRuntime = Field(default_factory=ExtendedRuntime, alias="extendedRuntime")
    remote_sensors: list[RemoteSensor] = Field(default_factory=list, alias="remoteSensors")
    weather: Weather = Field(default_factory=Weather)


# -----------------------------------------------------------------------
# Thermostat summary
# -----------------------------------------------------------------------

# API status token -> EquipmentStatus attribute
_EQUIPMENT_TOKENS: dict[str, str] = {
    "heatPump": "heat_pump",
    "heatPump2": "heat_pump_2",
    "heatPump3": "heat_pump_3",
    "compCool1": "comp_cool_1",
    "compCool2": "comp_cool_2",
    "auxHeat1": "aux_heat_1",
    "auxHeat2": "aux_heat_2",
    "auxHeat3": "aux_heat_3",
    "fan": "fan",
    "humidifier": "humidifier",
    "dehumidifier": "dehumidifier",
    "ventilator": "ventilator",
    "economizer": "economizer",
    "compHotWater": "comp_hot_water",
    "auxHotWater": "aux_hot_water",
}


class EquipmentStatus(BaseModel):
    """Which pieces of HVAC equipment are currently running."""

    heat_pump: bool = False
    heat_pump_2: bool = False
    heat_pump_3: bool = False
    comp_cool_1: bool = False
    comp_cool_2: bool = False
    aux_heat_1: bool = False
    aux_heat_2: bool = False
    aux_heat_3: bool = False
    fan: bool = False
    humidifier: bool = False
    dehumidifier: bool = False
    ventilator: bool = False
    economizer: bool = False
    comp_hot_water: bool = False
    aux_hot_water: bool = False

    def running(self) -> list[str]:
        """Names of the equipment flagged as running."""
        return [name for name, on in self.model_dump().items() if on]


def parse_equipment_status(text: str) -> EquipmentStatus:
    """Decode ``"heatPump,fan"`` (or ``"<id>:heatPump,fan"``) into flags.

    Unknown tokens are ignored.
    """
    _, sep, tokens = text.partition(":")
    if not sep:
        tokens = text
    flags = {
        _EQUIPMENT_TOKENS[token.strip()]: True
        for token in tokens.split(",")
        if token.strip() in _EQUIPMENT_TOKENS
    }
    return EquipmentStatus(**flags)


class ThermostatSummary(BaseModel):
    identifier: str
    name: str
    connected: bool
    thermostat_revision: str
    alerts_revision: str
    runtime_revision: str
    interval_revision: str
    equipment_status: EquipmentStatus = Field(default_factory=EquipmentStatus)


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in ("true", "1", "t"):
        return True
    if lowered in ("false", "0", "f"):
        return False
    raise DecodeError(f"invalid connected flag {value!r}")


def parse_thermostat_summary(revision_list: list[str], status_list: list[str]) -> dict[str, ThermostatSummary]:
    """Pair revision-list and status-list entries into summaries keyed by id.

    The API returns both lists in the same order, so entries are matched by
    position.

    Raises:
        DecodeError: if the lists differ in length, a revision entry has
            fewer than seven fields, or a status entry lacks its
            ``<id>:`` prefix.
    """
    if len(revision_list) != len(status_list):
        raise DecodeError(
            f"revision list has {len(revision_list)} entries but status list has {len(status_list)}"
        )

    summaries: dict[str, ThermostatSummary] = {}
    for revision, status in zip(revision_list, status_list):
        parts = revision.split(":")
        if len(parts) < 7:
            raise DecodeError(f"invalid revision list entry, not enough fields: {revision!r}")
        if ":" not in status:
            raise DecodeError(f"invalid status list entry: {status!r}")
        summaries[parts[0]] = ThermostatSummary(
            identifier=parts[0],
            name=parts[1],
            connected=_parse_bool(parts[2]),
            thermostat_revision=parts[3],
            alerts_revision=parts[4],
            runtime_revision=parts[5],
            interval_revision=parts[6],
            equipment_status=parse_equipment_status(status),
        )
    return summaries


# -----------------------------------------------------------------------
# Normalized record
# -----------------------------------------------------------------------


class StreamType(StrEnum):
    """Independently deduplicated data streams."""

    RUNTIME = "runtime"
    SENSOR = "sensor"
    WEATHER = "weather"
    AIR_QUALITY = "air_quality"


class SyncRecord(BaseModel):
    """One normalized sample, ready for any sink.

    Attributes:
        stream: Stream the record belongs to.
        measurement: Time-series measurement name, e.g. ``"ecobee_runtime"``.
        category: Topic segment used by message-bus sinks, e.g. ``"runtime"``
            or ``"sensors/bedroom"``.
        timestamp: Observation time (timezone-aware, UTC).
        tags: Indexed string metadata (thermostat name, source, sensor id).
        fields: Measured values.
    """

    model_config = ConfigDict(frozen=True)

    stream: StreamType
    measurement: str
    category: str
    timestamp: datetime
    tags: dict[str, str] = Field(default_factory=dict)
    fields: dict[str, bool | int | float | str] = Field(default_factory=dict)

    def with_timestamp(self, timestamp: datetime) -> SyncRecord:
        """Return a copy observed at *timestamp*."""
        return self.model_copy(update={"timestamp": timestamp})

    def to_dict(self) -> dict[str, Any]:
        """Return a plain ``dict`` representation (JSON-safe types)."""
        return self.model_dump(mode="json")

    def to_json(self) -> str:
        """Return a compact JSON string."""
        return self.model_dump_json()
