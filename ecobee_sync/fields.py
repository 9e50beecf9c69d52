"""Declarative field tables for each stream.

Each table is a tuple of :class:`FieldSpec` entries.  A single routine,
:func:`build_fields`, walks a table against a source object and returns the
field map for one record.  An entry is skipped when its feature flag is not
enabled or when its extractor returns ``None`` (the device did not report
that value), so installations without some equipment never emit
zero-valued placeholder fields.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import Any, NamedTuple

from ecobee_sync.errors import DecodeError
from ecobee_sync.models import ExtendedRuntime, WeatherForecast
from ecobee_sync.units import (
    TemperatureUnit,
    f_to_c,
    from_tenths,
    indoor_humidity_recommendation,
    mb_to_inhg,
    meters_to_km,
    meters_to_miles,
    wind_chill,
)

__all__ = [
    "AIR_QUALITY_FIELDS",
    "EQUIPMENT_FLAGS",
    "RUNTIME_FIELDS",
    "SENSOR_FIELDS",
    "WEATHER_FIELDS",
    "FieldSpec",
    "RuntimeSlot",
    "SensorReading",
    "build_fields",
]

EQUIPMENT_FLAGS = (
    "heat_pump_1",
    "heat_pump_2",
    "aux_heat_1",
    "aux_heat_2",
    "cool_1",
    "cool_2",
    "humidifier",
    "dehumidifier",
)


class FieldSpec(NamedTuple):
    """``(name, extract, flag)`` - one output field of a record."""

    name: str
    extract: Callable[[Any], Any]
    flag: str | None = None


def build_fields(table: Iterable[FieldSpec], source: Any, enabled: Iterable[str] = ()) -> dict[str, Any]:
    """Evaluate *table* against *source*, honouring the *enabled* flags."""
    enabled = set(enabled)
    fields: dict[str, Any] = {}
    for entry in table:
        if entry.flag is not None and entry.flag not in enabled:
            continue
        value = entry.extract(source)
        if value is not None:
            fields[entry.name] = value
    return fields


# -----------------------------------------------------------------------
# Runtime (extended runtime window)
# -----------------------------------------------------------------------


class RuntimeSlot(NamedTuple):
    """One of the three samples of an extended-runtime block."""

    ext: ExtendedRuntime
    index: int
    unit: TemperatureUnit

    def at(self, attr: str) -> Any:
        values = getattr(self.ext, attr)
        try:
            return values[self.index]
        except IndexError:
            raise DecodeError(
                f"extendedRuntime.{attr} has {len(values)} samples, expected at least {self.index + 1}"
            ) from None

    def temperature(self, attr: str) -> float:
        return self.unit.from_fahrenheit(from_tenths(self.at(attr)))


RUNTIME_FIELDS: tuple[FieldSpec, ...] = (
    FieldSpec("temperature", lambda s: s.temperature("actual_temperature")),
    FieldSpec("humidity", lambda s: s.at("actual_humidity")),
    FieldSpec("heat_set_point", lambda s: s.temperature("desired_heat")),
    FieldSpec("cool_set_point", lambda s: s.temperature("desired_cool")),
    FieldSpec("demand_mgmt_offset", lambda s: s.unit.delta_from_fahrenheit(from_tenths(s.at("dm_offset")))),
    FieldSpec("hvac_mode", lambda s: s.at("hvac_mode")),
    FieldSpec("fan_run_time", lambda s: s.at("fan")),
    FieldSpec("humidity_set_point", lambda s: s.at("desired_humidity"), "humidifier"),
    FieldSpec("humidifier_run_time", lambda s: s.at("humidifier"), "humidifier"),
    FieldSpec("dehumidity_set_point", lambda s: s.at("desired_dehumidity"), "dehumidifier"),
    FieldSpec("dehumidifier_run_time", lambda s: s.at("dehumidifier"), "dehumidifier"),
    FieldSpec("aux_heat_1_run_time", lambda s: s.at("aux_heat1"), "aux_heat_1"),
    FieldSpec("aux_heat_2_run_time", lambda s: s.at("aux_heat2"), "aux_heat_2"),
    FieldSpec("heat_pump_1_run_time", lambda s: s.at("heat_pump1"), "heat_pump_1"),
    FieldSpec("heat_pump_2_run_time", lambda s: s.at("heat_pump2"), "heat_pump_2"),
    FieldSpec("cool_1_run_time", lambda s: s.at("cool1"), "cool_1"),
    FieldSpec("cool_2_run_time", lambda s: s.at("cool2"), "cool_2"),
)


# -----------------------------------------------------------------------
# Remote sensors
# -----------------------------------------------------------------------


class SensorReading(NamedTuple):
    """Capability values pulled out of one remote sensor.

    ``temperature`` is still in device tenths of a degree F; ``None``
    means the sensor has no such capability.
    """

    temperature: int | None
    occupied: bool | None
    humidity: int | None
    unit: TemperatureUnit


SENSOR_FIELDS: tuple[FieldSpec, ...] = (
    FieldSpec("temperature", lambda r: r.unit.from_fahrenheit(from_tenths(r.temperature))),
    FieldSpec("occupied", lambda r: r.occupied),
    FieldSpec("humidity", lambda r: r.humidity),
)


# -----------------------------------------------------------------------
# Weather (current forecast entry)
# -----------------------------------------------------------------------


def _outdoor_f(f: WeatherForecast) -> float:
    return from_tenths(f.temperature)


def _wind_chill_f(f: WeatherForecast) -> float:
    return wind_chill(_outdoor_f(f), float(f.wind_speed))


WEATHER_FIELDS: tuple[FieldSpec, ...] = (
    FieldSpec("outdoor_temp", _outdoor_f),
    FieldSpec("outdoor_temp_c", lambda f: f_to_c(_outdoor_f(f))),
    FieldSpec("outdoor_humidity", lambda f: f.relative_humidity),
    FieldSpec("barometric_pressure_mb", lambda f: f.pressure),
    FieldSpec("barometric_pressure_inHg", lambda f: mb_to_inhg(f.pressure)),
    FieldSpec("dew_point", lambda f: from_tenths(f.dewpoint)),
    FieldSpec("dew_point_c", lambda f: f_to_c(from_tenths(f.dewpoint))),
    FieldSpec("wind_speed", lambda f: f.wind_speed),
    FieldSpec("wind_bearing", lambda f: f.wind_bearing),
    FieldSpec("visibility_mi", lambda f: meters_to_miles(f.visibility)),
    FieldSpec("visibility_km", lambda f: meters_to_km(f.visibility)),
    FieldSpec("recommended_max_indoor_humidity", lambda f: indoor_humidity_recommendation(_outdoor_f(f))),
    FieldSpec("wind_chill_f", _wind_chill_f),
    FieldSpec("wind_chill_c", lambda f: f_to_c(_wind_chill_f(f))),
)


# -----------------------------------------------------------------------
# Air quality (current runtime block)
# -----------------------------------------------------------------------

AIR_QUALITY_FIELDS: tuple[FieldSpec, ...] = (
    FieldSpec("aq_score", lambda r: r.actual_aq_score),
    FieldSpec("aq_accuracy", lambda r: r.actual_aq_accuracy),
    FieldSpec("co2_ppm", lambda r: r.actual_co2),
    FieldSpec("voc_ppb", lambda r: r.actual_voc),
)

