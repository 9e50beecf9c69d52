"""Unit conversions and derived weather quantities.

The thermostat reports temperatures as integer tenths of a degree
Fahrenheit, pressure in millibar and visibility in metres.  Everything here
is a pure function so the record builders can be tested without a
snapshot.
"""

from __future__ import annotations

from enum import StrEnum

__all__ = [
    "TemperatureUnit",
    "c_to_f",
    "f_delta_to_c",
    "f_to_c",
    "from_tenths",
    "indoor_humidity_recommendation",
    "inhg_to_mb",
    "km_to_miles",
    "mb_to_inhg",
    "meters_to_km",
    "meters_to_miles",
    "miles_to_km",
    "wind_chill",
]

MB_PER_INHG = 33.864
METERS_PER_MILE = 1609.34
KM_PER_MILE = 1.609344

# (lower bound in degF, recommended max indoor RH %), checked top-down
_HUMIDITY_BANDS: tuple[tuple[float, int], ...] = (
    (50.0, 50),
    (40.0, 45),
    (30.0, 40),
    (20.0, 35),
    (10.0, 30),
    (0.0, 25),
    (-10.0, 20),
)
_HUMIDITY_FLOOR = 15


class TemperatureUnit(StrEnum):
    """Temperature unit used for runtime and sensor readings."""

    FAHRENHEIT = "F"
    CELSIUS = "C"

    def from_fahrenheit(self, value_f: float) -> float:
        """Express a Fahrenheit reading in this unit."""
        if self is TemperatureUnit.CELSIUS:
            return f_to_c(value_f)
        return value_f

    def delta_from_fahrenheit(self, delta_f: float) -> float:
        """Express a Fahrenheit *difference* (e.g. an offset) in this unit."""
        if self is TemperatureUnit.CELSIUS:
            return f_delta_to_c(delta_f)
        return delta_f


def from_tenths(raw: int | float) -> float:
    """Decode the device's fixed-point encoding (``723`` -> ``72.3``)."""
    return raw / 10.0


def f_to_c(value_f: float) -> float:
    return (value_f - 32.0) * 5.0 / 9.0


def c_to_f(value_c: float) -> float:
    return value_c * 9.0 / 5.0 + 32.0


def f_delta_to_c(delta_f: float) -> float:
    return delta_f * 5.0 / 9.0


def mb_to_inhg(millibar: float) -> float:
    return millibar / MB_PER_INHG


def inhg_to_mb(inhg: float) -> float:
    return inhg * MB_PER_INHG


def miles_to_km(miles: float) -> float:
    return miles * KM_PER_MILE


def km_to_miles(km: float) -> float:
    return km / KM_PER_MILE


def meters_to_miles(meters: float) -> float:
    return meters / METERS_PER_MILE


def meters_to_km(meters: float) -> float:
    return meters / 1000.0


def wind_chill(temp_f: float, wind_speed_mph: float) -> float:
    """Return the wind chill in degF for *temp_f* and *wind_speed_mph*.

    The NWS formula is only valid at or below 50 degF and at or above
    3 mph; outside that domain *temp_f* is returned unchanged.
    """
    if temp_f > 50.0 or wind_speed_mph < 3.0:
        return temp_f
    v = wind_speed_mph**0.16
    return 35.74 + (0.6215 * temp_f) - (35.75 * v) + (0.4275 * temp_f * v)


def indoor_humidity_recommendation(outdoor_temp_f: float) -> int:
    """Maximum recommended indoor relative humidity (%) for an outdoor temperature."""
    for lower_bound, percent in _HUMIDITY_BANDS:
        if outdoor_temp_f >= lower_bound:
            return percent
    return _HUMIDITY_FLOOR
