"""Configuration loader for the YAML (or JSON) config file.

Parses files with the following top-level sections::

    ecobee:      # API key, thermostat id, credential cache directory
    sync:        # polling, units, weather override, retry and delivery policy
    equipment:   # which HVAC equipment run-times to publish
    sinks:       # list of sink configs (type + constructor kwargs)

Example:

.. code-block:: yaml

    ecobee:
      api_key: abcdef0123456789
      thermostat_id: "511234567890"
      work_dir: /var/lib/ecobee-sync

    sync:
      poll_interval_s: 300
      temperature_unit: F
      always_write_weather_as_current: false

    equipment:
      heat_pump_1: true
      aux_heat_1: true
      cool_1: true

    sinks:
      - type: influx
        url: http://localhost:8086
        bucket: ecobee
        token: my-token
      - type: mqtt
        host: localhost
        topic_root: ecobee
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import AliasChoices, BaseModel, Field, ValidationError

from ecobee_sync.auth import CACHE_FILE_NAME
from ecobee_sync.errors import ConfigurationError
from ecobee_sync.normalizer import Normalizer
from ecobee_sync.publisher import DeliveryPolicy
from ecobee_sync.retry import RetryPolicy
from ecobee_sync.sinks.base import Sink
from ecobee_sync.sinks.factory import create_sink
from ecobee_sync.units import TemperatureUnit

__all__ = ["EquipmentSection", "EcobeeSection", "SyncSection", "SyncYAMLConfig", "load_yaml_config"]

logger = logging.getLogger("ecobee_sync.config")


class EcobeeSection(BaseModel):
    api_key: str = ""
    thermostat_id: str = ""
    work_dir: Path = Path(".")
    request_timeout_s: float = Field(10.0, gt=0)

    @property
    def cache_file(self) -> Path:
        return self.work_dir / CACHE_FILE_NAME


class SyncSection(BaseModel):
    poll_interval_s: float = Field(300.0, gt=0)
    temperature_unit: TemperatureUnit = TemperatureUnit.FAHRENHEIT
    always_write_weather_as_current: bool = False
    delivery_policy: DeliveryPolicy = DeliveryPolicy.REQUIRE_ANY_SINK
    cycle_attempts: int = Field(3, ge=1)
    cycle_retry_delay_s: float = Field(5.0, ge=0)
    cycle_timeout_s: float | None = Field(120.0, gt=0)
    log_level: str = "INFO"


def _flag(name: str) -> Any:
    return Field(False, validation_alias=AliasChoices(name, f"write_{name}"))


class EquipmentSection(BaseModel):
    """Installed equipment; ``write_<name>`` keys are accepted too."""

    heat_pump_1: bool = _flag("heat_pump_1")
    heat_pump_2: bool = _flag("heat_pump_2")
    aux_heat_1: bool = _flag("aux_heat_1")
    aux_heat_2: bool = _flag("aux_heat_2")
    cool_1: bool = _flag("cool_1")
    cool_2: bool = _flag("cool_2")
    humidifier: bool = _flag("humidifier")
    dehumidifier: bool = _flag("dehumidifier")

    def enabled(self) -> list[str]:
        return [name for name, on in self.model_dump().items() if on]


class SyncYAMLConfig(BaseModel):
    """Parsed representation of the full configuration file.

    Attributes:
        ecobee: API and credential settings.
        sync: Loop, unit and delivery settings.
        equipment: Equipment flags for runtime fields.
        sink_configs: Raw dicts passed to the sink factory.
    """

    ecobee: EcobeeSection = Field(default_factory=EcobeeSection)
    sync: SyncSection = Field(default_factory=SyncSection)
    equipment: EquipmentSection = Field(default_factory=EquipmentSection)
    sink_configs: list[dict[str, Any]] = Field(default_factory=list)

    def cycle_policy(self) -> RetryPolicy:
        return RetryPolicy(
            attempts=self.sync.cycle_attempts,
            delay_s=self.sync.cycle_retry_delay_s,
            timeout_s=self.sync.cycle_timeout_s,
        )

    def normalizer(self) -> Normalizer:
        return Normalizer(unit=self.sync.temperature_unit, equipment=self.equipment.enabled())

    def build_sinks(self) -> list[Sink]:
        """Instantiate every configured sink.

        MQTT sinks default their ``device_id`` to the thermostat id.
        """
        sinks = []
        for raw in self.sink_configs:
            sink_dict = dict(raw)
            if str(sink_dict.get("type", "")).lower().strip() == "mqtt":
                sink_dict.setdefault("device_id", self.ecobee.thermostat_id)
            try:
                sinks.append(create_sink(sink_dict))
            except (ImportError, TypeError, ValueError) as exc:
                raise ConfigurationError(f"invalid sink config {raw.get('type')!r}: {exc}") from exc
        return sinks

    def validate_for_run(self) -> None:
        """Raise :class:`ConfigurationError` if the loop cannot start."""
        if not self.ecobee.api_key:
            raise ConfigurationError("ecobee.api_key is required")
        if not self.ecobee.thermostat_id:
            raise ConfigurationError("ecobee.thermostat_id is required (see 'ecobee-sync list-thermostats')")
        if not any(sink.get("enabled", True) for sink in self.sink_configs):
            raise ConfigurationError("no sink is enabled")


def load_yaml_config(path: str | Path) -> SyncYAMLConfig:
    """Load and validate a configuration file.

    Raises:
        FileNotFoundError: *path* does not exist.
        ConfigurationError: the file is not valid YAML or a value is invalid.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    try:
        with path.open("r") as fh:
            raw = yaml.safe_load(fh) or {}
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"cannot parse {path}: {exc}") from exc
    if not isinstance(raw, dict):
        raise ConfigurationError(f"{path} must contain a mapping at the top level")

    sink_configs = raw.get("sinks") or []
    if not isinstance(sink_configs, list) or not all(isinstance(s, dict) for s in sink_configs):
        raise ConfigurationError("'sinks' must be a list of mappings")

    try:
        config = SyncYAMLConfig(
            ecobee=raw.get("ecobee") or {},
            sync=raw.get("sync") or {},
            equipment=raw.get("equipment") or {},
            sink_configs=sink_configs,
        )
    except ValidationError as exc:
        raise ConfigurationError(f"invalid configuration in {path}:\n{exc}") from exc

    logger.info(
        "Loaded config: thermostat %s, %d sinks, equipment %s",
        config.ecobee.thermostat_id or "<unset>",
        len(config.sink_configs),
        config.equipment.enabled() or "none",
    )
    return config
