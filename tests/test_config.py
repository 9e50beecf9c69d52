"""Tests for the YAML configuration loader."""

from __future__ import annotations

import logging
import sys
import textwrap
from pathlib import Path
from unittest.mock import patch

import pytest

from ecobee_sync.config import EquipmentSection, SyncYAMLConfig, load_yaml_config
from ecobee_sync.errors import ConfigurationError
from ecobee_sync.publisher import DeliveryPolicy
from ecobee_sync.sinks.console import ConsoleSink
from ecobee_sync.units import TemperatureUnit


def _write(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "ecobee-sync.yaml"
    path.write_text(textwrap.dedent(text))
    return path


FULL_CONFIG = """\
    ecobee:
      api_key: abc123
      thermostat_id: "511234567890"
      work_dir: /var/lib/ecobee-sync

    sync:
      poll_interval_s: 120
      temperature_unit: C
      always_write_weather_as_current: true
      delivery_policy: require_all_sinks
      cycle_attempts: 5

    equipment:
      write_heat_pump_1: true
      aux_heat_1: true

    sinks:
      - type: console
        fmt: json
        timeout_s: 1
"""


class TestLoadYamlConfig:
    def test_full_config(self, tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.INFO, logger="ecobee_sync.config"):
            cfg = load_yaml_config(_write(tmp_path, FULL_CONFIG))
        assert cfg.ecobee.api_key == "abc123"
        assert cfg.ecobee.cache_file == Path("/var/lib/ecobee-sync/ecobee-cred-cache")
        assert cfg.sync.poll_interval_s == 120
        assert cfg.sync.temperature_unit is TemperatureUnit.CELSIUS
        assert cfg.sync.always_write_weather_as_current is True
        assert cfg.sync.delivery_policy is DeliveryPolicy.REQUIRE_ALL_SINKS
        assert cfg.equipment.enabled() == ["heat_pump_1", "aux_heat_1"]
        assert cfg.sink_configs == [{"type": "console", "fmt": "json", "timeout_s": 1}]
        assert "Loaded config" in caplog.text
        cfg.validate_for_run()

    def test_defaults(self, tmp_path: Path) -> None:
        cfg = load_yaml_config(_write(tmp_path, "ecobee:\n  api_key: k\n"))
        assert cfg.sync.poll_interval_s == 300
        assert cfg.sync.temperature_unit is TemperatureUnit.FAHRENHEIT
        assert cfg.sync.delivery_policy is DeliveryPolicy.REQUIRE_ANY_SINK
        assert cfg.ecobee.cache_file == Path("ecobee-cred-cache")
        assert cfg.equipment.enabled() == []
        assert cfg.sink_configs == []

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_yaml_config(tmp_path / "nope.yaml")

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError, match="cannot parse"):
            load_yaml_config(_write(tmp_path, "ecobee: [unclosed\n"))

    def test_top_level_must_be_mapping(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError, match="mapping"):
            load_yaml_config(_write(tmp_path, "- just\n- a list\n"))

    def test_sinks_must_be_list(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError, match="'sinks'"):
            load_yaml_config(_write(tmp_path, "sinks:\n  type: console\n"))

    @pytest.mark.parametrize(
        "text",
        [
            "sync:\n  poll_interval_s: 0\n",
            "sync:\n  temperature_unit: K\n",
            "sync:\n  delivery_policy: best_effort\n",
        ],
    )
    def test_invalid_values(self, tmp_path: Path, text: str) -> None:
        with pytest.raises(ConfigurationError, match="invalid configuration"):
            load_yaml_config(_write(tmp_path, text))


class TestSyncYAMLConfig:
    def test_validate_for_run(self) -> None:
        with pytest.raises(ConfigurationError, match="api_key"):
            SyncYAMLConfig().validate_for_run()
        with pytest.raises(ConfigurationError, match="thermostat_id"):
            SyncYAMLConfig(ecobee={"api_key": "k"}).validate_for_run()
        cfg = SyncYAMLConfig(
            ecobee={"api_key": "k", "thermostat_id": "1"},
            sink_configs=[{"type": "console", "enabled": False}],
        )
        with pytest.raises(ConfigurationError, match="no sink is enabled"):
            cfg.validate_for_run()

    def test_build_sinks(self) -> None:
        cfg = SyncYAMLConfig(sink_configs=[{"type": "console", "name": "debug", "always_write_weather": True}])
        (sink,) = cfg.build_sinks()
        assert isinstance(sink, ConsoleSink)
        assert sink.name == "debug"
        assert sink.sink_config.always_write_weather is True

    def test_bad_sink_config(self) -> None:
        cfg = SyncYAMLConfig(sink_configs=[{"type": "console", "colour": "red"}])
        with pytest.raises(ConfigurationError, match="invalid sink config 'console'"):
            cfg.build_sinks()
        with pytest.raises(ConfigurationError, match="Unknown sink type"):
            SyncYAMLConfig(sink_configs=[{"type": "carrier_pigeon"}]).build_sinks()

    @pytest.mark.parametrize(
        "knobs",
        [{"retry_count": 0}, {"timeout_s": 0}, {"retry_delay_s": -1}],
    )
    def test_unusable_delivery_knobs(self, knobs: dict) -> None:
        cfg = SyncYAMLConfig(sink_configs=[{"type": "console", **knobs}])
        with pytest.raises(ConfigurationError, match="invalid sink config 'console'"):
            cfg.build_sinks()

    def test_sink_extra_not_installed(self) -> None:
        cfg = SyncYAMLConfig(sink_configs=[{"type": "influx", "url": "http://localhost:8086", "bucket": "ecobee"}])
        with patch.dict(sys.modules, {"influxdb_client": None}):
            sys.modules.pop("ecobee_sync.sinks.influx", None)
            with pytest.raises(ConfigurationError, match=r"ecobee-sync\[influx\]"):
                cfg.build_sinks()
        sys.modules.pop("ecobee_sync.sinks.influx", None)

    def test_policies(self) -> None:
        cfg = SyncYAMLConfig(sync={"cycle_attempts": 4, "cycle_retry_delay_s": 2, "temperature_unit": "C"})
        policy = cfg.cycle_policy()
        assert (policy.attempts, policy.delay_s, policy.timeout_s) == (4, 2.0, 120.0)
        assert cfg.normalizer().unit is TemperatureUnit.CELSIUS

    def test_equipment_aliases(self) -> None:
        section = EquipmentSection.model_validate({"write_cool_1": True, "dehumidifier": True})
        assert section.enabled() == ["cool_1", "dehumidifier"]
