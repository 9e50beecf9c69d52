"""Tests for the ecobee-sync command line."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest
import yaml

from ecobee_sync.__main__ import _SAMPLE_CONFIG, main


class TestDispatch:
    def test_no_arguments_prints_help(self, capsys: pytest.CaptureFixture[str]) -> None:
        main([])
        assert "usage: ecobee-sync" in capsys.readouterr().out

    def test_leading_flag_means_run(self) -> None:
        with patch("ecobee_sync.__main__._with_config") as with_config:
            main(["--config", "x.yaml", "--cycles", "2"])
        args = with_config.call_args.args[0]
        assert args.command == "run"
        assert args.config == "x.yaml"
        assert args.cycles == 2
        assert with_config.call_args.kwargs == {"for_run": True}

    @pytest.mark.parametrize("command", ["authorize", "list-thermostats", "summary"])
    def test_account_commands_load_config(self, command: str) -> None:
        with patch("ecobee_sync.__main__._with_config") as with_config:
            main([command, "-c", "home.yaml", "--log-level", "DEBUG"])
        args = with_config.call_args.args[0]
        assert args.command == command
        assert args.config == "home.yaml"
        assert args.log_level == "DEBUG"


class TestCommands:
    def test_list_sinks(self, capsys: pytest.CaptureFixture[str]) -> None:
        main(["list-sinks"])
        out = capsys.readouterr().out
        assert "console" in out
        assert "pip install ecobee-sync[influx]" in out
        assert "pip install ecobee-sync[mqtt]" in out

    def test_init_config_stdout(self, capsys: pytest.CaptureFixture[str]) -> None:
        main(["init-config"])
        assert "thermostat_id" in capsys.readouterr().out

    def test_init_config_file(self, tmp_path: Path) -> None:
        target = tmp_path / "conf" / "ecobee-sync.yaml"
        main(["init-config", "-o", str(target)])
        assert target.read_text() == _SAMPLE_CONFIG

    def test_sample_config_is_valid(self, tmp_path: Path) -> None:
        from ecobee_sync.config import load_yaml_config

        raw = yaml.safe_load(_SAMPLE_CONFIG)
        assert set(raw) == {"ecobee", "sync", "equipment", "sinks"}
        path = tmp_path / "sample.yaml"
        path.write_text(_SAMPLE_CONFIG)
        cfg = load_yaml_config(path)
        cfg.validate_for_run()
        assert cfg.equipment.enabled() == ["cool_1"]

    def test_missing_config_exits(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main(["run", "--config", str(tmp_path / "missing.yaml")])
        assert exc_info.value.code == 1
        assert "Config file not found" in capsys.readouterr().err

    def test_invalid_config_exits(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        path = tmp_path / "ecobee-sync.yaml"
        path.write_text("ecobee:\n  api_key: k\nsinks:\n  - type: console\n")
        with pytest.raises(SystemExit):
            main(["--config", str(path)])
        assert "thermostat_id is required" in capsys.readouterr().err

    def test_account_command_needs_api_key(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        path = tmp_path / "ecobee-sync.yaml"
        path.write_text("sync:\n  poll_interval_s: 60\n")
        with pytest.raises(SystemExit):
            main(["summary", "--config", str(path)])
        assert "api_key is required" in capsys.readouterr().err
