"""Tests for MqttSink - mocked paho-mqtt dependency."""

from __future__ import annotations

import sys
from datetime import datetime, timezone
from types import ModuleType, SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from ecobee_sync.errors import TransientError
from ecobee_sync.models import StreamType, SyncRecord

# -----------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------


def _make_record(category: str = "weather", **fields) -> SyncRecord:
    return SyncRecord(
        stream=StreamType.WEATHER,
        measurement="ecobee_weather",
        category=category,
        timestamp=datetime(2024, 1, 15, 11, 55, tzinfo=timezone.utc),
        tags={"thermostat_name": "Main Floor"},
        fields=fields or {"outdoor_temp": 30.0, "wind_bearing": 270},
    )


def _make_mock_paho(*, rc: int = 0, published: bool = True):
    """Create mock paho.mqtt.client module and client."""
    info = MagicMock()
    info.rc = rc
    info.is_published = MagicMock(return_value=published)

    mock_client = MagicMock()
    mock_client.publish = MagicMock(return_value=info)
    mock_client.is_connected = MagicMock(return_value=True)
    mock_client_cls = MagicMock(return_value=mock_client)

    paho_mod = ModuleType("paho")
    mqtt_pkg = ModuleType("paho.mqtt")
    client_mod = ModuleType("paho.mqtt.client")
    client_mod.Client = mock_client_cls
    client_mod.CallbackAPIVersion = SimpleNamespace(VERSION1="v1", VERSION2="v2")
    client_mod.MQTT_ERR_SUCCESS = 0
    client_mod.error_string = lambda rc: f"error {rc}"
    paho_mod.mqtt = mqtt_pkg
    mqtt_pkg.client = client_mod

    modules = {"paho": paho_mod, "paho.mqtt": mqtt_pkg, "paho.mqtt.client": client_mod}
    return modules, mock_client_cls, mock_client, info


# -----------------------------------------------------------------------
# Tests
# -----------------------------------------------------------------------


class TestMqttSink:
    """MqttSink with mocked paho-mqtt."""

    def _import_mqtt_module(self, mock_modules):
        """Force re-import of mqtt module with mock in place."""
        with patch.dict(sys.modules, mock_modules):
            if "ecobee_sync.sinks.mqtt" in sys.modules:
                del sys.modules["ecobee_sync.sinks.mqtt"]
            import ecobee_sync.sinks.mqtt as mqtt_sink_mod

            return mqtt_sink_mod

    async def _connected_sink(self, mod, **kwargs):
        kwargs.setdefault("device_id", "511234567890")
        sink = mod.MqttSink(**kwargs)
        await sink.connect()
        return sink

    def test_format_payload(self) -> None:
        modules, _, _, _ = _make_mock_paho()
        mod = self._import_mqtt_module(modules)
        assert mod.format_payload(True) == "true"
        assert mod.format_payload(False) == "false"
        assert mod.format_payload(42) == "42"
        assert mod.format_payload(70.5) == "70.5"
        assert mod.format_payload("heatStage1On") == "heatStage1On"

    def test_topic_layout(self) -> None:
        modules, _, _, _ = _make_mock_paho()
        mod = self._import_mqtt_module(modules)
        sink = mod.MqttSink(device_id="511234567890", topic_root="home/ecobee/")
        assert sink.topic("sensors/bedroom", "occupied") == "home/ecobee/511234567890/sensors/bedroom/occupied"

    def test_device_id_required(self) -> None:
        modules, _, _, _ = _make_mock_paho()
        mod = self._import_mqtt_module(modules)
        with pytest.raises(ValueError, match="device_id"):
            mod.MqttSink(device_id="")

    @pytest.mark.asyncio
    async def test_connect(self) -> None:
        modules, mock_cls, mock_client, _ = _make_mock_paho()
        mod = self._import_mqtt_module(modules)

        await self._connected_sink(mod, host="broker", port=8883, username="u", password="p", keepalive=30)
        mock_cls.assert_called_once_with(callback_api_version="v2", client_id="ecobee-sync-511234567890")
        mock_client.username_pw_set.assert_called_once_with("u", "p")
        mock_client.connect.assert_called_once_with("broker", 8883, keepalive=30)
        mock_client.loop_start.assert_called_once()

    @pytest.mark.asyncio
    async def test_connect_without_credentials(self) -> None:
        modules, _, mock_client, _ = _make_mock_paho()
        mod = self._import_mqtt_module(modules)
        await self._connected_sink(mod, client_id="custom")
        mock_client.username_pw_set.assert_not_called()

    @pytest.mark.asyncio
    async def test_write_publishes_each_field(self) -> None:
        modules, _, mock_client, info = _make_mock_paho()
        mod = self._import_mqtt_module(modules)
        sink = await self._connected_sink(mod, qos=1, retain=True, timeout_s=2.0)

        await sink.write([_make_record(), _make_record("sensors/bedroom", occupied=False)])
        published = {c.args[0]: c.args[1] for c in mock_client.publish.call_args_list}
        assert published == {
            "ecobee/511234567890/weather/outdoor_temp": "30.0",
            "ecobee/511234567890/weather/wind_bearing": "270",
            "ecobee/511234567890/sensors/bedroom/occupied": "false",
        }
        assert mock_client.publish.call_args.kwargs == {"qos": 1, "retain": True}
        info.wait_for_publish.assert_called_with(timeout=2.0)

    @pytest.mark.asyncio
    async def test_records_published_in_order(self) -> None:
        modules, _, mock_client, _ = _make_mock_paho()
        mod = self._import_mqtt_module(modules)
        sink = await self._connected_sink(mod)

        await sink.write([_make_record("runtime", temperature=t) for t in (70.1, 70.3, 70.5)])
        payloads = [c.args[1] for c in mock_client.publish.call_args_list]
        assert payloads == ["70.1", "70.3", "70.5"]

    @pytest.mark.asyncio
    async def test_publish_error(self) -> None:
        modules, _, _, _ = _make_mock_paho(rc=4)
        mod = self._import_mqtt_module(modules)
        sink = await self._connected_sink(mod)
        with pytest.raises(TransientError, match="error 4"):
            await sink.write([_make_record()])

    @pytest.mark.asyncio
    async def test_publish_timeout(self) -> None:
        modules, _, _, _ = _make_mock_paho(published=False)
        mod = self._import_mqtt_module(modules)
        sink = await self._connected_sink(mod)
        with pytest.raises(TransientError, match="timeout publishing"):
            await sink.write([_make_record()])

    @pytest.mark.asyncio
    async def test_write_without_connect_raises(self) -> None:
        modules, _, _, _ = _make_mock_paho()
        mod = self._import_mqtt_module(modules)
        sink = mod.MqttSink(device_id="1")
        with pytest.raises(RuntimeError, match="not connected"):
            await sink.write([_make_record()])

    @pytest.mark.asyncio
    async def test_health_check(self) -> None:
        modules, _, mock_client, _ = _make_mock_paho()
        mod = self._import_mqtt_module(modules)
        sink = mod.MqttSink(device_id="1")
        with pytest.raises(TransientError):
            await sink.check_health()
        await sink.connect()
        await sink.check_health()
        mock_client.is_connected.return_value = False
        with pytest.raises(TransientError, match="not connected"):
            await sink.check_health()

    @pytest.mark.asyncio
    async def test_close(self) -> None:
        modules, _, mock_client, _ = _make_mock_paho()
        mod = self._import_mqtt_module(modules)
        sink = await self._connected_sink(mod)
        await sink.flush()
        await sink.close()
        mock_client.loop_stop.assert_called_once()
        mock_client.disconnect.assert_called_once()

    def test_missing_dependency(self) -> None:
        with patch.dict(sys.modules, {"paho": None, "paho.mqtt": None, "paho.mqtt.client": None}):
            if "ecobee_sync.sinks.mqtt" in sys.modules:
                del sys.modules["ecobee_sync.sinks.mqtt"]
            from ecobee_sync.sinks.mqtt import MqttSink

            with pytest.raises(ImportError, match=r"ecobee-sync\[mqtt\]"):
                MqttSink(device_id="1")
        sys.modules.pop("ecobee_sync.sinks.mqtt", None)
