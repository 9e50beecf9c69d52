"""MQTT sink - publishes every field of a record to its own topic.

Requires the ``mqtt`` extra::

    pip install ecobee-sync[mqtt]

Topic layout: ``{topic_root}/{device_id}/{category}/{field}``, e.g.
``ecobee/511234567890/weather/outdoor_temp``.  The payload is the plain
string form of the value.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from ecobee_sync.errors import TransientError
from ecobee_sync.models import SyncRecord
from ecobee_sync.sinks.base import Sink

__all__ = ["MqttSink", "format_payload"]

logger = logging.getLogger("ecobee_sync.sinks.mqtt")

try:
    import paho.mqtt.client as mqtt

    PAHO_AVAILABLE = True
except ImportError:
    PAHO_AVAILABLE = False


def format_payload(value: Any) -> str:
    """Render a field value as an MQTT payload (booleans lower-case)."""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class MqttSink(Sink):
    """Publish record fields to an MQTT broker.

    Fields of one record are published concurrently, each waiting up to
    ``timeout_s`` for the broker to acknowledge; records are sent in order
    so the last runtime slot ends up as the topic's latest value.

    Parameters:
        host / port: Broker address.
        device_id: Thermostat identifier used in topic names.
        topic_root: First topic segment.
        username / password: Broker credentials (optional).
        client_id: MQTT client id (default ``"ecobee-sync-<device_id>"``).
        qos / retain: Publish options.
        keepalive: Seconds between keepalive pings.
        timeout_s / **kwargs: Forwarded to :class:`Sink`.
    """

    def __init__(
        self,
        *,
        device_id: str,
        host: str = "localhost",
        port: int = 1883,
        topic_root: str = "ecobee",
        username: str | None = None,
        password: str | None = None,
        client_id: str | None = None,
        qos: int = 0,
        retain: bool = False,
        keepalive: int = 60,
        **kwargs: Any,
    ) -> None:
        if not PAHO_AVAILABLE:
            raise ImportError("paho-mqtt is required for MqttSink.  Install with: pip install ecobee-sync[mqtt]")
        super().__init__(**kwargs)
        if not device_id:
            raise ValueError("MqttSink requires a 'device_id'")
        self._host = host
        self._port = port
        self._device_id = device_id
        self._topic_root = topic_root.rstrip("/")
        self._username = username
        self._password = password
        self._client_id = client_id or f"ecobee-sync-{device_id}"
        self._qos = qos
        self._retain = retain
        self._keepalive = keepalive
        self._client: mqtt.Client | None = None

    def topic(self, category: str, field_name: str) -> str:
        return f"{self._topic_root}/{self._device_id}/{category}/{field_name}"

    async def connect(self) -> None:
        logger.info("Connecting to MQTT broker at %s:%d ...", self._host, self._port)
        client = mqtt.Client(callback_api_version=mqtt.CallbackAPIVersion.VERSION2, client_id=self._client_id)
        if self._username:
            client.username_pw_set(self._username, self._password)
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, lambda: client.connect(self._host, self._port, keepalive=self._keepalive))
        client.loop_start()
        self._client = client
        logger.info("Connected to MQTT broker - publishing under '%s/%s'", self._topic_root, self._device_id)

    async def check_health(self) -> None:
        if self._client is None or not self._client.is_connected():
            raise TransientError(f"not connected to MQTT broker {self._host}:{self._port}")

    def _publish_blocking(self, topic: str, payload: str) -> None:
        info = self._client.publish(topic, payload, qos=self._qos, retain=self._retain)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            raise TransientError(f"error publishing to MQTT topic '{topic}': {mqtt.error_string(info.rc)}")
        info.wait_for_publish(timeout=self.sink_config.timeout_s)
        if not info.is_published():
            raise TransientError(f"timeout publishing to MQTT topic '{topic}'")

    async def write(self, records: list[SyncRecord]) -> None:
        if self._client is None:
            raise RuntimeError("MqttSink is not connected")

        loop = asyncio.get_running_loop()
        for rec in records:
            await asyncio.gather(
                *(
                    loop.run_in_executor(
                        None, self._publish_blocking, self.topic(rec.category, name), format_payload(value)
                    )
                    for name, value in rec.fields.items()
                )
            )

    async def flush(self) -> None:
        """No-op - every publish waits for its acknowledgement."""

    async def close(self) -> None:
        if self._client:
            self._client.loop_stop()
            self._client.disconnect()
            self._client = None
            logger.info("MQTT client disconnected")
