"""InfluxDB sink - writes sync records as points via ``influxdb-client``.

Requires the ``influx`` extra::

    pip install ecobee-sync[influx]

Works with InfluxDB 2.x (token auth) and 1.8+ (``username:password``
passed as the token, with ``bucket`` set to ``database/retention``).
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from ecobee_sync.errors import TransientError
from ecobee_sync.models import SyncRecord
from ecobee_sync.sinks.base import Sink

__all__ = ["InfluxSink"]

logger = logging.getLogger("ecobee_sync.sinks.influx")

try:
    from influxdb_client import InfluxDBClient, Point, WritePrecision
    from influxdb_client.client.write_api import SYNCHRONOUS

    INFLUXDB_AVAILABLE = True
except ImportError:
    INFLUXDB_AVAILABLE = False


class InfluxSink(Sink):
    """Write each record as one point: measurement, tags, fields, timestamp.

    Parameters:
        url: Server URL, e.g. ``"http://localhost:8086"``.
        bucket: Destination bucket (``"db/rp"`` on 1.8).
        org: Organization (ignored by 1.8).
        token: API token.
        username / password: 1.8-style credentials; take precedence over
            ``token`` when either is set.
        required / timeout_s / **kwargs: Forwarded to :class:`Sink`.
    """

    def __init__(
        self,
        *,
        url: str,
        bucket: str,
        org: str = "",
        token: str | None = None,
        username: str | None = None,
        password: str | None = None,
        required: bool = True,
        **kwargs: Any,
    ) -> None:
        if not INFLUXDB_AVAILABLE:
            raise ImportError(
                "influxdb-client is required for InfluxSink.  Install with: pip install ecobee-sync[influx]"
            )
        super().__init__(required=required, **kwargs)
        if not url or not bucket:
            raise ValueError("InfluxSink requires both 'url' and 'bucket'")
        self._url = url
        self._bucket = bucket
        self._org = org
        if username or password:
            self._auth = f"{username or ''}:{password or ''}"
        else:
            self._auth = token or ""
        self._client: InfluxDBClient | None = None
        self._write_api = None

    async def connect(self) -> None:
        timeout_ms = int(self.sink_config.timeout_s * 1000)
        self._client = InfluxDBClient(url=self._url, token=self._auth, org=self._org, timeout=timeout_ms)
        self._write_api = self._client.write_api(write_options=SYNCHRONOUS)
        logger.info("InfluxSink ready - %s (bucket=%s)", self._url, self._bucket)

    async def check_health(self) -> None:
        if self._client is None:
            raise RuntimeError("InfluxSink is not connected")
        loop = asyncio.get_running_loop()
        alive = await loop.run_in_executor(None, self._client.ping)
        if not alive:
            raise TransientError(f"InfluxDB at {self._url} did not answer ping")

    @staticmethod
    def to_point(rec: SyncRecord) -> Point:
        point = Point(rec.measurement).time(rec.timestamp, WritePrecision.S)
        for key, value in rec.tags.items():
            point = point.tag(key, value)
        for key, value in rec.fields.items():
            point = point.field(key, value)
        return point

    async def write(self, records: list[SyncRecord]) -> None:
        if self._write_api is None:
            raise RuntimeError("InfluxSink is not connected")

        points = [self.to_point(rec) for rec in records]
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(
            None,
            lambda: self._write_api.write(bucket=self._bucket, org=self._org, record=points),
        )
        logger.debug("Wrote %d point(s) to %s", len(points), self._bucket)

    async def flush(self) -> None:
        """No-op - the write API is synchronous."""

    async def close(self) -> None:
        if self._client:
            self._client.close()
            self._client = None
            self._write_api = None
            logger.info("InfluxSink closed")
