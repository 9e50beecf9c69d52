"""Synchronizer - top-level loop that polls the thermostat and publishes
every stream that carries a new sample.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any, Protocol

from pydantic import BaseModel, Field

from ecobee_sync.errors import ConfigurationError, DeliveryError, RetryExhaustedError
from ecobee_sync.models import Snapshot, StreamType, SyncRecord
from ecobee_sync.normalizer import Normalizer
from ecobee_sync.publisher import DeliveryPolicy, SinkPublisher
from ecobee_sync.retry import RetryPolicy
from ecobee_sync.sinks.base import Sink
from ecobee_sync.sinks.callback import CallbackSink
from ecobee_sync.watermark import WatermarkTracker

__all__ = ["CycleReport", "SnapshotSource", "Synchronizer"]

logger = logging.getLogger("ecobee_sync.sync")


class SnapshotSource(Protocol):
    """Anything that can fetch a decoded thermostat snapshot."""

    async def fetch_snapshot(self, thermostat_id: str) -> Snapshot: ...


class CycleReport(BaseModel):
    """Outcome of one poll cycle.

    Attributes:
        started_at: When the cycle began.
        attempts: Cycle attempts used (outer retry scope).
        succeeded: ``False`` if every attempt failed.
        written: Records delivered per stream name.
        unchanged: Streams skipped because their watermark did not move.
        error: Last error of a failed cycle.
    """

    started_at: datetime
    attempts: int = 0
    succeeded: bool = False
    written: dict[str, int] = Field(default_factory=dict)
    unchanged: list[str] = Field(default_factory=list)
    error: str | None = None

    @property
    def total_written(self) -> int:
        return sum(self.written.values())


class Synchronizer:
    """Polls one thermostat and pushes new samples to the registered sinks.

    Example::

        from ecobee_sync import Synchronizer
        from ecobee_sync.sinks import ConsoleSink

        sync = Synchronizer(client, "511234567890", poll_interval_s=300)
        sync.add_sink(ConsoleSink())
        sync.run()

    Parameters:
        client:
            A :class:`SnapshotSource`, normally an
            :class:`~ecobee_sync.client.EcobeeClient`.
        thermostat_id:
            Identifier of the thermostat to poll.
        sinks:
            Initial sinks (more can be added with :meth:`add_sink`).
        normalizer:
            Record builder; defaults to Fahrenheit with no equipment flags.
        poll_interval_s:
            Seconds between the start of consecutive cycles.
        always_write_weather:
            Global "weather is always current" flag for sinks that do not
            set their own.
        delivery_policy:
            Whether one or all sinks must accept a stream before its
            watermark advances.
        cycle_policy:
            Outer retry around fetch, decode and publish.
        watermarks:
            Tracker to use; a fresh one by default.
    """

    def __init__(
        self,
        client: SnapshotSource,
        thermostat_id: str,
        *,
        sinks: list[Sink] | None = None,
        normalizer: Normalizer | None = None,
        poll_interval_s: float = 300.0,
        always_write_weather: bool = False,
        delivery_policy: DeliveryPolicy = DeliveryPolicy.REQUIRE_ANY_SINK,
        cycle_policy: RetryPolicy | None = None,
        watermarks: WatermarkTracker | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        if not thermostat_id:
            raise ConfigurationError("a thermostat id is required")
        if poll_interval_s <= 0:
            raise ConfigurationError(f"poll interval must be positive, got {poll_interval_s}")
        self._client = client
        self.thermostat_id = thermostat_id
        self._sinks: list[Sink] = list(sinks or [])
        self.normalizer = normalizer or Normalizer()
        self.poll_interval_s = poll_interval_s
        self.cycle_policy = cycle_policy or RetryPolicy(attempts=3, delay_s=5.0, timeout_s=120.0)
        self.watermarks = watermarks or WatermarkTracker()
        publisher_kwargs: dict[str, Any] = {
            "policy": delivery_policy,
            "always_write_weather": always_write_weather,
        }
        if clock is not None:
            publisher_kwargs["clock"] = clock
        self.publisher = SinkPublisher(self._sinks, **publisher_kwargs)
        self._stop_event = asyncio.Event()
        self._started = False

    # ------------------------------------------------------------------
    # Sink management
    # ------------------------------------------------------------------

    def add_sink(self, sink: Sink | Callable[[list[SyncRecord]], Any], **kwargs: Any) -> Sink:
        """Register a sink (or a bare callable, wrapped in a CallbackSink)."""
        if not isinstance(sink, Sink):
            sink = CallbackSink(sink, **kwargs)
        self._sinks.append(sink)
        return sink

    @property
    def sinks(self) -> list[Sink]:
        return list(self._sinks)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Connect every enabled sink and health-check the required ones.

        Raises:
            ConfigurationError: no sink is enabled, or a required sink
                could not be reached.
        """
        enabled = [sink for sink in self._sinks if sink.sink_config.enabled]
        if not enabled:
            raise ConfigurationError("no sink is enabled - nothing to publish to")

        for sink in enabled:
            try:
                await sink.connect()
                await asyncio.wait_for(sink.check_health(), timeout=sink.sink_config.timeout_s)
            except Exception as exc:
                if sink.sink_config.required:
                    raise ConfigurationError(f"required sink '{sink.name}' is not reachable: {exc}") from exc
                logger.error("Sink '%s' is not reachable and is disabled until restart: %s", sink.name, exc)
                sink.sink_config.enabled = False
                with contextlib.suppress(Exception):
                    await sink.close()
            else:
                logger.info("Sink '%s' ready", sink.name)

        if not self.publisher.sinks:
            raise ConfigurationError("no sink could be connected")
        self._started = True

    async def close(self) -> None:
        """Flush and close every enabled sink."""
        for sink in self.publisher.sinks:
            try:
                await sink.flush()
                await sink.close()
            except Exception:
                logger.exception("Error closing sink '%s'", sink.name)
        self._started = False

    def stop(self) -> None:
        """Ask a running loop to finish after the current cycle."""
        self._stop_event.set()

    # ------------------------------------------------------------------
    # One cycle
    # ------------------------------------------------------------------

    async def run_cycle(self) -> CycleReport:
        """Fetch one snapshot and publish every stream with new data.

        The whole cycle runs inside :attr:`cycle_policy`.  Exhausting it is
        logged and reported, never raised.
        """
        report = CycleReport(started_at=datetime.now(timezone.utc))

        async def attempt() -> None:
            report.attempts += 1
            await self._cycle_once(report)

        try:
            await self.cycle_policy.run(attempt, label="sync cycle")
        except RetryExhaustedError as exc:
            report.error = str(exc.last_error)
            logger.error("Giving up on this cycle, next poll in %.0fs", self.poll_interval_s)
        else:
            report.succeeded = True
        logger.info(
            "Cycle finished: written=%s unchanged=%s attempts=%d",
            report.written or "{}",
            report.unchanged or "[]",
            report.attempts,
        )
        return report

    async def _cycle_once(self, report: CycleReport) -> None:
        snapshot = await self._client.fetch_snapshot(self.thermostat_id)
        logger.debug("Fetched snapshot of '%s' (utcTime %s)", snapshot.name, snapshot.utc_time)

        n = self.normalizer
        streams = [
            (StreamType.RUNTIME, n.runtime_marker, n.runtime_records),
            (StreamType.SENSOR, n.sensor_marker, n.sensor_records),
            (StreamType.WEATHER, n.weather_marker, lambda s: [n.weather_record(s)]),
        ]
        air_quality = self._air_quality_records(snapshot)
        if air_quality:
            streams.append((StreamType.AIR_QUALITY, n.air_quality_marker, lambda s: air_quality))
        failures: list[DeliveryError] = []
        for stream, marker, build in streams:
            try:
                await self._sync_stream(snapshot, stream, marker, build, report)
            except DeliveryError as exc:
                logger.error("%s - will retry", exc)
                failures.append(exc)

        if len(failures) == 1:
            raise failures[0]
        if failures:
            raise DeliveryError(
                ", ".join(exc.stream for exc in failures),
                sorted({name for exc in failures for name in exc.failed}),
            )

    def _air_quality_records(self, snapshot: Snapshot) -> list[SyncRecord]:
        record = self.normalizer.air_quality_record(snapshot)
        return [record] if record is not None else []

    async def _sync_stream(
        self,
        snapshot: Snapshot,
        stream: StreamType,
        marker_of: Callable[[Snapshot], Any],
        build: Callable[[Snapshot], list[SyncRecord]],
        report: CycleReport,
    ) -> None:
        marker = marker_of(snapshot)
        fresh = self.watermarks.should_publish(stream, marker)
        forced = stream is StreamType.WEATHER and self.publisher.has_weather_override()
        if not fresh and not forced:
            report.unchanged.append(stream.value)
            return

        records = build(snapshot)
        if not records:
            logger.debug("No %s records in this snapshot", stream.value)
            self.watermarks.advance(stream, marker)
            return

        result = await self.publisher.publish(stream, records, fresh=fresh)
        if result.succeeded:
            report.written[stream.value] = report.written.get(stream.value, 0) + len(records)

        if not fresh:
            return
        if not self.publisher.delivered(result):
            raise DeliveryError(stream.value, result.failed)
        self.watermarks.advance(stream, marker)

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    def run(self, cycles: int | None = None) -> None:
        """Blocking entry point - starts the event loop.

        Parameters:
            cycles: Stop after this many cycles.  ``None`` means run until
                SIGINT/SIGTERM or :meth:`stop`.
        """
        try:
            asyncio.run(self.run_async(cycles=cycles))
        except KeyboardInterrupt:
            logger.info("Interrupted by user")

    async def run_async(self, cycles: int | None = None) -> None:
        """Async entry point - runs inside an existing event loop."""
        await self.start()

        logger.info(
            "Starting sync of thermostat %s: %d sink(s), every %.0fs",
            self.thermostat_id,
            len(self.publisher.sinks),
            self.poll_interval_s,
        )

        # NotImplementedError: Windows.  RuntimeError: not the main thread.
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(NotImplementedError, RuntimeError):
                loop.add_signal_handler(sig, self._stop_event.set)

        try:
            count = 0
            while not self._stop_event.is_set():
                cycle_start = loop.time()
                await self.run_cycle()
                count += 1
                if cycles is not None and count >= cycles:
                    break

                sleep_time = max(0.0, self.poll_interval_s - (loop.time() - cycle_start))
                with contextlib.suppress(TimeoutError):
                    await asyncio.wait_for(self._stop_event.wait(), timeout=sleep_time)
            if self._stop_event.is_set():
                logger.info("Stop signal received - shutting down")
        except asyncio.CancelledError:
            logger.info("Synchronizer cancelled")
        finally:
            for sig in (signal.SIGINT, signal.SIGTERM):
                with contextlib.suppress(NotImplementedError, RuntimeError):
                    loop.remove_signal_handler(sig)
            logger.info("Closing %d sink(s)...", len(self.publisher.sinks))
            await self.close()
            logger.info("All sinks closed.")
