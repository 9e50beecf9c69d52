"""Sink publisher - fans one stream's records out to every enabled sink.

Each sink is written concurrently inside its own :class:`RetryPolicy`, so a
slow or failing destination only costs its own retry budget.  The outcome
is summarised in a :class:`PublishResult` and judged against the configured
:class:`DeliveryPolicy`.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime, timezone
from enum import StrEnum

from pydantic import BaseModel, Field

from ecobee_sync.errors import RetryExhaustedError
from ecobee_sync.models import StreamType, SyncRecord
from ecobee_sync.sinks.base import Sink

__all__ = ["DeliveryPolicy", "PublishResult", "SinkPublisher"]

logger = logging.getLogger("ecobee_sync.publisher")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DeliveryPolicy(StrEnum):
    """When a stream counts as delivered (and its watermark may advance)."""

    REQUIRE_ANY_SINK = "require_any_sink"
    REQUIRE_ALL_SINKS = "require_all_sinks"


class PublishResult(BaseModel):
    """Which sinks accepted one stream's records.

    Attributes:
        stream: The stream that was published.
        records: Number of records handed to each sink.
        succeeded: Names of sinks that accepted the records.
        failed: Names of sinks that exhausted their retries.
    """

    stream: StreamType
    records: int = 0
    succeeded: list[str] = Field(default_factory=list)
    failed: list[str] = Field(default_factory=list)

    @property
    def attempted(self) -> bool:
        return bool(self.succeeded or self.failed)

    def delivered(self, policy: DeliveryPolicy) -> bool:
        if policy is DeliveryPolicy.REQUIRE_ALL_SINKS:
            return bool(self.succeeded) and not self.failed
        return bool(self.succeeded)


class SinkPublisher:
    """Delivers records to a list of sinks with per-sink isolation.

    Parameters:
        sinks: The sinks to publish to.  The list is referenced, not
            copied, so sinks added later are picked up.
        policy: Delivery policy used by :meth:`delivered`.
        always_write_weather: Global default for sinks whose
            ``always_write_weather`` is ``None``.
        clock: Returns "now" for re-stamped weather records.
    """

    def __init__(
        self,
        sinks: list[Sink],
        *,
        policy: DeliveryPolicy = DeliveryPolicy.REQUIRE_ANY_SINK,
        always_write_weather: bool = False,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._sinks = sinks
        self.policy = policy
        self.always_write_weather = always_write_weather
        self._clock = clock

    @property
    def sinks(self) -> list[Sink]:
        return [sink for sink in self._sinks if sink.sink_config.enabled]

    def weather_override(self, sink: Sink) -> bool:
        override = sink.sink_config.always_write_weather
        return self.always_write_weather if override is None else override

    def has_weather_override(self) -> bool:
        return any(self.weather_override(sink) for sink in self.sinks if sink.accepts(StreamType.WEATHER))

    def delivered(self, result: PublishResult) -> bool:
        return result.delivered(self.policy)

    def _targets(
        self, stream: StreamType, records: list[SyncRecord], fresh: bool
    ) -> list[tuple[Sink, list[SyncRecord]]]:
        sinks = [sink for sink in self.sinks if sink.accepts(stream)]
        if stream is not StreamType.WEATHER:
            return [(sink, records) for sink in sinks] if fresh else []

        targets = []
        current: list[SyncRecord] | None = None
        for sink in sinks:
            if self.weather_override(sink):
                if current is None:
                    now = self._clock()
                    current = [rec.with_timestamp(now) for rec in records]
                targets.append((sink, current))
            elif fresh:
                targets.append((sink, records))
        return targets

    async def _deliver(self, sink: Sink, stream: StreamType, records: list[SyncRecord]) -> bool:
        try:
            policy = sink.sink_config.retry_policy()
            await policy.run(lambda: sink.write(records), label=f"{stream.value} -> {sink.name}")
        except ValueError as exc:
            logger.error("Invalid delivery settings for sink '%s': %s", sink.name, exc)
            return False
        except RetryExhaustedError as exc:
            logger.error(
                "Dropping %d %s record(s) for sink '%s' this cycle: %s",
                len(records),
                stream.value,
                sink.name,
                exc.last_error,
            )
            return False
        return True

    async def publish(self, stream: StreamType, records: list[SyncRecord], *, fresh: bool = True) -> PublishResult:
        """Write *records* to every sink that should receive them.

        ``fresh`` says whether the watermark reported new data.  When it is
        ``False`` only weather sinks with the "always current" override
        receive anything.
        """
        result = PublishResult(stream=stream, records=len(records))
        targets = self._targets(stream, records, fresh)
        if not targets or not records:
            return result

        outcomes = await asyncio.gather(*(self._deliver(sink, stream, recs) for sink, recs in targets))
        for (sink, _), ok in zip(targets, outcomes):
            (result.succeeded if ok else result.failed).append(sink.name)

        logger.debug(
            "Published %d %s record(s): ok=%s failed=%s",
            len(records),
            stream.value,
            result.succeeded,
            result.failed,
        )
        return result
