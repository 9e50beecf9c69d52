"""Sink abstraction layer.

Provides:
- ``Sink``       - abstract base class that every concrete sink implements.
- ``SinkConfig`` - per-sink delivery knobs (enable flag, timeout, retries,
                   weather override).
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from pydantic import BaseModel, Field

from ecobee_sync.models import StreamType, SyncRecord
from ecobee_sync.retry import RetryPolicy

__all__ = ["Sink", "SinkConfig"]

logger = logging.getLogger("ecobee_sync.sinks")


# -----------------------------------------------------------------------
# Delivery configuration
# -----------------------------------------------------------------------


class SinkConfig(BaseModel):
    """Per-sink delivery knobs.

    Attributes:
        enabled:
            Disabled sinks are skipped by the publisher entirely.
        required:
            A required sink must pass its health check at startup or the
            service refuses to start.
        timeout_s:
            Deadline for a single ``write()`` attempt.
        retry_count:
            Attempts per stream before the sink is reported as failed for
            that stream in the current cycle.
        retry_delay_s:
            Fixed pause between attempts.
        always_write_weather:
            Send the weather record on every cycle, stamped with the
            current time, even if the thermostat has no new observation.
            ``None`` inherits the global setting.
    """

    enabled: bool = True
    required: bool = False
    timeout_s: float = Field(3.0, gt=0.0)
    retry_count: int = Field(2, ge=1)
    retry_delay_s: float = Field(1.0, ge=0.0)
    always_write_weather: bool | None = None

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(attempts=self.retry_count, delay_s=self.retry_delay_s, timeout_s=self.timeout_s)


# -----------------------------------------------------------------------
# Sink ABC
# -----------------------------------------------------------------------


class Sink(ABC):
    """Abstract base class for all sinks.

    Concrete sinks must implement ``connect``, ``write``, ``flush`` and
    ``close``.  Delivery parameters (``timeout_s``, ``retry_count``, …)
    are accepted in ``__init__`` and stored in ``self.sink_config``.
    """

    def __init__(
        self,
        *,
        name: str | None = None,
        enabled: bool = True,
        required: bool = False,
        timeout_s: float = 3.0,
        retry_count: int = 2,
        retry_delay_s: float = 1.0,
        always_write_weather: bool | None = None,
    ) -> None:
        self.name = name or type(self).__name__
        self.sink_config = SinkConfig(
            enabled=enabled,
            required=required,
            timeout_s=timeout_s,
            retry_count=retry_count,
            retry_delay_s=retry_delay_s,
            always_write_weather=always_write_weather,
        )

    def __repr__(self) -> str:
        return f"<{type(self).__name__} name={self.name!r}>"

    @abstractmethod
    async def connect(self) -> None:
        """Establish connection / open resources."""

    @abstractmethod
    async def write(self, records: list[SyncRecord]) -> None:
        """Deliver *records* (all from the same stream) to the destination.

        Must raise on failure; the publisher retries and isolates it.
        """

    @abstractmethod
    async def flush(self) -> None:
        """Flush any internal buffers the sink may hold."""

    @abstractmethod
    async def close(self) -> None:
        """Release resources / close connections."""

    def accepts(self, stream: StreamType) -> bool:
        """Whether this sink wants records of *stream*.  Default: all streams."""
        return True

    async def check_health(self) -> None:
        """Raise if the destination is unreachable.  Default: no-op."""
