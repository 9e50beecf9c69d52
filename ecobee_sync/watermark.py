"""Per-stream watermarks used to publish each device sample once.

The thermostat keeps returning the same readings until it takes a new
sample, and the poll cadence does not line up with its sampling interval.
A watermark remembers the marker of the last *published* sample of each
stream; a stream is only published again when the snapshot's marker
differs from it.

Markers:

- runtime     - ``extendedRuntime.runtimeInterval`` (opaque counter)
- sensor      - snapshot ``utcTime``
- weather     - ``weather.timestamp``
- air_quality - ``runtime.lastStatusModified``

Watermarks live in memory only and start out as "never published".
"""

from __future__ import annotations

import logging
from typing import Any

from ecobee_sync.models import StreamType

__all__ = ["WatermarkTracker"]

logger = logging.getLogger("ecobee_sync.watermark")


class WatermarkTracker:
    """Holds the last-published marker for every stream.

    A tracker is owned by exactly one :class:`~ecobee_sync.sync.Synchronizer`
    and is only mutated between cycles' publish steps, so it needs no
    locking.
    """

    def __init__(self) -> None:
        self._marks: dict[StreamType, Any] = {stream: None for stream in StreamType}

    def get(self, stream: StreamType) -> Any:
        """Current marker for *stream* (``None`` if never published)."""
        return self._marks[stream]

    def should_publish(self, stream: StreamType, candidate: Any, *, force: bool = False) -> bool:
        """Return ``True`` if *candidate* marks data not yet published.

        Any change counts, including a timestamp that moved backwards.
        ``force`` skips the comparison (the weather "always current"
        override).
        """
        if force:
            return True
        return candidate != self._marks[stream]

    def advance(self, stream: StreamType, candidate: Any) -> None:
        """Record *candidate* as published for *stream*."""
        previous = self._marks[stream]
        self._marks[stream] = candidate
        if previous != candidate:
            logger.debug("Watermark %s advanced: %s -> %s", stream.value, previous, candidate)

    def reset(self, stream: StreamType | None = None) -> None:
        """Forget one stream's marker, or all of them."""
        if stream is None:
            for key in self._marks:
                self._marks[key] = None
        else:
            self._marks[stream] = None

    def snapshot(self) -> dict[str, Any]:
        """Return a plain copy of all markers, keyed by stream name."""
        return {stream.value: mark for stream, mark in self._marks.items()}
