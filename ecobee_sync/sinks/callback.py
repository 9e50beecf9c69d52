"""Callback sink - hands each stream's records to a Python callable.

Useful for embedding the sync loop in another program, e.g. a dashboard
that only cares about the outdoor conditions::

    sync.add_sink(update_weather_panel, streams=["weather"], name="panel")
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Iterable
from typing import Any, Callable

from ecobee_sync.models import StreamType, SyncRecord
from ecobee_sync.sinks.base import Sink

__all__ = ["CallbackSink"]

logger = logging.getLogger("ecobee_sync.sinks.callback")


class CallbackSink(Sink):
    """Delivers records by calling a user function.

    The callable receives one stream's ``list[SyncRecord]`` per call and
    may be a plain function or a coroutine function.  Plain functions run
    in the default executor so a slow consumer does not stall the poll
    loop.  Raising from the callable counts as a failed write and is
    retried like any other sink.

    Parameters:
        callback: ``(records: list[SyncRecord]) -> None`` or async variant.
        streams: Stream names or :class:`StreamType` values to subscribe
            to.  ``None`` subscribes to every stream.  Streams outside the
            subscription never reach the sink, so they neither count as
            delivered nor hold back a watermark.
        **kwargs: Forwarded to :class:`Sink`.
    """

    def __init__(
        self,
        callback: Callable[[list[SyncRecord]], Any],
        *,
        streams: Iterable[StreamType | str] | None = None,
        **kwargs,
    ) -> None:
        super().__init__(**kwargs)
        if not callable(callback):
            raise TypeError(f"callback must be callable, got {type(callback).__name__}")
        self._callback = callback
        self._is_async = inspect.iscoroutinefunction(callback)
        self.streams = frozenset(StreamType(s) for s in streams) if streams is not None else None
        if self.streams is not None and not self.streams:
            raise ValueError("streams must name at least one stream")

    def __repr__(self) -> str:
        subscribed = sorted(s.value for s in self.streams) if self.streams else "all"
        return f"<CallbackSink name={self.name!r} streams={subscribed}>"

    def accepts(self, stream: StreamType) -> bool:
        return self.streams is None or stream in self.streams

    async def connect(self) -> None:
        logger.debug("Callback sink '%s' ready (async=%s)", self.name, self._is_async)

    async def write(self, records: list[SyncRecord]) -> None:
        # Direct callers bypass the publisher's routing.
        records = [rec for rec in records if self.accepts(rec.stream)]
        if not records:
            logger.debug("Callback sink '%s': nothing subscribed in batch", self.name)
            return
        if self._is_async:
            await self._callback(records)
        else:
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, self._callback, records)

    async def flush(self) -> None:
        """Nothing is buffered."""

    async def close(self) -> None:
        """Nothing to release."""
