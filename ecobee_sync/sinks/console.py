"""Console sink - prints sync records to stdout.

Useful for debugging, first-time setup, and verifying which samples the
engine considers new.
"""

from __future__ import annotations

import sys
from typing import IO

from ecobee_sync.models import SyncRecord
from ecobee_sync.sinks.base import Sink

__all__ = ["ConsoleSink"]


def _format_value(value: object) -> str:
    if isinstance(value, float):
        return f"{value:.1f}"
    return str(value)


class ConsoleSink(Sink):
    """Writes sync records to the console (stdout by default).

    Parameters:
        fmt: Output format - ``"text"`` (human-readable) or ``"json"``
             (one JSON object per record).
        stream: Writable file-like object (defaults to ``sys.stdout``).
        **kwargs: Forwarded to :class:`Sink`.
    """

    def __init__(
        self,
        *,
        fmt: str = "text",
        stream: IO[str] | None = None,
        **kwargs,
    ) -> None:
        super().__init__(**kwargs)
        self._fmt = fmt
        self._stream = stream or sys.stdout

    async def connect(self) -> None:
        """No-op - stdout is always available."""

    async def write(self, records: list[SyncRecord]) -> None:
        if self._fmt == "json":
            for rec in records:
                self._stream.write(rec.to_json() + "\n")
        else:
            for rec in records:
                label = rec.tags.get("sensor_name") or rec.tags.get("thermostat_name", "")
                self._stream.write(f"{rec.measurement} '{label}' at {rec.timestamp.isoformat()}:\n")
                for key, value in rec.fields.items():
                    self._stream.write(f"\t{key}: {_format_value(value)}\n")
        self._stream.flush()

    async def flush(self) -> None:
        self._stream.flush()

    async def close(self) -> None:
        """No-op - we do not own stdout."""
