"""Exception hierarchy for the synchronization engine.

The classes map onto how a failure is handled:

- ``TransientError`` / ``CredentialError`` - retried, then deferred to the
  next cycle.
- ``DecodeError`` - aborts the current cycle (retried at the cycle level).
- ``ConfigurationError`` - fatal at startup, the loop never begins.
- ``DeliveryError`` - a stream did not reach enough sinks for its
  watermark to advance.
"""

from __future__ import annotations

__all__ = [
    "ConfigurationError",
    "CredentialError",
    "DecodeError",
    "DeliveryError",
    "RetryExhaustedError",
    "SyncError",
    "TransientError",
]


class SyncError(Exception):
    """Base class for every error raised by ``ecobee_sync``."""


class TransientError(SyncError):
    """A remote endpoint failed in a way that may succeed on retry."""


class DecodeError(SyncError):
    """A snapshot or API response could not be decoded."""


class ConfigurationError(SyncError, ValueError):
    """Mandatory settings are missing or invalid."""


class CredentialError(SyncError):
    """No usable access credential could be obtained."""


class DeliveryError(SyncError):
    """A stream's records were not accepted by the sinks the policy requires.

    Attributes:
        stream: Stream name, e.g. ``"sensor"``.
        failed: Names of the sinks that rejected the records.
    """

    def __init__(self, stream: str, failed: list[str]) -> None:
        super().__init__(f"{stream} stream not delivered (failed sinks: {', '.join(failed) or 'none'})")
        self.stream = stream
        self.failed = failed


class RetryExhaustedError(SyncError):
    """Every attempt of a retried operation failed.

    The last underlying error is available as ``__cause__``.
    """

    def __init__(self, label: str, attempts: int, last_error: BaseException) -> None:
        super().__init__(f"{label} failed after {attempts} attempt(s): {last_error}")
        self.label = label
        self.attempts = attempts
        self.last_error = last_error
