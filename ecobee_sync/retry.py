"""Bounded fixed-delay retry with a per-attempt deadline.

One policy object is applied at both nesting levels of a cycle: around
the whole fetch/decode/publish cycle, and around every sink write of every
stream.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from pydantic import BaseModel, Field

from ecobee_sync.errors import RetryExhaustedError

__all__ = ["RetryPolicy"]

logger = logging.getLogger("ecobee_sync.retry")

T = TypeVar("T")


class RetryPolicy(BaseModel):
    """How many times to try an operation and how long to wait in between.

    Attributes:
        attempts: Total tries, including the first one.
        delay_s: Fixed pause between attempts (no exponential growth).
        timeout_s: Deadline for a single attempt; ``None`` disables it.
    """

    attempts: int = Field(2, ge=1)
    delay_s: float = Field(1.0, ge=0.0)
    timeout_s: float | None = Field(None, gt=0.0)

    async def run(self, operation: Callable[[], Awaitable[T]], *, label: str) -> T:
        """Await ``operation()`` until it succeeds or attempts run out.

        Returns:
            Whatever the successful attempt returned.

        Raises:
            RetryExhaustedError: after the last failed attempt, chained to
                its exception.
        """
        attempt = 0
        while True:
            attempt += 1
            try:
                if self.timeout_s is None:
                    return await operation()
                return await asyncio.wait_for(operation(), timeout=self.timeout_s)
            except Exception as exc:
                if isinstance(exc, TimeoutError) and self.timeout_s is not None:
                    reason = f"timed out after {self.timeout_s:.1f}s"
                else:
                    reason = str(exc) or type(exc).__name__
                if attempt >= self.attempts:
                    logger.error("%s failed after %d attempts: %s", label, self.attempts, reason)
                    raise RetryExhaustedError(label, self.attempts, exc) from exc
                logger.warning(
                    "%s failed (attempt %d/%d): %s - retrying in %.1fs",
                    label,
                    attempt,
                    self.attempts,
                    reason,
                    self.delay_s,
                )
                await asyncio.sleep(self.delay_s)
