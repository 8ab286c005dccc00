"""
Reconnect Policies - server/sessions/reconnect.py

Decides whether, and after how long, a disconnected account gets a new
provider client. Attempts are counted from 1 and reset once the account
reaches `ready` again.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol

from server.core.config import Settings


class ReconnectPolicy(Protocol):
    def next_delay(self, attempt: int) -> Optional[float]:
        """Seconds to wait before attempt number `attempt`, or None to give up."""


@dataclass(frozen=True)
class NoReconnect:
    """Never reconnect automatically."""

    def next_delay(self, attempt: int) -> Optional[float]:
        return None


@dataclass(frozen=True)
class FixedDelay:
    delay: float
    max_attempts: Optional[int] = None

    def next_delay(self, attempt: int) -> Optional[float]:
        if self.max_attempts is not None and attempt > self.max_attempts:
            return None
        return self.delay


@dataclass(frozen=True)
class ExponentialBackoff:
    base: float
    factor: float = 2.0
    max_delay: float = 300.0
    max_attempts: Optional[int] = None

    def next_delay(self, attempt: int) -> Optional[float]:
        if self.max_attempts is not None and attempt > self.max_attempts:
            return None
        return min(self.max_delay, self.base * self.factor ** (attempt - 1))


def policy_from_settings(settings: Settings) -> ReconnectPolicy:
    """Build the policy named by RECONNECT_STRATEGY."""
    if settings.RECONNECT_STRATEGY == "fixed":
        return FixedDelay(
            delay=settings.RECONNECT_DELAY_SECONDS,
            max_attempts=settings.RECONNECT_MAX_ATTEMPTS,
        )
    if settings.RECONNECT_STRATEGY == "exponential":
        return ExponentialBackoff(
            base=settings.RECONNECT_DELAY_SECONDS,
            max_delay=settings.RECONNECT_MAX_DELAY_SECONDS,
            max_attempts=settings.RECONNECT_MAX_ATTEMPTS,
        )
    return NoReconnect()
