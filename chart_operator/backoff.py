"""Bounded backoff policy used to schedule requeues of transient errors.

A transient reconciliation result is not retried in-process. Instead the
controller asks the policy for the delay after which the key is requeued.
Delays grow with every consecutive transient result for a key, capped at the
profile's maximum interval. Once the time elapsed since the first transient
result exceeds the profile's maximum total wait the result is escalated and
the key is no longer requeued.

```python
tracker = BackoffTracker()
decision = tracker.record_transient("giantswarm/my-release", BackoffProfile.SHORT)
if decision.escalated:
    ...  # surface the error
else:
    queue.add_after("giantswarm/my-release", decision.delay)
```
"""

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
import logging
import time

__all__ = [
    "BackoffProfile",
    "RequeueDecision",
    "BackoffTracker",
    "next_delay",
]

_LOGGER = logging.getLogger(__name__)

INITIAL_INTERVAL = 0.5
MULTIPLIER = 1.5


class BackoffProfile(Enum):
    """Named retry profiles as (max interval, max total wait) in seconds."""

    SHORT = (5.0, 4 * 60.0)
    LONG = (60.0, 40 * 60.0)

    @property
    def max_interval(self) -> float:
        """Largest delay between two ticks for the same key."""
        return self.value[0]

    @property
    def max_wait(self) -> float:
        """Largest cumulative wait before the error is escalated."""
        return self.value[1]


def next_delay(profile: BackoffProfile, attempt: int) -> float:
    """Return the requeue delay for the n-th consecutive transient result."""
    if attempt < 1:
        raise ValueError(f"Attempt must be positive, got {attempt}")
    # Bound the exponent so large attempt counts can't overflow.
    exponent = min(attempt - 1, 64)
    return min(INITIAL_INTERVAL * MULTIPLIER**exponent, profile.max_interval)


@dataclass(frozen=True)
class RequeueDecision:
    """Result of recording a transient error for a key."""

    delay: float
    """Seconds to wait before the next tick."""

    attempts: int
    """Number of consecutive transient results, including this one."""

    elapsed: float
    """Seconds since the first transient result in this sequence."""

    escalated: bool
    """True when the total wait was exceeded and the key must not be requeued."""


@dataclass
class _Entry:
    profile: BackoffProfile
    first_transient: float
    attempts: int = 0


class BackoffTracker:
    """Per-key bookkeeping of consecutive transient results.

    This is the only state carried between ticks of the same key. It is owned
    by a single controller and only touched from the event loop.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        """Initialize BackoffTracker."""
        self._clock = clock
        self._entries: dict[str, _Entry] = {}

    def record_transient(self, key: str, profile: BackoffProfile) -> RequeueDecision:
        """Record a transient result for the key and decide when to retry."""
        now = self._clock()
        entry = self._entries.get(key)
        if entry is None:
            entry = _Entry(profile=profile, first_transient=now)
            self._entries[key] = entry
        elif entry.profile != profile:
            # Keep the start of the sequence, the caps follow the latest error.
            _LOGGER.debug(
                "Backoff profile for %s changed from %s to %s",
                key,
                entry.profile.name,
                profile.name,
            )
            entry.profile = profile
        entry.attempts += 1
        elapsed = now - entry.first_transient
        escalated = elapsed > profile.max_wait
        delay = 0.0 if escalated else next_delay(profile, entry.attempts)
        _LOGGER.debug(
            "Key %s transient attempt %d (elapsed %.1fs, profile %s): %s",
            key,
            entry.attempts,
            elapsed,
            profile.name,
            "escalated" if escalated else f"requeue in {delay:.1f}s",
        )
        return RequeueDecision(
            delay=delay,
            attempts=entry.attempts,
            elapsed=elapsed,
            escalated=escalated,
        )

    def reset(self, key: str) -> None:
        """Forget the bookkeeping for a key after a successful tick."""
        self._entries.pop(key, None)

    def attempts(self, key: str) -> int:
        """Return the number of consecutive transient results for the key."""
        if (entry := self._entries.get(key)) is None:
            return 0
        return entry.attempts

    def __contains__(self, key: str) -> bool:
        return key in self._entries
