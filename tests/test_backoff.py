"""Tests for the backoff library."""

import pytest

from chart_operator.backoff import BackoffProfile, BackoffTracker, next_delay

KEY = "kube-system/kube-state-metrics"


class FakeClock:
    """A clock that only moves when told to."""

    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture(name="clock")
def clock_fixture() -> FakeClock:
    """Fake monotonic clock."""
    return FakeClock()


@pytest.fixture(name="tracker")
def tracker_fixture(clock: FakeClock) -> BackoffTracker:
    """Backoff tracker using the fake clock."""
    return BackoffTracker(clock=clock)


@pytest.mark.parametrize(
    ("profile", "attempt", "expected"),
    [
        (BackoffProfile.SHORT, 1, 0.5),
        (BackoffProfile.SHORT, 2, 0.75),
        (BackoffProfile.SHORT, 3, 1.125),
        (BackoffProfile.SHORT, 20, 5.0),
        (BackoffProfile.LONG, 1, 0.5),
        (BackoffProfile.LONG, 20, 60.0),
        (BackoffProfile.LONG, 10_000, 60.0),
    ],
)
def test_next_delay(profile: BackoffProfile, attempt: int, expected: float) -> None:
    """Test delays grow exponentially up to the max interval of the profile."""
    assert next_delay(profile, attempt) == pytest.approx(expected)


def test_next_delay_invalid_attempt() -> None:
    """Test attempts are counted from one."""
    with pytest.raises(ValueError, match="Attempt must be positive"):
        next_delay(BackoffProfile.SHORT, 0)


def test_profiles() -> None:
    """Test the caps of the profiles."""
    assert BackoffProfile.SHORT.max_interval == 5.0
    assert BackoffProfile.SHORT.max_wait == 240.0
    assert BackoffProfile.LONG.max_interval == 60.0
    assert BackoffProfile.LONG.max_wait == 2400.0


def test_record_transient(tracker: BackoffTracker, clock: FakeClock) -> None:
    """Test consecutive transient results for a key."""
    decision = tracker.record_transient(KEY, BackoffProfile.SHORT)
    assert decision.delay == 0.5
    assert decision.attempts == 1
    assert decision.elapsed == 0.0
    assert not decision.escalated
    assert KEY in tracker

    clock.now = 0.5
    decision = tracker.record_transient(KEY, BackoffProfile.SHORT)
    assert decision.delay == 0.75
    assert decision.attempts == 2
    assert decision.elapsed == 0.5
    assert not decision.escalated


def test_escalates_after_four_minutes(
    tracker: BackoffTracker, clock: FakeClock
) -> None:
    """Test legacy deletion that never finishes stops being retried."""
    delays = []
    while True:
        decision = tracker.record_transient(KEY, BackoffProfile.SHORT)
        if decision.escalated:
            break
        delays.append(decision.delay)
        clock.now += decision.delay

    assert clock.now > 240.0
    assert clock.now - delays[-1] <= 240.0
    assert max(delays) == 5.0
    assert decision.delay == 0.0
    assert decision.elapsed == clock.now
    assert decision.attempts == len(delays) + 1


def test_reset(tracker: BackoffTracker, clock: FakeClock) -> None:
    """Test a success starts a new sequence."""
    tracker.record_transient(KEY, BackoffProfile.SHORT)
    tracker.record_transient(KEY, BackoffProfile.SHORT)
    assert tracker.attempts(KEY) == 2

    tracker.reset(KEY)
    assert tracker.attempts(KEY) == 0
    assert KEY not in tracker

    clock.now = 1000.0
    decision = tracker.record_transient(KEY, BackoffProfile.SHORT)
    assert decision.attempts == 1
    assert decision.elapsed == 0.0
    assert not decision.escalated


def test_keys_are_independent(tracker: BackoffTracker, clock: FakeClock) -> None:
    """Test every key has its own sequence."""
    tracker.record_transient(KEY, BackoffProfile.SHORT)
    clock.now = 300.0
    decision = tracker.record_transient("giantswarm/other", BackoffProfile.SHORT)
    assert decision.attempts == 1
    assert not decision.escalated
    assert tracker.record_transient(KEY, BackoffProfile.SHORT).escalated


def test_profile_change_keeps_start(tracker: BackoffTracker, clock: FakeClock) -> None:
    """Test the wait is measured from the first transient result."""
    tracker.record_transient(KEY, BackoffProfile.SHORT)

    clock.now = 100.0
    decision = tracker.record_transient(KEY, BackoffProfile.LONG)
    assert not decision.escalated
    assert decision.attempts == 2
    assert decision.elapsed == 100.0

    clock.now = 300.0
    decision = tracker.record_transient(KEY, BackoffProfile.SHORT)
    assert decision.escalated
    assert decision.elapsed == 300.0
