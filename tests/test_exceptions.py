"""Tests for the exceptions library."""

import pytest

from chart_operator.backoff import BackoffProfile
from chart_operator.exceptions import (
    CommandTimeoutError,
    Disposition,
    ErrorKind,
    HelmException,
    KubernetesException,
    MigrationError,
    backoff_profile,
    classify,
    is_invalid_config,
    is_release_already_exists,
    wrap_client_error,
)


@pytest.mark.parametrize(
    ("kind", "disposition", "profile"),
    [
        (ErrorKind.INVALID_CONFIG, Disposition.FATAL, None),
        (ErrorKind.RELEASES_NOT_DELETED, Disposition.TRANSIENT, BackoffProfile.SHORT),
        (ErrorKind.RELEASE_NOT_DELETED, Disposition.TRANSIENT, BackoffProfile.SHORT),
        (ErrorKind.RELEASE_ALREADY_EXISTS, Disposition.CONFLICT, None),
        (ErrorKind.CLIENT_ERROR, Disposition.TRANSIENT, BackoffProfile.LONG),
        (ErrorKind.TIMEOUT, Disposition.TRANSIENT, BackoffProfile.LONG),
    ],
)
def test_classify(
    kind: ErrorKind, disposition: Disposition, profile: BackoffProfile | None
) -> None:
    """Test every error kind has a fixed disposition and profile."""
    assert classify(kind) == disposition
    assert backoff_profile(kind) == profile
    err = MigrationError(kind, "message")
    assert err.disposition == disposition
    assert err.profile == profile


def test_migration_error() -> None:
    """Test the message and cause of an error."""
    cause = KubernetesException("secret is still terminating")
    err = MigrationError(ErrorKind.RELEASES_NOT_DELETED, "still there", cause=cause)
    assert str(err) == "releasesNotDeleted: still there"
    assert err.kind == ErrorKind.RELEASES_NOT_DELETED
    assert err.message == "still there"
    assert err.__cause__ is cause
    assert not err.escalated


def test_escalate() -> None:
    """Test an escalated transient error is fatal and keeps its cause."""
    cause = KubernetesException("stuck finalizer")
    err = MigrationError(ErrorKind.RELEASES_NOT_DELETED, "still there", cause=cause)

    escalated = err.escalate(241.2)
    assert escalated.escalated
    assert escalated.kind == ErrorKind.RELEASES_NOT_DELETED
    assert escalated.disposition == Disposition.FATAL
    assert escalated.profile is None
    assert escalated.message == "still there (giving up after 241s)"
    assert escalated.__cause__ is cause
    assert err.disposition == Disposition.TRANSIENT


def test_wrap_client_error() -> None:
    """Test client errors are classified as transient."""
    cause = HelmException("connection refused")
    err = wrap_client_error(cause, "Unable to query release")
    assert err.kind == ErrorKind.CLIENT_ERROR
    assert str(err) == "clientError: Unable to query release: connection refused"
    assert err.__cause__ is cause


def test_wrap_timeout() -> None:
    """Test a timed out call is classified as a timeout."""
    err = wrap_client_error(CommandTimeoutError("timed out"), "Unable to install")
    assert err.kind == ErrorKind.TIMEOUT
    assert err.disposition == Disposition.TRANSIENT


def test_wrap_migration_error() -> None:
    """Test an already classified error is not wrapped again."""
    err = MigrationError(ErrorKind.INVALID_CONFIG, "missing helm client")
    assert wrap_client_error(err, "Unable to install") is err


def test_predicates() -> None:
    """Test the error kind predicates."""
    invalid = MigrationError(ErrorKind.INVALID_CONFIG, "missing")
    conflict = MigrationError(ErrorKind.RELEASE_ALREADY_EXISTS, "exists")
    assert is_invalid_config(invalid)
    assert not is_invalid_config(conflict)
    assert not is_invalid_config(ValueError("invalid"))
    assert is_release_already_exists(conflict)
    assert not is_release_already_exists(invalid)
