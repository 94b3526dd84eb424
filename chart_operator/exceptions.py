"""Exceptions related to chart-operator.

Release migration failures are reported with a single exception type,
`MigrationError`, that carries an `ErrorKind`. The retry disposition of an
error is a pure function of its kind, see `classify` and `backoff_profile`.
"""

from enum import StrEnum

from .backoff import BackoffProfile

__all__ = [
    "ChartOperatorException",
    "InputException",
    "CommandException",
    "CommandTimeoutError",
    "HelmException",
    "KubernetesException",
    "ReleaseNotFoundError",
    "ReleaseAlreadyExistsError",
    "ErrorKind",
    "Disposition",
    "MigrationError",
    "classify",
    "wrap_client_error",
    "backoff_profile",
    "is_invalid_config",
    "is_release_already_exists",
]


class ChartOperatorException(Exception):
    """Generic base exception used for this library."""


class InputException(ChartOperatorException):
    """Raised when the input files or values are not formatted as expected."""


class CommandException(ChartOperatorException):
    """Raised when there is a failure running a subcommand."""


class CommandTimeoutError(CommandException):
    """Raised when a subcommand did not finish within its deadline."""


class HelmException(CommandException):
    """Raised when there is a failure running a helm command."""


class KubernetesException(CommandException):
    """Raised when there is a failure running a kubectl command."""


class ReleaseNotFoundError(HelmException):
    """Raised when helm reports that a release does not exist."""


class ReleaseAlreadyExistsError(HelmException):
    """Raised when helm refuses an install because the release name is in use."""


class ErrorKind(StrEnum):
    """Closed set of release migration error kinds."""

    INVALID_CONFIG = "invalidConfig"
    RELEASES_NOT_DELETED = "releasesNotDeleted"
    RELEASE_NOT_DELETED = "releaseNotDeleted"
    RELEASE_ALREADY_EXISTS = "releaseAlreadyExists"
    CLIENT_ERROR = "clientError"
    TIMEOUT = "timeout"


class Disposition(StrEnum):
    """How the controller reacts to an error kind."""

    FATAL = "fatal"
    """Never retried, surfaced immediately."""

    TRANSIENT = "transient"
    """Requeued under a backoff profile."""

    CONFLICT = "conflict"
    """Surfaced as a standing condition, not retried."""


_DISPOSITIONS: dict[ErrorKind, Disposition] = {
    ErrorKind.INVALID_CONFIG: Disposition.FATAL,
    ErrorKind.RELEASES_NOT_DELETED: Disposition.TRANSIENT,
    ErrorKind.RELEASE_NOT_DELETED: Disposition.TRANSIENT,
    ErrorKind.RELEASE_ALREADY_EXISTS: Disposition.CONFLICT,
    ErrorKind.CLIENT_ERROR: Disposition.TRANSIENT,
    ErrorKind.TIMEOUT: Disposition.TRANSIENT,
}

_PROFILES: dict[ErrorKind, BackoffProfile] = {
    # Deletion of release objects is expected to finish quickly.
    ErrorKind.RELEASES_NOT_DELETED: BackoffProfile.SHORT,
    ErrorKind.RELEASE_NOT_DELETED: BackoffProfile.SHORT,
    ErrorKind.CLIENT_ERROR: BackoffProfile.LONG,
    ErrorKind.TIMEOUT: BackoffProfile.LONG,
}


def classify(kind: ErrorKind) -> Disposition:
    """Return the fixed retry disposition of an error kind."""
    return _DISPOSITIONS[kind]


def backoff_profile(kind: ErrorKind) -> BackoffProfile | None:
    """Return the backoff profile used to requeue a transient error kind."""
    return _PROFILES.get(kind)


class MigrationError(ChartOperatorException):
    """Raised when a release migration tick does not converge.

    The original client exception, if any, is available as `__cause__` and
    in `cause`.
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        cause: BaseException | None = None,
        escalated: bool = False,
    ) -> None:
        super().__init__(f"{kind}: {message}")
        self.kind = kind
        self.message = message
        self.cause = cause
        self.escalated = escalated
        if cause is not None:
            self.__cause__ = cause

    @property
    def disposition(self) -> Disposition:
        """Disposition of this error, fatal once escalated."""
        if self.escalated:
            return Disposition.FATAL
        return classify(self.kind)

    @property
    def profile(self) -> BackoffProfile | None:
        """Backoff profile used to requeue this error, if it is retried."""
        if self.disposition != Disposition.TRANSIENT:
            return None
        return backoff_profile(self.kind)

    def escalate(self, elapsed: float) -> "MigrationError":
        """Return a fatal copy of this error after its total wait was exceeded."""
        return MigrationError(
            self.kind,
            f"{self.message} (giving up after {elapsed:.0f}s)",
            cause=self.cause,
            escalated=True,
        )


def wrap_client_error(err: BaseException, message: str) -> MigrationError:
    """Classify a failed Helm or Kubernetes call as a transient error."""
    if isinstance(err, MigrationError):
        return err
    kind = ErrorKind.CLIENT_ERROR
    if isinstance(err, CommandTimeoutError):
        kind = ErrorKind.TIMEOUT
    return MigrationError(kind, f"{message}: {err}", cause=err)


def is_invalid_config(err: BaseException) -> bool:
    """Return true if the error is an invalid configuration error."""
    return isinstance(err, MigrationError) and err.kind == ErrorKind.INVALID_CONFIG


def is_release_already_exists(err: BaseException) -> bool:
    """Return true if the error is a release conflict."""
    return (
        isinstance(err, MigrationError)
        and err.kind == ErrorKind.RELEASE_ALREADY_EXISTS
    )
