from __future__ import annotations


class FsrError(Exception):
    """Base class for reconciler errors."""


class ConfigurationError(FsrError):
    """Malformed or inconsistent desired-state input. Raised before any remote call."""


class RemoteError(FsrError):
    """A failed call against the remote system.

    ``transient`` marks transport failures (timeouts, connection loss) that may
    be retried. Rejections by the target itself are never transient.
    """

    kind = "RemoteError"
    attempts = 0

    def __init__(self, message: str, transient: bool = False):
        super().__init__(message)
        self.transient = transient


class ReadError(RemoteError):
    kind = "ReadError"


class WriteError(RemoteError):
    kind = "WriteError"


class TargetBusy(FsrError):
    """Another run currently holds the target."""
