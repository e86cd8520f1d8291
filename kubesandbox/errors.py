"""
Error taxonomy shared by all kubesandbox modules.

Component-local failures are wrapped with the resource or phase they belong to
and propagated; the CLI turns whatever reaches it into a single log line and a
nonzero exit code.
"""

from typing import Optional


class SandboxError(Exception):
    """Base class of all kubesandbox errors."""


class InvalidInputError(SandboxError):
    """Bad input given by the caller, reported immediately."""


class TransportError(SandboxError):
    """Network or HTTP failure while talking to the remote executor."""


class AuthError(SandboxError):
    """The remote executor rejected our token."""


class ResourceError(SandboxError):
    """Failure reported by the cluster control plane."""

    def __init__(self, kind: str, name: str, reason: str):
        self.kind = kind
        self.name = name
        self.reason = reason
        super().__init__(f"{kind} '{name}': {reason}")


class ResourceExistsError(ResourceError):
    pass


class ResourceNotFoundError(ResourceError):
    pass


class ReadinessTimeoutError(SandboxError, TimeoutError):
    """A resource didn't satisfy its readiness predicate in time."""


class WatchError(SandboxError):
    """The watched resource was deleted or the event stream failed."""


class SpawnError(SandboxError):
    """The test binary could not be started at all."""


class ExecutorError(SandboxError):
    """Server side failure while processing an execution request."""

    def __init__(self, reason: str, status_code: int = 500, cause: Optional[BaseException] = None):
        self.reason = reason
        self.status_code = status_code
        self.cause = cause
        super().__init__(reason)
