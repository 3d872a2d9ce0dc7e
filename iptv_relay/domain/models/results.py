"""Result and error types for provider operations."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


class ProviderErrorKind(str, Enum):
    """Recoverable reasons a provider could not start."""

    NO_CHANNEL_SELECTED = "no_channel_selected"
    IN_USE = "in_use"
    BACKEND_ERROR = "backend_error"
    ACQUIRE_TIMEOUT = "acquire_timeout"
    REGISTRY_ERROR = "registry_error"


class ProviderError(Exception):
    """Base class for provider errors."""


class NotStartedError(ProviderError):
    """Raised by stop() when no acquisition is running.

    This signals a caller bug (unbalanced start/stop), not a runtime
    condition to recover from.
    """


class BackendError(ProviderError):
    """Raised by backend drivers when a stream cannot be acquired."""


class AcquireTimeoutError(ProviderError):
    """Raised when a backend does not deliver a stream in time."""


class ProviderStartError(ProviderError):
    """Raised by StartResult.raise_for_error() for failed starts."""

    def __init__(self, kind: ProviderErrorKind, detail: str = ""):
        super().__init__(detail or kind.value)
        self.kind = kind
        self.detail = detail


@dataclass
class StartResult:
    """Outcome of ProviderCore.start().

    Attributes:
        ok: Whether the stream is running
        stream: Registry handle consumers read from, set when ok
        error: Failure kind, set when not ok
        detail: Human readable failure description
        cause: Backend exception, forwarded untouched
    """

    ok: bool
    stream: Optional[Any] = None
    error: Optional[ProviderErrorKind] = None
    detail: str = ""
    cause: Optional[BaseException] = None

    @classmethod
    def success(cls, stream: Any) -> "StartResult":
        return cls(ok=True, stream=stream)

    @classmethod
    def failure(
        cls,
        kind: ProviderErrorKind,
        detail: str = "",
        cause: Optional[BaseException] = None,
    ) -> "StartResult":
        return cls(ok=False, error=kind, detail=detail or kind.value, cause=cause)

    def raise_for_error(self) -> "StartResult":
        """Raise ProviderStartError if the start failed, else return self."""
        if not self.ok:
            raise ProviderStartError(self.error, self.detail) from self.cause
        return self
