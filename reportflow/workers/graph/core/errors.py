"""Error taxonomy shared by activities, the engine and the client."""
from __future__ import annotations

from typing import Optional


class PipelineError(Exception):
    retryable = True

    def __init__(self, message: str = "", *, retryable: Optional[bool] = None) -> None:
        super().__init__(message)
        if retryable is not None:
            self.retryable = retryable


class ValidationError(PipelineError):
    """Malformed input or configuration. Never retried."""

    retryable = False


class TransientError(PipelineError):
    """Upstream timeout, rate limit or I/O hiccup. Retried per policy."""

    retryable = True


class ActivityTimeoutError(TransientError):
    pass


class HeartbeatTimeoutError(TransientError):
    pass


class CancelledError(PipelineError):
    """Cooperative cancellation observed at a step boundary."""

    retryable = False


def is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, PipelineError):
        return bool(exc.retryable)
    return isinstance(exc, Exception)
