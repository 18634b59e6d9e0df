"""Exceptions raised inside the job orchestration layer."""

from __future__ import annotations


class ValidationError(ValueError):
    """Caller supplied an incomplete or oversized submission."""


class PipelineBusyError(RuntimeError):
    """All pipeline slots stayed occupied for the whole wait window."""

    def __init__(self, message: str, *, retry_after_seconds: int) -> None:
        super().__init__(message)
        self.retry_after_seconds = retry_after_seconds


class PipelineLaunchError(RuntimeError):
    """Pipeline process could not be started."""

    def __init__(self, message: str, *, command_head: str) -> None:
        super().__init__(message)
        self.command_head = command_head
