"""Outcome to HTTP status/body mapping."""

from __future__ import annotations

from dataclasses import dataclass, field

from paper_forge.jobs.models import Outcome, OutcomeKind

PROCESS_FAILURE_MESSAGE = "AI Pipeline failed during execution. See server logs."
TIMEOUT_MESSAGE = "AI Pipeline timed out. Please try again with fewer or smaller files."
PERSISTENCE_FAILURE_MESSAGE = "Failed to save the generated paper. Please try again."
BUSY_MESSAGE = "Server is busy generating other papers. Please retry shortly."
INTERNAL_ERROR_MESSAGE = "Internal server error during paper generation"

_GENERIC_MESSAGES: dict[OutcomeKind, tuple[int, str]] = {
    OutcomeKind.PROCESS_FAILURE: (500, PROCESS_FAILURE_MESSAGE),
    OutcomeKind.TIMED_OUT: (500, TIMEOUT_MESSAGE),
    OutcomeKind.PERSISTENCE_FAILURE: (500, PERSISTENCE_FAILURE_MESSAGE),
    OutcomeKind.BUSY: (503, BUSY_MESSAGE),
    OutcomeKind.INTERNAL_ERROR: (500, INTERNAL_ERROR_MESSAGE),
}


@dataclass(slots=True)
class ComposedResponse:
    """Transport-level result of one job."""

    status_code: int
    body: dict[str, object]
    headers: dict[str, str] = field(default_factory=dict)


def compose_response(
    outcome: Outcome,
    *,
    retry_after_seconds: int | None = None,
) -> ComposedResponse:
    """Build the caller-visible response; diagnostics and traces never leave the server."""

    if outcome.kind is OutcomeKind.SUCCESS:
        return ComposedResponse(status_code=200, body={"success": True, "paper": outcome.artifact})
    if outcome.kind is OutcomeKind.VALIDATION_ERROR:
        return ComposedResponse(
            status_code=400,
            body={"success": False, "error": outcome.message or "Invalid request"},
        )
    if outcome.kind is OutcomeKind.PIPELINE_ERROR:
        return ComposedResponse(
            status_code=500,
            body={"success": False, "error": outcome.message or PROCESS_FAILURE_MESSAGE},
        )

    status_code, message = _GENERIC_MESSAGES[outcome.kind]
    headers: dict[str, str] = {}
    if outcome.kind is OutcomeKind.BUSY and retry_after_seconds is not None:
        headers["Retry-After"] = str(retry_after_seconds)
    return ComposedResponse(
        status_code=status_code,
        body={"success": False, "error": message},
        headers=headers,
    )
