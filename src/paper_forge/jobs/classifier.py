"""Deterministic classification of pipeline output into job outcomes."""

from __future__ import annotations

import json

from paper_forge.jobs.models import Outcome, OutcomeKind

UNSPECIFIED_PIPELINE_ERROR = "AI Pipeline reported an unspecified error."


def classify_pipeline_output(
    *,
    stdout: str,
    exit_code: int | None,
    stderr: str = "",
    timed_out: bool = False,
    stdout_truncated: bool = False,
) -> Outcome:
    """Map captured stdout and exit status to exactly one outcome.

    Precedence: timeout, structured `error` object (any exit code), non-zero
    exit, usable stdout, empty stdout. A JSON artifact without an `error` key
    is a success like any other text.
    """

    if timed_out:
        return Outcome(kind=OutcomeKind.TIMED_OUT, diagnostic=stderr or None)

    text = stdout.strip()
    reported = _reported_error(text)
    if reported is not None:
        message, trace = reported
        return Outcome(
            kind=OutcomeKind.PIPELINE_ERROR,
            message=message,
            trace=trace,
            diagnostic=stderr or None,
        )

    if exit_code != 0:
        return Outcome(
            kind=OutcomeKind.PROCESS_FAILURE,
            diagnostic=stderr or f"pipeline exited with code {exit_code}",
        )

    if stdout_truncated:
        return Outcome(
            kind=OutcomeKind.PROCESS_FAILURE,
            diagnostic="pipeline stdout exceeded the capture limit",
        )

    if text:
        return Outcome(kind=OutcomeKind.SUCCESS, artifact=text)

    return Outcome(
        kind=OutcomeKind.PROCESS_FAILURE,
        diagnostic=stderr or "pipeline produced no output",
    )


def _reported_error(text: str) -> tuple[str, str | None] | None:
    if not text:
        return None
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        return None
    if not isinstance(parsed, dict) or "error" not in parsed:
        return None

    error = parsed["error"]
    if isinstance(error, str) and error.strip():
        message = error.strip()
    elif error in (None, ""):
        message = UNSPECIFIED_PIPELINE_ERROR
    else:
        message = json.dumps(error, ensure_ascii=False)
    trace = parsed.get("trace")
    return message, trace if isinstance(trace, str) and trace else None
