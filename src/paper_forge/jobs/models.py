"""Domain models for paper generation jobs."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import BinaryIO


class JobState(str, Enum):
    """Job lifecycle states."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


class OutcomeKind(str, Enum):
    """Closed set of job outcomes used for the response contract."""

    SUCCESS = "success"
    VALIDATION_ERROR = "validation_error"
    PIPELINE_ERROR = "pipeline_error"
    PROCESS_FAILURE = "process_failure"
    TIMED_OUT = "timed_out"
    PERSISTENCE_FAILURE = "persistence_failure"
    BUSY = "busy"
    INTERNAL_ERROR = "internal_error"


@dataclass(slots=True)
class Outcome:
    """Tagged job outcome.

    `artifact` is set only for SUCCESS. `message` carries the caller-facing
    text for validation and pipeline errors; `trace` and `diagnostic` stay
    server-side.
    """

    kind: OutcomeKind
    artifact: str | None = None
    message: str | None = None
    trace: str | None = None
    diagnostic: str | None = None

    @property
    def is_success(self) -> bool:
        return self.kind is OutcomeKind.SUCCESS

    def terminal_state(self) -> JobState:
        """Job state implied by this outcome."""

        if self.kind is OutcomeKind.SUCCESS:
            return JobState.SUCCEEDED
        if self.kind is OutcomeKind.TIMED_OUT:
            return JobState.TIMED_OUT
        return JobState.FAILED


@dataclass(slots=True)
class UploadedDocument:
    """One client-supplied document before staging."""

    filename: str
    stream: BinaryIO


@dataclass(slots=True)
class GenerationRequest:
    """Form fields and documents of one generation submission."""

    subject: str | None
    semester: str | None
    user_id: str | None
    documents: list[UploadedDocument] = field(default_factory=list)


@dataclass(slots=True)
class StagedFile:
    """Uploaded document persisted to a job-scoped location."""

    path: Path
    original_name: str
    size_bytes: int
    job_id: str
    position: int


@dataclass(slots=True)
class Job:
    """One generation job, owned by the request that created it."""

    job_id: str
    user_id: str
    subject: str
    semester: str
    created_at: datetime
    staged_files: list[StagedFile] = field(default_factory=list)
    state: JobState = JobState.PENDING
    stdout: str = ""
    stderr: str = ""
    exit_code: int | None = None
    outcome: Outcome | None = None

    @property
    def file_paths(self) -> list[Path]:
        """Staged file paths in client upload order."""

        return [staged.path for staged in sorted(self.staged_files, key=lambda s: s.position)]
