"""Job orchestration: stage, launch, classify, persist, sweep, respond."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from uuid import uuid4

from paper_forge.config import Settings
from paper_forge.jobs.classifier import classify_pipeline_output
from paper_forge.jobs.cleanup import StagedFileSweeper
from paper_forge.jobs.errors import PipelineBusyError, PipelineLaunchError, ValidationError
from paper_forge.jobs.launcher import LaunchRequest, LaunchResult, PipelineLauncher
from paper_forge.jobs.models import (
    GenerationRequest,
    Job,
    JobState,
    Outcome,
    OutcomeKind,
)
from paper_forge.jobs.persistence import PaperStore, PersistenceWriter
from paper_forge.jobs.responses import ComposedResponse, compose_response
from paper_forge.jobs.staging import UploadStager, validate_request

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class JobReport:
    """Finalized job with its outcome and the response to send."""

    job_id: str
    job: Job | None
    outcome: Outcome
    response: ComposedResponse


class JobService:
    """Runs one generation job per call; safe to share across request threads."""

    def __init__(
        self,
        *,
        stager: UploadStager,
        launcher: PipelineLauncher,
        writer: PersistenceWriter,
    ) -> None:
        self.stager = stager
        self.launcher = launcher
        self.writer = writer

    @classmethod
    def from_settings(cls, settings: Settings, *, store: PaperStore) -> JobService:
        return cls(
            stager=UploadStager(settings.upload),
            launcher=PipelineLauncher(settings.pipeline),
            writer=PersistenceWriter(
                store,
                attempts=settings.storage.write_attempts,
                backoff_seconds=settings.storage.write_backoff_seconds,
                student_name=settings.storage.student_name,
            ),
        )

    def run(self, request: GenerationRequest) -> JobReport:
        """Execute the whole job; every error is converted into an outcome."""

        job_id = uuid4().hex
        try:
            fields = validate_request(request, max_files=self.stager.settings.max_files)
        except ValidationError as error:
            logger.info("Rejected submission job=%s: %s", job_id, error)
            outcome = Outcome(kind=OutcomeKind.VALIDATION_ERROR, message=str(error))
            return _report(job_id, None, outcome)

        job = Job(
            job_id=job_id,
            user_id=fields.user_id,
            subject=fields.subject,
            semester=fields.semester,
            created_at=datetime.now(tz=UTC),
        )
        logger.info(
            "Starting generation job=%s user=%s subject=%r semester=%s files=%d",
            job_id,
            job.user_id,
            job.subject,
            job.semester,
            len(request.documents),
        )

        retry_after: int | None = None
        sweeper: StagedFileSweeper | None = None
        try:
            sweeper = self.stager.open_sweeper(job_id)
            job.staged_files = self.stager.stage(
                job_id=job_id,
                documents=request.documents,
                sweeper=sweeper,
            )
            outcome = self._execute(job)
        except ValidationError as error:
            logger.info("Rejected submission job=%s: %s", job_id, error)
            outcome = Outcome(kind=OutcomeKind.VALIDATION_ERROR, message=str(error))
        except PipelineBusyError as error:
            retry_after = error.retry_after_seconds
            outcome = Outcome(kind=OutcomeKind.BUSY, diagnostic=str(error))
        except Exception as error:  # noqa: BLE001
            logger.exception("Unexpected error job=%s", job_id)
            outcome = Outcome(kind=OutcomeKind.INTERNAL_ERROR, diagnostic=str(error))
        finally:
            if sweeper is not None:
                sweeper.sweep()

        job.outcome = outcome
        job.state = outcome.terminal_state()
        logger.info(
            "Finished job=%s state=%s outcome=%s",
            job_id,
            job.state.value,
            outcome.kind.value,
        )
        return _report(job_id, job, outcome, retry_after_seconds=retry_after)

    def _execute(self, job: Job) -> Outcome:
        job.state = JobState.RUNNING
        try:
            result = self.launcher.run(
                LaunchRequest(
                    job_id=job.job_id,
                    subject=job.subject,
                    semester=job.semester,
                    files=job.file_paths,
                ),
            )
        except PipelineLaunchError as error:
            logger.error("Pipeline launch failed job=%s: %s", job.job_id, error)
            return Outcome(kind=OutcomeKind.PROCESS_FAILURE, diagnostic=str(error))

        _record_result(job, result)
        outcome = classify_pipeline_output(
            stdout=result.stdout,
            exit_code=result.exit_code,
            stderr=result.stderr,
            timed_out=result.timed_out,
            stdout_truncated=result.stdout_truncated,
        )
        _log_outcome(job, outcome)
        return self.writer.persist(job, outcome)


def _record_result(job: Job, result: LaunchResult) -> None:
    job.stdout = result.stdout
    job.stderr = result.stderr
    job.exit_code = result.exit_code
    if result.stderr:
        logger.debug("Pipeline stderr job=%s:\n%s", job.job_id, result.stderr)


def _log_outcome(job: Job, outcome: Outcome) -> None:
    if outcome.kind is OutcomeKind.PIPELINE_ERROR:
        logger.error("Pipeline reported error job=%s: %s", job.job_id, outcome.message)
        if outcome.trace:
            logger.error("Pipeline trace job=%s:\n%s", job.job_id, outcome.trace)
    elif outcome.kind is OutcomeKind.PROCESS_FAILURE:
        logger.error(
            "Pipeline failed job=%s exit_code=%s: %s",
            job.job_id,
            job.exit_code,
            outcome.diagnostic,
        )
    elif outcome.kind is OutcomeKind.TIMED_OUT:
        logger.error("Pipeline timed out job=%s stderr=%s", job.job_id, outcome.diagnostic)


def _report(
    job_id: str,
    job: Job | None,
    outcome: Outcome,
    *,
    retry_after_seconds: int | None = None,
) -> JobReport:
    return JobReport(
        job_id=job_id,
        job=job,
        outcome=outcome,
        response=compose_response(outcome, retry_after_seconds=retry_after_seconds),
    )
