"""Persistence gate between a successful generation and a success response."""

from __future__ import annotations

import logging
import time
from typing import Protocol

from paper_forge.jobs.models import Job, Outcome, OutcomeKind
from paper_forge.storage.repository import PaperView, PaperWrite

logger = logging.getLogger(__name__)


class PaperStore(Protocol):
    """Subset of the repository used by the writer."""

    def save_paper(self, payload: PaperWrite) -> PaperView:
        """Durably insert one paper."""


class PersistenceWriter:
    """Stores the artifact of a successful job, downgrading the outcome on failure."""

    def __init__(
        self,
        store: PaperStore,
        *,
        attempts: int = 1,
        backoff_seconds: float = 0.5,
        student_name: str | None = "Student",
    ) -> None:
        self.store = store
        self.attempts = max(1, attempts)
        self.backoff_seconds = backoff_seconds
        self.student_name = student_name

    def persist(self, job: Job, outcome: Outcome) -> Outcome:
        """Return `outcome` unchanged when stored (or not a success), else PERSISTENCE_FAILURE."""

        if not outcome.is_success or outcome.artifact is None:
            return outcome

        payload = PaperWrite(
            user_id=job.user_id,
            subject=job.subject,
            semester=job.semester,
            full_json_data=outcome.artifact,
            job_id=job.job_id,
            student_name=self.student_name,
        )
        last_error: Exception | None = None
        for attempt in range(1, self.attempts + 1):
            try:
                stored = self.store.save_paper(payload)
            except Exception as error:  # noqa: BLE001
                last_error = error
                logger.warning(
                    "Paper insert failed job=%s attempt=%d/%d: %s",
                    job.job_id,
                    attempt,
                    self.attempts,
                    error,
                    exc_info=True,
                )
                if attempt < self.attempts:
                    time.sleep(self.backoff_seconds * attempt)
                continue
            logger.info("Saved paper job=%s paper_id=%d", job.job_id, stored.paper_id)
            return outcome

        logger.error("Generated paper lost, storage unavailable job=%s", job.job_id)
        return Outcome(
            kind=OutcomeKind.PERSISTENCE_FAILURE,
            diagnostic=str(last_error) if last_error is not None else None,
        )
