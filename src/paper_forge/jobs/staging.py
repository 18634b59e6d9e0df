"""Request validation and job-scoped staging of uploaded documents."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path, PurePath

from paper_forge.config import UploadSettings
from paper_forge.jobs.cleanup import StagedFileSweeper
from paper_forge.jobs.errors import ValidationError
from paper_forge.jobs.models import GenerationRequest, StagedFile, UploadedDocument

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 1024 * 1024
MISSING_FIELDS_MESSAGE = "Missing required fields (subject, semester, user_id, or notes files)"


@dataclass(slots=True)
class ValidatedFields:
    """Stripped, non-empty form fields."""

    subject: str
    semester: str
    user_id: str


def validate_request(request: GenerationRequest, *, max_files: int) -> ValidatedFields:
    """Check required fields and file count before anything touches the disk."""

    subject = (request.subject or "").strip()
    semester = (request.semester or "").strip()
    user_id = (request.user_id or "").strip()
    if not subject or not semester or not user_id or not request.documents:
        raise ValidationError(MISSING_FIELDS_MESSAGE)
    if len(request.documents) > max_files:
        raise ValidationError(
            f"Too many files: {len(request.documents)}. "
            f"At most {max_files} notes files are allowed.",
        )
    for document in request.documents:
        if not _clean_name(document.filename):
            raise ValidationError("Every uploaded file must have a file name.")
    return ValidatedFields(subject=subject, semester=semester, user_id=user_id)


class UploadStager:
    """Writes documents of one job into `<staging_root>/<job_id>/`."""

    def __init__(self, settings: UploadSettings) -> None:
        self.settings = settings

    def job_dir(self, job_id: str) -> Path:
        return (self.settings.staging_root / job_id).resolve()

    def open_sweeper(self, job_id: str) -> StagedFileSweeper:
        """Create the job directory and its sweeper."""

        job_dir = self.job_dir(job_id)
        job_dir.mkdir(parents=True, exist_ok=False)
        return StagedFileSweeper(job_id=job_id, job_dir=job_dir)

    def stage(
        self,
        *,
        job_id: str,
        documents: list[UploadedDocument],
        sweeper: StagedFileSweeper,
    ) -> list[StagedFile]:
        """Persist documents in upload order; every file is registered before it is written."""

        staged: list[StagedFile] = []
        for position, document in enumerate(documents):
            target = sweeper.job_dir / _staged_name(position, document.filename)
            sweeper.register(target)
            size = self._copy_bounded(document, target)
            staged.append(
                StagedFile(
                    path=target,
                    original_name=_clean_name(document.filename),
                    size_bytes=size,
                    job_id=job_id,
                    position=position,
                ),
            )
        logger.info(
            "Staged %d file(s) job=%s total_bytes=%d",
            len(staged),
            job_id,
            sum(item.size_bytes for item in staged),
        )
        return staged

    def _copy_bounded(self, document: UploadedDocument, target: Path) -> int:
        limit = self.settings.max_file_bytes
        size = 0
        with target.open("wb") as handle:
            while True:
                chunk = document.stream.read(_CHUNK_SIZE)
                if not chunk:
                    break
                size += len(chunk)
                if size > limit:
                    raise ValidationError(
                        f"File too large: {_clean_name(document.filename)!r}. "
                        f"Max: {limit} bytes.",
                    )
                handle.write(chunk)
        return size


def _clean_name(filename: str | None) -> str:
    # Browsers on Windows may send full client paths.
    if not filename:
        return ""
    return PurePath(filename.replace("\\", "/")).name.strip()


def _staged_name(position: int, filename: str) -> str:
    suffix = PurePath(_clean_name(filename)).suffix.lower()
    return f"notes-{position:02d}-{time.monotonic_ns()}{suffix}"
