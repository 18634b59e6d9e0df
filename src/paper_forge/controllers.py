"""Controllers for paper-forge CLI commands."""

from __future__ import annotations

import json
from collections.abc import Iterator
from contextlib import ExitStack, contextmanager
from dataclasses import dataclass
from pathlib import Path

from paper_forge.config import Settings
from paper_forge.jobs.models import GenerationRequest, UploadedDocument
from paper_forge.jobs.service import JobService
from paper_forge.storage.repository import PaperRepository


@dataclass(slots=True)
class GenerateCommand:
    """CLI input for one local generation job."""

    db_path: Path | None
    subject: str
    semester: str
    user_id: str
    files: tuple[Path, ...]
    timeout_seconds: float | None = None


@dataclass(slots=True)
class GenerateResult:
    """Composed job response to render in CLI."""

    lines: list[str]
    success: bool


@dataclass(slots=True)
class ListPapersCommand:
    """CLI input for stored paper listing."""

    db_path: Path | None
    user_id: str
    limit: int


@dataclass(slots=True)
class DbUpgradeCommand:
    """CLI input for schema migration."""

    db_path: Path | None


class PaperForgeCliController:
    """Coordinates local job runs and store inspection."""

    def generate(self, command: GenerateCommand) -> GenerateResult:
        settings = Settings.from_env(db_path=command.db_path)
        if command.timeout_seconds is not None:
            settings.pipeline.timeout_seconds = command.timeout_seconds
        settings.validate()

        with _repository(settings) as repository, ExitStack() as stack:
            # Staging copies the documents, so the caller's originals are never touched.
            documents = [
                UploadedDocument(
                    filename=path.name,
                    stream=stack.enter_context(path.open("rb")),
                )
                for path in command.files
            ]
            service = JobService.from_settings(settings, store=repository)
            report = service.run(
                GenerationRequest(
                    subject=command.subject,
                    semester=command.semester,
                    user_id=command.user_id,
                    documents=documents,
                ),
            )

        return GenerateResult(
            lines=[
                f"job_id={report.job_id} outcome={report.outcome.kind.value} "
                f"status={report.response.status_code}",
                json.dumps(report.response.body, ensure_ascii=False, indent=2),
            ],
            success=report.outcome.is_success,
        )

    def list_papers(self, command: ListPapersCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _repository(settings) as repository:
            papers = repository.list_papers(user_id=command.user_id, limit=command.limit)

        if not papers:
            return [f"No papers stored for user {command.user_id}."]
        lines = [f"Papers for {command.user_id}: {len(papers)}"]
        for paper in papers:
            lines.append(
                f"- paper_id={paper.paper_id} subject={paper.subject!r} "
                f"semester={paper.semester} chars={len(paper.full_json_data)} "
                f"created_at={paper.created_at.isoformat()}",
            )
        return lines

    def upgrade_db(self, command: DbUpgradeCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _repository(settings):
            pass
        return [f"Schema is up to date: {settings.storage.db_path}"]


@contextmanager
def _repository(settings: Settings) -> Iterator[PaperRepository]:
    repository = PaperRepository(
        settings.storage.db_path,
        busy_timeout_ms=settings.storage.busy_timeout_ms,
    )
    repository.init_schema()
    try:
        yield repository
    finally:
        repository.close()
