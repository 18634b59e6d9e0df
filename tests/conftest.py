"""Shared test fixtures."""

from __future__ import annotations

import io
import sys
from collections.abc import Callable, Iterator
from pathlib import Path

import pytest

from paper_forge.config import PipelineSettings, Settings, StorageSettings, UploadSettings
from paper_forge.jobs import demo_pipeline
from paper_forge.jobs.models import UploadedDocument
from paper_forge.storage.repository import PaperRepository

DEMO_PIPELINE_SCRIPT = Path(demo_pipeline.__file__).resolve()


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    """Settings wired to the demo pipeline and per-test directories."""

    return Settings(
        pipeline=PipelineSettings(
            interpreter=sys.executable,
            project_root=tmp_path,
            script_path=DEMO_PIPELINE_SCRIPT,
            timeout_seconds=20.0,
            kill_grace_seconds=1.0,
            max_concurrent_jobs=2,
            slot_wait_seconds=0.1,
        ),
        upload=UploadSettings(staging_root=tmp_path / "uploads"),
        storage=StorageSettings(db_path=tmp_path / "papers.db", write_backoff_seconds=0.0),
    )


@pytest.fixture()
def demo_case(monkeypatch) -> Callable[..., None]:
    """Select the demo pipeline behavior for subprocesses started by the test."""

    def _select(case: str, **extra_env: str) -> None:
        monkeypatch.setenv("PAPER_FORGE_DEMO_CASE", case)
        for name, value in extra_env.items():
            monkeypatch.setenv(name, value)

    return _select


@pytest.fixture()
def repository(settings: Settings) -> Iterator[PaperRepository]:
    repo = PaperRepository(settings.storage.db_path)
    repo.init_schema()
    try:
        yield repo
    finally:
        repo.close()


@pytest.fixture()
def make_documents() -> Callable[..., list[UploadedDocument]]:
    """Build in-memory uploads: `make_documents(("a.txt", "text"), ...)`."""

    def _make(*items: tuple[str, str | bytes]) -> list[UploadedDocument]:
        documents = []
        for filename, content in items:
            payload = content.encode("utf-8") if isinstance(content, str) else content
            documents.append(UploadedDocument(filename=filename, stream=io.BytesIO(payload)))
        return documents

    return _make


@pytest.fixture()
def staged_leftovers(settings: Settings) -> Callable[[], list[Path]]:
    """Everything still present under the staging root."""

    def _collect() -> list[Path]:
        root = settings.upload.staging_root
        if not root.exists():
            return []
        return sorted(root.rglob("*"))

    return _collect
