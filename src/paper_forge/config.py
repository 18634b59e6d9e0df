"""Runtime configuration for the paper generation service."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path


def default_interpreter(os_name: str | None = None) -> str:
    """Platform default interpreter used to run the pipeline script."""

    current_os_name = os_name or os.name
    if current_os_name == "nt":
        return "py"
    return "python3"


@dataclass(slots=True)
class PipelineSettings:
    """External pipeline invocation settings."""

    interpreter: str = field(default_factory=default_interpreter)
    project_root: Path = Path()
    script_path: Path = Path("backend/ml/generate_paper.py")
    timeout_seconds: float = 600.0
    kill_grace_seconds: float = 5.0
    max_concurrent_jobs: int = 4
    slot_wait_seconds: float = 30.0
    max_stdout_bytes: int = 4 * 1024 * 1024
    max_stderr_bytes: int = 256 * 1024

    def resolved_script(self) -> Path:
        """Absolute script location; relative paths are anchored at the project root."""

        if self.script_path.is_absolute():
            return self.script_path
        return (self.project_root / self.script_path).resolve()


@dataclass(slots=True)
class UploadSettings:
    """Upload staging settings."""

    staging_root: Path = Path("uploads")
    max_files: int = 10
    max_file_bytes: int = 50 * 1024 * 1024


@dataclass(slots=True)
class StorageSettings:
    """Artifact store settings."""

    db_path: Path = Path(".paper_forge.db")
    busy_timeout_ms: int = 5_000
    write_attempts: int = 1
    write_backoff_seconds: float = 0.5
    student_name: str = "Student"


@dataclass(slots=True)
class ServerSettings:
    """HTTP server settings."""

    host: str = "0.0.0.0"  # noqa: S104
    port: int = 8000
    cors_origins: tuple[str, ...] = ("*",)


@dataclass(slots=True)
class Settings:
    """Application settings grouped by domain concerns."""

    pipeline: PipelineSettings = field(default_factory=PipelineSettings)
    upload: UploadSettings = field(default_factory=UploadSettings)
    storage: StorageSettings = field(default_factory=StorageSettings)
    server: ServerSettings = field(default_factory=ServerSettings)

    @classmethod
    def from_env(cls, db_path: Path | None = None) -> Settings:
        """Load settings from environment with sane defaults for local development."""

        project_root = Path(os.getenv("PAPER_FORGE_PROJECT_ROOT", _default_project_root()))
        return cls(
            pipeline=PipelineSettings(
                interpreter=os.getenv("PAPER_FORGE_PIPELINE_INTERPRETER", "").strip()
                or default_interpreter(),
                project_root=project_root,
                script_path=Path(
                    os.getenv("PAPER_FORGE_PIPELINE_SCRIPT", "backend/ml/generate_paper.py"),
                ),
                timeout_seconds=float(os.getenv("PAPER_FORGE_PIPELINE_TIMEOUT_SECONDS", "600")),
                kill_grace_seconds=float(
                    os.getenv("PAPER_FORGE_PIPELINE_KILL_GRACE_SECONDS", "5"),
                ),
                max_concurrent_jobs=int(os.getenv("PAPER_FORGE_MAX_CONCURRENT_JOBS", "4")),
                slot_wait_seconds=float(os.getenv("PAPER_FORGE_SLOT_WAIT_SECONDS", "30")),
                max_stdout_bytes=int(
                    os.getenv("PAPER_FORGE_PIPELINE_MAX_STDOUT_BYTES", str(4 * 1024 * 1024)),
                ),
                max_stderr_bytes=int(
                    os.getenv("PAPER_FORGE_PIPELINE_MAX_STDERR_BYTES", str(256 * 1024)),
                ),
            ),
            upload=UploadSettings(
                staging_root=Path(
                    os.getenv("PAPER_FORGE_STAGING_ROOT", str(project_root / "uploads")),
                ),
                max_files=int(os.getenv("PAPER_FORGE_UPLOAD_MAX_FILES", "10")),
                max_file_bytes=int(
                    os.getenv("PAPER_FORGE_UPLOAD_MAX_FILE_BYTES", str(50 * 1024 * 1024)),
                ),
            ),
            storage=StorageSettings(
                db_path=db_path or Path(os.getenv("PAPER_FORGE_DB_PATH", ".paper_forge.db")),
                busy_timeout_ms=int(os.getenv("PAPER_FORGE_DB_BUSY_TIMEOUT_MS", "5000")),
                write_attempts=int(os.getenv("PAPER_FORGE_DB_WRITE_ATTEMPTS", "1")),
                write_backoff_seconds=float(
                    os.getenv("PAPER_FORGE_DB_WRITE_BACKOFF_SECONDS", "0.5"),
                ),
                student_name=os.getenv("PAPER_FORGE_STUDENT_NAME", "Student"),
            ),
            server=ServerSettings(
                host=os.getenv("PAPER_FORGE_HOST", "0.0.0.0"),  # noqa: S104
                port=int(os.getenv("PORT", os.getenv("PAPER_FORGE_PORT", "8000"))),
                cors_origins=_collect_cors_origins(),
            ),
        )

    def validate(self) -> None:
        """Raise configuration error if limits are inconsistent."""

        if not self.pipeline.interpreter.strip():
            raise ValueError("PAPER_FORGE_PIPELINE_INTERPRETER must not be empty.")
        if self.pipeline.timeout_seconds <= 0:
            raise ValueError("PAPER_FORGE_PIPELINE_TIMEOUT_SECONDS must be > 0.")
        if self.pipeline.kill_grace_seconds < 0:
            raise ValueError("PAPER_FORGE_PIPELINE_KILL_GRACE_SECONDS must be >= 0.")
        if self.pipeline.max_concurrent_jobs < 1:
            raise ValueError("PAPER_FORGE_MAX_CONCURRENT_JOBS must be >= 1.")
        if self.pipeline.slot_wait_seconds < 0:
            raise ValueError("PAPER_FORGE_SLOT_WAIT_SECONDS must be >= 0.")
        if self.pipeline.max_stdout_bytes <= 0 or self.pipeline.max_stderr_bytes <= 0:
            raise ValueError("Pipeline stream capture limits must be positive.")
        if self.upload.max_files < 1:
            raise ValueError("PAPER_FORGE_UPLOAD_MAX_FILES must be >= 1.")
        if self.upload.max_file_bytes <= 0:
            raise ValueError("PAPER_FORGE_UPLOAD_MAX_FILE_BYTES must be > 0.")
        if self.storage.write_attempts < 1:
            raise ValueError("PAPER_FORGE_DB_WRITE_ATTEMPTS must be >= 1.")
        if self.storage.write_backoff_seconds < 0:
            raise ValueError("PAPER_FORGE_DB_WRITE_BACKOFF_SECONDS must be >= 0.")


def _default_project_root() -> str:
    # The server may be started from the project root or from its backend/ folder.
    cwd = Path.cwd()
    if cwd.name == "backend":
        return str(cwd.parent)
    return str(cwd)


def _collect_cors_origins() -> tuple[str, ...]:
    raw = os.getenv("PAPER_FORGE_CORS_ORIGINS", "*").strip()
    origins = tuple(part.strip() for part in raw.split(",") if part.strip())
    return origins or ("*",)
