"""Append-only store for generated exam papers."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import event, func
from sqlalchemy.engine import Engine
from sqlalchemy.pool import NullPool
from sqlmodel import Session, col, create_engine, select

from paper_forge.storage.sqlmodel_models import Paper

# Checkout root holding alembic.ini and the alembic/ migrations directory.
_MIGRATIONS_ROOT = Path(__file__).resolve().parents[3]


@dataclass(slots=True)
class PaperWrite:
    """Artifact plus the identity it is stored under."""

    user_id: str
    subject: str
    semester: str
    full_json_data: str
    job_id: str | None = None
    student_name: str | None = None


@dataclass(slots=True)
class PaperView:
    """Readable stored paper."""

    paper_id: int
    user_id: str
    subject: str
    semester: str
    student_name: str | None
    full_json_data: str
    job_id: str | None
    created_at: datetime


class PaperRepository:
    """Paper persistence facade backed by SQLModel + SQLite.

    Every insert runs in its own short transaction, so concurrent jobs
    only contend on SQLite's write lock, bounded by `busy_timeout_ms`.
    """

    def __init__(self, db_path: Path, *, busy_timeout_ms: int = 5_000) -> None:
        self.db_path = db_path
        self.engine = _paper_engine(db_path, busy_timeout_ms=busy_timeout_ms)

    def close(self) -> None:
        """Close underlying DB resources."""

        self.engine.dispose()

    def init_schema(self) -> None:
        """Create the database file if needed and migrate it to head."""

        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        config = Config(str(_MIGRATIONS_ROOT / "alembic.ini"))
        config.set_main_option("script_location", str(_MIGRATIONS_ROOT / "alembic"))
        config.set_main_option("sqlalchemy.url", f"sqlite:///{self.db_path}")
        command.upgrade(config, "head")

    def save_paper(self, payload: PaperWrite) -> PaperView:
        """Insert one paper in its own transaction."""

        with Session(self.engine) as session:
            row = Paper(
                user_id=payload.user_id,
                subject=payload.subject,
                semester=payload.semester,
                student_name=payload.student_name,
                full_json_data=payload.full_json_data,
                job_id=payload.job_id,
                created_at=datetime.now(tz=UTC),
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            return _to_view(row)

    def list_papers(self, *, user_id: str, limit: int = 50) -> list[PaperView]:
        """Newest first papers of one user."""

        with Session(self.engine) as session:
            rows = session.exec(
                select(Paper)
                .where(Paper.user_id == user_id)
                .order_by(col(Paper.created_at).desc(), col(Paper.paper_id).desc())
                .limit(limit),
            ).all()
            return [_to_view(row) for row in rows]

    def count_papers(self) -> int:
        with Session(self.engine) as session:
            return session.exec(select(func.count()).select_from(Paper)).one()


def _to_view(row: Paper) -> PaperView:
    if row.paper_id is None:
        raise ValueError("Paper row has no primary key")
    return PaperView(
        paper_id=row.paper_id,
        user_id=row.user_id,
        subject=row.subject,
        semester=row.semester,
        student_name=row.student_name,
        full_json_data=row.full_json_data,
        job_id=row.job_id,
        created_at=row.created_at,
    )


def _paper_engine(db_path: Path, *, busy_timeout_ms: int) -> Engine:
    engine = create_engine(
        f"sqlite:///{db_path}",
        connect_args={
            "check_same_thread": False,
            "timeout": max(1.0, busy_timeout_ms / 1000.0),
        },
        poolclass=NullPool,
    )

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, _record) -> None:
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode = WAL")
        cursor.execute(f"PRAGMA busy_timeout = {max(1, busy_timeout_ms)}")
        cursor.close()

    return engine
