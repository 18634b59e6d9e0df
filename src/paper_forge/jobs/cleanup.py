"""Scoped removal of staged job files."""

from __future__ import annotations

import logging
from pathlib import Path

logger = logging.getLogger(__name__)


class StagedFileSweeper:
    """Tracks files staged for one job and removes them on any terminal state.

    Files are registered as soon as they are created so that a failure in the
    middle of staging still leaves nothing behind. Deletion problems are
    logged and swallowed: they never change the job outcome.
    """

    def __init__(self, *, job_id: str, job_dir: Path) -> None:
        self.job_id = job_id
        self.job_dir = job_dir
        self._paths: list[Path] = []
        self._swept = False

    @property
    def registered(self) -> tuple[Path, ...]:
        return tuple(self._paths)

    def register(self, path: Path) -> None:
        if self._swept:
            raise RuntimeError(f"Sweeper for job {self.job_id} is already closed")
        self._paths.append(path)

    def sweep(self) -> int:
        """Delete registered files and the job directory; return files removed."""

        if self._swept:
            return 0
        self._swept = True

        removed = 0
        for path in self._paths:
            try:
                path.unlink(missing_ok=True)
                removed += 1
            except OSError as error:
                logger.warning(
                    "Failed to delete staged file job=%s path=%s: %s",
                    self.job_id,
                    path,
                    error,
                )
        self._remove_job_dir()
        logger.debug("Swept %d staged file(s) job=%s", removed, self.job_id)
        return removed

    def _remove_job_dir(self) -> None:
        if not self.job_dir.exists():
            return
        try:
            self.job_dir.rmdir()
        except OSError as error:
            logger.warning(
                "Failed to remove staging directory job=%s path=%s: %s",
                self.job_id,
                self.job_dir,
                error,
            )

    def __enter__(self) -> StagedFileSweeper:
        return self

    def __exit__(self, *_: object) -> None:
        self.sweep()
