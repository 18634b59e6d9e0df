"""Subprocess launcher for the external paper generation pipeline."""

from __future__ import annotations

import logging
import os
import signal
import subprocess
import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import IO

from paper_forge.config import PipelineSettings
from paper_forge.jobs.errors import PipelineBusyError, PipelineLaunchError

logger = logging.getLogger(__name__)

_READ_CHUNK = 64 * 1024


@dataclass(slots=True)
class LaunchRequest:
    """Inputs required to run the pipeline for one job."""

    job_id: str
    subject: str
    semester: str
    files: list[Path]


@dataclass(slots=True)
class LaunchResult:
    """Captured process outcome, produced after exit and stream closure."""

    exit_code: int | None
    timed_out: bool
    stdout: str
    stderr: str
    stdout_truncated: bool = False
    stderr_truncated: bool = False
    duration_seconds: float = 0.0


def build_pipeline_argv(
    *,
    interpreter: str,
    script: Path,
    subject: str,
    semester: str,
    files: list[Path],
) -> list[str]:
    """Render `interpreter script subject semester file1 ... fileN`.

    The pipeline indexes files positionally, so `files` order is kept as is.
    """

    return [interpreter, str(script), subject, semester, *(str(path) for path in files)]


class PipelineSlots:
    """Global cap on concurrently running pipeline processes."""

    def __init__(self, *, size: int, wait_seconds: float) -> None:
        self.size = size
        self.wait_seconds = wait_seconds
        self._semaphore = threading.BoundedSemaphore(size)
        self._lock = threading.Lock()
        self._in_use = 0

    @property
    def in_use(self) -> int:
        with self._lock:
            return self._in_use

    @contextmanager
    def acquire(self, job_id: str) -> Iterator[None]:
        """Hold one slot for the duration of the block or raise `PipelineBusyError`."""

        if not self._semaphore.acquire(timeout=self.wait_seconds):
            logger.warning(
                "No pipeline slot free after %.1fs job=%s slots=%d",
                self.wait_seconds,
                job_id,
                self.size,
            )
            raise PipelineBusyError(
                f"All {self.size} pipeline slots are busy",
                retry_after_seconds=max(1, int(self.wait_seconds) or 5),
            )
        with self._lock:
            self._in_use += 1
        try:
            yield
        finally:
            with self._lock:
                self._in_use -= 1
            self._semaphore.release()


class _BoundedCapture:
    """Drains one pipe on a thread, keeping at most `limit` bytes."""

    def __init__(self, stream: IO[bytes], *, limit: int, name: str) -> None:
        self._stream = stream
        self._limit = limit
        self._chunks: list[bytes] = []
        self._retained = 0
        self.truncated = False
        self._thread = threading.Thread(target=self._drain, name=name, daemon=True)

    def start(self) -> None:
        self._thread.start()

    def join(self, timeout: float | None) -> bool:
        """Wait for EOF; return True when the stream is closed."""

        self._thread.join(timeout)
        return not self._thread.is_alive()

    def text(self) -> str:
        return b"".join(self._chunks).decode("utf-8", errors="replace")

    def _drain(self) -> None:
        try:
            while True:
                chunk = self._stream.read1(_READ_CHUNK)  # type: ignore[attr-defined]
                if not chunk:
                    break
                room = self._limit - self._retained
                if room > 0:
                    kept = chunk[:room]
                    self._chunks.append(kept)
                    self._retained += len(kept)
                if len(chunk) > max(room, 0):
                    self.truncated = True
        except (OSError, ValueError):
            # Pipe closed underneath us during forced termination.
            self.truncated = True
        finally:
            self._stream.close()


class PipelineLauncher:
    """Runs one pipeline process per job under the global slot cap."""

    def __init__(
        self,
        settings: PipelineSettings,
        *,
        slots: PipelineSlots | None = None,
        os_name: str | None = None,
    ) -> None:
        self.settings = settings
        self.slots = slots or PipelineSlots(
            size=settings.max_concurrent_jobs,
            wait_seconds=settings.slot_wait_seconds,
        )
        self._os_name = os_name or os.name

    def build_argv(self, request: LaunchRequest) -> list[str]:
        return build_pipeline_argv(
            interpreter=self.settings.interpreter,
            script=self.settings.resolved_script(),
            subject=request.subject,
            semester=request.semester,
            files=request.files,
        )

    def run(self, request: LaunchRequest) -> LaunchResult:
        """Acquire a slot, run the pipeline and return its captured output."""

        argv = self.build_argv(request)
        with self.slots.acquire(request.job_id):
            logger.info(
                "Executing pipeline job=%s: %s %s %r %s ...[%d files]",
                request.job_id,
                argv[0],
                argv[1],
                request.subject,
                request.semester,
                len(request.files),
            )
            return self._run_supervised(argv=argv, job_id=request.job_id)

    def _run_supervised(self, *, argv: list[str], job_id: str) -> LaunchResult:
        started = time.monotonic()
        deadline = started + self.settings.timeout_seconds
        try:
            process = subprocess.Popen(  # noqa: S603
                argv,
                cwd=self.settings.project_root,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                **_process_group_kwargs(self._os_name),
            )
        except FileNotFoundError as error:
            raise PipelineLaunchError(
                f"Pipeline command not found: {argv[0]}",
                command_head=argv[0],
            ) from error
        except OSError as error:
            raise PipelineLaunchError(
                f"Pipeline failed to start: {error}",
                command_head=argv[0],
            ) from error

        assert process.stdout is not None  # noqa: S101
        assert process.stderr is not None  # noqa: S101
        stdout_capture = _BoundedCapture(
            process.stdout,
            limit=self.settings.max_stdout_bytes,
            name=f"pipeline-{job_id[:8]}-stdout",
        )
        stderr_capture = _BoundedCapture(
            process.stderr,
            limit=self.settings.max_stderr_bytes,
            name=f"pipeline-{job_id[:8]}-stderr",
        )
        stdout_capture.start()
        stderr_capture.start()

        timed_out = False
        try:
            process.wait(timeout=max(0.0, deadline - time.monotonic()))
        except subprocess.TimeoutExpired:
            timed_out = True

        # Exit alone is not enough: output may still be buffered in the pipes.
        if not timed_out:
            remaining = max(0.0, deadline - time.monotonic())
            streams_closed = stdout_capture.join(remaining) and stderr_capture.join(
                max(0.0, deadline - time.monotonic()),
            )
            if not streams_closed:
                logger.warning(
                    "Pipeline exited but its output streams stayed open job=%s",
                    job_id,
                )
                timed_out = True

        if timed_out:
            logger.warning(
                "Pipeline timed out after %.1fs, terminating process tree job=%s pid=%d",
                self.settings.timeout_seconds,
                job_id,
                process.pid,
            )
            _terminate_process_tree(
                process,
                grace_seconds=self.settings.kill_grace_seconds,
                os_name=self._os_name,
            )
            grace = max(1.0, self.settings.kill_grace_seconds)
            if not (stdout_capture.join(grace) and stderr_capture.join(grace)):
                logger.error("Pipeline output streams did not close after kill job=%s", job_id)

        duration = time.monotonic() - started
        result = LaunchResult(
            exit_code=process.returncode,
            timed_out=timed_out,
            stdout=stdout_capture.text(),
            stderr=stderr_capture.text(),
            stdout_truncated=stdout_capture.truncated,
            stderr_truncated=stderr_capture.truncated,
            duration_seconds=duration,
        )
        if result.stdout_truncated:
            logger.warning(
                "Pipeline stdout exceeded %d bytes and was truncated job=%s",
                self.settings.max_stdout_bytes,
                job_id,
            )
        logger.info(
            "Pipeline finished job=%s exit_code=%s timed_out=%s duration=%.2fs",
            job_id,
            result.exit_code,
            result.timed_out,
            duration,
        )
        return result


def _process_group_kwargs(os_name: str) -> dict[str, object]:
    if os_name == "nt":
        return {"creationflags": getattr(subprocess, "CREATE_NEW_PROCESS_GROUP", 0)}
    return {"start_new_session": True}


def _terminate_process_tree(
    process: subprocess.Popen[bytes],
    *,
    grace_seconds: float,
    os_name: str,
) -> None:
    if os_name == "nt":
        _terminate_windows_tree(process)
        return

    # The pipeline leads its own session, so its pid is also the group id.
    _signal_group(process.pid, signal.SIGTERM)
    try:
        process.wait(timeout=grace_seconds)
    except subprocess.TimeoutExpired:
        pass
    # Children may ignore SIGTERM or outlive the leader.
    _signal_group(process.pid, signal.SIGKILL)
    try:
        process.wait(timeout=max(1.0, grace_seconds))
    except subprocess.TimeoutExpired:
        logger.error("Pipeline process %d survived SIGKILL", process.pid)


def _signal_group(pgid: int, signum: int) -> None:
    try:
        os.killpg(pgid, signum)
    except ProcessLookupError:
        return
    except OSError as error:
        logger.warning("Failed to signal process group %d: %s", pgid, error)


def _terminate_windows_tree(process: subprocess.Popen[bytes]) -> None:
    try:
        subprocess.run(  # noqa: S603
            ["taskkill", "/T", "/F", "/PID", str(process.pid)],  # noqa: S607
            check=False,
            capture_output=True,
        )
    except OSError as error:
        logger.warning("taskkill failed for pid %d: %s", process.pid, error)
    try:
        process.kill()
    except OSError:
        return
    try:
        process.wait(timeout=2)
    except subprocess.TimeoutExpired:
        logger.error("Pipeline process %d survived kill", process.pid)
