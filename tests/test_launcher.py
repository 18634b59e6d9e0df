from __future__ import annotations

import json
import sys
import threading
import time
from dataclasses import replace
from pathlib import Path

import allure
import pytest

from paper_forge.config import Settings
from paper_forge.jobs.errors import PipelineBusyError, PipelineLaunchError
from paper_forge.jobs.launcher import (
    LaunchRequest,
    PipelineLauncher,
    PipelineSlots,
    build_pipeline_argv,
)

pytestmark = [
    allure.epic("Job Orchestration"),
    allure.feature("Job Launcher"),
]


def _notes(tmp_path: Path, count: int) -> list[Path]:
    paths = []
    for index in range(count):
        path = tmp_path / f"note-{index}.txt"
        path.write_text(f"topic {index}", "utf-8")
        paths.append(path)
    return paths


def _request(files: list[Path], *, job_id: str = "job-test") -> LaunchRequest:
    return LaunchRequest(job_id=job_id, subject="Data Structures", semester="3", files=files)


def _is_running(pid: int) -> bool:
    stat = Path(f"/proc/{pid}/stat")
    try:
        fields = stat.read_text().rsplit(")", 1)[1].split()
    except (FileNotFoundError, ProcessLookupError):
        return False
    return fields[0] != "Z"


@pytest.mark.parametrize("count", [1, 2, 10])
def test_argv_has_subject_semester_then_files_in_order(count: int) -> None:
    files = [Path(f"/staged/notes-{index:02d}.pdf") for index in range(count)]

    argv = build_pipeline_argv(
        interpreter="python3",
        script=Path("/app/backend/ml/generate_paper.py"),
        subject="Data Structures",
        semester="3",
        files=files,
    )

    assert argv[:2] == ["python3", "/app/backend/ml/generate_paper.py"]
    assert len(argv[2:]) == count + 2
    assert argv[2:] == ["Data Structures", "3", *(str(path) for path in files)]


def test_relative_script_is_anchored_at_project_root(settings: Settings, tmp_path: Path) -> None:
    pipeline = replace(settings.pipeline, script_path=Path("backend/ml/generate_paper.py"))
    launcher = PipelineLauncher(pipeline)

    argv = launcher.build_argv(_request([]))

    assert argv[1] == str((tmp_path / "backend" / "ml" / "generate_paper.py").resolve())


def test_pipeline_receives_ordered_args_and_runs_in_project_root(
    settings: Settings,
    tmp_path: Path,
    demo_case,
) -> None:
    demo_case("args")
    files = _notes(tmp_path, 3)
    launcher = PipelineLauncher(settings.pipeline)

    result = launcher.run(_request(files))

    assert result.exit_code == 0
    assert not result.timed_out
    payload = json.loads(result.stdout)
    assert payload["argv"] == ["Data Structures", "3", *(str(path) for path in files)]
    assert Path(payload["cwd"]).resolve() == tmp_path.resolve()
    assert "demo pipeline case=args files=3" in result.stderr


def test_full_output_is_captured_before_result(
    settings: Settings,
    tmp_path: Path,
    demo_case,
) -> None:
    demo_case("flood")
    pipeline = replace(settings.pipeline, max_stdout_bytes=8 * 1024 * 1024)

    result = PipelineLauncher(pipeline).run(_request(_notes(tmp_path, 1)))

    assert result.exit_code == 0
    assert len(result.stdout) == 64 * 65_536
    assert not result.stdout_truncated


def test_stdout_capture_is_bounded(settings: Settings, tmp_path: Path, demo_case) -> None:
    demo_case("flood")
    pipeline = replace(settings.pipeline, max_stdout_bytes=1_000)

    result = PipelineLauncher(pipeline).run(_request(_notes(tmp_path, 1)))

    assert result.exit_code == 0
    assert len(result.stdout) == 1_000
    assert result.stdout_truncated


def test_stderr_capture_is_bounded(settings: Settings, tmp_path: Path, demo_case) -> None:
    demo_case("flood_stderr")
    pipeline = replace(settings.pipeline, max_stderr_bytes=1_000)

    result = PipelineLauncher(pipeline).run(_request(_notes(tmp_path, 1)))

    assert result.exit_code == 0
    assert len(result.stderr) == 1_000
    assert result.stderr_truncated
    assert result.stdout.strip() == "Unit 1: done"
    assert not result.stdout_truncated


def test_timeout_terminates_process(settings: Settings, tmp_path: Path, demo_case) -> None:
    demo_case("sleep", PAPER_FORGE_DEMO_SLEEP_SECONDS="30")
    pipeline = replace(settings.pipeline, timeout_seconds=1.0)

    started = time.monotonic()
    result = PipelineLauncher(pipeline).run(_request(_notes(tmp_path, 1)))

    assert result.timed_out
    assert result.exit_code != 0
    assert "too late" not in result.stdout
    assert time.monotonic() - started < 15


@pytest.mark.skipif(not sys.platform.startswith("linux"), reason="inspects /proc")
def test_timeout_kills_grandchild_processes(settings: Settings, tmp_path: Path, demo_case) -> None:
    pid_file = tmp_path / "child.pid"
    demo_case("spawn_child", PAPER_FORGE_DEMO_PID_FILE=str(pid_file))
    pipeline = replace(settings.pipeline, timeout_seconds=3.0)

    result = PipelineLauncher(pipeline).run(_request(_notes(tmp_path, 1)))

    assert result.timed_out
    child_pid = int(pid_file.read_text("utf-8"))
    deadline = time.monotonic() + 5
    while _is_running(child_pid) and time.monotonic() < deadline:
        time.sleep(0.1)
    assert not _is_running(child_pid)


def test_missing_interpreter_raises_launch_error(settings: Settings, tmp_path: Path) -> None:
    pipeline = replace(settings.pipeline, interpreter=str(tmp_path / "no-such-python"))

    with pytest.raises(PipelineLaunchError, match="Pipeline command not found") as error:
        PipelineLauncher(pipeline).run(_request(_notes(tmp_path, 1)))

    assert error.value.command_head.endswith("no-such-python")


def test_launch_error_releases_slot(settings: Settings, tmp_path: Path) -> None:
    pipeline = replace(settings.pipeline, interpreter=str(tmp_path / "no-such-python"))
    launcher = PipelineLauncher(pipeline)

    with pytest.raises(PipelineLaunchError):
        launcher.run(_request(_notes(tmp_path, 1)))

    assert launcher.slots.in_use == 0


def test_slots_raise_busy_when_saturated() -> None:
    slots = PipelineSlots(size=1, wait_seconds=0.05)

    with slots.acquire("first"):
        assert slots.in_use == 1
        with pytest.raises(PipelineBusyError) as error, slots.acquire("second"):
            pass

    assert error.value.retry_after_seconds >= 1
    assert slots.in_use == 0


def test_concurrent_runs_never_exceed_slot_cap(
    settings: Settings,
    tmp_path: Path,
    demo_case,
) -> None:
    demo_case("sleep", PAPER_FORGE_DEMO_SLEEP_SECONDS="0.3")
    pipeline = replace(settings.pipeline, max_concurrent_jobs=2, slot_wait_seconds=30.0)
    launcher = PipelineLauncher(pipeline)
    files = _notes(tmp_path, 1)
    peak = 0
    done = threading.Event()
    results = []

    def _watch() -> None:
        nonlocal peak
        while not done.is_set():
            peak = max(peak, launcher.slots.in_use)
            time.sleep(0.01)

    def _run(index: int) -> None:
        results.append(launcher.run(_request(files, job_id=f"job-{index}")))

    watcher = threading.Thread(target=_watch)
    watcher.start()
    workers = [threading.Thread(target=_run, args=(index,)) for index in range(5)]
    for worker in workers:
        worker.start()
    for worker in workers:
        worker.join(timeout=30)
    done.set()
    watcher.join()

    assert len(results) == 5
    assert all(result.exit_code == 0 for result in results)
    assert 1 <= peak <= 2
