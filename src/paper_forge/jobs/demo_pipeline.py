"""Deterministic local pipeline for launcher and service integration tests.

Honors the pipeline contract: `script subject semester file1 ... fileN`,
result on stdout, diagnostics on stderr. Behavior is selected with
PAPER_FORGE_DEMO_CASE so the same script can exercise every outcome.
"""

from __future__ import annotations

import json
import os
import subprocess
import sys
import time
from pathlib import Path


def main(argv: list[str] | None = None) -> int:
    """Run the case named by PAPER_FORGE_DEMO_CASE."""

    args = sys.argv[1:] if argv is None else argv
    if len(args) < 3:  # noqa: PLR2004
        print(json.dumps({"error": "Usage: subject semester file1 [file2 ...]"}))
        return 2
    subject, semester, *files = args
    case = os.getenv("PAPER_FORGE_DEMO_CASE", "success").strip().lower()
    print(f"demo pipeline case={case} files={len(files)}", file=sys.stderr)
    return _dispatch_case(case=case, subject=subject, semester=semester, files=files)


def _dispatch_case(  # noqa: PLR0911
    *,
    case: str,
    subject: str,
    semester: str,
    files: list[str],
) -> int:
    if case == "success":
        units = [
            f"Unit {index}: {Path(path).read_text('utf-8').strip()}"
            for index, path in enumerate(files, 1)
        ]
        print(f"{subject} (Semester {semester})")
        print("\n".join(units))
        return 0

    if case == "json":
        paper = {
            "subject": subject,
            "semester": semester,
            "sources": [Path(path).name for path in files],
            "questions": [{"q": "Define a stack.", "marks": 2}],
        }
        print(json.dumps(paper))
        return 0

    if case == "args":
        print(json.dumps({"argv": [subject, semester, *files], "cwd": os.getcwd()}))
        return 0

    if case == "error":
        print(json.dumps({"error": "No text extracted", "trace": "Traceback: extractor failed"}))
        return 1

    if case == "error_exit_zero":
        print(json.dumps({"error": "No text extracted"}))
        return 0

    if case == "crash":
        print("Traceback (most recent call last): boom", file=sys.stderr)
        return 3

    if case == "empty":
        return 0

    if case == "flood":
        chunk = "x" * 65_536
        for _ in range(64):
            sys.stdout.write(chunk)
        sys.stdout.flush()
        return 0

    if case == "flood_stderr":
        chunk = "w" * 65_536
        for _ in range(16):
            sys.stderr.write(chunk)
        sys.stderr.flush()
        print("Unit 1: done")
        return 0

    if case == "sleep":
        time.sleep(float(os.getenv("PAPER_FORGE_DEMO_SLEEP_SECONDS", "60")))
        print("too late")
        return 0

    if case == "spawn_child":
        child = subprocess.Popen(  # noqa: S603
            [sys.executable, "-c", "import time; time.sleep(120)"],
        )
        pid_file = os.getenv("PAPER_FORGE_DEMO_PID_FILE")
        if pid_file:
            Path(pid_file).write_text(str(child.pid), "utf-8")
        time.sleep(120)
        return 0

    print(json.dumps({"error": f"Unknown demo case: {case}"}))
    return 2


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
