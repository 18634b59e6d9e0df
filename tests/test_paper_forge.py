import sys
from pathlib import Path

import allure
from click.testing import CliRunner

from paper_forge import __version__
from paper_forge.jobs import demo_pipeline
from paper_forge.main import paper_forge

pytestmark = [
    allure.epic("Service Runtime"),
    allure.feature("CLI Ops"),
]


def _pipeline_env(tmp_path: Path, case: str) -> dict[str, str]:
    return {
        "PAPER_FORGE_PROJECT_ROOT": str(tmp_path),
        "PAPER_FORGE_PIPELINE_INTERPRETER": sys.executable,
        "PAPER_FORGE_PIPELINE_SCRIPT": str(Path(demo_pipeline.__file__).resolve()),
        "PAPER_FORGE_STAGING_ROOT": str(tmp_path / "uploads"),
        "PAPER_FORGE_DEMO_CASE": case,
    }


def _notes(tmp_path: Path) -> list[str]:
    first = tmp_path / "arrays.txt"
    first.write_text("Arrays", encoding="utf-8")
    second = tmp_path / "trees.txt"
    second.write_text("Trees", encoding="utf-8")
    return [str(first), str(second)]


def test_version():
    assert __version__


def test_version_option():
    runner = CliRunner()
    result = runner.invoke(paper_forge, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_generate_then_list(tmp_path: Path) -> None:
    runner = CliRunner()
    db_path = tmp_path / "cli.db"
    notes = _notes(tmp_path)

    result = runner.invoke(
        paper_forge,
        [
            "generate",
            "--db-path",
            str(db_path),
            "--subject",
            "Data Structures",
            "--semester",
            "3",
            "--user-id",
            "u@example.com",
            *notes,
        ],
        env=_pipeline_env(tmp_path, "success"),
    )

    assert result.exit_code == 0, result.output
    assert "outcome=success status=200" in result.output
    assert "Unit 2: Trees" in result.output
    assert [Path(path).read_text(encoding="utf-8") for path in notes] == ["Arrays", "Trees"]
    assert not list((tmp_path / "uploads").rglob("*"))

    listed = runner.invoke(
        paper_forge,
        ["papers", "list", "--db-path", str(db_path), "--user-id", "u@example.com"],
    )
    assert listed.exit_code == 0, listed.output
    assert "Papers for u@example.com: 1" in listed.output
    assert "subject='Data Structures'" in listed.output


def test_generate_failure_exits_non_zero(tmp_path: Path) -> None:
    runner = CliRunner()

    result = runner.invoke(
        paper_forge,
        [
            "generate",
            "--db-path",
            str(tmp_path / "cli.db"),
            "--subject",
            "Data Structures",
            "--semester",
            "3",
            "--user-id",
            "u@example.com",
            *_notes(tmp_path),
        ],
        env=_pipeline_env(tmp_path, "error"),
    )

    assert result.exit_code == 1
    assert "outcome=pipeline_error status=500" in result.output
    assert '"error": "No text extracted"' in result.output
    assert "Paper generation failed." in result.output


def test_papers_list_empty(tmp_path: Path) -> None:
    runner = CliRunner()

    result = runner.invoke(
        paper_forge,
        ["papers", "list", "--db-path", str(tmp_path / "empty.db"), "--user-id", "nobody"],
    )

    assert result.exit_code == 0, result.output
    assert "No papers stored for user nobody." in result.output


def test_db_upgrade(tmp_path: Path) -> None:
    runner = CliRunner()
    db_path = tmp_path / "upgrade.db"

    result = runner.invoke(paper_forge, ["db", "upgrade", "--db-path", str(db_path)])

    assert result.exit_code == 0, result.output
    assert f"Schema is up to date: {db_path}" in result.output
    assert db_path.exists()
