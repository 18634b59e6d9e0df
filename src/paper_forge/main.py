"""CLI entrypoint for paper-forge."""

import logging
from pathlib import Path

import rich_click as click

from paper_forge import __version__
from paper_forge.controllers import (
    DbUpgradeCommand,
    GenerateCommand,
    ListPapersCommand,
    PaperForgeCliController,
)

click.rich_click.USE_MARKDOWN = True
CONTROLLER = PaperForgeCliController()


@click.group()
@click.version_option(version=__version__, prog_name="paper-forge")
def paper_forge() -> None:
    """Exam paper generation service CLI."""


@paper_forge.command("serve")
@click.option("--host", default=None, help="Bind address. Defaults to PAPER_FORGE_HOST.")
@click.option(
    "--port",
    type=click.IntRange(min=1, max=65535),
    default=None,
    help="Bind port. Defaults to PORT or PAPER_FORGE_PORT.",
)
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warning", "error"]),
    default="info",
    show_default=True,
)
def serve(host: str | None, port: int | None, log_level: str) -> None:
    """Run the HTTP API."""

    import uvicorn

    from paper_forge.api import create_app
    from paper_forge.config import Settings

    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    settings = Settings.from_env()
    uvicorn.run(
        create_app(settings),
        host=host or settings.server.host,
        port=port or settings.server.port,
        log_level=log_level,
    )


@paper_forge.command("generate")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--subject", required=True, help="Course subject.")
@click.option("--semester", required=True, help="Semester label, for example 3.")
@click.option("--user-id", required=True, help="Owner of the stored paper.")
@click.option(
    "--timeout-seconds",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Override PAPER_FORGE_PIPELINE_TIMEOUT_SECONDS.",
)
@click.argument(
    "files",
    nargs=-1,
    required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
)
def generate(  # noqa: PLR0913
    db_path: Path | None,
    subject: str,
    semester: str,
    user_id: str,
    timeout_seconds: float | None,
    files: tuple[Path, ...],
) -> None:
    """Run one generation job on local notes FILES, in the given order."""

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    result = CONTROLLER.generate(
        GenerateCommand(
            db_path=db_path,
            subject=subject,
            semester=semester,
            user_id=user_id,
            files=files,
            timeout_seconds=timeout_seconds,
        ),
    )
    _emit_lines(result.lines)
    if not result.success:
        raise click.ClickException("Paper generation failed.")


@paper_forge.group()
def papers() -> None:
    """Stored paper inspection."""


@papers.command("list")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--user-id", required=True, help="Owner to list papers for.")
@click.option(
    "--limit",
    type=click.IntRange(min=1, max=500),
    default=20,
    show_default=True,
)
def papers_list(db_path: Path | None, user_id: str, limit: int) -> None:
    """List stored papers of one user, newest first."""

    _emit_lines(
        CONTROLLER.list_papers(
            ListPapersCommand(db_path=db_path, user_id=user_id, limit=limit),
        ),
    )


@paper_forge.group()
def db() -> None:
    """Database maintenance."""


@db.command("upgrade")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
def db_upgrade(db_path: Path | None) -> None:
    """Apply schema migrations up to head."""

    _emit_lines(CONTROLLER.upgrade_db(DbUpgradeCommand(db_path=db_path)))


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    paper_forge()
