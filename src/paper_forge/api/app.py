"""HTTP surface for paper generation."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, File, Form, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from paper_forge.config import Settings
from paper_forge.jobs.models import GenerationRequest, UploadedDocument
from paper_forge.jobs.service import JobService
from paper_forge.jobs.staging import MISSING_FIELDS_MESSAGE
from paper_forge.storage.repository import PaperRepository

logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None, *, service: JobService | None = None) -> FastAPI:
    """Build the application; without `service` a SQLite-backed one is created at startup."""

    settings = settings or Settings.from_env()
    settings.validate()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        repository: PaperRepository | None = None
        if service is None:
            repository = PaperRepository(
                settings.storage.db_path,
                busy_timeout_ms=settings.storage.busy_timeout_ms,
            )
            repository.init_schema()
            app.state.job_service = JobService.from_settings(settings, store=repository)
        else:
            app.state.job_service = service
        script = settings.pipeline.resolved_script()
        if not script.exists():
            logger.warning("Pipeline script not found at %s", script)
        logger.info(
            "Paper generation ready: interpreter=%s script=%s slots=%d timeout=%.0fs",
            settings.pipeline.interpreter,
            script,
            settings.pipeline.max_concurrent_jobs,
            settings.pipeline.timeout_seconds,
        )
        try:
            yield
        finally:
            if repository is not None:
                repository.close()

    app = FastAPI(title="Question Paper Generator API", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.server.cors_origins),
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RequestValidationError)
    async def reject_malformed_form(request: Request, exc: RequestValidationError) -> JSONResponse:
        # Same contract as job validation; the submitted values are never echoed.
        logger.warning(
            "Rejected malformed request %s %s: %d form errors",
            request.method,
            request.url.path,
            len(exc.errors()),
        )
        return JSONResponse(
            status_code=400,
            content={"success": False, "error": MISSING_FIELDS_MESSAGE},
        )

    @app.get("/")
    def read_root() -> dict[str, str]:
        return {"message": "Question Paper Generator API is running"}

    # Plain `def`: the blocking job runs on the server's worker threads, not the event loop.
    @app.post("/api/generate-paper")
    def generate_paper(
        subject: str | None = Form(None),
        semester: str | None = Form(None),
        user_id: str | None = Form(None),
        notes: list[UploadFile] | None = File(None),
    ) -> JSONResponse:
        job_service: JobService = app.state.job_service
        request = GenerationRequest(
            subject=subject,
            semester=semester,
            user_id=user_id,
            documents=[
                UploadedDocument(filename=upload.filename or "", stream=upload.file)
                for upload in notes or []
            ],
        )
        try:
            report = job_service.run(request)
        finally:
            for upload in notes or []:
                upload.file.close()
        return JSONResponse(
            status_code=report.response.status_code,
            content=report.response.body,
            headers=report.response.headers or None,
        )

    return app
