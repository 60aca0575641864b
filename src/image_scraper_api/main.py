"""FastAPI application wiring for the image scraping service.

Terms used in this file:
- Task: one scrape request's tracked status, polled by id.
- Envelope: `{status, message, data}` body shared by the scrape endpoints.
- app.state: shared runtime objects (settings, storage, orchestrator).
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import httpx
import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse, PlainTextResponse

from .app.archiver import ClientFactory, ImageArchiver, reset_output_dir
from .app.browser import SessionFactory, build_playwright_session_factory
from .app.models import APIResponse, ScrapeRequest, Task
from .app.orchestrator import ScrapeOrchestrator
from .app.settings import Settings, get_settings
from .app.storage import InMemoryTaskStorage

logger = logging.getLogger(__name__)


def create_app(
    *,
    settings_override: Settings | None = None,
    storage: InMemoryTaskStorage | None = None,
    session_factory: SessionFactory | None = None,
    client_factory: ClientFactory | None = None,
) -> FastAPI:
    """Application factory.

    Tests pass fakes for the browsing session and HTTP client; production uses
    Playwright and httpx built from settings.
    """
    settings = settings_override or get_settings()
    archiver = ImageArchiver(
        output_dir=settings.output_dir,
        client_factory=client_factory or _build_client_factory(settings),
        retention_s=settings.archive_retention_s,
    )
    orchestrator = ScrapeOrchestrator(
        session_factory=session_factory or build_playwright_session_factory(settings),
        archiver=archiver,
        search_base_url=settings.search_base_url,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        reset_output_dir(settings.output_dir)
        logger.info("app event=startup output_dir=%s", settings.output_dir)
        yield
        await app.state.orchestrator.shutdown()
        logger.info("app event=shutdown")

    app = FastAPI(title=settings.app_name, version="0.1.0", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["Location"],
    )
    # Shared objects live in app.state so route handlers can reuse them.
    app.state.settings = settings
    app.state.storage = storage if storage is not None else InMemoryTaskStorage()
    app.state.archiver = archiver
    app.state.orchestrator = orchestrator

    @app.get("/", response_class=PlainTextResponse)
    def home() -> str:
        return "Server is up & running..."

    @app.get("/health")
    @app.get("/healthz")
    @app.get("/live")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    # Async so the orchestrator can spawn its job on the server's event loop.
    @app.post("/scrape-google-images", status_code=202)
    async def scrape_google_images(
        request: Request,
        payload: ScrapeRequest | None = None,
    ) -> JSONResponse:
        payload = payload or ScrapeRequest()
        if not payload.search or not payload.num_of_images or payload.num_of_images < 1:
            return _envelope(400, "fail", message="search or numOfImages is not defined")

        def on_task_created(task: Task) -> Task:
            return request.app.state.storage.add_task(task)

        task = request.app.state.orchestrator.start(
            payload.search,
            payload.num_of_images,
            on_task_created,
            payload.search_filter(),
        )
        response = _envelope(202, "success", data=task.snapshot())
        response.headers["Location"] = str(
            request.url_for("check_scraping_progress", task_id=task.task_id)
        )
        return response

    @app.get("/check-scraping-progress/{task_id}")
    def check_scraping_progress(task_id: str, request: Request) -> JSONResponse:
        task = request.app.state.storage.get_task(task_id)
        if task is None:
            return _envelope(404, "fail", message="Task does not exist, invalid taskId")
        return _envelope(200, "success", data=task.snapshot())

    @app.get("/download-scraped-images/{task_id}", response_model=None)
    def download_scraped_images(task_id: str, request: Request) -> FileResponse | JSONResponse:
        # Only ids this process issued map to a path under output_dir.
        if request.app.state.storage.get_task(task_id) is None:
            return _envelope(404, "fail", message="File Does Not Exist")
        zip_path = request.app.state.archiver.archive_path(task_id)
        if not zip_path.is_file():
            return _envelope(404, "fail", message="File Does Not Exist")
        return FileResponse(zip_path, media_type="application/zip", filename=zip_path.name)

    return app


def run() -> None:
    """Console entry point: serve the module-level app with uvicorn."""
    settings = get_settings()
    uvicorn.run(
        "image_scraper_api.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level,
    )


def _build_client_factory(settings: Settings) -> ClientFactory:
    def build_client() -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=settings.download_timeout_s, follow_redirects=True)

    return build_client


def _envelope(
    status_code: int,
    status: str,
    *,
    message: str | None = None,
    data: dict[str, Any] | None = None,
) -> JSONResponse:
    body = APIResponse(status=status, message=message, data=data or {})
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


# Module-level app for `uvicorn image_scraper_api.main:app`.
app = create_app()
