"""FastAPI app for vrlookup: lookup endpoint and screenshot static route."""

from __future__ import annotations

import logging
import threading
from contextlib import asynccontextmanager
from pathlib import Path
from typing import TYPE_CHECKING

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from vrlookup.api.routes import error_response, router
from vrlookup.evidence.artifacts import ArtifactRegistry
from vrlookup.settings import get_settings

if TYPE_CHECKING:
    from vrlookup.lookup.workflow import LookupWorkflow
    from vrlookup.settings.config import Settings

logger = logging.getLogger(__name__)

try:
    from importlib.metadata import version

    VERSION = version("vrlookup")
except Exception:
    VERSION = "0.0.0"


def create_app(
    settings: Settings | None = None,
    *,
    artifacts: ArtifactRegistry | None = None,
    workflow: LookupWorkflow | None = None,
) -> FastAPI:
    """Build and return the FastAPI application.

    Args:
        settings: Defaults to ``get_settings()``.
        artifacts: Screenshot registry; built from settings when omitted.
        workflow: Lookup workflow; built from settings when omitted.
    """
    from vrlookup.lookup.workflow import LookupWorkflow

    settings = settings or get_settings()
    if artifacts is None:
        artifacts = ArtifactRegistry(
            settings.artifacts.output_dir,
            ttl_sec=settings.artifacts.ttl_sec,
            url_prefix=settings.artifacts.url_prefix,
        )
    if workflow is None:
        workflow = LookupWorkflow.from_settings(settings, artifacts=artifacts)

    @asynccontextmanager
    async def lifespan(application: FastAPI):
        artifacts.start()
        try:
            yield
        finally:
            artifacts.stop()
            recognizer = getattr(workflow.captcha_resolver, "recognizer", None)
            if hasattr(recognizer, "close"):
                recognizer.close()

    application = FastAPI(
        title="Vehicle Registration Lookup",
        description="Captcha-solving lookup of vehicle inspection records.",
        version=VERSION,
        lifespan=lifespan,
    )
    application.state.settings = settings
    application.state.artifacts = artifacts
    application.state.workflow = workflow
    application.state.lookup_slots = threading.BoundedSemaphore(settings.api.max_concurrent_lookups)

    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.api.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @application.exception_handler(RequestValidationError)
    async def _invalid_body(request: Request, exc: RequestValidationError) -> JSONResponse:
        fields = ", ".join(".".join(str(p) for p in err.get("loc", ())[1:]) or "body" for err in exc.errors())
        return error_response(400, "Invalid request body", f"Invalid field(s): {fields}")

    @application.exception_handler(Exception)
    async def _unhandled(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return error_response(500, "An error occurred while processing the request", type(exc).__name__)

    application.include_router(router)

    # StaticFiles checks the directory at construction time.
    Path(artifacts.output_dir).mkdir(parents=True, exist_ok=True)
    application.mount(
        artifacts.url_prefix or "/screenshots",
        StaticFiles(directory=str(artifacts.output_dir)),
        name="screenshots",
    )
    return application
