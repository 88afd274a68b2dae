"""HTTP surface: link submission and queue count for the browser extension."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

from fastapi import FastAPI, HTTPException, Query, Request, Response, status
from fastapi.concurrency import run_in_threadpool
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, field_validator

from . import config
from .orchestrator import BatchTrigger, build_trigger
from .utils import is_storable_email

logger = logging.getLogger(__name__)

CORS_METHODS: Dict[str, str] = {
    "/submit-link": "POST, OPTIONS",
    "/queue-count": "GET, OPTIONS",
}


class SubmitLinkRequest(BaseModel):
    url: str = Field(min_length=1)
    email: str = Field(min_length=1)

    @field_validator("email")
    @classmethod
    def email_must_be_storable(cls, value: str) -> str:
        if not is_storable_email(value):
            raise ValueError("email must not contain path separators")
        return value


class SubmitLinkResponse(BaseModel):
    status: str = "queued"
    count: int


class QueueCountResponse(BaseModel):
    count: int


def create_app(settings: Optional[config.Settings] = None, trigger: Optional[BatchTrigger] = None) -> FastAPI:
    if trigger is None:
        if settings is None:
            raise ValueError("Either settings or trigger must be provided.")
        trigger = build_trigger(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        trigger.dispatcher.shutdown(wait=True)

    app = FastAPI(title="Link Digest", lifespan=lifespan)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        logger.warning("Rejected request to %s: %s", request.url.path, exc.errors())
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={
                "detail": "Invalid request.",
                "invalid_fields": [str(err["loc"][-1]) for err in exc.errors()],
            },
        )

    @app.middleware("http")
    async def cors_headers(request: Request, call_next: Any) -> Response:
        methods = CORS_METHODS.get(request.url.path)
        if methods is None:
            return await call_next(request)
        if request.method == "OPTIONS":
            response = Response(status_code=status.HTTP_200_OK)
        else:
            response = await call_next(request)
        response.headers["Access-Control-Allow-Origin"] = "*"
        response.headers["Access-Control-Allow-Methods"] = methods
        response.headers["Access-Control-Allow-Headers"] = "Content-Type"
        return response

    @app.post("/submit-link", response_model=SubmitLinkResponse)
    async def submit_link(payload: SubmitLinkRequest) -> SubmitLinkResponse:
        logger.info("Received link %s for %s", payload.url, payload.email)
        queue = await run_in_threadpool(trigger.submit, payload.email, payload.url)
        return SubmitLinkResponse(count=len(queue.links))

    @app.get("/queue-count", response_model=QueueCountResponse)
    async def queue_count(email: str = Query(min_length=1)) -> QueueCountResponse:
        if not is_storable_email(email):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid email.")
        count = await run_in_threadpool(trigger.store.count, email)
        return QueueCountResponse(count=count)

    @app.get("/health")
    async def health() -> Dict[str, str]:
        return {"status": "ok"}

    return app


def serve(settings: config.Settings) -> None:
    import uvicorn

    app = create_app(settings)
    logger.info("Server starting on %s:%s", settings.host, settings.port)
    uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)
