from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from whatsapp_reminder import __version__
from whatsapp_reminder.api.deps import get_lifecycle_engine
from whatsapp_reminder.api.v1.router import api_router
from whatsapp_reminder.core.config import get_settings
from whatsapp_reminder.core.exceptions import AppError
from whatsapp_reminder.core.logging import configure_logging
from whatsapp_reminder.core.responses import error_response, success_response
from whatsapp_reminder.services.factory import prepare_store

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(settings.log_level)
    await prepare_store(app.dependency_overrides.get(get_lifecycle_engine, get_lifecycle_engine)().store)
    logger.info("Application startup")
    yield
    logger.info("Application shutdown")


settings = get_settings()
app = FastAPI(
    title=settings.project_name,
    version=__version__,
    lifespan=lifespan,
    openapi_tags=[
        {"name": "Reminders", "description": "Stored reminders and on-demand runs"},
    ],
)

app.include_router(api_router, prefix=settings.api_v1_prefix)


@app.get("/healthz", tags=["Health"])
async def healthz():
    return success_response(data={"status": "ok"})


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    return JSONResponse(
        status_code=exc.status_code,
        content=error_response(exc.code, exc.message, exc.details or None),
    )


@app.exception_handler(HTTPException)
async def http_error_handler(request: Request, exc: HTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content=error_response("http_error", str(exc.detail)),
    )


@app.exception_handler(Exception)
async def unknown_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error", exc_info=exc)
    return JSONResponse(
        status_code=500,
        content=error_response("internal_error", "Internal server error"),
    )
