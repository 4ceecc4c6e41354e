from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from app.core.errors import OrchestratorError
from app.core.settings import S
from app.metrics import METRICS_ENABLED, metrics_endpoint, metrics_middleware, set_app_info
from app.routers.addressbook import router as addressbook_router
from app.routers.distribution import router as distribution_router
from app.routers.misc import router as misc_router

logger = logging.getLogger(__name__)


def error_envelope(error: str, status: int, upstream=None) -> dict:
    return {"ok": False, "error": error, "status": status, "upstream": upstream}


async def orchestrator_error_handler(request: Request, exc: OrchestratorError) -> JSONResponse:
    status = exc.status_code if 400 <= exc.status_code < 600 else 500
    logger.error("%s %s failed: %s (status=%s)", request.method, request.url.path, exc.message, status)
    return JSONResponse(error_envelope(exc.message, status, exc.upstream), status_code=status)


async def http_error_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse(
        error_envelope(str(exc.detail), exc.status_code),
        status_code=exc.status_code,
        headers=getattr(exc, "headers", None),
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    first = errors[0] if errors else {}
    where = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg") or "Invalid request"
    error = f"{where}: {message}" if where else message
    return JSONResponse(error_envelope(error, 400), status_code=400)


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("%s %s failed unexpectedly", request.method, request.url.path, exc_info=exc)
    return JSONResponse(error_envelope("Internal server error", 500), status_code=500)


def create_app() -> FastAPI:
    logging.basicConfig(
        level=getattr(logging, S.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app = FastAPI(title="cart-orchestrator", version="0.1.0")

    app.add_middleware(
        CORSMiddleware,
        allow_origin_regex=S.cors_origin_regex,
        allow_credentials=False,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-Requested-With"],
    )
    if METRICS_ENABLED:
        app.middleware("http")(metrics_middleware)
        set_app_info(app.title, app.version)
        app.get("/metrics")(metrics_endpoint)

    app.add_exception_handler(OrchestratorError, orchestrator_error_handler)
    app.add_exception_handler(HTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    app.include_router(misc_router)
    app.include_router(addressbook_router)
    app.include_router(distribution_router)

    return app

app = create_app()
