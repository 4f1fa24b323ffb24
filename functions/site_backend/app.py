"""
FastAPI application entry point for the park website.

Run locally with ``uvicorn site_backend.app:app --reload`` from ``functions/``.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from site_backend.auth import AuthError
from site_backend.config import get_settings
from site_backend.content import ContentNotFoundError, ContentValidationError
from site_backend.pages import render_error
from site_backend.pages import router as pages_router
from site_backend.routes import router as api_router

logger = logging.getLogger(__name__)


def _is_api_request(request: Request) -> bool:
    return request.url.path.startswith(get_settings().api_prefix + "/")


async def content_validation_handler(request: Request, exc: ContentValidationError):
    if _is_api_request(request):
        return JSONResponse(status_code=400, content={"detail": str(exc)})
    return render_error(request, str(exc), status_code=400)


async def content_not_found_handler(request: Request, exc: ContentNotFoundError):
    if _is_api_request(request):
        return JSONResponse(status_code=404, content={"detail": str(exc)})
    return render_error(request, "Seite nicht gefunden.", status_code=404)


async def auth_error_handler(request: Request, exc: AuthError):
    return JSONResponse(status_code=400, content={"detail": str(exc), "code": exc.code})


async def unhandled_exception_handler(request: Request, exc: Exception):
    error_id = id(exc)
    logger.error(
        "Unhandled exception [%s] in %s %s: %s",
        error_id,
        request.method,
        request.url.path,
        exc,
        exc_info=exc,
    )
    if _is_api_request(request):
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error", "error_id": error_id},
        )
    return render_error(
        request,
        "Die Inhalte konnten nicht geladen werden.",
        status_code=500,
        retry=True,
    )


def setup_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ContentValidationError, content_validation_handler)
    app.add_exception_handler(ContentNotFoundError, content_not_found_handler)
    app.add_exception_handler(AuthError, auth_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)


def create_app() -> FastAPI:
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app = FastAPI(title=f"{settings.site_name} Backend (FastAPI)", version="0.1.0")
    app.add_middleware(
        ProxyHeadersMiddleware, trusted_hosts=settings.forwarded_allow_ips
    )
    app.include_router(api_router, prefix=settings.api_prefix)
    app.include_router(pages_router)
    setup_exception_handlers(app)
    return app


app = create_app()
