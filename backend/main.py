import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.application.errors import (
    InvalidScheduleError,
    PostNotFoundError,
    PostStateConflictError,
    PublishingError,
)
from app.core.config import settings
from app.domain import models  # noqa: F401
from app.infrastructure.logging.setup import configure_logging
from app.interfaces.api.router import api_router
from app.interfaces.http.middleware import MetricsMiddleware, RequestIDMiddleware, TenantContextMiddleware

configure_logging()

logger = logging.getLogger("app")

PUBLISHING_ERROR_STATUS = {
    PostNotFoundError: 404,
    PostStateConflictError: 409,
    InvalidScheduleError: 400,
}

app = FastAPI(title=settings.app_name)
app.add_middleware(TenantContextMiddleware)
app.add_middleware(RequestIDMiddleware)
app.add_middleware(MetricsMiddleware)


def _error_payload(*, request: Request, error_code: str, message: str) -> dict:
    trace_id = getattr(request.state, "request_id", None)
    return {
        "error_code": error_code,
        "message": message,
        "trace_id": trace_id,
    }


@app.exception_handler(PublishingError)
async def publishing_exception_handler(request: Request, exc: PublishingError) -> JSONResponse:
    status_code = PUBLISHING_ERROR_STATUS.get(type(exc), 400)
    logger.info(
        "publishing_request_rejected path=%s status_code=%s error_code=%s",
        request.url.path,
        status_code,
        exc.error_code,
    )
    return JSONResponse(
        status_code=status_code,
        content=_error_payload(request=request, error_code=exc.error_code, message=str(exc)),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    if isinstance(exc.detail, dict) and "error_code" in exc.detail and "message" in exc.detail:
        error_code = str(exc.detail["error_code"])
        detail = str(exc.detail["message"])
    else:
        error_code = str(exc.status_code)
        detail = exc.detail if isinstance(exc.detail, str) else "Request failed"
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_payload(request=request, error_code=error_code, message=detail),
    )


@app.exception_handler(RequestValidationError)
async def request_validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=422,
        content=_error_payload(
            request=request,
            error_code="validation_error",
            message="Request validation failed",
        ),
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled_exception path=%s method=%s", request.url.path, request.method)
    return JSONResponse(
        status_code=500,
        content=_error_payload(
            request=request,
            error_code="internal_server_error",
            message="Internal server error",
        ),
    )


app.include_router(api_router)
