from time import perf_counter
from uuid import UUID, uuid4

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

from app.core.tenant import reset_current_tenant, set_current_tenant
from app.infrastructure.logging.context import (
    reset_request_id,
    reset_tenant_id,
    set_request_id,
    set_tenant_id,
)
from app.infrastructure.observability.metrics import record_request


class TenantContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        tenant_header = request.headers.get("X-Tenant-ID")
        tenant_token = None
        log_tenant_token = None

        if tenant_header:
            try:
                tenant_id = UUID(tenant_header)
            except ValueError:
                trace_id = getattr(request.state, "request_id", None) or str(uuid4())
                return JSONResponse(
                    status_code=400,
                    content={
                        "error_code": "invalid_tenant_header",
                        "message": "Invalid X-Tenant-ID header",
                        "trace_id": trace_id,
                    },
                )
            tenant_token = set_current_tenant(tenant_id)
            log_tenant_token = set_tenant_id(str(tenant_id))

        try:
            return await call_next(request)
        finally:
            if tenant_token is not None:
                reset_current_tenant(tenant_token)
            if log_tenant_token is not None:
                reset_tenant_id(log_tenant_token)


class MetricsMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        started_at = perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            record_request(
                method=request.method,
                path=request.url.path,
                status_code=status_code,
                duration_seconds=perf_counter() - started_at,
            )


class RequestIDMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid4())
        request.state.request_id = request_id
        request_token = set_request_id(request_id)
        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id
            return response
        finally:
            reset_request_id(request_token)
