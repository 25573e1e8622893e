"""FastAPI surface over the expense services.

Exposes the approval queues and actions, expense submission, and the
local split-total and per diem calculators. Every gateway-backed route
acts as the caller identified by ``Authorization: Bearer <token>`` within
the organization named by ``X-Organization-Id``.
"""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from expense_app.api.routes import register_routes
from expense_app.config import get_settings
from expense_app.core.errors import (
    GatewayError,
    NotAuthenticatedError,
    PreconditionError,
    RowNotVisibleError,
    ValidationFailedError,
)
from expense_app.observability.tracing import configure_logging, log_failure

tags_metadata = [
    {
        "name": "Approvals",
        "description": "Approval queues and approve / reject actions"
    },
    {
        "name": "Expenses",
        "description": "Expense submission"
    },
    {
        "name": "Calculations",
        "description": "Split-total validation and per diem math; no gateway access."
    }
]

configure_logging(get_settings().log_level)

app = FastAPI(
    title='Expense App Service',
    version='1.0.0',
    description='Expense management over the hosted gateway',
    openapi_tags=tags_metadata
)


def gateway_status(exc: GatewayError) -> int:
    if isinstance(exc, RowNotVisibleError):
        return 404
    if exc.status_code is not None and 400 <= exc.status_code < 500:
        return exc.status_code
    return 502


@app.exception_handler(PreconditionError)
async def precondition_handler(request: Request, exc: PreconditionError):
    status = 401 if isinstance(exc, NotAuthenticatedError) else 400
    return JSONResponse(status_code=status, content={"detail": str(exc)})


@app.exception_handler(ValidationFailedError)
async def validation_handler(request: Request, exc: ValidationFailedError):
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.exception_handler(GatewayError)
async def gateway_handler(request: Request, exc: GatewayError):
    status = gateway_status(exc)
    log_failure("api", "api.gateway_error", exc, path=request.url.path, status=status, code=exc.code)
    return JSONResponse(
        status_code=status,
        content={"detail": exc.message, "code": exc.code, "hint": exc.hint},
    )


# Register all API routes
register_routes(app)
