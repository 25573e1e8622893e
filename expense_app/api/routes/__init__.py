from fastapi import FastAPI

from .approvals import router as approvals_router
from .calculations import router as calculations_router
from .expenses import router as expenses_router

def register_routes(app: FastAPI):
    app.include_router(approvals_router, prefix="/v1")
    app.include_router(expenses_router, prefix="/v1")
    app.include_router(calculations_router, prefix="/v1")
