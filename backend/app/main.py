"""Tender evaluation FastAPI application."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from backend.app.core.config import settings
from backend.app.core.database import init_db
from backend.app.modules.tender_evaluation.errors import (
    CollaboratorError,
    InvalidOperationError,
    InvalidStateError,
    NotFoundError,
    PersistenceError,
    TenderEvaluationError,
    ValidationError,
)
from backend.app.modules.tender_evaluation.router import router as tender_evaluation_router

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    NotFoundError: 404,
    InvalidStateError: 409,
    InvalidOperationError: 409,
    ValidationError: 422,
    PersistenceError: 503,
    CollaboratorError: 502,
}


def create_app(*, initialize_database: bool = True) -> FastAPI:
    if initialize_database:
        init_db()
    app = FastAPI(title=settings.app_name, version="0.1.0")

    if settings.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    api_prefix = settings.api_v1_prefix.rstrip("/")
    app.include_router(tender_evaluation_router, prefix=api_prefix)

    # Exception Handlers
    @app.exception_handler(TenderEvaluationError)
    async def tender_evaluation_error_handler(request: Request, exc: TenderEvaluationError):
        status_code = next(
            (code for error_type, code in ERROR_STATUS.items() if isinstance(exc, error_type)),
            400,
        )
        if status_code >= 500:
            logger.warning("Tender evaluation request %s failed: %s", request.url.path, exc)
        return JSONResponse(
            status_code=status_code,
            content={"detail": str(exc), "error": type(exc).__name__},
        )

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    return app


app = create_app()
