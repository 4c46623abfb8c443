# test_service/main.py
from __future__ import annotations

import logging
import time
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from shared.config import APP_ENV, CORS_ORIGINS, LOG_LEVEL, PORT
from shared.database import init_db, make_engine, make_session_factory
from . import models  # noqa: F401  (registers tables on Base.metadata)
from .routes import build_router
from .public_routes import build_public_router

logging.basicConfig(level=LOG_LEVEL)
logger = logging.getLogger("test-service")

GENERIC_ERROR = "Something went wrong. Please try again later."


def _error_body(message: str, exc: Optional[Exception] = None) -> dict:
    body = {"error": message}
    # internals only leak outside production
    if exc is not None and APP_ENV == "development":
        body["message"] = str(exc)
    return body


def _install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        details = [
            {"loc": [str(p) for p in e.get("loc", ())], "msg": e.get("msg", "")}
            for e in exc.errors()
        ]
        logger.warning("Rejected %s %s: %s", request.method, request.url.path, details)
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "Invalid request.", "details": details},
        )

    @app.exception_handler(SQLAlchemyError)
    async def database_error(request: Request, exc: SQLAlchemyError):
        logger.exception("Database error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content=_error_body(GENERIC_ERROR, exc))

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content=_error_body(GENERIC_ERROR, exc))


def create_app(engine: Optional[Engine] = None) -> FastAPI:
    engine = engine or make_engine()
    SessionLocal = make_session_factory(engine)
    init_db(engine)

    app = FastAPI(title="LMS Test Service", version="1.0.0")

    allow_credentials = True
    if CORS_ORIGINS == ["*"]:
        # Browsers reject "*" with credentials
        allow_credentials = False

    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=allow_credentials,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info("%s %s -> %s (%.1f ms)", request.method, request.url.path, response.status_code, elapsed_ms)
        return response

    _install_error_handlers(app)

    app.include_router(build_router(SessionLocal), prefix="/api/admin/test", tags=["Admin Tests"])
    app.include_router(build_public_router(SessionLocal), prefix="/api/tests", tags=["Tests"])

    @app.get("/health", operation_id="health_check", tags=["Health"])
    async def health_check():
        return {"status": "healthy", "service": "test-service"}

    @app.get("/", operation_id="root", tags=["Root"])
    async def root():
        return {
            "service": "LMS Test Service",
            "version": "1.0.0",
            "docs": "/docs",
            "openapi": "/openapi.json",
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=PORT)
