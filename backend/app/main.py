"""
SiteLedger API

Wires the v1 routers, CORS and the error contract. Every error leaves
the API as {"error": CODE, "message": str, "details": {...}}.
"""
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.api.v1 import router as api_v1_router
from app.core.config import settings
from app.db.base import Base
from app.db.session import engine, get_db
from app.exceptions import SiteLedgerException
from app.logging_config import setup_logging, get_logger
from app import models  # noqa: F401  registers tables on Base.metadata

setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        "SiteLedger API up",
        extra={"version": settings.VERSION, "environment": settings.ENVIRONMENT, "database": engine.url.get_backend_name()},
    )
    if settings.is_sqlite and settings.is_development:
        Base.metadata.create_all(bind=engine)
    yield
    logger.info("SiteLedger API stopped")


def _error(status_code: int, code: str, message: str, details: Optional[Dict[str, Any]] = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": code, "message": message, "details": details or {}},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Map domain, validation and unexpected errors onto the error body"""

    @app.exception_handler(SiteLedgerException)
    async def domain_error(request: Request, exc: SiteLedgerException):
        # 4xx are the caller's problem; only server-side failures are errors
        log = logger.error if exc.status_code >= 500 else logger.warning
        log(exc.message, extra={"error_code": exc.error_code, "details": exc.details, "path": request.url.path})
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        errors = [
            {
                "field": ".".join(str(loc) for loc in error["loc"] if loc != "body"),
                "message": error["msg"],
                "type": error["type"],
            }
            for error in exc.errors()
        ]
        logger.warning("Rejected request body", extra={"path": request.url.path, "errors": errors})
        return _error(422, "VALIDATION_ERROR", "Request validation failed", {"errors": errors})

    @app.exception_handler(SQLAlchemyError)
    async def database_error(request: Request, exc: SQLAlchemyError):
        logger.error("Database error outside a unit of work", extra={"path": request.url.path}, exc_info=True)
        return _error(500, "INTERNAL_ERROR", "A database error occurred")

    @app.exception_handler(Exception)
    async def unexpected_error(request: Request, exc: Exception):
        logger.error("Unhandled error", extra={"path": request.url.path}, exc_info=True)
        return _error(500, "INTERNAL_ERROR", "An unexpected error occurred")


def create_app() -> FastAPI:
    app = FastAPI(
        title=f"{settings.PROJECT_NAME} API",
        description="Construction project materials, BOM tracking and purchase request approvals",
        version=settings.VERSION,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_exception_handlers(app)
    app.include_router(api_v1_router, prefix=settings.API_V1_STR)

    @app.get("/health")
    async def health_check(db: Session = Depends(get_db)):
        """Liveness plus a round trip to the database"""
        db.execute(text("SELECT 1"))
        return {"status": "healthy", "database": "ok", "version": settings.VERSION}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("app.main:app", host="0.0.0.0", port=8000, reload=settings.DEBUG)
