from contextlib import asynccontextmanager
from http import HTTPStatus
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from .api import auth, reports, users
from .core.config import settings, DEFAULT_JWT_SECRET
from .domain.errors import IReporterError, StorageFailure, Unauthenticated, ValidationFailed
from .infrastructure.database import init_db

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


def validate_config():
    """Validate critical configuration settings on startup."""
    if settings.is_production:
        if settings.JWT_SECRET_KEY == DEFAULT_JWT_SECRET:
            raise RuntimeError(
                "SECURITY ERROR: JWT_SECRET_KEY must be changed from default in production! "
                "Set a secure random string via environment variable."
            )

    if len(settings.JWT_SECRET_KEY) < 32:
        raise RuntimeError(
            f"SECURITY ERROR: JWT_SECRET_KEY must be at least 32 characters "
            f"(current: {len(settings.JWT_SECRET_KEY)} chars)"
        )

    if settings.is_production:
        localhost_origins = [o for o in settings.BACKEND_CORS_ORIGINS if "localhost" in o]
        if localhost_origins:
            logger.warning(
                f"WARNING: CORS origins contain localhost URLs in production: {localhost_origins}. "
                "Consider removing localhost from BACKEND_CORS_ORIGINS env var."
            )

    logger.info(f"Config validation passed. Production mode: {settings.is_production}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """FastAPI lifespan events for startup and shutdown."""
    logger.info("Starting iReporter API...")
    validate_config()
    init_db()

    yield

    logger.info("Shutting down iReporter API...")


def _error_body(code: str, detail) -> dict:
    return {"success": False, "error": code, "detail": detail}


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(IReporterError)
    async def domain_error_handler(request: Request, exc: IReporterError):
        headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, Unauthenticated) else None
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(exc.code, exc.message),
            headers=headers,
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        # Routing errors and the login throttle use the same body shape
        code = HTTPStatus(exc.status_code).phrase.replace(" ", "").replace("-", "")
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(code, exc.detail),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=ValidationFailed.status_code,
            content=_error_body(ValidationFailed.code, jsonable_encoder(exc.errors())),
        )

    @app.exception_handler(SQLAlchemyError)
    async def storage_error_handler(request: Request, exc: SQLAlchemyError):
        logger.error(f"Unhandled database error on {request.method} {request.url.path}: {exc}")
        return JSONResponse(
            status_code=StorageFailure.status_code,
            content=_error_body(StorageFailure.code, StorageFailure.default_message),
        )


app = FastAPI(title=settings.PROJECT_NAME, lifespan=lifespan)

if settings.BACKEND_CORS_ORIGINS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.BACKEND_CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Total-Count"],
    )

register_exception_handlers(app)

app.include_router(auth.router, prefix=f"{settings.API_PREFIX}/auth", tags=["authentication"])
app.include_router(users.router, prefix=f"{settings.API_PREFIX}/users", tags=["users"])
app.include_router(reports.router, prefix=f"{settings.API_PREFIX}/reports", tags=["reports"])


@app.get("/health")
def health_check():
    return {"status": "healthy"}
