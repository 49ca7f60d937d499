import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from exambank.api.v1.api import api_router
from exambank.core.config import get_settings
from exambank.core.errors import ExamBankError, ValidationError
from exambank.db.router import DatabaseRouter

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


async def exam_bank_error_handler(request: Request, exc: ExamBankError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    error = ValidationError("Malformed request body or parameters", errors=jsonable_errors(exc))
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


def jsonable_errors(exc: RequestValidationError) -> list:
    return [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg"), "type": error.get("type")}
        for error in exc.errors()
    ]


def create_app(db_router: Optional[DatabaseRouter] = None) -> FastAPI:
    """Build the application; pass ``db_router`` to inject a pre-built router (tests)."""

    settings = get_settings()
    configure_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.db_router = db_router or DatabaseRouter(settings)
        yield
        await app.state.db_router.close()

    app = FastAPI(title=settings.project_name, lifespan=lifespan)

    # CORS for the admin frontend; configure origins via EXAMBANK_CORS_ORIGINS / CORS_ORIGINS (comma-separated)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(ExamBankError, exam_bank_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.include_router(api_router, prefix=settings.api_prefix)
    return app


app = create_app()
