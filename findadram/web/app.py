"""FastAPI application factory for Find a Dram."""

import logging
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from findadram import __version__
from findadram.core.errors import SafetyRejection, TrawlerError
from findadram.db.engine import init_db

logger = logging.getLogger(__name__)

# Load .env file from project root
_project_root = Path(__file__).parent.parent.parent
_env_file = _project_root / ".env"
if _env_file.exists():
    load_dotenv(_env_file)


def error_response(error: TrawlerError) -> JSONResponse:
    """Structured JSON body for a pipeline error."""
    body: dict[str, str] = {"error": error.user_message}
    if isinstance(error, SafetyRejection):
        body["reason"] = error.reason
    if error.job_id:
        body["job_id"] = error.job_id
    return JSONResponse(body, status_code=error.status_code)


async def handle_trawler_error(request: Request, exc: TrawlerError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.warning(f"{request.method} {request.url.path} failed: {exc.message}")
    return error_response(exc)


async def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        {"error": "Invalid request", "detail": jsonable_encoder(exc.errors())},
        status_code=400,
    )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Find a Dram",
        description="Trawls bar menus and keeps a whiskey catalog up to date",
        version=__version__,
    )

    # Initialize database tables
    init_db()

    app.add_exception_handler(TrawlerError, handle_trawler_error)
    app.add_exception_handler(RequestValidationError, handle_request_validation)

    # Include routers (import here to avoid circular imports)
    from findadram.web.routes import trawl

    app.include_router(trawl.router)

    return app


# Application instance
app = create_app()
