"""
FastAPI application factory for the library inventory backend.

The factory receives its configuration and database manager explicitly;
nothing below this layer reads process-wide state.
"""

import logging
import sys
from collections.abc import Callable
from datetime import datetime

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError

from .. import __version__
from ..config import ServerConfig
from ..database.session import DatabaseManager
from ..exceptions import RepositoryException
from . import routes

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Install a stderr handler with the standard log format."""
    logging.basicConfig(level=getattr(logging, level), format=LOG_FORMAT, stream=sys.stderr)


def _validation_body(errors: list) -> dict:
    return {
        "error": "Request validation failed",
        "kind": "validation_error",
        "details": {"errors": errors},
    }


async def handle_domain_error(request: Request, exc: RepositoryException) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", "")} for err in exc.errors()
    ]
    return JSONResponse(status_code=422, content=_validation_body(errors))


async def handle_model_validation(request: Request, exc: PydanticValidationError) -> JSONResponse:
    errors = [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", "")} for err in exc.errors()
    ]
    return JSONResponse(status_code=422, content=_validation_body(errors))


def create_app(
    config: ServerConfig,
    db_manager: DatabaseManager | None = None,
    clock: Callable[[], datetime] = datetime.now,
) -> FastAPI:
    """
    Build the application.

    Args:
        config: Server configuration
        db_manager: Database manager; built from ``config`` when omitted
        clock: Time source for issue and return stamps
    """
    if db_manager is None:
        db_manager = DatabaseManager(config.get_database_url(), echo=config.debug)

    app = FastAPI(
        title="Library Inventory API",
        description="Loan ledger and availability engine for a library inventory",
        version=__version__,
        debug=config.debug,
    )
    app.state.config = config
    app.state.db_manager = db_manager
    app.state.clock = clock

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(RepositoryException, handle_domain_error)
    app.add_exception_handler(RequestValidationError, handle_request_validation)
    app.add_exception_handler(PydanticValidationError, handle_model_validation)

    app.include_router(routes.router, prefix="/api")
    return app
