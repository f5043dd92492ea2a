"""Global exception handlers.

Domain errors become the standard error envelope with their own status,
request validation failures become 400 with field details, and anything
else is a 500 that never leaks internals.
"""

from datetime import datetime, timezone

import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.core.errors import TestForgeError

logger = structlog.get_logger()


def register_error_handlers(app: FastAPI) -> None:
    """Register all global error handlers on the FastAPI app."""
    _register_domain_error_handler(app)
    _register_validation_error_handler(app)
    _register_generic_error_handler(app)


def _register_domain_error_handler(app: FastAPI) -> None:
    @app.exception_handler(TestForgeError)
    async def domain_error_handler(request: Request, exc: TestForgeError):
        log = logger.warning if exc.http_status < 500 else logger.error
        log(
            "Request failed",
            method=request.method,
            path=request.url.path,
            status_code=exc.http_status,
            message=exc.message,
            **exc.log_fields(),
        )
        return JSONResponse(status_code=exc.http_status, content=exc.to_response())


def _register_validation_error_handler(app: FastAPI) -> None:
    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        logger.warning("Request validation failed", path=request.url.path, errors=len(exc.errors()))
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={
                "error": {
                    "code": "VALIDATION_ERROR",
                    "message": "Request validation failed",
                    "timestamp": datetime.now(timezone.utc).isoformat(),
                    "details": [
                        {
                            "field": ".".join(str(part) for part in err.get("loc", [])),
                            "message": err.get("msg", ""),
                        }
                        for err in exc.errors()
                    ],
                }
            },
        )


def _register_generic_error_handler(app: FastAPI) -> None:
    @app.exception_handler(Exception)
    async def generic_error_handler(request: Request, exc: Exception):
        logger.error(
            "Unhandled exception",
            method=request.method,
            path=request.url.path,
            error=str(exc),
            exc_info=True,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": {
                    "code": "INTERNAL_ERROR",
                    "message": "An unexpected error occurred",
                    "timestamp": datetime.now(timezone.utc).isoformat(),
                }
            },
        )
