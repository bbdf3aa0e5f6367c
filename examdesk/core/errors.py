"""Error handlers and the shared error body."""

import logging
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException
from pymongo.errors import (
    AutoReconnect,
    ExecutionTimeout,
    NetworkTimeout,
    PyMongoError,
    ServerSelectionTimeoutError,
)

from examdesk.exams.errors import ExamError

logger = logging.getLogger(__name__)

# Timeouts a client may safely retry: nothing is written before the last step
TRANSIENT_DB_ERRORS = (AutoReconnect, ExecutionTimeout, NetworkTimeout, ServerSelectionTimeoutError)


def error_body(code: str, message: str, details: Any = None) -> dict:
    return {"success": False, "code": code, "message": message, "details": details}


async def exam_error_handler(request: Request, exc: ExamError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.code, exc.message, exc.details),
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    if isinstance(exc.detail, dict):
        message = exc.detail.get("message", "Request failed")
    else:
        message = str(exc.detail)
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body("HTTP_ERROR", message),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = [
        {
            "field": ".".join(str(loc) for loc in error.get("loc", [])),
            "issue": error.get("msg", "Validation error"),
        }
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=error_body("VALIDATION_ERROR", "Invalid request data", details),
    )


async def database_error_handler(request: Request, exc: PyMongoError) -> JSONResponse:
    if isinstance(exc, TRANSIENT_DB_ERRORS):
        logger.warning("Database timeout on %s: %s", request.url.path, exc)
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content=error_body("TRANSIENT_FAILURE", "Database is temporarily unavailable, please retry"),
        )
    logger.error("Database error on %s", request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body("DATABASE_ERROR", "Could not complete the request due to a database error"),
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Unhandled error on %s", request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body("INTERNAL_ERROR", "Something went wrong, please try again later"),
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ExamError, exam_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(PyMongoError, database_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
