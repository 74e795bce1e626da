"""
Global Error Handlers for the Employee Portal Accounting Core

Every failure leaves the service in the same envelope as a success:
``{"success": false, "data": null, "error": {...}}``. Expected outcomes carry
their taxonomy code; anything unexpected is reported as INTERNAL_SERVER_ERROR.
"""

import logging
import traceback
from typing import Dict, Any
from datetime import datetime, timezone

from fastapi import Request, status
from fastapi.responses import JSONResponse
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from sqlalchemy.exc import SQLAlchemyError, IntegrityError, OperationalError

from portal.core.exceptions import BaseAPIException
from portal.core.config import settings

logger = logging.getLogger(__name__)


def create_error_response(
    status_code: int,
    detail: str,
    error_code: str = None,
    error_data: Dict[str, Any] = None,
    request_id: str = None
) -> JSONResponse:
    """Create standardized error envelope."""
    error = {"code": error_code or "ERROR", "message": detail}
    if error_data:
        error["details"] = error_data

    content = {
        "success": False,
        "data": None,
        "error": error,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    if request_id:
        content["request_id"] = request_id

    return JSONResponse(status_code=status_code, content=jsonable_encoder(content))


def _request_context(request: Request) -> Dict[str, Any]:
    return {
        "request_id": getattr(request.state, "request_id", None),
        "path": request.url.path,
        "method": request.method,
    }


async def base_api_exception_handler(request: Request, exc: BaseAPIException) -> JSONResponse:
    """Handle the accounting core's own exceptions."""
    context = _request_context(request)
    logger.warning(
        f"API Exception: {exc.error_code} - {exc.detail}",
        extra={"status_code": exc.status_code, "error_data": exc.error_data, **context}
    )

    return create_error_response(
        status_code=exc.status_code,
        detail=exc.detail,
        error_code=exc.error_code,
        error_data=exc.error_data,
        request_id=context["request_id"]
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Handle FastAPI and Starlette HTTP exceptions (unknown routes, wrong methods)."""
    context = _request_context(request)
    logger.warning(f"HTTP Exception: {exc.status_code} - {exc.detail}", extra=context)

    return create_error_response(
        status_code=exc.status_code,
        detail=str(exc.detail),
        error_code="HTTP_EXCEPTION",
        request_id=context["request_id"]
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle request validation errors."""
    context = _request_context(request)
    validation_errors = [
        {
            "field": " -> ".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]

    logger.warning(
        f"Validation Error: {len(validation_errors)} validation error(s)",
        extra={"validation_errors": validation_errors, **context}
    )

    return create_error_response(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        detail="Request validation failed",
        error_code="VALIDATION_ERROR",
        error_data={"validation_errors": validation_errors},
        request_id=context["request_id"]
    )


async def sqlalchemy_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """Handle database errors that escaped a service's safe_commit."""
    context = _request_context(request)

    if isinstance(exc, IntegrityError):
        detail, error_code, status_code = "Data integrity constraint violated", "INTEGRITY_ERROR", status.HTTP_409_CONFLICT
    elif isinstance(exc, OperationalError):
        detail, error_code, status_code = "Database unavailable", "DATABASE_UNAVAILABLE", status.HTTP_503_SERVICE_UNAVAILABLE
    else:
        detail, error_code, status_code = "Database error occurred", "DATABASE_ERROR", status.HTTP_500_INTERNAL_SERVER_ERROR

    logger.error(
        f"Database Error: {error_code} - {type(exc).__name__}",
        extra={"error_details": str(exc), **context}
    )

    error_data = None
    if settings.debug:
        error_data = {"exception_type": type(exc).__name__, "original_error": str(exc)}

    return create_error_response(
        status_code=status_code,
        detail=detail,
        error_code=error_code,
        error_data=error_data,
        request_id=context["request_id"]
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle all other unhandled exceptions."""
    context = _request_context(request)
    logger.error(
        f"Unhandled Exception: {type(exc).__name__} - {str(exc)}",
        extra={"traceback": traceback.format_exc(), **context}
    )

    if settings.debug:
        detail = f"Internal server error: {str(exc)}"
        error_data = {"exception_type": type(exc).__name__}
    else:
        detail = "An unexpected error occurred. Please try again later."
        error_data = None

    return create_error_response(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=detail,
        error_code="INTERNAL_SERVER_ERROR",
        error_data=error_data,
        request_id=context["request_id"]
    )


ERROR_HANDLERS = {
    BaseAPIException: base_api_exception_handler,
    StarletteHTTPException: http_exception_handler,
    RequestValidationError: validation_exception_handler,
    SQLAlchemyError: sqlalchemy_exception_handler,
    Exception: generic_exception_handler,
}


def register_error_handlers(app):
    """Register all error handlers with the FastAPI app."""
    for exception_class, handler in ERROR_HANDLERS.items():
        app.add_exception_handler(exception_class, handler)

    logger.info("Error handlers registered successfully")
