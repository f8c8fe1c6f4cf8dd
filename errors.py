"""API error hierarchy and the handlers that render it into the response envelope."""
import logging
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """
    Base error for every failure surfaced to API clients.

    Args:
        message: Human-readable message
        status_code: HTTP status code to respond with
        errors: Optional structured sub-errors
    """

    status_code = 500
    default_message = "Something went wrong"

    def __init__(
        self,
        message: Optional[str] = None,
        status_code: Optional[int] = None,
        errors: Optional[List[Dict[str, Any]]] = None
    ):
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        self.errors = errors or []
        super().__init__(self.message)


class InvalidInputError(ApiError):
    """Missing or malformed request fields."""
    status_code = 400
    default_message = "Invalid input"


class UnauthorizedError(ApiError):
    """Missing or invalid identity."""
    status_code = 401
    default_message = "Unauthorized request"


class ForbiddenError(ApiError):
    """Authenticated but not entitled to the resource."""
    status_code = 403
    default_message = "Forbidden"


class NotFoundError(ApiError):
    """Referenced entity does not exist."""
    status_code = 404
    default_message = "Not found"


class InvalidStateError(ApiError):
    """Operation violates a business precondition (empty cart, stock, duplicates)."""
    status_code = 400
    default_message = "Invalid state"


class InternalError(ApiError):
    """Unexpected failure, e.g. a storage error."""
    status_code = 500
    default_message = "Internal server error"


def error_body(status_code: int, message: str, errors: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
    """Build the failure envelope."""
    return {
        "success": False,
        "status_code": status_code,
        "data": None,
        "message": message,
        "errors": errors or []
    }


def error_response(
    status_code: int,
    message: str,
    errors: Optional[List[Dict[str, Any]]] = None,
    headers: Optional[Dict[str, str]] = None
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=error_body(status_code, message, errors),
        headers=headers
    )


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("Request failed", extra={
            "path": request.url.path,
            "status_code": exc.status_code,
            "error": exc.message
        })
    return error_response(exc.status_code, exc.message, exc.errors)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {
            "field": ".".join(str(part) for part in error.get("loc", ()) if part != "body"),
            "message": error.get("msg", "")
        }
        for error in exc.errors()
    ]
    return error_response(400, "Invalid request", errors)


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return error_response(exc.status_code, str(exc.detail), headers=getattr(exc, "headers", None))


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error", extra={"path": request.url.path})
    return error_response(500, InternalError.default_message)


def register_exception_handlers(app: FastAPI) -> None:
    """Render every error as the uniform response envelope."""
    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
