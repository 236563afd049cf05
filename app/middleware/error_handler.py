"""
Global error handlers

Every failure leaves the API as `{"success": false, "message": ...}`.
"""
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.config import get_settings
from app.utils.logger import get_logger

logger = get_logger(__name__)


def error_response(status_code: int, message: str, headers=None, **extra) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "message": message, **extra},
        headers=headers,
    )


def format_validation_errors(errors) -> list:
    """Flatten pydantic errors into [{field, message}]"""
    formatted = []
    for err in errors:
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path")]
        formatted.append({
            "field": ".".join(loc),
            "message": err.get("msg", "Invalid value"),
        })
    return formatted


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle Pydantic validation errors"""
    errors = format_validation_errors(exc.errors())
    logger.warning(f"Validation error on {request.url.path}: {errors}", extra={"path": request.url.path})

    return error_response(status.HTTP_400_BAD_REQUEST, "Validation failed", errors=errors)


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Handle HTTP exceptions"""
    if exc.status_code == status.HTTP_404_NOT_FOUND and exc.detail == "Not Found":
        message = "Route not found"
    else:
        message = exc.detail if isinstance(exc.detail, str) else str(exc.detail)

    return error_response(exc.status_code, message, headers=getattr(exc, "headers", None))


async def generic_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions"""
    logger.error(f"Unexpected exception: {str(exc)}", exc_info=True, extra={
        "path": request.url.path,
        "error_type": type(exc).__name__,
    })

    extra = {"error": str(exc)} if get_settings().is_development else {}
    return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Something went wrong", **extra)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
