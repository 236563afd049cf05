"""
Correlation ID middleware for request tracing.

Accepts X-Correlation-ID from the client or generates one, keeps it in a
context variable so every log record emitted while the request is handled
carries it, and echoes it back on the response.
"""
import logging
import uuid
import time
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
from app.utils.logger import logger, correlation_id_var, user_id_var

# Never logged verbatim
SENSITIVE_HEADERS = frozenset({"authorization", "cookie"})


class CorrelationMiddleware(BaseHTTPMiddleware):

    async def dispatch(self, request: Request, call_next) -> Response:
        cid = request.headers.get("x-correlation-id") or str(uuid.uuid4())
        correlation_id_var.set(cid)
        user_id_var.set(None)

        start = time.monotonic()
        context = {
            "correlation_id": cid,
            "method": request.method,
            "path": request.url.path,
            "client_ip": request.client.host if request.client else "",
        }
        logger.info(f"{request.method} {request.url.path}", extra=context)

        if logger.isEnabledFor(logging.DEBUG):
            sanitized = {
                k: "***REDACTED***" if k.lower() in SENSITIVE_HEADERS else v
                for k, v in request.headers.items()
            }
            logger.debug(f"Headers: {sanitized}", extra=context)

        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error(
                "request.failed",
                extra={
                    **context,
                    "duration_ms": round((time.monotonic() - start) * 1000),
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                },
            )
            raise

        status = response.status_code
        log_fn = logger.warning if status >= 400 else logger.info
        log_fn(
            f"Response: {status}",
            extra={**context, "status": status, "duration_ms": round((time.monotonic() - start) * 1000)},
        )

        response.headers["X-Correlation-ID"] = cid
        return response
