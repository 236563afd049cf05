"""
IP-based rate limiting.

One slowapi Limiter is shared by the app and by route modules: the
SlowAPIMiddleware enforces the global default limit on every route and the
auth routes add tighter per-route limits with `@limiter.limit(...)`.
"""
from fastapi import Request
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from app.config import get_settings
from app.middleware.error_handler import error_response
from app.utils.logger import logger

settings = get_settings()

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[settings.rate_limit],
    enabled=settings.rate_limit_enabled,
)


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded):
    logger.warning(f"Rate limit exceeded for {get_remote_address(request)} on {request.url.path}",
                   extra={"path": request.url.path, "client_ip": get_remote_address(request)})
    response = error_response(429, "Too many requests from this IP, please try again later.")
    return request.app.state.limiter._inject_headers(response, request.state.view_rate_limit)
