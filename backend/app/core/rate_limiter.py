"""
Rate Limiting for the MockExam API
==================================
slowapi limiter keyed by authenticated user, falling back to client IP.

Special endpoints carry their own limits:
- /auth/login: 5 req/min (brute force protection)
- /auth/request-password-reset: 3 req/min
- everything else: RATE_LIMIT_PER_MINUTE

Storage is in-memory unless RATE_LIMIT_STORAGE_URI points at redis.
Set RATE_LIMIT_ENABLED=false to switch limiting off (tests).
"""

from slowapi import Limiter
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from fastapi import Request
from fastapi.responses import JSONResponse

from app.core.config import settings
from app.core.logging_config import logger


LOGIN_LIMIT = "5/minute"
PASSWORD_RESET_LIMIT = "3/minute"


def get_user_identifier(request: Request) -> str:
    """
    Rate limit key.

    Priority:
    1. Authenticated user ID (set on request.state by the auth dependency)
    2. IP address (anonymous users)
    """
    user_id = getattr(request.state, 'user_id', None)
    if user_id:
        return f"user:{user_id}"
    return f"ip:{get_remote_address(request)}"


def build_limiter(per_minute: int = settings.RATE_LIMIT_PER_MINUTE,
                  enabled: bool = settings.RATE_LIMIT_ENABLED) -> Limiter:
    """Limiter whose default limit covers every route without its own @limiter.limit"""
    kwargs = {
        "key_func": get_user_identifier,
        "default_limits": [f"{per_minute}/minute"],
        "enabled": enabled,
        "strategy": "fixed-window",
    }
    if settings.RATE_LIMIT_STORAGE_URI:
        kwargs["storage_uri"] = settings.RATE_LIMIT_STORAGE_URI
    return Limiter(**kwargs)


limiter = build_limiter()


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded):
    """Return the standard error body with a Retry-After header"""
    logger.warning(
        f"[RateLimit] Exceeded for {get_user_identifier(request)}: {exc.detail}"
    )

    return JSONResponse(
        status_code=429,
        content={
            "success": False,
            "message": "Too many requests. Please slow down.",
            "error": {
                "code": "RATE_LIMITED",
                "message": "Too many requests. Please slow down.",
                "details": {"limit": str(exc.detail)},
            },
        },
        headers={"Retry-After": "60"},
    )
