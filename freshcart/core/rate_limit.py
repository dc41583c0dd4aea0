# file: freshcart/core/rate_limit.py
import os
from functools import wraps

from fastapi import Request
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

# Per-area limits, overridable per deployment
REGISTER_LIMIT = os.getenv("RATE_LIMIT_REGISTER", "5/minute")
LOGIN_LIMIT = os.getenv("RATE_LIMIT_LOGIN", "10/minute")
TOKEN_REFRESH_LIMIT = os.getenv("RATE_LIMIT_TOKEN_REFRESH", "30/minute")
PING_LIMIT = os.getenv("RATE_LIMIT_PING", "30/minute")
DEFAULT_RETRY_AFTER = 60


def client_address(request: Request) -> str:
    """First X-Forwarded-For hop when behind the platform proxy, else the socket peer."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return get_remote_address(request)


limiter = Limiter(
    key_func=client_address,
    default_limits=["1000/hour"],
    headers_enabled=True,
)


def limit(limit_value: str):
    """
    limiter.limit for FastAPI routes. slowapi looks the request up by keyword,
    so it is moved into kwargs when FastAPI passed it positionally.
    Decorated endpoints must accept `request: Request` and `response: Response`.
    """
    def decorator(func):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            if "request" not in kwargs:
                request = next((a for a in args if isinstance(a, Request)), None)
                if request is not None:
                    kwargs["request"] = request
            return await func(*args, **kwargs)
        return limiter.limit(limit_value)(wrapper)
    return decorator


def retry_after_seconds(exc: RateLimitExceeded) -> int:
    limit_item = getattr(getattr(exc, "limit", None), "limit", None)
    return limit_item.get_expiry() if limit_item is not None else DEFAULT_RETRY_AFTER
