# file: freshcart/core/middleware.py
import logging
import time
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from freshcart.core.audit import log_request_activity

logger = logging.getLogger("core.middleware")

TRACKED_METHODS = {"POST", "PUT", "PATCH", "DELETE"}
# Auth endpoints record their own, richer, activity entries
UNTRACKED_PREFIXES = ("/api/auth/",)

ACTION_TYPE_BY_PREFIX = {
    "/api/orders": "order",
    "/api/delivery-verification": "verification",
    "/api/admin/delivery-verifications": "verification",
    "/api/license": "verification",
    "/api/users": "profile_update",
}


def _action_type(path: str) -> str:
    for prefix, action_type in ACTION_TYPE_BY_PREFIX.items():
        if path.startswith(prefix):
            return action_type
    return "other"


class ActivityMiddleware(BaseHTTPMiddleware):
    """Records state-changing API calls in activity_logs once the response is known."""

    async def dispatch(self, request: Request, call_next):
        started = time.perf_counter()
        response: Response = await call_next(request)

        path = request.url.path
        method = request.method
        if method in TRACKED_METHODS and path.startswith("/api/") and not path.startswith(UNTRACKED_PREFIXES):
            elapsed_ms = round((time.perf_counter() - started) * 1000, 1)
            log_request_activity(
                request,
                f"{method} {path}",
                actor=request.scope.get("user"),
                action_type=_action_type(path),
                status="success" if response.status_code < 400 else "failed",
                details={"status_code": response.status_code, "elapsed_ms": elapsed_ms},
            )

        return response
