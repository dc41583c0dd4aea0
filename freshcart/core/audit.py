# file: freshcart/core/audit.py
import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from freshcart.core.firebase import get_db

logger = logging.getLogger("core.audit")

ACTION_TYPES = ["authentication", "profile_update", "order", "verification", "system", "other"]
ACTIVITY_STATUSES = ["success", "failed", "pending"]


def log_activity(
    action: str,
    actor: Optional[dict] = None,
    action_type: str = "other",
    status: str = "success",
    target_user_id: Optional[str] = None,
    ip: Optional[str] = None,
    user_agent: Optional[str] = None,
    details: Optional[dict] = None,
) -> str:
    """
    Store a structured activity record under activity_logs/{log_id}.
    `actor` is a user dict (uid, email, role) or None for anonymous/system events.
    """
    if action_type not in ACTION_TYPES:
        action_type = "other"
    if status not in ACTIVITY_STATUSES:
        status = "success"

    actor = actor or {}
    log_id = str(uuid.uuid4())
    get_db().collection("activity_logs").document(log_id).set({
        "actor_uid": actor.get("uid"),
        "actor_email": actor.get("email"),
        "actor_role": actor.get("role"),
        "target_user_id": target_user_id,
        "action": action,
        "action_type": action_type,
        "status": status,
        "ip": ip,
        "user_agent": user_agent,
        "details": details or {},
        "created_at": datetime.now(timezone.utc).isoformat(),
    })
    return log_id


def log_request_activity(request, action: str, actor: Optional[dict] = None, **kwargs) -> None:
    """Activity log helper that never fails the calling request."""
    try:
        log_activity(
            action,
            actor=actor,
            ip=request.client.host if request.client else None,
            user_agent=request.headers.get("user-agent"),
            **kwargs,
        )
    except Exception as e:
        logger.warning("Could not record activity %s: %s", action, e)


# -----------------------------
# Helper functions for security
# -----------------------------
def log_auth_failure(request, actor_email: str, reason: str):
    log_request_activity(
        request,
        "login_failed",
        actor={"email": actor_email},
        action_type="authentication",
        status="failed",
        details={"reason": reason},
    )


def log_token_reuse(request, uid: str, jti: str):
    log_request_activity(
        request,
        "refresh_token_reuse_detected",
        actor={"uid": uid},
        action_type="authentication",
        status="failed",
        details={"jti": jti},
    )
