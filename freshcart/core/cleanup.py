# file: freshcart/core/cleanup.py
import logging
from datetime import datetime, timezone, timedelta

from freshcart.core.config import ACTIVITY_RETENTION_DAYS
from freshcart.core.firebase import get_db

logger = logging.getLogger("core.cleanup")

BATCH_LIMIT = 400  # Firestore allows 500 writes per batch


def _delete_in_batches(docs) -> int:
    db = get_db()
    batch = db.batch()
    pending = 0
    deleted = 0
    for doc in docs:
        batch.delete(doc.reference)
        pending += 1
        deleted += 1
        if pending >= BATCH_LIMIT:
            batch.commit()
            batch = db.batch()
            pending = 0
    if pending > 0:
        batch.commit()
    return deleted


def cleanup_expired_tokens() -> int:
    """
    Delete expired refresh tokens from Firestore.
    """
    now = datetime.now(timezone.utc)
    expired = get_db().collection("REFRESH_TOKENS").where("expires_at", "<", now.isoformat()).stream()
    deleted = _delete_in_batches(expired)
    logger.info("🧹 Removed %d expired refresh tokens", deleted)
    return deleted


def cleanup_old_activity_logs(retention_days: int = ACTIVITY_RETENTION_DAYS) -> int:
    """
    Delete activity logs older than retention_days.
    """
    cutoff = datetime.now(timezone.utc) - timedelta(days=retention_days)
    old_logs = get_db().collection("activity_logs").where("created_at", "<", cutoff.isoformat()).stream()
    deleted = _delete_in_batches(old_logs)
    logger.info("🧹 Removed %d activity logs older than %d days", deleted, retention_days)
    return deleted
