# Notification/notification.py
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from firebase_admin import messaging

from freshcart.core import config
from freshcart.core.firebase import get_db, snapshot_to_dict
from freshcart.core.security import get_current_user

logger = logging.getLogger("app.notification")

router = APIRouter(prefix="/api/notifications", tags=["notification"])

NOTIFICATION_TYPES = [
    "branch-link-request",
    "branch-link-request-update",
    "delivery-verification",
    "order-update",
    "seller-approval",
    "product-approval",
    "wallet",
    "system",
]
MAX_NOTIFICATIONS = 50


# -------------------------
# Helpers
# -------------------------
def notifications_collection(uid: str):
    return get_db().collection("NOTIFICATIONS").document(uid).collection("items")


def push_to_user(uid: str, title: str, body: str, data: Optional[Dict[str, Any]] = None) -> Optional[str]:
    """Best-effort FCM push to the per-user topic; failures are logged, never raised."""
    if not config.PUSH_NOTIFICATIONS_ENABLED:
        return None
    try:
        message = messaging.Message(
            notification=messaging.Notification(title=title, body=body),
            data={k: str(v) for k, v in (data or {}).items()},
            topic=f"user_{uid}",
        )
        return messaging.send(message)
    except Exception as e:
        logger.warning("FCM push to user_%s failed: %s", uid, e)
        return None


def create_notification(
    uid: str,
    type: str,
    title: str,
    message: str,
    data: Optional[Dict[str, Any]] = None,
    request_id: Optional[str] = None,
) -> str:
    if type not in NOTIFICATION_TYPES:
        type = "system"
    doc_ref = notifications_collection(uid).document()
    doc_ref.set({
        "uid": uid,
        "type": type,
        "title": title,
        "message": message,
        "data": data or {},
        "request_id": request_id,
        "read": False,
        "created_at": datetime.now(timezone.utc).isoformat(),
    })
    push_to_user(uid, title, message, {"type": type, "notification_id": doc_ref.id, **(data or {})})
    return doc_ref.id


def delete_request_notifications(uid: str, request_id: str) -> int:
    """Remove the notifications a user received about one branch link request."""
    deleted = 0
    for doc in notifications_collection(uid).where("request_id", "==", request_id).stream():
        doc.reference.delete()
        deleted += 1
    return deleted


# -------------------------
# Routes
# -------------------------
@router.get("")
async def list_notifications(
    unread_only: bool = Query(False),
    limit: int = Query(MAX_NOTIFICATIONS, ge=1, le=MAX_NOTIFICATIONS),
    current_user: dict = Depends(get_current_user),
):
    try:
        items = [snapshot_to_dict(doc) for doc in notifications_collection(current_user["uid"]).stream()]
        unread_count = sum(1 for n in items if not n.get("read"))
        if unread_only:
            items = [n for n in items if not n.get("read")]
        items.sort(key=lambda n: n.get("created_at") or "", reverse=True)
        return {"data": items[:limit], "unread_count": unread_count}
    except Exception as e:
        logger.exception("❌ list_notifications error: %s", e)
        raise HTTPException(status_code=500, detail=f"Error fetching notifications: {str(e)}")


@router.get("/stats")
async def notification_stats(current_user: dict = Depends(get_current_user)):
    items = [doc.to_dict() or {} for doc in notifications_collection(current_user["uid"]).stream()]
    by_type: Dict[str, int] = {}
    for n in items:
        by_type[n.get("type", "system")] = by_type.get(n.get("type", "system"), 0) + 1
    return {
        "data": {
            "total": len(items),
            "unread": sum(1 for n in items if not n.get("read")),
            "by_type": by_type,
        }
    }


@router.put("/mark-all-read")
async def mark_all_read(current_user: dict = Depends(get_current_user)):
    db = get_db()
    batch = db.batch()
    updated = 0
    for doc in notifications_collection(current_user["uid"]).where("read", "==", False).stream():
        batch.update(doc.reference, {"read": True})
        updated += 1
    if updated:
        batch.commit()
    return {"message": "All notifications marked as read", "updated": updated}


@router.put("/{notification_id}/read")
async def mark_read(notification_id: str, current_user: dict = Depends(get_current_user)):
    doc_ref = notifications_collection(current_user["uid"]).document(notification_id)
    if not doc_ref.get().exists:
        raise HTTPException(status_code=404, detail="Notification not found")
    doc_ref.update({"read": True})
    return {"ok": True, "message": "Notification marked as read"}


@router.delete("/clear-all")
async def clear_notifications(
    read_only: bool = Query(False),
    current_user: dict = Depends(get_current_user),
):
    query = notifications_collection(current_user["uid"])
    if read_only:
        query = query.where("read", "==", True)
    deleted = 0
    for doc in query.stream():
        doc.reference.delete()
        deleted += 1
    return {"message": "Notifications cleared", "deleted": deleted}


@router.delete("/{notification_id}")
async def delete_notification(notification_id: str, current_user: dict = Depends(get_current_user)):
    doc_ref = notifications_collection(current_user["uid"]).document(notification_id)
    if not doc_ref.get().exists:
        raise HTTPException(status_code=404, detail="Notification not found")
    doc_ref.delete()
    return {"message": "Notification deleted"}
