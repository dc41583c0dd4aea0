# ADMIN/admin_routes.py
import logging
from collections import Counter
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from freshcart.core.audit import ACTION_TYPES, log_request_activity
from freshcart.core.cleanup import cleanup_old_activity_logs
from freshcart.core.firebase import get_db, snapshot_to_dict
from freshcart.core.security import get_current_admin, public_user
from freshcart.core.tokens import revoke_user_tokens
from freshcart.utils.sanitize import sanitize_search
from freshcart.Notification.notification import create_notification
from freshcart.Store.firebase import product_ref, products_collection
from freshcart.USERS.firebase import (
    archive_and_delete_user,
    generate_seller_unique_number,
    get_user_or_404,
    update_user,
)
from .models import DeactivateUser, ProductApproval, RoleChange, SellerRejection

logger = logging.getLogger("app.admin")

router = APIRouter(prefix="/api/admin", tags=["admin"], dependencies=[Depends(get_current_admin)])


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _not_self(current_user: dict, uid: str, action: str):
    if current_user["uid"] == uid:
        raise HTTPException(status_code=400, detail=f"You cannot {action} your own account")


async def _seller_or_404(uid: str) -> dict:
    seller = await get_user_or_404(uid)
    if seller.get("role") != "seller":
        raise HTTPException(status_code=404, detail="Seller not found")
    return seller


# ==============================
# USERS
# ==============================
@router.get("/users")
async def list_users(
    role: Optional[str] = None,
    search: Optional[str] = Query(None, max_length=100),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
):
    try:
        query = get_db().collection("USERS")
        if role:
            query = query.where("role", "==", role)
        users = [public_user(snapshot_to_dict(doc, id_field="uid")) for doc in query.stream()]
        if search:
            needle = sanitize_search(search)
            users = [
                u for u in users
                if needle in " ".join(filter(None, [u.get("name"), u.get("email"), u.get("store_name")])).lower()
            ]
        users.sort(key=lambda u: u.get("created_at") or "", reverse=True)

        total = len(users)
        start = (page - 1) * limit
        return {
            "data": users[start:start + limit],
            "total": total,
            "total_pages": (total + limit - 1) // limit,
            "current_page": page,
        }
    except Exception as e:
        logger.exception("❌ list_users error: %s", e)
        raise HTTPException(status_code=500, detail=f"Error fetching users: {str(e)}")


@router.get("/stats")
async def system_stats():
    try:
        users = [doc.to_dict() or {} for doc in get_db().collection("USERS").stream()]
        roles = Counter(u.get("role") for u in users)
        orders = [doc.to_dict() or {} for doc in get_db().collection("ORDERS").stream()]
        return {
            "data": {
                "total_users": len(users),
                "verified_users": sum(1 for u in users if u.get("email_verified")),
                "pending_verification": sum(1 for u in users if not u.get("email_verified")),
                "inactive_users": sum(1 for u in users if not u.get("is_active", True)),
                "total_customers": roles.get("customer", 0),
                "total_stores": roles.get("store", 0),
                "total_sellers": roles.get("seller", 0),
                "total_delivery_partners": roles.get("delivery", 0),
                "total_admins": roles.get("admin", 0),
                "pending_seller_licenses": sum(
                    1 for u in users
                    if u.get("role") == "seller" and (u.get("license_info") or {}).get("status") == "pending"
                ),
                "total_orders": len(orders),
                "orders_by_status": dict(Counter(o.get("status") for o in orders)),
            }
        }
    except Exception as e:
        logger.exception("❌ system_stats error: %s", e)
        raise HTTPException(status_code=500, detail=f"Error fetching stats: {str(e)}")


@router.put("/users/{uid}/activate")
async def activate_user(uid: str, request: Request, current_user: dict = Depends(get_current_admin)):
    await get_user_or_404(uid)
    await update_user(uid, {"is_active": True, "account_status": "active", "deactivation_reason": None})
    log_request_activity(request, "user_activated", actor=current_user, action_type="system", target_user_id=uid)
    return {"message": "User activated"}


@router.put("/users/{uid}/deactivate")
async def deactivate_user(
    uid: str,
    request: Request,
    payload: Optional[DeactivateUser] = None,
    current_user: dict = Depends(get_current_admin),
):
    _not_self(current_user, uid, "deactivate")
    await get_user_or_404(uid)
    await update_user(uid, {
        "is_active": False,
        "account_status": "suspended",
        "deactivation_reason": payload.reason if payload else None,
    })
    revoked = revoke_user_tokens(uid)
    log_request_activity(
        request, "user_deactivated", actor=current_user, action_type="system", target_user_id=uid,
        details={"revoked_tokens": revoked},
    )
    return {"message": "User deactivated"}


@router.put("/users/{uid}/verify-email")
async def verify_user_email(uid: str, request: Request, current_user: dict = Depends(get_current_admin)):
    await get_user_or_404(uid)
    await update_user(uid, {"email_verified": True})
    log_request_activity(request, "email_verified", actor=current_user, action_type="verification", target_user_id=uid)
    return {"message": "Email marked as verified"}


@router.put("/users/{uid}/role")
async def change_user_role(
    uid: str,
    request: Request,
    payload: RoleChange,
    current_user: dict = Depends(get_current_admin),
):
    _not_self(current_user, uid, "change the role of")
    user = await get_user_or_404(uid)
    updates = {"role": payload.role}
    if payload.role == "seller" and not user.get("seller_unique_number"):
        updates["seller_unique_number"] = await generate_seller_unique_number(uid)
        updates["branch_stores"] = user.get("branch_stores") or []
        updates["license_info"] = user.get("license_info") or {"status": "not_submitted"}
    await update_user(uid, updates)
    # role lives in the tokens too
    revoke_user_tokens(uid)
    log_request_activity(
        request, "role_changed", actor=current_user, action_type="system", target_user_id=uid,
        details={"from": user.get("role"), "to": payload.role},
    )
    return {"message": f"Role changed to {payload.role}", "data": {"uid": uid, **updates}}


@router.delete("/users/{uid}")
async def delete_user(uid: str, request: Request, current_user: dict = Depends(get_current_admin)):
    _not_self(current_user, uid, "delete")
    user = await get_user_or_404(uid)
    try:
        archive_and_delete_user(user, deleted_by=current_user["uid"], reason="admin")
    except Exception as e:
        logger.exception("❌ delete_user error: %s", e)
        raise HTTPException(status_code=500, detail=f"Error deleting user: {str(e)}")

    log_request_activity(
        request, "user_deleted", actor=current_user, action_type="system", target_user_id=uid,
        details={"email": user.get("email"), "role": user.get("role")},
    )
    logger.info("🗑️ User %s deleted by %s", uid, current_user["uid"])
    return {"message": "User deleted"}


# ==============================
# SELLERS
# ==============================
@router.get("/sellers")
async def list_sellers(license_status: Optional[str] = None):
    sellers = [
        public_user(snapshot_to_dict(doc, id_field="uid"))
        for doc in get_db().collection("USERS").where("role", "==", "seller").stream()
    ]
    if license_status:
        sellers = [s for s in sellers if (s.get("license_info") or {}).get("status") == license_status]
    sellers.sort(key=lambda s: s.get("created_at") or "", reverse=True)
    return {"data": sellers, "total": len(sellers)}


@router.put("/sellers/{uid}/approve")
async def approve_seller(uid: str, request: Request, current_user: dict = Depends(get_current_admin)):
    seller = await _seller_or_404(uid)
    license_info = {
        **(seller.get("license_info") or {}),
        "status": "approved",
        "verified_at": _now(),
        "verified_by": current_user["uid"],
        "rejection_reason": None,
    }
    await update_user(uid, {"is_verified": True, "verification_status": "approved", "license_info": license_info})
    create_notification(
        uid, "seller-approval", "Seller account approved",
        "Your business license was approved. You can now list products.", data={"status": "approved"},
    )
    log_request_activity(request, "seller_approved", actor=current_user, action_type="verification", target_user_id=uid)
    return {"message": "Seller verification approved", "data": license_info}


@router.put("/sellers/{uid}/reject")
async def reject_seller(
    uid: str,
    request: Request,
    payload: SellerRejection,
    current_user: dict = Depends(get_current_admin),
):
    seller = await _seller_or_404(uid)
    license_info = {
        **(seller.get("license_info") or {}),
        "status": "rejected",
        "verified_at": _now(),
        "verified_by": current_user["uid"],
        "rejection_reason": payload.reason,
    }
    await update_user(uid, {"is_verified": False, "verification_status": "rejected", "license_info": license_info})
    create_notification(
        uid, "seller-approval", "Seller account rejected",
        f"Your business license was rejected: {payload.reason}", data={"status": "rejected"},
    )
    log_request_activity(
        request, "seller_rejected", actor=current_user, action_type="verification", target_user_id=uid,
        details={"reason": payload.reason},
    )
    return {"message": "Seller verification rejected", "data": license_info}


# ==============================
# PRODUCTS
# ==============================
@router.get("/products/pending")
async def pending_products():
    try:
        items = []
        for seller in get_db().collection("USERS").where("role", "==", "seller").stream():
            store_name = (seller.to_dict() or {}).get("store_name")
            for doc in products_collection(seller.id).where("approval_status", "==", "pending").stream():
                items.append({**snapshot_to_dict(doc), "seller_uid": seller.id, "store_name": store_name})
        items.sort(key=lambda p: p.get("created_at") or "")
        return {"data": items, "total": len(items)}
    except Exception as e:
        logger.exception("❌ pending_products error: %s", e)
        raise HTTPException(status_code=500, detail=f"Error fetching pending products: {str(e)}")


@router.put("/products/{seller_uid}/{product_id}/approval")
async def review_product(
    seller_uid: str,
    product_id: str,
    request: Request,
    payload: ProductApproval,
    current_user: dict = Depends(get_current_admin),
):
    ref = product_ref(seller_uid, product_id)
    snap = ref.get()
    if not snap.exists:
        raise HTTPException(status_code=404, detail="Product not found")

    status = "approved" if payload.action == "approve" else "rejected"
    updates = {
        "approval_status": status,
        "approved_by": current_user.get("email") or current_user["uid"],
        "approval_date": _now(),
        "rejection_reason": payload.rejection_reason if status == "rejected" else None,
        "updated_at": _now(),
    }
    ref.update(updates)

    name = (snap.to_dict() or {}).get("name") or "Your product"
    message = f"{name} is now live" if status == "approved" else f"{name} was rejected: {payload.rejection_reason}"
    create_notification(
        seller_uid, "product-approval", f"Product {status}", message,
        data={"product_id": product_id, "status": status},
    )
    log_request_activity(
        request, f"product_{status}", actor=current_user, action_type="verification", target_user_id=seller_uid,
        details={"product_id": product_id},
    )
    return {"message": f"Product {status}", "data": {**(snap.to_dict() or {}), **updates, "id": product_id}}


# ==============================
# ACTIVITY LOGS
# ==============================
@router.get("/activity")
async def list_activity(
    limit: int = Query(50, ge=1, le=200),
    role: Optional[str] = None,
    actor_email: Optional[str] = None,
    action_type: Optional[str] = None,
):
    try:
        query = get_db().collection("activity_logs")
        if role:
            query = query.where("actor_role", "==", role)
        if actor_email:
            query = query.where("actor_email", "==", actor_email.lower().strip())
        if action_type:
            if action_type not in ACTION_TYPES:
                raise HTTPException(status_code=400, detail=f"Unknown action type: {action_type}")
            query = query.where("action_type", "==", action_type)
        logs = [snapshot_to_dict(doc) for doc in query.stream()]
        logs.sort(key=lambda a: a.get("created_at") or "", reverse=True)
        return {"data": logs[:limit], "total": len(logs)}
    except HTTPException:
        raise
    except Exception as e:
        logger.exception("❌ list_activity error: %s", e)
        raise HTTPException(status_code=500, detail=f"Error fetching activity logs: {str(e)}")


@router.get("/activity/stats")
async def activity_stats():
    logs = [snapshot_to_dict(doc) for doc in get_db().collection("activity_logs").stream()]
    logs.sort(key=lambda a: a.get("created_at") or "", reverse=True)
    return {
        "data": {
            "by_role": dict(Counter(a.get("actor_role") or "anonymous" for a in logs)),
            "by_action": dict(Counter(a.get("action_type") for a in logs)),
            "by_status": dict(Counter(a.get("status") for a in logs)),
            "recent": logs[:5],
            "total": len(logs),
        }
    }


@router.delete("/activity/{activity_id}")
async def delete_activity(activity_id: str):
    ref = get_db().collection("activity_logs").document(activity_id)
    if not ref.get().exists:
        raise HTTPException(status_code=404, detail="Activity not found")
    ref.delete()
    return {"message": "Activity deleted"}


@router.delete("/activity")
async def purge_activity(days: int = Query(90, ge=1, le=3650)):
    deleted = cleanup_old_activity_logs(days)
    return {"message": f"Deleted {deleted} activities older than {days} days", "deleted": deleted}
