# Delivery/settings.py
"""
Delivery partner working preferences, stored on USERS/{uid}:
service_area, weekly availability slots, an is_available switch, and
dated schedules (one-off shifts).
"""
import logging
import uuid
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Request

from freshcart.core.audit import log_request_activity
from freshcart.core.security import ensure_self_or_admin, get_current_user
from freshcart.USERS.firebase import get_user_or_404, update_user
from .models import DeliverySettingsInput, ScheduleInput

logger = logging.getLogger("app.delivery_settings")

router = APIRouter(prefix="/api/users", tags=["delivery-settings"])

MAX_SCHEDULES = 60


async def _partner(uid: str, current_user: dict) -> dict:
    ensure_self_or_admin(current_user, uid)
    user = await get_user_or_404(uid)
    if user.get("role") != "delivery":
        raise HTTPException(status_code=403, detail="Only delivery partners have delivery settings")
    return user


def _sorted_schedules(schedules: list) -> list:
    return sorted(schedules, key=lambda s: (s.get("date") or "", s.get("start") or ""))


# ---------------------------
# SETTINGS
# ---------------------------
@router.get("/{uid}/delivery-settings")
async def get_delivery_settings(uid: str, current_user: dict = Depends(get_current_user)):
    user = await _partner(uid, current_user)
    return {
        "data": {
            "service_area": user.get("service_area"),
            "availability": user.get("availability") or [],
            "is_available": bool(user.get("is_available")),
        }
    }


@router.put("/{uid}/delivery-settings")
async def update_delivery_settings(
    uid: str,
    request: Request,
    payload: DeliverySettingsInput,
    current_user: dict = Depends(get_current_user),
):
    user = await _partner(uid, current_user)
    updates = payload.model_dump(exclude_none=True)
    if not updates:
        raise HTTPException(status_code=400, detail="No fields to update")

    try:
        await update_user(uid, updates)
    except Exception as e:
        logger.exception("❌ update_delivery_settings error: %s", e)
        raise HTTPException(status_code=500, detail=f"Error saving delivery settings: {str(e)}")

    log_request_activity(
        request, "delivery_settings_updated", actor=current_user, action_type="profile_update",
        target_user_id=uid, details={"fields": sorted(k for k in updates if k != "updated_at")},
    )
    user.update(updates)
    return {
        "message": "Delivery settings updated",
        "data": {
            "service_area": user.get("service_area"),
            "availability": user.get("availability") or [],
            "is_available": bool(user.get("is_available")),
        },
    }


# ---------------------------
# SCHEDULES
# ---------------------------
@router.get("/{uid}/schedules")
async def get_schedules(uid: str, current_user: dict = Depends(get_current_user)):
    user = await _partner(uid, current_user)
    return {"data": _sorted_schedules(user.get("schedules") or [])}


@router.post("/{uid}/schedules", status_code=201)
async def add_schedule(
    uid: str,
    payload: ScheduleInput,
    current_user: dict = Depends(get_current_user),
):
    user = await _partner(uid, current_user)
    schedules = user.get("schedules") or []
    if len(schedules) >= MAX_SCHEDULES:
        raise HTTPException(status_code=400, detail=f"You can keep up to {MAX_SCHEDULES} schedules")

    entry = {
        "id": uuid.uuid4().hex[:12],
        **payload.model_dump(),
        "created_at": datetime.now(timezone.utc).isoformat(),
    }
    schedules = _sorted_schedules(schedules + [entry])
    await update_user(uid, {"schedules": schedules})
    return {"message": "Schedule added", "data": entry, "schedules": schedules}


@router.delete("/{uid}/schedules/{schedule_id}")
async def delete_schedule(uid: str, schedule_id: str, current_user: dict = Depends(get_current_user)):
    user = await _partner(uid, current_user)
    schedules = user.get("schedules") or []
    remaining = [s for s in schedules if s.get("id") != schedule_id]
    if len(remaining) == len(schedules):
        raise HTTPException(status_code=404, detail="Schedule not found")

    await update_user(uid, {"schedules": remaining})
    return {"message": "Schedule removed", "schedules": remaining}
