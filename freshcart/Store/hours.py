# Store/hours.py
"""
Seller working hours (USERS/{uid}.working_hours) and the derived open/closed status.

working_hours = {
    "mode": "auto" | "force_open" | "force_closed",
    "weekly": [{"day": "mon", "enabled": bool, "intervals": [{"start": "09:00", "end": "13:00"}]}],
    "overrides": [{"date": "2026-01-26", "type": "open" | "closed", "intervals": [...], "note": str}],
}

Times are store-local (STORE_UTC_OFFSET_MINUTES). In auto mode a date
override for today wins over the weekly schedule.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request

from freshcart.core.audit import log_request_activity
from freshcart.core.config import STORE_UTC_OFFSET_MINUTES
from freshcart.core.security import ensure_self_or_admin, get_current_user
from freshcart.USERS.firebase import get_user_or_404, update_user
from freshcart.utils.timeslots import to_minutes
from .models import WEEK_DAYS, StoreHoursInput

logger = logging.getLogger("app.store_hours")

router = APIRouter(prefix="/api/users", tags=["store-hours"])

STORE_ROLES = ("seller", "store")
STORE_TZ = timezone(timedelta(minutes=STORE_UTC_OFFSET_MINUTES))


def normalize_weekly(weekly: Optional[list]) -> list:
    """One entry per weekday, mon..sun; a day without intervals is never enabled."""
    by_day = {d["day"]: d for d in weekly or [] if d.get("day") in WEEK_DAYS}
    normalized = []
    for day in WEEK_DAYS:
        entry = by_day.get(day) or {}
        intervals = entry.get("intervals") or []
        normalized.append({"day": day, "enabled": bool(entry.get("enabled")) and bool(intervals), "intervals": intervals})
    return normalized


def _inside(intervals: list, minutes_now: int) -> bool:
    return any(to_minutes(iv["start"]) <= minutes_now < to_minutes(iv["end"]) for iv in intervals)


def compute_store_status(working_hours: Optional[dict], now: datetime = None) -> dict:
    working_hours = working_hours or {}
    local = (now or datetime.now(timezone.utc)).astimezone(STORE_TZ)
    mode = working_hours.get("mode") or "auto"
    status = {"mode": mode, "now": local.isoformat()}

    if mode == "force_open":
        return {**status, "is_open": True, "reason": "manual", "active_source": "manual"}
    if mode == "force_closed":
        return {**status, "is_open": False, "reason": "manual", "active_source": "manual"}

    minutes_now = local.hour * 60 + local.minute
    today = local.date().isoformat()
    override = next((o for o in working_hours.get("overrides") or [] if o.get("date") == today), None)
    if override:
        if override.get("type") == "closed":
            return {**status, "is_open": False, "reason": "override-closed", "active_source": "override"}
        is_open = _inside(override.get("intervals") or [], minutes_now)
        return {**status, "is_open": is_open, "reason": "override-open", "active_source": "override"}

    day = WEEK_DAYS[local.weekday()]
    entry = next(d for d in normalize_weekly(working_hours.get("weekly")) if d["day"] == day)
    if not entry["enabled"]:
        return {**status, "is_open": False, "reason": "weekly-disabled", "active_source": "weekly"}
    return {**status, "is_open": _inside(entry["intervals"], minutes_now), "reason": "weekly", "active_source": "weekly"}


async def _store_owner(uid: str, current_user: dict) -> dict:
    ensure_self_or_admin(current_user, uid)
    user = await get_user_or_404(uid)
    if user.get("role") not in STORE_ROLES:
        raise HTTPException(status_code=403, detail="Only sellers can manage store hours")
    if user.get("provider", "email") == "email" and not user.get("email_verified"):
        raise HTTPException(
            status_code=403,
            detail={
                "message": "Please verify your email before managing store hours",
                "requires_email_verification": True,
            },
        )
    return user


# ---------------------------
# ROUTES
# ---------------------------
@router.get("/{uid}/store-hours")
async def get_store_hours(uid: str, current_user: dict = Depends(get_current_user)):
    user = await _store_owner(uid, current_user)
    working_hours = user.get("working_hours") or {"mode": "auto", "weekly": [], "overrides": []}
    return {"data": {**working_hours, "weekly": normalize_weekly(working_hours.get("weekly"))}}


@router.put("/{uid}/store-hours")
async def update_store_hours(
    uid: str,
    request: Request,
    payload: StoreHoursInput,
    current_user: dict = Depends(get_current_user),
):
    await _store_owner(uid, current_user)
    hours = payload.model_dump()
    working_hours = {
        "mode": hours["mode"],
        "weekly": normalize_weekly(hours["weekly"]),
        "overrides": sorted(hours["overrides"], key=lambda o: o["date"]),
    }
    try:
        await update_user(uid, {"working_hours": working_hours})
    except Exception as e:
        logger.exception("❌ update_store_hours error: %s", e)
        raise HTTPException(status_code=500, detail=f"Error saving store hours: {str(e)}")

    log_request_activity(
        request, "store_hours_updated", actor=current_user, action_type="profile_update",
        target_user_id=uid, details={"mode": working_hours["mode"]},
    )
    return {"message": "Store hours updated", "data": working_hours}


@router.get("/{uid}/store-status")
async def get_store_status(uid: str):
    """Public: customers see whether a store is open right now."""
    user = await get_user_or_404(uid)
    if user.get("role") not in STORE_ROLES:
        raise HTTPException(status_code=404, detail="Store not found")
    return {"data": {"uid": uid, "store_name": user.get("store_name"), **compute_store_status(user.get("working_hours"))}}
