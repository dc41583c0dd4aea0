# Store/license.py
import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Request

from freshcart.core.audit import log_request_activity
from freshcart.core.security import get_seller, get_verified_seller
from freshcart.USERS.firebase import update_user
from freshcart.USERS.models import LicenseSubmitInput

logger = logging.getLogger("app.license")

router = APIRouter(prefix="/api/license", tags=["license"])

LICENSE_STATUSES = ["not_submitted", "pending", "approved", "rejected"]


async def require_approved_license(current_user: dict = Depends(get_verified_seller)):
    """Sellers may only list products once an admin approved their business license."""
    if current_user.get("account_status", "active") != "active":
        raise HTTPException(status_code=403, detail="Seller account is not active")
    if (current_user.get("license_info") or {}).get("status") != "approved":
        raise HTTPException(status_code=403, detail="An approved business license is required")
    return current_user


@router.post("/submit")
async def submit_license(
    request: Request,
    payload: LicenseSubmitInput,
    current_user: dict = Depends(get_verified_seller),
):
    info = current_user.get("license_info") or {}
    if info.get("status") == "approved":
        raise HTTPException(status_code=400, detail="License already approved")

    license_info = {
        "status": "pending",
        "license_number": payload.license_number,
        "expiry_date": payload.expiry_date.isoformat(),
        "document_url": payload.document_url,
        "submitted_at": datetime.now(timezone.utc).isoformat(),
        "rejection_reason": None,
    }
    await update_user(current_user["uid"], {
        "license_info": license_info,
        "business_license": payload.license_number,
    })
    log_request_activity(request, "license_submitted", actor=current_user, action_type="verification")
    return {"message": "License submitted for review", "data": license_info}


@router.get("/status")
async def license_status(current_user: dict = Depends(get_seller)):
    info = current_user.get("license_info") or {"status": "not_submitted"}
    return {"data": info, "can_list_products": info.get("status") == "approved"}
