# USERS/user_routes.py
import logging

from fastapi import APIRouter, Depends, File, HTTPException, Request, UploadFile

from freshcart.core.audit import log_request_activity
from freshcart.core.config import SELLER_UPGRADE_FROM
from freshcart.core.security import ensure_self_or_admin, get_current_user, public_user
from freshcart.core.storage import build_key, upload_file_bytes
from freshcart.utils.images import compress_to_720, validate_image
from .firebase import archive_and_delete_user, generate_seller_unique_number, get_user_or_404, update_user
from .models import ProfileUpdate, UpgradeToSellerInput

logger = logging.getLogger("app.users")

router = APIRouter(prefix="/api/users", tags=["users"])

ROLE_FIELDS = {
    "store_name": ("store", "seller"),
    "store_address": ("store", "seller"),
    "vehicle_type": ("delivery",),
    "license_number": ("delivery",),
}


# ---------------------------
# PROFILE
# ---------------------------
@router.get("/{uid}")
async def get_profile(uid: str, current_user: dict = Depends(get_current_user)):
    ensure_self_or_admin(current_user, uid)
    user = await get_user_or_404(uid)
    return {"data": public_user(user)}


@router.put("/{uid}")
async def update_profile(
    uid: str,
    request: Request,
    payload: ProfileUpdate,
    current_user: dict = Depends(get_current_user),
):
    ensure_self_or_admin(current_user, uid)
    user = await get_user_or_404(uid)

    updates = payload.model_dump(exclude_none=True)
    for field, roles in ROLE_FIELDS.items():
        if field in updates and user.get("role") not in roles:
            raise HTTPException(status_code=400, detail=f"{field} cannot be set for role {user.get('role')}")
    if not updates:
        raise HTTPException(status_code=400, detail="No fields to update")

    try:
        await update_user(uid, updates)
        log_request_activity(
            request, "profile_update", actor=current_user, action_type="profile_update",
            target_user_id=uid, details={"fields": sorted(updates)},
        )
        user.update(updates)
        return {"message": "Profile updated successfully", "data": public_user(user)}
    except Exception as e:
        logger.exception("❌ update_profile error: %s", e)
        raise HTTPException(status_code=500, detail=f"Error updating profile: {str(e)}")


@router.delete("/{uid}")
async def delete_own_account(uid: str, request: Request, current_user: dict = Depends(get_current_user)):
    """Self-service account deletion; the profile is archived to DELETED_USERS first."""
    if current_user["uid"] != uid:
        raise HTTPException(status_code=403, detail="You can only delete your own account")
    user = await get_user_or_404(uid)
    if user.get("role") == "admin":
        raise HTTPException(status_code=403, detail="Admins cannot be deleted")

    try:
        archive_and_delete_user(user, deleted_by=uid, reason="self-initiated")
    except Exception as e:
        logger.exception("❌ delete_own_account error: %s", e)
        raise HTTPException(status_code=500, detail=f"Error deleting account: {str(e)}")

    log_request_activity(
        request, "account_deleted", actor=current_user, action_type="system", target_user_id=uid,
        details={"role": user.get("role")},
    )
    logger.info("🗑️ %s deleted their account", uid)
    return {"message": "Account deleted"}


@router.post("/{uid}/profile-picture")
async def upload_profile_picture(
    uid: str,
    file: UploadFile = File(...),
    current_user: dict = Depends(get_current_user),
):
    ensure_self_or_admin(current_user, uid)
    await get_user_or_404(uid)

    file_bytes = await file.read()
    try:
        validate_image(file_bytes, file.filename or "profile.jpg")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    try:
        compressed = compress_to_720(file_bytes)
        url = upload_file_bytes(build_key("profiles", uid, "profile.jpg"), compressed, "image/jpeg", public=True)
        await update_user(uid, {"profile_picture": url})
        return {"message": "Profile picture updated", "profile_picture": url}
    except Exception as e:
        logger.exception("❌ upload_profile_picture error: %s", e)
        raise HTTPException(status_code=500, detail=f"Error uploading profile picture: {str(e)}")


# ---------------------------
# UPGRADE TO SELLER
# ---------------------------
@router.put("/{uid}/upgrade-to-seller")
async def upgrade_to_seller(
    uid: str,
    request: Request,
    payload: UpgradeToSellerInput,
    current_user: dict = Depends(get_current_user),
):
    if current_user["uid"] != uid:
        raise HTTPException(status_code=403, detail="Not authorized")

    user = await get_user_or_404(uid)
    if user.get("role") not in SELLER_UPGRADE_FROM:
        raise HTTPException(status_code=400, detail=f"Role {user.get('role')} cannot be upgraded to seller")
    if user.get("provider", "email") == "email" and not user.get("email_verified"):
        raise HTTPException(status_code=403, detail="Please verify your email before becoming a seller")

    updates = payload.model_dump(exclude_none=True)
    updates["role"] = "seller"
    updates.setdefault("branch_stores", user.get("branch_stores") or [])
    updates.setdefault("linked_branch_of", user.get("linked_branch_of") or [])
    if not user.get("seller_unique_number"):
        updates["seller_unique_number"] = await generate_seller_unique_number(uid)
    if (user.get("license_info") or {}).get("status") != "approved":
        updates["license_info"] = {"status": "pending"}

    await update_user(uid, updates)
    log_request_activity(
        request, "upgrade_to_seller", actor=current_user, action_type="profile_update",
        target_user_id=uid, details={"from_role": user.get("role")},
    )
    user.update(updates)
    logger.info("🏪 %s upgraded to seller %s", uid, user["seller_unique_number"])
    return {"message": "Account upgraded to seller", "data": public_user(user)}
