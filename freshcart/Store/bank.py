# Store/bank.py
"""
Seller payout details guarded by a 6-digit PIN.

The PIN is stored as a bcrypt hash (bank_pin_hash); the account number, PAN
and UPI id are encrypted at rest (bank_details.*_enc) and only ever returned
masked. Five wrong PINs lock the endpoints for 15 minutes.
"""
import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Request

from freshcart.core.audit import log_request_activity
from freshcart.core.bruteforce import is_pin_locked, record_failed_pin, reset_pin_attempts
from freshcart.core.field_crypto import decrypt_field, encrypt_field, mask_value
from freshcart.core.security import get_current_user, get_password_hash, verify_password
from freshcart.USERS.firebase import get_user_or_404, update_user
from .models import BankDetailsInput, BankPinCheck, BankPinInput

logger = logging.getLogger("app.bank")

router = APIRouter(prefix="/api/users", tags=["bank"])

STORE_ROLES = ("seller", "store")
ENCRYPTED_FIELDS = ("account_number", "pan", "upi")


async def _bank_owner(uid: str, current_user: dict) -> dict:
    # nobody else, admins included, handles a seller's bank details
    if current_user["uid"] != uid:
        raise HTTPException(status_code=403, detail="Not authorized")
    user = await get_user_or_404(uid)
    if user.get("role") not in STORE_ROLES:
        raise HTTPException(status_code=403, detail="Only sellers can manage bank details")
    return user


def _check_pin(user: dict, pin: str):
    uid = user["uid"]
    if not user.get("bank_pin_hash"):
        raise HTTPException(status_code=403, detail="Set a bank PIN first")
    if is_pin_locked(uid):
        raise HTTPException(status_code=429, detail="Too many wrong PINs. Try again later.")
    if not verify_password(pin or "", user["bank_pin_hash"]):
        record_failed_pin(uid)
        logger.warning("⚠️ Wrong bank PIN for %s", uid)
        raise HTTPException(status_code=401, detail="Invalid PIN")
    reset_pin_attempts(uid)


def _masked_upi(upi: str) -> str:
    handle, _, provider = upi.partition("@")
    return f"{mask_value(handle)}@{provider}"


@router.post("/{uid}/bank/pin")
async def set_bank_pin(
    uid: str,
    request: Request,
    payload: BankPinInput,
    current_user: dict = Depends(get_current_user),
):
    user = await _bank_owner(uid, current_user)
    changing = bool(user.get("bank_pin_hash"))
    if changing:
        _check_pin(user, payload.current_pin)

    await update_user(uid, {"bank_pin_hash": get_password_hash(payload.pin)})
    log_request_activity(
        request, "bank_pin_changed" if changing else "bank_pin_set", actor=current_user,
        action_type="profile_update", target_user_id=uid,
    )
    return {"message": "PIN changed successfully" if changing else "PIN set successfully"}


@router.post("/{uid}/bank")
async def save_bank_details(
    uid: str,
    request: Request,
    payload: BankDetailsInput,
    current_user: dict = Depends(get_current_user),
):
    user = await _bank_owner(uid, current_user)
    _check_pin(user, payload.pin)

    details = payload.model_dump(exclude={"pin", *ENCRYPTED_FIELDS})
    details["branch"] = details.get("branch") or ""
    details["ifsc"] = details.get("ifsc") or ""
    for field in ENCRYPTED_FIELDS:
        value = getattr(payload, field)
        details[f"{field}_enc"] = encrypt_field(value) if value else ""
    details["updated_at"] = datetime.now(timezone.utc).isoformat()

    try:
        await update_user(uid, {"bank_details": details})
    except Exception as e:
        logger.exception("❌ save_bank_details error: %s", e)
        raise HTTPException(status_code=500, detail=f"Error saving bank details: {str(e)}")

    log_request_activity(
        request, "bank_details_saved", actor=current_user, action_type="profile_update",
        target_user_id=uid, details={"bank_name": details["bank_name"]},
    )
    logger.info("🏦 Bank details saved for %s", uid)
    return {"message": "Bank details saved"}


@router.post("/{uid}/bank/view")
async def view_bank_details(uid: str, payload: BankPinCheck, current_user: dict = Depends(get_current_user)):
    user = await _bank_owner(uid, current_user)
    _check_pin(user, payload.pin)

    stored = user.get("bank_details") or {}
    plain = {field: decrypt_field(stored[f"{field}_enc"]) if stored.get(f"{field}_enc") else "" for field in ENCRYPTED_FIELDS}
    return {
        "data": {
            "bank_name": stored.get("bank_name", ""),
            "branch": stored.get("branch", ""),
            "ifsc": stored.get("ifsc", ""),
            "account_holder_name": stored.get("account_holder_name", ""),
            "account_number_masked": mask_value(plain["account_number"]),
            "pan_masked": mask_value(plain["pan"]),
            "upi_masked": _masked_upi(plain["upi"]) if plain["upi"] else "",
            "updated_at": stored.get("updated_at"),
        }
    }
