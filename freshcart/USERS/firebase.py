import logging
import secrets
from datetime import datetime, timezone
from typing import Optional

from fastapi import HTTPException
from freshcart.core.firebase import get_db
from freshcart.core.security import public_user
from freshcart.core.tokens import revoke_user_tokens

logger = logging.getLogger("app.firebase")
logger.setLevel(logging.INFO)

SELLER_NUMBER_ATTEMPTS = 5


def user_ref(uid: str):
    return get_db().collection("USERS").document(uid)


async def get_user(uid: str) -> Optional[dict]:
    snap = user_ref(uid).get()
    if not snap.exists:
        return None
    data = snap.to_dict() or {}
    data["uid"] = uid
    return data


async def get_user_or_404(uid: str) -> dict:
    user = await get_user(uid)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


async def get_user_by_email(email: str) -> Optional[dict]:
    docs = list(get_db().collection("USERS").where("email", "==", email.lower().strip()).limit(1).stream())
    if not docs:
        return None
    data = docs[0].to_dict() or {}
    data["uid"] = docs[0].id
    return data


async def find_seller_by_unique_number(seller_unique_number: str) -> Optional[dict]:
    docs = list(
        get_db().collection("USERS")
        .where("seller_unique_number", "==", seller_unique_number.strip().upper())
        .limit(1)
        .stream()
    )
    if not docs:
        return None
    data = docs[0].to_dict() or {}
    data["uid"] = docs[0].id
    return data


async def save_user(uid: str, user_data: dict) -> bool:
    """
    Create USERS/{uid}. Returns False if the uid or email is already registered.
    """
    try:
        if user_ref(uid).get().exists:
            logger.info("save_user: uid already exists: %s", uid)
            return False
        if await get_user_by_email(user_data["email"]):
            logger.info("save_user: email already exists: %s", user_data["email"])
            return False

        now = datetime.now(timezone.utc).isoformat()
        user_data.setdefault("created_at", now)
        user_data["updated_at"] = now
        user_ref(uid).set(user_data)
        logger.info("save_user: wrote USERS/%s role=%s", uid, user_data.get("role"))
        return True
    except Exception as e:
        logger.exception("save_user failed for uid=%s: %s", uid, e)
        raise HTTPException(status_code=500, detail=f"Firebase error: {str(e)}")


async def update_user(uid: str, updates: dict) -> None:
    updates["updated_at"] = datetime.now(timezone.utc).isoformat()
    user_ref(uid).set(updates, merge=True)


# ---------------------------
# Seller unique numbers
# ---------------------------
async def generate_seller_unique_number(uid: str, now: datetime = None) -> str:
    """
    SLR-YYMM-XXXXXX, seeded from the uid; falls back to random hex when taken.
    """
    now = now or datetime.now(timezone.utc)
    prefix = f"SLR-{now:%y%m}-"
    candidate = prefix + ((uid or "")[-6:] or "000000").upper()

    for _ in range(SELLER_NUMBER_ATTEMPTS):
        existing = await find_seller_by_unique_number(candidate)
        if not existing or existing["uid"] == uid:
            return candidate
        candidate = prefix + secrets.token_hex(4).upper()

    raise HTTPException(status_code=500, detail="Could not allocate a unique seller number")


# ---------------------------
# Account deletion
# ---------------------------
def _days_since(timestamp: Optional[str], now: datetime) -> Optional[int]:
    if not timestamp:
        return None
    try:
        return (now - datetime.fromisoformat(timestamp)).days
    except (TypeError, ValueError):
        return None


def archive_and_delete_user(user: dict, deleted_by: str, reason: str) -> dict:
    """
    Move USERS/{uid} to DELETED_USERS/{uid} (secrets stripped) and remove the
    profile, its saved addresses and the cart. Refresh tokens are revoked.
    Returns the archived record.
    """
    uid = user["uid"]
    now = datetime.now(timezone.utc)
    addresses = list(user_ref(uid).collection("addresses").stream())

    archived = public_user(user)
    archived.update({
        "deleted_at": now.isoformat(),
        "deleted_by": deleted_by,
        "deletion_reason": reason,
        "analytics": {
            "addresses_count": len(addresses),
            "had_profile_picture": bool(user.get("profile_picture")),
            "had_store_fields": bool(user.get("store_name") or user.get("store_address")),
            "had_delivery_fields": bool(user.get("vehicle_type") or user.get("license_number")),
            "days_since_signup": _days_since(user.get("created_at"), now),
        },
    })

    batch = get_db().batch()
    batch.set(get_db().collection("DELETED_USERS").document(uid), archived)
    for doc in addresses:
        batch.delete(doc.reference)
    batch.delete(user_ref(uid))
    batch.delete(get_db().collection("CARTS").document(uid))
    batch.commit()

    revoked = revoke_user_tokens(uid)
    logger.info("archive_and_delete_user: %s by %s (%s), %d tokens revoked", uid, deleted_by, reason, revoked)
    return archived
