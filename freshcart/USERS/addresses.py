# USERS/addresses.py
"""
Saved addresses: USERS/{uid}/addresses/{address_id}.

Customers keep an address book with exactly one default entry and can check
out against a saved address by id. Sellers have no address book; their
store_address lives on the profile. Delivery partners must record a
permanent address before any other kind.
"""
import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Request

from freshcart.core.audit import log_request_activity
from freshcart.core.config import MAX_SAVED_ADDRESSES
from freshcart.core.firebase import get_db, snapshot_to_dict
from freshcart.core.security import ensure_self_or_admin, get_current_user
from .firebase import get_user_or_404, user_ref
from .models import AddressInput, AddressUpdate

logger = logging.getLogger("app.addresses")

router = APIRouter(prefix="/api/users", tags=["addresses"])

SELLER_ROLES = ("seller", "store")


# ---------------------------
# HELPERS
# ---------------------------
def addresses_collection(uid: str):
    return user_ref(uid).collection("addresses")


def address_ref(uid: str, address_id: str):
    return addresses_collection(uid).document(address_id)


def list_addresses(uid: str) -> list:
    """Default first, then newest first."""
    addresses = [snapshot_to_dict(doc) for doc in addresses_collection(uid).stream()]
    addresses.sort(key=lambda a: a.get("created_at") or "", reverse=True)
    addresses.sort(key=lambda a: not a.get("is_default"))
    return addresses


def get_address(uid: str, address_id: str, transaction=None) -> dict:
    snap = address_ref(uid, address_id).get(transaction=transaction)
    if not snap.exists:
        raise HTTPException(status_code=404, detail="Address not found")
    return snapshot_to_dict(snap)


def order_address(address: dict) -> dict:
    """Copy of a saved address in the shape stored on orders."""
    coordinates = address.get("coordinates") or {}
    return {
        "address_id": address["id"],
        "name": address["name"],
        "phone": address["phone"],
        "address_line": ", ".join(part for part in (address.get("house"), address.get("street")) if part),
        "city": address["city"],
        "state": address.get("state"),
        "pincode": address["pincode"],
        "landmark": address.get("landmark"),
        "latitude": coordinates.get("lat"),
        "longitude": coordinates.get("lng"),
    }


def _clear_defaults(batch, uid: str, keep_id: str = None):
    for doc in addresses_collection(uid).where("is_default", "==", True).stream():
        if doc.id != keep_id:
            batch.update(doc.reference, {"is_default": False})


def _has_other_permanent(addresses: list, address_id: str) -> bool:
    return any(a.get("type") == "permanent" and a["id"] != address_id for a in addresses)


async def _address_book_owner(uid: str, current_user: dict) -> dict:
    ensure_self_or_admin(current_user, uid)
    user = await get_user_or_404(uid)
    if user.get("role") in SELLER_ROLES:
        raise HTTPException(status_code=403, detail="Sellers use the store address on their profile")
    return user


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------
# ROUTES
# ---------------------------
@router.get("/{uid}/addresses")
async def get_addresses(uid: str, current_user: dict = Depends(get_current_user)):
    ensure_self_or_admin(current_user, uid)
    user = await get_user_or_404(uid)
    if user.get("role") in SELLER_ROLES:
        return {"data": [], "total": 0}
    try:
        addresses = list_addresses(uid)
        return {"data": addresses, "total": len(addresses)}
    except Exception as e:
        logger.exception("❌ get_addresses error: %s", e)
        raise HTTPException(status_code=500, detail=f"Error fetching addresses: {str(e)}")


@router.post("/{uid}/addresses", status_code=201)
async def add_address(
    uid: str,
    request: Request,
    payload: AddressInput,
    current_user: dict = Depends(get_current_user),
):
    user = await _address_book_owner(uid, current_user)
    existing = list_addresses(uid)
    if len(existing) >= MAX_SAVED_ADDRESSES:
        raise HTTPException(status_code=400, detail=f"You can save up to {MAX_SAVED_ADDRESSES} addresses")
    if user.get("role") == "delivery" and payload.type != "permanent" and not _has_other_permanent(existing, None):
        raise HTTPException(status_code=400, detail="Permanent address is required first for delivery partners")

    now = _now()
    address = payload.model_dump()
    address["is_default"] = payload.is_default or not existing
    address["created_at"] = now
    address["updated_at"] = now

    ref = addresses_collection(uid).document()
    batch = get_db().batch()
    if address["is_default"]:
        _clear_defaults(batch, uid)
    batch.set(ref, address)
    batch.commit()

    log_request_activity(
        request, "address_added", actor=current_user, action_type="profile_update",
        target_user_id=uid, details={"address_id": ref.id, "type": address["type"]},
    )
    return {"message": "Address added", "data": {**address, "id": ref.id}}


@router.put("/{uid}/addresses/{address_id}")
async def update_address(
    uid: str,
    address_id: str,
    request: Request,
    payload: AddressUpdate,
    current_user: dict = Depends(get_current_user),
):
    user = await _address_book_owner(uid, current_user)
    address = get_address(uid, address_id)

    updates = payload.model_dump(exclude_none=True)
    if not updates:
        raise HTTPException(status_code=400, detail="No fields to update")
    if updates.get("is_default") is False and address.get("is_default"):
        raise HTTPException(status_code=400, detail="Set another address as default instead")
    if (
        user.get("role") == "delivery"
        and address.get("type") == "permanent"
        and updates.get("type", "permanent") != "permanent"
        and not _has_other_permanent(list_addresses(uid), address_id)
    ):
        raise HTTPException(status_code=400, detail="Permanent address is required for delivery partners")

    updates["updated_at"] = _now()
    batch = get_db().batch()
    if updates.get("is_default"):
        _clear_defaults(batch, uid, keep_id=address_id)
    batch.update(address_ref(uid, address_id), updates)
    batch.commit()

    log_request_activity(
        request, "address_updated", actor=current_user, action_type="profile_update",
        target_user_id=uid, details={"address_id": address_id, "fields": sorted(updates)},
    )
    address.update(updates)
    return {"message": "Address updated", "data": address}


@router.put("/{uid}/addresses/{address_id}/default")
async def set_default_address(uid: str, address_id: str, current_user: dict = Depends(get_current_user)):
    await _address_book_owner(uid, current_user)
    address = get_address(uid, address_id)

    batch = get_db().batch()
    _clear_defaults(batch, uid, keep_id=address_id)
    batch.update(address_ref(uid, address_id), {"is_default": True, "updated_at": _now()})
    batch.commit()
    return {"message": "Default address updated", "data": {**address, "is_default": True}}


@router.delete("/{uid}/addresses/{address_id}")
async def delete_address(
    uid: str,
    address_id: str,
    request: Request,
    current_user: dict = Depends(get_current_user),
):
    user = await _address_book_owner(uid, current_user)
    address = get_address(uid, address_id)
    remaining = [a for a in list_addresses(uid) if a["id"] != address_id]

    if (
        user.get("role") == "delivery"
        and address.get("type") == "permanent"
        and remaining
        and not _has_other_permanent(remaining, address_id)
    ):
        raise HTTPException(status_code=400, detail="Permanent address is required for delivery partners")

    batch = get_db().batch()
    batch.delete(address_ref(uid, address_id))
    # the newest remaining address inherits the default
    if address.get("is_default") and remaining:
        batch.update(address_ref(uid, remaining[0]["id"]), {"is_default": True, "updated_at": _now()})
    batch.commit()

    log_request_activity(
        request, "address_deleted", actor=current_user, action_type="profile_update",
        target_user_id=uid, details={"address_id": address_id},
    )
    return {"message": "Address deleted", "default_address_id": remaining[0]["id"] if remaining else None}
