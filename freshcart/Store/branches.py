# Store/branches.py
"""
Branch stores and seller-to-seller branch link requests.

A seller can list branch stores on their own account. When a branch names
another seller's unique number, the link is not made directly: a pending
BRANCH_LINK_REQUESTS document is created and the target seller decides.

    pending --accept--> accepted   (requester branch gets the link,
                                    target gets a linked_branch_of entry)
    pending --deny----> denied     (requester branch is removed)

Deleting a branch whose request is still pending denies the request.
"""
import logging
from datetime import datetime, timezone
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Request

from freshcart.core.audit import log_request_activity
from freshcart.core.firebase import get_db, run_transaction, snapshot_to_dict
from freshcart.core.security import get_verified_seller
from freshcart.Notification.notification import create_notification, delete_request_notifications
from freshcart.USERS.firebase import find_seller_by_unique_number, get_user_or_404, update_user, user_ref
from .models import BranchStoreInput

logger = logging.getLogger("app.branches")

router = APIRouter(prefix="/api/users", tags=["branch-stores"])

REQUEST_STATUSES = ["pending", "accepted", "denied"]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def requests_collection():
    return get_db().collection("BRANCH_LINK_REQUESTS")


def _ensure_owner(current_user: dict, uid: str):
    if current_user["uid"] != uid:
        raise HTTPException(status_code=403, detail="Not authorized")


def _pending_requests_for(target_uid: str) -> list:
    docs = requests_collection().where("target_uid", "==", target_uid).where("status", "==", "pending").stream()
    items = [snapshot_to_dict(doc) for doc in docs]
    items.sort(key=lambda r: r.get("created_at") or "", reverse=True)
    return items


def _matches(branch: dict, request_id: str, name: str, address: str) -> bool:
    if branch.get("link_request_id") == request_id:
        return True
    return branch.get("name") == name and branch.get("address") == address


# ==============================
# BRANCH STORES
# ==============================
@router.get("/{uid}/branch-stores")
async def list_branch_stores(uid: str, current_user: dict = Depends(get_verified_seller)):
    _ensure_owner(current_user, uid)
    seller = await get_user_or_404(uid)
    return {
        "data": seller.get("branch_stores") or [],
        "linked_branch_of": seller.get("linked_branch_of") or [],
        "pending_requests": _pending_requests_for(uid),
        "seller_unique_number": seller.get("seller_unique_number"),
    }


@router.post("/{uid}/branch-stores", status_code=201)
async def add_branch_store(
    uid: str,
    request: Request,
    payload: BranchStoreInput,
    current_user: dict = Depends(get_verified_seller),
):
    _ensure_owner(current_user, uid)
    seller = await get_user_or_404(uid)
    branches = seller.get("branch_stores") or []

    if any(b.get("name") == payload.name and b.get("address") == payload.address for b in branches):
        raise HTTPException(status_code=409, detail="Branch store already exists")

    branch = {
        "name": payload.name,
        "address": payload.address,
        "linked_seller_unique_number": None,
        "link_status": None,
        "link_request_id": None,
        "created_at": _now(),
    }

    target = None
    number = payload.linked_seller_unique_number
    if number:
        if number == seller.get("seller_unique_number"):
            raise HTTPException(status_code=400, detail="You cannot link a branch to your own store")
        if not seller.get("seller_unique_number"):
            raise HTTPException(status_code=400, detail="Your account has no seller unique number")
        target = await find_seller_by_unique_number(number)
        if not target or target.get("role") != "seller":
            raise HTTPException(status_code=404, detail="No seller found with that unique number")

    try:
        if target:
            req_ref = requests_collection().document()
            req_ref.set({
                "requester_uid": uid,
                "requester_seller_unique_number": seller.get("seller_unique_number"),
                "requester_store_name": seller.get("store_name"),
                "target_uid": target["uid"],
                "target_seller_unique_number": target.get("seller_unique_number"),
                "branch_name": payload.name,
                "branch_address": payload.address,
                "status": "pending",
                "created_at": _now(),
                "decided_at": None,
            })
            branch["link_status"] = "pending"
            branch["link_request_id"] = req_ref.id
            create_notification(
                target["uid"],
                "branch-link-request",
                "New branch link request",
                f"{seller.get('store_name') or 'A seller'} wants to link branch '{payload.name}' to your store",
                data={"request_id": req_ref.id, "requester_uid": uid},
                request_id=req_ref.id,
            )

        branches.append(branch)
        await update_user(uid, {"branch_stores": branches})
        log_request_activity(
            request, "branch_store_added", actor=current_user, action_type="profile_update",
            details={"name": payload.name, "link_requested": bool(target)},
        )
        message = "Branch store added; link request sent" if target else "Branch store added"
        return {"message": message, "data": branch}
    except HTTPException:
        raise
    except Exception as e:
        logger.exception("❌ add_branch_store error: %s", e)
        raise HTTPException(status_code=500, detail=f"Error adding branch store: {str(e)}")


@router.delete("/{uid}/branch-stores/{index}")
async def delete_branch_store(uid: str, index: int, current_user: dict = Depends(get_verified_seller)):
    _ensure_owner(current_user, uid)
    seller = await get_user_or_404(uid)
    branches = seller.get("branch_stores") or []
    if index < 0 or index >= len(branches):
        raise HTTPException(status_code=404, detail="Branch store not found")

    removed = branches.pop(index)
    await update_user(uid, {"branch_stores": branches})

    request_id = removed.get("link_request_id")
    if request_id and removed.get("link_status") == "pending":
        req_ref = requests_collection().document(request_id)
        snap = req_ref.get()
        if snap.exists and (snap.to_dict() or {}).get("status") == "pending":
            target_uid = snap.to_dict().get("target_uid")
            req_ref.update({"status": "denied", "decided_at": _now()})
            delete_request_notifications(target_uid, request_id)

    return {"message": "Branch store removed", "data": branches}


# ==============================
# LINK REQUESTS
# ==============================
@router.get("/{uid}/branch-link-requests")
async def list_link_requests(uid: str, current_user: dict = Depends(get_verified_seller)):
    _ensure_owner(current_user, uid)
    return {"data": _pending_requests_for(uid)}


def _decide_txn(transaction, request_id: str, target_uid: str, action: str) -> dict:
    req_ref = requests_collection().document(request_id)
    req_snap = req_ref.get(transaction=transaction)
    if not req_snap.exists:
        raise HTTPException(status_code=404, detail="Link request not found")
    req = req_snap.to_dict() or {}
    if req.get("target_uid") != target_uid:
        raise HTTPException(status_code=403, detail="Only the target seller can respond to this request")
    if req.get("status") != "pending":
        raise HTTPException(status_code=400, detail="Request already processed")

    requester_ref = user_ref(req["requester_uid"])
    target_ref = user_ref(target_uid)
    requester = requester_ref.get(transaction=transaction).to_dict() or {}
    target = target_ref.get(transaction=transaction).to_dict() or {}

    now = _now()
    branches = requester.get("branch_stores") or []
    name, address = req.get("branch_name"), req.get("branch_address")

    if action == "accept":
        linked = target.get("linked_branch_of") or []
        if not any(
            e.get("seller_unique_number") == req.get("requester_seller_unique_number") and e.get("branch_name") == name
            for e in linked
        ):
            linked.append({
                "seller_unique_number": req.get("requester_seller_unique_number"),
                "requester_uid": req["requester_uid"],
                "branch_name": name,
                "branch_address": address,
                "created_at": now,
            })
        transaction.update(target_ref, {"linked_branch_of": linked, "updated_at": now})

        branch = next((b for b in branches if _matches(b, request_id, name, address)), None)
        if branch is None:
            branch = {"name": name, "address": address, "created_at": now}
            branches.append(branch)
        branch.update({
            "linked_seller_unique_number": target.get("seller_unique_number"),
            "link_status": "accepted",
            "link_request_id": request_id,
        })
        status = "accepted"
    else:
        branches = [b for b in branches if not _matches(b, request_id, name, address)]
        status = "denied"

    transaction.update(requester_ref, {"branch_stores": branches, "updated_at": now})
    transaction.update(req_ref, {"status": status, "decided_at": now})
    req.update({"id": request_id, "status": status, "decided_at": now})
    return req


@router.post("/{uid}/branch-link-requests/{request_id}/{action}")
async def decide_link_request(
    uid: str,
    request_id: str,
    action: Literal["accept", "deny"],
    request: Request,
    current_user: dict = Depends(get_verified_seller),
):
    _ensure_owner(current_user, uid)
    try:
        decided = run_transaction(_decide_txn, request_id, uid, action)
    except HTTPException:
        raise
    except Exception as e:
        logger.exception("❌ decide_link_request error: %s", e)
        raise HTTPException(status_code=500, detail=f"Error processing link request: {str(e)}")

    verb = "accepted" if decided["status"] == "accepted" else "denied"
    create_notification(
        decided["requester_uid"],
        "branch-link-request-update",
        f"Branch link request {verb}",
        f"Your request to link branch '{decided.get('branch_name')}' was {verb}",
        data={"request_id": request_id, "status": decided["status"]},
    )
    delete_request_notifications(uid, request_id)
    log_request_activity(
        request, f"branch_link_{verb}", actor=current_user, action_type="profile_update",
        target_user_id=decided["requester_uid"], details={"request_id": request_id},
    )
    return {"message": f"Request {verb}", "data": decided}
