# Delivery/verification.py
"""
Delivery partner verification records (DELIVERY_VERIFICATIONS/{uid}).

Partners fill in their details and upload five document images, then submit.
Admins review with approve / reject / request_resubmission. Every status
change is appended to verification_history.
"""
import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import HTTPException

from freshcart.core.firebase import get_db
from freshcart.Notification.notification import create_notification
from freshcart.utils.sanitize import sanitize_search
from .models import DeliveryVerification, DocumentImage, EmergencyContact, VerificationDetailsInput

logger = logging.getLogger("app.delivery_verification")

EDITABLE_STATUSES = {"pending", "rejected", "resubmission_required"}
SUBMITTABLE_STATUSES = {"pending", "rejected", "resubmission_required"}
REVIEW_OUTCOMES = {
    "approve": "approved",
    "reject": "rejected",
    "request_resubmission": "resubmission_required",
}

# URL segments -> model attributes
DOCUMENT_SECTIONS = {"license": "driving_license", "vehicle": "vehicle"}
DOCUMENT_IMAGES = {"front": "front_image", "back": "back_image", "rc": "rc_image"}


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def verification_ref(uid: str):
    return get_db().collection("DELIVERY_VERIFICATIONS").document(uid)


def load_verification(uid: str) -> Optional[DeliveryVerification]:
    snap = verification_ref(uid).get()
    if not snap.exists:
        return None
    return DeliveryVerification(**{**(snap.to_dict() or {}), "uid": uid})


def save_verification(verification: DeliveryVerification) -> DeliveryVerification:
    verification.last_updated_at = _now()
    verification_ref(verification.uid).set(verification.model_dump(mode="json"))
    return verification


def document_attribute(document_type: str, image_type: str):
    section = DOCUMENT_SECTIONS.get(document_type)
    image = DOCUMENT_IMAGES.get(image_type)
    if not section or not image or (section == "driving_license" and image == "rc_image"):
        raise HTTPException(status_code=400, detail=f"Invalid document: {document_type}/{image_type}")
    return section, image


def _ensure_editable(verification: DeliveryVerification):
    if verification.status not in EDITABLE_STATUSES:
        raise HTTPException(
            status_code=409,
            detail=f"Verification cannot be changed while {verification.readable_status().lower()}",
        )


# ---------------------------
# Partner operations
# ---------------------------
def get_status(uid: str) -> dict:
    verification = load_verification(uid)
    if not verification:
        return {"status": "not_started", "readable_status": "Not Started", "completion_percentage": 0}
    return verification.to_response()


def upsert_details(uid: str, payload: VerificationDetailsInput) -> DeliveryVerification:
    verification = load_verification(uid)
    created = verification is None
    if created:
        verification = DeliveryVerification(uid=uid, submitted_at=_now())
        verification.add_history("pending", uid, comments="Initial submission")
    else:
        _ensure_editable(verification)

    verification.full_name = payload.full_name
    verification.phone_number = payload.phone_number
    verification.address = payload.address
    # keep uploaded images, replace the typed fields
    verification.driving_license = verification.driving_license.model_copy(
        update=payload.driving_license.model_dump()
    )
    verification.vehicle = verification.vehicle.model_copy(update=payload.vehicle.model_dump())
    if payload.emergency_contact:
        verification.emergency_contact = EmergencyContact(**payload.emergency_contact.model_dump())
    save_verification(verification)
    logger.info("🚚 Verification details %s for %s", "created" if created else "updated", uid)
    return verification


def attach_document(uid: str, document_type: str, image_type: str, url: str, key: str) -> DeliveryVerification:
    section, image = document_attribute(document_type, image_type)
    verification = load_verification(uid)
    if verification is None:
        verification = DeliveryVerification(uid=uid, submitted_at=_now())
        verification.add_history("pending", uid, comments="Initial submission")
    else:
        _ensure_editable(verification)

    setattr(getattr(verification, section), image, DocumentImage(url=url, key=key, uploaded_at=_now()))
    return save_verification(verification)


def remove_document(uid: str, document_type: str, image_type: str) -> tuple:
    """Clear one document image; returns (verification, storage key of the removed image)."""
    section, image = document_attribute(document_type, image_type)
    verification = load_verification(uid)
    if verification is None:
        raise HTTPException(status_code=404, detail="Verification not found")
    _ensure_editable(verification)

    current = getattr(getattr(verification, section), image)
    if current is None:
        raise HTTPException(status_code=404, detail="Document not found")
    setattr(getattr(verification, section), image, None)
    save_verification(verification)
    return verification, current.key


def submit_for_review(uid: str) -> DeliveryVerification:
    verification = load_verification(uid)
    if verification is None:
        raise HTTPException(status_code=404, detail="Verification not found")
    if verification.status not in SUBMITTABLE_STATUSES:
        raise HTTPException(status_code=409, detail=f"Verification is already {verification.readable_status().lower()}")
    if not verification.full_name or not verification.driving_license.license_number:
        raise HTTPException(status_code=400, detail="Please complete your personal, license and vehicle details")
    if not verification.is_complete():
        raise HTTPException(
            status_code=400,
            detail=f"All documents are required ({verification.completion_percentage()}% complete)",
        )

    verification.status = "under_review"
    verification.submitted_at = _now()
    verification.add_history("under_review", uid, comments="Submitted for review")
    return save_verification(verification)


# ---------------------------
# Admin operations
# ---------------------------
def list_verifications(status: Optional[str] = None, search: Optional[str] = None, page: int = 1, limit: int = 10) -> dict:
    query = get_db().collection("DELIVERY_VERIFICATIONS")
    if status:
        query = query.where("status", "==", status)

    items = []
    for doc in query.stream():
        verification = DeliveryVerification(**{**(doc.to_dict() or {}), "uid": doc.id})
        if search:
            needle = sanitize_search(search)
            haystack = " ".join(filter(None, [
                verification.full_name,
                verification.phone_number,
                verification.driving_license.license_number,
                verification.vehicle.registration_number,
            ])).lower()
            if needle not in haystack:
                continue
        items.append(verification.to_response())

    items.sort(key=lambda v: v.get("submitted_at") or "", reverse=True)
    total = len(items)
    start = (page - 1) * limit
    return {
        "data": items[start:start + limit],
        "total": total,
        "total_pages": (total + limit - 1) // limit,
        "current_page": page,
    }


def review(uid: str, admin_uid: str, action: str, comments: str = None, rejection_reason: str = None) -> DeliveryVerification:
    verification = load_verification(uid)
    if verification is None:
        raise HTTPException(status_code=404, detail="Verification not found")

    new_status = REVIEW_OUTCOMES[action]
    if verification.status == new_status:
        raise HTTPException(status_code=409, detail=f"Verification is already {verification.readable_status().lower()}")
    if new_status == "approved" and not verification.is_complete():
        raise HTTPException(status_code=400, detail="Cannot approve an incomplete verification")

    now = _now()
    verification.status = new_status
    verification.reviewed_by = admin_uid
    verification.reviewed_at = now
    verification.review_comments = comments
    if new_status == "approved":
        verification.approved_at = now
        verification.approved_by = admin_uid
        verification.rejection_reason = None
    else:
        verification.approved_at = None
        verification.approved_by = None
        verification.rejection_reason = rejection_reason or comments
    verification.add_history(new_status, admin_uid, comments=comments, reason=rejection_reason)
    save_verification(verification)

    update_user_sync(uid, {"is_verified": new_status == "approved"})
    messages = {
        "approved": "Your delivery partner verification was approved. You can now accept orders.",
        "rejected": f"Your verification was rejected: {verification.rejection_reason}",
        "resubmission_required": f"Please resubmit your documents: {verification.rejection_reason}",
    }
    create_notification(
        uid,
        "delivery-verification",
        f"Verification {verification.readable_status()}",
        messages[new_status],
        data={"status": new_status},
    )
    logger.info("🪪 Verification %s -> %s by %s", uid, new_status, admin_uid)
    return verification


def update_user_sync(uid: str, updates: dict) -> None:
    updates["updated_at"] = _now()
    get_db().collection("USERS").document(uid).set(updates, merge=True)


def verification_stats(days_ahead: int = 30) -> dict:
    counts = {status: 0 for status in ["pending", "under_review", "approved", "rejected", "resubmission_required"]}
    all_items = []
    expiring = []
    for doc in get_db().collection("DELIVERY_VERIFICATIONS").stream():
        verification = DeliveryVerification(**{**(doc.to_dict() or {}), "uid": doc.id})
        counts[verification.status] = counts.get(verification.status, 0) + 1
        all_items.append(verification)
        if verification.status == "approved" and verification.is_license_expiring(days_ahead):
            expiring.append({
                "uid": verification.uid,
                "full_name": verification.full_name,
                "expiry_date": verification.driving_license.expiry_date.isoformat(),
            })

    all_items.sort(key=lambda v: v.submitted_at or "", reverse=True)
    return {
        "counts": counts,
        "total": len(all_items),
        "recent": [v.to_response() for v in all_items[:5]],
        "expiring_licenses": expiring,
    }


def is_partner_verified(uid: str) -> bool:
    verification = load_verification(uid)
    return bool(verification and verification.status == "approved")


def send_license_expiry_reminders(days_ahead: int = 30) -> int:
    """Notify approved partners whose driving license expires soon."""
    sent = 0
    for item in verification_stats(days_ahead)["expiring_licenses"]:
        create_notification(
            item["uid"],
            "delivery-verification",
            "Driving license expiring",
            f"Your driving license expires on {item['expiry_date']}. Please renew it to keep delivering.",
            data={"expiry_date": item["expiry_date"]},
        )
        sent += 1
    return sent
