# Delivery/routes.py
import logging
from typing import Literal, Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, Request, UploadFile

from freshcart.core.audit import log_request_activity
from freshcart.core.security import get_current_admin, get_delivery_partner
from freshcart.core.storage import build_key, delete_file, upload_file_bytes
from freshcart.utils.images import compress_to_720, validate_image
from . import verification as service
from .models import ReviewInput, VerificationDetailsInput

logger = logging.getLogger("app.delivery_routes")

router = APIRouter(prefix="/api/delivery-verification", tags=["delivery-verification"])
admin_router = APIRouter(prefix="/api/admin/delivery-verifications", tags=["admin"])

DocumentType = Literal["license", "vehicle"]
ImageType = Literal["front", "back", "rc"]


async def require_verified_partner(current_user: dict = Depends(get_delivery_partner)):
    """Delivery work is only open to partners whose documents were approved."""
    if not service.is_partner_verified(current_user["uid"]):
        raise HTTPException(status_code=403, detail="Delivery partner verification required")
    return current_user


# ==============================
# DELIVERY PARTNER
# ==============================
@router.get("/status")
async def verification_status(current_user: dict = Depends(get_delivery_partner)):
    return {"data": service.get_status(current_user["uid"])}


@router.put("")
async def save_details(
    request: Request,
    payload: VerificationDetailsInput,
    current_user: dict = Depends(get_delivery_partner),
):
    verification = service.upsert_details(current_user["uid"], payload)
    log_request_activity(request, "verification_details_saved", actor=current_user, action_type="verification")
    return {"message": "Verification details saved", "data": verification.to_response()}


@router.post("/documents/{document_type}/{image_type}")
async def upload_document(
    document_type: DocumentType,
    image_type: ImageType,
    file: UploadFile = File(...),
    current_user: dict = Depends(get_delivery_partner),
):
    uid = current_user["uid"]
    service.document_attribute(document_type, image_type)

    file_bytes = await file.read()
    try:
        validate_image(file_bytes, file.filename or "document.jpg")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    # Reject before uploading when the record is locked
    current = service.load_verification(uid)
    if current is not None and current.status not in service.EDITABLE_STATUSES:
        raise HTTPException(status_code=409, detail=f"Verification cannot be changed while {current.readable_status().lower()}")

    try:
        key = build_key("delivery-documents", uid, f"{document_type}_{image_type}.jpg")
        url = upload_file_bytes(key, compress_to_720(file_bytes), "image/jpeg", public=False)
    except Exception as e:
        logger.exception("❌ upload_document error: %s", e)
        raise HTTPException(status_code=500, detail=f"Error uploading document: {str(e)}")

    verification = service.attach_document(uid, document_type, image_type, url, key)
    return {"message": "Document uploaded", "data": verification.to_response()}


@router.delete("/documents/{document_type}/{image_type}")
async def delete_document(
    document_type: DocumentType,
    image_type: ImageType,
    current_user: dict = Depends(get_delivery_partner),
):
    verification, key = service.remove_document(current_user["uid"], document_type, image_type)
    if key:
        try:
            delete_file(key)
        except Exception as e:
            logger.warning("Could not delete stored document %s: %s", key, e)
    return {"message": "Document removed", "data": verification.to_response()}


@router.post("/submit")
async def submit_verification(request: Request, current_user: dict = Depends(get_delivery_partner)):
    verification = service.submit_for_review(current_user["uid"])
    log_request_activity(
        request, "verification_submitted", actor=current_user, action_type="verification", status="pending",
    )
    return {"message": "Verification submitted for review", "data": verification.to_response()}


# ==============================
# ADMIN
# ==============================
@admin_router.get("")
async def list_verifications(
    status: Optional[Literal["pending", "under_review", "approved", "rejected", "resubmission_required"]] = None,
    search: Optional[str] = Query(None, max_length=100),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=50),
    current_user: dict = Depends(get_current_admin),
):
    try:
        return service.list_verifications(status=status, search=search, page=page, limit=limit)
    except Exception as e:
        logger.exception("❌ list_verifications error: %s", e)
        raise HTTPException(status_code=500, detail=f"Error fetching verifications: {str(e)}")


@admin_router.get("/stats")
async def verification_stats(current_user: dict = Depends(get_current_admin)):
    return {"data": service.verification_stats()}


@admin_router.get("/{uid}")
async def get_verification(uid: str, current_user: dict = Depends(get_current_admin)):
    verification = service.load_verification(uid)
    if verification is None:
        raise HTTPException(status_code=404, detail="Verification not found")
    return {"data": verification.to_response()}


@admin_router.put("/{uid}/review")
async def review_verification(
    uid: str,
    request: Request,
    payload: ReviewInput,
    current_user: dict = Depends(get_current_admin),
):
    verification = service.review(uid, current_user["uid"], payload.action, payload.comments, payload.rejection_reason)
    log_request_activity(
        request, f"verification_{payload.action}", actor=current_user, action_type="verification", target_user_id=uid,
    )
    return {"message": f"Verification {verification.readable_status().lower()}", "data": verification.to_response()}
