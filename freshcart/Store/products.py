# Store/products.py
import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile

from freshcart.core.firebase import get_db, snapshot_to_dict
from freshcart.core.security import get_verified_seller
from freshcart.core.storage import build_key, upload_file_bytes
from freshcart.utils.images import compress_to_720, validate_image
from freshcart.utils.sanitize import sanitize_search
from .firebase import get_product, product_ref, products_collection
from .license import require_approved_license
from .models import ProductCreate, ProductUpdate

logger = logging.getLogger("app.products")

router = APIRouter(prefix="/api/seller/products", tags=["products"])
public_router = APIRouter(prefix="/api/public", tags=["public"])

MAX_PRODUCT_IMAGES = 5
# Changing these sends the product back to the approval queue
REVIEWED_FIELDS = {"name", "description", "price", "mrp_price"}


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def with_stock_flags(product: dict) -> dict:
    stock = int(product.get("stock", 0))
    product["is_low_stock"] = stock <= int(product.get("low_stock_threshold", 10))
    product["in_stock"] = stock > 0
    return product


# ==============================
# SELLER: PRODUCTS
# ==============================
@router.post("", status_code=201)
async def create_product(payload: ProductCreate, current_user: dict = Depends(require_approved_license)):
    if payload.category != current_user.get("seller_category"):
        raise HTTPException(
            status_code=400,
            detail=f"Category must match your store category: {current_user.get('seller_category')}",
        )
    try:
        doc_ref = products_collection(current_user["uid"]).document()
        data = payload.model_dump()
        if data.get("mrp_price") is None:
            data["mrp_price"] = data["price"]
        data.update({
            "seller_uid": current_user["uid"],
            "seller_unique_number": current_user.get("seller_unique_number"),
            "store_name": current_user.get("store_name"),
            "images": [],
            "approval_status": "pending",
            "rejection_reason": None,
            "is_active": True,
            "created_at": _now(),
            "updated_at": _now(),
        })
        doc_ref.set(data)
        logger.info("📦 Product %s created by %s (pending approval)", doc_ref.id, current_user["uid"])
        return {"message": "✅ Product submitted for approval", "id": doc_ref.id, "data": {**data, "id": doc_ref.id}}
    except Exception as e:
        logger.exception("❌ create_product error: %s", e)
        raise HTTPException(status_code=500, detail=f"Error creating product: {str(e)}")


@router.get("")
async def list_my_products(
    low_stock: bool = Query(False),
    approval_status: Optional[str] = Query(None),
    current_user: dict = Depends(get_verified_seller),
):
    try:
        products = [with_stock_flags(snapshot_to_dict(doc)) for doc in products_collection(current_user["uid"]).stream()]
        if low_stock:
            products = [p for p in products if p["is_low_stock"]]
        if approval_status:
            products = [p for p in products if p.get("approval_status") == approval_status]
        products.sort(key=lambda p: p.get("created_at") or "", reverse=True)
        return {"data": products, "total": len(products)}
    except Exception as e:
        logger.exception("❌ list_my_products error: %s", e)
        raise HTTPException(status_code=500, detail=f"Error fetching products: {str(e)}")


@router.put("/{product_id}")
async def update_product(product_id: str, payload: ProductUpdate, current_user: dict = Depends(get_verified_seller)):
    product = get_product(current_user["uid"], product_id)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")

    updates = payload.model_dump(exclude_none=True)
    if "category" in updates and updates["category"] != product.get("category"):
        raise HTTPException(status_code=400, detail="Product category cannot be changed")
    price = updates.get("price", product.get("price"))
    mrp = updates.get("mrp_price", product.get("mrp_price"))
    if mrp is not None and price is not None and mrp < price:
        raise HTTPException(status_code=400, detail="mrp_price cannot be lower than price")
    if not updates:
        raise HTTPException(status_code=400, detail="No fields to update")

    if any(updates.get(f) != product.get(f) for f in REVIEWED_FIELDS if f in updates):
        updates["approval_status"] = "pending"
        updates["rejection_reason"] = None
    updates["updated_at"] = _now()
    product_ref(current_user["uid"], product_id).update(updates)
    product.update(updates)
    return {"message": "Product updated", "data": with_stock_flags(product)}


@router.delete("/{product_id}")
async def delete_product(product_id: str, current_user: dict = Depends(get_verified_seller)):
    ref = product_ref(current_user["uid"], product_id)
    if not ref.get().exists:
        raise HTTPException(status_code=404, detail="Product not found")
    ref.delete()
    return {"message": "Product deleted"}


@router.post("/{product_id}/images")
async def upload_product_image(
    product_id: str,
    file: UploadFile = File(...),
    current_user: dict = Depends(get_verified_seller),
):
    product = get_product(current_user["uid"], product_id)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    images = product.get("images") or []
    if len(images) >= MAX_PRODUCT_IMAGES:
        raise HTTPException(status_code=400, detail=f"A product can have at most {MAX_PRODUCT_IMAGES} images")

    file_bytes = await file.read()
    try:
        validate_image(file_bytes, file.filename or "product.jpg")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    try:
        key = build_key(f"products/{current_user['uid']}", product_id, file.filename or "product.jpg")
        url = upload_file_bytes(key, compress_to_720(file_bytes), "image/jpeg", public=True)
        images.append(url)
        product_ref(current_user["uid"], product_id).update({"images": images, "updated_at": _now()})
        return {"message": "Image uploaded", "images": images}
    except Exception as e:
        logger.exception("❌ upload_product_image error: %s", e)
        raise HTTPException(status_code=500, detail=f"Error uploading image: {str(e)}")


# ==============================
# PUBLIC: CATALOGUE
# ==============================
@public_router.get("/products")
async def list_public_products(
    category: Optional[str] = Query(None),
    search: Optional[str] = Query(None, max_length=100),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
):
    """Approved, active products of active sellers, paginated."""
    needle = sanitize_search(search) if search else ""
    try:
        db = get_db()
        products = []
        sellers = db.collection("USERS").where("role", "==", "seller").stream()
        for seller in sellers:
            seller_data = seller.to_dict() or {}
            if not seller_data.get("is_active", True) or seller_data.get("account_status", "active") != "active":
                continue
            for doc in products_collection(seller.id).where("approval_status", "==", "approved").stream():
                product = snapshot_to_dict(doc)
                if not product.get("is_active", True):
                    continue
                if category and product.get("category") != category:
                    continue
                if needle and needle not in (product.get("name") or "").lower():
                    continue
                products.append(with_stock_flags(product))

        products.sort(key=lambda p: p.get("created_at") or "", reverse=True)
        total = len(products)
        start = (page - 1) * limit
        return {
            "data": products[start:start + limit],
            "total": total,
            "total_pages": (total + limit - 1) // limit,
            "current_page": page,
        }
    except Exception as e:
        logger.exception("❌ list_public_products error: %s", e)
        raise HTTPException(status_code=500, detail=f"Error fetching products: {str(e)}")
