# Cart/cart.py
import logging
import uuid
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Query

from freshcart.core.firebase import get_db, run_transaction
from freshcart.core.security import get_customer
from freshcart.pricing.delivery_fee import (
    InvalidSubtotalError,
    calculate_subtotal,
    calculate_total,
    free_delivery_gap,
)
from freshcart.Store.firebase import get_product
from .models import AddToCart, Cart, UpdateCartItem

logger = logging.getLogger("app.cart")

router = APIRouter(prefix="/api/cart", tags=["cart"])


# ==============================
# HELPERS
# ==============================
def cart_ref(uid: str):
    return get_db().collection("CARTS").document(uid)


def recalculate(cart: dict) -> dict:
    """Recompute every derived total from the line items."""
    items = cart.get("items") or []
    breakdown = calculate_total(calculate_subtotal(items))
    cart["items"] = items
    cart["subtotal"] = breakdown.subtotal
    cart["delivery_fee"] = breakdown.delivery_fee
    cart["total_amount"] = breakdown.total_amount
    cart["item_count"] = sum(item["quantity"] for item in items)
    cart["free_delivery_gap"] = free_delivery_gap(breakdown.subtotal) if items else 0
    return cart


def load_cart(uid: str, transaction=None) -> dict:
    snap = cart_ref(uid).get(transaction=transaction)
    cart = (snap.to_dict() or {}) if snap.exists else {}
    cart["customer_uid"] = uid
    cart.setdefault("items", [])
    return recalculate(cart)


def _save(transaction, uid: str, cart: dict) -> dict:
    recalculate(cart)
    cart["updated_at"] = datetime.now(timezone.utc).isoformat()
    transaction.set(cart_ref(uid), cart)
    return Cart(**cart).model_dump()


def _find_item(cart: dict, item_id: str) -> dict:
    for item in cart["items"]:
        if item["item_id"] == item_id:
            return item
    raise HTTPException(status_code=404, detail="Item not found in cart")


def _available_product(seller_uid: str, product_id: str, transaction=None) -> dict:
    product = get_product(seller_uid, product_id, transaction=transaction)
    if not product or product.get("approval_status") != "approved" or not product.get("is_active", True):
        raise HTTPException(status_code=404, detail="Product not found")
    return product


def _check_stock(product: dict, quantity: int):
    stock = int(product.get("stock", 0))
    if quantity > stock:
        raise HTTPException(status_code=400, detail=f"Only {stock} items available in stock")


# ==============================
# TRANSACTIONS
# ==============================
def _add_item_txn(transaction, uid: str, payload: AddToCart) -> dict:
    cart = load_cart(uid, transaction)
    product = _available_product(payload.seller_uid, payload.product_id, transaction)

    existing = next(
        (i for i in cart["items"] if i["product_id"] == payload.product_id and i["seller_uid"] == payload.seller_uid),
        None,
    )
    new_quantity = (existing["quantity"] if existing else 0) + payload.quantity
    _check_stock(product, new_quantity)

    if existing:
        existing["quantity"] = new_quantity
    else:
        images = product.get("images") or []
        cart["items"].append({
            "item_id": uuid.uuid4().hex[:12],
            "product_id": payload.product_id,
            "seller_uid": payload.seller_uid,
            "product_name": product.get("name"),
            "price": float(product.get("price", 0)),
            "quantity": new_quantity,
            "category": product.get("category"),
            "product_image": images[0] if images else None,
        })
    return _save(transaction, uid, cart)


def _update_item_txn(transaction, uid: str, item_id: str, quantity: int) -> dict:
    cart = load_cart(uid, transaction)
    item = _find_item(cart, item_id)
    product = _available_product(item["seller_uid"], item["product_id"], transaction)
    _check_stock(product, quantity)
    item["quantity"] = quantity
    return _save(transaction, uid, cart)


def _remove_item_txn(transaction, uid: str, item_id: str) -> dict:
    cart = load_cart(uid, transaction)
    item = _find_item(cart, item_id)
    cart["items"] = [i for i in cart["items"] if i["item_id"] != item["item_id"]]
    return _save(transaction, uid, cart)


# ==============================
# PUBLIC: FEE PREVIEW
# ==============================
@router.get("/estimate")
async def estimate_delivery(subtotal: str = Query(..., max_length=32)):
    """Preview the delivery fee and total for a subtotal without a cart."""
    try:
        breakdown = calculate_total(subtotal)
    except InvalidSubtotalError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"data": {**breakdown.model_dump(), "free_delivery_gap": free_delivery_gap(breakdown.subtotal)}}


# ==============================
# CUSTOMER: CART
# ==============================
@router.get("")
async def get_cart(current_user: dict = Depends(get_customer)):
    try:
        cart = load_cart(current_user["uid"])
        return {"data": Cart(**cart).model_dump()}
    except Exception as e:
        logger.exception("❌ get_cart error: %s", e)
        raise HTTPException(status_code=500, detail=f"Error fetching cart: {str(e)}")


@router.post("/add")
async def add_to_cart(payload: AddToCart, current_user: dict = Depends(get_customer)):
    try:
        cart = run_transaction(_add_item_txn, current_user["uid"], payload)
        logger.info("🛒 %s added %s x%d", current_user["uid"], payload.product_id, payload.quantity)
        return {"message": "Item added to cart", "data": cart}
    except HTTPException:
        raise
    except Exception as e:
        logger.exception("❌ add_to_cart error: %s", e)
        raise HTTPException(status_code=500, detail=f"Error adding to cart: {str(e)}")


@router.put("/update/{item_id}")
async def update_cart_item(item_id: str, payload: UpdateCartItem, current_user: dict = Depends(get_customer)):
    try:
        cart = run_transaction(_update_item_txn, current_user["uid"], item_id, payload.quantity)
        return {"message": "Cart updated", "data": cart}
    except HTTPException:
        raise
    except Exception as e:
        logger.exception("❌ update_cart_item error: %s", e)
        raise HTTPException(status_code=500, detail=f"Error updating cart: {str(e)}")


@router.delete("/remove/{item_id}")
async def remove_cart_item(item_id: str, current_user: dict = Depends(get_customer)):
    try:
        cart = run_transaction(_remove_item_txn, current_user["uid"], item_id)
        return {"message": "Item removed from cart", "data": cart}
    except HTTPException:
        raise
    except Exception as e:
        logger.exception("❌ remove_cart_item error: %s", e)
        raise HTTPException(status_code=500, detail=f"Error removing item: {str(e)}")


@router.delete("/clear")
async def clear_cart(current_user: dict = Depends(get_customer)):
    try:
        cart_ref(current_user["uid"]).delete()
        return {"message": "Cart cleared", "data": Cart(**load_cart(current_user["uid"])).model_dump()}
    except Exception as e:
        logger.exception("❌ clear_cart error: %s", e)
        raise HTTPException(status_code=500, detail=f"Error clearing cart: {str(e)}")
