# Orders/orders.py
"""
Order placement and the seller / delivery status flow (ORDERS/{order_id}).

    pending_seller_approval -> approved -> processing -> ready_for_delivery
        -> out_for_delivery -> delivered

An order can be cancelled while pending or approved (customer cancel, seller
reject, or the scheduler once the seller approval deadline passes).
Cancelling restores stock and refunds wallet payments in the same transaction.
"""
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from freshcart.Cart.cart import cart_ref, load_cart
from freshcart.core import config
from freshcart.core.audit import log_request_activity
from freshcart.core.firebase import get_db, run_transaction, snapshot_to_dict
from freshcart.core.security import get_current_user, get_customer, get_seller
from freshcart.Delivery.routes import require_verified_partner
from freshcart.Notification.notification import create_notification
from freshcart.pricing.delivery_fee import calculate_subtotal, calculate_total
from freshcart.Store.firebase import product_ref
from freshcart.USERS.addresses import get_address, order_address
from freshcart.USERS.firebase import user_ref
from freshcart.Wallet.wallet import read_balance, write_wallet_entry
from .models import (
    CUSTOMER_CANCELLABLE,
    TRANSITIONS,
    CancelOrder,
    DeliverOrder,
    Order,
    PlaceOrder,
    RejectOrder,
)

logger = logging.getLogger("app.orders")

router = APIRouter(prefix="/api/orders", tags=["orders"])

STATUS_MESSAGES = {
    "approved": "Your order was accepted by the store",
    "processing": "Your order is being packed",
    "ready_for_delivery": "Your order is ready and waiting for a delivery partner",
    "out_for_delivery": "Your order is out for delivery",
    "delivered": "Your order was delivered",
    "cancelled": "Your order was cancelled",
}


# ==============================
# HELPERS
# ==============================
def _now() -> datetime:
    return datetime.now(timezone.utc)


def orders_collection():
    return get_db().collection("ORDERS")


def order_ref(order_id: str):
    return orders_collection().document(order_id)


def generate_order_id(now: datetime) -> str:
    return f"ORD{int(now.timestamp() * 1000)}{secrets.randbelow(1000):03d}"


def generate_delivery_otp() -> str:
    return f"{secrets.randbelow(10000):04d}"


def _load_order(order_id: str, transaction=None) -> dict:
    snap = order_ref(order_id).get(transaction=transaction)
    if not snap.exists:
        raise HTTPException(status_code=404, detail="Order not found")
    return snapshot_to_dict(snap)


def _ensure_transition(order: dict, new_status: str):
    current = order.get("status")
    if new_status not in TRANSITIONS.get(current, set()):
        raise HTTPException(status_code=409, detail=f"Cannot move order from {current} to {new_status}")


def _timeline_entry(status: str, changed_by: str, note: str = None, at: datetime = None) -> dict:
    return {"status": status, "note": note, "changed_by": changed_by, "timestamp": (at or _now()).isoformat()}


def _owned_by_seller(uid: str) -> Callable[[dict], None]:
    def check(order: dict):
        if order.get("seller_uid") != uid:
            raise HTTPException(status_code=403, detail="Not authorized for this order")
    return check


def _assigned_to(uid: str) -> Callable[[dict], None]:
    def check(order: dict):
        if order.get("delivery_partner_uid") != uid:
            raise HTTPException(status_code=403, detail="Order is not assigned to you")
    return check


def _notify_customer(order: dict, status: str, note: str = None):
    message = STATUS_MESSAGES.get(status, f"Order status: {status}")
    if note:
        message = f"{message}: {note}"
    create_notification(
        order["customer_uid"],
        "order-update",
        f"Order {order['id']}",
        message,
        data={"order_id": order["id"], "status": status},
    )


def _paginate(items: list, page: int, limit: int) -> dict:
    total = len(items)
    start = (page - 1) * limit
    return {
        "data": items[start:start + limit],
        "total": total,
        "total_pages": (total + limit - 1) // limit,
        "current_page": page,
    }


# ==============================
# TRANSACTIONS
# ==============================
def _place_order_txn(transaction, customer_uid: str, payload: PlaceOrder, order_id: str, now: datetime) -> dict:
    # reads first
    cart = load_cart(customer_uid, transaction)
    items = cart["items"]
    if not items:
        raise HTTPException(status_code=400, detail="Cart is empty")

    sellers = {item["seller_uid"] for item in items}
    if len(sellers) > 1:
        raise HTTPException(status_code=400, detail="An order can only contain items from one store")
    seller_uid = sellers.pop()

    products = []
    for item in items:
        ref = product_ref(seller_uid, item["product_id"])
        snap = ref.get(transaction=transaction)
        product = (snap.to_dict() or {}) if snap.exists else {}
        if not snap.exists or product.get("approval_status") != "approved" or not product.get("is_active", True):
            raise HTTPException(status_code=400, detail=f"{item['product_name']} is no longer available")
        stock = int(product.get("stock", 0))
        if item["quantity"] > stock:
            raise HTTPException(
                status_code=400, detail=f"Only {stock} items of {item['product_name']} available in stock",
            )
        products.append((ref, product, item))

    seller_snap = user_ref(seller_uid).get(transaction=transaction)
    seller = (seller_snap.to_dict() or {}) if seller_snap.exists else {}
    if not seller_snap.exists or not seller.get("is_active", True):
        raise HTTPException(status_code=400, detail="This store is not accepting orders")

    if payload.address_id:
        delivery_address = order_address(get_address(customer_uid, payload.address_id, transaction))
    else:
        delivery_address = payload.delivery_address.model_dump()

    balance = None
    if payload.payment_method == "Wallet":
        balance = read_balance(transaction, customer_uid)

    # current catalogue prices, not the prices cached in the cart
    order_items = [
        {
            "product_id": item["product_id"],
            "product_name": product.get("name") or item["product_name"],
            "price": float(product.get("price", 0)),
            "quantity": item["quantity"],
            "category": product.get("category"),
            "product_image": item.get("product_image"),
        }
        for _, product, item in products
    ]
    breakdown = calculate_total(calculate_subtotal(order_items))

    if payload.expected_total is not None and abs(breakdown.total_amount - payload.expected_total) > config.TOTAL_TOLERANCE:
        raise HTTPException(
            status_code=409,
            detail={"message": "Order total has changed, please review your cart", **breakdown.model_dump()},
        )

    # writes
    for ref, product, item in products:
        transaction.update(ref, {"stock": int(product.get("stock", 0)) - item["quantity"], "updated_at": now.isoformat()})

    payment_status = "pending"
    if balance is not None:
        write_wallet_entry(
            transaction, customer_uid, balance, "debit", breakdown.total_amount,
            f"Payment for order {order_id}", order_id,
        )
        payment_status = "paid"

    order = {
        "customer_uid": customer_uid,
        "seller_uid": seller_uid,
        "store_details": {
            "store_name": seller.get("store_name"),
            "store_address": seller.get("store_address"),
            "seller_unique_number": seller.get("seller_unique_number"),
            "phone": seller.get("phone"),
        },
        "items": order_items,
        **breakdown.model_dump(),
        "payment_method": payload.payment_method,
        "payment_status": payment_status,
        "status": "pending_seller_approval",
        "status_timeline": [_timeline_entry("pending_seller_approval", customer_uid, "Order placed", now)],
        "delivery_address": delivery_address,
        "seller_approval_deadline": (now + timedelta(minutes=config.SELLER_APPROVAL_MINUTES)).isoformat(),
        "delivery_partner_uid": None,
        "delivery_otp": generate_delivery_otp(),
        "cancel_reason": None,
        "created_at": now.isoformat(),
        "updated_at": now.isoformat(),
    }
    transaction.set(order_ref(order_id), order)
    transaction.delete(cart_ref(customer_uid))
    return {**order, "id": order_id}


def _transition_txn(
    transaction,
    order_id: str,
    new_status: str,
    actor_uid: str,
    check: Callable[[dict], None],
    note: str = None,
    extra: Optional[dict] = None,
) -> dict:
    order = _load_order(order_id, transaction)
    check(order)
    _ensure_transition(order, new_status)

    now = _now()
    updates = {
        "status": new_status,
        "status_timeline": (order.get("status_timeline") or []) + [_timeline_entry(new_status, actor_uid, note, now)],
        "updated_at": now.isoformat(),
        **(extra or {}),
    }
    transaction.update(order_ref(order_id), updates)
    order.update(updates)
    return order


def _cancel_txn(
    transaction,
    order_id: str,
    actor_uid: str,
    check: Callable[[dict], None],
    note: str,
    reason: str = None,
) -> dict:
    order = _load_order(order_id, transaction)
    check(order)
    _ensure_transition(order, "cancelled")

    # reads: stock to restore and balance to refund
    restocks = []
    for item in order.get("items") or []:
        ref = product_ref(order["seller_uid"], item["product_id"])
        snap = ref.get(transaction=transaction)
        if snap.exists:
            restocks.append((ref, int((snap.to_dict() or {}).get("stock", 0)) + int(item["quantity"])))
    refund = order.get("payment_method") == "Wallet" and order.get("payment_status") == "paid"
    balance = read_balance(transaction, order["customer_uid"]) if refund else None

    now = _now()
    for ref, stock in restocks:
        transaction.update(ref, {"stock": stock, "updated_at": now.isoformat()})
    updates = {
        "status": "cancelled",
        "cancel_reason": reason or note,
        "status_timeline": (order.get("status_timeline") or []) + [_timeline_entry("cancelled", actor_uid, note, now)],
        "updated_at": now.isoformat(),
    }
    if refund:
        write_wallet_entry(
            transaction, order["customer_uid"], balance, "credit", order["total_amount"],
            f"Refund for order {order_id}", f"REFUND_{order_id}",
        )
        updates["payment_status"] = "refunded"

    transaction.update(order_ref(order_id), updates)
    order.update(updates)
    return order


def _run(callback, *args, action: str = "updating order"):
    try:
        return run_transaction(callback, *args)
    except HTTPException:
        raise
    except Exception as e:
        logger.exception("❌ Error %s: %s", action, e)
        raise HTTPException(status_code=500, detail=f"Error {action}: {str(e)}")


# ==============================
# SCHEDULED
# ==============================
def auto_reject_expired_orders(now: datetime = None) -> int:
    """Cancel orders the seller did not accept before the approval deadline."""
    now = now or _now()
    now_iso = now.isoformat()

    def still_expired(order: dict):
        if order.get("seller_approval_deadline", now_iso) >= now_iso:
            raise HTTPException(status_code=409, detail="Order deadline has not passed")

    query = (
        orders_collection()
        .where("status", "==", "pending_seller_approval")
        .where("seller_approval_deadline", "<", now_iso)
    )
    rejected = 0
    for doc in query.stream():
        try:
            order = run_transaction(
                _cancel_txn, doc.id, "system", still_expired,
                f"Auto-rejected: store did not respond within {config.SELLER_APPROVAL_MINUTES} minutes",
            )
        except HTTPException as e:
            # accepted or cancelled since the query ran
            logger.info("Skipping auto-reject of %s: %s", doc.id, e.detail)
            continue
        _notify_customer(order, "cancelled", "the store did not respond in time")
        rejected += 1

    if rejected:
        logger.info("⏱️ Auto-rejected %d expired orders", rejected)
    return rejected


# ==============================
# CUSTOMER
# ==============================
@router.post("", status_code=201)
async def place_order(request: Request, payload: PlaceOrder, current_user: dict = Depends(get_customer)):
    now = _now()
    order_id = generate_order_id(now)
    order = _run(_place_order_txn, current_user["uid"], payload, order_id, now, action="placing order")

    create_notification(
        order["seller_uid"],
        "order-update",
        "New order received",
        f"Order {order_id} for ₹{order['total_amount']:.2f} is waiting for your approval",
        data={"order_id": order_id, "status": order["status"]},
    )
    log_request_activity(
        request, "order_placed", actor=current_user, action_type="order",
        details={"order_id": order_id, "total_amount": order["total_amount"], "payment_method": order["payment_method"]},
    )
    logger.info("📦 Order %s placed by %s (%.2f)", order_id, current_user["uid"], order["total_amount"])
    return {"message": "Order placed", "data": Order(**order).view_for("customer")}


@router.get("")
async def list_my_orders(
    status: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=50),
    current_user: dict = Depends(get_customer),
):
    try:
        query = orders_collection().where("customer_uid", "==", current_user["uid"])
        if status:
            query = query.where("status", "==", status)
        items = [Order(**snapshot_to_dict(doc)).view_for("customer") for doc in query.stream()]
        items.sort(key=lambda o: o.get("created_at") or "", reverse=True)
        return _paginate(items, page, limit)
    except Exception as e:
        logger.exception("❌ list_my_orders error: %s", e)
        raise HTTPException(status_code=500, detail=f"Error fetching orders: {str(e)}")


@router.get("/{order_id}")
async def get_order(order_id: str, current_user: dict = Depends(get_current_user)):
    order = _load_order(order_id)
    uid, role = current_user["uid"], current_user.get("role")
    participants = {order.get("customer_uid"), order.get("seller_uid"), order.get("delivery_partner_uid")}
    if role != "admin" and uid not in participants:
        raise HTTPException(status_code=403, detail="Not authorized for this order")
    view_role = "customer" if uid == order.get("customer_uid") else role
    return {"data": Order(**order).view_for(view_role)}


@router.put("/{order_id}/cancel")
async def cancel_order(
    order_id: str,
    request: Request,
    payload: Optional[CancelOrder] = None,
    current_user: dict = Depends(get_customer),
):
    uid = current_user["uid"]

    def check(order: dict):
        if order.get("customer_uid") != uid:
            raise HTTPException(status_code=403, detail="Not authorized for this order")
        if order.get("status") not in CUSTOMER_CANCELLABLE:
            raise HTTPException(status_code=409, detail="Order can no longer be cancelled")

    reason = payload.reason if payload else None
    order = _run(_cancel_txn, order_id, uid, check, "Cancelled by customer", reason, action="cancelling order")
    create_notification(
        order["seller_uid"], "order-update", f"Order {order_id} cancelled",
        "The customer cancelled this order", data={"order_id": order_id, "status": "cancelled"},
    )
    log_request_activity(request, "order_cancelled", actor=current_user, action_type="order", details={"order_id": order_id})
    return {"message": "Order cancelled", "data": Order(**order).view_for("customer")}


# ==============================
# SELLER
# ==============================
@router.get("/seller/pending")
async def seller_pending_orders(current_user: dict = Depends(get_seller)):
    now = _now()
    query = (
        orders_collection()
        .where("seller_uid", "==", current_user["uid"])
        .where("status", "==", "pending_seller_approval")
    )
    items = []
    for doc in query.stream():
        order = Order(**snapshot_to_dict(doc)).view_for("seller")
        deadline = datetime.fromisoformat(order["seller_approval_deadline"])
        order["seconds_remaining"] = max(0, int((deadline - now).total_seconds()))
        items.append(order)
    items.sort(key=lambda o: o.get("created_at") or "")
    return {"data": items}


@router.get("/seller/accepted")
async def seller_accepted_orders(current_user: dict = Depends(get_seller)):
    query = (
        orders_collection()
        .where("seller_uid", "==", current_user["uid"])
        .where("status", "in", ["approved", "processing", "ready_for_delivery", "out_for_delivery"])
    )
    items = [Order(**snapshot_to_dict(doc)).view_for("seller") for doc in query.stream()]
    items.sort(key=lambda o: o.get("created_at") or "", reverse=True)
    return {"data": items}


@router.put("/seller/{order_id}/accept")
async def seller_accept_order(order_id: str, request: Request, current_user: dict = Depends(get_seller)):
    owned = _owned_by_seller(current_user["uid"])

    def check(order: dict):
        owned(order)
        deadline = order.get("seller_approval_deadline")
        if order.get("status") == "pending_seller_approval" and deadline and deadline < _now().isoformat():
            raise HTTPException(status_code=409, detail="Seller approval window has expired")

    order = _run(_transition_txn, order_id, "approved", current_user["uid"], check, "Accepted by store")
    _notify_customer(order, "approved")
    log_request_activity(request, "order_accepted", actor=current_user, action_type="order", details={"order_id": order_id})
    return {"message": "Order accepted", "data": Order(**order).view_for("seller")}


@router.put("/seller/{order_id}/reject")
async def seller_reject_order(
    order_id: str,
    request: Request,
    payload: RejectOrder,
    current_user: dict = Depends(get_seller),
):
    order = _run(
        _cancel_txn, order_id, current_user["uid"], _owned_by_seller(current_user["uid"]),
        "Rejected by store", payload.reason, action="rejecting order",
    )
    _notify_customer(order, "cancelled", payload.reason)
    log_request_activity(
        request, "order_rejected", actor=current_user, action_type="order",
        details={"order_id": order_id, "reason": payload.reason},
    )
    return {"message": "Order rejected", "data": Order(**order).view_for("seller")}


@router.put("/seller/{order_id}/process")
async def seller_process_order(order_id: str, current_user: dict = Depends(get_seller)):
    order = _run(
        _transition_txn, order_id, "processing", current_user["uid"], _owned_by_seller(current_user["uid"]),
        "Packing started",
    )
    _notify_customer(order, "processing")
    return {"message": "Order is being processed", "data": Order(**order).view_for("seller")}


@router.put("/seller/{order_id}/ready")
async def seller_ready_order(order_id: str, current_user: dict = Depends(get_seller)):
    order = _run(
        _transition_txn, order_id, "ready_for_delivery", current_user["uid"], _owned_by_seller(current_user["uid"]),
        "Ready for pickup",
    )
    _notify_customer(order, "ready_for_delivery")
    return {"message": "Order ready for delivery", "data": Order(**order).view_for("seller")}


# ==============================
# DELIVERY PARTNER
# ==============================
@router.get("/delivery/available")
async def available_deliveries(current_user: dict = Depends(require_verified_partner)):
    query = orders_collection().where("status", "==", "ready_for_delivery")
    items = [
        Order(**snapshot_to_dict(doc)).view_for("delivery")
        for doc in query.stream()
        if not (doc.to_dict() or {}).get("delivery_partner_uid")
    ]
    items.sort(key=lambda o: o.get("updated_at") or "")
    return {"data": items}


@router.get("/delivery/mine")
async def my_deliveries(current_user: dict = Depends(require_verified_partner)):
    query = orders_collection().where("delivery_partner_uid", "==", current_user["uid"])
    items = [Order(**snapshot_to_dict(doc)).view_for("delivery") for doc in query.stream()]
    items.sort(key=lambda o: o.get("updated_at") or "", reverse=True)
    return {"data": items}


def _assign_partner_txn(transaction, order_id: str, partner_uid: str) -> dict:
    order = _load_order(order_id, transaction)
    if order.get("status") != "ready_for_delivery":
        raise HTTPException(status_code=409, detail="Order is not ready for delivery")
    if order.get("delivery_partner_uid"):
        raise HTTPException(status_code=409, detail="Order already assigned to a delivery partner")

    now = _now()
    updates = {
        "delivery_partner_uid": partner_uid,
        "status_timeline": (order.get("status_timeline") or [])
        + [_timeline_entry("ready_for_delivery", partner_uid, "Delivery partner assigned", now)],
        "updated_at": now.isoformat(),
    }
    transaction.update(order_ref(order_id), updates)
    order.update(updates)
    return order


@router.put("/delivery/{order_id}/accept")
async def accept_delivery(order_id: str, request: Request, current_user: dict = Depends(require_verified_partner)):
    order = _run(_assign_partner_txn, order_id, current_user["uid"], action="assigning delivery")
    log_request_activity(request, "delivery_accepted", actor=current_user, action_type="order", details={"order_id": order_id})
    return {"message": "Delivery accepted", "data": Order(**order).view_for("delivery")}


@router.put("/delivery/{order_id}/out-for-delivery")
async def start_delivery(order_id: str, current_user: dict = Depends(require_verified_partner)):
    order = _run(
        _transition_txn, order_id, "out_for_delivery", current_user["uid"], _assigned_to(current_user["uid"]),
        "Picked up from store",
    )
    _notify_customer(order, "out_for_delivery")
    return {"message": "Order out for delivery", "data": Order(**order).view_for("delivery")}


@router.put("/delivery/{order_id}/deliver")
async def complete_delivery(
    order_id: str,
    request: Request,
    payload: DeliverOrder,
    current_user: dict = Depends(require_verified_partner),
):
    assigned = _assigned_to(current_user["uid"])

    def check(order: dict):
        assigned(order)
        if order.get("status") == "out_for_delivery" and not secrets.compare_digest(
            str(order.get("delivery_otp") or ""), payload.otp
        ):
            raise HTTPException(status_code=400, detail="Invalid OTP")

    def extra_for(order_payment_method: str) -> dict:
        return {"payment_status": "paid"} if order_payment_method == "COD" else {}

    current = _load_order(order_id)
    order = _run(
        _transition_txn, order_id, "delivered", current_user["uid"], check, "Delivered to customer",
        extra_for(current.get("payment_method")),
    )
    _notify_customer(order, "delivered")
    create_notification(
        order["seller_uid"], "order-update", f"Order {order_id} delivered",
        "The order was delivered to the customer", data={"order_id": order_id, "status": "delivered"},
    )
    log_request_activity(request, "order_delivered", actor=current_user, action_type="order", details={"order_id": order_id})
    return {"message": "Order delivered", "data": Order(**order).view_for("delivery")}
