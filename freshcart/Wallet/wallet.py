# Wallet/wallet.py
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import Field, constr

from freshcart.core.audit import log_request_activity
from freshcart.core.firebase import run_transaction, snapshot_to_dict
from freshcart.core.security import ensure_self_or_admin, get_current_user
from freshcart.pricing.delivery_fee import PAISA, round_money, to_decimal
from freshcart.USERS.firebase import get_user_or_404, user_ref
from freshcart.utils.sanitize import StrictSanitizedModel

logger = logging.getLogger("app.wallet")

router = APIRouter(prefix="/api/users", tags=["wallet"])

MAX_TOP_UP = 100000


class WalletTopUp(StrictSanitizedModel):
    amount: float = Field(..., gt=0, le=MAX_TOP_UP)


class WalletDeduct(StrictSanitizedModel):
    amount: float = Field(..., gt=0)
    description: Optional[constr(max_length=200)] = None
    reference: Optional[constr(max_length=100)] = None


# ==============================
# TRANSACTION HELPERS
# ==============================
def transactions_collection(uid: str):
    return user_ref(uid).collection("wallet_transactions")


def read_balance(transaction, uid: str) -> Decimal:
    """Read a user's balance inside a transaction (reads must precede writes)."""
    snap = user_ref(uid).get(transaction=transaction)
    if not snap.exists:
        raise HTTPException(status_code=404, detail="User not found")
    return to_decimal((snap.to_dict() or {}).get("balance") or 0, field="balance")


def write_wallet_entry(
    transaction,
    uid: str,
    balance: Decimal,
    type: str,
    amount: Decimal,
    description: str,
    reference: str,
) -> dict:
    """
    Apply a credit or debit on top of `balance` and record it.
    Raises 400 on overdraft or when the amount rounds to nothing.
    """
    amount = round_money(to_decimal(amount, field="amount"))
    if amount < PAISA:
        raise HTTPException(status_code=400, detail="Amount must be at least 0.01")
    if type == "debit":
        if balance < amount:
            raise HTTPException(status_code=400, detail="Insufficient wallet balance")
        new_balance = round_money(balance - amount)
    else:
        new_balance = round_money(balance + amount)

    now = datetime.now(timezone.utc).isoformat()
    entry_ref = transactions_collection(uid).document()
    entry = {
        "type": type,
        "amount": float(amount),
        "description": description,
        "reference": reference,
        "status": "completed",
        "balance_after": float(new_balance),
        "created_at": now,
    }
    transaction.update(user_ref(uid), {"balance": float(new_balance), "updated_at": now})
    transaction.set(entry_ref, entry)
    return {**entry, "id": entry_ref.id}


def _change_balance_txn(transaction, uid: str, type: str, amount: Decimal, description: str, reference: str) -> dict:
    balance = read_balance(transaction, uid)
    return write_wallet_entry(transaction, uid, balance, type, amount, description, reference)


def credit(uid: str, amount, description: str, reference: str) -> dict:
    return run_transaction(_change_balance_txn, uid, "credit", to_decimal(amount, field="amount"), description, reference)


def debit(uid: str, amount, description: str, reference: str) -> dict:
    return run_transaction(_change_balance_txn, uid, "debit", to_decimal(amount, field="amount"), description, reference)


# ==============================
# ROUTES
# ==============================
@router.get("/{uid}/wallet")
async def get_wallet(
    uid: str,
    limit: int = Query(50, ge=1, le=200),
    current_user: dict = Depends(get_current_user),
):
    ensure_self_or_admin(current_user, uid)
    user = await get_user_or_404(uid)
    try:
        entries = [snapshot_to_dict(doc) for doc in transactions_collection(uid).stream()]
        entries.sort(key=lambda t: t.get("created_at") or "", reverse=True)
        return {
            "data": {
                "balance": float(round_money(to_decimal(user.get("balance") or 0, field="balance"))),
                "transactions": entries[:limit],
                "transaction_count": len(entries),
            }
        }
    except Exception as e:
        logger.exception("❌ get_wallet error: %s", e)
        raise HTTPException(status_code=500, detail=f"Error fetching wallet: {str(e)}")


@router.post("/{uid}/wallet/add")
async def add_money(uid: str, request: Request, payload: WalletTopUp, current_user: dict = Depends(get_current_user)):
    ensure_self_or_admin(current_user, uid)
    reference = f"WALLET_TOPUP_{int(datetime.now(timezone.utc).timestamp() * 1000)}"
    entry = credit(uid, payload.amount, "Wallet top-up", reference)
    log_request_activity(
        request, "wallet_top_up", actor=current_user, action_type="other", target_user_id=uid,
        details={"amount": entry["amount"], "reference": reference},
    )
    logger.info("💰 Wallet credit %s for %s", entry["amount"], uid)
    return {"message": "Money added to wallet", "balance": entry["balance_after"], "transaction": entry}


@router.post("/{uid}/wallet/deduct")
async def deduct_money(uid: str, request: Request, payload: WalletDeduct, current_user: dict = Depends(get_current_user)):
    ensure_self_or_admin(current_user, uid)
    reference = payload.reference or f"WALLET_DEBIT_{int(datetime.now(timezone.utc).timestamp() * 1000)}"
    entry = debit(uid, payload.amount, payload.description or "Wallet payment", reference)
    log_request_activity(
        request, "wallet_debit", actor=current_user, action_type="other", target_user_id=uid,
        details={"amount": entry["amount"], "reference": reference},
    )
    return {"message": "Amount deducted from wallet", "balance": entry["balance_after"], "transaction": entry}
