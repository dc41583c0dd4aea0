# file: freshcart/core/bruteforce.py
from datetime import datetime, timedelta, timezone
from freshcart.core.firebase import get_db

MAX_ATTEMPTS = 5
LOCKOUT_MINUTES = 15

MAX_IP_ATTEMPTS = 20
IP_LOCKOUT_MINUTES = 30


def _record_failure(collection: str, key: str, max_attempts: int, lockout_minutes: int) -> None:
    doc_ref = get_db().collection(collection).document(key)
    doc = doc_ref.get()
    now = datetime.now(timezone.utc)

    if doc.exists:
        failed_count = (doc.to_dict() or {}).get("failed_count", 0) + 1
        locked_until = None
        if failed_count >= max_attempts:
            locked_until = now + timedelta(minutes=lockout_minutes)
        doc_ref.set({
            "failed_count": failed_count,
            "last_failed_at": now,
            "locked_until": locked_until,
        })
    else:
        doc_ref.set({
            "failed_count": 1,
            "last_failed_at": now,
            "locked_until": None,
        })


def _is_locked(collection: str, key: str) -> bool:
    doc = get_db().collection(collection).document(key).get()
    if not doc.exists:
        return False
    locked_until = (doc.to_dict() or {}).get("locked_until")
    return bool(locked_until and locked_until > datetime.now(timezone.utc))


# ---------------------------
# Per-account tracking
# ---------------------------
def record_failed_attempt(email: str) -> None:
    _record_failure("login_attempts", email, MAX_ATTEMPTS, LOCKOUT_MINUTES)


def is_account_locked(email: str) -> bool:
    return _is_locked("login_attempts", email)


def reset_attempts(email: str) -> None:
    get_db().collection("login_attempts").document(email).delete()


# ---------------------------
# Per-IP tracking
# ---------------------------
def record_failed_ip(ip: str) -> None:
    _record_failure("ip_attempts", ip, MAX_IP_ATTEMPTS, IP_LOCKOUT_MINUTES)


def is_ip_locked(ip: str) -> bool:
    return _is_locked("ip_attempts", ip)


def reset_ip(ip: str) -> None:
    get_db().collection("ip_attempts").document(ip).delete()


# ---------------------------
# Per-user bank PIN tracking
# ---------------------------
def record_failed_pin(uid: str) -> None:
    _record_failure("bank_pin_attempts", uid, MAX_ATTEMPTS, LOCKOUT_MINUTES)


def is_pin_locked(uid: str) -> bool:
    return _is_locked("bank_pin_attempts", uid)


def reset_pin_attempts(uid: str) -> None:
    get_db().collection("bank_pin_attempts").document(uid).delete()
