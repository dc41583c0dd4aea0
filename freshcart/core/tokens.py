# file: freshcart/core/tokens.py
import uuid
from datetime import datetime, timedelta, timezone
from jose import jwt, JWTError

from freshcart.core.firebase import get_db
from freshcart.core.config import ALGORITHM, ACCESS_TOKEN_EXPIRE_MINUTES, REFRESH_TOKEN_EXPIRE_DAYS
from freshcart.core.security import get_secret_key


def create_access_token(data: dict, expires_delta: timedelta = None) -> str:
    """
    Create a short-lived access token. `data` carries `sub` (the uid) and `role`.
    """
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire, "type": "access"})
    return jwt.encode(to_encode, get_secret_key(), algorithm=ALGORITHM)


def create_refresh_token(uid: str, role: str, ip: str, user_agent: str) -> str:
    """
    Create a refresh token with a unique ID (jti) tracked in REFRESH_TOKENS.
    """
    jti = str(uuid.uuid4())
    now = datetime.now(timezone.utc)
    expire = now + timedelta(days=REFRESH_TOKEN_EXPIRE_DAYS)

    payload = {
        "sub": uid,
        "jti": jti,
        "role": role,
        "type": "refresh",
        "exp": expire,
    }
    encoded = jwt.encode(payload, get_secret_key(), algorithm=ALGORITHM)

    get_db().collection("REFRESH_TOKENS").document(jti).set({
        "uid": uid,
        "role": role,
        "ip": ip,
        "user_agent": user_agent,
        "revoked": False,
        "expires_at": expire.isoformat(),
        "created_at": now.isoformat(),
    })

    return encoded


def decode_refresh_token(token: str) -> dict:
    """Decode a refresh token; raises jose.JWTError when malformed, expired or not a refresh token."""
    payload = jwt.decode(token, get_secret_key(), algorithms=[ALGORITHM])
    if payload.get("type") != "refresh" or not payload.get("jti") or not payload.get("sub"):
        raise JWTError("Not a refresh token")
    return payload


def revoke_refresh_token(jti: str):
    ref = get_db().collection("REFRESH_TOKENS").document(jti)
    if ref.get().exists:
        ref.update({"revoked": True})


def revoke_user_tokens(uid: str) -> int:
    """Revoke every live refresh token of a user (deactivation, deletion)."""
    revoked = 0
    docs = get_db().collection("REFRESH_TOKENS").where("uid", "==", uid).where("revoked", "==", False).stream()
    for doc in docs:
        doc.reference.update({"revoked": True})
        revoked += 1
    return revoked


def is_refresh_token_valid(jti: str) -> bool:
    """
    Check if a refresh token is still valid (not revoked, not expired).
    """
    doc = get_db().collection("REFRESH_TOKENS").document(jti).get()
    if not doc.exists:
        return False
    data = doc.to_dict()
    if data.get("revoked"):
        return False
    if datetime.fromisoformat(data["expires_at"]) < datetime.now(timezone.utc):
        return False
    return True


def rotate_refresh_token(old_jti: str, uid: str, role: str, ip: str, user_agent: str) -> str:
    """
    Invalidate the old refresh token and issue a new one.
    """
    revoke_refresh_token(old_jti)
    return create_refresh_token(uid, role, ip, user_agent)


def issue_token_pair(user: dict, ip: str, user_agent: str) -> dict:
    uid = user["uid"]
    role = user["role"]
    return {
        "access_token": create_access_token({"sub": uid, "role": role, "email": user.get("email")}),
        "refresh_token": create_refresh_token(uid, role, ip, user_agent),
        "token_type": "bearer",
        "expires_in": ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    }
