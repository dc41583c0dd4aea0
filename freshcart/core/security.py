# file: freshcart/core/security.py
import logging
from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPBearer
from jose import jwt, JWTError
from passlib.context import CryptContext

from freshcart.core import config
from freshcart.core.config import ALGORITHM
from freshcart.core.firebase import get_db


# ---------------------------
# Logging
# ---------------------------
logger = logging.getLogger("core.security")

# ---------------------------
# Password Hashing (bcrypt 72-byte safe)
# ---------------------------
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
BCRYPT_BYTE_LIMIT = 72


def _normalize_and_truncate_password(password: str) -> str:
    """
    Remove control characters, then truncate to BCRYPT_BYTE_LIMIT bytes
    (not characters) without leaving a partial UTF-8 sequence behind.
    """
    if password is None:
        raise ValueError("Password cannot be None")

    if not isinstance(password, str):
        password = str(password)

    cleaned = "".join(ch for ch in password if ord(ch) >= 32)

    b = cleaned.encode("utf-8")
    if len(b) > BCRYPT_BYTE_LIMIT:
        logger.debug("Password bytes exceeded bcrypt limit; truncating from %d bytes", len(b))
        b = b[:BCRYPT_BYTE_LIMIT]

    return b.decode("utf-8", "ignore")


def get_password_hash(password: str) -> str:
    return pwd_context.hash(_normalize_and_truncate_password(password))


def verify_password(plain_password: str, hashed_password: str) -> bool:
    if not hashed_password:
        return False
    try:
        return pwd_context.verify(_normalize_and_truncate_password(plain_password), hashed_password)
    except Exception as e:
        logger.exception("Password verification error: %s", e)
        raise


# ---------------------------
# JWT Secret
# ---------------------------
def get_secret_key() -> str:
    """Lazy-load stable JWT secret key from env, falling back to Firestore CONFIG/jwt."""
    if config.SECRET_KEY is None:
        snap = get_db().collection("CONFIG").document("jwt").get()
        if not snap.exists:
            raise RuntimeError("Missing CONFIG/jwt document in Firestore")

        key = (snap.to_dict() or {}).get("SECRET_KEY")
        if not key or len(key) < 32:
            raise RuntimeError("Invalid or missing SECRET_KEY in Firestore CONFIG/jwt")

        config.SECRET_KEY = key
        logger.info("Loaded SECRET_KEY from Firestore")
    return config.SECRET_KEY


security = HTTPBearer(auto_error=False)


# ---------------------------
# Dependency: Current User (JWT, or x-uid in development)
# ---------------------------
PRIVATE_USER_FIELDS = {"password_hash", "bank_pin_hash", "bank_details"}


def public_user(data: dict) -> dict:
    """Strip secrets from a stored user document."""
    return {k: v for k, v in data.items() if k not in PRIVATE_USER_FIELDS}


def _uid_from_token(token: str) -> str:
    payload = jwt.decode(token, get_secret_key(), algorithms=[ALGORITHM])

    uid = payload.get("sub")
    role = payload.get("role")
    token_type = payload.get("type", "access")

    if not uid or not role or token_type != "access":
        logger.warning("Invalid JWT payload: %s", payload)
        raise HTTPException(status_code=401, detail="Invalid token payload")
    return uid


async def get_current_user(request: Request, credentials=Depends(security)):
    try:
        if credentials is not None:
            uid = _uid_from_token(credentials.credentials)
        elif config.ALLOW_UID_HEADER and request.headers.get("x-uid"):
            uid = request.headers["x-uid"]
            logger.debug("Authenticating via x-uid header: %s", uid)
        else:
            raise HTTPException(status_code=401, detail="Not authenticated")

        snap = get_db().collection("USERS").document(uid).get()
        if not snap.exists:
            logger.warning("User not found in Firestore: %s", uid)
            raise HTTPException(status_code=401, detail="User not found")

        data = snap.to_dict() or {}
        if not data.get("is_active", True) or data.get("account_status") == "suspended":
            raise HTTPException(status_code=403, detail="Account is deactivated")

        # Role is read from the stored profile so role changes apply immediately
        user = public_user(data)
        user["uid"] = uid
        request.scope["user"] = {"uid": uid, "role": user.get("role"), "email": user.get("email")}
        return user

    except JWTError as e:
        logger.warning("JWT error: %s", str(e))
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    except HTTPException:
        raise

    except Exception:
        logger.exception("❌ Error validating user")
        raise HTTPException(status_code=500, detail="Error validating user")


# ---------------------------
# Role-Based Dependencies
# ---------------------------
async def get_current_admin(current_user: dict = Depends(get_current_user)):
    if current_user.get("role") != "admin":
        raise HTTPException(status_code=403, detail="Admin access required")
    return current_user


async def get_customer(current_user: dict = Depends(get_current_user)):
    if current_user.get("role") != "customer":
        raise HTTPException(status_code=403, detail="Customer access required")
    return current_user


async def get_seller(current_user: dict = Depends(get_current_user)):
    if current_user.get("role") != "seller":
        raise HTTPException(status_code=403, detail="Seller access required")
    return current_user


async def get_verified_seller(current_user: dict = Depends(get_seller)):
    """Email-provider sellers must have a verified email before managing their store."""
    if current_user.get("provider", "email") == "email" and not current_user.get("email_verified"):
        raise HTTPException(status_code=403, detail="Email verification required")
    return current_user


async def get_delivery_partner(current_user: dict = Depends(get_current_user)):
    if current_user.get("role") != "delivery":
        raise HTTPException(status_code=403, detail="Delivery partner access required")
    return current_user


async def get_seller_or_admin(current_user: dict = Depends(get_current_user)):
    if current_user.get("role") not in ["seller", "admin"]:
        raise HTTPException(status_code=403, detail="Seller or admin access required")
    return current_user


def ensure_self_or_admin(current_user: dict, uid: str):
    if current_user.get("uid") != uid and current_user.get("role") != "admin":
        raise HTTPException(status_code=403, detail="Not authorized")
