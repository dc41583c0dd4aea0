# USERS/routes_auth.py
import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from firebase_admin import auth
from jose import JWTError

from freshcart.core.audit import log_auth_failure, log_request_activity, log_token_reuse
from freshcart.core.bruteforce import (
    is_account_locked,
    is_ip_locked,
    record_failed_attempt,
    record_failed_ip,
    reset_attempts,
)
from freshcart.core.firebase import verify_id_token
from freshcart.core.rate_limit import LOGIN_LIMIT, REGISTER_LIMIT, TOKEN_REFRESH_LIMIT, limit
from freshcart.core.security import get_current_user, get_password_hash, public_user, verify_password
from freshcart.core.tokens import (
    create_access_token,
    decode_refresh_token,
    is_refresh_token_valid,
    issue_token_pair,
    revoke_refresh_token,
    rotate_refresh_token,
)
from .firebase import (
    generate_seller_unique_number,
    get_user,
    get_user_by_email,
    save_user,
    update_user,
)
from .models import ChangePasswordInput, FirebaseLoginInput, LoginInput, RefreshInput, RegisterInput

logger = logging.getLogger("app.auth")

router = APIRouter(prefix="/api/auth", tags=["auth"])


def _client_info(request: Request):
    ip = request.client.host if request.client else "unknown"
    return ip, request.headers.get("user-agent", "unknown")


def _verify_firebase_token(id_token: str) -> dict:
    try:
        return verify_id_token(id_token)
    except auth.RevokedIdTokenError:
        raise HTTPException(status_code=401, detail="Firebase session revoked, please sign in again")
    except auth.UserDisabledError:
        raise HTTPException(status_code=403, detail="Firebase account is disabled")
    except (auth.InvalidIdTokenError, ValueError) as e:
        logger.warning("Invalid Firebase ID token: %s", e)
        raise HTTPException(status_code=401, detail="Invalid Firebase ID token")


def _ensure_active(user: dict):
    if not user.get("is_active", True) or user.get("account_status") == "suspended":
        raise HTTPException(status_code=403, detail="Account is deactivated")


# ---------------------------
# REGISTER
# ---------------------------
@router.post("/register", status_code=201)
@limit(REGISTER_LIMIT)
async def register(request: Request, response: Response, payload: RegisterInput):
    claims = _verify_firebase_token(payload.id_token)
    uid = claims["uid"]
    email = (claims.get("email") or "").lower().strip()

    if not email:
        raise HTTPException(status_code=400, detail="Firebase account has no email address")
    if payload.role == "admin":
        raise HTTPException(status_code=403, detail="Admin accounts cannot self-register")

    try:
        provider = "google" if claims.get("firebase", {}).get("sign_in_provider") == "google.com" else "email"
        user_data = {
            "uid": uid,
            "email": email,
            "name": payload.name,
            "role": payload.role,
            "phone": payload.phone,
            "provider": provider,
            "profile_picture": payload.profile_picture or claims.get("picture"),
            # Customers are trusted immediately; other roles wait for an admin
            "email_verified": payload.role == "customer",
            "is_active": True,
            "account_status": "active",
            "balance": 0.0,
        }
        if payload.password:
            user_data["password_hash"] = get_password_hash(payload.password)

        if payload.role in ("store", "seller"):
            user_data.update({
                "store_name": payload.store_name,
                "store_address": payload.store_address,
                "business_license": payload.business_license,
                "seller_category": payload.seller_category,
                "branch_stores": [],
                "linked_branch_of": [],
                "license_info": {"status": "pending" if payload.business_license else "not_submitted"},
            })
        if payload.role == "seller":
            user_data["seller_unique_number"] = await generate_seller_unique_number(uid)
        if payload.role == "delivery":
            user_data.update({
                "vehicle_type": payload.vehicle_type,
                "license_number": payload.license_number,
                "is_verified": False,
            })

        if not await save_user(uid, user_data):
            log_request_activity(
                request, "register", actor={"uid": uid, "email": email, "role": payload.role},
                action_type="authentication", status="failed", details={"reason": "duplicate"},
            )
            raise HTTPException(status_code=409, detail="User already exists")

        ip, ua = _client_info(request)
        tokens = issue_token_pair(user_data, ip, ua)
        log_request_activity(
            request, "register", actor=user_data, action_type="authentication", target_user_id=uid,
        )
        logger.info("✅ Registered %s as %s", uid, payload.role)
        return {"message": "Registration successful", "user": public_user(user_data), **tokens}
    except HTTPException:
        raise
    except Exception as e:
        logger.exception("Unexpected error during registration")
        raise HTTPException(status_code=500, detail=f"Error registering user: {str(e)}")


# ---------------------------
# LOGIN (email + password)
# ---------------------------
@router.post("/login")
@limit(LOGIN_LIMIT)
async def login(request: Request, response: Response, payload: LoginInput):
    ip, ua = _client_info(request)

    if is_account_locked(payload.email) or is_ip_locked(ip):
        raise HTTPException(status_code=429, detail="Too many failed attempts. Try again later.")

    try:
        user = await get_user_by_email(payload.email)
        if not user or not verify_password(payload.password, user.get("password_hash")):
            record_failed_attempt(payload.email)
            record_failed_ip(ip)
            log_auth_failure(request, payload.email, "invalid_credentials")
            raise HTTPException(status_code=401, detail="Invalid email or password")

        _ensure_active(user)
        reset_attempts(payload.email)

        tokens = issue_token_pair(user, ip, ua)
        await update_user(user["uid"], {"last_login_at": datetime.now(timezone.utc).isoformat()})
        log_request_activity(request, "login", actor=user, action_type="authentication")
        return {"message": f"Logged in as {user['role']}", "user": public_user(user), **tokens}
    except HTTPException:
        raise
    except Exception as e:
        logger.exception("Unexpected error during login")
        raise HTTPException(status_code=500, detail=f"Error logging in: {str(e)}")


# ---------------------------
# LOGIN (Firebase ID token, e.g. Google)
# ---------------------------
@router.post("/firebase")
@limit(LOGIN_LIMIT)
async def firebase_login(request: Request, response: Response, payload: FirebaseLoginInput):
    claims = _verify_firebase_token(payload.id_token)
    user = await get_user(claims["uid"])
    if not user:
        # The client routes unknown accounts to role selection and /register
        raise HTTPException(status_code=404, detail="User not registered")
    _ensure_active(user)

    ip, ua = _client_info(request)
    tokens = issue_token_pair(user, ip, ua)
    log_request_activity(request, "login", actor=user, action_type="authentication", details={"via": "firebase"})
    return {"message": f"Logged in as {user['role']}", "user": public_user(user), **tokens}


# ---------------------------
# REFRESH / LOGOUT
# ---------------------------
@router.post("/refresh-token")
@limit(TOKEN_REFRESH_LIMIT)
async def refresh_tokens(request: Request, response: Response, payload: RefreshInput):
    try:
        claims = decode_refresh_token(payload.refresh_token)
    except JWTError:
        log_auth_failure(request, "unknown", "invalid_refresh_token")
        raise HTTPException(status_code=401, detail="Invalid refresh token")

    jti = claims["jti"]
    uid = claims["sub"]
    if not is_refresh_token_valid(jti):
        log_token_reuse(request, uid, jti)
        raise HTTPException(status_code=401, detail="Invalid or expired refresh token")

    user = await get_user(uid)
    if not user or not user.get("is_active", True) or user.get("account_status") == "suspended":
        revoke_refresh_token(jti)
        raise HTTPException(status_code=401, detail="Account no longer active")

    ip, ua = _client_info(request)
    new_refresh = rotate_refresh_token(jti, uid, user["role"], ip, ua)
    new_access = create_access_token({"sub": uid, "role": user["role"], "email": user.get("email")})
    logger.info("✅ Refreshed tokens for uid=%s", uid)
    return {"access_token": new_access, "refresh_token": new_refresh, "token_type": "bearer"}


@router.post("/logout")
async def logout(payload: RefreshInput):
    try:
        claims = decode_refresh_token(payload.refresh_token)
    except JWTError:
        raise HTTPException(status_code=400, detail="Invalid refresh token")
    revoke_refresh_token(claims["jti"])
    return {"message": "Logout successful"}


# ---------------------------
# PASSWORD
# ---------------------------
@router.post("/change-password")
async def change_password(
    request: Request,
    payload: ChangePasswordInput,
    current_user: dict = Depends(get_current_user),
):
    stored = await get_user(current_user["uid"])
    if stored.get("password_hash"):
        if not payload.current_password or not verify_password(payload.current_password, stored["password_hash"]):
            raise HTTPException(status_code=401, detail="Current password is incorrect")

    await update_user(current_user["uid"], {"password_hash": get_password_hash(payload.new_password)})
    log_request_activity(request, "change_password", actor=current_user, action_type="profile_update")
    return {"message": "Password updated successfully"}


@router.get("/test")
async def auth_test():
    return {"message": "Auth routes are working", "timestamp": datetime.now(timezone.utc).isoformat()}
