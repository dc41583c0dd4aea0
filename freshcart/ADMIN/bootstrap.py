# ADMIN/bootstrap.py
import logging
import uuid
from typing import Optional

from freshcart.core import config
from freshcart.core.firebase import get_db
from freshcart.core.security import get_password_hash
from freshcart.USERS.firebase import save_user

logger = logging.getLogger("app.admin_bootstrap")


async def ensure_admin_account() -> Optional[str]:
    """
    Create the first admin from ADMIN_EMAIL / ADMIN_PASSWORD when no admin exists.
    Returns the new uid, or None when nothing was created.
    """
    if not config.ADMIN_EMAIL or not config.ADMIN_PASSWORD:
        return None

    existing = list(get_db().collection("USERS").where("role", "==", "admin").limit(1).stream())
    if existing:
        return None

    uid = f"admin_{uuid.uuid4().hex[:12]}"
    created = await save_user(uid, {
        "uid": uid,
        "email": config.ADMIN_EMAIL.lower().strip(),
        "name": "Administrator",
        "role": "admin",
        "admin_level": "super",
        "provider": "email",
        "password_hash": get_password_hash(config.ADMIN_PASSWORD),
        "email_verified": True,
        "is_active": True,
        "account_status": "active",
        "balance": 0.0,
    })
    if not created:
        logger.warning("ADMIN_EMAIL %s is already registered with another role", config.ADMIN_EMAIL)
        return None

    logger.info("👑 Created initial admin account %s", config.ADMIN_EMAIL)
    return uid
