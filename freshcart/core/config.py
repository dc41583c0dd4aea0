# file: freshcart/core/config.py
import os
import logging

logger = logging.getLogger("core.config")

# ==============================
# Roles & Categories
# ==============================
ROLES = ["customer", "store", "seller", "delivery", "admin"]
SELF_REGISTER_ROLES = ["customer", "store", "seller", "delivery"]
SELLER_UPGRADE_FROM = ["customer", "store", "seller"]

SELLER_CATEGORIES = [
    "vegetables",
    "fruits",
    "dairy",
    "meat",
    "seafood",
    "ready-to-cook",
    "organic",
    "bakery",
    "beverages",
    "household",
    "other",
]

ACCOUNT_STATUSES = ["active", "suspended", "pending"]
ADMIN_LEVELS = ["super", "manager", "support"]

# ==============================
# Security Settings
# ==============================
SECRET_KEY = os.getenv("SECRET_KEY")  # no fallback here, Firestore CONFIG/jwt if missing
ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60"))
REFRESH_TOKEN_EXPIRE_DAYS = int(os.getenv("REFRESH_TOKEN_EXPIRE_DAYS", "7"))

# Initial admin account, created on startup when both are set
ADMIN_EMAIL = os.getenv("ADMIN_EMAIL")
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD")

# ==============================
# Orders
# ==============================
SELLER_APPROVAL_MINUTES = int(os.getenv("SELLER_APPROVAL_MINUTES", "3"))
TOTAL_TOLERANCE = 0.01

# ==============================
# Scheduler / Notifications
# ==============================
SCHEDULER_ENABLED = os.getenv("SCHEDULER_ENABLED", "1") == "1"
PUSH_NOTIFICATIONS_ENABLED = os.getenv("PUSH_NOTIFICATIONS_ENABLED", "1") == "1"
ACTIVITY_RETENTION_DAYS = int(os.getenv("ACTIVITY_RETENTION_DAYS", "90"))
LICENSE_EXPIRY_WARNING_DAYS = 30

CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

# Development only: trust an `x-uid` header instead of a bearer token
ALLOW_UID_HEADER = os.getenv("ALLOW_UID_HEADER", "0") == "1"

# ==============================
# Stores / seller accounts
# ==============================
# Store hours are entered in local time (IST)
STORE_UTC_OFFSET_MINUTES = int(os.getenv("STORE_UTC_OFFSET_MINUTES", "330"))
# Key material for encrypted bank fields; derived from SECRET_KEY when unset
FIELD_ENCRYPTION_KEY = os.getenv("FIELD_ENCRYPTION_KEY")
MAX_SAVED_ADDRESSES = 10
