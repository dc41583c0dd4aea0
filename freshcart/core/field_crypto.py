# file: freshcart/core/field_crypto.py
"""
Encryption at rest for sensitive profile fields (seller bank account, PAN, UPI).

Each value is stored as a compact JWE string: direct key agreement with
AES-256-GCM, so every value carries its own IV and auth tag.
"""
import hashlib
import logging

from jose import jwe
from jose.constants import ALGORITHMS
from jose.exceptions import JWEError

from freshcart.core import config
from freshcart.core.security import get_secret_key

logger = logging.getLogger("core.field_crypto")


def _field_key() -> bytes:
    # A256GCM needs exactly 32 bytes
    secret = config.FIELD_ENCRYPTION_KEY or get_secret_key()
    return hashlib.sha256(f"freshcart-fields:{secret}".encode("utf-8")).digest()


def encrypt_field(value: str) -> str:
    token = jwe.encrypt(
        value.encode("utf-8"),
        _field_key(),
        algorithm=ALGORITHMS.DIR,
        encryption=ALGORITHMS.A256GCM,
    )
    return token.decode("ascii") if isinstance(token, bytes) else token


def decrypt_field(token: str) -> str:
    try:
        return jwe.decrypt(token, _field_key()).decode("utf-8")
    except JWEError as e:
        logger.error("Stored field could not be decrypted: %s", e)
        raise


def mask_value(value: str, visible: int = 4) -> str:
    """Replace all but the last `visible` characters with bullets."""
    if not value:
        return ""
    hidden = max(len(value) - visible, 0)
    return "•" * hidden + value[hidden:]
