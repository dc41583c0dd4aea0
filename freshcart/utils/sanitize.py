"""
utils/sanitize.py

Input cleaning for request bodies and search terms: HTML is stripped with
bleach so store names, addresses and notes can be echoed back to other users
(notifications, order store details) without carrying markup.
"""
import re

import bleach
from pydantic import BaseModel, ConfigDict, ValidationInfo, field_validator

ALLOWED_TAGS = []
ALLOWED_ATTRIBUTES = {}
MAX_FIELD_LENGTH = 1000
MAX_SEARCH_LENGTH = 100

# Passed through untouched: secrets, PINs, tokens and URLs
UNSANITIZED_FIELDS = {
    "password", "new_password", "current_password", "id_token", "refresh_token",
    "profile_picture", "document_url", "pin", "current_pin",
}

_WHITESPACE = re.compile(r"\s+")


def sanitize_text(user_input: str, max_length: int = 500) -> str:
    """Strip tags, collapse runs of whitespace and cap the length."""
    if not user_input:
        return ""
    cleaned = bleach.clean(user_input[:max_length], tags=ALLOWED_TAGS, attributes=ALLOWED_ATTRIBUTES, strip=True)
    return _WHITESPACE.sub(" ", cleaned).strip()


def sanitize_search(term: str) -> str:
    """Lower-cased needle for substring search over names and numbers."""
    return sanitize_text(term or "", max_length=MAX_SEARCH_LENGTH).lower()


class SanitizedModel(BaseModel):
    """Cleans every string field before validation, except UNSANITIZED_FIELDS."""

    @field_validator("*", mode="before")
    def sanitize_all_strings(cls, v, info: ValidationInfo):
        if isinstance(v, str) and info.field_name not in UNSANITIZED_FIELDS:
            return sanitize_text(v, max_length=MAX_FIELD_LENGTH)
        return v


class StrictSanitizedModel(SanitizedModel):
    model_config = ConfigDict(extra="forbid")
