from datetime import date
from typing import Literal, Optional

from pydantic import EmailStr, Field, constr, field_validator, model_validator

from freshcart.core.config import SELLER_CATEGORIES
from freshcart.utils.sanitize import StrictSanitizedModel

BUSINESS_LICENSE_PATTERN = r"^[A-Za-z]{2}\d{6}$"
PHONE_PATTERN = r"^\+?[0-9]{7,15}$"


def _check_category(v: Optional[str]) -> Optional[str]:
    if v is not None and v not in SELLER_CATEGORIES:
        raise ValueError(f"seller_category must be one of: {', '.join(SELLER_CATEGORIES)}")
    return v


def _check_https(v: Optional[str]) -> Optional[str]:
    if v and not v.startswith("https://"):
        raise ValueError("Only https URLs are accepted")
    return v


# ---------------------------
# AUTH & SIGNUP MODELS
# ---------------------------
class RegisterInput(StrictSanitizedModel):
    id_token: str = Field(..., min_length=10)
    name: constr(min_length=2, max_length=60)
    role: Literal["customer", "store", "seller", "delivery", "admin"] = "customer"
    phone: Optional[constr(pattern=PHONE_PATTERN)] = None
    password: Optional[constr(min_length=6, max_length=64)] = None
    profile_picture: Optional[constr(max_length=500)] = None

    # store / seller
    store_name: Optional[constr(min_length=2, max_length=100)] = None
    store_address: Optional[constr(min_length=10, max_length=300)] = None
    business_license: Optional[constr(pattern=BUSINESS_LICENSE_PATTERN)] = None
    seller_category: Optional[str] = None

    # delivery
    vehicle_type: Optional[Literal["bike", "scooter", "car", "van", "truck", "bicycle"]] = None
    license_number: Optional[constr(min_length=4, max_length=30)] = None

    @field_validator("business_license", "license_number", mode="after")
    def uppercase_codes(cls, v: Optional[str]) -> Optional[str]:
        return v.upper() if v else v

    @field_validator("seller_category")
    def valid_category(cls, v: Optional[str]) -> Optional[str]:
        return _check_category(v)

    @field_validator("profile_picture")
    def https_picture(cls, v: Optional[str]) -> Optional[str]:
        return _check_https(v)

    @model_validator(mode="after")
    def seller_fields(self):
        if self.role == "seller":
            if not self.store_address:
                raise ValueError("store_address is required for seller accounts")
            if not self.store_name:
                raise ValueError("store_name is required for seller accounts")
            if not self.seller_category:
                raise ValueError("seller_category is required for seller accounts")
        return self


class LoginInput(StrictSanitizedModel):
    email: EmailStr
    password: str

    @field_validator("email", mode="before")
    def lowercase_email(cls, v: str) -> str:
        return v.lower().strip()


class FirebaseLoginInput(StrictSanitizedModel):
    id_token: str = Field(..., min_length=10)


class RefreshInput(StrictSanitizedModel):
    refresh_token: str = Field(..., min_length=10)


class ChangePasswordInput(StrictSanitizedModel):
    current_password: Optional[str] = None
    new_password: constr(min_length=6, max_length=64)


# ---------------------------
# PROFILE MODELS
# ---------------------------
class ProfileUpdate(StrictSanitizedModel):
    name: Optional[constr(min_length=2, max_length=60)] = None
    phone: Optional[constr(pattern=PHONE_PATTERN)] = None
    store_name: Optional[constr(min_length=2, max_length=100)] = None
    store_address: Optional[constr(min_length=10, max_length=300)] = None
    vehicle_type: Optional[Literal["bike", "scooter", "car", "van", "truck", "bicycle"]] = None
    license_number: Optional[constr(min_length=4, max_length=30)] = None


class UpgradeToSellerInput(StrictSanitizedModel):
    store_name: constr(min_length=2, max_length=100)
    store_address: constr(min_length=10, max_length=300)
    business_license: constr(pattern=BUSINESS_LICENSE_PATTERN)
    seller_category: str
    phone: Optional[constr(pattern=PHONE_PATTERN)] = None

    @field_validator("business_license", mode="after")
    def uppercase_license(cls, v: str) -> str:
        return v.upper()

    @field_validator("seller_category")
    def valid_category(cls, v: str) -> str:
        return _check_category(v)


class LicenseSubmitInput(StrictSanitizedModel):
    license_number: constr(pattern=BUSINESS_LICENSE_PATTERN)
    expiry_date: date
    document_url: Optional[constr(max_length=500)] = None

    @field_validator("license_number", mode="after")
    def uppercase_license(cls, v: str) -> str:
        return v.upper()

    @field_validator("expiry_date")
    def not_expired(cls, v: date) -> date:
        if v <= date.today():
            raise ValueError("License has already expired")
        return v

    @field_validator("document_url")
    def https_document(cls, v: Optional[str]) -> Optional[str]:
        return _check_https(v)


# ---------------------------
# ADDRESS BOOK
# ---------------------------
PINCODE_PATTERN = r"^[0-9]{6}$"
AddressType = Literal["home", "work", "other", "permanent", "living"]


class Coordinates(StrictSanitizedModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


def _lowercase(v):
    return v.strip().lower() if isinstance(v, str) else v


class AddressInput(StrictSanitizedModel):
    type: AddressType = "home"
    name: constr(min_length=2, max_length=60)
    phone: constr(pattern=PHONE_PATTERN)
    house: Optional[constr(max_length=100)] = None
    street: constr(min_length=3, max_length=200)
    landmark: Optional[constr(max_length=100)] = None
    city: constr(min_length=2, max_length=60)
    state: constr(min_length=2, max_length=60)
    pincode: constr(pattern=PINCODE_PATTERN)
    country: constr(min_length=2, max_length=60) = "India"
    coordinates: Optional[Coordinates] = None
    is_default: bool = False

    @field_validator("type", mode="before")
    def normalize_type(cls, v):
        return _lowercase(v)


class AddressUpdate(StrictSanitizedModel):
    type: Optional[AddressType] = None
    name: Optional[constr(min_length=2, max_length=60)] = None
    phone: Optional[constr(pattern=PHONE_PATTERN)] = None
    house: Optional[constr(max_length=100)] = None
    street: Optional[constr(min_length=3, max_length=200)] = None
    landmark: Optional[constr(max_length=100)] = None
    city: Optional[constr(min_length=2, max_length=60)] = None
    state: Optional[constr(min_length=2, max_length=60)] = None
    pincode: Optional[constr(pattern=PINCODE_PATTERN)] = None
    country: Optional[constr(min_length=2, max_length=60)] = None
    coordinates: Optional[Coordinates] = None
    is_default: Optional[bool] = None

    @field_validator("type", mode="before")
    def normalize_type(cls, v):
        return _lowercase(v)
