# Delivery/models.py
from datetime import date, datetime, timedelta, timezone
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, constr, field_validator, model_validator

from freshcart.utils.sanitize import StrictSanitizedModel
from freshcart.utils.timeslots import DATE_PATTERN, HHMM_PATTERN, check_calendar_date, check_interval

VerificationStatus = Literal["pending", "under_review", "approved", "rejected", "resubmission_required"]
VehicleType = Literal["bike", "scooter", "car", "van", "truck", "bicycle"]
ReviewAction = Literal["approve", "reject", "request_resubmission"]

READABLE_STATUS = {
    "pending": "Pending Review",
    "under_review": "Under Review",
    "approved": "Approved",
    "rejected": "Rejected",
    "resubmission_required": "Resubmission Required",
}

# (section, image) pairs a complete submission must carry
REQUIRED_DOCUMENTS = [
    ("driving_license", "front_image"),
    ("driving_license", "back_image"),
    ("vehicle", "front_image"),
    ("vehicle", "back_image"),
    ("vehicle", "rc_image"),
]


class DocumentImage(BaseModel):
    url: str
    key: Optional[str] = None
    uploaded_at: Optional[str] = None


class DrivingLicense(BaseModel):
    license_number: Optional[str] = None
    expiry_date: Optional[date] = None
    front_image: Optional[DocumentImage] = None
    back_image: Optional[DocumentImage] = None


class Vehicle(BaseModel):
    type: Optional[VehicleType] = None
    registration_number: Optional[str] = None
    make: Optional[str] = None
    model: Optional[str] = None
    year: Optional[int] = None
    color: Optional[str] = None
    front_image: Optional[DocumentImage] = None
    back_image: Optional[DocumentImage] = None
    rc_image: Optional[DocumentImage] = None


class EmergencyContact(BaseModel):
    name: Optional[str] = None
    relationship: Optional[str] = None
    phone_number: Optional[str] = None


class HistoryEntry(BaseModel):
    status: VerificationStatus
    changed_by: Optional[str] = None
    changed_at: str
    comments: Optional[str] = None
    reason: Optional[str] = None


class DeliveryVerification(BaseModel):
    uid: str
    full_name: Optional[str] = None
    phone_number: Optional[str] = None
    address: Optional[str] = None
    driving_license: DrivingLicense = Field(default_factory=DrivingLicense)
    vehicle: Vehicle = Field(default_factory=Vehicle)
    emergency_contact: Optional[EmergencyContact] = None
    status: VerificationStatus = "pending"
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[str] = None
    review_comments: Optional[str] = None
    rejection_reason: Optional[str] = None
    approved_at: Optional[str] = None
    approved_by: Optional[str] = None
    verification_history: List[HistoryEntry] = []
    submitted_at: Optional[str] = None
    last_updated_at: Optional[str] = None

    def completed_documents(self) -> int:
        return sum(1 for section, image in REQUIRED_DOCUMENTS if getattr(getattr(self, section), image))

    def is_complete(self) -> bool:
        return self.completed_documents() == len(REQUIRED_DOCUMENTS)

    def completion_percentage(self) -> int:
        return round(self.completed_documents() / len(REQUIRED_DOCUMENTS) * 100)

    def is_license_expiring(self, days_ahead: int = 30, today: date = None) -> bool:
        expiry = self.driving_license.expiry_date
        if not expiry:
            return False
        today = today or datetime.now(timezone.utc).date()
        return expiry <= today + timedelta(days=days_ahead)

    def readable_status(self) -> str:
        return READABLE_STATUS.get(self.status, self.status)

    def add_history(self, status: str, changed_by: str, comments: str = None, reason: str = None):
        self.verification_history.append(HistoryEntry(
            status=status,
            changed_by=changed_by,
            changed_at=datetime.now(timezone.utc).isoformat(),
            comments=comments,
            reason=reason,
        ))

    def to_response(self) -> dict:
        data = self.model_dump(mode="json")
        data.update({
            "is_complete": self.is_complete(),
            "completion_percentage": self.completion_percentage(),
            "is_license_expiring": self.is_license_expiring(),
            "readable_status": self.readable_status(),
        })
        return data


# ---------------------------
# Request bodies
# ---------------------------
class DrivingLicenseInput(StrictSanitizedModel):
    license_number: constr(min_length=4, max_length=30)
    expiry_date: date

    @field_validator("license_number", mode="after")
    def uppercase(cls, v: str) -> str:
        return v.upper()


class VehicleInput(StrictSanitizedModel):
    type: VehicleType
    registration_number: constr(min_length=4, max_length=20)
    make: Optional[constr(max_length=40)] = None
    model: Optional[constr(max_length=40)] = None
    year: Optional[int] = Field(None, ge=1980, le=2100)
    color: Optional[constr(max_length=30)] = None

    @field_validator("registration_number", mode="after")
    def uppercase(cls, v: str) -> str:
        return v.upper()


class EmergencyContactInput(StrictSanitizedModel):
    name: constr(min_length=2, max_length=60)
    relationship: Optional[constr(max_length=30)] = None
    phone_number: constr(pattern=r"^\+?[0-9]{7,15}$")


class VerificationDetailsInput(StrictSanitizedModel):
    full_name: constr(min_length=2, max_length=60)
    phone_number: constr(pattern=r"^\+?[0-9]{7,15}$")
    address: constr(min_length=10, max_length=300)
    driving_license: DrivingLicenseInput
    vehicle: VehicleInput
    emergency_contact: Optional[EmergencyContactInput] = None


class ReviewInput(StrictSanitizedModel):
    action: ReviewAction
    comments: Optional[constr(max_length=500)] = None
    rejection_reason: Optional[constr(max_length=500)] = None

    @model_validator(mode="after")
    def reason_for_negative_review(self):
        if self.action != "approve" and not (self.comments or self.rejection_reason):
            raise ValueError("Comments or rejection reason required for rejection/resubmission request")
        return self


# ---------------------------
# SERVICE AREA & AVAILABILITY
# ---------------------------
Weekday = Literal["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]


class GeoPoint(StrictSanitizedModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class ServiceArea(StrictSanitizedModel):
    type: Literal["circle", "polygon"]
    name: Optional[constr(max_length=100)] = None
    pincode: Optional[constr(pattern=r"^[0-9]{6}$")] = None
    center: Optional[GeoPoint] = None
    radius_meters: Optional[float] = Field(None, gt=0, le=50000)
    polygon: Optional[List[GeoPoint]] = Field(None, max_length=100)

    @model_validator(mode="after")
    def shape_is_complete(self):
        if self.type == "circle" and not self.pincode and not (self.center and self.radius_meters):
            raise ValueError("Provide a pincode, or a center and radius, for a circle area")
        if self.type == "polygon" and len(self.polygon or []) < 3:
            raise ValueError("A polygon needs at least 3 points")
        return self


class AvailabilitySlot(StrictSanitizedModel):
    day: Weekday
    start: constr(pattern=HHMM_PATTERN)
    end: constr(pattern=HHMM_PATTERN)
    enabled: bool = False

    @model_validator(mode="after")
    def end_after_start(self):
        check_interval(self.start, self.end)
        return self


class DeliverySettingsInput(StrictSanitizedModel):
    service_area: Optional[ServiceArea] = None
    availability: Optional[List[AvailabilitySlot]] = Field(None, max_length=21)
    is_available: Optional[bool] = None


class ScheduleInput(StrictSanitizedModel):
    date: constr(pattern=DATE_PATTERN)
    start: constr(pattern=HHMM_PATTERN)
    end: Optional[constr(pattern=HHMM_PATTERN)] = None
    duration_minutes: Optional[int] = Field(None, ge=15, le=24 * 60)
    note: Optional[constr(max_length=200)] = None

    @field_validator("date")
    def upcoming_date(cls, v: str) -> str:
        check_calendar_date(v)
        if date.fromisoformat(v) < date.today():
            raise ValueError("Schedule date is in the past")
        return v

    @model_validator(mode="after")
    def end_after_start(self):
        if self.end:
            check_interval(self.start, self.end)
        return self
