# Store/models.py
from typing import List, Literal, Optional

from pydantic import Field, constr, field_validator, model_validator

from freshcart.utils.sanitize import StrictSanitizedModel
from freshcart.utils.timeslots import DATE_PATTERN, HHMM_PATTERN, check_calendar_date, check_interval, check_no_overlap


class ProductCreate(StrictSanitizedModel):
    name: constr(min_length=2, max_length=120)
    description: Optional[constr(max_length=1000)] = None
    category: str
    price: float = Field(..., gt=0)
    mrp_price: Optional[float] = Field(None, gt=0)
    stock: int = Field(..., ge=0)
    unit: Optional[constr(max_length=20)] = None
    low_stock_threshold: int = Field(10, ge=0)

    @model_validator(mode="after")
    def mrp_not_below_price(self):
        if self.mrp_price is not None and self.mrp_price < self.price:
            raise ValueError("mrp_price cannot be lower than price")
        return self


class ProductUpdate(StrictSanitizedModel):
    name: Optional[constr(min_length=2, max_length=120)] = None
    description: Optional[constr(max_length=1000)] = None
    category: Optional[str] = None
    price: Optional[float] = Field(None, gt=0)
    mrp_price: Optional[float] = Field(None, gt=0)
    stock: Optional[int] = Field(None, ge=0)
    unit: Optional[constr(max_length=20)] = None
    low_stock_threshold: Optional[int] = Field(None, ge=0)
    is_active: Optional[bool] = None


class BranchStoreInput(StrictSanitizedModel):
    name: constr(min_length=2, max_length=100)
    address: constr(min_length=10, max_length=300)
    linked_seller_unique_number: Optional[constr(max_length=32)] = None

    @field_validator("linked_seller_unique_number", mode="after")
    def normalize_number(cls, v: Optional[str]) -> Optional[str]:
        return v.strip().upper() if v else None


# ---------------------------
# STORE HOURS
# ---------------------------
WEEK_DAYS = ["mon", "tue", "wed", "thu", "fri", "sat", "sun"]


class TimeInterval(StrictSanitizedModel):
    start: constr(pattern=HHMM_PATTERN)
    end: constr(pattern=HHMM_PATTERN)

    @model_validator(mode="after")
    def end_after_start(self):
        check_interval(self.start, self.end)
        return self


class DayHours(StrictSanitizedModel):
    day: Literal["mon", "tue", "wed", "thu", "fri", "sat", "sun"]
    enabled: bool = False
    intervals: List[TimeInterval] = Field(default_factory=list, max_length=6)

    @field_validator("intervals")
    def sorted_without_overlap(cls, v):
        return check_no_overlap(v)


class HoursOverride(StrictSanitizedModel):
    date: constr(pattern=DATE_PATTERN)
    type: Literal["open", "closed"]
    intervals: List[TimeInterval] = Field(default_factory=list, max_length=6)
    note: Optional[constr(max_length=200)] = None

    @field_validator("date")
    def real_date(cls, v):
        return check_calendar_date(v)

    @field_validator("intervals")
    def sorted_without_overlap(cls, v):
        return check_no_overlap(v)

    @model_validator(mode="after")
    def open_needs_intervals(self):
        if self.type == "open" and not self.intervals:
            raise ValueError("An open override needs at least one interval")
        if self.type == "closed":
            self.intervals = []
        return self


class StoreHoursInput(StrictSanitizedModel):
    mode: Literal["auto", "force_open", "force_closed"] = "auto"
    weekly: List[DayHours] = Field(default_factory=list, max_length=7)
    overrides: List[HoursOverride] = Field(default_factory=list, max_length=60)

    @model_validator(mode="after")
    def unique_days(self):
        days = [d.day for d in self.weekly]
        if len(days) != len(set(days)):
            raise ValueError("Each weekday can appear only once")
        dates = [o.date for o in self.overrides]
        if len(dates) != len(set(dates)):
            raise ValueError("Each override date can appear only once")
        return self


# ---------------------------
# BANK DETAILS
# ---------------------------
PIN_PATTERN = r"^[0-9]{6}$"


class BankPinInput(StrictSanitizedModel):
    pin: constr(pattern=PIN_PATTERN)
    current_pin: Optional[str] = None


class BankPinCheck(StrictSanitizedModel):
    pin: str


class BankDetailsInput(StrictSanitizedModel):
    pin: str
    bank_name: constr(min_length=2, max_length=100)
    branch: Optional[constr(max_length=100)] = None
    ifsc: Optional[constr(pattern=r"^[A-Za-z]{4}0[A-Za-z0-9]{6}$")] = None
    account_holder_name: constr(min_length=2, max_length=100)
    account_number: Optional[constr(pattern=r"^[0-9]{9,18}$")] = None
    pan: Optional[constr(pattern=r"^[A-Za-z]{5}[0-9]{4}[A-Za-z]$")] = None
    upi: Optional[constr(pattern=r"^[A-Za-z0-9._/\-]{2,256}@[A-Za-z]{2,64}$")] = None

    @field_validator("ifsc", "pan", mode="after")
    def uppercase_codes(cls, v: Optional[str]) -> Optional[str]:
        return v.upper() if v else v

    @field_validator("upi", mode="after")
    def lowercase_upi(cls, v: Optional[str]) -> Optional[str]:
        return v.lower() if v else v
