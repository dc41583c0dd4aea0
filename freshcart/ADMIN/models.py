# ADMIN/models.py
from typing import Literal, Optional

from pydantic import constr, model_validator

from freshcart.utils.sanitize import StrictSanitizedModel

ManagedRole = Literal["customer", "store", "seller", "delivery", "admin"]


class SellerRejection(StrictSanitizedModel):
    reason: constr(min_length=3, max_length=500)


class ProductApproval(StrictSanitizedModel):
    action: Literal["approve", "reject"]
    rejection_reason: Optional[constr(max_length=500)] = None

    @model_validator(mode="after")
    def reason_for_rejection(self):
        if self.action == "reject" and not self.rejection_reason:
            raise ValueError("Rejection reason is required")
        return self


class RoleChange(StrictSanitizedModel):
    role: ManagedRole


class DeactivateUser(StrictSanitizedModel):
    reason: Optional[constr(max_length=300)] = None
