"""
API request and response models.

Pydantic models for FastAPI endpoint validation and OpenAPI schema generation.
"""

from datetime import date
from typing import Literal

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from reunion.domain.models import (
    AttendeeFields,
    BotSignal,
    Group,
    PaymentDetails,
    RegistrantFields,
    Registration,
)
from reunion.domain.ports import PaymentStatus, RegistrationStatus, StayType


class AttendeeIn(BaseModel):
    """One additional attendee in a group submission."""

    name: str = Field(..., min_length=2, max_length=100)
    email: EmailStr
    stay_type: StayType
    phone: str = Field("", max_length=20)
    occupation: str = Field("", max_length=100)
    year_of_passing: int | None = Field(None, ge=1930)
    gender: Literal["M", "F"] | None = None
    tshirt_size: Literal["S", "M", "L", "XL"] | None = None

    def to_domain(self) -> AttendeeFields:
        return AttendeeFields(**self.model_dump())


class RegistrantIn(AttendeeIn):
    """Primary registrant, with postal address."""

    address_line1: str = Field("", max_length=200)
    address_line2: str | None = Field(None, max_length=200)
    city: str = Field("", max_length=100)
    district: str = Field("", max_length=100)
    state: str = Field("", max_length=100)
    postal_code: str = Field("", max_length=10)
    country: str = "India"

    def to_domain(self) -> RegistrantFields:
        return RegistrantFields(**self.model_dump())


class BotSignalIn(BaseModel):
    """Honeypot + timing signal captured by the form (epoch seconds)."""

    honeypot: str = ""
    form_load_time: float
    submit_time: float

    def to_domain(self) -> BotSignal:
        return BotSignal(**self.model_dump())


def to_payment_details(reference: str | None, paid_on: date | None) -> PaymentDetails | None:
    """Transfer details from the form, or None when neither was given."""
    reference = (reference or "").strip() or None
    if reference is None and paid_on is None:
        return None
    return PaymentDetails(reference=reference, paid_on=paid_on)


class SubmissionRequest(BaseModel):
    """JSON ``payload`` part of the multipart submission."""

    registrant: RegistrantIn
    attendees: list[AttendeeIn] = Field(default_factory=list)
    bot_signal: BotSignalIn
    payment_reference: str | None = Field(None, max_length=100)
    payment_date: date | None = None

    def payment_details(self) -> PaymentDetails | None:
        return to_payment_details(self.payment_reference, self.payment_date)


class SubmissionResponse(BaseModel):
    """Response model for a created group registration."""

    application_id: str
    group_application_ids: list[str]
    total_fee: int
    proof_url: str
    link_failures: list[str]
    warning: str | None = None


class RegistrationOut(BaseModel):
    """Public view of a registration row."""

    model_config = ConfigDict(from_attributes=True)

    application_id: str
    parent_application_id: str | None
    name: str
    email: str
    stay_type: StayType
    registration_fee: int
    payment_status: PaymentStatus
    registration_status: RegistrationStatus
    accounts_verified: bool
    edit_mode_enabled: bool
    pending_admin_approval: bool
    payment_proof_url: str | None
    payment_receipt_url: str | None
    payment_reference: str | None = None
    payment_date: date | None = None

    @classmethod
    def from_domain(cls, registration: Registration) -> "RegistrationOut":
        return cls.model_validate(registration)


class LookupResponse(BaseModel):
    """Registration with its group and best-known proof reference."""

    registration: RegistrationOut
    group: list[RegistrationOut]
    total_fee: int
    proof_url: str | None

    @classmethod
    def build(cls, registration: Registration, group: Group, proof_url: str | None) -> "LookupResponse":
        return cls(
            registration=RegistrationOut.from_domain(registration),
            group=[RegistrationOut.from_domain(member) for member in group.members],
            total_fee=group.total_fee,
            proof_url=proof_url,
        )


class RelinkResponse(BaseModel):
    """Response model for a relinked proof."""

    application_id: str
    proof_url: str
    linked_application_ids: list[str]
    link_failures: list[str]
    warning: str | None = None


class ApprovalRequest(BaseModel):
    """Admin decision on an accounts-verified registration."""

    decision: Literal["approved", "rejected"]
    reason: str | None = Field(None, max_length=1000)


class EditModeRequest(BaseModel):
    """Reason for reopening a registration."""

    reason: str = Field(..., min_length=1, max_length=1000)


class EditCorrectionResponse(BaseModel):
    """Response model for a saved edit-mode correction."""

    application_id: str
    proof_url: str | None
    registration_fee: int
    link_failures: list[str]


class ErrorResponse(BaseModel):
    """Standard error response model."""

    detail: str
