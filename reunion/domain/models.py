"""
Domain value types - Registrations, groups, proofs and operation results.

All types are plain dataclasses. Registration rows are frozen snapshots;
state transitions produce patches (see verification.py) rather than
mutating a row in place.
"""

from dataclasses import dataclass, field
from datetime import date, datetime

from .ports import ActorRole, PaymentStatus, RegistrationStatus, StayType


@dataclass(frozen=True)
class Actor:
    """Already-resolved staff identity performing a transition."""

    id: str
    role: ActorRole


@dataclass(frozen=True)
class BotSignal:
    """
    Timing + honeypot signal captured by the registration form.

    Times are epoch seconds as reported by the form.
    """

    honeypot: str = ""
    form_load_time: float = 0.0
    submit_time: float = 0.0

    @property
    def elapsed_seconds(self) -> float:
        return self.submit_time - self.form_load_time


@dataclass(frozen=True)
class ProofFile:
    """Binary payment-proof (or receipt) artifact supplied by a caller."""

    filename: str
    content_type: str
    data: bytes = field(repr=False)

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def extension(self) -> str:
        """Lowercased extension from the filename, derived from MIME type if absent."""
        _, dot, ext = self.filename.rpartition(".")
        if dot and ext:
            return ext.lower()
        return _EXTENSIONS_BY_CONTENT_TYPE.get(self.content_type, "bin")


_EXTENSIONS_BY_CONTENT_TYPE = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
    "application/pdf": "pdf",
}


@dataclass(frozen=True)
class PaymentDetails:
    """Bank transfer reference and date reported with a payment proof."""

    reference: str | None = None
    paid_on: date | None = None


@dataclass(frozen=True)
class AttendeeFields:
    """Details for one additional attendee of a group."""

    name: str
    email: str
    stay_type: StayType
    phone: str = ""
    occupation: str = ""
    year_of_passing: int | None = None
    gender: str | None = None
    tshirt_size: str | None = None


@dataclass(frozen=True)
class RegistrantFields(AttendeeFields):
    """Details for the primary registrant (attendee fields plus address)."""

    address_line1: str = ""
    address_line2: str | None = None
    city: str = ""
    district: str = ""
    state: str = ""
    postal_code: str = ""
    country: str = "India"


@dataclass(frozen=True)
class DraftMember:
    """A not-yet-persisted group member with its fee fixed at assembly time."""

    fields: AttendeeFields
    registration_fee: int


@dataclass(frozen=True)
class GroupDraft:
    """In-memory group assembled before submission."""

    primary: DraftMember
    attendees: tuple[DraftMember, ...] = ()

    @property
    def members(self) -> tuple[DraftMember, ...]:
        return (self.primary, *self.attendees)

    @property
    def total_fee(self) -> int:
        return sum(member.registration_fee for member in self.members)

    @property
    def is_shared(self) -> bool:
        """True when one combined proof covers more than one person."""
        return bool(self.attendees)


@dataclass(frozen=True)
class CreatedGroup:
    """Identifiers assigned by the row-creation operation."""

    application_id: str
    attendee_application_ids: tuple[str, ...] = ()

    @property
    def application_ids(self) -> tuple[str, ...]:
        return (self.application_id, *self.attendee_application_ids)


@dataclass(frozen=True)
class Registration:
    """Snapshot of one registration row."""

    application_id: str
    name: str
    email: str
    stay_type: StayType
    registration_fee: int
    parent_application_id: str | None = None
    payment_status: PaymentStatus = PaymentStatus.PENDING
    registration_status: RegistrationStatus = RegistrationStatus.PENDING
    accounts_verified: bool = False
    accounts_verified_by: str | None = None
    accounts_verified_at: datetime | None = None
    approved_by: str | None = None
    approved_at: datetime | None = None
    rejection_reason: str | None = None
    payment_rejection_reason: str | None = None
    edit_mode_enabled: bool = False
    edit_mode_enabled_by: str | None = None
    edit_mode_enabled_at: datetime | None = None
    edit_mode_reason: str | None = None
    pending_admin_approval: bool = False
    payment_proof_url: str | None = None
    payment_receipt_url: str | None = None
    payment_reference: str | None = None
    payment_date: date | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_primary(self) -> bool:
        return self.parent_application_id is None


@dataclass(frozen=True)
class Group:
    """
    Persisted group, recomputed from parent references on every operation.

    Never cache a Group across requests.
    """

    primary: Registration
    dependents: tuple[Registration, ...] = ()

    @property
    def members(self) -> tuple[Registration, ...]:
        return (self.primary, *self.dependents)

    @property
    def application_ids(self) -> tuple[str, ...]:
        return tuple(member.application_id for member in self.members)

    @property
    def total_fee(self) -> int:
        return sum(member.registration_fee for member in self.members)

    @property
    def is_shared(self) -> bool:
        return bool(self.dependents)


@dataclass(frozen=True)
class BlobInfo:
    """Stored blob key with its last write time."""

    key: str
    updated_at: datetime


@dataclass(frozen=True)
class SubmissionResult:
    """
    Outcome of a submission.

    A non-empty ``link_failures`` is not a failed submission: the rows
    exist, only the proof reference needs relinking for those ids.
    """

    application_id: str
    group_application_ids: tuple[str, ...]
    link_failures: tuple[str, ...]
    proof_url: str
    total_fee: int

    @property
    def needs_relink(self) -> bool:
        return bool(self.link_failures)


@dataclass(frozen=True)
class RelinkResult:
    """Outcome of the lookup-and-pay-later relink flow."""

    application_id: str
    proof_url: str
    linked_application_ids: tuple[str, ...]
    link_failures: tuple[str, ...]


@dataclass(frozen=True)
class LookupResult:
    """Registration found by id, with its group and best-known proof URL."""

    registration: Registration
    group: Group
    proof_url: str | None


@dataclass(frozen=True)
class EditCorrectionResult:
    """Outcome of saving an edit-mode correction."""

    application_id: str
    proof_url: str | None
    registration_fee: int
    link_failures: tuple[str, ...] = ()
