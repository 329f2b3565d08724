"""
Port interfaces - Protocol definitions for infrastructure abstraction.

This module defines the enums shared across the domain and the interfaces
(ports) that the domain requires from infrastructure. Adapters implement
these protocols through structural subtyping.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from .models import Actor, BlobInfo, CreatedGroup, GroupDraft, Registration


class StayType(str, Enum):
    """Accommodation choice; drives the registration fee."""

    ON_CAMPUS = "on-campus"
    OUTSIDE = "outside"


class PaymentStatus(str, Enum):
    """
    Payment proof lifecycle for a single registration row.

    - PENDING: no proof linked yet
    - SUBMITTED: proof linked, awaiting accounts review
    - VERIFIED: accounts reviewer accepted the proof
    - REJECTED: accounts reviewer refused the proof (relink allowed)
    """

    PENDING = "pending"
    SUBMITTED = "submitted"
    VERIFIED = "verified"
    REJECTED = "rejected"


class RegistrationStatus(str, Enum):
    """Admin decision on a registration row."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    EXPIRED = "expired"


class ActorRole(str, Enum):
    """Staff roles resolved upstream by the authentication layer."""

    SUPERADMIN = "superadmin"
    ADMIN = "admin"
    ACCOUNTS_ADMIN = "accounts_admin"
    REVIEWER = "reviewer"


class NotificationKind(str, Enum):
    """Kinds of outbound notification intents."""

    APPROVED = "approved"
    REJECTED = "rejected"
    PAYMENT_VERIFIED = "payment_verified"


class ActivityAction(str, Enum):
    """Staff actions recorded in the admin activity trail."""

    ACCOUNT_APPROVAL = "account_approval"
    ACCOUNT_REJECTION = "account_rejection"
    RECEIPT_UPLOAD = "receipt_upload"
    REGISTRATION_APPROVAL = "registration_approval"
    REGISTRATION_REJECTION = "registration_rejection"
    EDIT_MODE_ENABLED = "edit_mode_enabled"
    EDIT_CORRECTION = "edit_correction"


class RegistrationRepository(Protocol):
    """Port interface for registration row persistence."""

    def create_group_rows(self, draft: GroupDraft) -> CreatedGroup:
        """
        Persist the primary row and one row per attendee.

        Must be atomic for the set of rows it creates and must assign
        globally unique, human-readable application ids.

        Args:
            draft: Assembled group with per-member fees

        Returns:
            CreatedGroup with the primary id and attendee ids in order

        Raises:
            StorageError: If the rows could not be persisted
        """
        ...

    def update_registration(
        self,
        application_id: str,
        patch: Mapping[str, Any],
        expected: Mapping[str, Any] | None = None,
    ) -> bool:
        """
        Apply a single-row conditional update.

        Safe to call repeatedly with an identical patch.

        Args:
            application_id: Row to update
            patch: Column -> new value
            expected: Optional column -> current value guard; the update
                only applies when every expected value still matches

        Returns:
            True if a row was updated, False if no row matched

        Raises:
            StorageError: On transport failure
        """
        ...

    def select_by_parent(self, parent_application_id: str) -> list[Registration]:
        """Return all dependents whose parent is the given application id."""
        ...

    def select_by_application_id(self, application_id: str) -> Registration | None:
        """Return the registration with the given id, or None."""
        ...


class BlobStore(Protocol):
    """Port interface for durable proof/receipt artifact storage."""

    def upload(self, key: str, data: bytes, content_type: str) -> None:
        """Store bytes under key. Raises StorageError on failure."""
        ...

    def copy(self, source_key: str, destination_key: str) -> None:
        """Copy a stored blob to a new key. Raises StorageError on failure."""
        ...

    def delete(self, key: str) -> None:
        """Delete a stored blob. Raises StorageError on failure."""
        ...

    def public_url(self, key: str) -> str:
        """Build the public reference URL for a key (no I/O)."""
        ...

    def list_keys(self, prefix: str) -> Sequence[BlobInfo]:
        """List stored blobs whose key starts with prefix."""
        ...


class Notifier(Protocol):
    """Port interface for fire-and-forget outbound notifications."""

    def notify(
        self, recipient: str, kind: NotificationKind, payload: Mapping[str, Any]
    ) -> None:
        """
        Deliver a notification intent.

        Args:
            recipient: Email address of the registrant or staff inbox
            kind: Notification kind
            payload: Template data (application id, name, receipt url,
                reason, fee)
        """
        ...


class ActivityLog(Protocol):
    """Port interface for the append-only staff activity trail."""

    def record(
        self,
        actor: Actor,
        action: ActivityAction,
        application_id: str,
        details: Mapping[str, Any],
    ) -> None:
        """
        Append one entry for a staff action on a registration.

        Args:
            actor: Staff member who performed the action
            action: What was done
            application_id: Registration the action targeted
            details: JSON-serializable context (reasons, previous state)

        Raises:
            StorageError: If the entry could not be written
        """
        ...
