"""
Verification state machine - Accounts review, admin approval, edit mode.

A registration's state is the product of four fields:

    registration_status x payment_status x accounts_verified x edit_mode_enabled

Transitions (actor passed explicitly, never read from ambient session):

    accounts_verify   payment submitted -> verified | rejected
                      (accounts_admin, superadmin; single row);
                      a verified payment notifies the approvers
    approve           registration pending -> approved | rejected
                      only when accounts_verified (admin, superadmin);
                      emits a fire-and-forget notification
    enable_edit_mode  any -> registration pending, accounts_verified false,
                      receipt cleared, proof preserved (admin, superadmin)
    edit correction   while edit mode: new proof and/or stay type;
                      proof cascades to dependents of a primary

Every committed transition is appended to the staff activity trail.
Recording and notifying are best-effort: their failures are logged and
never undo the transition.

Invariants:
    - approved implies accounts verification passed (transition guard)
    - edit_mode_enabled implies registration pending (rollback sets both
      at once, approval clears the flag)

Guards and patches are pure functions; VerificationService applies them
through single-row conditional updates so a transition either fully
succeeds or leaves the row untouched.
"""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any

from .exceptions import (
    ActorNotAuthorized,
    NotFoundError,
    TransitionDenied,
    ValidationError,
)
from .fees import calculate_fee
from .groups import GroupAssembler
from .linking import RetryPolicy, link_proof
from .models import Actor, EditCorrectionResult, ProofFile, Registration
from .ports import (
    ActivityAction,
    ActivityLog,
    ActorRole,
    NotificationKind,
    Notifier,
    PaymentStatus,
    RegistrationRepository,
    RegistrationStatus,
    StayType,
)
from .proofs import ProofStore, final_key_prefix

logger = logging.getLogger(__name__)

ACCOUNTS_ROLES = frozenset({ActorRole.ACCOUNTS_ADMIN, ActorRole.SUPERADMIN})
ADMIN_ROLES = frozenset({ActorRole.ADMIN, ActorRole.SUPERADMIN})

ACCOUNTS_DECISIONS = frozenset({PaymentStatus.VERIFIED, PaymentStatus.REJECTED})
APPROVAL_DECISIONS = frozenset({RegistrationStatus.APPROVED, RegistrationStatus.REJECTED})

RECEIPT_PREFIX = "receipt"


def require_role(actor: Actor, allowed: frozenset[ActorRole], action: str) -> None:
    if actor.role not in allowed:
        raise ActorNotAuthorized(f"Role {actor.role.value} may not {action}")


def can_accounts_verify(row: Registration) -> bool:
    return row.payment_status == PaymentStatus.SUBMITTED


def can_approve(row: Registration) -> bool:
    """Admin decision is only possible after accounts verification."""
    return row.accounts_verified and row.registration_status == RegistrationStatus.PENDING


def accounts_verify_patch(
    actor: Actor,
    decision: PaymentStatus,
    now: datetime,
    reason: str | None = None,
    receipt_url: str | None = None,
) -> dict[str, Any]:
    verified = decision == PaymentStatus.VERIFIED
    patch: dict[str, Any] = {
        "payment_status": decision,
        "accounts_verified": verified,
        "accounts_verified_by": actor.id,
        "accounts_verified_at": now,
        "payment_rejection_reason": None if verified else reason,
    }
    if not verified:
        patch["payment_reference"] = None
    if receipt_url is not None:
        patch["payment_receipt_url"] = receipt_url
    return patch


def approval_patch(
    actor: Actor, decision: RegistrationStatus, now: datetime, reason: str | None = None
) -> dict[str, Any]:
    return {
        "registration_status": decision,
        "approved_by": actor.id,
        "approved_at": now,
        "rejection_reason": reason if decision == RegistrationStatus.REJECTED else None,
        "edit_mode_enabled": False,
        "pending_admin_approval": False,
    }


def edit_mode_patch(row: Registration, actor: Actor, reason: str, now: datetime) -> dict[str, Any]:
    """
    Rollback that reopens a row for a fresh accounts-verification pass.

    The existing proof URL is kept for audit reference.
    """
    return {
        "edit_mode_enabled": True,
        "edit_mode_enabled_by": actor.id,
        "edit_mode_enabled_at": now,
        "edit_mode_reason": reason,
        "registration_status": RegistrationStatus.PENDING,
        "accounts_verified": False,
        "accounts_verified_by": None,
        "accounts_verified_at": None,
        "payment_receipt_url": None,
        "pending_admin_approval": False,
        "payment_status": (
            PaymentStatus.SUBMITTED if row.payment_proof_url else PaymentStatus.PENDING
        ),
    }


def edit_correction_patch(
    proof_url: str | None = None, stay_type: StayType | None = None
) -> dict[str, Any]:
    patch: dict[str, Any] = {"pending_admin_approval": True}
    if proof_url is not None:
        patch["payment_proof_url"] = proof_url
        patch["payment_status"] = PaymentStatus.SUBMITTED
    if stay_type is not None:
        patch["stay_type"] = stay_type
        patch["registration_fee"] = calculate_fee(stay_type)
    return patch


def apply_patch(row: Registration, patch: dict[str, Any]) -> Registration:
    """Return the row as it looks after a patch is applied."""
    return replace(row, **patch)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _coerce_decision(enum_cls, value):
    try:
        return enum_cls(value)
    except ValueError:
        raise ValidationError(f"Invalid decision: {value}") from None


@dataclass
class VerificationService:
    """Applies staff transitions to persisted registrations."""

    repository: RegistrationRepository
    proof_store: ProofStore
    notifier: Notifier
    activity_log: ActivityLog
    retry_policy: RetryPolicy = field(default_factory=RetryPolicy)
    payment_verified_recipient: str | None = None
    clock: Callable[[], datetime] = field(default=_utcnow)
    sleep: Callable[[float], None] = field(default=time.sleep)

    def accounts_verify(
        self,
        application_id: str,
        actor: Actor,
        decision: PaymentStatus,
        reason: str | None = None,
        receipt: ProofFile | None = None,
    ) -> Registration:
        """
        Record the accounts reviewer's decision on a submitted proof.

        A verified payment sends a "ready for final approval" notice to
        ``payment_verified_recipient`` when one is configured.

        Args:
            application_id: Registration to review
            actor: Resolved staff identity
            decision: PaymentStatus.VERIFIED or PaymentStatus.REJECTED
            reason: Why the proof was rejected (required for rejection)
            receipt: Optional payment receipt; only accepted with a verification

        Raises:
            ActorNotAuthorized: Actor is not an accounts reviewer
            ValidationError: Unknown decision, missing rejection reason or
                a receipt sent with a rejection
            NotFoundError: Unknown registration
            TransitionDenied: Payment is not in the submitted state
        """
        require_role(actor, ACCOUNTS_ROLES, "verify payments")
        decision = _coerce_decision(PaymentStatus, decision)
        if decision not in ACCOUNTS_DECISIONS:
            raise ValidationError(f"Invalid accounts decision: {decision.value}")
        if decision == PaymentStatus.REJECTED:
            if not (reason and reason.strip()):
                raise ValidationError("A reason is required to reject a payment")
            if receipt is not None:
                raise ValidationError("A receipt can only be attached to a verified payment")

        row = self._load(application_id)
        if not can_accounts_verify(row):
            raise TransitionDenied(
                f"Payment for {application_id} is {row.payment_status.value}, not submitted"
            )

        receipt_url = None
        if receipt is not None:
            receipt_url = self.proof_store.store_finalized(
                receipt, f"{RECEIPT_PREFIX}-{application_id}"
            )

        patch = accounts_verify_patch(actor, decision, self.clock(), reason, receipt_url)
        self._commit(row, patch, {"payment_status": PaymentStatus.SUBMITTED})
        logger.info("Payment for %s %s by %s", application_id, decision.value, actor.id)

        updated = apply_patch(row, patch)
        if decision == PaymentStatus.VERIFIED:
            self._record(actor, ActivityAction.ACCOUNT_APPROVAL, application_id, {})
            if receipt_url is not None:
                self._record(
                    actor, ActivityAction.RECEIPT_UPLOAD, application_id, {"receipt_url": receipt_url}
                )
            self._notify_payment_verified(updated)
        else:
            self._record(
                actor, ActivityAction.ACCOUNT_REJECTION, application_id, {"reason": reason}
            )
        return updated

    def approve(
        self,
        application_id: str,
        actor: Actor,
        decision: RegistrationStatus,
        reason: str | None = None,
    ) -> Registration:
        """
        Record the admin decision and notify the registrant.

        Notification is fire-and-forget; a failed notification never
        undoes the decision.

        Raises:
            ActorNotAuthorized: Actor is not an admin
            ValidationError: Unknown decision or missing rejection reason
            NotFoundError: Unknown registration
            TransitionDenied: Accounts verification missing or not pending
        """
        require_role(actor, ADMIN_ROLES, "approve registrations")
        decision = _coerce_decision(RegistrationStatus, decision)
        if decision not in APPROVAL_DECISIONS:
            raise ValidationError(f"Invalid approval decision: {decision.value}")
        if decision == RegistrationStatus.REJECTED and not (reason and reason.strip()):
            raise ValidationError("A reason is required to reject a registration")

        row = self._load(application_id)
        if not can_approve(row):
            raise TransitionDenied(
                f"Registration {application_id} cannot be decided: "
                f"accounts_verified={row.accounts_verified}, "
                f"status={row.registration_status.value}"
            )

        patch = approval_patch(actor, decision, self.clock(), reason)
        self._commit(
            row,
            patch,
            {"accounts_verified": True, "registration_status": RegistrationStatus.PENDING},
        )
        logger.info("Registration %s %s by %s", application_id, decision.value, actor.id)

        updated = apply_patch(row, patch)
        if decision == RegistrationStatus.APPROVED:
            self._record(actor, ActivityAction.REGISTRATION_APPROVAL, application_id, {})
        else:
            self._record(
                actor, ActivityAction.REGISTRATION_REJECTION, application_id, {"reason": reason}
            )
        self._notify_decision(updated)
        return updated

    def enable_edit_mode(self, application_id: str, actor: Actor, reason: str) -> Registration:
        """
        Reopen a registration for correction without discarding history.

        The state the row is rolled back from is kept in the activity trail.

        Raises:
            ActorNotAuthorized: Actor is not an admin
            ValidationError: Missing reason
            NotFoundError: Unknown registration
        """
        require_role(actor, ADMIN_ROLES, "enable edit mode")
        if not (reason and reason.strip()):
            raise ValidationError("A reason is required to enable edit mode")

        row = self._load(application_id)
        patch = edit_mode_patch(row, actor, reason.strip(), self.clock())
        self._commit(row, patch)
        logger.info(
            "Edit mode enabled for %s by %s (was %s)",
            application_id,
            actor.id,
            row.registration_status.value,
        )
        self._record(
            actor,
            ActivityAction.EDIT_MODE_ENABLED,
            application_id,
            {
                "reason": reason.strip(),
                "previous_registration_status": row.registration_status.value,
                "previous_payment_status": row.payment_status.value,
                "previous_accounts_verified_by": row.accounts_verified_by,
                "previous_receipt_url": row.payment_receipt_url,
            },
        )
        return apply_patch(row, patch)

    def save_edit_correction(
        self,
        application_id: str,
        actor: Actor,
        proof: ProofFile | None = None,
        stay_type: StayType | None = None,
    ) -> EditCorrectionResult:
        """
        Save a correction for a row in edit mode.

        A new proof goes through the same upload/finalize pipeline as a
        submission. When the row is a group primary the new proof is
        cascaded to every dependent with per-row retry; dependents that
        still fail are reported, not raised.

        Raises:
            ActorNotAuthorized: Actor is not an admin
            ValidationError: Nothing to correct or invalid proof
            NotFoundError: Unknown registration or dangling primary
            TransitionDenied: Edit mode is not enabled
            StorageError: Proof upload or the row update failed
        """
        require_role(actor, ADMIN_ROLES, "edit registrations")
        if proof is None and stay_type is None:
            raise ValidationError("Nothing to correct: provide a proof or a stay type")
        if proof is not None:
            self.proof_store.validate(proof)

        row = self._load(application_id)
        if not row.edit_mode_enabled:
            raise TransitionDenied(f"Edit mode is not enabled for {application_id}")

        group = None
        proof_url = None
        if proof is not None:
            if row.is_primary:
                group = GroupAssembler(self.repository).discover_group(application_id)
            shared = group is not None and group.is_shared
            proof_url = self.proof_store.store_finalized(
                proof, final_key_prefix(application_id, shared)
            )

        patch = edit_correction_patch(proof_url, StayType(stay_type) if stay_type else None)
        self._commit(row, patch, {"edit_mode_enabled": True})

        failures: tuple[str, ...] = ()
        if group is not None and group.dependents:
            failures = link_proof(
                self.repository,
                tuple(dependent.application_id for dependent in group.dependents),
                proof_url,
                self.retry_policy,
                self.sleep,
            )
        updated = apply_patch(row, patch)
        self._record(
            actor,
            ActivityAction.EDIT_CORRECTION,
            application_id,
            {
                "proof_url": proof_url,
                "previous_proof_url": row.payment_proof_url,
                "stay_type": updated.stay_type.value,
                "previous_stay_type": row.stay_type.value,
                "link_failures": list(failures),
            },
        )
        return EditCorrectionResult(
            application_id=application_id,
            proof_url=proof_url,
            registration_fee=updated.registration_fee,
            link_failures=failures,
        )

    def _load(self, application_id: str) -> Registration:
        row = self.repository.select_by_application_id(application_id)
        if row is None:
            raise NotFoundError(f"Registration {application_id} not found")
        return row

    def _commit(
        self, row: Registration, patch: dict[str, Any], expected: dict[str, Any] | None = None
    ) -> None:
        if not self.repository.update_registration(row.application_id, patch, expected):
            raise TransitionDenied(
                f"Registration {row.application_id} changed concurrently; reload and retry"
            )

    def _record(
        self, actor: Actor, action: ActivityAction, application_id: str, details: dict[str, Any]
    ) -> None:
        try:
            self.activity_log.record(actor, action, application_id, details)
        except Exception:
            logger.exception("Failed to record %s activity for %s", action.value, application_id)

    def _notify_decision(self, row: Registration) -> None:
        kind = (
            NotificationKind.APPROVED
            if row.registration_status == RegistrationStatus.APPROVED
            else NotificationKind.REJECTED
        )
        payload = {
            "application_id": row.application_id,
            "name": row.name,
            "receipt_url": row.payment_receipt_url,
            "rejection_reason": row.rejection_reason,
        }
        self._send(row.email, kind, payload)

    def _notify_payment_verified(self, row: Registration) -> None:
        if not self.payment_verified_recipient:
            return
        payload = {
            "application_id": row.application_id,
            "name": row.name,
            "email": row.email,
            "registration_fee": row.registration_fee,
            "verified_at": row.accounts_verified_at.isoformat() if row.accounts_verified_at else None,
        }
        self._send(self.payment_verified_recipient, NotificationKind.PAYMENT_VERIFIED, payload)

    def _send(self, recipient: str, kind: NotificationKind, payload: dict[str, Any]) -> None:
        try:
            self.notifier.notify(recipient, kind, payload)
        except Exception:
            logger.exception("Failed to send %s notification for %s", kind.value, payload["application_id"])
