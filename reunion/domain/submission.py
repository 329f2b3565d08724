"""
Submission orchestrator - Create-then-link pipeline for group registrations.

Pipeline (strict sequence, each step a blocking I/O boundary):

    1. abuse gate          - AbuseSuspected, no I/O yet
    2. proof required      - ValidationError, plus file constraints and
                             attendee bound, still no I/O
    3. temporary upload    - StorageError aborts, nothing persisted
    4. create group rows   - failure aborts; the temporary blob is left in
                             place so the only copy of the proof survives
    5. finalize naming     - copy to an id-derived key, falls back to the
                             temporary key, temp removed best-effort
    6. fan-out link        - per-row bounded retry, failures collected

Failures before step 4 completes leave no registration rows. Failures
after it never roll rows back: a registration that exists but needs a
proof relink is always preferred over losing a successful registration.
"""

import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

from .abuse import MIN_FORM_FILL_SECONDS, check_bot_signal
from .exceptions import TransitionDenied, ValidationError
from .groups import MAX_ATTENDEES, GroupAssembler, build_group
from .linking import RetryPolicy, link_proof
from .models import (
    AttendeeFields,
    BotSignal,
    LookupResult,
    PaymentDetails,
    ProofFile,
    RegistrantFields,
    Registration,
    RelinkResult,
    SubmissionResult,
)
from .ports import PaymentStatus, RegistrationRepository
from .proofs import ProofStore, final_key_prefix

logger = logging.getLogger(__name__)

RELINKABLE_PAYMENT_STATUSES = frozenset({PaymentStatus.PENDING, PaymentStatus.REJECTED})


def awaits_proof(member: Registration) -> bool:
    """True when a relink may replace this member's proof reference."""
    if member.payment_status == PaymentStatus.VERIFIED:
        return False
    return member.payment_status in RELINKABLE_PAYMENT_STATUSES or member.payment_proof_url is None


@dataclass
class SubmissionService:
    """
    Domain service for submitting, looking up and relinking registrations.

    Orchestrates the fee model, group assembler and proof store against the
    registration repository.
    """

    repository: RegistrationRepository
    proof_store: ProofStore
    retry_policy: RetryPolicy = field(default_factory=RetryPolicy)
    max_attendees: int = MAX_ATTENDEES
    min_form_fill_seconds: float = MIN_FORM_FILL_SECONDS
    sleep: Callable[[float], None] = field(default=time.sleep)

    def submit(
        self,
        registrant: RegistrantFields,
        attendees: Sequence[AttendeeFields],
        proof_file: ProofFile | None,
        bot_signal: BotSignal,
        payment: PaymentDetails | None = None,
    ) -> SubmissionResult:
        """
        Register a primary and its attendees and attach one proof to all.

        Args:
            registrant: Primary registrant details
            attendees: Additional attendees (may be empty)
            proof_file: Payment proof covering the whole group
            bot_signal: Honeypot + timing signal from the form
            payment: Optional transfer reference and date, stored on every row

        Returns:
            SubmissionResult; check ``needs_relink`` for partial link failure

        Raises:
            AbuseSuspected: Submission looks automated
            ValidationError: Missing/invalid proof or too many attendees
            StorageError: Temporary upload or row creation failed
        """
        check_bot_signal(bot_signal, self.min_form_fill_seconds)
        if proof_file is None:
            raise ValidationError("proof required")
        self.proof_store.validate(proof_file)
        draft = build_group(registrant, attendees, self.max_attendees)

        temp_key = self.proof_store.upload_temporary(proof_file)

        try:
            created = self.repository.create_group_rows(draft)
        except Exception:
            logger.error("Row creation failed; temporary proof kept at %s", temp_key)
            raise
        logger.info(
            "Created group %s with %d member(s), total fee %d",
            created.application_id,
            len(created.application_ids),
            draft.total_fee,
        )

        final_key = self.proof_store.finalize(
            temp_key, final_key_prefix(created.application_id, draft.is_shared)
        )
        if final_key != temp_key:
            self.proof_store.delete_best_effort(temp_key)
        proof_url = self.proof_store.resolve_url(final_key)

        failures = link_proof(
            self.repository,
            created.application_ids,
            proof_url,
            self.retry_policy,
            self.sleep,
            payment,
        )
        return SubmissionResult(
            application_id=created.application_id,
            group_application_ids=created.application_ids,
            link_failures=failures,
            proof_url=proof_url,
            total_fee=draft.total_fee,
        )

    def lookup_by_application_id(self, application_id: str) -> LookupResult:
        """
        Find a registration and its group.

        When the row carries no proof reference, the most recent stored
        proof for the id (or its group's shared proof) is offered instead.

        Raises:
            NotFoundError: Unknown id or dangling primary reference
        """
        group = GroupAssembler(self.repository).discover_group(application_id)
        registration = next(
            member for member in group.members if member.application_id == application_id
        )
        proof_url = registration.payment_proof_url
        if proof_url is None:
            proof_url = self.proof_store.resolve_latest(application_id)
        if proof_url is None and not registration.is_primary:
            proof_url = self.proof_store.resolve_latest(group.primary.application_id)
        return LookupResult(registration=registration, group=group, proof_url=proof_url)

    def relink_proof(
        self,
        application_id: str,
        proof_file: ProofFile,
        payment: PaymentDetails | None = None,
    ) -> RelinkResult:
        """
        Upload a proof for an existing registration and link it to its group.

        This is the "lookup and pay later" flow and the recovery path for
        submissions whose fan-out link partially failed. Only members that
        still owe a proof are re-targeted: payment pending or rejected, or
        no proof reference at all. A member whose proof is awaiting review
        or already verified keeps it.

        Raises:
            NotFoundError: Unknown id or dangling primary reference
            TransitionDenied: The entry registration's payment is verified,
                or no member of the group is awaiting a proof
            ValidationError: Proof violates boundary constraints
            StorageError: Temporary upload failed
        """
        self.proof_store.validate(proof_file)
        group = GroupAssembler(self.repository).discover_group(application_id)
        entry = next(member for member in group.members if member.application_id == application_id)
        if entry.payment_status == PaymentStatus.VERIFIED:
            raise TransitionDenied(f"Payment for {application_id} is already verified")

        targets = tuple(
            member.application_id for member in group.members if awaits_proof(member)
        )
        if not targets:
            raise TransitionDenied(
                f"No registration in the group of {application_id} is awaiting a payment proof"
            )
        if len(targets) > 1:
            prefix = final_key_prefix(group.primary.application_id, shared=True)
        else:
            prefix = final_key_prefix(targets[0], shared=False)
        proof_url = self.proof_store.store_finalized(proof_file, prefix)
        failures = link_proof(
            self.repository, targets, proof_url, self.retry_policy, self.sleep, payment
        )
        logger.info("Relinked proof for %s to %d row(s)", application_id, len(targets) - len(failures))
        return RelinkResult(
            application_id=application_id,
            proof_url=proof_url,
            linked_application_ids=tuple(t for t in targets if t not in failures),
            link_failures=failures,
        )
