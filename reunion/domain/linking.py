"""
Proof linking - Bounded per-row retry with partial-failure tolerance.

Linking a proof to a group is not a multi-row transaction. Each row is
updated on its own, retried a bounded number of times, and rows that
still fail are collected and reported instead of raised. The update is
naturally idempotent, so retries and repeated links are harmless.
"""

import logging
import time
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from .exceptions import StorageError
from .models import PaymentDetails
from .ports import PaymentStatus, RegistrationRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    """Linear backoff: sleep ``backoff_seconds * attempt`` between attempts."""

    max_attempts: int = 3
    backoff_seconds: float = 0.4

    def delay(self, attempt: int) -> float:
        return self.backoff_seconds * attempt


def link_patch(proof_url: str, payment: PaymentDetails | None = None) -> dict[str, Any]:
    """Row patch that attaches a proof and marks payment as submitted."""
    patch: dict[str, Any] = {"payment_proof_url": proof_url, "payment_status": PaymentStatus.SUBMITTED}
    if payment is not None:
        if payment.reference is not None:
            patch["payment_reference"] = payment.reference
        if payment.paid_on is not None:
            patch["payment_date"] = payment.paid_on
    return patch


def idempotent_update(
    repository: RegistrationRepository,
    application_id: str,
    patch: Mapping[str, Any],
    policy: RetryPolicy = RetryPolicy(),
    sleep: Callable[[float], None] = time.sleep,
) -> bool:
    """
    Apply a single-row update, retrying on failure.

    A transport error and an update that matched no row both count as a
    failed attempt.

    Returns:
        True if some attempt succeeded, False once attempts are exhausted
    """
    for attempt in range(1, policy.max_attempts + 1):
        try:
            if repository.update_registration(application_id, patch):
                return True
            reason = "no matching row"
        except StorageError as e:
            reason = str(e)

        if attempt < policy.max_attempts:
            wait_time = policy.delay(attempt)
            logger.warning(
                f"Update of {application_id} attempt {attempt}/{policy.max_attempts} "
                f"failed: {reason}. Retrying in {wait_time:.1f}s..."
            )
            sleep(wait_time)
        else:
            logger.error(
                f"Update of {application_id} failed after {policy.max_attempts} attempts: {reason}"
            )
    return False


def link_proof(
    repository: RegistrationRepository,
    application_ids: Iterable[str],
    proof_url: str,
    policy: RetryPolicy = RetryPolicy(),
    sleep: Callable[[float], None] = time.sleep,
    payment: PaymentDetails | None = None,
) -> tuple[str, ...]:
    """
    Fan a proof URL out to every given row.

    Never aborts on a single row's failure.

    Returns:
        Application ids that did not receive the proof reference
    """
    patch = link_patch(proof_url, payment)
    failures = tuple(
        application_id
        for application_id in application_ids
        if not idempotent_update(repository, application_id, patch, policy, sleep)
    )
    if failures:
        logger.warning("Proof %s not linked to: %s", proof_url, ", ".join(failures))
    return failures
