"""
Shared test fixtures and configuration.

This module provides in-memory implementations of the domain ports so
domain services can be exercised without PostgreSQL or a blob store:
- InMemoryRegistrationRepository (with failure injection)
- InMemoryBlobStore (with failure injection)
- RecordingNotifier
- RecordingActivityLog
"""

import itertools
import threading
from collections.abc import Mapping, Sequence
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from reunion.domain.exceptions import StorageError
from reunion.domain.linking import RetryPolicy
from reunion.domain.models import (
    Actor,
    BlobInfo,
    BotSignal,
    CreatedGroup,
    GroupDraft,
    ProofFile,
    RegistrantFields,
    AttendeeFields,
    Registration,
)
from reunion.domain.ports import ActivityAction, ActorRole, NotificationKind, StayType
from reunion.domain.proofs import ProofStore
from reunion.domain.submission import SubmissionService
from reunion.domain.verification import VerificationService

FIXED_NOW = datetime(2026, 1, 15, 10, 30, tzinfo=timezone.utc)
APPROVERS_INBOX = "approvers@example.org"


class InMemoryRegistrationRepository:
    """
    Dict-backed RegistrationRepository.

    ``fail_updates`` maps an application id to the number of upcoming
    update calls for it that raise StorageError (-1 means always).
    """

    def __init__(self) -> None:
        self.rows: dict[str, Registration] = {}
        self.update_calls: list[tuple[str, dict[str, Any]]] = []
        self.fail_updates: dict[str, int] = {}
        self.fail_create = False
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def create_group_rows(self, draft: GroupDraft) -> CreatedGroup:
        if self.fail_create:
            raise StorageError("database unavailable")
        with self._lock:
            primary_id = self._next_id()
            self.rows[primary_id] = self._row(primary_id, draft.primary, None)
            attendee_ids = []
            for attendee in draft.attendees:
                attendee_id = self._next_id()
                self.rows[attendee_id] = self._row(attendee_id, attendee, primary_id)
                attendee_ids.append(attendee_id)
        return CreatedGroup(primary_id, tuple(attendee_ids))

    def update_registration(
        self,
        application_id: str,
        patch: Mapping[str, Any],
        expected: Mapping[str, Any] | None = None,
    ) -> bool:
        with self._lock:
            self.update_calls.append((application_id, dict(patch)))
            remaining = self.fail_updates.get(application_id, 0)
            if remaining:
                if remaining > 0:
                    self.fail_updates[application_id] = remaining - 1
                raise StorageError(f"transient failure updating {application_id}")
            row = self.rows.get(application_id)
            if row is None:
                return False
            for column, value in (expected or {}).items():
                if getattr(row, column) != value:
                    return False
            self.rows[application_id] = replace(row, **patch)
            return True

    def select_by_parent(self, parent_application_id: str) -> list[Registration]:
        return sorted(
            (row for row in self.rows.values() if row.parent_application_id == parent_application_id),
            key=lambda row: row.application_id,
        )

    def select_by_application_id(self, application_id: str) -> Registration | None:
        return self.rows.get(application_id)

    def add(self, registration: Registration) -> Registration:
        """Seed a row directly."""
        self.rows[registration.application_id] = registration
        return registration

    def _next_id(self) -> str:
        return f"ALM-{next(self._ids):04d}"

    @staticmethod
    def _row(application_id, member, parent_application_id) -> Registration:
        return Registration(
            application_id=application_id,
            parent_application_id=parent_application_id,
            name=member.fields.name,
            email=member.fields.email,
            stay_type=StayType(member.fields.stay_type),
            registration_fee=member.registration_fee,
        )


class InMemoryBlobStore:
    """Dict-backed BlobStore; each write advances a fake clock."""

    base_url = "https://proofs.test"

    def __init__(self) -> None:
        self.blobs: dict[str, bytes] = {}
        self.written_at: dict[str, datetime] = {}
        self.operations: list[tuple[str, str]] = []
        self.fail_upload = False
        self.fail_copy = False
        self.fail_delete = False
        self.fail_list = False
        self._tick = itertools.count()

    def upload(self, key: str, data: bytes, content_type: str) -> None:
        self.operations.append(("upload", key))
        if self.fail_upload:
            raise StorageError("bucket unavailable")
        self._write(key, data)

    def copy(self, source_key: str, destination_key: str) -> None:
        self.operations.append(("copy", source_key))
        if self.fail_copy or source_key not in self.blobs:
            raise StorageError(f"copy of {source_key} failed")
        self._write(destination_key, self.blobs[source_key])

    def delete(self, key: str) -> None:
        self.operations.append(("delete", key))
        if self.fail_delete:
            raise StorageError(f"delete of {key} failed")
        self.blobs.pop(key, None)
        self.written_at.pop(key, None)

    def public_url(self, key: str) -> str:
        return f"{self.base_url}/{key}"

    def list_keys(self, prefix: str) -> Sequence[BlobInfo]:
        if self.fail_list:
            raise StorageError("listing failed")
        return [
            BlobInfo(key=key, updated_at=self.written_at[key])
            for key in self.blobs
            if key.startswith(prefix)
        ]

    def _write(self, key: str, data: bytes) -> None:
        self.blobs[key] = data
        self.written_at[key] = FIXED_NOW + timedelta(seconds=next(self._tick))


class RecordingNotifier:
    """Notifier that records every intent; optionally raises."""

    def __init__(self, error: Exception | None = None) -> None:
        self.sent: list[tuple[str, NotificationKind, dict[str, Any]]] = []
        self.error = error

    def notify(self, recipient: str, kind: NotificationKind, payload: Mapping[str, Any]) -> None:
        if self.error is not None:
            raise self.error
        self.sent.append((recipient, kind, dict(payload)))


class RecordingActivityLog:
    """ActivityLog that keeps entries in memory; optionally raises."""

    def __init__(self, error: Exception | None = None) -> None:
        self.entries: list[tuple[str, ActivityAction, str, dict[str, Any]]] = []
        self.error = error

    def record(
        self,
        actor: Actor,
        action: ActivityAction,
        application_id: str,
        details: Mapping[str, Any],
    ) -> None:
        if self.error is not None:
            raise self.error
        self.entries.append((actor.id, action, application_id, dict(details)))

    def actions(self, application_id: str) -> list[ActivityAction]:
        return [action for _, action, target, _ in self.entries if target == application_id]


class FakeClock:
    """Monotonic epoch-seconds clock that advances one second per call."""

    def __init__(self, start: float = 1_760_000_000.0) -> None:
        self._now = start
        self._lock = threading.Lock()

    def __call__(self) -> float:
        with self._lock:
            self._now += 1
            return self._now


def _make_proof(
    size: int = 1024, content_type: str = "image/png", filename: str = "proof.png"
) -> ProofFile:
    return ProofFile(filename=filename, content_type=content_type, data=b"x" * size)


def _make_registrant(stay_type: StayType = StayType.ON_CAMPUS, **overrides) -> RegistrantFields:
    values = {
        "name": "Asha Menon",
        "email": "asha@example.com",
        "stay_type": stay_type,
        "phone": "9876543210",
        "city": "Kochi",
    }
    values.update(overrides)
    return RegistrantFields(**values)


def _make_attendee(
    name: str = "Ravi Kumar", stay_type: StayType = StayType.OUTSIDE, **overrides
) -> AttendeeFields:
    values = {"name": name, "email": f"{name.split()[0].lower()}@example.com", "stay_type": stay_type}
    values.update(overrides)
    return AttendeeFields(**values)


def _human_signal() -> BotSignal:
    return BotSignal(honeypot="", form_load_time=1000.0, submit_time=1060.0)


@pytest.fixture
def repository() -> InMemoryRegistrationRepository:
    return InMemoryRegistrationRepository()


@pytest.fixture
def blob_store() -> InMemoryBlobStore:
    return InMemoryBlobStore()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def activity_log() -> RecordingActivityLog:
    return RecordingActivityLog()


@pytest.fixture
def proof_store(blob_store: InMemoryBlobStore) -> ProofStore:
    return ProofStore(blob_store=blob_store, clock=FakeClock())


@pytest.fixture
def sleeps() -> list[float]:
    """Collects backoff sleeps instead of blocking."""
    return []


@pytest.fixture
def retry_policy() -> RetryPolicy:
    return RetryPolicy(max_attempts=3, backoff_seconds=0.4)


@pytest.fixture
def submission_service(repository, proof_store, retry_policy, sleeps) -> SubmissionService:
    return SubmissionService(
        repository=repository,
        proof_store=proof_store,
        retry_policy=retry_policy,
        sleep=sleeps.append,
    )


@pytest.fixture
def verification_service(
    repository, proof_store, notifier, activity_log, retry_policy, sleeps
) -> VerificationService:
    return VerificationService(
        repository=repository,
        proof_store=proof_store,
        notifier=notifier,
        activity_log=activity_log,
        retry_policy=retry_policy,
        payment_verified_recipient=APPROVERS_INBOX,
        clock=lambda: FIXED_NOW,
        sleep=sleeps.append,
    )


@pytest.fixture
def accounts_admin() -> Actor:
    return Actor(id="acc-1", role=ActorRole.ACCOUNTS_ADMIN)


@pytest.fixture
def admin() -> Actor:
    return Actor(id="adm-1", role=ActorRole.ADMIN)


@pytest.fixture
def reviewer() -> Actor:
    return Actor(id="rev-1", role=ActorRole.REVIEWER)


@pytest.fixture
def make_proof():
    """Factory for proof files of a given size and MIME type."""
    return _make_proof


@pytest.fixture
def make_registrant():
    return _make_registrant


@pytest.fixture
def make_attendee():
    return _make_attendee


@pytest.fixture
def human_signal() -> BotSignal:
    """A form signal that passes the abuse gate."""
    return _human_signal()
