"""
Unit tests for domain ports and exceptions.

Tests verify:
- Enums carry their wire values
- Exceptions are properly structured
- In-memory fakes satisfy the port protocols
- Domain purity (zero framework imports)
"""

import subprocess
from enum import Enum
from pathlib import Path

import pytest

from reunion.domain.exceptions import (
    AbuseSuspected,
    ActorNotAuthorized,
    NotFoundError,
    RegistrationError,
    StorageError,
    TransitionDenied,
    ValidationError,
)
from reunion.domain.ports import (
    ActorRole,
    BlobStore,
    NotificationKind,
    Notifier,
    PaymentStatus,
    RegistrationRepository,
    RegistrationStatus,
    StayType,
)

DOMAIN_DIR = Path(__file__).resolve().parents[2] / "reunion" / "domain"


class TestEnums:
    """Tests for the shared domain enums."""

    def test_all_are_str_enums(self) -> None:
        for enum_cls in (StayType, PaymentStatus, RegistrationStatus, ActorRole, NotificationKind):
            assert issubclass(enum_cls, Enum)
            assert issubclass(enum_cls, str)

    def test_stay_type_values(self) -> None:
        assert {s.value for s in StayType} == {"on-campus", "outside"}

    def test_payment_status_values(self) -> None:
        assert {s.value for s in PaymentStatus} == {"pending", "submitted", "verified", "rejected"}

    def test_registration_status_values(self) -> None:
        assert {s.value for s in RegistrationStatus} == {"pending", "approved", "rejected", "expired"}

    def test_actor_role_values(self) -> None:
        assert {r.value for r in ActorRole} == {"superadmin", "admin", "accounts_admin", "reviewer"}

    def test_compares_to_wire_value(self) -> None:
        """str mixin lets rows compare directly with stored strings."""
        assert PaymentStatus.SUBMITTED == "submitted"


class TestExceptions:
    """Tests for the exception hierarchy."""

    @pytest.mark.parametrize(
        "exc_cls",
        [ValidationError, AbuseSuspected, StorageError, NotFoundError, TransitionDenied, ActorNotAuthorized],
    )
    def test_inherits_from_registration_error(self, exc_cls) -> None:
        assert issubclass(exc_cls, RegistrationError)

    def test_abuse_is_validation(self) -> None:
        assert issubclass(AbuseSuspected, ValidationError)

    def test_message_preserved(self) -> None:
        assert str(NotFoundError("Registration ALM-1 not found")) == "Registration ALM-1 not found"


class TestPortProtocols:
    """Tests that the test fakes satisfy the ports structurally."""

    def test_repository_protocol(self, repository) -> None:
        def accepts(repo: RegistrationRepository) -> None:
            pass

        accepts(repository)
        for name in ("create_group_rows", "update_registration", "select_by_parent", "select_by_application_id"):
            assert callable(getattr(repository, name))

    def test_blob_store_protocol(self, blob_store) -> None:
        def accepts(store: BlobStore) -> None:
            pass

        accepts(blob_store)
        for name in ("upload", "copy", "delete", "public_url", "list_keys"):
            assert callable(getattr(blob_store, name))

    def test_notifier_protocol(self, notifier) -> None:
        def accepts(n: Notifier) -> None:
            pass

        accepts(notifier)
        assert callable(notifier.notify)


class TestDomainPurity:
    """Tests for domain purity - zero framework imports."""

    @pytest.mark.parametrize(
        "pattern",
        ["from fastapi", "import fastapi", "from pydantic", "import pydantic", "from psycopg", "import psycopg"],
    )
    def test_no_framework_imports_in_domain(self, pattern: str) -> None:
        result = subprocess.run(
            ["grep", "-r", pattern, str(DOMAIN_DIR)],
            capture_output=True,
            text=True,
        )
        assert result.returncode != 0, f"Framework import found: {result.stdout}"
