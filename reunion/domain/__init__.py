"""
Domain layer - Pure business logic with zero framework imports.

This package contains the group registration lifecycle and payment-proof
reconciliation engine: fee model, group assembler, proof store,
submission orchestrator and verification state machine. It defines its
own port interfaces for infrastructure abstraction.
"""

from .exceptions import (
    AbuseSuspected,
    ActorNotAuthorized,
    NotFoundError,
    RegistrationError,
    StorageError,
    TransitionDenied,
    ValidationError,
)
from .fees import calculate_fee, calculate_total_fee
from .groups import GroupAssembler, build_group
from .models import (
    Actor,
    AttendeeFields,
    BotSignal,
    Group,
    GroupDraft,
    ProofFile,
    RegistrantFields,
    Registration,
    SubmissionResult,
)
from .ports import (
    ActorRole,
    BlobStore,
    Notifier,
    NotificationKind,
    PaymentStatus,
    RegistrationRepository,
    RegistrationStatus,
    StayType,
)
from .proofs import ProofStore
from .submission import SubmissionService
from .verification import VerificationService

__all__ = [
    "AbuseSuspected",
    "Actor",
    "ActorNotAuthorized",
    "ActorRole",
    "AttendeeFields",
    "BlobStore",
    "BotSignal",
    "Group",
    "GroupAssembler",
    "GroupDraft",
    "NotFoundError",
    "NotificationKind",
    "Notifier",
    "PaymentStatus",
    "ProofFile",
    "ProofStore",
    "RegistrantFields",
    "Registration",
    "RegistrationError",
    "RegistrationRepository",
    "RegistrationStatus",
    "StayType",
    "StorageError",
    "SubmissionResult",
    "SubmissionService",
    "TransitionDenied",
    "ValidationError",
    "VerificationService",
    "build_group",
    "calculate_fee",
    "calculate_total_fee",
]
