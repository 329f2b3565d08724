"""
FastAPI dependencies - Dependency injection factories.

This module provides Depends() factories for injecting
domain services and infrastructure adapters into routes.
"""

from functools import lru_cache

from fastapi import Depends, Header, HTTPException, Request, UploadFile, status
from psycopg_pool import ConnectionPool

from reunion.adapters.repository.postgres import (
    PostgresActivityLog,
    PostgresRegistrationRepository,
)
from reunion.adapters.smtp.console import ConsoleNotifier
from reunion.adapters.smtp.mailer import SmtpNotifier
from reunion.adapters.storage.local import LocalBlobStore
from reunion.config.settings import Settings, get_settings
from reunion.domain.linking import RetryPolicy
from reunion.domain.models import Actor, ProofFile
from reunion.domain.ports import ActorRole, Notifier
from reunion.domain.proofs import ProofStore
from reunion.domain.submission import SubmissionService
from reunion.domain.verification import VerificationService


def get_pool(request: Request) -> ConnectionPool:
    """
    Get connection pool from app state.

    The pool is created during app lifespan startup and stored in app.state.
    """
    return request.app.state.pool


def get_repository(request: Request) -> PostgresRegistrationRepository:
    """Create repository with connection pool from app state."""
    pool = get_pool(request)
    return PostgresRegistrationRepository(pool)


def get_activity_log(request: Request) -> PostgresActivityLog:
    """Create the staff activity log with connection pool from app state."""
    return PostgresActivityLog(get_pool(request))


@lru_cache
def get_blob_store() -> LocalBlobStore:
    """Get the proof blob store (singleton)."""
    settings = get_settings()
    return LocalBlobStore(settings.proof_storage_dir, settings.proof_public_base_url)


@lru_cache
def get_notifier() -> Notifier:
    """Get the configured notifier (singleton) - console or SMTP."""
    settings = get_settings()
    if settings.notifier == "smtp":
        return SmtpNotifier(
            host=settings.smtp_host,
            port=settings.smtp_port,
            sender=settings.smtp_from_address,
            username=settings.smtp_username,
            password=settings.smtp_password,
            use_tls=settings.smtp_use_tls,
        )
    return ConsoleNotifier()


def get_proof_store(settings: Settings = Depends(get_settings)) -> ProofStore:
    return ProofStore(
        blob_store=get_blob_store(),
        allowed_content_types=frozenset(settings.allowed_proof_content_types),
        max_bytes=settings.max_proof_bytes,
    )


def _retry_policy(settings: Settings) -> RetryPolicy:
    return RetryPolicy(
        max_attempts=settings.link_max_attempts,
        backoff_seconds=settings.link_backoff_seconds,
    )


def get_submission_service(
    request: Request,
    settings: Settings = Depends(get_settings),
    proof_store: ProofStore = Depends(get_proof_store),
) -> SubmissionService:
    """
    Create submission service with injected dependencies.

    Wires together the repository and proof store for the domain service.
    """
    return SubmissionService(
        repository=get_repository(request),
        proof_store=proof_store,
        retry_policy=_retry_policy(settings),
        max_attendees=settings.max_attendees,
        min_form_fill_seconds=settings.min_form_fill_seconds,
    )


def get_verification_service(
    request: Request,
    settings: Settings = Depends(get_settings),
    proof_store: ProofStore = Depends(get_proof_store),
) -> VerificationService:
    """Create verification service with injected dependencies."""
    return VerificationService(
        repository=get_repository(request),
        proof_store=proof_store,
        notifier=get_notifier(),
        activity_log=get_activity_log(request),
        retry_policy=_retry_policy(settings),
        payment_verified_recipient=settings.payment_verified_recipient,
    )


def get_actor(
    x_actor_id: str | None = Header(default=None),
    x_actor_role: str | None = Header(default=None),
) -> Actor:
    """
    Build the acting staff identity from headers set by the auth proxy.

    Authentication and role resolution happen upstream; this only
    refuses requests that arrive without a resolved identity.
    """
    if not x_actor_id or not x_actor_role:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing actor identity",
        )
    try:
        role = ActorRole(x_actor_role.strip().lower())
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Unknown actor role",
        ) from None
    return Actor(id=x_actor_id.strip(), role=role)


def read_upload(upload: UploadFile | None, max_bytes: int) -> ProofFile | None:
    """
    Convert an uploaded file into a domain ProofFile.

    Reads at most ``max_bytes + 1`` bytes so oversized files are detected
    by the domain's size check without buffering them whole.
    """
    if upload is None:
        return None
    return ProofFile(
        filename=upload.filename or "proof",
        content_type=upload.content_type or "application/octet-stream",
        data=upload.file.read(max_bytes + 1),
    )
