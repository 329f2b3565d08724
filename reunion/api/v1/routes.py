"""
API v1 routes.

Defines REST endpoints for group registration submission, lookup and
relink, and the staff verification / approval / edit-mode console.

Endpoints are plain ``def`` functions: the domain services perform
blocking I/O and retry backoff, so FastAPI runs them in its threadpool.
"""

import logging
from datetime import date

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from pydantic import ValidationError as PydanticValidationError

from reunion.api.dependencies import (
    get_actor,
    get_submission_service,
    get_verification_service,
    read_upload,
)
from reunion.api.models import (
    ApprovalRequest,
    EditCorrectionResponse,
    EditModeRequest,
    ErrorResponse,
    LookupResponse,
    RegistrationOut,
    RelinkResponse,
    SubmissionRequest,
    SubmissionResponse,
    to_payment_details,
)
from reunion.config.settings import Settings, get_settings
from reunion.domain.exceptions import (
    AbuseSuspected,
    ActorNotAuthorized,
    NotFoundError,
    RegistrationError,
    StorageError,
    TransitionDenied,
    ValidationError,
)
from reunion.domain.models import Actor
from reunion.domain.ports import StayType
from reunion.domain.submission import SubmissionService
from reunion.domain.verification import VerificationService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["v1"])

RELINK_WARNING = (
    "Registration saved, but the payment proof could not be attached to: {ids}. "
    "Use the application lookup to verify or re-upload the proof for these IDs."
)


def normalize_application_id(application_id: str) -> str:
    """Application ids are matched case-insensitively, ignoring stray whitespace."""
    return application_id.strip().upper()


def to_http_error(exc: RegistrationError) -> HTTPException:
    """Map a domain error onto an HTTP error response."""
    if isinstance(exc, AbuseSuspected):
        # Never reveal which check tripped
        return HTTPException(status.HTTP_400_BAD_REQUEST, "Verification failed")
    if isinstance(exc, ValidationError):
        return HTTPException(status.HTTP_422_UNPROCESSABLE_ENTITY, str(exc))
    if isinstance(exc, NotFoundError):
        return HTTPException(status.HTTP_404_NOT_FOUND, str(exc))
    if isinstance(exc, ActorNotAuthorized):
        return HTTPException(status.HTTP_403_FORBIDDEN, str(exc))
    if isinstance(exc, TransitionDenied):
        return HTTPException(status.HTTP_409_CONFLICT, str(exc))
    if isinstance(exc, StorageError):
        logger.error("Storage failure: %s", exc)
        return HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, "Storage temporarily unavailable")
    return HTTPException(status.HTTP_400_BAD_REQUEST, str(exc))


@router.post(
    "/registrations",
    response_model=SubmissionResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse, "description": "Automated submission suspected"},
        422: {"model": ErrorResponse, "description": "Validation error"},
        503: {"model": ErrorResponse, "description": "Storage unavailable"},
    },
    summary="Submit a group registration",
    description="Multipart submission: a JSON `payload` part plus the `proof` file "
    "covering the whole group.",
)
def submit_registration(
    payload: str = Form(...),
    proof: UploadFile | None = File(None),
    settings: Settings = Depends(get_settings),
    service: SubmissionService = Depends(get_submission_service),
) -> SubmissionResponse:
    """
    Register a primary registrant and any additional attendees.

    A response with non-empty `link_failures` is still a successful
    registration; `warning` tells the user which IDs need a relink.
    """
    try:
        request_data = SubmissionRequest.model_validate_json(payload)
    except PydanticValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=e.errors(include_url=False, include_context=False),
        ) from None

    try:
        result = service.submit(
            request_data.registrant.to_domain(),
            [attendee.to_domain() for attendee in request_data.attendees],
            read_upload(proof, settings.max_proof_bytes),
            request_data.bot_signal.to_domain(),
            payment=request_data.payment_details(),
        )
    except RegistrationError as e:
        raise to_http_error(e) from None

    return SubmissionResponse(
        application_id=result.application_id,
        group_application_ids=list(result.group_application_ids),
        total_fee=result.total_fee,
        proof_url=result.proof_url,
        link_failures=list(result.link_failures),
        warning=(
            RELINK_WARNING.format(ids=", ".join(result.link_failures))
            if result.needs_relink
            else None
        ),
    )


@router.get(
    "/registrations/{application_id}",
    response_model=LookupResponse,
    responses={404: {"model": ErrorResponse, "description": "Registration not found"}},
    summary="Look up a registration and its group",
)
def lookup_registration(
    application_id: str,
    service: SubmissionService = Depends(get_submission_service),
) -> LookupResponse:
    try:
        result = service.lookup_by_application_id(normalize_application_id(application_id))
    except RegistrationError as e:
        raise to_http_error(e) from None
    return LookupResponse.build(result.registration, result.group, result.proof_url)


@router.post(
    "/registrations/{application_id}/proof",
    response_model=RelinkResponse,
    responses={
        404: {"model": ErrorResponse, "description": "Registration not found"},
        409: {"model": ErrorResponse, "description": "Payment verified or no proof outstanding"},
        422: {"model": ErrorResponse, "description": "Invalid proof file"},
    },
    summary="Upload or re-upload the payment proof for a registration",
)
def relink_proof(
    application_id: str,
    proof: UploadFile = File(...),
    payment_reference: str | None = Form(None, max_length=100),
    payment_date: date | None = Form(None),
    settings: Settings = Depends(get_settings),
    service: SubmissionService = Depends(get_submission_service),
) -> RelinkResponse:
    try:
        result = service.relink_proof(
            normalize_application_id(application_id),
            read_upload(proof, settings.max_proof_bytes),
            payment=to_payment_details(payment_reference, payment_date),
        )
    except RegistrationError as e:
        raise to_http_error(e) from None
    return RelinkResponse(
        application_id=result.application_id,
        proof_url=result.proof_url,
        linked_application_ids=list(result.linked_application_ids),
        link_failures=list(result.link_failures),
        warning=(
            RELINK_WARNING.format(ids=", ".join(result.link_failures))
            if result.link_failures
            else None
        ),
    )


@router.post(
    "/admin/registrations/{application_id}/accounts-verification",
    response_model=RegistrationOut,
    responses={
        403: {"model": ErrorResponse, "description": "Role not permitted"},
        404: {"model": ErrorResponse, "description": "Registration not found"},
        409: {"model": ErrorResponse, "description": "Payment not submitted"},
        422: {"model": ErrorResponse, "description": "Invalid decision or receipt"},
    },
    summary="Record the accounts review of a payment proof",
)
def accounts_verification(
    application_id: str,
    decision: str = Form(...),
    reason: str | None = Form(None),
    receipt: UploadFile | None = File(None),
    actor: Actor = Depends(get_actor),
    settings: Settings = Depends(get_settings),
    service: VerificationService = Depends(get_verification_service),
) -> RegistrationOut:
    try:
        row = service.accounts_verify(
            normalize_application_id(application_id),
            actor,
            decision,
            reason=reason,
            receipt=read_upload(receipt, settings.max_proof_bytes),
        )
    except RegistrationError as e:
        raise to_http_error(e) from None
    return RegistrationOut.from_domain(row)


@router.post(
    "/admin/registrations/{application_id}/approval",
    response_model=RegistrationOut,
    responses={
        403: {"model": ErrorResponse, "description": "Role not permitted"},
        404: {"model": ErrorResponse, "description": "Registration not found"},
        409: {"model": ErrorResponse, "description": "Accounts verification missing"},
    },
    summary="Approve or reject an accounts-verified registration",
)
def approval(
    application_id: str,
    request_data: ApprovalRequest,
    actor: Actor = Depends(get_actor),
    service: VerificationService = Depends(get_verification_service),
) -> RegistrationOut:
    try:
        row = service.approve(
            normalize_application_id(application_id),
            actor,
            request_data.decision,
            request_data.reason,
        )
    except RegistrationError as e:
        raise to_http_error(e) from None
    return RegistrationOut.from_domain(row)


@router.post(
    "/admin/registrations/{application_id}/edit-mode",
    response_model=RegistrationOut,
    responses={
        403: {"model": ErrorResponse, "description": "Role not permitted"},
        404: {"model": ErrorResponse, "description": "Registration not found"},
    },
    summary="Reopen a registration for correction",
)
def enable_edit_mode(
    application_id: str,
    request_data: EditModeRequest,
    actor: Actor = Depends(get_actor),
    service: VerificationService = Depends(get_verification_service),
) -> RegistrationOut:
    try:
        row = service.enable_edit_mode(
            normalize_application_id(application_id), actor, request_data.reason
        )
    except RegistrationError as e:
        raise to_http_error(e) from None
    return RegistrationOut.from_domain(row)


@router.post(
    "/admin/registrations/{application_id}/edit-mode/correction",
    response_model=EditCorrectionResponse,
    responses={
        403: {"model": ErrorResponse, "description": "Role not permitted"},
        404: {"model": ErrorResponse, "description": "Registration not found"},
        409: {"model": ErrorResponse, "description": "Edit mode not enabled"},
        422: {"model": ErrorResponse, "description": "Nothing to correct or invalid proof"},
    },
    summary="Save a correction for a registration in edit mode",
)
def save_edit_correction(
    application_id: str,
    stay_type: StayType | None = Form(None),
    proof: UploadFile | None = File(None),
    actor: Actor = Depends(get_actor),
    settings: Settings = Depends(get_settings),
    service: VerificationService = Depends(get_verification_service),
) -> EditCorrectionResponse:
    try:
        result = service.save_edit_correction(
            normalize_application_id(application_id),
            actor,
            proof=read_upload(proof, settings.max_proof_bytes),
            stay_type=stay_type,
        )
    except RegistrationError as e:
        raise to_http_error(e) from None
    return EditCorrectionResponse(
        application_id=result.application_id,
        proof_url=result.proof_url,
        registration_fee=result.registration_fee,
        link_failures=list(result.link_failures),
    )
