"""
Domain exceptions - Semantic error types for group registration.

This module defines domain-specific exceptions that communicate
business rule violations without leaking infrastructure details.

A partially propagated proof link is deliberately NOT an exception:
it is reported through ``SubmissionResult.link_failures``.
"""


class RegistrationError(Exception):
    """Base class for registration domain errors."""

    pass


class ValidationError(RegistrationError):
    """Bad input shape, missing proof, file constraints or attendee bound."""

    pass


class AbuseSuspected(ValidationError):
    """Submission looks automated (honeypot filled or form filled too fast)."""

    pass


class StorageError(RegistrationError):
    """Blob upload/copy/delete or row persistence failed at the transport level."""

    pass


class NotFoundError(RegistrationError):
    """Registration, or the primary a dependent points at, does not exist."""

    pass


class TransitionDenied(RegistrationError):
    """State machine guard rejected the requested transition."""

    pass


class ActorNotAuthorized(RegistrationError):
    """Actor's role does not permit the requested transition."""

    pass
