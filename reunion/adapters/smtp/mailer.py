"""
SMTP notifier adapter - Implements Notifier protocol over smtplib.

Sends the approval / rejection email to the registrant and the
"payment verified" notice to the final approvers. Delivery
problems are logged and swallowed: notifications are fire-and-forget and
must never undo the decision that triggered them.
"""

import logging
import smtplib
from collections.abc import Mapping
from email.message import EmailMessage
from typing import Any

from reunion.domain.ports import NotificationKind

logger = logging.getLogger(__name__)

_SUBJECTS = {
    NotificationKind.APPROVED: "Your registration {application_id} has been approved",
    NotificationKind.REJECTED: "Update on your registration {application_id}",
    NotificationKind.PAYMENT_VERIFIED: "Payment verified - {application_id}",
}


def _decision_lines(kind: NotificationKind, payload: Mapping[str, Any]) -> list[str]:
    application_id = payload.get("application_id", "")
    lines = [f"Dear {payload.get('name') or 'Alumnus'},", ""]
    if kind == NotificationKind.APPROVED:
        lines.append(f"Your registration {application_id} has been approved.")
        if payload.get("receipt_url"):
            lines += ["", f"Your payment receipt: {payload['receipt_url']}"]
    else:
        lines.append(f"Your registration {application_id} could not be approved.")
        if payload.get("rejection_reason"):
            lines += ["", f"Reason: {payload['rejection_reason']}"]
    return lines


def _payment_verified_lines(payload: Mapping[str, Any]) -> list[str]:
    return [
        "A payment has been verified by accounts and is ready for final approval.",
        "",
        f"Application ID: {payload.get('application_id', '')}",
        f"Applicant name: {payload.get('name', '')}",
        f"Email: {payload.get('email', '')}",
        f"Registration fee: Rs. {payload.get('registration_fee', '')}",
        f"Verified at: {payload.get('verified_at') or 'unknown'}",
        "",
        "This registration is now awaiting final approval by an admin.",
    ]


def build_message(
    sender: str, recipient: str, kind: NotificationKind, payload: Mapping[str, Any]
) -> EmailMessage:
    """Render the plain-text notification email."""
    if kind == NotificationKind.PAYMENT_VERIFIED:
        lines = _payment_verified_lines(payload)
    else:
        lines = _decision_lines(kind, payload)
    lines += ["", "Regards,", "Alumni Meet Registration Team"]

    message = EmailMessage()
    message["From"] = sender
    message["To"] = recipient
    message["Subject"] = _SUBJECTS[kind].format(application_id=payload.get("application_id", ""))
    message.set_content("\n".join(lines))
    return message


class SmtpNotifier:
    """
    Implements Notifier protocol via an SMTP relay.

    Uses structural subtyping - no explicit inheritance from Protocol.
    """

    def __init__(
        self,
        host: str,
        port: int,
        sender: str,
        username: str | None = None,
        password: str | None = None,
        use_tls: bool = True,
        timeout: float = 10.0,
    ) -> None:
        self._host = host
        self._port = port
        self._sender = sender
        self._username = username
        self._password = password
        self._use_tls = use_tls
        self._timeout = timeout

    def notify(
        self, recipient: str, kind: NotificationKind, payload: Mapping[str, Any]
    ) -> None:
        message = build_message(self._sender, recipient, kind, payload)
        try:
            with smtplib.SMTP(self._host, self._port, timeout=self._timeout) as server:
                if self._use_tls:
                    server.starttls()
                if self._username:
                    server.login(self._username, self._password or "")
                server.send_message(message)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(
                "Failed to send %s email to %s for %s: %s",
                kind.value,
                recipient,
                payload.get("application_id"),
                e,
            )
            return
        logger.info("Sent %s email to %s", kind.value, recipient)
