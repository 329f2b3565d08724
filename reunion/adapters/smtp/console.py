"""
Console notifier adapter - Implements Notifier protocol.

This module provides a console-based implementation of the domain's
notifier port, logging notifications for demo purposes.
"""

import logging
from collections.abc import Mapping
from typing import Any

from reunion.domain.ports import NotificationKind

logger = logging.getLogger(__name__)


class ConsoleNotifier:
    """
    Implements Notifier protocol via console logging.

    Uses structural subtyping - no explicit inheritance from Protocol.
    For demo/development purposes - prints notifications to stdout.
    """

    def notify(
        self, recipient: str, kind: NotificationKind, payload: Mapping[str, Any]
    ) -> None:
        """
        Log a notification intent (simulates email delivery).

        Args:
            recipient: Recipient email address
            kind: approved, rejected or payment_verified
            payload: Template data; only the application id is logged
        """
        logger.info(
            "[NOTIFICATION] Kind: %s Email: %s Application: %s",
            kind.value,
            recipient,
            payload.get("application_id"),
        )
