"""
Abuse gate - Evaluates the honeypot + timing signal from the form.

The signal itself is captured by the form; this module only decides.
"""

from .exceptions import AbuseSuspected
from .models import BotSignal

MIN_FORM_FILL_SECONDS = 3.0


def suspicion_reason(signal: BotSignal, min_fill_seconds: float = MIN_FORM_FILL_SECONDS) -> str | None:
    """Return why the signal looks automated, or None if it looks human."""
    if signal.honeypot:
        return "honeypot"
    if signal.elapsed_seconds < min_fill_seconds:
        return "too_fast"
    return None


def check_bot_signal(signal: BotSignal, min_fill_seconds: float = MIN_FORM_FILL_SECONDS) -> None:
    """
    Raise if the submission looks automated.

    Raises:
        AbuseSuspected: With the reason code as message
    """
    reason = suspicion_reason(signal, min_fill_seconds)
    if reason is not None:
        raise AbuseSuspected(reason)
