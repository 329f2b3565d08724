"""
Fee model - Maps stay type to registration fee.

Amounts are in the smallest currency unit used by the system.
"""

from collections.abc import Iterable

from .ports import StayType

FEES_BY_STAY_TYPE: dict[StayType, int] = {
    StayType.ON_CAMPUS: 15000,
    StayType.OUTSIDE: 7500,
}


def calculate_fee(stay_type: StayType | str) -> int:
    """Return the fee for a single member's stay type."""
    return FEES_BY_STAY_TYPE[StayType(stay_type)]


def calculate_total_fee(
    primary_stay_type: StayType | str, attendee_stay_types: Iterable[StayType | str] = ()
) -> int:
    """Return the summed fee for a primary registrant and their attendees."""
    return calculate_fee(primary_stay_type) + sum(
        calculate_fee(stay_type) for stay_type in attendee_stay_types
    )
