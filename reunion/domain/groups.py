"""
Group assembler - Builds unsubmitted groups and discovers persisted ones.

A group is never stored. Its membership is recomputed from the
``parent_application_id`` back-reference each time it is needed, so the
store never has to guarantee multi-row transactional writes.
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from .exceptions import NotFoundError, ValidationError
from .fees import calculate_fee
from .models import AttendeeFields, DraftMember, Group, GroupDraft, RegistrantFields
from .ports import RegistrationRepository

logger = logging.getLogger(__name__)

MAX_ATTENDEES = 10


def build_group(
    primary: RegistrantFields,
    attendees: Sequence[AttendeeFields] = (),
    max_attendees: int = MAX_ATTENDEES,
) -> GroupDraft:
    """
    Assemble a not-yet-submitted group with per-member fees.

    Raises:
        ValidationError: If more than ``max_attendees`` attendees are given
    """
    if len(attendees) > max_attendees:
        raise ValidationError(
            f"At most {max_attendees} additional attendees allowed, got {len(attendees)}"
        )
    return GroupDraft(
        primary=DraftMember(primary, calculate_fee(primary.stay_type)),
        attendees=tuple(
            DraftMember(attendee, calculate_fee(attendee.stay_type)) for attendee in attendees
        ),
    )


@dataclass
class GroupAssembler:
    """Discovers the persisted group a registration belongs to."""

    repository: RegistrationRepository

    def discover_group(self, application_id: str) -> Group:
        """
        Return the full group for any of its members.

        The same member set is returned whether the entry point is the
        primary or one of its dependents.

        Raises:
            NotFoundError: If the registration is unknown, or a dependent
                references a primary that no longer exists
        """
        entry = self.repository.select_by_application_id(application_id)
        if entry is None:
            raise NotFoundError(f"Registration {application_id} not found")

        if entry.is_primary:
            primary = entry
        else:
            primary = self.repository.select_by_application_id(entry.parent_application_id)
            if primary is None:
                logger.error(
                    "Data integrity: %s references missing primary %s",
                    application_id,
                    entry.parent_application_id,
                )
                raise NotFoundError(
                    f"Primary {entry.parent_application_id} of {application_id} not found"
                )

        dependents = self.repository.select_by_parent(primary.application_id)
        return Group(
            primary=primary,
            dependents=tuple(sorted(dependents, key=lambda row: row.application_id)),
        )
