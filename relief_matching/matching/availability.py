"""Schedule-based availability check for a mission's start date."""

from collections.abc import Sequence
from datetime import datetime

from relief_matching.core.schemas import AvailabilitySlot, CandidateProfile, Mission

NIGHT_START_HOUR = 18
NIGHT_END_HOUR = 6


def day_of_week(moment: datetime) -> int:
    """Day index with 0=Sunday .. 6=Saturday."""
    return (moment.weekday() + 1) % 7


def slots_cover(
    slots: Sequence[AvailabilitySlot],
    start: datetime,
    is_night_shift: bool,
) -> bool:
    """Whether a set of availability slots covers a shift starting at ``start``.

    Rules:
      - No slots at all: the professional has not declared a schedule, assume available.
      - Weekly slots for that weekday exist: available, except a night shift
        needs a slot starting in the evening (>= 18h) or before 6h.
      - No weekly slot that day: available only with a one-off slot on that date.
    """
    if not slots:
        return True

    active = [s for s in slots if s.is_active]
    weekday = day_of_week(start)
    day_slots = [s for s in active if s.specific_date is None and s.day_of_week == weekday]

    if not day_slots:
        return any(s.specific_date == start.date() for s in active)

    if is_night_shift:
        return any(
            s.start_hour >= NIGHT_START_HOUR or s.start_hour < NIGHT_END_HOUR
            for s in day_slots
        )
    return True


def is_candidate_available(mission: Mission, candidate: CandidateProfile) -> bool:
    """Profile flag AND schedule both have to agree."""
    if not candidate.is_available:
        return False
    return slots_cover(candidate.availability_slots, mission.start_date, mission.is_night_shift)
