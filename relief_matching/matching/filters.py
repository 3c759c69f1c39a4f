"""Hard-constraint filter chain applied before scoring.

Filter order:
  1. KnownLocationFilter  - drop profiles without coordinates
  2. RadiusFilter         - haversine distance <= effective radius
  3. AvailabilityFilter   - optional, drop unavailable profiles (policy knob)
"""

import logging
from collections.abc import Callable

from pydantic import BaseModel, ConfigDict

from relief_matching.core.schemas import CandidateProfile

logger = logging.getLogger(__name__)


class LocatedCandidate(BaseModel):
    """A profile paired with its distance to the mission (None when unknown)."""

    model_config = ConfigDict(frozen=True)

    profile: CandidateProfile
    distance_km: float | None
    is_available: bool


# A filter is a callable that takes candidates and returns a subset.
Filter = Callable[[list[LocatedCandidate]], list[LocatedCandidate]]


class KnownLocationFilter:
    """Remove candidates whose distance could not be computed."""

    def __call__(self, candidates: list[LocatedCandidate]) -> list[LocatedCandidate]:
        result = [c for c in candidates if c.distance_km is not None]
        removed = len(candidates) - len(result)
        if removed:
            logger.debug("KnownLocationFilter: removed %d candidates without coordinates", removed)
        return result


class RadiusFilter:
    """Keep candidates within radius_km of the mission (boundary inclusive)."""

    def __init__(self, radius_km: float) -> None:
        self._radius_km = radius_km

    def __call__(self, candidates: list[LocatedCandidate]) -> list[LocatedCandidate]:
        result = [
            c for c in candidates
            if c.distance_km is not None and c.distance_km <= self._radius_km
        ]
        removed = len(candidates) - len(result)
        if removed:
            logger.debug(
                "RadiusFilter: removed %d candidates beyond %.1f km", removed, self._radius_km,
            )
        return result


class AvailabilityFilter:
    """Drop unavailable candidates when enabled; a no-op otherwise."""

    def __init__(self, enabled: bool) -> None:
        self._enabled = enabled

    def __call__(self, candidates: list[LocatedCandidate]) -> list[LocatedCandidate]:
        if not self._enabled:
            return candidates
        result = [c for c in candidates if c.is_available]
        removed = len(candidates) - len(result)
        if removed:
            logger.debug("AvailabilityFilter: removed %d unavailable candidates", removed)
        return result


def run_filter_chain(
    candidates: list[LocatedCandidate],
    filters: list[Filter],
) -> list[LocatedCandidate]:
    """Apply filters in order, returning the surviving candidates."""
    result = candidates
    for f in filters:
        result = f(result)
    return result
