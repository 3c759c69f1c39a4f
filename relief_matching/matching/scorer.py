"""Rule-based match scoring for one (mission, candidate) pair.

Score range: 0-100 integer. Weighted sum of six components, each in [0, 1]:

  distance      1 at the mission, 0 at or beyond the radius, linear in between
  skills        share of required skills found in the candidate's specialties
  diplomas      share of required diplomas found in the candidate's diplomas
  availability  1 when available, ScoringConfig.unavailable_factor otherwise
  rating        average rating over the 5-point scale
  experience    completed missions, saturating at experience_saturation

Unavailable candidates are additionally capped at unavailable_score_cap.
Weights come from ScoringConfig and add up to 100.
"""

import logging
from collections.abc import Iterable, Sequence

from relief_matching.core.config import ScoringConfig
from relief_matching.core.schemas import CandidateProfile, Mission
from relief_matching.matching.availability import is_candidate_available

logger = logging.getLogger(__name__)

MAX_RATING = 5.0


def score_candidate(
    mission: Mission,
    candidate: CandidateProfile,
    distance_km: float,
    config: ScoringConfig,
    *,
    radius_km: float | None = None,
    required_skills: Sequence[str] | None = None,
    is_available: bool | None = None,
) -> int:
    """Score a single candidate against a mission.

    Args:
        mission: The mission being staffed.
        candidate: The profile to score.
        distance_km: Haversine distance between mission and candidate.
        config: Scoring weights from settings.
        radius_km: Radius the distance is measured against. Defaults to mission.radius_km.
        required_skills: Skill list overriding mission.required_skills.
        is_available: Precomputed availability. Computed from the profile when None.

    Returns:
        Integer score 0-100.
    """
    available = (
        is_available if is_available is not None
        else is_candidate_available(mission, candidate)
    )
    components = score_breakdown(
        mission,
        candidate,
        distance_km,
        config,
        radius_km=radius_km,
        required_skills=required_skills,
        is_available=available,
    )
    weights = config.weights()
    score = sum(weights[name] * value for name, value in components.items())

    if not available:
        score = min(score, float(config.unavailable_score_cap))

    return max(0, min(100, round(score)))


def score_breakdown(
    mission: Mission,
    candidate: CandidateProfile,
    distance_km: float,
    config: ScoringConfig,
    *,
    radius_km: float | None = None,
    required_skills: Sequence[str] | None = None,
    is_available: bool | None = None,
) -> dict[str, float]:
    """Return each score component in [0, 1], keyed like ScoringConfig.weights()."""
    radius = radius_km if radius_km is not None else mission.radius_km
    skills = required_skills if required_skills is not None else mission.required_skills
    available = (
        is_available if is_available is not None
        else is_candidate_available(mission, candidate)
    )

    return {
        "distance": distance_component(distance_km, radius),
        "skills": overlap_ratio(skills, candidate.specialties),
        "diplomas": overlap_ratio(mission.required_diplomas, (d.name for d in candidate.diplomas)),
        "availability": 1.0 if available else config.unavailable_factor,
        "rating": _clamp01(candidate.average_rating / MAX_RATING),
        "experience": experience_component(candidate.total_missions, config.experience_saturation),
    }


def distance_component(distance_km: float, radius_km: float) -> float:
    """Linear decay from 1 at distance 0 to 0 at the radius."""
    if radius_km <= 0:
        return 0.0
    return _clamp01(1.0 - distance_km / radius_km)


def overlap_ratio(required: Iterable[str], available: Iterable[str]) -> float:
    """Share of required tags matched by at least one available tag.

    A tag matches when either string contains the other, case-insensitively
    ("Soins palliatifs" matches "soins"). No requirements means full credit.
    """
    required_lower = [r.lower().strip() for r in required if r and r.strip()]
    if not required_lower:
        return 1.0
    available_lower = [a.lower().strip() for a in available if a and a.strip()]
    matches = sum(
        1 for r in required_lower
        if any(r in a or a in r for a in available_lower)
    )
    return matches / len(required_lower)


def experience_component(total_missions: int, saturation: int) -> float:
    """Grows linearly with completed missions, flat past ``saturation``."""
    return _clamp01(total_missions / saturation)


def _clamp01(value: float) -> float:
    return max(0.0, min(1.0, value))
