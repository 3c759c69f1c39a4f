"""CandidateFinder: wires mission lookup, pool query, filter chain, and scorer.

Data flow:
  1. Load mission (MissionNotFoundError if absent)
  2. Resolve effective radius, skills, and limit
  3. Resolve the search origin (MissionNotGeocodedError if unknown)
  4. Pool query with a bounding-box pre-filter
  5. Haversine distance per candidate -> filter chain
  6. Score survivors
  7. Sort (score desc, distance asc, id asc) and truncate

Searches are read-only: neither missions nor profiles are written.
"""

import logging

from relief_matching.core.config import MatchingConfig, ScoringConfig
from relief_matching.core.errors import MissionNotFoundError, MissionNotGeocodedError
from relief_matching.core.schemas import (
    CandidateProfile,
    CandidateResult,
    FindCandidatesOptions,
    MatchingResult,
    Mission,
    clamp_limit,
    clamp_radius,
)
from relief_matching.geo.distance import bounding_box, haversine_km
from relief_matching.geo.geocoder import GeoResolver
from relief_matching.matching.availability import is_candidate_available
from relief_matching.matching.filters import (
    AvailabilityFilter,
    Filter,
    KnownLocationFilter,
    LocatedCandidate,
    RadiusFilter,
    run_filter_chain,
)
from relief_matching.matching.repository import CandidatePool, MissionStore
from relief_matching.matching.scorer import score_candidate

logger = logging.getLogger(__name__)


class CandidateFinder:
    """Finds and ranks nearby professionals for a mission.

    Usage::

        finder = CandidateFinder(missions, pool, settings.matching, settings.scoring)
        result = finder.find_candidates(mission_id, FindCandidatesOptions(limit=5))
    """

    def __init__(
        self,
        missions: MissionStore,
        pool: CandidatePool,
        matching: MatchingConfig | None = None,
        scoring: ScoringConfig | None = None,
        geo: GeoResolver | None = None,
    ) -> None:
        self._missions = missions
        self._pool = pool
        self._matching = matching or MatchingConfig()
        self._scoring = scoring or ScoringConfig()
        self._geo = geo

    def find_candidates(
        self,
        mission_id: str,
        options: FindCandidatesOptions | None = None,
    ) -> MatchingResult:
        """Return a ranked, radius-bounded shortlist for a mission."""
        options = options or FindCandidatesOptions()

        mission = self._missions.get_mission(mission_id)
        if mission is None:
            raise MissionNotFoundError(mission_id)

        radius_km = self._effective_radius(mission, options)
        skills = options.skills if options.skills is not None else list(mission.required_skills)
        limit = clamp_limit(
            options.limit if options.limit is not None else self._matching.default_limit,
            self._matching.max_limit,
        )
        origin_lat, origin_lon = self._resolve_origin(mission)

        logger.info(
            "Finding candidates for mission %s (%s) within %.1f km",
            mission.id, mission.job_title, radius_km,
        )

        profiles = self._pool.load_candidates(bounding_box(origin_lat, origin_lon, radius_km))
        logger.info("Candidate pool: %d profiles", len(profiles))

        located = [
            self._locate(mission, profile, origin_lat, origin_lon) for profile in profiles
        ]
        survivors = run_filter_chain(located, self._build_filters(radius_km))
        logger.info("After filtering: %d", len(survivors))

        ranked: list[tuple[int, float, str, CandidateResult]] = []
        for c in survivors:
            # Distance is known for every survivor: KnownLocationFilter runs first.
            distance_km = c.distance_km if c.distance_km is not None else 0.0
            match_score = score_candidate(
                mission,
                c.profile,
                distance_km,
                self._scoring,
                radius_km=radius_km,
                required_skills=skills,
                is_available=c.is_available,
            )
            result = CandidateResult.from_profile(
                c.profile, distance_km, match_score, c.is_available,
            )
            ranked.append((match_score, distance_km, c.profile.id, result))

        ranked.sort(key=lambda r: (-r[0], r[1], r[2]))
        shortlist = [r[3] for r in ranked[:limit]]

        logger.info(
            "Found %d candidates for mission %s (%d shown)",
            len(ranked), mission.id, len(shortlist),
        )

        return MatchingResult(
            mission_id=mission.id,
            candidates=shortlist,
            total_found=len(ranked),
            search_radius=radius_km,
        )

    def _effective_radius(self, mission: Mission, options: FindCandidatesOptions) -> float:
        if options.radius_km is not None:
            return clamp_radius(options.radius_km)
        return clamp_radius(mission.radius_km or self._matching.default_radius_km)

    def _resolve_origin(self, mission: Mission) -> tuple[float, float]:
        """Mission coordinates, geocoding on the fly when allowed.

        Coordinates found here are used for this search only, not stored.
        """
        if mission.latitude is not None and mission.longitude is not None:
            return mission.latitude, mission.longitude

        if self._geo is not None and self._matching.geocode_missing:
            logger.info("Mission %s has no coordinates - geocoding '%s'", mission.id,
                        mission.location_query)
            found = self._geo.geocode_address(mission.location_query)
            if found is None:
                found = self._geo.geocode_city_postal_code(mission.city, mission.postal_code)
            if found is not None:
                return found.latitude, found.longitude

        logger.warning("Mission %s is not geocoded - cannot search", mission.id)
        raise MissionNotGeocodedError(mission.id)

    @staticmethod
    def _locate(
        mission: Mission,
        profile: CandidateProfile,
        origin_lat: float,
        origin_lon: float,
    ) -> LocatedCandidate:
        distance_km: float | None = None
        if profile.latitude is not None and profile.longitude is not None:
            distance_km = haversine_km(origin_lat, origin_lon, profile.latitude, profile.longitude)
        return LocatedCandidate(
            profile=profile,
            distance_km=distance_km,
            is_available=is_candidate_available(mission, profile),
        )

    def _build_filters(self, radius_km: float) -> list[Filter]:
        """Build the hard-constraint chain for one search."""
        return [
            KnownLocationFilter(),
            RadiusFilter(radius_km),
            AvailabilityFilter(self._matching.exclude_unavailable),
        ]
