"""Tests for CandidateFinder with in-memory stores."""

from datetime import datetime
from unittest.mock import MagicMock

import pytest

from relief_matching.core.config import MatchingConfig
from relief_matching.core.errors import MissionNotFoundError, MissionNotGeocodedError
from relief_matching.core.schemas import (
    CandidateProfile,
    FindCandidatesOptions,
    GeocodingResult,
    Mission,
)
from relief_matching.geo.distance import BoundingBox
from relief_matching.geo.geocoder import GeoResolver
from relief_matching.matching.finder import CandidateFinder
from relief_matching.matching.repository import CandidatePool, MissionStore

PARIS = (48.8566, 2.3522)
# Roughly 0.009 degrees of latitude per kilometre
KM_LAT = 1 / 111.195

# ---------------------------------------------------------------------------
# In-memory stores
# ---------------------------------------------------------------------------


class InMemoryMissions(MissionStore):
    def __init__(self, *missions: Mission) -> None:
        self._missions = {m.id: m for m in missions}

    def get_mission(self, mission_id: str) -> Mission | None:
        return self._missions.get(mission_id)


class InMemoryPool(CandidatePool):
    """Ignores the box hint, so the finder's own radius check is exercised."""

    def __init__(self, *profiles: CandidateProfile) -> None:
        self._profiles = list(profiles)
        self.boxes: list[BoundingBox | None] = []

    def load_candidates(self, box: BoundingBox | None = None) -> list[CandidateProfile]:
        self.boxes.append(box)
        return list(self._profiles)


def _mission(**kw: object) -> Mission:
    defaults: dict[str, object] = {
        "id": "m1",
        "job_title": "Infirmier",
        "hourly_rate": 25.0,
        "start_date": datetime(2026, 3, 2, 8, 0),
        "city": "Paris",
        "postal_code": "75001",
        "latitude": PARIS[0],
        "longitude": PARIS[1],
        "radius_km": 30.0,
    }
    defaults.update(kw)
    return Mission(**defaults)  # type: ignore[arg-type]


def _profile(profile_id: str, km_north: float | None, **kw: object) -> CandidateProfile:
    """Profile placed km_north kilometres due north of the mission."""
    defaults: dict[str, object] = {
        "id": profile_id,
        "user_id": f"u-{profile_id}",
        "first_name": profile_id.upper(),
        "last_name": "Test",
        "average_rating": 4.0,
        "total_missions": 10,
    }
    if km_north is not None:
        defaults["latitude"] = PARIS[0] + km_north * KM_LAT
        defaults["longitude"] = PARIS[1]
    defaults.update(kw)
    return CandidateProfile(**defaults)  # type: ignore[arg-type]


def _finder(
    mission: Mission,
    *profiles: CandidateProfile,
    matching: MatchingConfig | None = None,
    geo: GeoResolver | None = None,
) -> tuple[CandidateFinder, InMemoryPool]:
    pool = InMemoryPool(*profiles)
    return CandidateFinder(InMemoryMissions(mission), pool, matching, geo=geo), pool


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class TestFinderErrors:
    def test_unknown_mission(self) -> None:
        finder, _ = _finder(_mission())
        with pytest.raises(MissionNotFoundError):
            finder.find_candidates("nope")

    def test_not_geocoded(self) -> None:
        finder, pool = _finder(_mission(latitude=None, longitude=None), _profile("a", 1.0))
        with pytest.raises(MissionNotGeocodedError, match="no coordinates"):
            finder.find_candidates("m1")
        assert pool.boxes == []

    def test_geocoder_ignored_unless_enabled(self) -> None:
        geo = MagicMock(spec=GeoResolver)
        finder, _ = _finder(_mission(latitude=None, longitude=None), geo=geo)
        with pytest.raises(MissionNotGeocodedError):
            finder.find_candidates("m1")
        geo.geocode_address.assert_not_called()


# ---------------------------------------------------------------------------
# Radius, limit, ordering
# ---------------------------------------------------------------------------


class TestFindCandidates:
    def test_radius_excludes_far_candidate(self) -> None:
        finder, _ = _finder(_mission(), _profile("a", 0.0), _profile("b", 50.0))
        result = finder.find_candidates("m1")

        assert result.total_found == 1
        assert [c.id for c in result.candidates] == ["a"]
        assert result.candidates[0].distance == 0.0
        assert result.search_radius == 30.0

    def test_unlocated_candidate_excluded(self) -> None:
        finder, _ = _finder(_mission(), _profile("a", 2.0), _profile("ghost", None))
        result = finder.find_candidates("m1")
        assert [c.id for c in result.candidates] == ["a"]

    def test_radius_option_overrides_mission(self) -> None:
        finder, _ = _finder(_mission(), _profile("a", 0.0), _profile("b", 50.0))
        result = finder.find_candidates("m1", FindCandidatesOptions(radius_km=60))
        assert result.total_found == 2
        assert result.search_radius == 60.0

    def test_radius_option_clamped(self) -> None:
        finder, _ = _finder(_mission(), _profile("a", 0.0))
        result = finder.find_candidates("m1", FindCandidatesOptions(radius_km=5000))
        assert result.search_radius == 200.0

    def test_limit_truncates_but_total_counts_all(self) -> None:
        profiles = [_profile(f"p{i}", float(i)) for i in range(8)]
        finder, _ = _finder(_mission(), *profiles)
        result = finder.find_candidates("m1", FindCandidatesOptions(limit=3))
        assert len(result.candidates) == 3
        assert result.total_found == 8

    def test_default_limit_from_config(self) -> None:
        profiles = [_profile(f"p{i:02d}", i * 0.5) for i in range(15)]
        finder, _ = _finder(_mission(), *profiles, matching=MatchingConfig(default_limit=4))
        result = finder.find_candidates("m1")
        assert len(result.candidates) == 4
        assert result.total_found == 15

    def test_sorted_by_score_then_distance(self) -> None:
        finder, _ = _finder(
            _mission(),
            _profile("far", 20.0),
            _profile("near", 1.0),
            _profile("mid", 10.0),
        )
        result = finder.find_candidates("m1")
        assert [c.id for c in result.candidates] == ["near", "mid", "far"]
        scores = [c.match_score for c in result.candidates]
        assert scores == sorted(scores, reverse=True)

    def test_equal_candidates_ordered_by_id(self) -> None:
        finder, _ = _finder(_mission(), _profile("b", 3.0), _profile("a", 3.0))
        result = finder.find_candidates("m1")
        assert [c.id for c in result.candidates] == ["a", "b"]

    def test_better_skills_outrank_distance(self) -> None:
        mission = _mission(required_skills=["Urgences"])
        finder, _ = _finder(
            mission,
            _profile("near", 1.0),
            _profile("skilled", 5.0, specialties=["Urgences"]),
        )
        result = finder.find_candidates("m1")
        assert result.candidates[0].id == "skilled"

    def test_skills_option_replaces_mission_skills(self) -> None:
        mission = _mission(required_skills=["Urgences"])
        finder, _ = _finder(
            mission,
            _profile("er", 1.0, specialties=["Urgences"]),
            _profile("kids", 1.0, specialties=["Pédiatrie"]),
        )
        result = finder.find_candidates("m1", FindCandidatesOptions(skills=["Pédiatrie"]))
        assert result.candidates[0].id == "kids"
        # Skills do not filter: both remain
        assert result.total_found == 2

    def test_unavailable_kept_but_ranked_lower(self) -> None:
        finder, _ = _finder(
            _mission(),
            _profile("busy", 0.0, is_available=False),
            _profile("free", 5.0),
        )
        result = finder.find_candidates("m1")
        assert [c.id for c in result.candidates] == ["free", "busy"]
        assert result.candidates[1].is_available is False

    def test_unavailable_excluded_when_configured(self) -> None:
        finder, _ = _finder(
            _mission(),
            _profile("busy", 0.0, is_available=False),
            _profile("free", 5.0),
            matching=MatchingConfig(exclude_unavailable=True),
        )
        result = finder.find_candidates("m1")
        assert [c.id for c in result.candidates] == ["free"]

    def test_empty_pool(self) -> None:
        finder, _ = _finder(_mission())
        result = finder.find_candidates("m1")
        assert result.candidates == []
        assert result.total_found == 0

    def test_pool_receives_bounding_box(self) -> None:
        finder, pool = _finder(_mission(), _profile("a", 0.0))
        finder.find_candidates("m1")
        box = pool.boxes[0]
        assert box is not None
        assert box.contains(*PARIS)

    def test_camel_case_payload(self) -> None:
        finder, _ = _finder(_mission(), _profile("a", 12.34))
        data = finder.find_candidates("m1").to_dict()
        assert data["missionId"] == "m1"
        assert data["candidates"][0]["distance"] == pytest.approx(12.3)
        assert 0 <= data["candidates"][0]["matchScore"] <= 100


class TestOnTheFlyGeocoding:
    def test_geocodes_when_enabled(self) -> None:
        geo = MagicMock(spec=GeoResolver)
        geo.geocode_address.return_value = GeocodingResult(
            latitude=PARIS[0], longitude=PARIS[1],
        )
        finder, _ = _finder(
            _mission(latitude=None, longitude=None, address="12 Rue de Rivoli"),
            _profile("a", 1.0),
            matching=MatchingConfig(geocode_missing=True),
            geo=geo,
        )
        result = finder.find_candidates("m1")
        assert result.total_found == 1
        geo.geocode_address.assert_called_once_with("12 Rue de Rivoli 75001 Paris")

    def test_falls_back_to_city(self) -> None:
        geo = MagicMock(spec=GeoResolver)
        geo.geocode_address.return_value = None
        geo.geocode_city_postal_code.return_value = None
        finder, _ = _finder(
            _mission(latitude=None, longitude=None),
            matching=MatchingConfig(geocode_missing=True),
            geo=geo,
        )
        with pytest.raises(MissionNotGeocodedError):
            finder.find_candidates("m1")
        geo.geocode_city_postal_code.assert_called_once_with("Paris", "75001")
