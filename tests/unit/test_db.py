"""Tests for the database layer: init, missions, profiles, applications."""

from datetime import date, datetime, timedelta

import pytest

from relief_matching.core.db import (
    assign_mission,
    close_mission,
    get_application,
    get_mission,
    get_profile,
    init_db,
    insert_application,
    insert_mission,
    list_applications,
    list_missions,
    list_overdue_mission_ids,
    load_profiles_in_box,
    record_mission_search,
    set_application_status,
    update_mission_coordinates,
    upsert_profile,
)
from relief_matching.core.schemas import (
    ApplicationStatus,
    AvailabilitySlot,
    CandidateProfile,
    Mission,
    MissionApplication,
    MissionStatus,
)
from relief_matching.geo.distance import BoundingBox, bounding_box

START = datetime(2026, 3, 2, 8, 0)


def _mission(mission_id: str = "m1", **kw: object) -> Mission:
    defaults: dict[str, object] = {
        "id": mission_id,
        "client_id": "c1",
        "job_title": "Infirmier",
        "title": "Renfort - Infirmier",
        "hourly_rate": 25.0,
        "start_date": START,
        "end_date": START + timedelta(hours=8),
        "city": "Paris",
        "postal_code": "75001",
        "latitude": 48.8566,
        "longitude": 2.3522,
        "required_skills": ["Soins"],
        "required_diplomas": ["DE Infirmier"],
    }
    defaults.update(kw)
    return Mission(**defaults)  # type: ignore[arg-type]


def _profile(profile_id: str = "p1", **kw: object) -> CandidateProfile:
    defaults: dict[str, object] = {
        "id": profile_id,
        "user_id": f"u-{profile_id}",
        "first_name": "Marie",
        "last_name": "Curie",
        "latitude": 48.86,
        "longitude": 2.35,
    }
    defaults.update(kw)
    return CandidateProfile(**defaults)  # type: ignore[arg-type]


def _application(app_id: str, profile_id: str, mission_id: str = "m1", **kw: object) -> MissionApplication:
    return MissionApplication(
        id=app_id, mission_id=mission_id, profile_id=profile_id, **kw,  # type: ignore[arg-type]
    )


@pytest.fixture()
def db(tmp_path):  # type: ignore[no-untyped-def]
    """Provide a fresh SQLite connection per test."""
    return init_db(tmp_path / "test.db")


class TestInitDb:
    def test_creates_tables(self, db) -> None:  # type: ignore[no-untyped-def]
        tables = {
            row[0]
            for row in db.execute(
                "SELECT name FROM sqlite_master WHERE type='table'"
            ).fetchall()
        }
        assert {"missions", "profiles", "applications"} <= tables

    def test_idempotent(self, tmp_path) -> None:  # type: ignore[no-untyped-def]
        """Calling init_db twice on the same path doesn't error."""
        p = tmp_path / "double.db"
        init_db(p).close()
        init_db(p).close()

    def test_creates_parent_directory(self, tmp_path) -> None:  # type: ignore[no-untyped-def]
        p = tmp_path / "nested" / "dir" / "m.db"
        init_db(p).close()
        assert p.exists()


# ---------------------------------------------------------------------------
# Missions
# ---------------------------------------------------------------------------


class TestMissions:
    def test_round_trip(self, db) -> None:  # type: ignore[no-untyped-def]
        mission = _mission(is_night_shift=True)
        insert_mission(db, mission)
        loaded = get_mission(db, "m1")

        assert loaded is not None
        assert loaded.is_night_shift is True
        assert loaded.required_skills == ["Soins"]
        assert loaded.start_date == START
        assert loaded.status is MissionStatus.OPEN

    def test_missing_mission(self, db) -> None:  # type: ignore[no-untyped-def]
        assert get_mission(db, "nope") is None

    def test_list_by_status(self, db) -> None:  # type: ignore[no-untyped-def]
        insert_mission(db, _mission("m1"))
        insert_mission(db, _mission("m2", status=MissionStatus.CANCELLED))
        assert [m.id for m in list_missions(db)] == ["m1", "m2"]
        assert [m.id for m in list_missions(db, MissionStatus.OPEN)] == ["m1"]

    def test_overdue_ids(self, db) -> None:  # type: ignore[no-untyped-def]
        insert_mission(db, _mission("past", start_date=START - timedelta(days=1),
                                    end_date=None))
        insert_mission(db, _mission("future", start_date=START + timedelta(days=1),
                                    end_date=None))
        insert_mission(db, _mission("done", start_date=START - timedelta(days=2),
                                    end_date=None, status=MissionStatus.ASSIGNED))
        assert list_overdue_mission_ids(db, START) == ["past"]

    def test_update_coordinates(self, db) -> None:  # type: ignore[no-untyped-def]
        insert_mission(db, _mission(latitude=None, longitude=None))
        assert update_mission_coordinates(db, "m1", 45.76, 4.83) is True
        loaded = get_mission(db, "m1")
        assert loaded is not None
        assert (loaded.latitude, loaded.longitude) == (45.76, 4.83)

    def test_update_coordinates_unknown(self, db) -> None:  # type: ignore[no-untyped-def]
        assert update_mission_coordinates(db, "nope", 45.76, 4.83) is False

    def test_close_compare_and_set(self, db) -> None:  # type: ignore[no-untyped-def]
        insert_mission(db, _mission())
        assert close_mission(db, "m1", MissionStatus.CANCELLED) is True
        # Second attempt sees CANCELLED, not OPEN
        assert close_mission(db, "m1", MissionStatus.EXPIRED) is False
        loaded = get_mission(db, "m1")
        assert loaded is not None
        assert loaded.status is MissionStatus.CANCELLED

    def test_record_search(self, db) -> None:  # type: ignore[no-untyped-def]
        insert_mission(db, _mission())
        searched_at = START - timedelta(hours=2)
        assert record_mission_search(db, "m1", 7, searched_at) is True
        loaded = get_mission(db, "m1")
        assert loaded is not None
        assert loaded.last_candidates_found == 7
        assert loaded.last_search_at == searched_at
        assert loaded.status is MissionStatus.OPEN


class TestAssignMission:
    def test_settles_applications(self, db) -> None:  # type: ignore[no-untyped-def]
        insert_mission(db, _mission())
        insert_application(db, _application("a1", "p1"))
        insert_application(db, _application("a2", "p2"))

        assert assign_mission(db, "m1", "p1", "a1") is True

        loaded = get_mission(db, "m1")
        assert loaded is not None
        assert loaded.status is MissionStatus.ASSIGNED
        assert loaded.assigned_profile_id == "p1"
        a1 = get_application(db, "a1")
        a2 = get_application(db, "a2")
        assert a1 is not None and a1.status is ApplicationStatus.ACCEPTED
        assert a2 is not None and a2.status is ApplicationStatus.REJECTED

    def test_without_application_rejects_all_pending(self, db) -> None:  # type: ignore[no-untyped-def]
        insert_mission(db, _mission())
        insert_application(db, _application("a1", "p1"))
        assert assign_mission(db, "m1", "p9") is True
        a1 = get_application(db, "a1")
        assert a1 is not None and a1.status is ApplicationStatus.REJECTED

    def test_not_open_changes_nothing(self, db) -> None:  # type: ignore[no-untyped-def]
        insert_mission(db, _mission(status=MissionStatus.CANCELLED))
        insert_application(db, _application("a1", "p1"))
        assert assign_mission(db, "m1", "p1", "a1") is False
        a1 = get_application(db, "a1")
        assert a1 is not None and a1.status is ApplicationStatus.PENDING
        loaded = get_mission(db, "m1")
        assert loaded is not None and loaded.assigned_profile_id is None


# ---------------------------------------------------------------------------
# Profiles
# ---------------------------------------------------------------------------


class TestProfiles:
    def test_insert_then_update(self, db) -> None:  # type: ignore[no-untyped-def]
        assert upsert_profile(db, _profile(average_rating=4.0)) is True
        assert upsert_profile(db, _profile(average_rating=4.5)) is False
        count = db.execute("SELECT COUNT(*) FROM profiles").fetchone()[0]
        assert count == 1
        loaded = get_profile(db, "p1")
        assert loaded is not None
        assert loaded.average_rating == 4.5

    def test_round_trip_nested_fields(self, db) -> None:  # type: ignore[no-untyped-def]
        profile = _profile(
            specialties=["Soins", "Urgences"],
            diplomas=[{"name": "DE Infirmier", "year": 2015}],
            is_available=False,
            availability_slots=[
                AvailabilitySlot(day_of_week=1, start_time="20:00", end_time="06:00"),
                AvailabilitySlot(day_of_week=3, specific_date=date(2026, 3, 4)),
            ],
        )
        upsert_profile(db, profile)
        assert get_profile(db, "p1") == profile

    def test_missing_profile(self, db) -> None:  # type: ignore[no-untyped-def]
        assert get_profile(db, "nope") is None

    def test_load_all_without_box(self, db) -> None:  # type: ignore[no-untyped-def]
        upsert_profile(db, _profile("p1"))
        upsert_profile(db, _profile("p2", latitude=None, longitude=None))
        assert [p.id for p in load_profiles_in_box(db)] == ["p1", "p2"]

    def test_box_excludes_far_and_unlocated(self, db) -> None:  # type: ignore[no-untyped-def]
        upsert_profile(db, _profile("paris"))
        upsert_profile(db, _profile("lyon", latitude=45.764, longitude=4.8357))
        upsert_profile(db, _profile("nowhere", latitude=None, longitude=None))

        box = bounding_box(48.8566, 2.3522, 30.0)
        assert [p.id for p in load_profiles_in_box(db, box)] == ["paris"]

    def test_box_across_antimeridian(self, db) -> None:  # type: ignore[no-untyped-def]
        upsert_profile(db, _profile("east", latitude=-17.0, longitude=179.9))
        upsert_profile(db, _profile("west", latitude=-17.0, longitude=-179.9))
        upsert_profile(db, _profile("greenwich", latitude=-17.0, longitude=0.0))

        box = BoundingBox(min_lat=-18.0, max_lat=-16.0, min_lon=179.5, max_lon=-179.5)
        assert [p.id for p in load_profiles_in_box(db, box)] == ["east", "west"]


# ---------------------------------------------------------------------------
# Applications
# ---------------------------------------------------------------------------


class TestApplications:
    def test_insert_and_get(self, db) -> None:  # type: ignore[no-untyped-def]
        insert_mission(db, _mission())
        assert insert_application(db, _application("a1", "p1", proposed_rate=30.0)) is True
        loaded = get_application(db, "a1")
        assert loaded is not None
        assert loaded.proposed_rate == 30.0
        assert loaded.status is ApplicationStatus.PENDING

    def test_duplicate_profile_ignored(self, db) -> None:  # type: ignore[no-untyped-def]
        insert_mission(db, _mission())
        insert_application(db, _application("a1", "p1"))
        assert insert_application(db, _application("a2", "p1")) is False
        assert len(list_applications(db, "m1")) == 1

    def test_list_newest_first(self, db) -> None:  # type: ignore[no-untyped-def]
        insert_mission(db, _mission())
        insert_application(db, _application("old", "p1", created_at=START))
        insert_application(db, _application("new", "p2", created_at=START + timedelta(hours=1)))
        assert [a.id for a in list_applications(db, "m1")] == ["new", "old"]

    def test_set_status(self, db) -> None:  # type: ignore[no-untyped-def]
        insert_mission(db, _mission())
        insert_application(db, _application("a1", "p1"))
        assert set_application_status(db, "a1", ApplicationStatus.REJECTED) is True
        assert set_application_status(db, "nope", ApplicationStatus.REJECTED) is False

    def test_set_status_expected_mismatch(self, db) -> None:  # type: ignore[no-untyped-def]
        insert_mission(db, _mission())
        insert_application(db, _application("a1", "p1", status=ApplicationStatus.ACCEPTED))
        assert set_application_status(
            db, "a1", ApplicationStatus.REJECTED, expected=ApplicationStatus.PENDING,
        ) is False
        a1 = get_application(db, "a1")
        assert a1 is not None and a1.status is ApplicationStatus.ACCEPTED


class TestCloseMission:
    def test_rejects_pending_in_same_call(self, db) -> None:  # type: ignore[no-untyped-def]
        insert_mission(db, _mission())
        insert_application(db, _application("a1", "p1"))
        insert_application(db, _application("a2", "p2", status=ApplicationStatus.ACCEPTED))

        assert close_mission(db, "m1", MissionStatus.EXPIRED) is True

        loaded = get_mission(db, "m1")
        assert loaded is not None and loaded.status is MissionStatus.EXPIRED
        a1 = get_application(db, "a1")
        a2 = get_application(db, "a2")
        assert a1 is not None and a1.status is ApplicationStatus.REJECTED
        assert a2 is not None and a2.status is ApplicationStatus.ACCEPTED

    def test_not_open_leaves_applications(self, db) -> None:  # type: ignore[no-untyped-def]
        insert_mission(db, _mission(status=MissionStatus.ASSIGNED))
        insert_application(db, _application("a1", "p1"))

        assert close_mission(db, "m1", MissionStatus.CANCELLED) is False

        loaded = get_mission(db, "m1")
        assert loaded is not None and loaded.status is MissionStatus.ASSIGNED
        a1 = get_application(db, "a1")
        assert a1 is not None and a1.status is ApplicationStatus.PENDING

    def test_unknown_mission(self, db) -> None:  # type: ignore[no-untyped-def]
        assert close_mission(db, "nope", MissionStatus.CANCELLED) is False
