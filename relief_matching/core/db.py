"""SQLite database layer for missions, candidate profiles, and applications."""

import json
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any

from relief_matching.core.schemas import (
    ApplicationStatus,
    CandidateProfile,
    Mission,
    MissionApplication,
    MissionStatus,
)
from relief_matching.geo.distance import BoundingBox

_MISSIONS_TABLE = """
CREATE TABLE IF NOT EXISTS missions (
    id                    TEXT PRIMARY KEY,
    client_id             TEXT    NOT NULL DEFAULT '',
    job_title             TEXT    NOT NULL,
    title                 TEXT    NOT NULL DEFAULT '',
    hourly_rate           REAL    NOT NULL,
    is_night_shift        INTEGER NOT NULL DEFAULT 0,
    urgency_level         TEXT    NOT NULL,
    description           TEXT    NOT NULL DEFAULT '',
    start_date            TEXT    NOT NULL,
    end_date              TEXT,
    city                  TEXT    NOT NULL,
    postal_code           TEXT    NOT NULL,
    address               TEXT    NOT NULL DEFAULT '',
    latitude              REAL,
    longitude             REAL,
    radius_km             REAL    NOT NULL DEFAULT 30,
    required_skills       TEXT    NOT NULL DEFAULT '[]',
    required_diplomas     TEXT    NOT NULL DEFAULT '[]',
    status                TEXT    NOT NULL DEFAULT 'OPEN',
    assigned_profile_id   TEXT,
    created_at            TEXT    NOT NULL,
    last_search_at        TEXT,
    last_candidates_found INTEGER
);
"""

_PROFILES_TABLE = """
CREATE TABLE IF NOT EXISTS profiles (
    id                 TEXT PRIMARY KEY,
    user_id            TEXT    NOT NULL,
    first_name         TEXT    NOT NULL,
    last_name          TEXT    NOT NULL,
    avatar_url         TEXT,
    headline           TEXT,
    specialties        TEXT    NOT NULL DEFAULT '[]',
    diplomas           TEXT    NOT NULL DEFAULT '[]',
    hourly_rate        REAL,
    latitude           REAL,
    longitude          REAL,
    average_rating     REAL    NOT NULL DEFAULT 0,
    total_missions     INTEGER NOT NULL DEFAULT 0,
    is_available       INTEGER NOT NULL DEFAULT 1,
    availability_slots TEXT    NOT NULL DEFAULT '[]'
);
"""

_PROFILES_GEO_INDEX = """
CREATE INDEX IF NOT EXISTS idx_profiles_lat_lon ON profiles (latitude, longitude);
"""

_APPLICATIONS_TABLE = """
CREATE TABLE IF NOT EXISTS applications (
    id            TEXT PRIMARY KEY,
    mission_id    TEXT NOT NULL REFERENCES missions (id),
    profile_id    TEXT NOT NULL,
    cover_letter  TEXT,
    proposed_rate REAL,
    status        TEXT NOT NULL DEFAULT 'PENDING',
    created_at    TEXT NOT NULL,
    UNIQUE(mission_id, profile_id)
);
"""


def connect_db(path: str | Path) -> sqlite3.Connection:
    """Open a connection to an existing database file."""
    conn = sqlite3.connect(str(path), timeout=10.0)
    conn.row_factory = sqlite3.Row
    return conn


def init_db(path: str | Path) -> sqlite3.Connection:
    """Create the database and tables, returning a connection."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = connect_db(path)
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute(_MISSIONS_TABLE)
    conn.execute(_PROFILES_TABLE)
    conn.execute(_PROFILES_GEO_INDEX)
    conn.execute(_APPLICATIONS_TABLE)
    conn.commit()
    return conn


# ---------------------------------------------------------------------------
# Missions
# ---------------------------------------------------------------------------


def insert_mission(conn: sqlite3.Connection, mission: Mission) -> None:
    """Insert a new mission. Raises sqlite3.IntegrityError on duplicate id."""
    conn.execute(
        """
        INSERT INTO missions
            (id, client_id, job_title, title, hourly_rate, is_night_shift,
             urgency_level, description, start_date, end_date, city, postal_code,
             address, latitude, longitude, radius_km, required_skills,
             required_diplomas, status, assigned_profile_id, created_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            mission.id,
            mission.client_id,
            mission.job_title,
            mission.title,
            mission.hourly_rate,
            int(mission.is_night_shift),
            mission.urgency_level.value,
            mission.description,
            mission.start_date.isoformat(),
            _iso(mission.end_date),
            mission.city,
            mission.postal_code,
            mission.address,
            mission.latitude,
            mission.longitude,
            mission.radius_km,
            json.dumps(mission.required_skills),
            json.dumps(mission.required_diplomas),
            mission.status.value,
            mission.assigned_profile_id,
            mission.created_at.isoformat(),
        ),
    )
    conn.commit()


def get_mission(conn: sqlite3.Connection, mission_id: str) -> Mission | None:
    row = conn.execute("SELECT * FROM missions WHERE id = ?", (mission_id,)).fetchone()
    if row is None:
        return None
    return _row_to_mission(row)


def list_missions(
    conn: sqlite3.Connection,
    status: MissionStatus | None = None,
) -> list[Mission]:
    """Return missions ordered by start date, optionally filtered by status."""
    if status is None:
        rows = conn.execute("SELECT * FROM missions ORDER BY start_date, id").fetchall()
    else:
        rows = conn.execute(
            "SELECT * FROM missions WHERE status = ? ORDER BY start_date, id",
            (status.value,),
        ).fetchall()
    return [_row_to_mission(r) for r in rows]


def list_overdue_mission_ids(conn: sqlite3.Connection, now: datetime) -> list[str]:
    """IDs of OPEN missions whose start date is already in the past."""
    rows = conn.execute(
        "SELECT id FROM missions WHERE status = ? AND start_date < ? ORDER BY start_date, id",
        (MissionStatus.OPEN.value, now.isoformat()),
    ).fetchall()
    return [r["id"] for r in rows]


def update_mission_coordinates(
    conn: sqlite3.Connection,
    mission_id: str,
    latitude: float,
    longitude: float,
) -> bool:
    """Attach coordinates to a mission. Returns False if the mission does not exist."""
    cursor = conn.execute(
        "UPDATE missions SET latitude = ?, longitude = ? WHERE id = ?",
        (latitude, longitude, mission_id),
    )
    conn.commit()
    return cursor.rowcount == 1


def close_mission(
    conn: sqlite3.Connection,
    mission_id: str,
    target: MissionStatus,
) -> bool:
    """Atomically move an OPEN mission to ``target`` and reject its PENDING applications.

    Returns False without changes when the mission was no longer OPEN.
    """
    try:
        cursor = conn.execute(
            "UPDATE missions SET status = ? WHERE id = ? AND status = ?",
            (target.value, mission_id, MissionStatus.OPEN.value),
        )
        if cursor.rowcount != 1:
            conn.rollback()
            return False
        conn.execute(
            "UPDATE applications SET status = ? WHERE mission_id = ? AND status = ?",
            (
                ApplicationStatus.REJECTED.value,
                mission_id,
                ApplicationStatus.PENDING.value,
            ),
        )
        conn.commit()
    except sqlite3.Error:
        conn.rollback()
        raise
    return True


def assign_mission(
    conn: sqlite3.Connection,
    mission_id: str,
    profile_id: str,
    application_id: str | None = None,
) -> bool:
    """Atomically move an OPEN mission to ASSIGNED and settle its applications.

    The accepted application (if any) becomes ACCEPTED and every other
    PENDING application REJECTED, all in one transaction. Returns False
    without changes when the mission was no longer OPEN.
    """
    try:
        cursor = conn.execute(
            """
            UPDATE missions SET status = ?, assigned_profile_id = ?
            WHERE id = ? AND status = ?
            """,
            (MissionStatus.ASSIGNED.value, profile_id, mission_id, MissionStatus.OPEN.value),
        )
        if cursor.rowcount != 1:
            conn.rollback()
            return False
        if application_id is not None:
            conn.execute(
                "UPDATE applications SET status = ? WHERE id = ? AND mission_id = ?",
                (ApplicationStatus.ACCEPTED.value, application_id, mission_id),
            )
        conn.execute(
            """
            UPDATE applications SET status = ?
            WHERE mission_id = ? AND status = ? AND id IS NOT ?
            """,
            (
                ApplicationStatus.REJECTED.value,
                mission_id,
                ApplicationStatus.PENDING.value,
                application_id,
            ),
        )
        conn.commit()
    except sqlite3.Error:
        conn.rollback()
        raise
    return True


def record_mission_search(
    conn: sqlite3.Connection,
    mission_id: str,
    candidates_found: int,
    searched_at: datetime,
) -> bool:
    """Store search metadata on a mission without touching its status."""
    cursor = conn.execute(
        "UPDATE missions SET last_search_at = ?, last_candidates_found = ? WHERE id = ?",
        (searched_at.isoformat(), candidates_found, mission_id),
    )
    conn.commit()
    return cursor.rowcount == 1


# ---------------------------------------------------------------------------
# Profiles
# ---------------------------------------------------------------------------


def upsert_profile(conn: sqlite3.Connection, profile: CandidateProfile) -> bool:
    """Insert or replace a candidate profile.

    Returns True if a new row was inserted, False if an existing one was updated.
    """
    existed = conn.execute(
        "SELECT 1 FROM profiles WHERE id = ?", (profile.id,),
    ).fetchone() is not None
    conn.execute(
        """
        INSERT INTO profiles
            (id, user_id, first_name, last_name, avatar_url, headline,
             specialties, diplomas, hourly_rate, latitude, longitude,
             average_rating, total_missions, is_available, availability_slots)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        ON CONFLICT(id) DO UPDATE SET
            user_id = excluded.user_id,
            first_name = excluded.first_name,
            last_name = excluded.last_name,
            avatar_url = excluded.avatar_url,
            headline = excluded.headline,
            specialties = excluded.specialties,
            diplomas = excluded.diplomas,
            hourly_rate = excluded.hourly_rate,
            latitude = excluded.latitude,
            longitude = excluded.longitude,
            average_rating = excluded.average_rating,
            total_missions = excluded.total_missions,
            is_available = excluded.is_available,
            availability_slots = excluded.availability_slots
        """,
        (
            profile.id,
            profile.user_id,
            profile.first_name,
            profile.last_name,
            profile.avatar_url,
            profile.headline,
            json.dumps(profile.specialties),
            json.dumps([d.model_dump() for d in profile.diplomas]),
            profile.hourly_rate,
            profile.latitude,
            profile.longitude,
            profile.average_rating,
            profile.total_missions,
            int(profile.is_available),
            json.dumps([s.model_dump(mode="json") for s in profile.availability_slots]),
        ),
    )
    conn.commit()
    return not existed


def get_profile(conn: sqlite3.Connection, profile_id: str) -> CandidateProfile | None:
    row = conn.execute("SELECT * FROM profiles WHERE id = ?", (profile_id,)).fetchone()
    if row is None:
        return None
    return _row_to_profile(row)


def load_profiles_in_box(
    conn: sqlite3.Connection,
    box: BoundingBox | None = None,
) -> list[CandidateProfile]:
    """Load profiles, optionally pre-filtered to a lat/lon bounding box.

    With a box, profiles without coordinates are left out. The box is a
    coarse pre-filter only; exact distance is checked by the caller.
    """
    if box is None:
        rows = conn.execute("SELECT * FROM profiles ORDER BY id").fetchall()
        return [_row_to_profile(r) for r in rows]

    if box.crosses_antimeridian:
        lon_clause = "(longitude >= ? OR longitude <= ?)"
    else:
        lon_clause = "(longitude >= ? AND longitude <= ?)"
    rows = conn.execute(
        f"""
        SELECT * FROM profiles
        WHERE latitude IS NOT NULL AND longitude IS NOT NULL
          AND latitude >= ? AND latitude <= ?
          AND {lon_clause}
        ORDER BY id
        """,
        (box.min_lat, box.max_lat, box.min_lon, box.max_lon),
    ).fetchall()
    return [_row_to_profile(r) for r in rows]


# ---------------------------------------------------------------------------
# Applications
# ---------------------------------------------------------------------------


def insert_application(conn: sqlite3.Connection, application: MissionApplication) -> bool:
    """Insert an application, ignoring if (mission_id, profile_id) already exists.

    Returns True if a new row was inserted, False if it was a duplicate.
    """
    try:
        conn.execute(
            """
            INSERT INTO applications
                (id, mission_id, profile_id, cover_letter, proposed_rate, status, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                application.id,
                application.mission_id,
                application.profile_id,
                application.cover_letter,
                application.proposed_rate,
                application.status.value,
                application.created_at.isoformat(),
            ),
        )
        conn.commit()
        return True
    except sqlite3.IntegrityError:
        conn.rollback()
        return False


def get_application(
    conn: sqlite3.Connection,
    application_id: str,
) -> MissionApplication | None:
    row = conn.execute(
        "SELECT * FROM applications WHERE id = ?", (application_id,),
    ).fetchone()
    if row is None:
        return None
    return _row_to_application(row)


def list_applications(conn: sqlite3.Connection, mission_id: str) -> list[MissionApplication]:
    """Applications for a mission, newest first."""
    rows = conn.execute(
        "SELECT * FROM applications WHERE mission_id = ? ORDER BY created_at DESC, id",
        (mission_id,),
    ).fetchall()
    return [_row_to_application(r) for r in rows]


def set_application_status(
    conn: sqlite3.Connection,
    application_id: str,
    status: ApplicationStatus,
    expected: ApplicationStatus | None = None,
) -> bool:
    """Update an application's status, optionally only if it is still ``expected``."""
    if expected is None:
        cursor = conn.execute(
            "UPDATE applications SET status = ? WHERE id = ?",
            (status.value, application_id),
        )
    else:
        cursor = conn.execute(
            "UPDATE applications SET status = ? WHERE id = ? AND status = ?",
            (status.value, application_id, expected.value),
        )
    conn.commit()
    return cursor.rowcount == 1


# ---------------------------------------------------------------------------
# Row mapping
# ---------------------------------------------------------------------------


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _row_to_mission(row: sqlite3.Row) -> Mission:
    data: dict[str, Any] = dict(row)
    data["is_night_shift"] = bool(data["is_night_shift"])
    data["required_skills"] = json.loads(data["required_skills"])
    data["required_diplomas"] = json.loads(data["required_diplomas"])
    return Mission.model_validate(data)


def _row_to_profile(row: sqlite3.Row) -> CandidateProfile:
    data: dict[str, Any] = dict(row)
    data["is_available"] = bool(data["is_available"])
    data["specialties"] = json.loads(data["specialties"])
    data["diplomas"] = json.loads(data["diplomas"])
    data["availability_slots"] = json.loads(data["availability_slots"])
    return CandidateProfile.model_validate(data)


def _row_to_application(row: sqlite3.Row) -> MissionApplication:
    return MissionApplication.model_validate(dict(row))
