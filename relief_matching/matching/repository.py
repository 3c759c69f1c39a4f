"""Read-side interfaces the finder depends on, plus their SQLite implementations."""

import sqlite3
from abc import ABC, abstractmethod

from relief_matching.core.db import get_mission, load_profiles_in_box
from relief_matching.core.schemas import CandidateProfile, Mission
from relief_matching.geo.distance import BoundingBox


class MissionStore(ABC):
    """Where missions are read from."""

    @abstractmethod
    def get_mission(self, mission_id: str) -> Mission | None:
        """Return the mission, or None if it does not exist."""


class CandidatePool(ABC):
    """Where candidate profiles are read from."""

    @abstractmethod
    def load_candidates(self, box: BoundingBox | None = None) -> list[CandidateProfile]:
        """Return candidate profiles, optionally pre-filtered to a bounding box.

        The box is an optimisation hint: implementations may ignore it and
        return more profiles, never fewer within the box.
        """


class SqliteMissionStore(MissionStore):
    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def get_mission(self, mission_id: str) -> Mission | None:
        return get_mission(self._conn, mission_id)


class SqliteCandidatePool(CandidatePool):
    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def load_candidates(self, box: BoundingBox | None = None) -> list[CandidateProfile]:
        return load_profiles_in_box(self._conn, box)
