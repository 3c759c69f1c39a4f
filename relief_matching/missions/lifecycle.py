"""Mission status state machine.

  OPEN -> ASSIGNED | CANCELLED | EXPIRED

All three targets are terminal. Every transition is a compare-and-set on the
stored status, so two concurrent assigns on one mission cannot both succeed:
the loser gets InvalidStateError.
"""

import logging
import sqlite3
from datetime import datetime
from typing import NoReturn

from relief_matching.core.db import (
    assign_mission,
    close_mission,
    get_application,
    get_mission,
    list_overdue_mission_ids,
    record_mission_search,
)
from relief_matching.core.errors import (
    ApplicationNotFoundError,
    InvalidStateError,
    MissionNotFoundError,
)
from relief_matching.core.schemas import (
    MatchingResult,
    Mission,
    MissionAssigned,
    MissionStatus,
    utc_now,
)

logger = logging.getLogger(__name__)

_ALLOWED: dict[MissionStatus, frozenset[MissionStatus]] = {
    MissionStatus.OPEN: frozenset(
        {MissionStatus.ASSIGNED, MissionStatus.CANCELLED, MissionStatus.EXPIRED},
    ),
    MissionStatus.ASSIGNED: frozenset(),
    MissionStatus.CANCELLED: frozenset(),
    MissionStatus.EXPIRED: frozenset(),
}


def can_transition(current: MissionStatus, target: MissionStatus) -> bool:
    """Return True if the state machine allows current -> target."""
    return target in _ALLOWED[current]


class MissionLifecycle:
    """Applies status transitions to stored missions.

    Usage::

        lifecycle = MissionLifecycle(conn)
        event = lifecycle.assign(mission_id, profile_id, application_id)
        contracts.issue(event)  # downstream collaborator
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def assign(
        self,
        mission_id: str,
        profile_id: str,
        application_id: str | None = None,
    ) -> MissionAssigned:
        """Commit an OPEN mission to a professional.

        Raises:
            MissionNotFoundError: Unknown mission.
            ApplicationNotFoundError: application_id does not belong to this mission.
            InvalidStateError: The mission is no longer OPEN (including losing a race).
            ValueError: The application was filed by another profile.
        """
        mission = self._require(mission_id)
        self._check_allowed(mission, MissionStatus.ASSIGNED)

        if application_id is not None:
            application = get_application(self._conn, application_id)
            if application is None or application.mission_id != mission_id:
                raise ApplicationNotFoundError(application_id)
            if application.profile_id != profile_id:
                msg = (
                    f"Application {application_id} belongs to profile "
                    f"{application.profile_id}, not {profile_id}"
                )
                raise ValueError(msg)

        if not assign_mission(self._conn, mission_id, profile_id, application_id):
            self._raise_lost_race(mission_id, MissionStatus.ASSIGNED)

        logger.info("Mission %s assigned to profile %s", mission_id, profile_id)
        return MissionAssigned(
            mission_id=mission_id,
            profile_id=profile_id,
            application_id=application_id,
        )

    def cancel(self, mission_id: str) -> Mission:
        """Withdraw an OPEN mission. Pending applications are rejected."""
        return self._close(mission_id, MissionStatus.CANCELLED)

    def expire(self, mission_id: str, now: datetime | None = None) -> Mission:
        """Expire an OPEN mission whose start date has passed without assignment."""
        now = now or utc_now()
        mission = self._require(mission_id)
        self._check_allowed(mission, MissionStatus.EXPIRED)
        if mission.start_date >= now:
            raise InvalidStateError(
                mission_id, mission.status.value, "expire before its start date",
            )
        return self._close(mission_id, MissionStatus.EXPIRED)

    def expire_overdue(self, now: datetime | None = None) -> list[str]:
        """Sweep: expire every OPEN mission whose start date is past. Returns their IDs."""
        now = now or utc_now()
        expired: list[str] = []
        for mission_id in list_overdue_mission_ids(self._conn, now):
            if close_mission(self._conn, mission_id, MissionStatus.EXPIRED):
                expired.append(mission_id)
            else:
                logger.debug("Mission %s changed status during sweep - skipped", mission_id)
        if expired:
            logger.info("Expired %d overdue missions", len(expired))
        return expired

    def record_candidates_found(
        self,
        mission_id: str,
        result: MatchingResult,
        searched_at: datetime | None = None,
    ) -> None:
        """Store search metadata on the mission. Status is left untouched."""
        if result.mission_id != mission_id:
            msg = f"MatchingResult is for mission {result.mission_id}, not {mission_id}"
            raise ValueError(msg)
        if not record_mission_search(
            self._conn, mission_id, result.total_found, searched_at or utc_now(),
        ):
            raise MissionNotFoundError(mission_id)
        logger.debug("Recorded %d candidates found for %s", result.total_found, mission_id)

    def _require(self, mission_id: str) -> Mission:
        mission = get_mission(self._conn, mission_id)
        if mission is None:
            raise MissionNotFoundError(mission_id)
        return mission

    def _check_allowed(self, mission: Mission, target: MissionStatus) -> None:
        if not can_transition(mission.status, target):
            raise InvalidStateError(mission.id, mission.status.value, f"move to {target.value}")

    def _close(self, mission_id: str, target: MissionStatus) -> Mission:
        mission = self._require(mission_id)
        self._check_allowed(mission, target)
        if not close_mission(self._conn, mission_id, target):
            self._raise_lost_race(mission_id, target)
        logger.info("Mission %s: %s -> %s", mission_id, mission.status.value, target.value)
        return self._require(mission_id)

    def _raise_lost_race(self, mission_id: str, target: MissionStatus) -> NoReturn:
        current = self._require(mission_id)
        raise InvalidStateError(mission_id, current.status.value, f"move to {target.value}")
