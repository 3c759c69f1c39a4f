"""Mission creation and applications.

Creation validates the payload, fills defaults, and attaches coordinates via
GeoResolver when the client did not send any. Geocoding is best effort: a
mission without coordinates is still created and can be geocoded later with
geocode_mission().
"""

import logging
import sqlite3
import uuid
from datetime import timedelta
from typing import Any

from relief_matching.core.config import MissionDefaults
from relief_matching.core.db import (
    get_application,
    get_mission,
    get_profile,
    insert_application,
    insert_mission,
    list_applications,
    list_missions,
    set_application_status,
    update_mission_coordinates,
)
from relief_matching.core.errors import (
    ApplicationNotFoundError,
    DuplicateApplicationError,
    InvalidStateError,
    MissionNotFoundError,
    ProfileNotFoundError,
)
from relief_matching.core.schemas import (
    ApplicationStatus,
    GeocodingResult,
    Mission,
    MissionApplication,
    MissionCreate,
    MissionStatus,
)
from relief_matching.geo.geocoder import GeoResolver

logger = logging.getLogger(__name__)


class MissionService:
    """Creates missions and records applications against them."""

    def __init__(
        self,
        conn: sqlite3.Connection,
        geo: GeoResolver | None = None,
        defaults: MissionDefaults | None = None,
    ) -> None:
        self._conn = conn
        self._geo = geo
        self._defaults = defaults or MissionDefaults()

    def create_mission(
        self,
        payload: MissionCreate | dict[str, Any],
        client_id: str,
    ) -> Mission:
        """Validate, complete, geocode, and store a new OPEN mission.

        Raises:
            pydantic.ValidationError: Invalid payload (field-level messages).
        """
        data = (
            payload if isinstance(payload, MissionCreate)
            else MissionCreate.model_validate(payload)
        )

        latitude, longitude = data.latitude, data.longitude
        address = data.address or data.city
        if latitude is None or longitude is None:
            found = self._geocode(address, data.city, data.postal_code)
            if found is not None:
                latitude, longitude = found.latitude, found.longitude

        mission = Mission(
            id=str(uuid.uuid4()),
            client_id=client_id,
            job_title=data.job_title,
            title=data.title or f"{self._defaults.title_prefix} - {data.job_title}",
            hourly_rate=data.hourly_rate,
            is_night_shift=data.is_night_shift,
            urgency_level=data.urgency_level or self._defaults.default_urgency,
            description=data.description or "",
            start_date=data.start_date,
            end_date=data.end_date or data.start_date + timedelta(
                hours=self._defaults.default_duration_hours,
            ),
            city=data.city,
            postal_code=data.postal_code,
            address=address,
            latitude=latitude,
            longitude=longitude,
            radius_km=data.radius_km,
            required_skills=data.required_skills,
            required_diplomas=data.required_diplomas,
            status=MissionStatus.OPEN,
        )
        insert_mission(self._conn, mission)

        if mission.is_geocoded:
            logger.info("Mission created: %s by client %s", mission.id, client_id)
        else:
            logger.warning(
                "Mission created without coordinates: %s by client %s", mission.id, client_id,
            )
        return mission

    def geocode_mission(self, mission_id: str) -> Mission:
        """Try to attach coordinates to a stored mission that has none.

        Returns the (possibly still un-geocoded) mission.
        """
        mission = get_mission(self._conn, mission_id)
        if mission is None:
            raise MissionNotFoundError(mission_id)
        if mission.is_geocoded:
            return mission

        found = self._geocode(mission.address, mission.city, mission.postal_code)
        if found is None:
            return mission
        update_mission_coordinates(self._conn, mission_id, found.latitude, found.longitude)
        return mission.model_copy(
            update={"latitude": found.latitude, "longitude": found.longitude},
        )

    def apply_to_mission(
        self,
        mission_id: str,
        profile_id: str,
        cover_letter: str | None = None,
        proposed_rate: float | None = None,
    ) -> MissionApplication:
        """File an application from a professional to an OPEN mission.

        Raises:
            MissionNotFoundError: Unknown mission.
            InvalidStateError: Mission no longer accepts applications.
            ProfileNotFoundError: Unknown profile.
            DuplicateApplicationError: The profile already applied.
        """
        mission = get_mission(self._conn, mission_id)
        if mission is None:
            raise MissionNotFoundError(mission_id)
        if mission.status is not MissionStatus.OPEN:
            raise InvalidStateError(mission_id, mission.status.value, "accept applications")
        if get_profile(self._conn, profile_id) is None:
            raise ProfileNotFoundError(profile_id)

        application = MissionApplication(
            id=str(uuid.uuid4()),
            mission_id=mission_id,
            profile_id=profile_id,
            cover_letter=cover_letter,
            proposed_rate=proposed_rate,
        )
        if not insert_application(self._conn, application):
            raise DuplicateApplicationError(mission_id, profile_id)

        logger.info("Application created for mission %s by profile %s", mission_id, profile_id)
        return application

    def get_mission_with_applications(
        self,
        mission_id: str,
    ) -> tuple[Mission, list[MissionApplication]]:
        """Return the mission and its applications, newest first."""
        mission = get_mission(self._conn, mission_id)
        if mission is None:
            raise MissionNotFoundError(mission_id)
        return mission, list_applications(self._conn, mission_id)

    def list_missions(self, status: MissionStatus | None = None) -> list[Mission]:
        """Missions by start date; pass MissionStatus.OPEN for the active ones."""
        return list_missions(self._conn, status)

    def reject_application(self, application_id: str) -> MissionApplication:
        """Decline a PENDING application. The mission itself stays OPEN.

        Raises:
            ApplicationNotFoundError: Unknown application.
            ValueError: The application was already accepted or rejected.
        """
        application = get_application(self._conn, application_id)
        if application is None:
            raise ApplicationNotFoundError(application_id)
        if not set_application_status(
            self._conn,
            application_id,
            ApplicationStatus.REJECTED,
            expected=ApplicationStatus.PENDING,
        ):
            current = get_application(self._conn, application_id)
            status = current.status.value if current is not None else application.status.value
            msg = f"Application {application_id} is {status}: cannot reject"
            raise ValueError(msg)

        logger.info(
            "Application %s rejected for mission %s", application_id, application.mission_id,
        )
        return application.model_copy(update={"status": ApplicationStatus.REJECTED})

    def _geocode(self, address: str, city: str, postal_code: str) -> GeocodingResult | None:
        """Full address first, then city + postal code. None when both fail."""
        if self._geo is None:
            return None
        query = " ".join(p for p in (address, postal_code, city) if p and p.strip())
        if address.strip().lower() == city.strip().lower():
            query = f"{city} {postal_code}"
        found = self._geo.geocode_address(query)
        if found is None and query != f"{city} {postal_code}":
            found = self._geo.geocode_city_postal_code(city, postal_code)
        return found
