"""Typed failures surfaced to callers of the matching engine.

Geocoding problems are never raised; they degrade to None inside GeoResolver.
"""


class MatchingError(Exception):
    """Base class for caller-facing, non-retryable failures."""

    kind = "error"


class MissionNotFoundError(MatchingError):
    kind = "not_found"

    def __init__(self, mission_id: str) -> None:
        self.mission_id = mission_id
        super().__init__(f"Mission {mission_id} not found")


class ApplicationNotFoundError(MatchingError):
    kind = "not_found"

    def __init__(self, application_id: str) -> None:
        self.application_id = application_id
        super().__init__(f"Application {application_id} not found")


class ProfileNotFoundError(MatchingError):
    kind = "not_found"

    def __init__(self, profile_id: str) -> None:
        self.profile_id = profile_id
        super().__init__(f"Profile {profile_id} not found")


class MissionNotGeocodedError(MatchingError):
    kind = "precondition_failed"

    def __init__(self, mission_id: str) -> None:
        self.mission_id = mission_id
        super().__init__(
            f"Mission {mission_id} has no coordinates: complete the mission address",
        )


class InvalidStateError(MatchingError):
    kind = "invalid_state"

    def __init__(self, mission_id: str, current: str, action: str) -> None:
        self.mission_id = mission_id
        self.current = current
        self.action = action
        super().__init__(f"Mission {mission_id} is {current}: cannot {action}")


class DuplicateApplicationError(MatchingError):
    kind = "conflict"

    def __init__(self, mission_id: str, profile_id: str) -> None:
        self.mission_id = mission_id
        self.profile_id = profile_id
        super().__init__(f"Profile {profile_id} already applied to mission {mission_id}")
