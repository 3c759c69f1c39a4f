"""Core data models for the relief matching engine.

Missions and profiles are frozen: status changes go through MissionLifecycle
and come back as new instances loaded from the store.
"""

from datetime import date, datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

MIN_RADIUS_KM = 1.0
MAX_RADIUS_KM = 200.0
DEFAULT_RADIUS_KM = 30.0
MIN_LIMIT = 1
MAX_LIMIT = 50
DEFAULT_LIMIT = 10


class UrgencyLevel(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class MissionStatus(str, Enum):
    OPEN = "OPEN"
    ASSIGNED = "ASSIGNED"
    EXPIRED = "EXPIRED"
    CANCELLED = "CANCELLED"


class ApplicationStatus(str, Enum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"


def utc_now() -> datetime:
    """Current time as a naive UTC datetime (the storage convention)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    """Normalize aware datetimes to naive UTC; naive values are taken as UTC."""
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _check_coordinate_pair(latitude: float | None, longitude: float | None) -> None:
    if (latitude is None) != (longitude is None):
        msg = "latitude and longitude must be given together"
        raise ValueError(msg)


def clamp_radius(radius_km: float) -> float:
    return max(MIN_RADIUS_KM, min(MAX_RADIUS_KM, float(radius_km)))


def clamp_limit(limit: int, max_limit: int = MAX_LIMIT) -> int:
    return max(MIN_LIMIT, min(max_limit, int(limit)))


def _clean_tags(values: list[str]) -> list[str]:
    return [v.strip() for v in values if v and v.strip()]


class GeocodingResult(BaseModel):
    """Best match returned by the geocoding provider."""

    model_config = ConfigDict(frozen=True)

    longitude: float = Field(ge=-180.0, le=180.0)
    latitude: float = Field(ge=-90.0, le=90.0)
    label: str = ""
    city: str = ""
    postal_code: str = ""
    confidence: float = 0.0


class Diploma(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    year: int | None = None


class AvailabilitySlot(BaseModel):
    """A weekly (or one-off) window in which a professional can work.

    day_of_week follows the 0=Sunday .. 6=Saturday convention.
    """

    model_config = ConfigDict(frozen=True)

    day_of_week: int = Field(ge=0, le=6)
    start_time: str = Field(default="08:00", pattern=r"^\d{1,2}:\d{2}$")
    end_time: str = Field(default="18:00", pattern=r"^\d{1,2}:\d{2}$")
    specific_date: date | None = None
    is_active: bool = True

    @property
    def start_hour(self) -> int:
        return int(self.start_time.split(":")[0])


class Mission(BaseModel):
    """An urgent staffing request published by a client establishment."""

    model_config = ConfigDict(frozen=True)

    id: str
    client_id: str = ""
    job_title: str
    title: str = ""
    hourly_rate: float = Field(ge=0.0)
    is_night_shift: bool = False
    urgency_level: UrgencyLevel = UrgencyLevel.HIGH
    description: str = ""
    start_date: datetime
    end_date: datetime | None = None
    city: str
    postal_code: str
    address: str = ""
    latitude: float | None = Field(default=None, ge=-90.0, le=90.0)
    longitude: float | None = Field(default=None, ge=-180.0, le=180.0)
    radius_km: float = Field(default=DEFAULT_RADIUS_KM, ge=MIN_RADIUS_KM, le=MAX_RADIUS_KM)
    required_skills: list[str] = Field(default_factory=list)
    required_diplomas: list[str] = Field(default_factory=list)
    status: MissionStatus = MissionStatus.OPEN
    assigned_profile_id: str | None = None
    created_at: datetime = Field(default_factory=utc_now)
    last_search_at: datetime | None = None
    last_candidates_found: int | None = None

    @field_validator("start_date", "end_date", "created_at", "last_search_at")
    @classmethod
    def normalize_datetime(cls, v: datetime | None) -> datetime | None:
        return to_naive_utc(v) if v is not None else None

    @model_validator(mode="after")
    def check_invariants(self) -> "Mission":
        _check_coordinate_pair(self.latitude, self.longitude)
        if self.end_date is not None and self.end_date <= self.start_date:
            msg = "end_date must be after start_date"
            raise ValueError(msg)
        return self

    @property
    def is_geocoded(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    @property
    def is_terminal(self) -> bool:
        return self.status is not MissionStatus.OPEN

    @property
    def location_query(self) -> str:
        """Free-text address used for geocoding."""
        parts = [self.address, self.postal_code, self.city]
        seen: list[str] = []
        for part in parts:
            part = part.strip()
            if part and part.lower() not in (s.lower() for s in seen):
                seen.append(part)
        return " ".join(seen)


class CandidateProfile(BaseModel):
    """A professional profile eligible to be matched to missions."""

    model_config = ConfigDict(frozen=True)

    id: str
    user_id: str
    first_name: str
    last_name: str
    avatar_url: str | None = None
    headline: str | None = None
    specialties: list[str] = Field(default_factory=list)
    diplomas: list[Diploma] = Field(default_factory=list)
    hourly_rate: float | None = None
    latitude: float | None = Field(default=None, ge=-90.0, le=90.0)
    longitude: float | None = Field(default=None, ge=-180.0, le=180.0)
    average_rating: float = Field(default=0.0, ge=0.0, le=5.0)
    total_missions: int = Field(default=0, ge=0)
    is_available: bool = True
    availability_slots: list[AvailabilitySlot] = Field(default_factory=list)

    @field_validator("diplomas", mode="before")
    @classmethod
    def coerce_diploma_names(cls, v: Any) -> Any:
        if isinstance(v, list):
            return [{"name": d} if isinstance(d, str) else d for d in v]
        return v

    @model_validator(mode="after")
    def check_coordinates(self) -> "CandidateProfile":
        _check_coordinate_pair(self.latitude, self.longitude)
        return self

    @property
    def has_location(self) -> bool:
        return self.latitude is not None and self.longitude is not None


class CandidateResult(BaseModel):
    """One ranked candidate in a MatchingResult (not persisted)."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    id: str
    user_id: str
    first_name: str
    last_name: str
    avatar_url: str | None = None
    headline: str | None = None
    specialties: list[str] = Field(default_factory=list)
    diplomas: list[Diploma] = Field(default_factory=list)
    hourly_rate: float | None = None
    average_rating: float = 0.0
    total_missions: int = 0
    distance: float = Field(ge=0.0)
    match_score: int = Field(ge=0, le=100)
    is_available: bool

    @property
    def candidate_id(self) -> str:
        return self.id

    @classmethod
    def from_profile(
        cls,
        profile: CandidateProfile,
        distance_km: float,
        match_score: int,
        is_available: bool,
    ) -> "CandidateResult":
        return cls(
            id=profile.id,
            user_id=profile.user_id,
            first_name=profile.first_name,
            last_name=profile.last_name,
            avatar_url=profile.avatar_url,
            headline=profile.headline,
            specialties=list(profile.specialties),
            diplomas=list(profile.diplomas),
            hourly_rate=profile.hourly_rate,
            average_rating=profile.average_rating,
            total_missions=profile.total_missions,
            distance=round(distance_km, 1),
            match_score=match_score,
            is_available=is_available,
        )


class MatchingResult(BaseModel):
    """Output of one CandidateFinder pass, best candidates first."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    mission_id: str
    candidates: list[CandidateResult] = Field(default_factory=list)
    total_found: int = Field(default=0, ge=0)
    search_radius: float

    def to_dict(self) -> dict[str, Any]:
        """camelCase JSON-ready payload for the API layer."""
        return self.model_dump(mode="json", by_alias=True)


class FindCandidatesOptions(BaseModel):
    """Optional overrides for a candidate search. Out-of-range values are clamped."""

    skills: list[str] | None = None
    radius_km: float | None = None
    limit: int | None = None

    @field_validator("skills")
    @classmethod
    def clean_skills(cls, v: list[str] | None) -> list[str] | None:
        return _clean_tags(v) if v is not None else None

    @field_validator("radius_km")
    @classmethod
    def clamp_radius_km(cls, v: float | None) -> float | None:
        return clamp_radius(v) if v is not None else None

    @field_validator("limit")
    @classmethod
    def clamp_result_limit(cls, v: int | None) -> int | None:
        return clamp_limit(v) if v is not None else None


class MissionCreate(BaseModel):
    """Mission creation payload. Accepts camelCase or snake_case keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    job_title: str
    title: str | None = None
    hourly_rate: float = Field(ge=0.0)
    is_night_shift: bool = False
    urgency_level: UrgencyLevel | None = None
    description: str | None = None
    start_date: datetime
    end_date: datetime | None = None
    city: str
    postal_code: str
    address: str | None = None
    latitude: float | None = Field(default=None, ge=-90.0, le=90.0)
    longitude: float | None = Field(default=None, ge=-180.0, le=180.0)
    radius_km: float = Field(default=DEFAULT_RADIUS_KM, ge=MIN_RADIUS_KM, le=MAX_RADIUS_KM)
    required_skills: list[str] = Field(default_factory=list)
    required_diplomas: list[str] = Field(default_factory=list)

    @field_validator("job_title", "city", "postal_code")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v.strip():
            msg = "must not be empty"
            raise ValueError(msg)
        return v.strip()

    @field_validator("start_date", "end_date")
    @classmethod
    def normalize_datetime(cls, v: datetime | None) -> datetime | None:
        return to_naive_utc(v) if v is not None else None

    @field_validator("required_skills", "required_diplomas")
    @classmethod
    def clean_tag_lists(cls, v: list[str]) -> list[str]:
        return _clean_tags(v)

    @model_validator(mode="after")
    def check_invariants(self) -> "MissionCreate":
        _check_coordinate_pair(self.latitude, self.longitude)
        if self.end_date is not None and self.end_date <= self.start_date:
            msg = "end_date must be after start_date"
            raise ValueError(msg)
        return self


class MissionApplication(BaseModel):
    """A professional's application to an open mission."""

    model_config = ConfigDict(frozen=True)

    id: str
    mission_id: str
    profile_id: str
    cover_letter: str | None = None
    proposed_rate: float | None = Field(default=None, ge=0.0)
    status: ApplicationStatus = ApplicationStatus.PENDING
    created_at: datetime = Field(default_factory=utc_now)


class MissionAssigned(BaseModel):
    """Emitted when a mission is committed to a professional."""

    model_config = ConfigDict(frozen=True)

    mission_id: str
    profile_id: str
    application_id: str | None = None
    assigned_at: datetime = Field(default_factory=utc_now)
