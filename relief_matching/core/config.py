"""Configuration models and YAML loader for the relief matching engine."""

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from relief_matching.core.schemas import UrgencyLevel


class DatabaseConfig(BaseModel):
    """Database configuration."""

    path: str = "data/matching.db"


class GeocodingConfig(BaseModel):
    """Geocoding provider settings (api-adresse.data.gouv.fr by default)."""

    enabled: bool = True
    base_url: str = "https://api-adresse.data.gouv.fr"
    timeout_seconds: float = Field(default=3.0, gt=0.0, le=30.0)
    user_agent: str = "relief-matching-engine"

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        v = v.strip().rstrip("/")
        if not v:
            msg = "base_url must not be empty"
            raise ValueError(msg)
        return v


class MatchingConfig(BaseModel):
    """Search defaults and hard-constraint policy for CandidateFinder."""

    default_radius_km: float = Field(default=30.0, ge=1.0, le=200.0)
    default_limit: int = Field(default=10, ge=1, le=50)
    max_limit: int = Field(default=50, ge=1, le=50)
    exclude_unavailable: bool = False
    # Geocode an un-geocoded mission on the fly at search time (not persisted).
    geocode_missing: bool = False


class ScoringConfig(BaseModel):
    """Weights for the composite match score.

    The six weights are points out of 100 and must add up to exactly 100.
    """

    distance_weight: float = Field(default=20.0, ge=0.0)
    skills_weight: float = Field(default=25.0, ge=0.0)
    diplomas_weight: float = Field(default=25.0, ge=0.0)
    availability_weight: float = Field(default=15.0, ge=0.0)
    rating_weight: float = Field(default=10.0, ge=0.0)
    experience_weight: float = Field(default=5.0, ge=0.0)

    unavailable_factor: float = Field(default=0.3, ge=0.0, le=1.0)
    unavailable_score_cap: int = Field(default=60, ge=0, le=100)
    experience_saturation: int = Field(default=50, ge=1)

    @model_validator(mode="after")
    def weights_sum_to_100(self) -> "ScoringConfig":
        total = sum(self.weights().values())
        if abs(total - 100.0) > 1e-6:
            msg = f"scoring weights must sum to 100, got {total:g}"
            raise ValueError(msg)
        return self

    def weights(self) -> dict[str, float]:
        return {
            "distance": self.distance_weight,
            "skills": self.skills_weight,
            "diplomas": self.diplomas_weight,
            "availability": self.availability_weight,
            "rating": self.rating_weight,
            "experience": self.experience_weight,
        }


class MissionDefaults(BaseModel):
    """Defaults applied when a mission is created."""

    default_duration_hours: float = Field(default=8.0, gt=0.0, le=72.0)
    default_urgency: UrgencyLevel = UrgencyLevel.HIGH
    title_prefix: str = "Renfort"


class Settings(BaseModel):
    """Top-level settings loaded from YAML."""

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    geocoding: GeocodingConfig = Field(default_factory=GeocodingConfig)
    matching: MatchingConfig = Field(default_factory=MatchingConfig)
    scoring: ScoringConfig = Field(default_factory=ScoringConfig)
    missions: MissionDefaults = Field(default_factory=MissionDefaults)

    @model_validator(mode="after")
    def default_limit_within_max(self) -> "Settings":
        if self.matching.default_limit > self.matching.max_limit:
            msg = (
                f"matching.default_limit ({self.matching.default_limit}) "
                f"exceeds matching.max_limit ({self.matching.max_limit})"
            )
            raise ValueError(msg)
        return self

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Settings":
        """Load settings from a YAML file."""
        path = Path(path)
        if not path.exists():
            msg = f"Config file not found: {path}"
            raise FileNotFoundError(msg)
        raw: dict[str, Any] = yaml.safe_load(path.read_text()) or {}
        return cls.model_validate(raw)
