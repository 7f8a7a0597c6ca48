"""
Domain models (Pydantic).

The contract between layers:
- raw amenity candidates coming from Overpass, the cache or user suggestions
- annotated pipeline output handed to the API/CLI
- suggestion/flag payloads for the store

Candidate coordinates are deliberately not range-checked here. A malformed remote
record must reach the proximity pipeline, which skips and counts it instead of failing
the whole batch at parse time.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator

AmenityCategory = Literal["toilets", "cafes", "indoor"]
ALL_CATEGORIES: tuple[AmenityCategory, ...] = ("toilets", "cafes", "indoor")

CandidateSource = Literal["overpass", "cache", "user"]
SuggestionStatus = Literal["pending", "approved", "rejected"]
FlagType = Literal[
    "incorrect_location",
    "closed_permanently",
    "incorrect_type",
    "duplicate",
    "spam",
    "other",
]


class AmenityCandidate(BaseModel):
    """A point of interest not yet checked against the route radius."""

    id: str
    lat: float
    lng: float
    tags: dict[str, str] = Field(default_factory=dict)
    raw_name: str | None = None
    source: CandidateSource = "overpass"
    description: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _normalize_field_names(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if "lat" not in data and "latitude" in data:
            data["lat"] = data.pop("latitude")
        if "lng" not in data:
            for alias in ("lon", "longitude"):
                if alias in data:
                    data["lng"] = data.pop(alias)
                    break
        if "raw_name" not in data and data.get("name"):
            data["raw_name"] = data["name"]
        return data

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> str:
        return str(value)

    @field_validator("tags", mode="before")
    @classmethod
    def _normalize_tags(cls, value: Any) -> dict[str, str]:
        if not isinstance(value, dict):
            return {}
        return {str(k): str(v) for k, v in value.items() if v is not None}


class AnnotatedAmenity(BaseModel):
    """Pipeline output: a candidate within the radius, with route distances."""

    id: str
    category: AmenityCategory
    lat: float
    lng: float
    tags: dict[str, str] = Field(default_factory=dict)
    raw_name: str | None = None
    source: CandidateSource = "overpass"
    description: str | None = None
    resolved_name: str
    distance_to_route_m: float = Field(..., ge=0)
    distance_to_finish_m: float = Field(..., ge=0)


class RouteSummary(BaseModel):
    points: int
    total_distance_m: float
    bounds: dict[str, float] | None = None


class LocateRequest(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class LocateResult(BaseModel):
    lat: float
    lng: float
    nearest_index: int
    distance_to_route_m: float
    distance_to_finish_m: float


class SuggestionCreate(BaseModel):
    """User-submitted amenity."""

    category: AmenityCategory
    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=1000)
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)
    user_agent: str | None = None

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("name must not be blank")
        return value

    @field_validator("description")
    @classmethod
    def _strip_description(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.strip() or None


class SuggestionUpdate(SuggestionCreate):
    pass


class Suggestion(BaseModel):
    id: int
    category: AmenityCategory
    name: str
    description: str | None = None
    lat: float
    lng: float
    distance_to_route_m: float | None = None
    status: SuggestionStatus = "pending"
    flag_count: int = 0
    user_agent: str | None = None
    created_at: datetime
    updated_at: datetime
    archived_at: datetime | None = None

    @property
    def external_id(self) -> str:
        return f"user-{self.id}"

    def to_candidate(self) -> AmenityCandidate:
        return AmenityCandidate(
            id=self.external_id,
            lat=self.lat,
            lng=self.lng,
            raw_name=self.name,
            source="user",
            description=self.description,
        )


class FlagRequest(BaseModel):
    amenity_id: str = Field(..., min_length=1)
    category: AmenityCategory
    flag_type: FlagType = "other"
    reason: str | None = Field(default=None, max_length=1000)


class FlagResult(BaseModel):
    amenity_id: str
    category: AmenityCategory
    flag_count: int
    heavily_flagged: bool
    archived: bool = False


class CategoryAmenities(BaseModel):
    category: AmenityCategory
    count: int
    amenities: list[AnnotatedAmenity]
    source: str
    skipped_invalid: int = 0
    error: str | None = None


class AmenitiesResponse(BaseModel):
    generated_at: datetime
    max_distance_m: float
    bounds: dict[str, float]
    categories: dict[str, CategoryAmenities]
    meta: dict[str, Any] = Field(default_factory=dict)
