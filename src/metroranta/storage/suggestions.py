"""
User suggestions + amenity flags store.

A single JSON document on disk (default `data/store/suggestions.json`):

    {
      "next_id": 4,
      "suggestions": [{...Suggestion...}, ...],
      "flags": {"<category>:<amenity_id>": {"count": 2, "types": {"spam": 1, ...}, "reasons": [...]}}
    }

Writes go through a temp file + atomic replace and are serialised by a process-local
lock (the API runs category lookups in threads). Suggestions are never hard-deleted:
archiving sets `archived_at`, and archived records are invisible to every read.

Flagging: once an amenity collects `flag_archive_threshold` flags it is "heavily
flagged". A user suggestion is archived on the spot; an OpenStreetMap amenity is
excluded from later results through `heavily_flagged_ids`.
"""

from __future__ import annotations

import json
import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable

from metroranta.core.geo import BoundingBox, GeoPoint
from metroranta.domain.models import (
    AmenityCategory,
    FlagRequest,
    FlagResult,
    Suggestion,
    SuggestionCreate,
    SuggestionStatus,
    SuggestionUpdate,
)

logger = logging.getLogger(__name__)

VISIBLE_STATUSES: tuple[SuggestionStatus, ...] = ("pending", "approved")


class SuggestionNotFoundError(LookupError):
    """Suggestion id does not exist or has been archived."""


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _round_distance(value: float | None) -> float | None:
    return None if value is None else round(float(value), 1)


def _flag_key(category: str, amenity_id: str) -> str:
    return f"{category}:{amenity_id}"


class SuggestionStore:
    def __init__(self, path: Path, *, flag_archive_threshold: int = 3):
        if int(flag_archive_threshold) < 1:
            raise ValueError("flag_archive_threshold must be >= 1")
        self._path = Path(path)
        self._threshold = int(flag_archive_threshold)
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> dict[str, Any]:
        if not self._path.exists():
            return {"next_id": 1, "suggestions": [], "flags": {}}
        raw = json.loads(self._path.read_text(encoding="utf-8"))
        if not isinstance(raw, dict):
            raise ValueError(f"Invalid store file {self._path}; expected a JSON object.")
        raw.setdefault("next_id", 1)
        raw.setdefault("suggestions", [])
        raw.setdefault("flags", {})
        return raw

    def _save(self, data: dict[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(".tmp")
        tmp.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
        tmp.replace(self._path)

    @staticmethod
    def _parse(records: Iterable[dict[str, Any]]) -> list[Suggestion]:
        return [Suggestion.model_validate(r) for r in records]

    @staticmethod
    def _find_live(data: dict[str, Any], suggestion_id: int) -> int:
        for i, rec in enumerate(data["suggestions"]):
            if int(rec.get("id", -1)) == int(suggestion_id) and rec.get("archived_at") is None:
                return i
        raise SuggestionNotFoundError(f"Suggestion {suggestion_id} not found or archived")

    def create(self, payload: SuggestionCreate, *, distance_to_route_m: float | None = None) -> Suggestion:
        with self._lock:
            data = self._load()
            now = _now()
            suggestion = Suggestion(
                id=int(data["next_id"]),
                category=payload.category,
                name=payload.name,
                description=payload.description,
                lat=payload.lat,
                lng=payload.lng,
                distance_to_route_m=_round_distance(distance_to_route_m),
                user_agent=payload.user_agent,
                created_at=now,
                updated_at=now,
            )
            data["next_id"] = suggestion.id + 1
            data["suggestions"].append(suggestion.model_dump(mode="json"))
            self._save(data)
        logger.info("Stored %s suggestion %s (%s)", suggestion.category, suggestion.id, suggestion.name)
        return suggestion

    def update(
        self, suggestion_id: int, payload: SuggestionUpdate, *, distance_to_route_m: float | None = None
    ) -> Suggestion:
        with self._lock:
            data = self._load()
            i = self._find_live(data, suggestion_id)
            current = Suggestion.model_validate(data["suggestions"][i])
            updated = current.model_copy(
                update={
                    "category": payload.category,
                    "name": payload.name,
                    "description": payload.description,
                    "lat": payload.lat,
                    "lng": payload.lng,
                    "distance_to_route_m": _round_distance(distance_to_route_m),
                    "updated_at": _now(),
                }
            )
            data["suggestions"][i] = updated.model_dump(mode="json")
            self._save(data)
        return updated

    def set_status(self, suggestion_id: int, status: SuggestionStatus) -> Suggestion:
        with self._lock:
            data = self._load()
            i = self._find_live(data, suggestion_id)
            current = Suggestion.model_validate(data["suggestions"][i])
            updated = current.model_copy(update={"status": status, "updated_at": _now()})
            data["suggestions"][i] = updated.model_dump(mode="json")
            self._save(data)
        return updated

    def archive(self, suggestion_id: int) -> bool:
        """Soft-delete; False if the suggestion is missing or already archived."""
        with self._lock:
            data = self._load()
            try:
                i = self._find_live(data, suggestion_id)
            except SuggestionNotFoundError:
                return False
            data["suggestions"][i]["archived_at"] = _now().isoformat()
            self._save(data)
        logger.info("Archived suggestion %s", suggestion_id)
        return True

    def get(self, suggestion_id: int) -> Suggestion | None:
        with self._lock:
            data = self._load()
        try:
            i = self._find_live(data, suggestion_id)
        except SuggestionNotFoundError:
            return None
        return Suggestion.model_validate(data["suggestions"][i])

    def list_suggestions(
        self,
        *,
        bounds: BoundingBox | None = None,
        category: AmenityCategory | None = None,
        statuses: Iterable[SuggestionStatus] = VISIBLE_STATUSES,
    ) -> list[Suggestion]:
        """Live (non-archived) suggestions, optionally filtered by bbox/category/status."""
        with self._lock:
            data = self._load()
        wanted = set(statuses)
        out: list[Suggestion] = []
        for s in self._parse(data["suggestions"]):
            if s.archived_at is not None or s.status not in wanted:
                continue
            if category is not None and s.category != category:
                continue
            if bounds is not None and not bounds.contains(GeoPoint(lat=s.lat, lon=s.lng)):
                continue
            out.append(s)
        return out

    def flag(self, request: FlagRequest) -> FlagResult:
        key = _flag_key(request.category, request.amenity_id)
        archived = False
        with self._lock:
            data = self._load()
            entry = data["flags"].setdefault(key, {"count": 0, "types": {}, "reasons": []})
            entry["count"] = int(entry.get("count", 0)) + 1
            types = entry.setdefault("types", {})
            types[request.flag_type] = int(types.get(request.flag_type, 0)) + 1
            if request.reason:
                entry.setdefault("reasons", []).append(request.reason)
            count = entry["count"]
            heavily_flagged = count >= self._threshold

            if request.amenity_id.startswith("user-"):
                for rec in data["suggestions"]:
                    if f"user-{rec.get('id')}" != request.amenity_id or rec.get("archived_at") is not None:
                        continue
                    rec["flag_count"] = int(rec.get("flag_count", 0)) + 1
                    if heavily_flagged:
                        rec["archived_at"] = _now().isoformat()
                        archived = True
                    break
            self._save(data)

        if heavily_flagged:
            logger.warning("Amenity %s (%s) reached %s flags", request.amenity_id, request.category, count)
        return FlagResult(
            amenity_id=request.amenity_id,
            category=request.category,
            flag_count=count,
            heavily_flagged=heavily_flagged,
            archived=archived,
        )

    def heavily_flagged_ids(self, category: AmenityCategory) -> set[str]:
        with self._lock:
            data = self._load()
        prefix = f"{category}:"
        return {
            key[len(prefix):]
            for key, entry in data["flags"].items()
            if key.startswith(prefix) and int(entry.get("count", 0)) >= self._threshold
        }

    def stats(self) -> dict[str, Any]:
        with self._lock:
            data = self._load()
        suggestions = self._parse(data["suggestions"])
        by_status: dict[str, int] = {}
        by_category: dict[str, int] = {}
        archived = 0
        for s in suggestions:
            if s.archived_at is not None:
                archived += 1
                continue
            by_status[s.status] = by_status.get(s.status, 0) + 1
            by_category[s.category] = by_category.get(s.category, 0) + 1
        flags = data["flags"]
        return {
            "suggestions_total": len(suggestions),
            "suggestions_archived": archived,
            "suggestions_by_status": dict(sorted(by_status.items())),
            "suggestions_by_category": dict(sorted(by_category.items())),
            "flagged_amenities": len(flags),
            "flags_total": sum(int(e.get("count", 0)) for e in flags.values()),
            "heavily_flagged_amenities": sum(
                1 for e in flags.values() if int(e.get("count", 0)) >= self._threshold
            ),
        }
