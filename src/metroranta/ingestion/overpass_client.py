"""
Overpass (OpenStreetMap) ingestion client.

This module is responsible only for:
- building the per-category Overpass QL query for a route bounding box,
- POSTing it with retry/backoff for 429 and transient errors,
- caching the raw candidates per (category, bbox) with stale-if-error,
- parsing `elements` into `AmenityCandidate` records.

Distance filtering and naming happen later in `metroranta.features.proximity`, so a
cached batch stays valid when the route changes within the same bounding box.
"""

from __future__ import annotations

import logging
import time
from typing import Any

import httpx

from metroranta.config.settings import Settings
from metroranta.core.cache import CacheMode, FileCache
from metroranta.core.geo import BoundingBox
from metroranta.core.http import post_form
from metroranta.domain.models import AmenityCandidate, AmenityCategory
from metroranta.features.classifier import CATEGORY_SELECTORS

logger = logging.getLogger(__name__)

_RETRYABLE_STATUSES = {429, 500, 502, 503, 504}


def build_query(bounds: BoundingBox, category: AmenityCategory, *, timeout_seconds: int = 25) -> str:
    """Overpass QL union of node selectors for `category` inside `bounds`."""
    bbox = bounds.as_overpass()
    parts = []
    for selector in CATEGORY_SELECTORS[category]:
        filters = "".join(f'["{key}"="{value}"]' for key, value in selector)
        parts.append(f"node{filters}({bbox});")
    return f"[out:json][timeout:{int(timeout_seconds)}];({''.join(parts)});out geom;"


def parse_elements(payload: Any) -> list[AmenityCandidate]:
    """Parse an Overpass JSON response; elements without numeric lat/lon are dropped."""
    if not isinstance(payload, dict):
        return []
    elements = payload.get("elements")
    if not isinstance(elements, list):
        return []

    out: list[AmenityCandidate] = []
    for el in elements:
        if not isinstance(el, dict) or el.get("id") is None:
            continue
        lat = el.get("lat")
        lon = el.get("lon")
        if isinstance(lat, bool) or isinstance(lon, bool):
            continue
        if not isinstance(lat, (int, float)) or not isinstance(lon, (int, float)):
            continue
        tags = el.get("tags") if isinstance(el.get("tags"), dict) else {}
        name = tags.get("name")
        out.append(
            AmenityCandidate(
                id=el["id"],
                lat=float(lat),
                lng=float(lon),
                tags=tags,
                raw_name=str(name) if name else None,
                source="overpass",
            )
        )
    return out


class OverpassClient:
    """Fetches and caches Overpass candidates per category and bounding box."""

    def __init__(self, settings: Settings, cache: FileCache):
        self._settings = settings
        self._cache = cache

    @staticmethod
    def _parse_retry_after_seconds(value: str | None) -> float | None:
        if not value:
            return None
        try:
            return max(0.0, float(value))
        except ValueError:
            return None

    def _post_query(self, query: str) -> Any:
        """POST one query with exponential backoff on retryable failures."""
        cfg = self._settings.ingestion.overpass
        max_attempts = int(cfg.retry.max_attempts)
        base_delay = float(cfg.retry.base_delay_seconds)
        max_delay = float(cfg.retry.max_delay_seconds)

        attempt = 0
        while True:
            try:
                return post_form(
                    cfg.base_url,
                    data={"data": query},
                    timeout_seconds=self._settings.app.http_timeout_seconds,
                )
            except httpx.HTTPStatusError as exc:
                status = exc.response.status_code
                if status not in _RETRYABLE_STATUSES or attempt >= max_attempts:
                    raise
                delay = min(max_delay, base_delay * (2**attempt))
                retry_after = self._parse_retry_after_seconds(exc.response.headers.get("Retry-After"))
                if retry_after is not None:
                    delay = max(delay, retry_after)
                logger.warning(
                    "Overpass request failed with status=%s; retrying in %.2fs (attempt %s/%s)",
                    status,
                    delay,
                    attempt + 1,
                    max_attempts,
                )
            except httpx.TransportError:
                if attempt >= max_attempts:
                    raise
                delay = min(max_delay, base_delay * (2**attempt))
                logger.warning(
                    "Overpass transport error; retrying in %.2fs (attempt %s/%s)",
                    delay,
                    attempt + 1,
                    max_attempts,
                )
            time.sleep(delay)
            attempt += 1

    def fetch_candidates(
        self, bounds: BoundingBox, category: AmenityCategory, *, refresh: bool = False
    ) -> tuple[list[AmenityCandidate], CacheMode]:
        """Return `(candidates, mode)` where mode is "cache", "live" or "stale".

        Raises `httpx.HTTPError` (or `ValueError` for a non-JSON body) when the fetch
        fails and nothing is cached for this bbox.
        """
        cfg = self._settings.ingestion.overpass
        query = build_query(bounds, category, timeout_seconds=cfg.query_timeout_seconds)

        def builder() -> dict[str, Any]:
            logger.info("Fetching %s from Overpass for bbox=%s", category, bounds.as_overpass())
            payload = self._post_query(query)
            if not isinstance(payload, dict):
                raise ValueError("Overpass response is not a JSON object.")
            remark = str(payload.get("remark") or "")
            if "runtime error" in remark.lower():
                # Timed-out or out-of-memory queries come back as 200 with a partial result.
                raise ValueError(f"Overpass runtime error: {remark}")
            return {"elements": payload.get("elements") or []}

        result = self._cache.fetch(
            f"overpass:{category}",
            bounds.cache_key(),
            builder,
            ttl_seconds=int(cfg.cache_ttl_seconds),
            refresh=refresh,
            stale_if_error=True,
            stale_predicate=lambda exc: isinstance(exc, (httpx.HTTPError, ValueError)),
        )
        candidates = parse_elements(result.value)
        if result.mode == "cache":
            candidates = [c.model_copy(update={"source": "cache"}) for c in candidates]
        return candidates, result.mode
