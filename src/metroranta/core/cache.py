from __future__ import annotations

import contextvars
import json
import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass
from hashlib import sha256
from pathlib import Path
from typing import Any, Callable, Iterator, Literal

"""
On-disk JSON cache for upstream geodata.

Overpass responses are cached per (namespace, key) where the namespace carries the
amenity category and the key is the route bounding box. Values are JSON on disk under
`.cache/metroranta/` by default, file names are SHA-256 digests of the key, and TTL is
enforced on read so the same entry can be served "stale" when the upstream is down.
"""

logger = logging.getLogger(__name__)

CacheMode = Literal["cache", "live", "stale"]


@dataclass
class CacheStats:
    """Cache usage counters for one request (best-effort)."""

    hits: int = 0
    misses: int = 0
    expired: int = 0
    sets: int = 0
    stale_fallbacks: int = 0

    def as_dict(self) -> dict[str, int]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "expired": self.expired,
            "sets": self.sets,
            "stale_fallbacks": self.stale_fallbacks,
        }


@dataclass(frozen=True)
class CachedValue:
    value: Any
    mode: CacheMode
    created_at_unix: int | None


_cache_stats_var: contextvars.ContextVar[CacheStats | None] = contextvars.ContextVar(
    "metroranta_cache_stats", default=None
)


def _bump(field: str) -> None:
    stats = _cache_stats_var.get()
    if stats is not None:
        setattr(stats, field, getattr(stats, field) + 1)


@contextmanager
def record_cache_stats() -> Iterator[CacheStats]:
    """Collect cache counters for everything run in this context.

    Worker threads only see the counters if they run inside a copy of this context
    (`contextvars.copy_context().run`).
    """
    stats = CacheStats()
    token = _cache_stats_var.set(stats)
    try:
        yield stats
    finally:
        _cache_stats_var.reset(token)


class FileCache:
    """A filesystem-backed cache keyed by (namespace, key)."""

    def __init__(self, base_dir: Path, enabled: bool = True, default_ttl_seconds: int = 86400):
        self._base_dir = Path(base_dir)
        self._enabled = enabled
        self._default_ttl_seconds = int(default_ttl_seconds)

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    @property
    def enabled(self) -> bool:
        return self._enabled

    def _path(self, namespace: str, key: str) -> Path:
        digest = sha256(f"{namespace}:{key}".encode("utf-8")).hexdigest()
        safe_ns = namespace.replace(":", "_").replace("/", "_")
        return self._base_dir / safe_ns / f"{digest}.json"

    def _read(self, namespace: str, key: str) -> dict[str, Any] | None:
        path = self._path(namespace, key)
        if not path.exists():
            return None
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
            return {
                "created_at_unix": int(raw["created_at_unix"]),
                "ttl_seconds": int(raw["ttl_seconds"]),
                "value": raw["value"],
            }
        except (OSError, ValueError, KeyError, TypeError):
            logger.warning("Ignoring unreadable cache entry %s", path)
            return None

    def get(self, namespace: str, key: str, ttl_seconds: int | None = None) -> Any | None:
        """Return the cached value if present and fresh, else None."""
        if not self._enabled:
            return None
        entry = self._read(namespace, key)
        if entry is None:
            _bump("misses")
            return None

        ttl = ttl_seconds if ttl_seconds is not None else entry["ttl_seconds"]
        if int(time.time()) - entry["created_at_unix"] > ttl:
            _bump("misses")
            _bump("expired")
            return None

        _bump("hits")
        return entry["value"]

    def get_stale(self, namespace: str, key: str) -> Any | None:
        """Return the cached value regardless of age."""
        if not self._enabled:
            return None
        entry = self._read(namespace, key)
        return entry["value"] if entry is not None else None

    def created_at(self, namespace: str, key: str) -> int | None:
        if not self._enabled:
            return None
        entry = self._read(namespace, key)
        return entry["created_at_unix"] if entry is not None else None

    def set(self, namespace: str, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        """Write a JSON-serialisable value (temp file + atomic replace)."""
        if not self._enabled:
            return
        ttl = ttl_seconds if ttl_seconds is not None else self._default_ttl_seconds
        path = self._path(namespace, key)
        path.parent.mkdir(parents=True, exist_ok=True)
        payload = {"created_at_unix": int(time.time()), "ttl_seconds": int(ttl), "value": value}
        tmp = path.with_suffix(".tmp")
        tmp.write_text(json.dumps(payload, ensure_ascii=False), encoding="utf-8")
        tmp.replace(path)
        _bump("sets")

    def fetch(
        self,
        namespace: str,
        key: str,
        builder: Callable[[], Any],
        ttl_seconds: int | None = None,
        *,
        refresh: bool = False,
        stale_if_error: bool = False,
        stale_predicate: Callable[[Exception], bool] | None = None,
    ) -> CachedValue:
        """Return a fresh cached value, or build + store one.

        `refresh=True` skips the fresh-read and always calls `builder`. When the builder
        raises and `stale_if_error` is set (and `stale_predicate(exc)` agrees), an
        expired entry is returned with mode "stale" instead of re-raising.
        """
        if not refresh:
            cached = self.get(namespace, key, ttl_seconds=ttl_seconds)
            if cached is not None:
                return CachedValue(value=cached, mode="cache", created_at_unix=self.created_at(namespace, key))

        try:
            value = builder()
        except Exception as exc:
            if stale_if_error and (stale_predicate(exc) if stale_predicate else True):
                stale = self.get_stale(namespace, key)
                if stale is not None:
                    _bump("stale_fallbacks")
                    logger.warning("Serving stale cache for %s after error: %s", namespace, exc)
                    return CachedValue(value=stale, mode="stale", created_at_unix=self.created_at(namespace, key))
            raise

        self.set(namespace, key, value, ttl_seconds=ttl_seconds)
        return CachedValue(value=value, mode="live", created_at_unix=self.created_at(namespace, key))
