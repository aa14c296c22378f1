"""TTL-keyed store of resolved ratings with a retrying upstream fetch."""

import asyncio
import json
import logging
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional

from ratings_overlay.errors import ResolutionFailed, UpstreamError
from ratings_overlay.models import CacheEntry, Identity, RatingSet
from ratings_overlay.omdb import OmdbClient, extract_ratings

logger = logging.getLogger(__name__)

DEFAULT_TTL_HOURS = 24
MAX_RETRY_ATTEMPTS = 3
RETRY_BASE_DELAY = 1.0
MAX_ENTRIES = 500
TRIM_TO = 250

_MS_PER_HOUR = 60 * 60 * 1000


def _now_ms() -> float:
    return time.time() * 1000


class RatingCache:
    """Cache-first rating store.

    ``get_cached`` is synchronous and never touches the network. ``resolve``
    always asks the upstream API and is the only path that writes entries.
    Expired entries are evicted lazily when read.

    Mutations never span an ``await``, so concurrent resolutions interleaving
    on the event loop cannot observe a half-written store.
    """

    def __init__(
        self,
        client: OmdbClient,
        ttl_hours: int = DEFAULT_TTL_HOURS,
        max_retries: int = MAX_RETRY_ATTEMPTS,
        retry_delay: float = RETRY_BASE_DELAY,
        max_entries: int = MAX_ENTRIES,
        trim_to: int = TRIM_TO,
        clock: Callable[[], float] = _now_ms,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """Initialize the cache.

        Args:
            client: Upstream OMDb client
            ttl_hours: Hours an entry stays fresh
            max_retries: Upstream attempts per resolve
            retry_delay: Base backoff delay in seconds (doubles per attempt)
            max_entries: Store size that triggers trimming
            trim_to: Entries kept after trimming (newest first)
            clock: Millisecond wall clock
            sleep: Coroutine used for backoff delays
        """
        self.client = client
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.max_entries = max_entries
        self.trim_to = trim_to
        self._clock = clock
        self._sleep = sleep
        self._entries: Dict[str, CacheEntry] = {}
        self._ttl_hours = DEFAULT_TTL_HOURS
        self.set_cache_duration(ttl_hours)

    @property
    def ttl_hours(self) -> int:
        return self._ttl_hours

    @property
    def ttl_ms(self) -> float:
        return self._ttl_hours * _MS_PER_HOUR

    def set_cache_duration(self, hours: int) -> None:
        """Change how long entries stay fresh.

        Raises:
            ValueError: If hours is not a positive integer
        """
        if isinstance(hours, bool) or not isinstance(hours, int) or hours <= 0:
            raise ValueError("Cache duration must be a positive integer")
        self._ttl_hours = hours
        logger.info(f"Cache duration set to {hours}h")

    def get_cached(self, identity: Identity) -> Optional[RatingSet]:
        """Return the cached RatingSet for an identity if present and fresh."""
        key = identity.cache_key
        entry = self._entries.get(key)
        if entry is None:
            logger.debug(f"Cache miss: {key}")
            return None

        if entry.is_expired(self._clock(), self.ttl_ms):
            logger.debug(f"Cache expired: {key}")
            del self._entries[key]
            return None

        logger.debug(f"Cache hit: {key}")
        return entry.payload

    async def resolve(self, identity: Identity) -> RatingSet:
        """Fetch fresh ratings from upstream, store them and return them.

        Transport failures and API "not found" answers share one retry path:
        ``max_retries`` attempts with ``retry_delay * 2 ** (attempt - 1)``
        seconds between them.

        Raises:
            ResolutionFailed: After the last attempt failed
        """
        key = identity.cache_key
        last_error: Optional[BaseException] = None

        for attempt in range(1, self.max_retries + 1):
            try:
                data = await self.client.get_by_title(
                    identity.title,
                    year=identity.year,
                    media_type=identity.kind,
                )
                break
            except UpstreamError as exc:
                last_error = exc
                if attempt < self.max_retries:
                    wait = self.retry_delay * 2 ** (attempt - 1)
                    logger.warning(
                        f"Upstream attempt {attempt}/{self.max_retries} failed for {key!r}: {exc} "
                        f"- retrying in {wait:.1f}s"
                    )
                    await self._sleep(wait)
        else:
            logger.error(
                f"Upstream failed after {self.max_retries} attempts for {key!r}: {last_error}"
            )
            raise ResolutionFailed(key, self.max_retries, last_error) from last_error

        ratings = extract_ratings(data)
        self._store(key, identity, ratings)
        return ratings

    def _store(self, key: str, identity: Identity, ratings: RatingSet) -> None:
        self._entries[key] = CacheEntry(
            key=key,
            payload=ratings,
            stored_at_ms=self._clock(),
            identity=identity,
        )
        logger.debug(f"Cached {key} (size: {len(self._entries)})")

        if len(self._entries) > self.max_entries:
            logger.warning(
                f"Cache size exceeds {self.max_entries} items, dropping oldest entries"
            )
            self._trim_oldest()

    def _trim_oldest(self) -> None:
        ordered = sorted(self._entries.values(), key=lambda e: e.stored_at_ms)
        for entry in ordered[: len(ordered) - self.trim_to]:
            del self._entries[entry.key]

    def clear(self) -> int:
        """Remove every entry. Returns the number removed."""
        removed = len(self._entries)
        self._entries.clear()
        logger.info(f"Cache cleared ({removed} entries removed)")
        return removed

    def cleanup_expired(self) -> int:
        """Explicitly drop expired entries. Returns the number removed."""
        now = self._clock()
        expired = [k for k, e in self._entries.items() if e.is_expired(now, self.ttl_ms)]
        for key in expired:
            del self._entries[key]
        logger.info(f"Cache cleanup removed {len(expired)} expired entries")
        return len(expired)

    def get_stats(self) -> Dict[str, Any]:
        """Summarize the store: item count, approximate size, configured duration."""
        size = len(
            json.dumps({k: e.payload.to_dict() for k, e in self._entries.items()})
        )
        return {
            "total_items": len(self._entries),
            "size_estimate_bytes": size,
            "size_estimate_kb": round(size / 1024),
            "cache_duration_hours": self._ttl_hours,
        }

    def get_detailed_info(self) -> List[Dict[str, Any]]:
        """Per-entry age and expiry, for debugging."""
        now = self._clock()
        return [
            {
                "key": entry.key,
                "age_ms": entry.age_ms(now),
                "age_hours": round(entry.age_ms(now) / _MS_PER_HOUR, 1),
                "is_expired": entry.is_expired(now, self.ttl_ms),
                "stored_at_ms": entry.stored_at_ms,
            }
            for entry in self._entries.values()
        ]

    def __len__(self) -> int:
        return len(self._entries)
