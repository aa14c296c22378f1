"""Cache-first rating resolution with background revalidation."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from ratings_overlay.models import Identity, RatingSet
from ratings_overlay.service import CACHED, FRESH, RatingChannel

logger = logging.getLogger(__name__)


@dataclass
class CacheFirstResult:
    """Outcome of a cache-first lookup.

    ``cached`` is available immediately; ``fresh`` completes later with the
    revalidated RatingSet, or ``None`` if revalidation failed. ``fresh``
    never raises.
    """

    cached: Optional[RatingSet]
    fresh: "asyncio.Task[Optional[RatingSet]]"


def ratings_differ(shown: Optional[RatingSet], fresh: Optional[RatingSet]) -> bool:
    """Shallow comparison across the three rating slots."""
    if shown is None or fresh is None:
        return shown is not fresh
    return (
        shown.imdb != fresh.imdb
        or shown.metacritic != fresh.metacritic
        or shown.rotten_tomatoes != fresh.rotten_tomatoes
    )


class Resolver:
    """Resolve identities through the rating channel."""

    def __init__(self, channel: RatingChannel):
        self.channel = channel

    async def get_cached(self, identity: Identity) -> Optional[RatingSet]:
        return await self._request(CACHED, identity)

    async def get_fresh(self, identity: Identity) -> Optional[RatingSet]:
        return await self._request(FRESH, identity)

    async def resolve_with_cache_first(self, identity: Identity) -> CacheFirstResult:
        """Read the cache, then start revalidation in the background.

        The FRESH request is only issued after the CACHED read completed, and
        it is issued whether or not the cache had an entry.
        """
        cached = await self.get_cached(identity)
        fresh = asyncio.create_task(self.get_fresh(identity))
        return CacheFirstResult(cached=cached, fresh=fresh)

    async def _request(self, message_type: str, identity: Identity) -> Optional[RatingSet]:
        try:
            response = await self.channel.request(
                {"type": message_type, "identity": identity.to_dict()}
            )
        except Exception as e:
            logger.error(f"Rating channel failed for {identity.title!r} ({message_type}): {e}")
            return None

        if not response or not response.get("success"):
            logger.debug(
                f"No {message_type} ratings for {identity.title!r}: {(response or {}).get('error')}"
            )
            return None

        try:
            return RatingSet.from_dict(response.get("ratings") or {})
        except (KeyError, TypeError, AttributeError) as e:
            logger.error(f"Malformed ratings payload for {identity.title!r}: {e}")
            return None
