"""Rating service and the request/response channel that reaches it."""

import logging
from typing import Any, Dict, Protocol

from ratings_overlay.errors import RatingsOverlayError
from ratings_overlay.models import Identity
from ratings_overlay.rating_cache import RatingCache

logger = logging.getLogger(__name__)

CACHED = "CACHED"
FRESH = "FRESH"
CLEAR_CACHE = "CLEAR_CACHE"
GET_CACHE_STATS = "GET_CACHE_STATS"


class RatingChannel(Protocol):
    """Asynchronous request/response channel to the rating service.

    Requests look like ``{"type": "CACHED" | "FRESH", "identity": {...}}``;
    responses like ``{"success": bool, "ratings": {...}, "error": str}``.
    Implementations may raise on transport problems; callers treat that the
    same as an upstream failure.
    """

    async def request(self, message: Dict[str, Any]) -> Dict[str, Any]:
        ...


class RatingService:
    """Answers channel messages from the RatingCache.

    Every failure is turned into a ``success: False`` response so a caller
    on the other side of the channel never sees an exception from here.
    """

    def __init__(self, cache: RatingCache):
        self.cache = cache

    async def handle(self, message: Dict[str, Any]) -> Dict[str, Any]:
        """Dispatch one channel message.

        Args:
            message: Request dictionary with a ``type`` key

        Returns:
            Response dictionary with a ``success`` flag
        """
        if not isinstance(message, dict):
            return {"success": False, "error": "Malformed message"}

        message_type = message.get("type")
        logger.debug(f"Received {message_type} request")

        if message_type in (CACHED, FRESH):
            return await self._handle_ratings(message_type, message.get("identity"))

        if message_type == CLEAR_CACHE:
            return {"success": True, "cleared": self.cache.clear()}

        if message_type == GET_CACHE_STATS:
            return {"success": True, "stats": self.cache.get_stats()}

        logger.warning(f"Unknown message type: {message_type}")
        return {"success": False, "error": "Unknown message type"}

    async def _handle_ratings(self, message_type: str, payload: Any) -> Dict[str, Any]:
        try:
            identity = Identity.from_dict(payload)
        except ValueError as e:
            logger.error(f"Invalid identity payload {payload!r}: {e}")
            return {"success": False, "error": "Title is required"}

        if message_type == CACHED:
            ratings = self.cache.get_cached(identity)
            if ratings is None:
                return {"success": False, "error": "Not cached"}
            return {"success": True, "ratings": ratings.to_dict()}

        try:
            ratings = await self.cache.resolve(identity)
        except RatingsOverlayError as e:
            logger.error(f"Error fetching ratings for {identity.title!r}: {e}")
            return {"success": False, "error": str(e)}

        return {"success": True, "ratings": ratings.to_dict()}


class ServiceChannel:
    """In-process RatingChannel delivering straight to a RatingService."""

    def __init__(self, service: RatingService):
        self.service = service

    async def request(self, message: Dict[str, Any]) -> Dict[str, Any]:
        return await self.service.handle(message)
