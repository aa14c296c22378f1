"""MCP tools for inspecting and maintaining the rating cache."""

from typing import Any, Dict, List

from ratings_overlay.rating_cache import RatingCache
from ratings_overlay.service import CLEAR_CACHE, GET_CACHE_STATS, RatingService


async def get_cache_stats(service: RatingService) -> Dict[str, Any]:
    """Return cache statistics.

    Returns:
        Dictionary with keys:
        - total_items: Number of stored entries
        - size_estimate_bytes / size_estimate_kb: Serialized size
        - cache_duration_hours: Configured TTL
    """
    response = await service.handle({"type": GET_CACHE_STATS})
    return response["stats"]


async def clear_cache(service: RatingService) -> Dict[str, Any]:
    """Remove every cached rating."""
    response = await service.handle({"type": CLEAR_CACHE})
    return {"status": "success", "cleared": response["cleared"]}


async def get_cache_details(cache: RatingCache) -> List[Dict[str, Any]]:
    """List cache entries with their age and expiry flag."""
    return cache.get_detailed_info()


async def cleanup_expired_cache(cache: RatingCache) -> Dict[str, Any]:
    """Drop expired entries now instead of waiting for them to be read."""
    return {"status": "success", "removed": cache.cleanup_expired()}


async def set_cache_duration(cache: RatingCache, hours: int) -> Dict[str, Any]:
    """Change the cache TTL.

    Raises:
        ValueError: If hours is not a positive integer
    """
    cache.set_cache_duration(hours)
    return {"status": "success", "cache_duration_hours": cache.ttl_hours}
