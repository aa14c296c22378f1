"""MCP tools for rating lookups and page annotation."""

import logging
from typing import Any, Dict, Optional

from ratings_overlay.discovery import DEBOUNCE_DELAY_MS
from ratings_overlay.models import RatingSet
from ratings_overlay.omdb import OmdbClient, format_ratings
from ratings_overlay.overlay import RatingsOverlay
from ratings_overlay.page import PageDocument
from ratings_overlay.resolver import Resolver
from ratings_overlay.service import CACHED, FRESH, RatingService

logger = logging.getLogger(__name__)


def _identity_payload(title: str, year: Optional[str], kind: Optional[str]) -> Dict[str, Any]:
    return {"title": title, "year": str(year) if year else None, "kind": kind}


async def get_ratings(
    service: RatingService,
    title: str,
    year: Optional[str] = None,
    kind: Optional[str] = None,
) -> Dict[str, Any]:
    """Fetch fresh ratings for a title, refreshing the cache.

    Args:
        service: RatingService instance
        title: Title to look up
        year: Release year (optional)
        kind: "movie", "series" or "episode" (optional)

    Returns:
        Response dictionary with ``success`` and either ``ratings`` or ``error``

    Example:
        >>> result = await get_ratings(service, "Inception", "2010")
        >>> result["ratings"]["imdb"]["value"]
        '8.8'
    """
    return await service.handle({"type": FRESH, "identity": _identity_payload(title, year, kind)})


async def get_cached_ratings(
    service: RatingService,
    title: str,
    year: Optional[str] = None,
) -> Dict[str, Any]:
    """Return cached ratings without touching the upstream API."""
    return await service.handle({"type": CACHED, "identity": _identity_payload(title, year, None)})


async def format_title_ratings(
    service: RatingService,
    title: str,
    year: Optional[str] = None,
) -> str:
    """Ratings for a title as one line of text, served from cache when fresh."""
    response = await get_cached_ratings(service, title, year)
    if not response.get("success"):
        response = await get_ratings(service, title, year)
    if not response.get("success"):
        return f"No ratings available ({response.get('error')})"
    return format_ratings(RatingSet.from_dict(response["ratings"]))


async def search_titles(
    client: OmdbClient,
    title: str,
    year: Optional[str] = None,
    media_type: Optional[str] = None,
    page: Optional[int] = None,
) -> Dict[str, Any]:
    """Search the upstream API for candidate titles.

    Raises:
        ValueError: If title is empty
        UpstreamUnavailable: On transport failure
        UpstreamRejected: If nothing matched
    """
    return await client.search(title, year=year, media_type=media_type, page=page)


async def annotate_page(
    resolver: Resolver,
    html: str,
    location: str = "about:blank",
    debounce_ms: int = DEBOUNCE_DELAY_MS,
) -> Dict[str, Any]:
    """Discover title cards in an HTML page and add rating badges.

    Args:
        resolver: Cache-first resolver
        html: Page markup
        location: Logical page URL
        debounce_ms: Discovery debounce window

    Returns:
        Dictionary with the annotated cards, the rewritten HTML and the
        discovery status
    """
    document = PageDocument(html, location=location)
    overlay = RatingsOverlay(document, resolver, debounce_ms=debounce_ms)
    overlay.start()
    try:
        await overlay.wait_idle()
        status = overlay.get_status()
    finally:
        overlay.stop()

    logger.info(f"Annotated {len(overlay.results)} cards on {location}")
    return {
        "cards": overlay.results,
        "html": document.to_html(),
        "status": status,
    }
