"""OMDb API client and rating extraction."""

import asyncio
import logging
from typing import Any, Dict, List, Optional

import requests

from ratings_overlay.errors import UpstreamRejected, UpstreamUnavailable
from ratings_overlay.models import Rating, RatingSet

logger = logging.getLogger(__name__)

OMDB_API_BASE_URL = "https://www.omdbapi.com/"
UNAVAILABLE = "N/A"
ROTTEN_TOMATOES_SOURCE = "Rotten Tomatoes"


class OmdbClient:
    """Async wrapper around the OMDb HTTP API.

    Requests run through ``asyncio.to_thread`` so the blocking ``requests``
    session never stalls the event loop. Each call makes exactly one HTTP
    request; retrying is the caller's business (see RatingCache).
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = OMDB_API_BASE_URL,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ):
        """Initialize the client.

        Args:
            api_key: OMDb API key
            base_url: API endpoint (overridable for tests)
            timeout: Per-request timeout in seconds
            session: Optional preconfigured requests session
        """
        self.api_key = api_key
        self.base_url = base_url
        self.timeout = timeout
        self.session = session or requests.Session()
        logger.info(f"OMDb client initialized (API key {'present' if api_key else 'missing'})")

    async def search(
        self,
        title: str,
        year: Optional[str] = None,
        media_type: Optional[str] = None,
        page: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Search OMDb for titles (``s=`` query).

        Args:
            title: Title to search for
            year: Release year filter (optional)
            media_type: "movie", "series" or "episode" (optional)
            page: Result page (optional)

        Returns:
            Dictionary with ``results`` (list of summaries) and ``total_results``.

        Raises:
            ValueError: If title is empty
            UpstreamUnavailable: On transport failure
            UpstreamRejected: If OMDb answers with ``Response: False``
        """
        if not title or not title.strip():
            raise ValueError("Title is required for search")

        params: Dict[str, Any] = {"s": title.strip()}
        if year:
            params["y"] = year
        if media_type:
            params["type"] = media_type
        if page:
            params["page"] = page

        data = await self._get(params)
        return {
            "results": data.get("Search", []),
            "total_results": int(data.get("totalResults") or 0),
        }

    async def get_by_id(self, imdb_id: str, plot: str = "short") -> Dict[str, Any]:
        """Fetch full details for an IMDb ID (``i=`` query).

        Raises:
            ValueError: If the ID does not look like an IMDb ID
            UpstreamUnavailable: On transport failure
            UpstreamRejected: If OMDb answers with ``Response: False``
        """
        if not imdb_id or not imdb_id.startswith("tt"):
            raise ValueError('Invalid IMDb ID format. Must start with "tt"')
        return await self._get({"i": imdb_id, "plot": plot})

    async def get_by_title(
        self,
        title: str,
        year: Optional[str] = None,
        media_type: Optional[str] = None,
        plot: str = "short",
    ) -> Dict[str, Any]:
        """Fetch full details for the best title match (``t=`` query).

        Raises:
            ValueError: If title is empty
            UpstreamUnavailable: On transport failure
            UpstreamRejected: If OMDb answers with ``Response: False``
        """
        if not title or not title.strip():
            raise ValueError("Title is required")

        params: Dict[str, Any] = {"t": title.strip(), "plot": plot}
        if year:
            params["y"] = year
        if media_type:
            params["type"] = media_type
        return await self._get(params)

    async def _get(self, params: Dict[str, Any]) -> Dict[str, Any]:
        query = {"apikey": self.api_key, **params}
        masked = {k: v for k, v in query.items() if k != "apikey"}
        logger.debug(f"OMDb request: {masked}")

        def _sync_get() -> requests.Response:
            return self.session.get(self.base_url, params=query, timeout=self.timeout)

        try:
            response = await asyncio.to_thread(_sync_get)
        except requests.RequestException as e:
            raise UpstreamUnavailable(f"OMDb request failed: {e}") from e

        if not response.ok:
            raise UpstreamUnavailable(
                f"HTTP error {response.status_code} {response.reason}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise UpstreamUnavailable(f"OMDb returned invalid JSON: {e}") from e

        if not isinstance(data, dict):
            raise UpstreamUnavailable(f"OMDb returned unexpected payload: {type(data).__name__}")

        if str(data.get("Response", "True")).lower() == "false":
            error = data.get("Error", "Unknown error")
            raise UpstreamRejected(f"OMDb API Error: {error}", api_error=error)

        return data


def _available(value: Any) -> bool:
    return bool(value) and value != UNAVAILABLE


def extract_ratings(omdb_data: Optional[Dict[str, Any]]) -> RatingSet:
    """Map an OMDb detail payload onto a RatingSet.

    Missing fields and "N/A" values leave the slot empty; this is not an error.
    """
    if not isinstance(omdb_data, dict):
        logger.error("Invalid OMDb data provided for rating extraction")
        return RatingSet()

    imdb = None
    if _available(omdb_data.get("imdbRating")):
        imdb = Rating(
            value=omdb_data["imdbRating"],
            votes=omdb_data.get("imdbVotes") or UNAVAILABLE,
            out_of="10",
        )

    metacritic = None
    if _available(omdb_data.get("Metascore")):
        metacritic = Rating(value=omdb_data["Metascore"], out_of="100")

    rotten_tomatoes = None
    entries: List[Dict[str, Any]] = omdb_data.get("Ratings") or []
    if isinstance(entries, list):
        for entry in entries:
            if isinstance(entry, dict) and entry.get("Source") == ROTTEN_TOMATOES_SOURCE:
                if _available(entry.get("Value")):
                    rotten_tomatoes = Rating(value=entry["Value"], source=ROTTEN_TOMATOES_SOURCE)
                break

    ratings = RatingSet(imdb=imdb, metacritic=metacritic, rotten_tomatoes=rotten_tomatoes)
    logger.debug(f"Extracted ratings for {omdb_data.get('Title', 'Unknown')!r}: {ratings.to_dict()}")
    return ratings


def format_ratings(ratings: RatingSet) -> str:
    """Render ratings as a single line, e.g. ``IMDb: 8.8/10 | MC: 74/100 | RT: 87%``."""
    parts = []
    if ratings.imdb:
        parts.append(f"IMDb: {ratings.imdb.value}/10")
    if ratings.metacritic:
        parts.append(f"MC: {ratings.metacritic.value}/100")
    if ratings.rotten_tomatoes:
        parts.append(f"RT: {ratings.rotten_tomatoes.value}")
    return " | ".join(parts) if parts else "No ratings available"
