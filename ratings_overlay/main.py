"""Ratings Overlay MCP Server - Main entry point."""

import os
import logging
from pathlib import Path
from typing import Any, Dict, Optional
from contextlib import asynccontextmanager

from mcp.server import FastMCP

from ratings_overlay.discovery import DEBOUNCE_DELAY_MS
from ratings_overlay.omdb import OmdbClient
from ratings_overlay.rating_cache import (
    DEFAULT_TTL_HOURS,
    MAX_RETRY_ATTEMPTS,
    RETRY_BASE_DELAY,
    RatingCache,
)
from ratings_overlay.resolver import Resolver
from ratings_overlay.service import RatingService, ServiceChannel
from ratings_overlay.tools import cache as cache_tools
from ratings_overlay.tools import ratings as ratings_tools


def load_config(config_dir: Optional[Path] = None):
    """Load configuration from ~/.config/ratings-overlay/.env or current directory."""
    # Try config directory first
    config_dir = config_dir or Path.home() / ".config" / "ratings-overlay"
    config_file = config_dir / ".env"

    if config_file.exists():
        env_path = config_file
    else:
        # Fallback to current directory
        env_path = Path.cwd() / ".env"

    if env_path.exists():
        with open(env_path) as f:
            for line in f:
                line = line.strip()
                if line and not line.startswith('#'):
                    key, _, value = line.partition('=')
                    if key and value:
                        os.environ.setdefault(key.strip(), value.strip())
        return env_path
    return None


def get_env_with_fallback(new_key: str, old_key: Optional[str] = None, required: bool = True) -> Optional[str]:
    """Get environment variable with fallback to old name and deprecation warning."""
    value = os.getenv(new_key)
    if value:
        return value

    old_value = os.getenv(old_key) if old_key else None
    if old_value:
        logging.getLogger(__name__).warning(
            f"Environment variable '{old_key}' is deprecated. "
            f"Please update to '{new_key}' in your configuration."
        )
        return old_value

    if required:
        legacy = f" (or legacy {old_key})" if old_key else ""
        raise ValueError(f"Missing required environment variable: {new_key}{legacy}")

    return None


def read_settings() -> Dict[str, Any]:
    """Collect server settings from the environment.

    Raises:
        ValueError: If the API key is missing or a numeric setting is invalid
    """
    return {
        "api_key": get_env_with_fallback("RATINGS_OVERLAY_OMDB_API_KEY", "OMDB_API_KEY"),
        "cache_hours": int(
            get_env_with_fallback("RATINGS_OVERLAY_CACHE_HOURS", "CACHE_DURATION_HOURS", required=False)
            or DEFAULT_TTL_HOURS
        ),
        "max_retries": int(
            get_env_with_fallback("RATINGS_OVERLAY_MAX_RETRIES", required=False) or MAX_RETRY_ATTEMPTS
        ),
        "retry_delay": float(
            get_env_with_fallback("RATINGS_OVERLAY_RETRY_DELAY", required=False) or RETRY_BASE_DELAY
        ),
        "debounce_ms": int(
            get_env_with_fallback("RATINGS_OVERLAY_DEBOUNCE_MS", required=False) or DEBOUNCE_DELAY_MS
        ),
    }


# Load configuration before anything else
config_path = load_config()

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

if config_path:
    logger.info(f"Loaded configuration from: {config_path}")
else:
    logger.warning("No .env file found. Using environment variables only.")


# Global instances (initialized in lifespan)
omdb_client: Optional[OmdbClient] = None
rating_cache: Optional[RatingCache] = None
rating_service: Optional[RatingService] = None
resolver: Optional[Resolver] = None
debounce_ms: int = DEBOUNCE_DELAY_MS


@asynccontextmanager
async def lifespan(mcp: FastMCP):
    """Lifespan context manager for startup and shutdown."""
    global omdb_client, rating_cache, rating_service, resolver, debounce_ms

    logger.info("Starting Ratings Overlay MCP Server...")

    settings = read_settings()

    omdb_client = OmdbClient(api_key=settings["api_key"])

    logger.info("Initializing rating cache...")
    rating_cache = RatingCache(
        client=omdb_client,
        ttl_hours=settings["cache_hours"],
        max_retries=settings["max_retries"],
        retry_delay=settings["retry_delay"],
    )
    rating_service = RatingService(rating_cache)
    resolver = Resolver(ServiceChannel(rating_service))
    debounce_ms = settings["debounce_ms"]

    logger.info("Ratings Overlay MCP Server started successfully!")

    yield

    logger.info("Shutting down Ratings Overlay MCP Server...")
    omdb_client.session.close()
    logger.info("Ratings Overlay MCP Server shutdown complete.")


# Create FastMCP instance
mcp = FastMCP(
    "Ratings Overlay",
    lifespan=lifespan
)


# =============================================================================
# Rating Tools
# =============================================================================

@mcp.tool()
async def get_ratings(title: str, year: Optional[str] = None, kind: Optional[str] = None) -> dict:
    """Fetch fresh IMDb, Metacritic and Rotten Tomatoes ratings for a title.

    Args:
        title: Movie or series title
        year: Release year (optional)
        kind: "movie", "series" or "episode" (optional)
    """
    return await ratings_tools.get_ratings(rating_service, title, year, kind)


@mcp.tool()
async def get_cached_ratings(title: str, year: Optional[str] = None) -> dict:
    """Return cached ratings for a title without calling the upstream API.

    Args:
        title: Movie or series title
        year: Release year (optional)
    """
    return await ratings_tools.get_cached_ratings(rating_service, title, year)


@mcp.tool()
async def format_title_ratings(title: str, year: Optional[str] = None) -> str:
    """Ratings for a title as a single line of text.

    Args:
        title: Movie or series title
        year: Release year (optional)
    """
    return await ratings_tools.format_title_ratings(rating_service, title, year)


@mcp.tool()
async def search_titles(
    title: str,
    year: Optional[str] = None,
    media_type: Optional[str] = None,
    page: Optional[int] = None,
) -> dict:
    """Search OMDb for matching titles.

    Args:
        title: Title to search for
        year: Release year (optional)
        media_type: "movie", "series" or "episode" (optional)
        page: Result page (optional)
    """
    return await ratings_tools.search_titles(omdb_client, title, year, media_type, page)


@mcp.tool()
async def annotate_page(html: str, location: str = "about:blank") -> dict:
    """Find title cards in an HTML page and add rating badges to them.

    Args:
        html: Page markup
        location: Page URL
    """
    return await ratings_tools.annotate_page(resolver, html, location, debounce_ms)


# =============================================================================
# Cache Tools
# =============================================================================

@mcp.tool()
async def get_cache_stats() -> dict:
    """Get rating cache statistics."""
    return await cache_tools.get_cache_stats(rating_service)


@mcp.tool()
async def get_cache_details() -> list[dict]:
    """List rating cache entries with age and expiry."""
    return await cache_tools.get_cache_details(rating_cache)


@mcp.tool()
async def clear_cache() -> dict:
    """Remove every cached rating."""
    return await cache_tools.clear_cache(rating_service)


@mcp.tool()
async def cleanup_expired_cache() -> dict:
    """Drop expired cache entries."""
    return await cache_tools.cleanup_expired_cache(rating_cache)


@mcp.tool()
async def set_cache_duration(hours: int) -> dict:
    """Change how long cached ratings stay fresh.

    Args:
        hours: Cache duration in hours (positive integer)
    """
    return await cache_tools.set_cache_duration(rating_cache, hours)


def main():
    """Main entry point."""
    logger.info("Ratings Overlay MCP Server starting...")
    mcp.run()


if __name__ == "__main__":
    main()
