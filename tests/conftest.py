"""Shared fixtures for ratings overlay tests."""

import pytest
from unittest.mock import AsyncMock, MagicMock

from ratings_overlay.rating_cache import RatingCache


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, now_ms: float = 1_700_000_000_000):
        self.now_ms = now_ms

    def __call__(self) -> float:
        return self.now_ms

    def advance(self, ms: float) -> None:
        self.now_ms += ms


@pytest.fixture
def inception_payload():
    """OMDb detail payload for Inception."""
    return {
        "Title": "Inception",
        "Year": "2010",
        "imdbID": "tt1375666",
        "Type": "movie",
        "imdbRating": "8.8",
        "imdbVotes": "2,500,000",
        "Metascore": "74",
        "Ratings": [
            {"Source": "Internet Movie Database", "Value": "8.8/10"},
            {"Source": "Rotten Tomatoes", "Value": "87%"},
            {"Source": "Metacritic", "Value": "74/100"},
        ],
        "Response": "True",
    }


@pytest.fixture
def partial_payload():
    """Payload with a missing Metascore."""
    return {
        "Title": "Some Show",
        "imdbRating": "8.5",
        "Metascore": "N/A",
        "Ratings": [{"Source": "Rotten Tomatoes", "Value": "91%"}],
        "Response": "True",
    }


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def mock_omdb_client(inception_payload):
    """OmdbClient double whose title lookup returns Inception."""
    client = MagicMock()
    client.get_by_title = AsyncMock(return_value=inception_payload)
    client.search = AsyncMock(return_value={"results": [], "total_results": 0})
    return client


@pytest.fixture
def no_sleep():
    return AsyncMock()


@pytest.fixture
def rating_cache(mock_omdb_client, clock, no_sleep):
    """RatingCache backed by the mock client, fake clock and instant sleep."""
    return RatingCache(client=mock_omdb_client, clock=clock, sleep=no_sleep)


@pytest.fixture
def browse_page_html():
    """A browse row with three cards, one of them without any title."""
    return """
    <html><body>
      <div class="row">
        <div class="slider-item" id="card-1">
          <a aria-label="Inception" href="/title/1"></a>
          <span class="year">2010</span>
          <div class="boxart-container"></div>
        </div>
        <div class="slider-item" id="card-2">
          <img alt="Stranger Things: Season 4" src="st.jpg"/>
          <p>2016 | 4 Seasons | Sci-Fi</p>
        </div>
        <div class="slider-item" id="card-3"></div>
      </div>
    </body></html>
    """
