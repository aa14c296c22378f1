"""Data model shared by the discovery pipeline and the rating cache."""

import re
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, Optional


_WHITESPACE_RE = re.compile(r"\s+")


def clean_title(title: str) -> str:
    """Strip a trailing season/episode qualifier from a title.

    "Stranger Things: Season 4: Chapter One" becomes "Stranger Things".
    The cut only happens when at least 2 characters precede the first colon,
    so titles such as "X: The Movie" keep their full text.

    Args:
        title: Raw title text

    Returns:
        Cleaned title
    """
    title = title.strip()
    before, sep, _ = title.partition(":")
    if sep and len(before.strip()) >= 2:
        return before.strip()
    return title


def normalize_title(title: str) -> str:
    """Normalize a title for cache keying (cleaned, collapsed, lower-cased)."""
    return _WHITESPACE_RE.sub(" ", clean_title(title)).lower()


def make_cache_key(title: str, year: Optional[str] = None) -> str:
    """Build the cache key for a rated work: ``normalized-title|year``."""
    return f"{normalize_title(title)}|{year or ''}"


@dataclass(frozen=True)
class Identity:
    """Best-effort identity of a title card."""

    title: str
    year: Optional[str] = None
    kind: Optional[str] = None

    def __post_init__(self):
        if not self.title or not self.title.strip():
            raise ValueError("Identity title must be non-empty")
        # Upstream query and cache key must use the same title
        object.__setattr__(self, "title", clean_title(self.title))

    @property
    def cache_key(self) -> str:
        return make_cache_key(self.title, self.year)

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {"title": self.title, "year": self.year, "kind": self.kind}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Identity":
        """Build an Identity from a message payload.

        Raises:
            ValueError: If the payload carries no usable title
        """
        if not isinstance(data, dict):
            raise ValueError("Identity payload must be a mapping")
        year = data.get("year")
        return cls(
            title=str(data.get("title") or "").strip(),
            year=str(year) if year else None,
            kind=data.get("kind") or data.get("type"),
        )


@dataclass(frozen=True)
class Rating:
    """A single source rating; extra fields depend on the source."""

    value: str
    out_of: Optional[str] = None
    votes: Optional[str] = None
    source: Optional[str] = None

    def to_dict(self) -> Dict[str, str]:
        return {k: v for k, v in asdict(self).items() if v is not None}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["Rating"]:
        if not data:
            return None
        return cls(
            value=str(data["value"]),
            out_of=data.get("out_of"),
            votes=data.get("votes"),
            source=data.get("source"),
        )


@dataclass(frozen=True)
class RatingSet:
    """IMDb / Metacritic / Rotten Tomatoes ratings.

    All three slots always exist; ``None`` marks a source with no data.
    """

    imdb: Optional[Rating] = None
    metacritic: Optional[Rating] = None
    rotten_tomatoes: Optional[Rating] = None

    @property
    def is_empty(self) -> bool:
        return self.imdb is None and self.metacritic is None and self.rotten_tomatoes is None

    def to_dict(self) -> Dict[str, Optional[Dict[str, str]]]:
        return {
            "imdb": self.imdb.to_dict() if self.imdb else None,
            "metacritic": self.metacritic.to_dict() if self.metacritic else None,
            "rotten_tomatoes": self.rotten_tomatoes.to_dict() if self.rotten_tomatoes else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RatingSet":
        return cls(
            imdb=Rating.from_dict(data.get("imdb")),
            metacritic=Rating.from_dict(data.get("metacritic")),
            rotten_tomatoes=Rating.from_dict(data.get("rotten_tomatoes")),
        )


@dataclass
class CacheEntry:
    """A stored upstream resolution. Owned by RatingCache."""

    key: str
    payload: RatingSet
    stored_at_ms: float
    identity: Optional[Identity] = field(default=None, compare=False)

    def age_ms(self, now_ms: float) -> float:
        return now_ms - self.stored_at_ms

    def is_expired(self, now_ms: float, ttl_ms: float) -> bool:
        return self.age_ms(now_ms) > ttl_ms
