"""Best-effort title/year extraction from a title card."""

import logging
import re
from typing import Callable, List, Optional

from bs4 import Tag

from ratings_overlay.models import Identity, clean_title

logger = logging.getLogger(__name__)

YEAR_RE = re.compile(r"\b(19\d{2}|20\d{2})\b")
LEADING_YEAR_RE = re.compile(r"^(19\d{2}|20\d{2})\s*[|,]")

YEAR_SELECTORS = [
    ".year",
    ".titleCard-year",
    ".item-year",
    ".video-metadata-year",
    ".year-text",
    ".release-year",
    '[data-uia="mini-modal-year"]',
    ".metadata-year",
]
BILLBOARD_YEAR_SELECTOR = ".billboard-year, .hero-year, .preview-year"


def _text(element: Optional[Tag]) -> Optional[str]:
    if element is None:
        return None
    return element.get_text().strip() or None


def _attr(element: Optional[Tag], name: str) -> Optional[str]:
    if element is None:
        return None
    value = element.get(name)
    if isinstance(value, list):
        value = " ".join(value)
    return value.strip() if value and value.strip() else None


def _title_attribute(card: Tag) -> Optional[str]:
    return _text(card.select_one('[data-uia="video-title"]'))


def _link_label(card: Tag) -> Optional[str]:
    return _attr(card.select_one("a[aria-label]"), "aria-label")


def _image_alt(card: Tag) -> Optional[str]:
    return _attr(card.select_one("img[alt]"), "alt")


def _fallback_text(card: Tag) -> Optional[str]:
    return _text(card.select_one(".fallback-text"))


def _dialog_label(card: Tag) -> Optional[str]:
    if card.get("role") != "dialog":
        return None
    return _attr(card, "aria-label")


TITLE_STRATEGIES: List[Callable[[Tag], Optional[str]]] = [
    _title_attribute,
    _link_label,
    _image_alt,
    _fallback_text,
    _dialog_label,
]


def extract_title(card: Tag) -> Optional[str]:
    """Return the first non-empty title any strategy finds, cleaned."""
    for strategy in TITLE_STRATEGIES:
        title = strategy(card)
        if title:
            logger.debug(f"Title via {strategy.__name__}: {title!r}")
            return clean_title(title)
    return None


def extract_year_from_text(text: str) -> Optional[str]:
    match = YEAR_RE.search(text or "")
    return match.group(1) if match else None


def extract_year(card: Tag) -> Optional[str]:
    """Find a release year on the card.

    Strategies, first match wins:
        1. dedicated year elements
        2. any 19xx/20xx token in the card text
        3. short metadata strings that start with a year and a separator,
           e.g. "2024 | 2h 30m | Drama"
        4. billboard/hero year elements
    """
    for selector in YEAR_SELECTORS:
        year = extract_year_from_text(_text(card.select_one(selector)) or "")
        if year:
            return year

    year = extract_year_from_text(card.get_text(" "))
    if year:
        return year

    for element in card.select("span, div, p"):
        match = LEADING_YEAR_RE.match(element.get_text().strip())
        if match:
            return match.group(1)

    return extract_year_from_text(_text(card.select_one(BILLBOARD_YEAR_SELECTOR)) or "")


def extract_identity(card: Tag) -> Optional[Identity]:
    """Derive an Identity from a title card.

    Returns:
        Identity, or None when no title could be found (skip the card)
    """
    try:
        title = extract_title(card)
        if not title:
            logger.debug("Could not extract title from card")
            return None
        return Identity(title=title, year=extract_year(card))
    except (AttributeError, TypeError, ValueError) as e:
        logger.debug(f"Identity extraction failed: {e}")
        return None
