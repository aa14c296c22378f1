"""Minimal rating badge written into a title card."""

import logging
from typing import Optional

from bs4 import BeautifulSoup, Tag

from ratings_overlay.models import Rating, RatingSet
from ratings_overlay.page import PARSER, PageDocument

logger = logging.getLogger(__name__)

BADGE_CLASS = "ratings-badge"
UNAVAILABLE_TEXT = "N/A"
INJECTION_SELECTORS = [
    ".titleCard--metadataWrapper, .titleCard-metadataWrapper",
    ".boxart-container, .boxart-size-16x9",
]


class BadgeRenderer:
    """Replace a card's badge with one showing all three rating slots."""

    def __init__(self, document: Optional[PageDocument] = None):
        self.document = document
        self._factory = BeautifulSoup("", PARSER)

    def render(self, card: Tag, ratings: RatingSet, is_from_cache: bool = False) -> bool:
        """Write the badge for ``ratings`` into ``card``.

        Returns:
            False when the card is no longer attached to the page (nothing
            is written), True otherwise
        """
        if not self._is_attached(card):
            logger.debug("Card detached before render, skipping")
            return False

        for existing in card.select(f".{BADGE_CLASS}"):
            existing.decompose()

        badge = self._factory.new_tag(
            "div",
            attrs={
                "class": [BADGE_CLASS],
                "data-source": "cache" if is_from_cache else "fresh",
            },
        )
        badge.append(self._slot("IMDb", "imdb", ratings.imdb))
        badge.append(self._slot("MC", "metacritic", ratings.metacritic))
        badge.append(self._slot("RT", "rt", ratings.rotten_tomatoes))

        self._injection_point(card).append(badge)
        logger.debug(f"Badge rendered [{'CACHED' if is_from_cache else 'FRESH'}]")
        return True

    def _is_attached(self, card: Tag) -> bool:
        if self.document is not None:
            return self.document.contains(card)
        return card.parent is not None

    def _slot(self, label: str, source: str, rating: Optional[Rating]) -> Tag:
        classes = ["rating-item", f"rating-{source}"] + ([] if rating else ["rating-na"])
        item = self._factory.new_tag("div", attrs={"class": classes})

        label_span = self._factory.new_tag("span", attrs={"class": ["rating-label"]})
        label_span.string = label
        value_span = self._factory.new_tag(
            "span", attrs={"class": ["rating-value"] + ([] if rating else ["na"])}
        )
        value_span.string = rating.value if rating else UNAVAILABLE_TEXT

        item.append(label_span)
        item.append(value_span)
        return item

    @staticmethod
    def _injection_point(card: Tag) -> Tag:
        for selector in INJECTION_SELECTORS:
            point = card.select_one(selector)
            if point is not None:
                return point
        return card
