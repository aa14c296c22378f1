"""Wires discovery, identity extraction, resolution and rendering together."""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Set

from bs4 import Tag

from ratings_overlay.discovery import DEBOUNCE_DELAY_MS, DiscoveryEngine
from ratings_overlay.extractor import extract_identity
from ratings_overlay.models import Identity, RatingSet
from ratings_overlay.page import PageDocument
from ratings_overlay.renderer import BadgeRenderer
from ratings_overlay.resolver import Resolver, ratings_differ

logger = logging.getLogger(__name__)


class RatingsOverlay:
    """Annotates title cards on a page with ratings.

    Each discovered card gets its own task: the cached ratings (if any) are
    rendered straight away, then the background revalidation result is
    rendered only if it differs from what is already shown.
    """

    def __init__(
        self,
        document: PageDocument,
        resolver: Resolver,
        renderer: Optional[BadgeRenderer] = None,
        debounce_ms: int = DEBOUNCE_DELAY_MS,
    ):
        """Initialize the overlay.

        Args:
            document: Page to annotate
            resolver: Cache-first resolver
            renderer: Badge renderer (defaults to one bound to ``document``)
            debounce_ms: Discovery debounce window
        """
        self.document = document
        self.resolver = resolver
        self.renderer = renderer or BadgeRenderer(document)
        self.engine = DiscoveryEngine(document, self._on_discovered, debounce_ms=debounce_ms)

        self.results: List[Dict[str, Any]] = []
        self._tasks: Set[asyncio.Task] = set()

    def start(self) -> None:
        self.engine.start()

    def stop(self) -> None:
        self.engine.stop()

    async def wait_idle(self) -> None:
        """Wait until every in-flight card task has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def get_status(self) -> Dict[str, Any]:
        status = self.engine.get_status()
        status["in_flight"] = len(self._tasks)
        status["annotated"] = len(self.results)
        return status

    def _on_discovered(self, card: Tag) -> None:
        identity = extract_identity(card)
        if identity is None:
            return

        task = asyncio.create_task(self._process_card(card, identity))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _process_card(self, card: Tag, identity: Identity) -> None:
        try:
            result = await self.resolver.resolve_with_cache_first(identity)

            shown: Optional[RatingSet] = None
            rendered: Optional[RatingSet] = None
            if result.cached is not None:
                shown = result.cached
                if self.renderer.render(card, shown, is_from_cache=True):
                    rendered = shown

            fresh = await result.fresh
            if fresh is not None and ratings_differ(shown, fresh):
                shown = fresh
                if self.renderer.render(card, shown, is_from_cache=False):
                    rendered = shown

            # Detached cards are not reported as annotated
            if rendered is not None:
                self.results.append({
                    "identity": identity.to_dict(),
                    "ratings": rendered.to_dict(),
                })
        except Exception as e:
            logger.error(f"Error processing card {identity.title!r}: {e}")
