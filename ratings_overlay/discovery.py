"""Debounced discovery of title cards as the page changes."""

import asyncio
import logging
import weakref
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional

from bs4 import Tag

from ratings_overlay.page import Mutation, PageDocument

logger = logging.getLogger(__name__)

DEBOUNCE_DELAY_MS = 200

CARD_SELECTORS = [
    '[data-uia="video-card"]',
    ".title-card-container",
    ".slider-item",
    ".my-list-item",
    '[role="dialog"]',
    ".billboard-row",
    ".jawBone",
]


class DiscoveryState(Enum):
    """Debounce state."""
    IDLE = "idle"
    BATCH_PENDING = "batch_pending"


class ProcessedSet:
    """Identity-keyed set of elements that never keeps its members alive.

    Page elements compare structurally, so two distinct cards with the same
    markup would collide in a regular set. Membership here is by object
    identity only.
    """

    def __init__(self):
        self._refs: Dict[int, "weakref.ref[Any]"] = {}

    def add(self, element: Any) -> None:
        key = id(element)

        def _forget(ref, key=key):
            if self._refs.get(key) is ref:
                del self._refs[key]

        self._refs[key] = weakref.ref(element, _forget)

    def __contains__(self, element: Any) -> bool:
        ref = self._refs.get(id(element))
        return ref is not None and ref() is element

    def __len__(self) -> int:
        return sum(1 for ref in self._refs.values() if ref() is not None)

    def clear(self) -> None:
        self._refs.clear()


class DiscoveryEngine:
    """Turns page change notifications into one-shot discovery events.

    Notifications are collected into a batch behind a trailing-edge timer
    that restarts on every notification. When it fires, the batch is scanned
    for title cards and every card not yet processed in the current
    navigation epoch is emitted exactly once.
    """

    def __init__(
        self,
        document: PageDocument,
        on_discovered: Callable[[Tag], None],
        selectors: Optional[List[str]] = None,
        debounce_ms: int = DEBOUNCE_DELAY_MS,
    ):
        """Initialize the engine.

        Args:
            document: Page surface to observe
            on_discovered: Called once per newly discovered card
            selectors: CSS selectors identifying title cards
            debounce_ms: Quiet period before a batch is processed
        """
        self.document = document
        self.on_discovered = on_discovered
        self.selectors = list(selectors or CARD_SELECTORS)
        self.debounce_ms = debounce_ms

        self.processed = ProcessedSet()
        self.state = DiscoveryState.IDLE
        self.is_running = False

        self._selector = ", ".join(self.selectors)
        self._pending: List[Mutation] = []
        self._timer: Optional[asyncio.TimerHandle] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._last_location: Optional[str] = None

    def start(self) -> None:
        """Scan the whole document, then start listening for changes."""
        if self.is_running:
            logger.warning("Discovery engine already running")
            return

        self._loop = asyncio.get_running_loop()
        self._last_location = self.document.location
        self.document.subscribe(self._on_notification)
        self.is_running = True
        logger.info(f"Discovery started on {self._last_location}")
        self.scan_document()

    def stop(self) -> None:
        """Stop listening and drop any pending batch."""
        if not self.is_running:
            return

        self.document.unsubscribe(self._on_notification)
        self._cancel_timer()
        self._pending = []
        self.state = DiscoveryState.IDLE
        self.is_running = False
        self._loop = None
        logger.info("Discovery stopped")

    def get_status(self) -> Dict[str, Any]:
        return {
            "is_running": self.is_running,
            "state": self.state.value,
            "pending_notifications": len(self._pending),
            "processed_count": len(self.processed),
            "location": self._last_location,
        }

    def scan_document(self) -> int:
        """Emit every card currently in the document. Bypasses the debounce.

        Returns:
            Number of cards emitted
        """
        try:
            cards = self.document.select(self._selector)
        except Exception as e:
            logger.error(f"Full document scan failed: {e}")
            return 0

        logger.debug(f"Full scan found {len(cards)} title cards")
        return self._emit(cards)

    def reset(self) -> None:
        """Start a new navigation epoch: forget processed cards and rescan."""
        logger.info(f"Location changed to {self.document.location}, rescanning")
        self._cancel_timer()
        self._pending = []
        self.state = DiscoveryState.IDLE
        self.processed.clear()
        self._last_location = self.document.location
        self.scan_document()

    def _on_notification(self, mutations: List[Mutation]) -> None:
        if self.document.location != self._last_location:
            self.reset()
            return

        if not mutations:
            return

        self._pending.extend(mutations)
        self._arm_timer()

    def _arm_timer(self) -> None:
        self._cancel_timer()
        self._timer = self._loop.call_later(self.debounce_ms / 1000, self._flush)
        self.state = DiscoveryState.BATCH_PENDING

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _flush(self) -> None:
        self._timer = None
        self.state = DiscoveryState.IDLE
        batch, self._pending = self._pending, []
        logger.debug(f"Debounce fired, processing {len(batch)} notifications")
        self._emit(self._collect(batch))

    def _collect(self, batch: Iterable[Mutation]) -> List[Tag]:
        cards: List[Tag] = []
        for mutation in batch:
            try:
                for node in mutation.added_nodes:
                    if not isinstance(node, Tag):
                        continue
                    if node.css.match(self._selector):
                        cards.append(node)
                    cards.extend(node.select(self._selector))
            except Exception as e:
                logger.warning(f"Skipping malformed notification {mutation!r}: {e}")
        return cards

    def _emit(self, cards: Iterable[Tag]) -> int:
        seen = set()
        emitted = 0
        for card in cards:
            if id(card) in seen:
                continue
            seen.add(id(card))

            if card in self.processed:
                continue
            self.processed.add(card)
            emitted += 1

            try:
                self.on_discovered(card)
            except Exception as e:
                logger.error(f"Discovery callback failed: {e}")

        if emitted:
            logger.info(f"Discovered {emitted} new title cards")
        return emitted
