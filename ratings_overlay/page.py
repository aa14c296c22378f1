"""Observable HTML page surface built on BeautifulSoup."""

import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from bs4 import BeautifulSoup, Tag
from bs4.element import PageElement

logger = logging.getLogger(__name__)

PARSER = "html.parser"


@dataclass
class Mutation:
    """One structural change under ``target``."""

    target: Optional[Tag]
    added_nodes: List[PageElement] = field(default_factory=list)
    removed_nodes: List[PageElement] = field(default_factory=list)


Listener = Callable[[List[Mutation]], None]


class PageDocument:
    """A parsed page that reports its own structural changes.

    Listeners receive a list of Mutation records after every change, and an
    empty list when only the logical location changed.
    """

    def __init__(self, html: str = "", location: str = "about:blank"):
        """Initialize the document.

        Args:
            html: Initial page markup
            location: Logical page location (URL)
        """
        self.soup = BeautifulSoup(html or "<html><body></body></html>", PARSER)
        self._location = location
        self._listeners: List[Listener] = []

    @property
    def location(self) -> str:
        return self._location

    @property
    def root(self) -> Tag:
        """The element under which title cards live (``<body>`` when present)."""
        return self.soup.body or self.soup

    def subscribe(self, listener: Listener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def unsubscribe(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def select(self, selector: str) -> List[Tag]:
        return self.root.select(selector)

    def contains(self, element: PageElement) -> bool:
        """Whether the element is still attached to this document."""
        if element is self.soup:
            return True
        return any(parent is self.soup for parent in element.parents)

    def insert_html(self, parent: Tag, html: str) -> List[PageElement]:
        """Append parsed markup to ``parent`` and notify listeners.

        Returns:
            The top-level nodes that were inserted
        """
        fragment = BeautifulSoup(html, PARSER)
        added = list(fragment.contents)
        for node in added:
            parent.append(node)
        self._notify([Mutation(target=parent, added_nodes=added)])
        return added

    def remove(self, element: PageElement) -> None:
        """Detach an element and notify listeners."""
        parent = element.parent
        element.extract()
        self._notify([Mutation(target=parent, removed_nodes=[element])])

    def navigate(self, location: str, html: Optional[str] = None) -> None:
        """Change the logical location, optionally swapping the body content.

        Without ``html`` this models in-page navigation (history push) that
        leaves the DOM untouched.
        """
        logger.debug(f"Navigating {self._location} -> {location}")
        self._location = location
        if html is None:
            self._notify([])
            return

        root = self.root
        removed = list(root.contents)
        for node in removed:
            node.extract()
        fragment = BeautifulSoup(html, PARSER)
        added = list((fragment.body or fragment).contents)
        for node in added:
            root.append(node)
        self._notify([Mutation(target=root, added_nodes=added, removed_nodes=removed)])

    def to_html(self) -> str:
        return str(self.soup)

    def _notify(self, mutations: List[Mutation]) -> None:
        for listener in list(self._listeners):
            try:
                listener(mutations)
            except Exception as e:
                logger.error(f"Page listener failed: {e}")
