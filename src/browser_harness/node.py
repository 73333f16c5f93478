"""Handles onto single elements of the page a session is looking at."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator, Sequence
from typing import TYPE_CHECKING, Any, Optional, Union

from .document import DocumentSnapshot
from .errors import StaleElementError
from .models import Interaction, InteractionType, Selector

if TYPE_CHECKING:
    from .session import Session

LOGGER = logging.getLogger(__name__)


class Node:
    """Reference to one element, addressed by its path in the document.

    The handle remembers the document generation it was resolved against.
    When the session has moved on to a newer snapshot the handle checks that
    its element is still there (re-resolving through its selector when it has
    one) before reading or acting, and raises :class:`StaleElementError`
    otherwise.
    """

    def __init__(
        self,
        session: "Session",
        path: str,
        *,
        generation: int,
        selector: Optional[Selector] = None,
        scope: Optional[str] = None,
        text: Optional[str] = None,
    ) -> None:
        self._session = session
        self._path = path
        self._generation = generation
        self._selector = selector
        self._scope = scope
        self._text_filter = text
        self._cache: dict[str, Any] = {}

    def __repr__(self) -> str:
        return f"<Node {self._path}>"

    @property
    def path(self) -> str:
        return self._path

    @property
    def selector(self) -> Optional[Selector]:
        return self._selector

    # Reading -----------------------------------------------------------------

    @property
    def text(self) -> str:
        return self._read("text", lambda document: self._driver.node_text(document, self._path))

    @property
    def value(self) -> Optional[str | list[str]]:
        return self._read("value", lambda document: self._driver.node_value(document, self._path))

    @property
    def tag_name(self) -> str:
        document = self._current_document()
        element = document.element_at(self._path)
        if element is None:
            raise StaleElementError(f"Element at {self._path} is no longer on the page")
        return element.tag

    @property
    def checked(self) -> bool:
        document = self._current_document()
        return self._driver.node_checked(document, self._path)

    @property
    def selected(self) -> bool:
        document = self._current_document()
        return self._driver.node_selected(document, self._path)

    def attribute(self, name: str) -> Optional[str]:
        document = self._current_document()
        return self._driver.node_attribute(document, self._path, name)

    def __getitem__(self, name: str) -> Optional[str]:
        return self.attribute(name)

    # Acting ------------------------------------------------------------------

    def set(self, value: Union[str, bool]) -> None:
        if isinstance(value, bool):
            self._perform(InteractionType.CHECK if value else InteractionType.UNCHECK)
        else:
            self._perform(InteractionType.SET, str(value))

    def select_option(self) -> None:
        self._perform(InteractionType.SELECT_OPTION)

    def unselect_option(self) -> None:
        self._perform(InteractionType.UNSELECT_OPTION)

    def check(self) -> None:
        self._perform(InteractionType.CHECK)

    def uncheck(self) -> None:
        self._perform(InteractionType.UNCHECK)

    def toggle(self) -> None:
        self._perform(InteractionType.UNCHECK if self.checked else InteractionType.CHECK)

    def click(self) -> None:
        self._perform(InteractionType.CLICK)

    def attach_file(self, path: str) -> None:
        self._perform(InteractionType.ATTACH_FILE, path)

    # Nested queries ----------------------------------------------------------

    def find(self, expression: Union[str, Selector], **options: Any) -> "Node":
        self._current_document()
        return self._session.find(expression, scope=self._path, **options)

    def all(self, expression: Union[str, Selector], **options: Any) -> "Result":
        self._current_document()
        return self._session.all(expression, scope=self._path, **options)

    # Internal helpers --------------------------------------------------------

    @property
    def _driver(self):
        return self._session.driver

    def _read(self, key: str, loader: Callable[[DocumentSnapshot], Any]) -> Any:
        document = self._current_document()
        if key not in self._cache:
            self._cache[key] = loader(document)
        return self._cache[key]

    def _perform(self, kind: InteractionType, value: Optional[str] = None) -> None:
        self._current_document()
        try:
            self._session._perform(self._path, Interaction(type=kind, value=value))
        finally:
            self._cache.clear()

    def _current_document(self) -> DocumentSnapshot:
        document = self._session._query_document()
        generation = self._session.generation
        if generation != self._generation:
            self._cache.clear()
            self._revalidate(document)
            self._generation = generation
        return document

    def _revalidate(self, document: DocumentSnapshot) -> None:
        if self._selector is not None:
            paths = self._session._resolve(
                self._selector, self._scope, self._text_filter, document=document
            )
            if self._path in paths:
                return
            if paths:
                LOGGER.debug("Re-resolved %s from %s to %s", self._selector.describe(), self._path, paths[0])
                self._path = paths[0]
                return
        elif document.element_at(self._path) is not None:
            return
        raise StaleElementError(f"Element at {self._path} is no longer on the page")


class Result(Sequence[Node]):
    """Lazily evaluated, finite list of nodes returned by ``Session.all``."""

    def __init__(self, loader: Callable[[], list[Node]]) -> None:
        self._loader = loader
        self._nodes: Optional[list[Node]] = None

    def _load(self) -> list[Node]:
        if self._nodes is None:
            self._nodes = list(self._loader())
        return self._nodes

    def __getitem__(self, index: Union[int, slice]) -> Union[Node, list[Node]]:
        return self._load()[index]

    def __len__(self) -> int:
        return len(self._load())

    def __iter__(self) -> Iterator[Node]:
        return iter(self._load())

    def __repr__(self) -> str:
        if self._nodes is None:
            return "<Result (not loaded)>"
        return f"<Result {self._nodes!r}>"
