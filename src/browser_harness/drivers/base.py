"""Driver capability contract implemented by every backend."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Optional

from ..document import DocumentSnapshot, element_text, field_value, is_checked, is_selected
from ..errors import StaleElementError, UnsupportedOperationError
from ..models import Interaction, Selector
from ..selectors import SelectorResolver


class Driver(ABC):
    """Interface a backend implements to be driven by a :class:`Session`.

    Drivers own their transport, cookies and rendering. The session only ever
    talks to them through these methods and never shares mutable state beyond
    the arguments of a single call. Readers default to the parsed snapshot;
    live drivers override them where the rendered DOM knows better (input
    values typed by a user are properties, not attributes).
    """

    #: Whether the DOM can change without an explicit navigation.
    is_live: bool = False

    def __init__(self, *, exact: bool = True) -> None:
        self._resolver = SelectorResolver(exact=exact)

    @abstractmethod
    def navigate(self, path: str) -> None:
        """Load ``path`` (relative to the application host, or absolute)."""

    @abstractmethod
    def current_document(self) -> DocumentSnapshot:
        """Return a snapshot of the page as the backend sees it right now."""

    @property
    @abstractmethod
    def current_url(self) -> Optional[str]:
        """URL of the current page, ``None`` before any navigation."""

    @abstractmethod
    def reset_session(self) -> None:
        """Forget the current page, cookies and any stored form state."""

    @abstractmethod
    def perform(self, path: str, interaction: Interaction) -> None:
        """Carry out ``interaction`` on the element at ``path``."""

    def find_nodes(
        self,
        selector: Selector,
        document: DocumentSnapshot,
        scope: Optional[str] = None,
    ) -> list[str]:
        """Return paths of the elements matching ``selector`` in document order."""

        return self._resolver.resolve(document, selector, scope)

    def node_text(self, document: DocumentSnapshot, path: str) -> str:
        return element_text(self._element(document, path))

    def node_value(self, document: DocumentSnapshot, path: str) -> Optional[str | list[str]]:
        return field_value(self._element(document, path))

    def node_attribute(self, document: DocumentSnapshot, path: str, name: str) -> Optional[str]:
        return self._element(document, path).get(name)

    def node_checked(self, document: DocumentSnapshot, path: str) -> bool:
        return is_checked(self._element(document, path))

    def node_selected(self, document: DocumentSnapshot, path: str) -> bool:
        return is_selected(self._element(document, path))

    def execute_script(self, script: str) -> None:
        raise UnsupportedOperationError(f"{type(self).__name__} cannot execute JavaScript")

    def evaluate_script(self, script: str) -> Any:
        raise UnsupportedOperationError(f"{type(self).__name__} cannot evaluate JavaScript")

    def pop_application_error(self) -> Optional[BaseException]:
        """Return (and forget) an error the application raised out of band."""

        return None

    def close(self) -> None:
        """Release backend resources."""

    @staticmethod
    def _element(document: DocumentSnapshot, path: str):
        element = document.element_at(path)
        if element is None:
            raise StaleElementError(f"Element at {path} is no longer on the page")
        return element
