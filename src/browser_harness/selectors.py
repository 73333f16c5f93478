"""Translate selectors into element paths against a document snapshot."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Iterator
from typing import Optional

from cssselect import HTMLTranslator, SelectorError
from lxml import etree

from .document import DocumentSnapshot, element_text, input_type, normalize_whitespace
from .errors import InvalidSelectorError
from .models import Selector, SelectorType

LOGGER = logging.getLogger(__name__)

Element = etree._Element

_BUTTON_INPUT_TYPES = {"submit", "reset", "image", "button"}
_NON_FIELD_INPUT_TYPES = _BUTTON_INPUT_TYPES | {"hidden"}
_NON_FILLABLE_INPUT_TYPES = _NON_FIELD_INPUT_TYPES | {"checkbox", "radio", "file"}

_TRANSLATOR = HTMLTranslator()


class _MatchContext:
    """Per-resolution data shared by the precedence tiers."""

    def __init__(self, document: DocumentSnapshot, locator: str, exact: bool) -> None:
        self.document = document
        self.locator = locator
        self.exact = exact
        self._labels: Optional[dict[str, list[str]]] = None

    def matches(self, text: Optional[str]) -> bool:
        if text is None:
            return False
        text = normalize_whitespace(text)
        if self.exact:
            return text == self.locator
        return self.locator in text

    def label_texts(self, element: Element) -> Iterator[str]:
        if self._labels is None:
            self._labels = {}
            for label in self.document.root.iter("label"):
                target = label.get("for")
                if target:
                    self._labels.setdefault(target, []).append(element_text(label))
        element_id = element.get("id")
        if element_id:
            yield from self._labels.get(element_id, [])
        for label in element.iterancestors("label"):
            yield element_text(label)


Candidate = Callable[[Element], bool]
Tier = Callable[[Element, _MatchContext], bool]


def _is_field(element: Element) -> bool:
    if element.tag in {"select", "textarea"}:
        return True
    return element.tag == "input" and input_type(element) not in _NON_FIELD_INPUT_TYPES


def _is_fillable(element: Element) -> bool:
    if element.tag == "textarea":
        return True
    return element.tag == "input" and input_type(element) not in _NON_FILLABLE_INPUT_TYPES


def _is_button(element: Element) -> bool:
    if element.tag == "button":
        return True
    return element.tag == "input" and input_type(element) in _BUTTON_INPUT_TYPES


def _is_link(element: Element) -> bool:
    return element.tag == "a" and element.get("href") is not None


def _input_of(kind: str) -> Candidate:
    return lambda element: element.tag == "input" and input_type(element) == kind


def _tag(name: str) -> Candidate:
    return lambda element: element.tag == name


def _by_id(element: Element, context: _MatchContext) -> bool:
    return element.get("id") == context.locator


def _by_name(element: Element, context: _MatchContext) -> bool:
    return element.get("name") == context.locator


def _by_label(element: Element, context: _MatchContext) -> bool:
    return any(context.matches(text) for text in context.label_texts(element))


def _by_placeholder(element: Element, context: _MatchContext) -> bool:
    return context.matches(element.get("placeholder"))


def _by_text(element: Element, context: _MatchContext) -> bool:
    if element.tag == "input":
        return False
    return context.matches(element_text(element))


def _by_value(element: Element, context: _MatchContext) -> bool:
    return element.tag == "input" and context.matches(element.get("value"))


def _by_title(element: Element, context: _MatchContext) -> bool:
    return context.matches(element.get("title"))


def _by_alt(element: Element, context: _MatchContext) -> bool:
    if context.matches(element.get("alt")):
        return True
    return any(context.matches(image.get("alt")) for image in element.iter("img"))


def _by_child_text(tag: str) -> Tier:
    def tier(element: Element, context: _MatchContext) -> bool:
        child = element.find(tag)
        return child is not None and context.matches(element_text(child))

    return tier


_FIELD_TIERS: tuple[Tier, ...] = (_by_id, _by_name, _by_label, _by_placeholder)
_LINK_TIERS: tuple[Tier, ...] = (_by_id, _by_text, _by_title, _by_alt)
_BUTTON_TIERS: tuple[Tier, ...] = (_by_id, _by_value, _by_text, _by_title, _by_alt)

SEMANTIC_RULES: dict[SelectorType, tuple[Candidate, tuple[Tier, ...]]] = {
    SelectorType.ID: (lambda element: True, (_by_id,)),
    SelectorType.FIELD: (_is_field, _FIELD_TIERS),
    SelectorType.FILLABLE_FIELD: (_is_fillable, _FIELD_TIERS),
    SelectorType.SELECT: (_tag("select"), _FIELD_TIERS),
    SelectorType.CHECKBOX: (_input_of("checkbox"), _FIELD_TIERS),
    SelectorType.RADIO_BUTTON: (_input_of("radio"), _FIELD_TIERS),
    SelectorType.FILE_FIELD: (_input_of("file"), _FIELD_TIERS),
    SelectorType.LINK: (_is_link, _LINK_TIERS),
    SelectorType.BUTTON: (_is_button, _BUTTON_TIERS),
    SelectorType.LINK_OR_BUTTON: (
        lambda element: _is_link(element) or _is_button(element),
        (_by_id, _by_value, _by_text, _by_title, _by_alt),
    ),
    SelectorType.OPTION: (_tag("option"), (_by_text,)),
    SelectorType.FIELDSET: (_tag("fieldset"), (_by_id, _by_child_text("legend"))),
    SelectorType.TABLE: (_tag("table"), (_by_id, _by_child_text("caption"))),
}


def css_to_xpath(expression: str) -> str:
    try:
        return _TRANSLATOR.css_to_xpath(expression, prefix="descendant::")
    except SelectorError as exc:
        raise InvalidSelectorError(f"Invalid CSS selector {expression!r}: {exc}") from exc


class SelectorResolver:
    """Resolve selectors to absolute element paths in document order.

    Structural selectors (CSS and XPath) are evaluated by lxml. Semantic
    selectors walk the candidate elements below the scope and apply their
    precedence tiers in order; the first tier with any match wins.
    """

    def __init__(self, exact: bool = True) -> None:
        self.exact = exact

    def resolve(
        self,
        document: DocumentSnapshot,
        selector: Selector,
        scope: Optional[str] = None,
    ) -> list[str]:
        if scope is None:
            root = document.root
        else:
            root = document.element_at(scope)
            if root is None:
                LOGGER.debug("Scope %s is gone from the current document", scope)
                return []
        elements = self.elements(document, root, selector)
        return [document.path_of(element) for element in elements]

    def elements(
        self,
        document: DocumentSnapshot,
        root: Element,
        selector: Selector,
    ) -> list[Element]:
        if selector.type == SelectorType.CSS:
            return self._evaluate(root, css_to_xpath(selector.locator), selector)
        if selector.type == SelectorType.XPATH:
            return self._evaluate(root, selector.locator, selector)
        candidate, tiers = SEMANTIC_RULES[selector.type]
        exact = self.exact if selector.exact is None else selector.exact
        context = _MatchContext(document, selector.locator, exact)
        candidates = [element for element in _descendants(root) if candidate(element)]
        for tier in tiers:
            matched = [element for element in candidates if tier(element, context)]
            if matched:
                return matched
        return []

    @staticmethod
    def _evaluate(root: Element, expression: str, selector: Selector) -> list[Element]:
        try:
            found = root.xpath(expression)
        except etree.XPathError as exc:
            raise InvalidSelectorError(f"Invalid selector {selector.describe()}: {exc}") from exc
        if not isinstance(found, list):
            raise InvalidSelectorError(f"{selector.describe()} does not select elements")
        return [item for item in found if isinstance(item, etree._Element)]


def _descendants(root: Element) -> Iterable[Element]:
    for element in root.iterdescendants():
        if isinstance(element.tag, str):
            yield element
