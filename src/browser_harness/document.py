"""Immutable page snapshots and helpers for reading parsed elements."""

from __future__ import annotations

from dataclasses import dataclass, field
from functools import cached_property
from typing import Optional

from lxml import etree
from lxml import html as lxml_html

_EMPTY_DOCUMENT = "<html><head></head><body></body></html>"
_HIDDEN_TEXT_XPATH = (
    ".//text()[not(ancestor::script or ancestor::style or ancestor::head or ancestor::template)]"
)


def normalize_whitespace(text: str) -> str:
    return " ".join(text.split())


def parse_markup(markup: str) -> etree._Element:
    """Parse ``markup`` into an HTML tree, tolerating empty documents."""

    source = markup if markup.strip() else _EMPTY_DOCUMENT
    parser = lxml_html.HTMLParser(encoding="utf-8")
    return lxml_html.document_fromstring(source.encode("utf-8"), parser=parser)


@dataclass(frozen=True)
class DocumentSnapshot:
    """Markup reported by a driver at one point in time, plus its parsed tree.

    ``markup`` is never normalised: it is exactly what the driver reported.
    Drivers that keep their own working tree (for example to track form
    state) hand over a private copy through ``tree``; everybody else gets the
    tree parsed lazily from ``markup``.
    """

    markup: str
    url: Optional[str] = None
    tree: Optional[etree._Element] = field(default=None, compare=False, repr=False)

    @classmethod
    def blank(cls) -> "DocumentSnapshot":
        return cls(markup="")

    @cached_property
    def root(self) -> etree._Element:
        if self.tree is not None:
            return self.tree
        return parse_markup(self.markup)

    def element_at(self, path: str) -> Optional[etree._Element]:
        """Return the element addressed by an absolute path, if it still exists."""

        try:
            found = self.root.getroottree().xpath(path)
        except etree.XPathError:
            return None
        for item in found:
            if isinstance(item, etree._Element):
                return item
        return None

    def path_of(self, element: etree._Element) -> str:
        return self.root.getroottree().getpath(element)

    def text_at(self, path: str) -> str:
        element = self.element_at(path)
        return element_text(element) if element is not None else ""

    @cached_property
    def text(self) -> str:
        body = self.root.find("body")
        return element_text(body if body is not None else self.root)


def element_text(element: etree._Element) -> str:
    """Return the whitespace-normalised text a reader would see."""

    if element.tag in {"script", "style", "template"}:
        return ""
    if element.tag in {"input", "textarea", "select"}:
        return normalize_whitespace(element.text_content())
    return normalize_whitespace("".join(element.xpath(_HIDDEN_TEXT_XPATH)))


def input_type(element: etree._Element) -> str:
    if element.tag != "input":
        return ""
    return (element.get("type") or "text").strip().lower()


def is_checked(element: etree._Element) -> bool:
    return element.get("checked") is not None


def is_selected(element: etree._Element) -> bool:
    return element.get("selected") is not None


def is_disabled(element: etree._Element) -> bool:
    if element.get("disabled") is not None:
        return True
    for fieldset in element.iterancestors("fieldset"):
        if fieldset.get("disabled") is not None:
            return True
    return False


def option_value(option: etree._Element) -> str:
    value = option.get("value")
    if value is not None:
        return value
    return normalize_whitespace(option.text_content())


def selected_options(select: etree._Element) -> list[etree._Element]:
    """Options a browser would submit for ``select``."""

    options = list(select.iter("option"))
    chosen = [option for option in options if is_selected(option)]
    if chosen or select.get("multiple") is not None:
        return chosen
    return options[:1]


def field_value(element: etree._Element) -> Optional[str | list[str]]:
    """Current value of a form control as held in the tree."""

    if element.tag == "textarea":
        return element.text_content()
    if element.tag == "select":
        values = [option_value(option) for option in selected_options(element)]
        if element.get("multiple") is not None:
            return values
        return values[0] if values else None
    if element.tag == "option":
        return option_value(element)
    if element.tag == "input":
        kind = input_type(element)
        if kind in {"checkbox", "radio"}:
            return element.get("value", "on")
        return element.get("value", "")
    return element.get("value")
