"""Driver that fetches pages over HTTP and emulates forms on a parsed tree."""

from __future__ import annotations

import copy
import logging
import mimetypes
from pathlib import Path
from typing import Any, Optional
from urllib.parse import urlencode

import httpx
from fastapi.testclient import TestClient
from lxml import etree

from ..config import HarnessConfig
from ..document import (
    DocumentSnapshot,
    input_type,
    is_checked,
    is_disabled,
    option_value,
    parse_markup,
    selected_options,
)
from ..errors import ApplicationError, DriverError, InvalidInteractionError, StaleElementError
from ..models import Interaction, InteractionType
from .base import Driver

LOGGER = logging.getLogger(__name__)

DEFAULT_APP_HOST = "http://www.example.com"

# (name, value, is_file) in submission order
FormField = tuple[str, str, bool]


class HttpSnapshotDriver(Driver):
    """Drive an application through plain HTTP requests.

    With an ASGI ``app`` the requests go through FastAPI's in-process test
    client, so exceptions raised by the application reach the caller
    unchanged. Without one, requests go to ``config.app_host`` over the
    network. The driver keeps a mutable working tree of the last response to
    hold form state and hands sessions private copies of it.
    """

    is_live = False

    def __init__(
        self,
        app: Optional[Any] = None,
        *,
        config: Optional[HarnessConfig] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._config = config or HarnessConfig()
        super().__init__(exact=self._config.exact)
        self._app = app
        self._client = self._build_client(transport)
        self._blank = DocumentSnapshot.blank()
        self._dom: Optional[etree._Element] = None
        self._markup: Optional[str] = None
        self._url: Optional[str] = None
        self._document: Optional[DocumentSnapshot] = None

    def _build_client(self, transport: Optional[httpx.BaseTransport]) -> httpx.Client:
        if self._app is not None:
            return TestClient(
                self._app,
                base_url=self._config.app_host or DEFAULT_APP_HOST,
                raise_server_exceptions=True,
                follow_redirects=True,
            )
        return httpx.Client(
            base_url=self._config.app_host or "",
            transport=transport,
            follow_redirects=True,
        )

    # Driver contract ---------------------------------------------------------

    def navigate(self, path: str) -> None:
        LOGGER.debug("GET %s", path)
        self._request("GET", path)

    def current_document(self) -> DocumentSnapshot:
        if self._dom is None:
            return self._blank
        if self._document is None:
            self._document = DocumentSnapshot(
                markup=self._markup or "",
                url=self._url,
                tree=copy.deepcopy(self._dom),
            )
        return self._document

    @property
    def current_url(self) -> Optional[str]:
        return self._url

    def reset_session(self) -> None:
        self._client.cookies.clear()
        self._dom = None
        self._markup = None
        self._url = None
        self._document = None

    def perform(self, path: str, interaction: Interaction) -> None:
        element = self._working_element(path)
        LOGGER.debug("Performing %s on %s", interaction.type.value, path)
        if interaction.type == InteractionType.CLICK:
            self._click(element)
            return
        if is_disabled(element):
            raise InvalidInteractionError(f"Element at {path} is disabled")
        if interaction.type == InteractionType.SET:
            self._set(element, interaction.value or "")
        elif interaction.type == InteractionType.CHECK:
            self._check(element)
        elif interaction.type == InteractionType.UNCHECK:
            self._uncheck(element)
        elif interaction.type == InteractionType.SELECT_OPTION:
            self._select_option(element)
        elif interaction.type == InteractionType.UNSELECT_OPTION:
            self._unselect_option(element)
        elif interaction.type == InteractionType.ATTACH_FILE:
            self._attach_file(element, interaction.value or "")
        else:  # pragma: no cover - exhaustive over InteractionType
            raise InvalidInteractionError(f"Unsupported interaction: {interaction.type}")
        self._document = None

    def close(self) -> None:
        self._client.close()

    # Interactions ------------------------------------------------------------

    def _set(self, element: etree._Element, value: str) -> None:
        if element.tag == "textarea":
            for child in list(element):
                element.remove(child)
            element.text = value
            return
        kind = input_type(element)
        if element.tag != "input" or kind in {"checkbox", "radio", "file"}:
            raise InvalidInteractionError(f"Cannot set a value on <{element.tag} type={kind!r}>")
        max_length = element.get("maxlength")
        if max_length and max_length.isdigit():
            value = value[: int(max_length)]
        element.set("value", value)

    def _check(self, element: etree._Element) -> None:
        kind = input_type(element)
        if kind not in {"checkbox", "radio"}:
            raise InvalidInteractionError(f"Cannot check <{element.tag} type={kind!r}>")
        if kind == "radio":
            name = element.get("name")
            form = self._form_of(element)
            container = form if form is not None else self._dom
            for other in container.iter("input"):
                if input_type(other) == "radio" and name and other.get("name") == name:
                    self._uncheck(other)
        element.set("checked", "checked")

    @staticmethod
    def _uncheck(element: etree._Element) -> None:
        element.attrib.pop("checked", None)

    def _select_option(self, option: etree._Element) -> None:
        select = self._select_of(option)
        if select.get("multiple") is None:
            for other in select.iter("option"):
                other.attrib.pop("selected", None)
        option.set("selected", "selected")

    def _unselect_option(self, option: etree._Element) -> None:
        select = self._select_of(option)
        if select.get("multiple") is None:
            raise InvalidInteractionError("Cannot unselect an option from a single select box")
        option.attrib.pop("selected", None)

    @staticmethod
    def _select_of(option: etree._Element) -> etree._Element:
        if option.tag != "option":
            raise InvalidInteractionError(f"Cannot select <{option.tag}>, expected an option")
        select = next(option.iterancestors("select"), None)
        if select is None:
            raise InvalidInteractionError("Option is not inside a select box")
        return select

    @staticmethod
    def _attach_file(element: etree._Element, value: str) -> None:
        if input_type(element) != "file":
            raise InvalidInteractionError("Files can only be attached to file fields")
        element.set("value", value)

    def _click(self, element: etree._Element) -> None:
        if element.tag == "a" and element.get("href") is not None:
            href = element.get("href", "")
            if href.startswith("#") or href.lower().startswith("javascript:"):
                LOGGER.debug("Ignoring click on in-page link %s", href)
                return
            self._request("GET", self._absolute(href))
            return
        if self._is_submit(element):
            form = self._form_of(element)
            if form is not None and not is_disabled(element):
                self._submit(form, element)
                return
        LOGGER.debug("Click on <%s> has no effect without JavaScript", element.tag)

    @staticmethod
    def _is_submit(element: etree._Element) -> bool:
        if element.tag == "button":
            return (element.get("type") or "submit").lower() == "submit"
        return input_type(element) in {"submit", "image"}

    # Forms -------------------------------------------------------------------

    def _form_of(self, element: etree._Element) -> Optional[etree._Element]:
        form_id = element.get("form")
        if form_id and self._dom is not None:
            for form in self._dom.iter("form"):
                if form.get("id") == form_id:
                    return form
        return next(element.iterancestors("form"), None)

    def _form_fields(self, form: etree._Element, submitter: etree._Element) -> list[FormField]:
        fields: list[FormField] = []
        for element in self._dom.iter("input", "select", "textarea", "button"):
            name = element.get("name")
            if not name or is_disabled(element) or self._form_of(element) is not form:
                continue
            if element.tag == "select":
                for option in selected_options(element):
                    fields.append((name, option_value(option), False))
            elif element.tag == "textarea":
                fields.append((name, element.text_content(), False))
            elif element.tag == "button":
                if element is submitter:
                    fields.append((name, element.get("value", ""), False))
            else:
                kind = input_type(element)
                if kind in {"submit", "button", "reset"}:
                    if element is submitter:
                        fields.append((name, element.get("value", ""), False))
                elif kind == "image":
                    if element is submitter:
                        fields.extend([(f"{name}.x", "0", False), (f"{name}.y", "0", False)])
                elif kind in {"checkbox", "radio"}:
                    if is_checked(element):
                        fields.append((name, element.get("value", "on"), False))
                elif kind == "file":
                    fields.append((name, element.get("value", ""), True))
                else:
                    fields.append((name, element.get("value", ""), False))
        return fields

    def _submit(self, form: etree._Element, submitter: etree._Element) -> None:
        fields = self._form_fields(form, submitter)
        method = (submitter.get("formmethod") or form.get("method") or "get").lower()
        action = submitter.get("formaction") or form.get("action") or ""
        url = self._absolute(action) if action else (self._url or "/")
        LOGGER.debug("Submitting %d fields to %s %s", len(fields), method.upper(), url)
        if method == "get":
            base = url.split("#", 1)[0].split("?", 1)[0]
            params = [(name, value) for name, value, is_file in fields if not is_file]
            self._request("GET", base, params=params)
            return
        enctype = (form.get("enctype") or "application/x-www-form-urlencoded").lower()
        if enctype == "multipart/form-data":
            self._request("POST", url, files=[_multipart_part(field) for field in fields] or None)
            return
        pairs = [(name, Path(value).name if is_file else value) for name, value, is_file in fields]
        self._request(
            "POST",
            url,
            content=urlencode(pairs).encode("ascii"),
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )

    # Transport ---------------------------------------------------------------

    def _absolute(self, href: str) -> str:
        if self._url is None:
            return href
        return str(httpx.URL(self._url).join(href))

    def _request(self, method: str, url: str, **kwargs: Any) -> None:
        try:
            response = self._client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            raise DriverError(f"{method} {url} failed: {exc}") from exc
        self._load(response)
        if (
            self._app is None
            and self._config.raise_server_errors
            and response.status_code >= 500
        ):
            raise ApplicationError(
                f"{method} {response.url} returned {response.status_code}",
                status_code=response.status_code,
                url=str(response.url),
            )

    def _load(self, response: httpx.Response) -> None:
        self._markup = response.text
        self._url = str(response.url)
        self._dom = parse_markup(self._markup)
        self._document = None

    def _working_element(self, path: str) -> etree._Element:
        if self._dom is None:
            raise StaleElementError("No page is loaded")
        found = self._dom.getroottree().xpath(path)
        if not found or not isinstance(found[0], etree._Element):
            raise StaleElementError(f"Element at {path} is no longer on the page")
        return found[0]


def _multipart_part(field: FormField) -> tuple[str, tuple[Any, ...]]:
    name, value, is_file = field
    if not is_file:
        return name, (None, value)
    if not value:
        return name, ("", b"", "application/octet-stream")
    path = Path(value)
    content_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
    return name, (path.name, path.read_bytes(), content_type)
