"""Playwright-powered driver rendering pages in a real browser."""

from __future__ import annotations

import logging
from typing import Any, Optional

from playwright.sync_api import Error, TimeoutError as PlaywrightTimeoutError, sync_playwright

from ..config import HarnessConfig
from ..document import DocumentSnapshot
from ..errors import DriverError, InvalidInteractionError, StaleElementError
from ..models import Interaction, InteractionType
from ..server import AppServer
from .base import Driver

LOGGER = logging.getLogger(__name__)

BLANK_URL = "about:blank"

_SET_OPTION_SELECTED = """(option, selected) => {
    const select = option.closest('select');
    if (!select) { throw new Error('Option is not inside a select box'); }
    if (!selected && !select.multiple) { throw new Error('Cannot unselect an option from a single select box'); }
    option.selected = selected;
    select.dispatchEvent(new Event('input', { bubbles: true }));
    select.dispatchEvent(new Event('change', { bubbles: true }));
}"""


class PlaywrightDriver(Driver):
    """Driver backed by Playwright; the DOM may change behind the session's back.

    The browser (and the application server, when an ASGI ``app`` is given)
    start on first navigation, so building the driver is cheap.
    """

    is_live = True

    def __init__(self, app: Optional[Any] = None, *, config: Optional[HarnessConfig] = None) -> None:
        self._config = config or HarnessConfig()
        super().__init__(exact=self._config.exact)
        self._app = app
        self._server: Optional[AppServer] = None
        self._playwright = None
        self._browser = None
        self._context = None
        self._page = None

    def start(self) -> None:
        if self._page:
            return
        if self._app is not None:
            self._server = AppServer(self._app, self._config.server)
            self._server.start()
        LOGGER.debug("Starting Playwright %s", self._config.browser.browser_name)
        browser_config = self._config.browser
        self._playwright = sync_playwright().start()
        launcher = getattr(self._playwright, browser_config.browser_name)
        self._browser = launcher.launch(headless=browser_config.headless)
        viewport = {"width": browser_config.viewport_width, "height": browser_config.viewport_height}
        self._context = self._browser.new_context(viewport=viewport)
        self._page = self._context.new_page()
        self._page.set_default_timeout(_to_timeout(browser_config.action_timeout))

    def close(self) -> None:
        LOGGER.debug("Stopping Playwright driver")
        try:
            if self._context:
                self._context.close()
        finally:
            if self._browser:
                self._browser.close()
            if self._playwright:
                self._playwright.stop()
            if self._server:
                self._server.stop()
        self._context = None
        self._browser = None
        self._playwright = None
        self._page = None
        self._server = None

    # Driver contract ---------------------------------------------------------

    def navigate(self, path: str) -> None:
        self.start()
        url = self._absolute(path)
        LOGGER.debug("Navigating to %s", url)
        try:
            self._page.goto(url, wait_until="load")
        except Error as exc:
            raise DriverError(str(exc)) from exc
        self._raise_application_error()

    def current_document(self) -> DocumentSnapshot:
        if not self._page:
            return DocumentSnapshot(markup="", url=None)
        try:
            markup = self._page.content()
        except Error:
            # content() fails while a navigation is committing
            self._page.wait_for_load_state()
            markup = self._page.content()
        return DocumentSnapshot(markup=markup, url=self._page.url)

    @property
    def current_url(self) -> Optional[str]:
        if not self._page:
            return None
        return self._page.url

    def reset_session(self) -> None:
        if not self._page:
            return
        try:
            self._context.clear_cookies()
            self._page.goto(BLANK_URL)
        except Error as exc:
            raise DriverError(str(exc)) from exc

    def perform(self, path: str, interaction: Interaction) -> None:
        locator = self._locator(path)
        LOGGER.debug("Performing %s on %s", interaction.type.value, path)
        try:
            if interaction.type == InteractionType.SET:
                locator.fill(interaction.value or "")
            elif interaction.type == InteractionType.CHECK:
                locator.check()
            elif interaction.type == InteractionType.UNCHECK:
                locator.uncheck()
            elif interaction.type == InteractionType.SELECT_OPTION:
                locator.evaluate(_SET_OPTION_SELECTED, True)
            elif interaction.type == InteractionType.UNSELECT_OPTION:
                locator.evaluate(_SET_OPTION_SELECTED, False)
            elif interaction.type == InteractionType.ATTACH_FILE:
                locator.set_input_files(interaction.value or [])
            elif interaction.type == InteractionType.CLICK:
                locator.click()
            else:  # pragma: no cover - exhaustive over InteractionType
                raise InvalidInteractionError(f"Unsupported interaction: {interaction.type}")
        except PlaywrightTimeoutError as exc:
            raise StaleElementError(f"Element at {path} did not become actionable: {exc}") from exc
        except Error as exc:
            raise InvalidInteractionError(str(exc)) from exc
        self._raise_application_error()

    def node_value(self, document: DocumentSnapshot, path: str) -> Optional[str | list[str]]:
        element = self._element(document, path)
        if element.tag not in {"input", "textarea", "select"}:
            return super().node_value(document, path)
        locator = self._locator(path)
        try:
            if element.tag == "select" and element.get("multiple") is not None:
                return locator.evaluate(
                    "select => Array.from(select.selectedOptions).map(option => option.value)"
                )
            return locator.input_value()
        except PlaywrightTimeoutError as exc:
            raise StaleElementError(f"Element at {path} is no longer on the page") from exc

    def node_checked(self, document: DocumentSnapshot, path: str) -> bool:
        self._element(document, path)
        return bool(self._evaluate_on(path, "element => element.checked === true"))

    def node_selected(self, document: DocumentSnapshot, path: str) -> bool:
        self._element(document, path)
        return bool(self._evaluate_on(path, "element => element.selected === true"))

    def execute_script(self, script: str) -> None:
        self.evaluate_script(script)

    def evaluate_script(self, script: str) -> Any:
        self.start()
        try:
            return self._page.evaluate(script)
        except Error as exc:
            raise DriverError(str(exc)) from exc

    def pop_application_error(self) -> Optional[BaseException]:
        if self._server is None:
            return None
        return self._server.pop_error()

    # Internal helpers --------------------------------------------------------

    def _absolute(self, path: str) -> str:
        if "://" in path or path.startswith(BLANK_URL):
            return path
        if self._server is not None:
            base = self._server.base_url
        elif self._config.app_host:
            base = self._config.app_host
        else:
            raise DriverError(f"Cannot visit {path!r} without an app or app_host")
        return base.rstrip("/") + "/" + path.lstrip("/")

    def _locator(self, path: str):
        if not self._page:
            raise StaleElementError("No page is loaded")
        return self._page.locator(f"xpath={path}")

    def _evaluate_on(self, path: str, expression: str) -> Any:
        try:
            return self._locator(path).evaluate(expression)
        except PlaywrightTimeoutError as exc:
            raise StaleElementError(f"Element at {path} is no longer on the page") from exc

    def _raise_application_error(self) -> None:
        if not self._config.raise_server_errors:
            return
        error = self.pop_application_error()
        if error is not None:
            raise error


def _to_timeout(timeout: Optional[float]) -> Optional[int]:
    if timeout is None:
        return None
    return int(timeout * 1000)
