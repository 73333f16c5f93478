"""Driver-agnostic session facade used by test code."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, TypeVar, Union

import httpx

from .config import HarnessConfig
from .document import DocumentSnapshot, normalize_whitespace
from .drivers.base import Driver
from .drivers.registry import DriverRegistry
from .drivers.registry import registry as default_registry
from .errors import AmbiguousMatchError, ExpectationNotMet, NotFoundError, StaleElementError
from .models import Interaction, Selector, SelectorType
from .node import Node, Result
from .synchronize import Waiter

LOGGER = logging.getLogger(__name__)

BLANK_URLS = {"", "about:blank"}

T = TypeVar("T")
Expression = Union[str, Selector]
NodeFilter = Callable[[DocumentSnapshot, str], bool]


@dataclass
class SessionState:
    """Everything a session knows about the page it is looking at."""

    document: Optional[DocumentSnapshot] = None
    url: Optional[str] = None
    navigated: bool = False
    generation: int = 0

    def clear(self) -> None:
        self.document = None
        self.url = None
        self.navigated = False
        # handles resolved before the reset must never validate again
        self.generation += 1


class Session:
    """Drive a web application through whichever driver was registered under ``driver``.

    The driver name is resolved in the constructor, so an unknown name fails
    with :class:`~browser_harness.errors.DriverNotFoundError` before anything
    is visited. Heavy backend resources are only allocated on first use.
    """

    def __init__(
        self,
        driver: Optional[str] = None,
        app: Optional[Any] = None,
        *,
        config: Optional[HarnessConfig] = None,
        registry: Optional[DriverRegistry] = None,
    ) -> None:
        self.config = config or HarnessConfig()
        self.mode = driver or self.config.default_driver
        self.app = app
        self._registry = registry or default_registry
        self._driver = self._registry.build(self.mode, app, self.config)
        self._state = SessionState()
        self._scopes: list[str] = []
        self._blank = DocumentSnapshot.blank()
        self._epoch = 0
        self._epoch_lock = threading.Lock()

    def __repr__(self) -> str:
        return f"<Session driver={self.mode!r} url={self._state.url!r}>"

    def __enter__(self) -> "Session":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def driver(self) -> Driver:
        return self._driver

    @property
    def generation(self) -> int:
        return self._state.generation

    # Lifecycle ---------------------------------------------------------------

    def visit(self, path: str) -> None:
        """Navigate to ``path`` and make the resulting page current."""

        LOGGER.info("Visiting %s with the %s driver", path, self.mode)
        self._advance_epoch()
        self._driver.navigate(path)
        self._state.navigated = True
        self._refresh()

    def reset_session(self) -> None:
        """Forget the current page, location, cookies and stored form state.

        Errors the application raised in the background are re-raised once the
        session has been cleared, so the session stays usable afterwards.
        """

        LOGGER.info("Resetting %s session", self.mode)
        self._advance_epoch()
        self._scopes.clear()
        try:
            self._driver.reset_session()
        finally:
            self._state.clear()
        error = self._driver.pop_application_error()
        if error is not None and self.config.raise_server_errors:
            raise error

    def close(self) -> None:
        self._driver.close()

    # Page content ------------------------------------------------------------

    @property
    def document(self) -> DocumentSnapshot:
        return self._query_document()

    @property
    def html(self) -> str:
        """Markup of the current page exactly as the driver reported it."""

        return self._query_document().markup

    body = html
    source = html

    @property
    def text(self) -> str:
        document = self._query_document()
        scope = self._scope(None)
        if scope is None:
            return document.text
        return document.text_at(scope)

    @property
    def current_url(self) -> Optional[str]:
        if self._state.navigated:
            self._state.url = self._driver.current_url
        return self._state.url

    @property
    def current_host(self) -> Optional[str]:
        url = self._parsed_url()
        if url is None or not url.host:
            return None
        return f"{url.scheme}://{url.host}"

    @property
    def current_path(self) -> Optional[str]:
        url = self._parsed_url()
        if url is None:
            return None
        return url.path or "/"

    # Finding -----------------------------------------------------------------

    def find(
        self,
        expression: Expression,
        *,
        selector_type: Optional[Union[SelectorType, str]] = None,
        text: Optional[str] = None,
        exact: Optional[bool] = None,
        match: Optional[str] = None,
        wait: Optional[float] = None,
        scope: Optional[str] = None,
    ) -> Node:
        """Return the single node matching ``expression``, waiting for it to appear."""

        selector = self._selector(expression, selector_type, exact)
        scope = self._scope(scope)
        match = match or self.config.match

        def probe() -> Node:
            paths = self._resolve(selector, scope, text)
            if not paths:
                raise NotFoundError(f"Unable to find {selector.describe()}")
            if match == "one" and len(paths) > 1:
                raise AmbiguousMatchError(
                    f"Ambiguous match, found {len(paths)} elements matching {selector.describe()}"
                )
            return Node(
                self,
                paths[0],
                generation=self._state.generation,
                selector=selector,
                scope=scope,
                text=text,
            )

        return self._waiter(wait).until(probe, epoch=self._current_epoch)

    def find_field(self, locator: str, **options: Any) -> Node:
        return self.find(locator, selector_type=SelectorType.FIELD, **options)

    def find_link(self, locator: str, **options: Any) -> Node:
        return self.find(locator, selector_type=SelectorType.LINK, **options)

    def find_button(self, locator: str, **options: Any) -> Node:
        return self.find(locator, selector_type=SelectorType.BUTTON, **options)

    def find_by_id(self, element_id: str, **options: Any) -> Node:
        return self.find(element_id, selector_type=SelectorType.ID, **options)

    def all(
        self,
        expression: Expression,
        *,
        selector_type: Optional[Union[SelectorType, str]] = None,
        text: Optional[str] = None,
        exact: Optional[bool] = None,
        scope: Optional[str] = None,
    ) -> Result:
        """Return every current match; evaluated on first access, never waits."""

        selector = self._selector(expression, selector_type, exact)
        scope = self._scope(scope)

        def load() -> list[Node]:
            paths = self._resolve(selector, scope, text)
            generation = self._state.generation
            return [Node(self, path, generation=generation) for path in paths]

        return Result(load)

    def first(self, expression: Expression, **options: Any) -> Optional[Node]:
        return next(iter(self.all(expression, **options)), None)

    # Predicates --------------------------------------------------------------

    def has_selector(
        self,
        expression: Expression,
        *,
        count: Optional[int] = None,
        text: Optional[str] = None,
        wait: Optional[float] = None,
        **options: Any,
    ) -> bool:
        matcher = self._matcher(expression, count, text, **options)
        return self._waiter(wait).until_true(matcher, epoch=self._current_epoch)

    def has_no_selector(
        self,
        expression: Expression,
        *,
        count: Optional[int] = None,
        text: Optional[str] = None,
        wait: Optional[float] = None,
        **options: Any,
    ) -> bool:
        matcher = self._matcher(expression, count, text, **options)
        return self._waiter(wait).until_true(lambda: not matcher(), epoch=self._current_epoch)

    def assert_selector(self, expression: Expression, **options: Any) -> None:
        if not self.has_selector(expression, **options):
            raise ExpectationNotMet(f"Expected to find {self._describe(expression, options)}")

    def assert_no_selector(self, expression: Expression, **options: Any) -> None:
        if not self.has_no_selector(expression, **options):
            raise ExpectationNotMet(f"Expected not to find {self._describe(expression, options)}")

    def has_css(self, expression: str, **options: Any) -> bool:
        return self.has_selector(expression, selector_type=SelectorType.CSS, **options)

    def has_no_css(self, expression: str, **options: Any) -> bool:
        return self.has_no_selector(expression, selector_type=SelectorType.CSS, **options)

    def has_xpath(self, expression: str, **options: Any) -> bool:
        return self.has_selector(expression, selector_type=SelectorType.XPATH, **options)

    def has_no_xpath(self, expression: str, **options: Any) -> bool:
        return self.has_no_selector(expression, selector_type=SelectorType.XPATH, **options)

    def has_link(self, locator: str, *, href: Optional[str] = None, **options: Any) -> bool:
        options = self._with_attribute_filter(options, "href", href)
        return self.has_selector(locator, selector_type=SelectorType.LINK, **options)

    def has_no_link(self, locator: str, *, href: Optional[str] = None, **options: Any) -> bool:
        options = self._with_attribute_filter(options, "href", href)
        return self.has_no_selector(locator, selector_type=SelectorType.LINK, **options)

    def has_button(self, locator: str, **options: Any) -> bool:
        return self.has_selector(locator, selector_type=SelectorType.BUTTON, **options)

    def has_no_button(self, locator: str, **options: Any) -> bool:
        return self.has_no_selector(locator, selector_type=SelectorType.BUTTON, **options)

    def has_field(self, locator: str, *, with_: Optional[str] = None, **options: Any) -> bool:
        options = self._with_value_filter(options, with_)
        return self.has_selector(locator, selector_type=SelectorType.FIELD, **options)

    def has_no_field(self, locator: str, *, with_: Optional[str] = None, **options: Any) -> bool:
        options = self._with_value_filter(options, with_)
        return self.has_no_selector(locator, selector_type=SelectorType.FIELD, **options)

    def has_select(
        self,
        locator: str,
        *,
        selected: Optional[Union[str, list[str]]] = None,
        **options: Any,
    ) -> bool:
        options = self._with_selected_filter(options, selected)
        return self.has_selector(locator, selector_type=SelectorType.SELECT, **options)

    def has_no_select(
        self,
        locator: str,
        *,
        selected: Optional[Union[str, list[str]]] = None,
        **options: Any,
    ) -> bool:
        options = self._with_selected_filter(options, selected)
        return self.has_no_selector(locator, selector_type=SelectorType.SELECT, **options)

    def has_table(self, locator: str, **options: Any) -> bool:
        return self.has_selector(locator, selector_type=SelectorType.TABLE, **options)

    def has_no_table(self, locator: str, **options: Any) -> bool:
        return self.has_no_selector(locator, selector_type=SelectorType.TABLE, **options)

    def has_text(self, content: str, *, wait: Optional[float] = None) -> bool:
        expected = normalize_whitespace(content)
        return self._waiter(wait).until_true(
            lambda: expected in self.text, epoch=self._current_epoch
        )

    def has_no_text(self, content: str, *, wait: Optional[float] = None) -> bool:
        expected = normalize_whitespace(content)
        return self._waiter(wait).until_true(
            lambda: expected not in self.text, epoch=self._current_epoch
        )

    has_content = has_text
    has_no_content = has_no_text

    # Interacting -------------------------------------------------------------

    def fill_in(self, locator: str, *, with_: str, exact: Optional[bool] = None) -> None:
        """Type ``with_`` into the field found by id, name, label or placeholder."""

        selector = Selector(type=SelectorType.FILLABLE_FIELD, locator=locator, exact=exact)
        self._interact(selector, lambda node: node.set(with_))

    def select(self, value: str, *, from_: Optional[str] = None, exact: Optional[bool] = None) -> None:
        self._retry_stale(lambda: self._find_option(value, from_, exact).select_option())

    def unselect(self, value: str, *, from_: Optional[str] = None, exact: Optional[bool] = None) -> None:
        self._retry_stale(lambda: self._find_option(value, from_, exact).unselect_option())

    def choose(self, locator: str, *, exact: Optional[bool] = None) -> None:
        selector = Selector(type=SelectorType.RADIO_BUTTON, locator=locator, exact=exact)
        self._interact(selector, lambda node: node.check())

    def check(self, locator: str, *, exact: Optional[bool] = None) -> None:
        selector = Selector(type=SelectorType.CHECKBOX, locator=locator, exact=exact)
        self._interact(selector, lambda node: node.check())

    def uncheck(self, locator: str, *, exact: Optional[bool] = None) -> None:
        selector = Selector(type=SelectorType.CHECKBOX, locator=locator, exact=exact)
        self._interact(selector, lambda node: node.uncheck())

    def click_link(self, locator: str, *, exact: Optional[bool] = None) -> None:
        selector = Selector(type=SelectorType.LINK, locator=locator, exact=exact)
        self._interact(selector, lambda node: node.click())

    def click_button(self, locator: str, *, exact: Optional[bool] = None) -> None:
        selector = Selector(type=SelectorType.BUTTON, locator=locator, exact=exact)
        self._interact(selector, lambda node: node.click())

    def click_link_or_button(self, locator: str, *, exact: Optional[bool] = None) -> None:
        selector = Selector(type=SelectorType.LINK_OR_BUTTON, locator=locator, exact=exact)
        self._interact(selector, lambda node: node.click())

    click_on = click_link_or_button

    def attach_file(self, locator: str, path: Union[str, Path], *, exact: Optional[bool] = None) -> None:
        file_path = Path(path)
        if not file_path.exists():
            raise FileNotFoundError(f"Cannot attach file, {file_path} does not exist")
        selector = Selector(type=SelectorType.FILE_FIELD, locator=locator, exact=exact)
        self._interact(selector, lambda node: node.attach_file(str(file_path)))

    # Scoping -----------------------------------------------------------------

    @contextmanager
    def within(self, expression: Expression, **options: Any) -> Iterator[Node]:
        """Restrict queries to the subtree of the matched node inside the block."""

        node = self.find(expression, **options)
        depth = len(self._scopes)
        self._scopes.append(node.path)
        try:
            yield node
        finally:
            # a reset inside the block may already have emptied the stack
            del self._scopes[depth:]

    def within_fieldset(self, locator: str) -> Any:
        return self.within(locator, selector_type=SelectorType.FIELDSET)

    def within_table(self, locator: str) -> Any:
        return self.within(locator, selector_type=SelectorType.TABLE)

    # Scripting ---------------------------------------------------------------

    def execute_script(self, script: str) -> None:
        self._driver.execute_script(script)
        if self._state.navigated:
            self._refresh()

    def evaluate_script(self, script: str) -> Any:
        return self._driver.evaluate_script(script)

    # Internal helpers --------------------------------------------------------

    def _current_epoch(self) -> int:
        with self._epoch_lock:
            return self._epoch

    def _advance_epoch(self) -> None:
        with self._epoch_lock:
            self._epoch += 1

    def _refresh(self) -> None:
        document = self._driver.current_document()
        if document is not self._state.document:
            self._state.document = document
            self._state.generation += 1
        self._state.url = self._driver.current_url

    def _query_document(self) -> DocumentSnapshot:
        if self._driver.is_live and self._state.navigated:
            self._refresh()
        return self._state.document or self._blank

    def _perform(self, path: str, interaction: Interaction) -> None:
        previous_url = self._state.url
        self._driver.perform(path, interaction)
        if not self._state.navigated:
            return
        self._refresh()
        if self._state.url != previous_url:
            self._advance_epoch()

    def _parsed_url(self) -> Optional[httpx.URL]:
        url = self.current_url
        if not self._state.navigated or url is None or url in BLANK_URLS:
            return None
        return httpx.URL(url)

    def _scope(self, scope: Optional[str]) -> Optional[str]:
        if scope is not None:
            return scope
        return self._scopes[-1] if self._scopes else None

    def _selector(
        self,
        expression: Expression,
        selector_type: Optional[Union[SelectorType, str]],
        exact: Optional[bool],
    ) -> Selector:
        if isinstance(expression, Selector):
            return expression
        if selector_type is not None:
            return Selector(type=SelectorType(selector_type), locator=expression, exact=exact)
        return Selector.parse(expression, default=self.config.default_selector, exact=exact)

    def _resolve(
        self,
        selector: Selector,
        scope: Optional[str],
        text: Optional[str] = None,
        *,
        document: Optional[DocumentSnapshot] = None,
        node_filter: Optional[NodeFilter] = None,
    ) -> list[str]:
        document = document or self._query_document()
        paths = self._driver.find_nodes(selector, document, scope)
        if text is not None:
            expected = normalize_whitespace(text)
            paths = [path for path in paths if expected in self._driver.node_text(document, path)]
        if node_filter is not None:
            paths = [path for path in paths if node_filter(document, path)]
        return paths

    def _matcher(
        self,
        expression: Expression,
        count: Optional[int],
        text: Optional[str],
        *,
        selector_type: Optional[Union[SelectorType, str]] = None,
        exact: Optional[bool] = None,
        node_filter: Optional[NodeFilter] = None,
        scope: Optional[str] = None,
    ) -> Callable[[], bool]:
        selector = self._selector(expression, selector_type, exact)
        scope = self._scope(scope)

        def matches() -> bool:
            paths = self._resolve(selector, scope, text, node_filter=node_filter)
            if count is None:
                return bool(paths)
            return len(paths) == count

        return matches

    def _waiter(self, wait: Optional[float]) -> Waiter:
        timeout = self.config.default_max_wait_time if wait is None else wait
        return Waiter(timeout, self.config.poll_interval, live=self._driver.is_live)

    def _interact(self, selector: Selector, action: Callable[[Node], None]) -> None:
        self._retry_stale(lambda: action(self.find(selector, match="first")))

    @staticmethod
    def _retry_stale(operation: Callable[[], T]) -> T:
        try:
            return operation()
        except StaleElementError as exc:
            LOGGER.debug("Element went stale (%s), resolving it again", exc)
            return operation()

    def _find_option(self, value: str, from_: Optional[str], exact: Optional[bool]) -> Node:
        option = Selector(type=SelectorType.OPTION, locator=value, exact=exact)
        if from_ is None:
            return self.find(option, match="first")
        select = Selector(type=SelectorType.SELECT, locator=from_, exact=exact)
        return self.find(select, match="first").find(option, match="first")

    def _with_attribute_filter(self, options: dict[str, Any], name: str, expected: Optional[str]) -> dict[str, Any]:
        if expected is None:
            return options
        driver = self._driver
        return {
            **options,
            "node_filter": lambda document, path: driver.node_attribute(document, path, name) == expected,
        }

    def _with_value_filter(self, options: dict[str, Any], expected: Optional[str]) -> dict[str, Any]:
        if expected is None:
            return options
        driver = self._driver
        return {
            **options,
            "node_filter": lambda document, path: driver.node_value(document, path) == expected,
        }

    def _with_selected_filter(
        self,
        options: dict[str, Any],
        expected: Optional[Union[str, list[str]]],
    ) -> dict[str, Any]:
        if expected is None:
            return options
        wanted = [expected] if isinstance(expected, str) else list(expected)
        driver = self._driver

        def selected_texts(document: DocumentSnapshot, path: str) -> bool:
            select = document.element_at(path)
            if select is None:
                return False
            options = list(select.iter("option"))
            chosen = [
                option for option in options if driver.node_selected(document, document.path_of(option))
            ]
            if not chosen and select.get("multiple") is None:
                chosen = options[:1]
            return [normalize_whitespace(option.text_content()) for option in chosen] == wanted

        return {**options, "node_filter": selected_texts}

    def _describe(self, expression: Expression, options: dict[str, Any]) -> str:
        selector = self._selector(expression, options.get("selector_type"), options.get("exact"))
        return selector.describe()
