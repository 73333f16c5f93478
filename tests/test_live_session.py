from __future__ import annotations

import threading
import time
from typing import Optional

import pytest

from browser_harness.config import HarnessConfig
from browser_harness.document import DocumentSnapshot
from browser_harness.drivers.base import Driver
from browser_harness.drivers.registry import DriverRegistry
from browser_harness.errors import NotFoundError, StaleElementError, WaitAbortedError
from browser_harness.models import Interaction, InteractionType
from browser_harness.session import Session


def page(body: str) -> str:
    return f"<html><body>{body}</body></html>"


class ScriptedDriver(Driver):
    """Live driver replaying a fixed sequence of pages, one per snapshot."""

    is_live = True

    def __init__(self, pages: list[str]) -> None:
        super().__init__()
        self.pages = pages
        self.snapshots = 0
        self.url: Optional[str] = None
        self.performed: list[tuple[str, Interaction]] = []
        self.stale_failures = 0
        self.pending_error: Optional[BaseException] = None

    def navigate(self, path: str) -> None:
        self.url = f"http://live.test{path}"
        self.snapshots = 0

    def current_document(self) -> DocumentSnapshot:
        if self.url is None:
            return DocumentSnapshot.blank()
        markup = self.pages[min(self.snapshots, len(self.pages) - 1)]
        self.snapshots += 1
        return DocumentSnapshot(markup=markup, url=self.url)

    @property
    def current_url(self) -> Optional[str]:
        return self.url

    def reset_session(self) -> None:
        self.url = None
        self.snapshots = 0

    def perform(self, path: str, interaction: Interaction) -> None:
        if self.stale_failures:
            self.stale_failures -= 1
            raise StaleElementError("element was replaced")
        self.performed.append((path, interaction))

    def pop_application_error(self) -> Optional[BaseException]:
        error, self.pending_error = self.pending_error, None
        return error


@pytest.fixture
def live_config() -> HarnessConfig:
    return HarnessConfig(default_max_wait_time=1.0, poll_interval=0.01)


def live_session(driver: ScriptedDriver, config: HarnessConfig) -> Session:
    registry = DriverRegistry({"scripted": lambda app, config: driver})
    return Session("scripted", config=config, registry=registry)


def test_find_waits_for_late_elements(live_config: HarnessConfig) -> None:
    driver = ScriptedDriver([page("<p>loading</p>")] * 3 + [page('<p id="ready">done</p>')])
    session = live_session(driver, live_config)

    session.visit("/")

    assert session.find("#ready").text == "done"
    assert driver.snapshots >= 4


def test_find_gives_up_after_the_wait_time(live_config: HarnessConfig) -> None:
    driver = ScriptedDriver([page("<p>loading</p>")])
    session = live_session(driver, live_config)
    session.visit("/")

    started = time.monotonic()
    with pytest.raises(NotFoundError):
        session.find("#ready", wait=0.1)

    assert time.monotonic() - started >= 0.1


def test_negative_predicates_wait_for_elements_to_disappear(live_config: HarnessConfig) -> None:
    driver = ScriptedDriver([page('<p id="spinner">...</p>')] * 3 + [page("<p>done</p>")])
    session = live_session(driver, live_config)
    session.visit("/")

    assert session.has_no_selector("#spinner")
    assert session.has_text("done")


def test_nodes_read_fresh_values_after_the_page_changes(live_config: HarnessConfig) -> None:
    driver = ScriptedDriver([page('<p id="status">one</p>'), page('<p id="status">two</p>')])
    session = live_session(driver, live_config)
    session.visit("/")

    status = session.find("#status")

    assert status.text == "two"


def test_nodes_without_a_selector_go_stale(live_config: HarnessConfig) -> None:
    driver = ScriptedDriver([page("<ul><li>a</li><li>b</li></ul>")] * 2 + [page("<p>gone</p>")])
    session = live_session(driver, live_config)
    session.visit("/")

    items = list(session.all("li"))

    with pytest.raises(StaleElementError):
        items[1].text


def test_interactions_retry_once_when_the_element_went_stale(live_config: HarnessConfig) -> None:
    driver = ScriptedDriver([page('<label for="q">Query</label><input id="q"/>')])
    driver.stale_failures = 1
    session = live_session(driver, live_config)
    session.visit("/")

    session.fill_in("Query", with_="harness")

    assert len(driver.performed) == 1
    path, interaction = driver.performed[0]
    assert path == "/html/body/input"
    assert interaction == Interaction(type=InteractionType.SET, value="harness")


def test_interactions_give_up_after_a_second_stale_error(live_config: HarnessConfig) -> None:
    driver = ScriptedDriver([page('<a href="/next">Next</a>')])
    driver.stale_failures = 2
    session = live_session(driver, live_config)
    session.visit("/")

    with pytest.raises(StaleElementError):
        session.click_link("Next")


def test_reset_aborts_a_wait_in_another_thread(live_config: HarnessConfig) -> None:
    driver = ScriptedDriver([page("<p>never ready</p>")])
    session = live_session(driver, live_config)
    session.visit("/")

    resetter = threading.Timer(0.1, session.reset_session)
    resetter.start()
    try:
        with pytest.raises(WaitAbortedError):
            session.find("#ready", wait=5)
    finally:
        resetter.join()


def test_navigation_aborts_a_wait_in_another_thread(live_config: HarnessConfig) -> None:
    driver = ScriptedDriver([page("<p>never ready</p>")])
    session = live_session(driver, live_config)
    session.visit("/")

    navigator = threading.Timer(0.1, session.visit, args=("/other",))
    navigator.start()
    try:
        with pytest.raises(WaitAbortedError):
            session.find("#ready", wait=5)
    finally:
        navigator.join()

    assert session.current_path == "/other"


def test_navigation_aborts_a_negative_wait(live_config: HarnessConfig) -> None:
    driver = ScriptedDriver([page('<p id="spinner">...</p>')])
    session = live_session(driver, live_config)
    session.visit("/")

    navigator = threading.Timer(0.1, session.visit, args=("/other",))
    navigator.start()
    try:
        with pytest.raises(WaitAbortedError):
            session.has_no_selector("#spinner", wait=5)
    finally:
        navigator.join()

def test_reset_reraises_background_application_errors_once(live_config: HarnessConfig) -> None:
    driver = ScriptedDriver([page("<p>ok</p>")])
    session = live_session(driver, live_config)
    session.visit("/")
    driver.pending_error = RuntimeError("background failure")

    with pytest.raises(RuntimeError, match="background failure"):
        session.reset_session()

    assert session.current_url is None
    session.reset_session()


def test_background_errors_are_ignored_when_configured(live_config: HarnessConfig) -> None:
    config = live_config.model_copy(update={"raise_server_errors": False})
    driver = ScriptedDriver([page("<p>ok</p>")])
    session = live_session(driver, config)
    session.visit("/")
    driver.pending_error = RuntimeError("background failure")

    session.reset_session()

    assert driver.pending_error is None
