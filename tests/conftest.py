from __future__ import annotations

import pytest
import yaml

from browser_harness.config import HarnessConfig
from browser_harness.session import Session
from fixture_app import create_app


@pytest.fixture
def app():
    return create_app()


@pytest.fixture
def config() -> HarnessConfig:
    return HarnessConfig(default_max_wait_time=0.2, poll_interval=0.01)


@pytest.fixture
def session(app, config: HarnessConfig):
    session = Session("http", app, config=config)
    yield session
    session.reset_session()
    session.close()


def extract_results(session: Session) -> dict:
    pre = session.document.root.xpath("//pre[@id='results']")[0]
    return yaml.safe_load(pre.text_content().lstrip())
