"""Name-to-factory registry used to pick a driver for a session."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, Optional

from ..config import HarnessConfig
from ..errors import DriverNotFoundError
from .base import Driver
from .http_driver import HttpSnapshotDriver
from .playwright_driver import PlaywrightDriver

LOGGER = logging.getLogger(__name__)

DriverFactory = Callable[[Optional[Any], HarnessConfig], Driver]


class DriverRegistry:
    """Map driver names to factories building a fresh driver per session."""

    def __init__(self, factories: Optional[dict[str, DriverFactory]] = None) -> None:
        self._factories: dict[str, DriverFactory] = {}
        for name, factory in (factories or {}).items():
            self.register(name, factory)

    def register(self, name: str, factory: DriverFactory) -> None:
        key = name.strip().lower()
        if not key:
            raise ValueError("Driver name must not be empty")
        self._factories[key] = factory

    def unregister(self, name: str) -> None:
        self._factories.pop(name.strip().lower(), None)

    def names(self) -> list[str]:
        return sorted(self._factories)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.strip().lower() in self._factories

    def build(self, name: str, app: Optional[Any], config: HarnessConfig) -> Driver:
        try:
            factory = self._factories[name.strip().lower()]
        except KeyError:
            available = ", ".join(self.names()) or "none"
            raise DriverNotFoundError(
                f"No driver called {name!r} was found, available drivers: {available}"
            ) from None
        LOGGER.debug("Building %s driver", name)
        return factory(app, config)


def build_http_driver(app: Optional[Any], config: HarnessConfig) -> Driver:
    return HttpSnapshotDriver(app, config=config)


def build_playwright_driver(app: Optional[Any], config: HarnessConfig) -> Driver:
    return PlaywrightDriver(app, config=config)


registry = DriverRegistry(
    {
        "http": build_http_driver,
        "playwright": build_playwright_driver,
    }
)


def register_driver(name: str, factory: DriverFactory) -> None:
    """Register ``factory`` under ``name`` in the default registry."""

    registry.register(name, factory)
