"""Configuration models for browser harness sessions."""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .models import SelectorType


class BrowserConfig(BaseModel):
    """Settings for the live browser backend."""

    browser_name: Literal["chromium", "firefox", "webkit"] = "chromium"
    headless: bool = True
    viewport_width: int = 1280
    viewport_height: int = 720
    action_timeout: float = Field(
        default=2.0,
        description="Seconds Playwright may spend on a single element action.",
    )


class ServerConfig(BaseModel):
    """Settings for serving an in-process application to a live browser."""

    host: str = Field(default="127.0.0.1")
    port: Optional[int] = None
    startup_timeout: float = 10.0


class HarnessConfig(BaseSettings):
    """Top-level configuration shared by sessions and drivers."""

    model_config = SettingsConfigDict(
        env_prefix="BROWSER_HARNESS_",
        env_file=(".env",),
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
    )

    default_driver: str = Field(default="http")
    app_host: Optional[str] = Field(
        default=None,
        description="Base URL prepended to relative paths passed to visit().",
    )
    default_max_wait_time: float = Field(default=2.0, ge=0)
    poll_interval: float = Field(default=0.05, gt=0)
    default_selector: SelectorType = SelectorType.CSS
    exact: bool = True
    match: Literal["one", "first"] = "one"
    raise_server_errors: bool = True
    browser: BrowserConfig = Field(default_factory=BrowserConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)


def load_config(
    path: Path | None = None,
    *,
    env_file: Path | None = None,
    **overrides: object,
) -> HarnessConfig:
    """Build the harness settings for a session or CLI run.

    Precedence, lowest first: field defaults, ``BROWSER_HARNESS_*`` variables
    (and ``env_file``), the YAML document at ``path``, keyword ``overrides``.
    Nested sections such as ``browser`` are merged key by key.
    """

    explicit: dict[str, Any] = {}
    if path:
        import yaml

        explicit = yaml.safe_load(path.read_text()) or {}
    _merge_into(explicit, overrides)

    source_options: dict[str, object] = {}
    if env_file is not None:
        source_options["_env_file"] = env_file
    settings = HarnessConfig(**explicit, **source_options)
    if not explicit:
        return settings

    # re-apply the explicit values over the environment, section by section
    values = settings.model_dump(mode="python")
    _merge_into(values, explicit)
    return HarnessConfig.model_validate(values)


def _merge_into(base: dict[str, Any], extra: Mapping[str, Any]) -> None:
    """Overlay ``extra`` onto ``base``; mappings present on both sides merge."""

    for key, value in extra.items():
        current = base.get(key)
        if isinstance(value, Mapping) and isinstance(current, Mapping):
            section = dict(current)
            _merge_into(section, value)
            base[key] = section
        else:
            base[key] = value
