"""Command line interface for browser-harness."""

from __future__ import annotations

import logging
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as get_version
from pathlib import Path
from typing import Annotated, Any, Optional

import httpx
import typer
from rich.console import Console
from rich.table import Table

from .config import load_config
from .drivers.registry import registry
from .errors import HarnessError
from .models import SelectorType
from .session import Session

app = typer.Typer(help="Load pages through browser-harness drivers from the shell.")
console = Console()


@app.callback()
def main(
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Log driver requests, retries and interactions."),
    ] = False,
) -> None:
    """Set up harness logging for the selected command."""

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


@app.command()
def version() -> None:
    """Show which browser-harness release is installed."""

    try:
        release = get_version("browser-harness")
    except PackageNotFoundError:  # pragma: no cover - source checkout without metadata
        release = "unknown"
    typer.echo(release)


@app.command()
def drivers() -> None:
    """List the registered drivers."""

    table = Table(title="Registered drivers")
    table.add_column("Name")
    for name in registry.names():
        table.add_row(name)
    console.print(table)


@app.command()
def fetch(
    url: Annotated[str, typer.Argument(help="Absolute URL of the page to load.")],
    driver: Annotated[
        Optional[str],
        typer.Option("--driver", "-d", help="Driver used to load the page."),
    ] = None,
    css: Annotated[
        Optional[str],
        typer.Option("--css", help="Print the nodes matching this CSS selector."),
    ] = None,
    xpath: Annotated[
        Optional[str],
        typer.Option("--xpath", help="Print the nodes matching this XPath expression."),
    ] = None,
    config_path: Annotated[
        Optional[Path],
        typer.Option("--config", "-c", help="Path to YAML configuration."),
    ] = None,
    env_file: Annotated[
        Optional[Path],
        typer.Option("--env-file", help="Path to an .env file with default configuration values."),
    ] = None,
) -> None:
    """Load a page and print its markup or the nodes matching a selector."""

    if css and xpath:
        raise typer.BadParameter("Use either --css or --xpath, not both")
    target = httpx.URL(url)
    if not target.scheme or not target.host:
        raise typer.BadParameter("URL must be absolute")

    overrides: dict[str, Any] = {"app_host": f"{target.scheme}://{target.netloc.decode('ascii')}"}
    if driver:
        overrides["default_driver"] = driver
    config = load_config(config_path, env_file=env_file, **overrides)

    try:
        session = Session(config=config)
    except HarnessError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=2) from exc
    with session:
        try:
            session.visit(str(target))
        except HarnessError as exc:
            typer.echo(str(exc), err=True)
            raise typer.Exit(code=1) from exc
        if not css and not xpath:
            typer.echo(session.html)
            return
        selector_type = SelectorType.CSS if css else SelectorType.XPATH
        nodes = session.all(css or xpath, selector_type=selector_type)
        table = Table(title=f"{len(nodes)} match(es) on {session.current_url}")
        table.add_column("Path")
        table.add_column("Text")
        for node in nodes:
            table.add_row(node.path, node.text)
        console.print(table)
        if not nodes:
            raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
