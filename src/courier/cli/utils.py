"""
CLI utility helpers: settings, logging, submitter construction and output.
"""

from __future__ import annotations

import json
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import typer
from rich.console import Console
from rich.markup import escape

from courier.core.errors import ConfigError
from courier.core.logging import configure_logging
from courier.core.settings import CourierSettings, LogFormat, load_settings
from courier.core.slot import DurableSlot
from courier.core.storage import build_store
from courier.submission import Submitter

console = Console()
err_console = Console(stderr=True)


def cli_settings(**overrides: Any) -> CourierSettings:
    """Load settings with CLI overrides and configure logging from them."""
    try:
        settings = load_settings(**overrides)
    except ConfigError as e:
        err_console.print(f"[bold red]Invalid configuration[/bold red]: {e.message}")
        err_console.print(str(e.cause), markup=False)
        raise typer.Exit(code=2) from e
    configure_logging(
        level=settings.log_level,
        json_format=settings.log_format == LogFormat.JSON,
    )
    return settings


def build_submitter(settings: CourierSettings) -> Submitter:
    """Create the submitter used by CLI commands."""
    return Submitter(settings)


@contextmanager
def open_slot(settings: CourierSettings) -> Iterator[DurableSlot]:
    """Open the durable slot without starting any network machinery."""
    store = build_store(settings)
    try:
        yield DurableSlot(store, settings.slot_key)
    finally:
        close = getattr(store, "close", None)
        if close is not None:
            close()


def parse_meta(pairs: list[str] | None) -> dict[str, str]:
    """Turn ``["site=lab", "ver=2"]`` into ``{"site": "lab", "ver": "2"}``."""
    meta: dict[str, str] = {}
    for pair in pairs or []:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            err_console.print(f"[bold red]Error[/bold red]: --meta expects KEY=VALUE, got {escape(repr(pair))}")
            raise typer.Exit(code=2)
        meta[key] = value
    return meta


def print_dict(data: dict[str, Any], *, title: str = "", as_json: bool = False) -> None:
    """Render a dict as JSON or as key-value pairs."""
    if as_json:
        console.print_json(json.dumps(data, default=str))
        return
    if title:
        console.print(f"[bold]{title}[/bold]")
    for k, v in data.items():
        console.print(f"  [cyan]{k}[/cyan]: {v}")
