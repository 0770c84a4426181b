"""
Root Typer application for the courier CLI.

Usage::

    courier submit results.json --meta site=lab --meta ver=2025-10-04a
    courier recover
    courier slot show --json
    courier slot clear --yes
"""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path

import typer
from rich.markup import escape
from typer import Typer

from courier.cli.slot import app as slot_app
from courier.cli.utils import (
    build_submitter,
    cli_settings,
    console,
    err_console,
    parse_meta,
    print_dict,
)
from courier.core.payload import Payload
from courier.core.settings import CourierSettings
from courier.execution.recovery import RecoveryReport, RecoveryStatus

app = Typer(
    name="courier",
    help="courier - resilient delivery of study result payloads.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

app.add_typer(slot_app, name="slot", help="Inspect or discard the pending payload.")


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from importlib.metadata import PackageNotFoundError
        from importlib.metadata import version as pkg_version

        from courier import __version__

        try:
            v = pkg_version("courier-core")
        except PackageNotFoundError:
            v = __version__
        typer.echo(f"courier {v}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """courier CLI - submit payloads, recover pending ones, inspect the slot."""


# ── Commands ─────────────────────────────────────────────────────────────


def _read_data(source: str) -> object:
    try:
        text = sys.stdin.read() if source == "-" else Path(source).read_text(encoding="utf-8")
    except OSError as e:
        err_console.print(f"[bold red]Error[/bold red]: cannot read {source} ({escape(str(e))})")
        raise typer.Exit(code=2) from e
    try:
        return json.loads(text)
    except ValueError as e:
        err_console.print(f"[bold red]Error[/bold red]: {source} is not valid JSON ({escape(str(e))})")
        raise typer.Exit(code=2) from e


async def _submit(
    settings: CourierSettings, payload: Payload, wait: bool
) -> tuple[bool, RecoveryReport]:
    submitter = build_submitter(settings)
    try:
        # an earlier session's payload goes out before the new one can overwrite the slot
        earlier = await submitter.recover_on_startup()
        submission = await submitter.submit(payload)
        if not wait:
            return submission.delivered, earlier
        with console.status("Sending data... retrying automatically, please wait."):
            delivered = submission.delivered or await submission.wait()
            if earlier.handle is not None:
                await earlier.handle.wait()
        return delivered, earlier
    finally:
        await submitter.aclose()


def _report_earlier(earlier: RecoveryReport, delivered: bool) -> None:
    pid = escape(earlier.payload_id or "")
    if earlier.status is RecoveryStatus.DELIVERED:
        console.print(f"[green]Delivered[/green] earlier pending payload {pid}")
    elif earlier.status is RecoveryStatus.DISCARDED:
        err_console.print("[yellow]Warning[/yellow]: discarded unreadable pending slot content")
    elif earlier.handle is not None:
        if earlier.handle.delivered:
            console.print(f"[green]Delivered[/green] earlier pending payload {pid}")
        elif delivered:
            console.print(f"[yellow]Pending[/yellow] earlier payload {pid} is still saved.")
        else:
            err_console.print(
                f"[yellow]Warning[/yellow]: earlier pending payload {pid} was not delivered "
                "and has been replaced by the new one."
            )


@app.command("submit")
def submit(
    source: str = typer.Argument(..., help="JSON file with the result data ('-' for stdin)."),
    payload_id: str | None = typer.Option(None, "--id", help="Payload id (random when omitted)."),
    meta: list[str] | None = typer.Option(None, "--meta", "-m", help="Metadata KEY=VALUE, repeatable."),
    endpoint: str | None = typer.Option(None, "--endpoint", "-e", help="Override COURIER_ENDPOINT_URL."),
    wait: bool = typer.Option(True, "--wait/--no-wait", help="Keep retrying until delivered."),
) -> None:
    """Deliver a result payload, retrying until the endpoint accepts it."""
    settings = cli_settings(endpoint_url=endpoint)
    payload = Payload.create(_read_data(source), meta=parse_meta(meta), id=payload_id)

    delivered, earlier = asyncio.run(_submit(settings, payload, wait))
    _report_earlier(earlier, delivered)
    if delivered:
        console.print(f"[green]Delivered[/green] {payload.id}")
        return
    console.print(
        f"[yellow]Pending[/yellow] {payload.id} saved; it will be sent on the next "
        "[bold]courier recover[/bold] or [bold]courier submit[/bold]."
    )
    raise typer.Exit(code=1)


async def _recover(settings: CourierSettings, wait: bool) -> dict[str, object]:
    submitter = build_submitter(settings)
    try:
        report = await submitter.recover_on_startup()
        delivered = report.status is RecoveryStatus.DELIVERED
        if wait and report.handle is not None:
            with console.status("Re-sending pending data..."):
                delivered = await report.handle.wait()
        return {
            "status": report.status.value,
            "payload_id": report.payload_id,
            "delivered": delivered,
        }
    finally:
        await submitter.aclose()


@app.command("recover")
def recover(
    endpoint: str | None = typer.Option(None, "--endpoint", "-e", help="Override COURIER_ENDPOINT_URL."),
    wait: bool = typer.Option(False, "--wait/--no-wait", help="Keep retrying until delivered."),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Deliver a payload left over from an earlier, unfinished run."""
    settings = cli_settings(endpoint_url=endpoint)
    result = asyncio.run(_recover(settings, wait))
    print_dict(result, title="Recovery", as_json=json_out)


if __name__ == "__main__":  # pragma: no cover
    app()
