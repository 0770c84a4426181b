"""
CLI: ``courier slot`` - inspect or discard the pending payload.
"""

from __future__ import annotations

import typer

from courier.cli.utils import cli_settings, console, open_slot, print_dict

app = typer.Typer(no_args_is_help=True)


@app.command("show")
def show(
    json_out: bool = typer.Option(False, "--json", help="Print the raw payload as JSON."),
) -> None:
    """Show the payload waiting for delivery, if any."""
    with open_slot(cli_settings()) as slot:
        payload = slot.read()
        occupied = slot.occupied
        key = slot.key

    if payload is None:
        if occupied:
            console.print("[yellow]Slot holds unreadable content.[/yellow]")
        else:
            console.print("[dim]No pending payload.[/dim]")
        return

    if json_out:
        print_dict(payload.to_dict(), as_json=True)
        return
    print_dict(
        {"id": payload.id, "when": payload.when, "meta": payload.meta, "key": key},
        title="Pending payload",
    )


@app.command("clear")
def clear(
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation."),
) -> None:
    """Discard the pending payload. It will not be delivered."""
    with open_slot(cli_settings()) as slot:
        if not slot.occupied:
            console.print("[dim]No pending payload.[/dim]")
            return
        payload = slot.read()
        label = payload.id if payload else "unreadable content"
        if not yes:
            typer.confirm(f"Discard pending payload {label}?", abort=True)
        slot.clear()
    console.print(f"Discarded {label}.")
