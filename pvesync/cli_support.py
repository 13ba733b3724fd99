"""Shared output helpers for the pvesync CLI."""
from __future__ import annotations

import typer
from rich.console import Console
from rich.table import Table

from pvesync.runner import RunResult

USAGE = """
Backup Proxmox configuration, containers, and VMs and sync them to a remote

Usage: pvesync [--dry-run] [--config PATH] [--verbose] [--log-file PATH] <targets>
  --dry-run          Show what would happen without performing any actions
  --config, -c PATH  YAML configuration (default: ./pvesync.yml, /etc/pvesync/pvesync.yml)
  --verbose, -v      Debug-level logging
  --log-file PATH    Also write the log to PATH
  <targets>          Comma-separated list of LXC/VM ids, 'pve' for Proxmox config, or 'all'
                     Examples:
                       101,103
                       100,101,pve
                       pve
                       all

If backing up the storage host (CT {storage_vmid}), it and all of its dependent
guests are stopped, the requested guests are backed up, and all of them are
restarted afterwards.
"""


def print_usage(console: Console, storage_vmid: int) -> None:
    console.print(USAGE.format(storage_vmid=storage_vmid), markup=False, highlight=False)


def handle_cli_error(
    e: Exception,
    console: Console,
    verbose: bool = False,
    exit_code: int = 1
) -> None:
    """Handle CLI errors with consistent formatting.

    Args:
        e: Exception to handle
        console: Rich console for output
        verbose: Show exception traceback if True
        exit_code: Exit code to use
    """
    console.print(f"[red]Error:[/red] {e}")
    if verbose:
        console.print_exception()
    raise typer.Exit(exit_code)


def print_success(console: Console, message: str, prefix: str = "✓") -> None:
    console.print(f"[green]{prefix}[/green] {message}")


def print_error(console: Console, message: str, prefix: str = "✗") -> None:
    console.print(f"[red]{prefix}[/red] {message}")


def render_summary(console: Console, result: RunResult) -> None:
    """Print a per-target table of what the run linked and pruned."""
    report = result.report

    table = Table(title="Backup Summary", show_header=True, header_style="bold cyan")
    table.add_column("Prefix", style="bold")
    table.add_column("Linked")
    table.add_column("Pruned", justify="right")
    table.add_column("Orphan logs", justify="right")

    for item in report.retention:
        table.add_row(
            item.prefix.rstrip("-"),
            ", ".join(item.linked) or "[dim]-[/dim]",
            str(len(item.pruned)),
            str(len(item.orphans)),
        )

    console.print(table)

    backed_up = ", ".join(report.backed_up) or "none"
    console.print(f"Backed up: {backed_up}")
    if report.ignored:
        console.print(f"[yellow]Ignored unmanaged ids:[/yellow] {', '.join(map(str, report.ignored))}")

    verification = result.verification
    if verification.skipped:
        console.print("[dim]Remote verification skipped[/dim]")
    elif verification.missing:
        console.print(f"[red]Missing on remote:[/red] {', '.join(verification.missing)}")
