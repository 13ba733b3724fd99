#!/usr/bin/env python3
"""pvesync CLI - back up Proxmox guests and mirror the newest backups to a remote."""
from typing import Optional

import typer
from rich.console import Console

from pvesync.cli_support import (
    handle_cli_error,
    print_error,
    print_success,
    print_usage,
    render_summary,
)
from pvesync.core.config import BackupConfig
from pvesync.core.errors import ConfigValidationError, PvesyncError, TargetParseError
from pvesync.core.logger import get_logger, set_verbose, setup_file_logging
from pvesync.models.target import TargetSelection
from pvesync.runner import BackupRun

app = typer.Typer(
    name="pvesync",
    add_completion=False,
)

console = Console()
logger = get_logger(__name__)


def _usage_storage_vmid() -> int:
    try:
        return BackupConfig.load().storage_host.vmid
    except (PvesyncError, OSError):
        return BackupConfig().storage_host.vmid


def _help_callback(value: bool) -> None:
    if value:
        print_usage(console, _usage_storage_vmid())
        raise typer.Exit(1)


@app.command(context_settings={"help_option_names": []})
def backup(
    targets: Optional[str] = typer.Argument(
        None, metavar="TARGETS", help="Comma-separated guest ids, 'pve' or 'all'."
    ),
    dry_run: bool = typer.Option(False, "--dry-run", help="Log actions without performing them."),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to pvesync.yml."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug-level logging."),
    log_file: Optional[str] = typer.Option(None, "--log-file", help="Also log to this file."),
    show_help: bool = typer.Option(
        False, "--help", "-h", is_eager=True, expose_value=False,
        callback=_help_callback, help="Show usage and exit.",
    ),
) -> None:
    """Back up the selected targets, prune old backups and sync to the remote."""
    if log_file:
        setup_file_logging(log_file=log_file, verbose=verbose)
    set_verbose(verbose)

    try:
        settings = BackupConfig.load(config)
    except ConfigValidationError as e:
        handle_cli_error(e, console, verbose=verbose, exit_code=2)
    except OSError as e:
        handle_cli_error(e, console, verbose=verbose)

    if not targets or not targets.strip():
        print_usage(console, settings.storage_host.vmid)
        raise typer.Exit(1)

    try:
        selection = TargetSelection.parse(targets)
    except TargetParseError as e:
        console.print(f"[red]Error:[/red] {e}")
        print_usage(console, settings.storage_host.vmid)
        raise typer.Exit(2)

    run = BackupRun(settings, dry_run=dry_run)
    try:
        result = run.execute(selection)
    except (PvesyncError, OSError) as e:
        logger.error(f"ERROR: {e}")
        handle_cli_error(e, console, verbose=verbose)

    render_summary(console, result)

    if not result.success:
        print_error(console, "Backup verification failed, skipping cleanup")
        raise typer.Exit(1)

    print_success(console, "Backup process complete")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
