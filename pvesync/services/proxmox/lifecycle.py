"""Guest lifecycle control (status, stop, start) for containers and VMs."""
import subprocess
import time
from typing import Callable

from pvesync.core.errors import LifecycleError
from pvesync.core.logger import get_logger
from pvesync.core.polling import poll_until
from pvesync.models.guest import Guest, GuestKind, GuestState

logger = get_logger(__name__)


class GuestLifecycle:
    """Starts and stops guests through ``pct`` (containers) and ``qm`` (VMs)."""

    def __init__(
        self,
        dry_run: bool = False,
        stop_poll_interval: float = 3.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.dry_run = dry_run
        self.stop_poll_interval = stop_poll_interval
        self.sleep = sleep

    def status(self, guest: Guest) -> GuestState:
        """Query the current state of a guest.

        The state is always read fresh instead of being inferred from the exit
        code of a previous stop/start, since shutdowns complete asynchronously.
        A failing status query counts as stopped.
        """
        cmd = [guest.kind.control_command, 'status', str(guest.vmid)]
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, check=True)
        except (subprocess.CalledProcessError, OSError) as e:
            logger.debug(f"Status query failed for {guest.display_name}: {e}")
            return GuestState.STOPPED

        return GuestState.from_status_output(result.stdout)

    def is_running(self, guest: Guest) -> bool:
        return self.status(guest) is GuestState.RUNNING

    def stop(self, guest: Guest) -> None:
        """Shut a guest down and block until it reports stopped.

        There is no timeout: a backup is only safe once the guest is down.

        Raises:
            LifecycleError: If the shutdown primitive fails
        """
        if self.dry_run:
            logger.info(f"DRY-RUN: Would stop {guest.display_name}")
            return

        logger.info(f"Stopping {guest.display_name}...")
        if guest.kind is GuestKind.CONTAINER:
            cmd = ['pct', 'shutdown', str(guest.vmid), '--force']
        else:
            cmd = ['qm', 'shutdown', str(guest.vmid), '--forceStop', '1']
        self._run(guest, 'stop', cmd)

        poll_until(
            lambda: self.status(guest) is GuestState.STOPPED,
            interval=self.stop_poll_interval,
            sleep=self.sleep,
            describe=f"waiting for {guest.display_name} to stop",
        )
        logger.info(f"  {guest.display_name} stopped")

    def start(self, guest: Guest) -> None:
        """Request a guest start without waiting for its services.

        Raises:
            LifecycleError: If the start primitive fails
        """
        if self.dry_run:
            logger.info(f"DRY-RUN: Would start {guest.display_name}")
            return

        logger.info(f"Starting {guest.display_name}...")
        self._run(guest, 'start', [guest.kind.control_command, 'start', str(guest.vmid)])
        logger.info(f"  {guest.display_name} started")

    def _run(self, guest: Guest, action: str, cmd) -> None:
        logger.debug(f"Command: {' '.join(cmd)}")
        try:
            subprocess.run(cmd, capture_output=True, text=True, check=True)
        except subprocess.CalledProcessError as e:
            detail = (e.stderr or '').strip() or str(e)
            raise LifecycleError(guest.vmid, action, detail) from e
        except OSError as e:
            raise LifecycleError(guest.vmid, action, str(e)) from e
