"""Dependency-aware backup orchestration.

The backup directory is a network share served by one guest, the storage
host. Backing that guest up takes the share away, so:

1. running dependents are stopped first (they hold the share open),
2. the storage host is stopped and dumped to a local scratch directory,
3. it is started again and the share is polled until it is usable,
4. the scratch artifact is moved into the backup directory.

Every other guest is then handled dependents-first, and each one is left
running whether or not it was selected.
"""
import os
import shutil
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, Set

from pvesync.core.config import BackupConfig
from pvesync.core.errors import ArtifactMoveError, StorageUnavailableError
from pvesync.core.logger import get_logger
from pvesync.core.polling import poll_until
from pvesync.models.artifact import HOST_CONFIG_PREFIX, Artifact
from pvesync.models.guest import Guest
from pvesync.models.target import TargetSelection
from pvesync.services.proxmox.lifecycle import GuestLifecycle
from pvesync.services.proxmox.vzdump import BackupExecutor
from pvesync.services.retention import RetentionManager, RetentionResult

logger = get_logger(__name__)


@dataclass
class OrchestrationReport:
    """Record of what a run did, in order."""
    backed_up: List[str] = field(default_factory=list)
    stopped: List[int] = field(default_factory=list)
    started: List[int] = field(default_factory=list)
    retention: List[RetentionResult] = field(default_factory=list)
    ignored: List[int] = field(default_factory=list)


class BackupOrchestrator:
    """Decides what to back up and in which order, managing guest state around it."""

    def __init__(
        self,
        config: BackupConfig,
        lifecycle: GuestLifecycle,
        executor: BackupExecutor,
        retention: RetentionManager,
        dry_run: bool = False,
        sleep: Callable[[float], None] = time.sleep,
        mount_probe: Callable[[Path], bool] = os.path.ismount,
    ):
        self.config = config
        self.lifecycle = lifecycle
        self.executor = executor
        self.retention = retention
        self.dry_run = dry_run
        self.sleep = sleep
        self.mount_probe = mount_probe
        self._backed_up: Set[str] = set()
        self._stopped: Set[int] = set()

    def guest_order(self) -> List[Guest]:
        """Ordinary guests in processing order: dependents, then independents.

        Dependents go first because after a storage host backup they are still
        down and should be backed up and restarted promptly.
        """
        return list(self.config.dependents) + list(self.config.independents)

    def run(self, selection: TargetSelection) -> OrchestrationReport:
        """Back up the selected targets and refresh retention for all of them."""
        report = OrchestrationReport()
        report.ignored = self._unknown_ids(selection)

        storage = self.config.storage_host
        if selection.includes_guest(storage.vmid):
            self.backup_storage_host(report)
        else:
            self._ensure_storage_online(report)
            report.retention.append(self.retention.process(storage.artifact_prefix))

        for guest in self.guest_order():
            if selection.includes_guest(guest.vmid):
                self._backup_once(guest, report)
            self._ensure_running(guest, report)
            report.retention.append(self.retention.process(guest.artifact_prefix))

        if selection.includes_host_config() and self._claim('pve'):
            self.executor.backup_host_config()
            report.backed_up.append('pve')
        report.retention.append(self.retention.process(HOST_CONFIG_PREFIX))

        return report

    def backup_storage_host(self, report: OrchestrationReport) -> Optional[Artifact]:
        """Run the stop/dump/restart/move sequence for the storage host."""
        storage = self.config.storage_host
        if not self._claim(str(storage.vmid)):
            return None

        logger.info(f"Backing up storage host {storage.display_name}...")

        for guest in self.config.dependents:
            if self.lifecycle.is_running(guest):
                self._stop(guest, report)

        if self.lifecycle.is_running(storage):
            self._stop(storage, report)
        else:
            logger.info(f"  Storage host {storage.display_name} already stopped")

        artifact = self.executor.backup_guest(storage, dumpdir=self.config.scratch_dir)
        report.backed_up.append(str(storage.vmid))

        logger.info(f"  Starting storage host {storage.display_name} before moving backup...")
        self.lifecycle.start(storage)
        report.started.append(storage.vmid)

        self.wait_for_storage()
        artifact = self.move_to_backup_dir(artifact)

        report.retention.append(self.retention.process(storage.artifact_prefix))
        return artifact

    def wait_for_storage(self) -> None:
        """Block until the backup share is mounted and listable.

        Raises:
            StorageUnavailableError: When the attempt ceiling is reached
        """
        mount_point = self.config.mount_point
        if self.dry_run:
            logger.info(f"  DRY-RUN: Would wait for {mount_point} to become available")
            return

        logger.info(f"  Waiting for mount point {mount_point} to become available...")
        if self.config.mount_settle_delay:
            self.sleep(self.config.mount_settle_delay)

        available = poll_until(
            self._storage_available,
            interval=self.config.mount_poll_interval,
            max_attempts=self.config.mount_poll_attempts,
            sleep=self.sleep,
            describe=f"waiting for {self.config.backup_dir}",
        )
        if not available:
            raise StorageUnavailableError(
                f"Backup storage did not come online after starting "
                f"{self.config.storage_host.display_name} "
                f"({self.config.mount_poll_attempts} attempts)"
            )
        logger.info(f"  {self.config.backup_dir} is accessible")

    def move_to_backup_dir(self, artifact: Artifact) -> Artifact:
        """Move a scratch artifact (archive and log) into the backup directory.

        Raises:
            ArtifactMoveError: If either file cannot be moved
        """
        backup_dir = self.config.backup_dir
        destination = Artifact(
            archive=backup_dir / artifact.archive.name,
            log=backup_dir / artifact.log.name if artifact.log else None,
        )

        if self.dry_run:
            logger.info(f"  DRY-RUN: Would move {artifact.name} from {artifact.archive.parent} to {backup_dir}")
            return destination

        logger.info(f"  Moving {artifact.name} from {artifact.archive.parent} to {backup_dir}")
        for source in (artifact.archive, artifact.log):
            if source is None:
                continue
            try:
                shutil.move(str(source), str(backup_dir / source.name))
            except (OSError, shutil.Error) as e:
                raise ArtifactMoveError(f"Failed to move {source} to {backup_dir}: {e}") from e

        return destination

    def _storage_available(self) -> bool:
        mount_point = self.config.mount_point
        if not self.mount_probe(mount_point):
            logger.info(f"  {mount_point} not mounted yet")
            return False

        try:
            os.listdir(self.config.backup_dir)
        except OSError:
            logger.info(f"  {self.config.backup_dir} still inaccessible")
            return False
        return True

    def _ensure_storage_online(self, report: OrchestrationReport) -> None:
        """Start the storage host if it is down, then wait for its share."""
        storage = self.config.storage_host
        if self.lifecycle.is_running(storage):
            return
        logger.warning(f"Storage host {storage.display_name} is not running, starting it")
        self.lifecycle.start(storage)
        report.started.append(storage.vmid)
        self.wait_for_storage()

    def _backup_once(self, guest: Guest, report: OrchestrationReport) -> None:
        if not self._claim(str(guest.vmid)):
            return
        self.executor.backup_guest(guest)
        report.backed_up.append(str(guest.vmid))

    def _ensure_running(self, guest: Guest, report: OrchestrationReport) -> None:
        # In dry-run nothing was really stopped, so remember what would have been.
        needs_start = not self.lifecycle.is_running(guest)
        if self.dry_run and guest.vmid in self._stopped:
            needs_start = True
        if needs_start:
            self.lifecycle.start(guest)
            report.started.append(guest.vmid)

    def _stop(self, guest: Guest, report: OrchestrationReport) -> None:
        self.lifecycle.stop(guest)
        self._stopped.add(guest.vmid)
        report.stopped.append(guest.vmid)

    def _claim(self, target: str) -> bool:
        """Mark a target as backed up; False if it already was this run."""
        if target in self._backed_up:
            logger.debug(f"Target {target} already backed up this run, skipping")
            return False
        self._backed_up.add(target)
        return True

    def _unknown_ids(self, selection: TargetSelection) -> List[int]:
        unknown = sorted(vmid for vmid in selection.guest_ids if self.config.find_guest(vmid) is None)
        for vmid in unknown:
            logger.warning(f"Guest {vmid} is not managed by this configuration, ignoring")
        return unknown
