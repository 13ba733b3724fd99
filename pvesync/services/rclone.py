"""Mirroring the staging directory to the remote with rclone, and checking the result."""
import subprocess
import time
from dataclasses import dataclass, field
from typing import Callable, List, Set

from pvesync.core.config import BackupConfig
from pvesync.core.errors import SyncError
from pvesync.core.logger import get_logger

logger = get_logger(__name__)


@dataclass
class VerificationResult:
    """Outcome of comparing staging against the remote listing."""
    checked: List[str] = field(default_factory=list)
    missing: List[str] = field(default_factory=list)
    skipped: bool = False

    @property
    def ok(self) -> bool:
        return not self.missing


class RcloneSync:
    """Wraps the rclone cleanup/sync/lsf primitives."""

    def __init__(
        self,
        config: BackupConfig,
        dry_run: bool = False,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config
        self.dry_run = dry_run
        self.sleep = sleep

    def sync_command(self) -> List[str]:
        """Build the rclone sync invocation.

        Flags:
            --copy-links               upload symlink targets, not the links
            --local-no-check-updated   symlinked files do not keep reliable mtimes
            --delete-during            free remote space before uploading the new set
            --drive-use-trash=false    delete permanently
            --bwlimit                  cap upload bandwidth
        """
        cmd = [
            'rclone', 'sync',
            f"{self.config.staging_dir}/",
            self.config.remote_path,
            '--copy-links',
        ]
        if self.dry_run:
            cmd.append('--dry-run')
        cmd.extend([
            '--local-no-check-updated',
            '--delete-during',
            '--drive-use-trash=false',
            '--progress',
            '--bwlimit', self.config.bwlimit,
        ])
        return cmd

    def cleanup(self) -> None:
        """Empty the remote trash so deleted backups stop counting against quota."""
        if self.dry_run:
            logger.info(f"DRY-RUN: Would empty trash on {self.config.remote}")
            return

        logger.info(f"Emptying trash on {self.config.remote}...")
        try:
            subprocess.run(['rclone', 'cleanup', self.config.remote], capture_output=True, text=True, check=True)
        except subprocess.CalledProcessError as e:
            raise SyncError(f"rclone cleanup failed: {(e.stderr or '').strip() or e}") from e
        except OSError as e:
            raise SyncError(f"rclone cleanup failed: {e}") from e

        if self.config.cleanup_settle_delay:
            self.sleep(self.config.cleanup_settle_delay)

    def sync(self) -> None:
        """Mirror the staging directory to the remote.

        Output is not captured so rclone's progress reaches the terminal.

        Raises:
            SyncError: If cleanup or sync fails
        """
        self.cleanup()

        logger.info(f"Syncing {self.config.staging_dir} to {self.config.remote_path}...")
        cmd = self.sync_command()
        logger.debug(f"Command: {' '.join(cmd)}")
        try:
            subprocess.run(cmd, check=True)
        except subprocess.CalledProcessError as e:
            raise SyncError(f"rclone sync failed with exit code {e.returncode}") from e
        except OSError as e:
            raise SyncError(f"rclone sync failed: {e}") from e

    def list_remote(self) -> Set[str]:
        """File names present at the remote path."""
        cmd = ['rclone', 'lsf', '--files-only', self.config.remote_path]
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, check=True)
        except subprocess.CalledProcessError as e:
            raise SyncError(f"rclone lsf failed: {(e.stderr or '').strip() or e}") from e
        except OSError as e:
            raise SyncError(f"rclone lsf failed: {e}") from e

        return {line.strip() for line in result.stdout.splitlines() if line.strip()}

    def verify(self) -> VerificationResult:
        """Check every staging entry exists on the remote by name.

        Skipped in dry-run, where nothing was transferred.
        """
        if self.dry_run:
            logger.info("DRY-RUN: Skipping verification of remote sync")
            return VerificationResult(skipped=True)

        logger.info(f"Verifying that all files in {self.config.staging_dir} exist on {self.config.remote_path}...")
        remote_files = self.list_remote()

        staging_dir = self.config.staging_dir
        checked = sorted(entry.name for entry in staging_dir.iterdir()) if staging_dir.is_dir() else []
        missing = [name for name in checked if name not in remote_files]

        for name in missing:
            logger.error(f"  File missing from remote: {name}")

        if missing:
            logger.error(f"{len(missing)} file(s) were not found on {self.config.remote}")
        else:
            logger.info(f"All {len(checked)} file(s) present on {self.config.remote}")

        return VerificationResult(checked=checked, missing=missing)
