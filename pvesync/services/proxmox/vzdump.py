"""Backup execution: vzdump for guests, a tar bundle for host configuration."""
import shutil
import subprocess
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional

from pvesync.core.config import BackupConfig
from pvesync.core.errors import BackupError
from pvesync.core.logger import get_logger
from pvesync.models.artifact import (
    HOST_CONFIG_PREFIX,
    Artifact,
    find_archives,
    format_timestamp,
)
from pvesync.models.guest import Guest

logger = get_logger(__name__)


class BackupExecutor:
    """Produces one backup artifact per call.

    Any failure raises ``BackupError``: pruning and syncing must never run
    after a backup that may be incomplete.
    """

    def __init__(
        self,
        config: BackupConfig,
        dry_run: bool = False,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.config = config
        self.dry_run = dry_run
        self.clock = clock

    def backup_guest(self, guest: Guest, dumpdir: Optional[Path] = None) -> Artifact:
        """Run vzdump for a container or VM.

        Args:
            guest: Guest to back up
            dumpdir: Output directory (defaults to the canonical backup directory)

        Returns:
            The artifact written. In dry-run this is the name vzdump would
            have used; nothing exists on disk.
        """
        dumpdir = Path(dumpdir or self.config.backup_dir)

        if self.dry_run:
            name = f"{guest.artifact_prefix}{format_timestamp(self.clock())}{guest.kind.archive_suffix}"
            logger.info(f"DRY-RUN: Would backup {guest.display_name} with vzdump into {dumpdir}")
            return Artifact(archive=dumpdir / name)

        logger.info(f"Backing up {guest.display_name}...")
        existing = set(find_archives(dumpdir, guest.artifact_prefix))

        cmd = [
            'vzdump', str(guest.vmid),
            '--mode', self.config.backup_mode,
            '--compress', self.config.compress,
            '--quiet', '1',
            '--dumpdir', str(dumpdir),
        ]
        logger.debug(f"Command: {' '.join(cmd)}")
        try:
            subprocess.run(cmd, capture_output=True, text=True, check=True)
        except subprocess.CalledProcessError as e:
            detail = (e.stderr or '').strip() or str(e)
            raise BackupError(f"vzdump failed for {guest.display_name}: {detail}") from e
        except OSError as e:
            raise BackupError(f"vzdump failed for {guest.display_name}: {e}") from e

        fresh = [name for name in find_archives(dumpdir, guest.artifact_prefix) if name not in existing]
        if not fresh:
            raise BackupError(f"vzdump reported success but wrote no archive for {guest.display_name}")

        artifact = Artifact.in_directory(dumpdir, fresh[0])
        logger.info(f"  Backup written: {artifact.name}")
        return artifact

    def backup_host_config(self) -> Artifact:
        """Bundle the host configuration allowlist into a zstd tarball.

        Paths that do not exist are skipped. The files are copied with their
        directory structure into a work area under ``work_root`` which is
        archived and then removed.
        """
        timestamp = format_timestamp(self.clock())
        archive = self.config.backup_dir / f"{HOST_CONFIG_PREFIX}{timestamp}.tar.zst"
        present = self._existing_host_paths()

        if self.dry_run:
            logger.info(f"DRY-RUN: Would create host config backup archive: {archive.name}")
            for path in present:
                logger.info(f"  DRY-RUN: Would include {path}")
            return Artifact(archive=archive)

        work_dir = self.config.work_root / f"proxmox-backup-{timestamp}"
        work_dir.mkdir(parents=True, exist_ok=True)
        try:
            for path in present:
                _copy_with_parents(path, work_dir)

            cmd = ['tar', '--zstd', '-cf', str(archive), '-C', str(work_dir), '.']
            logger.debug(f"Command: {' '.join(cmd)}")
            subprocess.run(cmd, capture_output=True, text=True, check=True)
        except subprocess.CalledProcessError as e:
            # a partial archive would sort newest and be linked next run
            archive.unlink(missing_ok=True)
            detail = (e.stderr or '').strip() or str(e)
            raise BackupError(f"Host config archive failed: {detail}") from e
        except (OSError, shutil.Error) as e:
            archive.unlink(missing_ok=True)
            raise BackupError(f"Host config backup failed: {e}") from e
        finally:
            shutil.rmtree(work_dir, ignore_errors=True)

        logger.info(f"Host config backup created: {archive.name}")
        return Artifact(archive=archive)

    def _existing_host_paths(self) -> List[Path]:
        paths = []
        for raw in self.config.host_config_paths:
            path = Path(raw)
            if path.exists():
                paths.append(path)
            else:
                logger.debug(f"Host config path missing, skipped: {path}")
        return paths


def _copy_with_parents(source: Path, work_dir: Path) -> None:
    """Copy ``source`` to ``work_dir`` keeping its absolute layout (``cp --parents``)."""
    destination = work_dir / source.relative_to(source.anchor)
    if source.is_dir():
        shutil.copytree(source, destination, symlinks=True, dirs_exist_ok=True)
    else:
        destination.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(source, destination)
