"""Local retention and the staging link set.

The staging directory holds one symlink per target pointing at the newest
archive (plus its vzdump log) in the backup directory. It is what gets
mirrored to the remote, so the remote only ever sees the frontier backup.
"""
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from pvesync.core.config import BackupConfig
from pvesync.core.logger import get_logger
from pvesync.models.artifact import (
    ARCHIVE_SUFFIXES,
    LOG_SUFFIX,
    companion_log_name,
    find_archives,
)

logger = get_logger(__name__)


@dataclass
class RetentionResult:
    """What link+prune did (or would do) for one prefix."""
    prefix: str
    linked: List[str] = field(default_factory=list)
    pruned: List[str] = field(default_factory=list)
    orphans: List[str] = field(default_factory=list)


class RetentionManager:
    """Links the newest artifact per prefix and prunes older ones."""

    def __init__(self, config: BackupConfig, dry_run: bool = False):
        self.config = config
        self.dry_run = dry_run
        self.backup_dir = config.backup_dir
        self.staging_dir = config.staging_dir

    def process(self, prefix: str) -> RetentionResult:
        """Link the latest artifact for ``prefix`` then prune its history."""
        result = RetentionResult(prefix=prefix)
        result.linked = self.link_latest(prefix)
        result.pruned, result.orphans = self.prune(prefix)
        return result

    def link_latest(self, prefix: str) -> List[str]:
        """Symlink the lexically greatest archive for ``prefix`` into staging.

        Embedded timestamps make lexical order chronological. Re-linking
        overwrites the previous link, so repeated calls are idempotent. Links
        are created in dry-run as well since they are needed to preview the
        remote sync set.

        Returns:
            Names linked into the staging directory
        """
        archives = find_archives(self.backup_dir, prefix)
        if not archives:
            logger.debug(f"No archive found for {prefix}, nothing to link")
            return []

        archive = self.backup_dir / archives[0]
        if not archive.is_file():
            logger.error(f"Backup file not found: {archive}")
            return []

        self.staging_dir.mkdir(parents=True, exist_ok=True)
        linked = [self._link(archive)]
        logger.info(f"Linked backup file: {archive}")

        log_file = self.backup_dir / companion_log_name(archive.name)
        if log_file.is_file():
            linked.append(self._link(log_file))
            logger.info(f"Linked log file:    {log_file}")
        else:
            logger.info(f"No matching log file found for {archive.name}, skipping log link")

        return linked

    def prune(self, prefix: str, keep: Optional[int] = None):
        """Delete all but the ``keep`` newest archives for ``prefix``.

        Each deleted archive takes its vzdump log with it. Afterwards any log
        whose archive is gone is removed as an orphan (not in dry-run).

        Returns:
            Tuple of (pruned names, orphaned log names)
        """
        keep = self.config.keep if keep is None else keep
        logger.debug(f"Pruning {prefix} (keep {keep})")

        archives = find_archives(self.backup_dir, prefix)
        pruned: List[str] = []

        if len(archives) <= keep:
            logger.info(f"  Nothing to prune for {prefix} (found {len(archives)}, keeping {keep})")
        else:
            for name in archives[keep:]:
                old_file = self.backup_dir / name
                log_file = self.backup_dir / companion_log_name(name)
                logger.info(f"  Pruning local: {old_file}")
                if self.dry_run:
                    logger.info(f"    DRY-RUN: Would delete {old_file}")
                    if log_file.is_file():
                        logger.info(f"    DRY-RUN: Would delete {log_file}")
                else:
                    old_file.unlink(missing_ok=True)
                    if log_file.is_file():
                        log_file.unlink()
                pruned.append(name)

        orphans: List[str] = []
        if not self.dry_run:
            orphans = self._remove_orphan_logs(prefix)

        return pruned, orphans

    def prepare_staging(self) -> None:
        """Create the staging directory and clear anything left from a previous run."""
        self.staging_dir.mkdir(parents=True, exist_ok=True)
        self.clear_staging()

    def clear_staging(self) -> int:
        """Remove every link/file in the staging directory.

        Returns:
            Number of entries removed
        """
        if not self.staging_dir.is_dir():
            return 0

        removed = 0
        for entry in self.staging_dir.iterdir():
            if entry.is_symlink() or entry.is_file():
                entry.unlink()
                removed += 1
            else:
                logger.warning(f"Leaving unexpected directory in staging: {entry}")
        logger.debug(f"Cleared {removed} entries from {self.staging_dir}")
        return removed

    def staging_entries(self) -> List[str]:
        """Names currently in the staging directory, sorted."""
        if not self.staging_dir.is_dir():
            return []
        return sorted(entry.name for entry in self.staging_dir.iterdir())

    def _link(self, target: Path) -> str:
        link = self.staging_dir / target.name
        if link.is_symlink() or link.exists():
            link.unlink()
        link.symlink_to(target)
        return link.name

    def _remove_orphan_logs(self, prefix: str) -> List[str]:
        if not self.backup_dir.is_dir():
            return []

        names = {entry.name for entry in self.backup_dir.iterdir()}
        orphans = []
        for name in sorted(names):
            if not (name.startswith(prefix) and name.endswith(LOG_SUFFIX)):
                continue
            base = name[: -len(LOG_SUFFIX)]
            if any(base + suffix in names for suffix in ARCHIVE_SUFFIXES):
                continue
            logger.info(f"  Deleting orphaned log: {self.backup_dir / name}")
            (self.backup_dir / name).unlink(missing_ok=True)
            orphans.append(name)
        return orphans
