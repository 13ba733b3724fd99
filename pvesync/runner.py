"""Top-level backup run: staging setup, orchestration, sync and verification."""
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from pvesync.core.config import BackupConfig
from pvesync.core.logger import get_logger
from pvesync.models.target import TargetSelection
from pvesync.services.proxmox import BackupExecutor, BackupOrchestrator, GuestLifecycle, OrchestrationReport
from pvesync.services.rclone import RcloneSync, VerificationResult
from pvesync.services.retention import RetentionManager

logger = get_logger(__name__)


@dataclass
class RunResult:
    """Outcome of a complete run."""
    report: OrchestrationReport = field(default_factory=OrchestrationReport)
    verification: VerificationResult = field(default_factory=VerificationResult)

    @property
    def success(self) -> bool:
        return self.verification.ok


class BackupRun:
    """Wires the components together for one invocation.

    Fatal errors from any component propagate unchanged; no guest is
    restarted on the way out.
    """

    def __init__(
        self,
        config: BackupConfig,
        dry_run: bool = False,
        sleep: Callable[[float], None] = time.sleep,
        lifecycle: Optional[GuestLifecycle] = None,
        executor: Optional[BackupExecutor] = None,
        retention: Optional[RetentionManager] = None,
        syncer: Optional[RcloneSync] = None,
    ):
        self.config = config
        self.dry_run = dry_run
        self.lifecycle = lifecycle or GuestLifecycle(
            dry_run=dry_run, stop_poll_interval=config.stop_poll_interval, sleep=sleep
        )
        self.executor = executor or BackupExecutor(config, dry_run=dry_run)
        self.retention = retention or RetentionManager(config, dry_run=dry_run)
        self.syncer = syncer or RcloneSync(config, dry_run=dry_run, sleep=sleep)
        self.orchestrator = BackupOrchestrator(
            config,
            self.lifecycle,
            self.executor,
            self.retention,
            dry_run=dry_run,
            sleep=sleep,
        )

    def execute(self, selection: TargetSelection) -> RunResult:
        """Run backups for ``selection`` and mirror the result.

        Staging is cleared before starting and again only after a verified
        sync; a failed verification leaves it in place for inspection.
        """
        mode = " (dry-run)" if self.dry_run else ""
        logger.info(f"Starting backup of '{selection.describe()}'{mode}")

        self.retention.prepare_staging()
        report = self.orchestrator.run(selection)

        self.syncer.sync()
        verification = self.syncer.verify()
        result = RunResult(report=report, verification=verification)

        if not result.success:
            logger.error(f"Backup verification failed, leaving {self.config.staging_dir} for inspection")
            return result

        self.retention.clear_staging()
        logger.info("Backup process complete")
        return result
