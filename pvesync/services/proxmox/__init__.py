"""Proxmox guest control, vzdump backups and dependency orchestration."""
from .lifecycle import GuestLifecycle
from .vzdump import BackupExecutor
from .orchestrator import BackupOrchestrator, OrchestrationReport

__all__ = [
    'GuestLifecycle',
    'BackupExecutor',
    'BackupOrchestrator',
    'OrchestrationReport',
]
