"""Exception types raised by pvesync components.

Anything deriving from ``PvesyncError`` aborts the run; the CLI turns it into
a non-zero exit status. No component rolls back guest state on failure.
"""


class PvesyncError(Exception):
    """Base class for fatal run errors."""
    pass


class ConfigValidationError(PvesyncError):
    """Raised when the backup configuration is malformed."""
    pass


class TargetParseError(PvesyncError):
    """Raised when a target token on the command line is not understood."""
    pass


class LifecycleError(PvesyncError):
    """Raised when a guest stop/start primitive fails."""

    def __init__(self, vmid: int, action: str, detail: str = ""):
        self.vmid = vmid
        self.action = action
        message = f"Failed to {action} guest {vmid}"
        if detail:
            message += f": {detail}"
        super().__init__(message)


class BackupError(PvesyncError):
    """Raised when a backup primitive fails or produces no archive."""
    pass


class StorageUnavailableError(PvesyncError):
    """Raised when the backup mount does not come back after the storage host restarts."""
    pass


class ArtifactMoveError(PvesyncError):
    """Raised when moving a scratch artifact into the backup directory fails."""
    pass


class SyncError(PvesyncError):
    """Raised when an rclone primitive fails."""
    pass
