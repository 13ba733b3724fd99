"""Guest models: kind, role and runtime state."""
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from pvesync.models.artifact import ARCHIVE_SUFFIX_BY_KIND


class GuestKind(str, Enum):
    """Proxmox guest type, valued by the vzdump filename token."""
    CONTAINER = "lxc"
    VM = "qemu"

    @property
    def control_command(self) -> str:
        return "pct" if self is GuestKind.CONTAINER else "qm"

    @property
    def label(self) -> str:
        return "container" if self is GuestKind.CONTAINER else "VM"

    @property
    def archive_suffix(self) -> str:
        return ARCHIVE_SUFFIX_BY_KIND[self.value]


class GuestRole(str, Enum):
    """Where a guest sits relative to the storage host."""
    STORAGE = "storage"  # serves the backup directory to the host
    DEPENDENT = "dependent"  # uses the storage host's share
    INDEPENDENT = "independent"


class GuestState(str, Enum):
    """Runtime state as reported by ``pct status`` / ``qm status``."""
    RUNNING = "running"
    STOPPED = "stopped"

    @classmethod
    def from_status_output(cls, output: str) -> "GuestState":
        """Parse ``status: running`` style output; anything else is stopped."""
        for line in output.splitlines():
            key, _, value = line.partition(":")
            if key.strip() == "status" and value.strip() == cls.RUNNING.value:
                return cls.RUNNING
        return cls.STOPPED


@dataclass(frozen=True)
class Guest:
    """A managed container or VM."""
    vmid: int
    kind: GuestKind = GuestKind.CONTAINER
    role: GuestRole = GuestRole.INDEPENDENT
    name: Optional[str] = None

    @property
    def artifact_prefix(self) -> str:
        """Filename prefix shared by every vzdump archive of this guest."""
        return f"vzdump-{self.kind.value}-{self.vmid}-"

    @property
    def display_name(self) -> str:
        label = f"{self.kind.label} {self.vmid}"
        return f"{label} ({self.name})" if self.name else label
