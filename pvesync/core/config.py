"""pvesync runtime configuration.

The configuration is built once at startup and handed to every component.
Defaults describe a single Proxmox host whose backup directory is an NFS/CIFS
share served by container 103.
"""
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml

from pvesync.core.errors import ConfigValidationError
from pvesync.models.guest import Guest, GuestKind, GuestRole

CONFIG_PATHS = [
    "./pvesync.yml",
    "/etc/pvesync/pvesync.yml",
]

DEFAULT_GUESTS: Tuple[Guest, ...] = (
    Guest(103, GuestKind.CONTAINER, GuestRole.STORAGE, "nas"),
    Guest(101, GuestKind.CONTAINER, GuestRole.DEPENDENT),
    Guest(102, GuestKind.CONTAINER, GuestRole.DEPENDENT),
    Guest(105, GuestKind.CONTAINER, GuestRole.DEPENDENT),
    Guest(104, GuestKind.CONTAINER, GuestRole.INDEPENDENT),
    Guest(100, GuestKind.VM, GuestRole.INDEPENDENT),
)

DEFAULT_HOST_CONFIG_PATHS: Tuple[str, ...] = (
    "/etc/pve",
    "/etc/network/interfaces",
    "/etc/hostname",
    "/etc/hosts",
    "/etc/fstab",
    "/etc/resolv.conf",
    "/etc/nut",
    "/etc/postfix",
    "/root/.config/rclone/rclone.conf",
)

_PATH_FIELDS = {"backup_dir", "staging_dir", "scratch_dir", "work_root"}
_FLOAT_FIELDS = {
    "stop_poll_interval",
    "mount_settle_delay",
    "mount_poll_interval",
    "cleanup_settle_delay",
}


@dataclass(frozen=True)
class BackupConfig:
    """Immutable settings for one backup run.

    Attributes:
        backup_dir: Canonical vzdump directory (mounted from the storage host)
        staging_dir: Directory of symlinks to the newest artifact per target
        scratch_dir: Local directory the storage host is dumped into
        work_root: Parent of the temporary host-config work area
        remote: rclone remote name, including the trailing colon
        remote_dir: Path on the remote mirrored from staging_dir
        guests: Managed guests with their roles
        host_config_paths: Allowlist of host paths bundled into the pve backup
        keep: Archives kept per target in backup_dir
        stop_poll_interval: Seconds between status polls while a guest stops
        mount_settle_delay: Seconds to wait after starting the storage host
        mount_poll_interval: Seconds between backup mount probes
        mount_poll_attempts: Probes before the storage host is declared lost
        cleanup_settle_delay: Seconds to wait after emptying the remote trash
        bwlimit: rclone --bwlimit value
        compress: vzdump --compress value
        backup_mode: vzdump --mode value
    """

    backup_dir: Path = Path("/mnt/pve/nas-proxmox-backups/dump")
    staging_dir: Path = Path("/tmp/latest-backups")
    scratch_dir: Path = Path("/var/tmp")
    work_root: Path = Path("/tmp")
    remote: str = "gdrive:"
    remote_dir: str = "/Proxmox Server Backups"
    guests: Tuple[Guest, ...] = DEFAULT_GUESTS
    host_config_paths: Tuple[str, ...] = DEFAULT_HOST_CONFIG_PATHS
    keep: int = 3
    stop_poll_interval: float = 3.0
    mount_settle_delay: float = 10.0
    mount_poll_interval: float = 2.0
    mount_poll_attempts: int = 30
    cleanup_settle_delay: float = 30.0
    bwlimit: str = "0:2.5M"
    compress: str = "zstd"
    backup_mode: str = "stop"

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        """Check invariants the orchestrator relies on.

        Raises:
            ConfigValidationError: On duplicate ids, a missing or repeated
                storage host, or non-positive limits.
        """
        ids = [guest.vmid for guest in self.guests]
        duplicates = sorted({vmid for vmid in ids if ids.count(vmid) > 1})
        if duplicates:
            raise ConfigValidationError(f"Duplicate guest ids: {duplicates}")

        storage = [guest for guest in self.guests if guest.role is GuestRole.STORAGE]
        if len(storage) != 1:
            raise ConfigValidationError(
                f"Exactly one guest must have role 'storage' (found {len(storage)})"
            )

        if self.keep < 1:
            raise ConfigValidationError("keep must be at least 1")
        if self.mount_poll_attempts < 1:
            raise ConfigValidationError("mount_poll_attempts must be at least 1")
        # archive detection only knows the .zst suffixes
        if self.compress != "zstd":
            raise ConfigValidationError(f"compress must be 'zstd', got '{self.compress}'")
        for name in sorted(_FLOAT_FIELDS):
            if getattr(self, name) < 0:
                raise ConfigValidationError(f"{name} must not be negative")

    @property
    def storage_host(self) -> Guest:
        return next(guest for guest in self.guests if guest.role is GuestRole.STORAGE)

    @property
    def dependents(self) -> Tuple[Guest, ...]:
        return tuple(guest for guest in self.guests if guest.role is GuestRole.DEPENDENT)

    @property
    def independents(self) -> Tuple[Guest, ...]:
        """Independent guests, containers before VMs."""
        members = [guest for guest in self.guests if guest.role is GuestRole.INDEPENDENT]
        return tuple(
            [g for g in members if g.kind is GuestKind.CONTAINER]
            + [g for g in members if g.kind is GuestKind.VM]
        )

    @property
    def mount_point(self) -> Path:
        """The share mount that backup_dir lives directly under."""
        return self.backup_dir.parent

    @property
    def remote_path(self) -> str:
        return f"{self.remote}{self.remote_dir}"

    def find_guest(self, vmid: int) -> Optional[Guest]:
        return next((guest for guest in self.guests if guest.vmid == vmid), None)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BackupConfig":
        """Build a config from a parsed YAML mapping, applying defaults."""
        if not isinstance(data, dict):
            raise ConfigValidationError("Config must be a mapping")

        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigValidationError(f"Unknown config keys: {', '.join(unknown)}")

        kwargs: Dict[str, Any] = {}
        for key, value in data.items():
            if key == "guests":
                kwargs[key] = tuple(_parse_guest(entry) for entry in value or [])
            elif key == "host_config_paths":
                kwargs[key] = tuple(str(path) for path in value or [])
            elif key in _PATH_FIELDS:
                kwargs[key] = Path(value)
            elif key in _FLOAT_FIELDS:
                kwargs[key] = _coerce(key, value, float)
            elif key in ("keep", "mount_poll_attempts"):
                kwargs[key] = _coerce(key, value, int)
            else:
                kwargs[key] = str(value)

        return cls(**kwargs)

    @classmethod
    def load(cls, config_path: Optional[str] = None) -> "BackupConfig":
        """Load configuration from YAML (if any) and the environment.

        Search order: explicit path, ``PVESYNC_CONFIG``, then CONFIG_PATHS.
        With no file found the built-in defaults are used.

        Environment variables:
            PVESYNC_REMOTE: Overrides ``remote``
            PVESYNC_REMOTE_DIR: Overrides ``remote_dir``
        """
        path = find_config(config_path)
        data: Dict[str, Any] = {}
        if path is not None:
            with open(path) as f:
                try:
                    data = yaml.safe_load(f) or {}
                except yaml.YAMLError as e:
                    raise ConfigValidationError(f"Invalid YAML in {path}: {e}") from e

        config = cls.from_dict(data)

        overrides = {}
        if os.getenv("PVESYNC_REMOTE"):
            overrides["remote"] = os.environ["PVESYNC_REMOTE"]
        if os.getenv("PVESYNC_REMOTE_DIR"):
            overrides["remote_dir"] = os.environ["PVESYNC_REMOTE_DIR"]
        return replace(config, **overrides) if overrides else config


def find_config(config_path: Optional[str] = None) -> Optional[Path]:
    """Locate the active configuration file, or None to use defaults."""
    if config_path:
        path = Path(config_path)
        if not path.exists():
            raise ConfigValidationError(f"Config file not found: {path}")
        return path

    if env_config := os.environ.get("PVESYNC_CONFIG"):
        return find_config(env_config)

    for candidate in CONFIG_PATHS:
        if Path(candidate).exists():
            return Path(candidate)

    return None


def _coerce(key: str, value: Any, kind):
    try:
        return kind(value)
    except (TypeError, ValueError) as e:
        raise ConfigValidationError(f"{key} must be a number, got {value!r}") from e


def _parse_guest(entry: Dict[str, Any]) -> Guest:
    if not isinstance(entry, dict) or "id" not in entry:
        raise ConfigValidationError(f"Guest entries need an 'id': {entry!r}")

    try:
        vmid = int(entry["id"])
        kind = GuestKind(str(entry.get("kind", GuestKind.CONTAINER.value)))
        role = GuestRole(str(entry.get("role", GuestRole.INDEPENDENT.value)))
    except ValueError as e:
        raise ConfigValidationError(f"Invalid guest entry {entry!r}: {e}") from e

    return Guest(vmid=vmid, kind=kind, role=role, name=entry.get("name"))
