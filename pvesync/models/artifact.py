"""Backup artifact naming.

vzdump and the host-config bundle both embed a zero-padded creation timestamp
in the filename, so lexical order of names within one prefix is chronological.
"""
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional

TIMESTAMP_FORMAT = "%Y_%m_%d-%H_%M_%S"

ARCHIVE_SUFFIX_BY_KIND = {
    "lxc": ".tar.zst",
    "qemu": ".vma.zst",
}
ARCHIVE_SUFFIXES = (".tar.zst", ".vma.zst")
LOG_SUFFIX = ".log"

HOST_CONFIG_PREFIX = "proxmox-pve-"


def format_timestamp(moment: Optional[datetime] = None) -> str:
    return (moment or datetime.now()).strftime(TIMESTAMP_FORMAT)


def archive_base(name: str) -> Optional[str]:
    """Return ``name`` without its archive suffix, or None if it is not an archive."""
    for suffix in ARCHIVE_SUFFIXES:
        if name.endswith(suffix):
            return name[: -len(suffix)]
    return None


def is_archive(name: str) -> bool:
    return archive_base(name) is not None


def companion_log_name(archive_name: str) -> str:
    """``vzdump-lxc-101-2024_01_01-00_00_00.tar.zst`` -> ``...-00_00_00.log``."""
    base = archive_base(archive_name)
    if base is None:
        raise ValueError(f"Not a backup archive: {archive_name}")
    return base + LOG_SUFFIX


@dataclass(frozen=True)
class Artifact:
    """One backup unit: an archive plus its optional vzdump log."""
    archive: Path
    log: Optional[Path] = None

    @property
    def name(self) -> str:
        return self.archive.name

    @classmethod
    def in_directory(cls, directory: Path, archive_name: str) -> "Artifact":
        """Build an artifact for ``archive_name``, attaching the log if it exists."""
        log = directory / companion_log_name(archive_name)
        return cls(archive=directory / archive_name, log=log if log.is_file() else None)


def find_archives(directory: Path, prefix: str):
    """List archive names in ``directory`` starting with ``prefix``, newest first."""
    if not directory.is_dir():
        return []
    names = [
        entry.name
        for entry in directory.iterdir()
        if entry.name.startswith(prefix) and is_archive(entry.name) and entry.is_file()
    ]
    return sorted(names, reverse=True)
