"""Parsing of the comma-separated target list given on the command line."""
from dataclasses import dataclass, field
from typing import FrozenSet

from pvesync.core.errors import TargetParseError

HOST_CONFIG_TOKEN = "pve"
ALL_TOKEN = "all"


@dataclass(frozen=True)
class TargetSelection:
    """Which guests (and whether the host config) are backed up this run."""
    guest_ids: FrozenSet[int] = field(default_factory=frozenset)
    host_config: bool = False
    everything: bool = False

    @classmethod
    def parse(cls, raw: str) -> "TargetSelection":
        """Parse ``101,105,pve`` / ``all`` style input.

        Raises:
            TargetParseError: On tokens that are neither ids nor keywords,
                or when no token is present at all.
        """
        guest_ids = set()
        host_config = False
        everything = False

        tokens = [token.strip() for token in (raw or "").split(",")]
        tokens = [token for token in tokens if token]
        if not tokens:
            raise TargetParseError("No targets given")

        for token in tokens:
            lowered = token.lower()
            if lowered == ALL_TOKEN:
                everything = True
            elif lowered == HOST_CONFIG_TOKEN:
                host_config = True
            elif token.isdigit():
                guest_ids.add(int(token))
            else:
                raise TargetParseError(
                    f"Invalid target '{token}': expected a guest id, '{HOST_CONFIG_TOKEN}' or '{ALL_TOKEN}'"
                )

        return cls(guest_ids=frozenset(guest_ids), host_config=host_config, everything=everything)

    def includes_guest(self, vmid: int) -> bool:
        return self.everything or vmid in self.guest_ids

    def includes_host_config(self) -> bool:
        return self.everything or self.host_config

    def describe(self) -> str:
        if self.everything:
            return ALL_TOKEN
        parts = [str(vmid) for vmid in sorted(self.guest_ids)]
        if self.host_config:
            parts.append(HOST_CONFIG_TOKEN)
        return ",".join(parts)
