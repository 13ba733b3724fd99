"""pvesync - Proxmox guest backup orchestration with remote mirroring."""

__version__ = "0.1.0"
