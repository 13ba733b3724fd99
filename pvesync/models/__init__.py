"""Data models for pvesync."""
from pvesync.models.artifact import (
    HOST_CONFIG_PREFIX,
    Artifact,
    companion_log_name,
    find_archives,
)
from pvesync.models.guest import Guest, GuestKind, GuestRole, GuestState
from pvesync.models.target import TargetSelection

__all__ = [
    'HOST_CONFIG_PREFIX',
    'Artifact',
    'companion_log_name',
    'find_archives',
    'Guest',
    'GuestKind',
    'GuestRole',
    'GuestState',
    'TargetSelection',
]
