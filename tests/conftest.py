"""Shared test fixtures for pvesync tests."""
from pathlib import Path

import pytest

from pvesync.core.config import BackupConfig
from pvesync.models.artifact import HOST_CONFIG_PREFIX, Artifact
from pvesync.models.guest import Guest, GuestKind, GuestRole, GuestState

STORAGE = Guest(103, GuestKind.CONTAINER, GuestRole.STORAGE, "nas")
DEPENDENTS = (
    Guest(101, GuestKind.CONTAINER, GuestRole.DEPENDENT),
    Guest(102, GuestKind.CONTAINER, GuestRole.DEPENDENT),
)
INDEPENDENTS = (
    Guest(104, GuestKind.CONTAINER, GuestRole.INDEPENDENT),
    Guest(100, GuestKind.VM, GuestRole.INDEPENDENT),
)


class FakeLifecycle:
    """In-memory stand-in for GuestLifecycle that records every action."""

    def __init__(self, events, states=None):
        self.events = events
        self.states = dict(states or {})

    def status(self, guest):
        return self.states.get(guest.vmid, GuestState.STOPPED)

    def is_running(self, guest):
        return self.status(guest) is GuestState.RUNNING

    def stop(self, guest):
        self.events.append(('stop', guest.vmid))
        self.states[guest.vmid] = GuestState.STOPPED

    def start(self, guest):
        self.events.append(('start', guest.vmid))
        self.states[guest.vmid] = GuestState.RUNNING


class FakeExecutor:
    """Writes archive/log pairs to disk the way vzdump would."""

    def __init__(self, config, events):
        self.config = config
        self.events = events
        self.counter = 0

    def _stamp(self):
        self.counter += 1
        return f"2030_01_01-00_00_{self.counter:02d}"

    def backup_guest(self, guest, dumpdir=None):
        dumpdir = Path(dumpdir or self.config.backup_dir)
        base = f"{guest.artifact_prefix}{self._stamp()}"
        archive = dumpdir / f"{base}{guest.kind.archive_suffix}"
        log = dumpdir / f"{base}.log"
        archive.write_text("archive")
        log.write_text("log")
        self.events.append(('backup', guest.vmid, str(dumpdir)))
        return Artifact(archive=archive, log=log)

    def backup_host_config(self):
        archive = self.config.backup_dir / f"{HOST_CONFIG_PREFIX}{self._stamp()}.tar.zst"
        archive.write_text("archive")
        self.events.append(('backup', 'pve', str(self.config.backup_dir)))
        return Artifact(archive=archive)


@pytest.fixture
def config(tmp_path):
    """Config rooted in tmp_path with no real delays."""
    backup_dir = tmp_path / "nas" / "dump"
    backup_dir.mkdir(parents=True)
    scratch_dir = tmp_path / "scratch"
    scratch_dir.mkdir()
    return BackupConfig(
        backup_dir=backup_dir,
        staging_dir=tmp_path / "staging",
        scratch_dir=scratch_dir,
        work_root=tmp_path / "work",
        guests=(STORAGE,) + DEPENDENTS + INDEPENDENTS,
        host_config_paths=(),
        stop_poll_interval=0,
        mount_settle_delay=0,
        mount_poll_interval=0,
        mount_poll_attempts=3,
        cleanup_settle_delay=0,
    )


@pytest.fixture
def events():
    return []


@pytest.fixture
def fake_lifecycle(events):
    """Every managed guest starts out running."""
    vmids = [STORAGE.vmid] + [g.vmid for g in DEPENDENTS + INDEPENDENTS]
    return FakeLifecycle(events, {vmid: GuestState.RUNNING for vmid in vmids})


@pytest.fixture
def fake_executor(config, events):
    return FakeExecutor(config, events)


@pytest.fixture
def sleeps():
    """Collects requested sleep durations instead of sleeping."""
    return []


@pytest.fixture
def fake_sleep(sleeps):
    return sleeps.append


@pytest.fixture
def make_backup():
    """Create an archive (and optionally its log) in a directory."""

    def _make(directory: Path, prefix: str, stamp: str, suffix: str = ".tar.zst", log: bool = True):
        archive = directory / f"{prefix}{stamp}{suffix}"
        archive.write_text("archive")
        if log:
            (directory / f"{prefix}{stamp}.log").write_text("log")
        return archive

    return _make
