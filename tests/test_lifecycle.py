"""Tests for guest lifecycle control."""
import subprocess
from types import SimpleNamespace

import pytest

from pvesync.core.errors import LifecycleError
from pvesync.models.guest import Guest, GuestKind, GuestRole, GuestState
from pvesync.services.proxmox.lifecycle import GuestLifecycle

CT = Guest(101, GuestKind.CONTAINER, GuestRole.DEPENDENT)
VM = Guest(100, GuestKind.VM, GuestRole.INDEPENDENT)


def _patch_run(monkeypatch, statuses=None, fail_on=None):
    """Fake subprocess.run: status calls pop from ``statuses``; others are recorded."""
    calls = []
    statuses = list(statuses or [])

    def fake_run(cmd, capture_output=False, text=False, check=False):
        calls.append(cmd)
        if fail_on and cmd[1] == fail_on:
            raise subprocess.CalledProcessError(1, cmd, stderr="boom")
        if cmd[1] == 'status':
            state = statuses.pop(0) if statuses else 'stopped'
            return SimpleNamespace(stdout=f"status: {state}\n", stderr="")
        return SimpleNamespace(stdout="", stderr="")

    monkeypatch.setattr("pvesync.services.proxmox.lifecycle.subprocess.run", fake_run)
    return calls


class TestStatus:
    """Status queries."""

    def test_running(self, monkeypatch):
        calls = _patch_run(monkeypatch, statuses=['running'])

        assert GuestLifecycle().status(CT) is GuestState.RUNNING
        assert calls == [['pct', 'status', '101']]

    def test_vm_uses_qm(self, monkeypatch):
        calls = _patch_run(monkeypatch, statuses=['stopped'])

        assert GuestLifecycle().status(VM) is GuestState.STOPPED
        assert calls == [['qm', 'status', '100']]

    def test_failed_query_counts_as_stopped(self, monkeypatch):
        _patch_run(monkeypatch, fail_on='status')

        assert GuestLifecycle().status(CT) is GuestState.STOPPED


class TestStop:
    """Stopping blocks until the guest reports stopped."""

    def test_waits_for_stopped(self, monkeypatch, sleeps, fake_sleep):
        calls = _patch_run(monkeypatch, statuses=['running'] * 5 + ['stopped'])
        lifecycle = GuestLifecycle(stop_poll_interval=3, sleep=fake_sleep)

        lifecycle.stop(CT)

        assert calls[0] == ['pct', 'shutdown', '101', '--force']
        status_calls = [c for c in calls if c[1] == 'status']
        assert len(status_calls) == 6
        assert sleeps == [3] * 5
        assert lifecycle.status(CT) is GuestState.STOPPED

    def test_vm_shutdown_command(self, monkeypatch, fake_sleep):
        calls = _patch_run(monkeypatch, statuses=['stopped'])

        GuestLifecycle(sleep=fake_sleep).stop(VM)

        assert calls[0] == ['qm', 'shutdown', '100', '--forceStop', '1']

    def test_primitive_failure_is_fatal(self, monkeypatch, fake_sleep):
        _patch_run(monkeypatch, fail_on='shutdown')

        with pytest.raises(LifecycleError) as exc_info:
            GuestLifecycle(sleep=fake_sleep).stop(CT)

        assert exc_info.value.vmid == 101
        assert "boom" in str(exc_info.value)

    def test_dry_run_does_nothing(self, monkeypatch, sleeps, fake_sleep):
        calls = _patch_run(monkeypatch)

        GuestLifecycle(dry_run=True, sleep=fake_sleep).stop(CT)

        assert calls == []
        assert sleeps == []


class TestStart:
    """Starting is fire-and-forget."""

    def test_start(self, monkeypatch):
        calls = _patch_run(monkeypatch)

        GuestLifecycle().start(CT)

        assert calls == [['pct', 'start', '101']]

    def test_start_failure_is_fatal(self, monkeypatch):
        _patch_run(monkeypatch, fail_on='start')

        with pytest.raises(LifecycleError):
            GuestLifecycle().start(VM)

    def test_dry_run(self, monkeypatch):
        calls = _patch_run(monkeypatch)

        GuestLifecycle(dry_run=True).start(CT)

        assert calls == []
