"""Tests for linking the newest artifact and pruning local history."""
import os

import pytest

from pvesync.services.retention import RetentionManager

PREFIX = "vzdump-lxc-101-"
STAMPS = [
    "2024_01_01-01_00_00",
    "2024_02_01-01_00_00",
    "2024_03_01-01_00_00",
    "2024_04_01-01_00_00",
    "2024_05_01-01_00_00",
]


@pytest.fixture
def retention(config):
    manager = RetentionManager(config)
    manager.prepare_staging()
    return manager


class TestLinkLatest:
    """Staging links always point at the frontier artifact."""

    def test_links_greatest_archive_and_log(self, config, retention, make_backup):
        for stamp in STAMPS[:3]:
            make_backup(config.backup_dir, PREFIX, stamp)

        linked = retention.link_latest(PREFIX)

        newest = f"{PREFIX}{STAMPS[2]}"
        assert linked == [f"{newest}.tar.zst", f"{newest}.log"]
        link = config.staging_dir / f"{newest}.tar.zst"
        assert link.is_symlink()
        assert os.readlink(link) == str(config.backup_dir / f"{newest}.tar.zst")

    def test_idempotent(self, config, retention, make_backup):
        make_backup(config.backup_dir, PREFIX, STAMPS[0])

        first = retention.link_latest(PREFIX)
        second = retention.link_latest(PREFIX)

        assert first == second
        assert retention.staging_entries() == sorted(first)

    def test_missing_log_is_not_fatal(self, config, retention, make_backup):
        make_backup(config.backup_dir, PREFIX, STAMPS[0], log=False)

        linked = retention.link_latest(PREFIX)

        assert linked == [f"{PREFIX}{STAMPS[0]}.tar.zst"]

    def test_no_archive_is_noop(self, retention):
        assert retention.link_latest(PREFIX) == []
        assert retention.staging_entries() == []

    def test_vm_archive_log(self, config, retention, make_backup):
        make_backup(config.backup_dir, "vzdump-qemu-100-", STAMPS[0], suffix=".vma.zst")

        linked = retention.link_latest("vzdump-qemu-100-")

        assert f"vzdump-qemu-100-{STAMPS[0]}.log" in linked

    def test_prefix_does_not_match_longer_ids(self, config, retention, make_backup):
        make_backup(config.backup_dir, "vzdump-lxc-1010-", "2099_01_01-00_00_00")

        assert retention.link_latest(PREFIX) == []


class TestPrune:
    """Local retention window."""

    def test_keeps_three_newest(self, config, retention, make_backup):
        for stamp in STAMPS:
            make_backup(config.backup_dir, PREFIX, stamp)

        pruned, orphans = retention.prune(PREFIX)

        assert pruned == [f"{PREFIX}{STAMPS[1]}.tar.zst", f"{PREFIX}{STAMPS[0]}.tar.zst"]
        assert orphans == []
        remaining = sorted(p.name for p in config.backup_dir.iterdir())
        expected = sorted(
            f"{PREFIX}{stamp}{ext}" for stamp in STAMPS[2:] for ext in (".tar.zst", ".log")
        )
        assert remaining == expected

    def test_nothing_to_prune(self, config, retention, make_backup):
        for stamp in STAMPS[:3]:
            make_backup(config.backup_dir, PREFIX, stamp)

        pruned, _ = retention.prune(PREFIX)

        assert pruned == []
        assert len(list(config.backup_dir.iterdir())) == 6

    def test_orphan_log_removed_matched_log_kept(self, config, retention, make_backup):
        make_backup(config.backup_dir, PREFIX, STAMPS[0])
        orphan = config.backup_dir / f"{PREFIX}{STAMPS[1]}.log"
        orphan.write_text("stale")

        _, orphans = retention.prune(PREFIX)

        assert orphans == [orphan.name]
        assert not orphan.exists()
        assert (config.backup_dir / f"{PREFIX}{STAMPS[0]}.log").exists()

    def test_other_prefixes_untouched(self, config, retention, make_backup):
        for stamp in STAMPS:
            make_backup(config.backup_dir, "vzdump-lxc-102-", stamp)
        (config.backup_dir / "vzdump-lxc-102-orphan.log").write_text("x")

        retention.prune(PREFIX)

        assert len(list(config.backup_dir.iterdir())) == 11

    def test_dry_run_deletes_nothing(self, config, make_backup):
        for stamp in STAMPS:
            make_backup(config.backup_dir, PREFIX, stamp)
        (config.backup_dir / f"{PREFIX}orphan.log").write_text("x")
        before = sorted(p.name for p in config.backup_dir.iterdir())

        pruned, orphans = RetentionManager(config, dry_run=True).prune(PREFIX)

        assert len(pruned) == 2
        assert orphans == []
        assert sorted(p.name for p in config.backup_dir.iterdir()) == before

    def test_process_links_before_pruning(self, config, retention, make_backup):
        for stamp in STAMPS:
            make_backup(config.backup_dir, PREFIX, stamp)

        result = retention.process(PREFIX)

        assert result.linked[0] == f"{PREFIX}{STAMPS[-1]}.tar.zst"
        assert len(result.pruned) == 2


class TestStaging:
    """Staging directory housekeeping."""

    def test_prepare_clears_previous_links(self, config, make_backup):
        config.staging_dir.mkdir()
        (config.staging_dir / "leftover.tar.zst").write_text("x")

        RetentionManager(config).prepare_staging()

        assert list(config.staging_dir.iterdir()) == []

    def test_clear_counts_entries(self, config, retention, make_backup):
        make_backup(config.backup_dir, PREFIX, STAMPS[0])
        retention.link_latest(PREFIX)

        assert retention.clear_staging() == 2
        assert retention.staging_entries() == []
        # the backups themselves are untouched
        assert len(list(config.backup_dir.iterdir())) == 2
