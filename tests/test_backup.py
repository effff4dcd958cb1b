"""Test database file backup and restore"""

from datetime import datetime

import pytest

from mbnd_sync.core.backup import BackupManager
from mbnd_sync.core.exceptions import BackupError


def _fixed_clock():
    return datetime(2025, 1, 15, 10, 30, 0)


class TestBackupManager:
    """Test backup naming, copy and restore"""

    def test_backup_path(self, temp_dir):
        manager = BackupManager(temp_dir / "backups", clock=_fixed_clock)

        path = manager.get_backup_path(temp_dir / "navidrome.db")

        assert path == temp_dir / "backups" / "navidrome_2025-01-15_10-30-00_backup.db"

    def test_create_and_restore(self, temp_dir):
        db_path = temp_dir / "navidrome.db"
        db_path.write_bytes(b"original")
        manager = BackupManager(temp_dir / "backups", clock=_fixed_clock)

        backup_path = manager.create_backup(db_path)
        db_path.write_bytes(b"modified")
        (temp_dir / "navidrome.db-wal").write_bytes(b"wal")
        (temp_dir / "navidrome.db-shm").write_bytes(b"shm")

        manager.restore(backup_path, db_path)

        assert db_path.read_bytes() == b"original"
        assert not backup_path.exists()
        assert not (temp_dir / "navidrome.db-wal").exists()
        assert not (temp_dir / "navidrome.db-shm").exists()

    def test_backup_of_missing_file(self, temp_dir):
        manager = BackupManager(temp_dir / "backups")

        with pytest.raises(BackupError):
            manager.create_backup(temp_dir / "missing.db")

    def test_restore_from_missing_backup(self, temp_dir):
        db_path = temp_dir / "navidrome.db"
        db_path.write_bytes(b"current")
        manager = BackupManager(temp_dir / "backups")

        with pytest.raises(BackupError) as exc_info:
            manager.restore(temp_dir / "backups" / "gone.db", db_path)

        assert exc_info.value.details["db_path"] == str(db_path)
        assert db_path.read_bytes() == b"current"
