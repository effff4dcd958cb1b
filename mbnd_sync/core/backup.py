"""
Database file backup and restore for mbnd-sync.

Every run copies the Navidrome database aside before touching it. If
anything goes wrong during a sync phase (including Ctrl+C), the copy is
put back over the live file, so a failed run leaves the database exactly
as it was.

Layout:
    working_directory/
    ├── navidrome.db
    └── backups/
        ├── navidrome_2025-01-15_10-30-00_backup.db
        └── navidrome_2025-02-02_21-04-13_backup.db

Backups from successful runs are kept. A backup consumed by a restore is
deleted, since the live file is then identical to it.

Usage:
    from mbnd_sync.core.backup import BackupManager

    backups = BackupManager(Path("backups"))
    backup_path = backups.create_backup(db_path)
    ...
    backups.restore(backup_path, db_path)
"""

import shutil
from datetime import datetime
from pathlib import Path
from typing import Callable

from mbnd_sync.core.exceptions import BackupError
from mbnd_sync.core.logger import get_logger


logger = get_logger(__name__)

BACKUP_TIMESTAMP_FORMAT = "%Y-%m-%d_%H-%M-%S"

# SQLite side files that must not survive a restore
SQLITE_SIDE_FILE_SUFFIXES = ("-wal", "-shm", "-journal")


class BackupManager:
    """
    Creates and restores timestamped copies of the database file.

    Attributes:
        backup_dir: Directory holding the backups (created on first backup).
    """

    def __init__(
        self,
        backup_dir: Path,
        clock: Callable[[], datetime] = datetime.now
    ) -> None:
        """
        Args:
            backup_dir: Directory holding the backups.
            clock: Source of the current time for backup names.
        """
        self.backup_dir = backup_dir
        self._clock = clock

    def get_backup_path(self, db_path: Path) -> Path:
        """
        Build the backup file path for a database.

        Format: {backup_dir}/{db stem}_{YYYY-MM-DD_HH-MM-SS}_backup{suffix}
        Example: backups/navidrome_2025-01-15_10-30-00_backup.db
        """
        timestamp = self._clock().strftime(BACKUP_TIMESTAMP_FORMAT)
        return self.backup_dir / f"{db_path.stem}_{timestamp}_backup{db_path.suffix}"

    def create_backup(self, db_path: Path) -> Path:
        """
        Copy the database file into the backup directory.

        Args:
            db_path: Live database file.

        Returns:
            Path of the backup file.

        Raises:
            BackupError: If the directory cannot be created or the copy fails.
        """
        backup_path = self.get_backup_path(db_path)

        try:
            self.backup_dir.mkdir(parents=True, exist_ok=True)
            shutil.copy2(db_path, backup_path)
        except OSError as e:
            raise BackupError(
                f"Failed to back up database: {e}",
                details={"db_path": str(db_path), "backup_path": str(backup_path)}
            ) from e

        logger.info(f"DB has been backed up to {backup_path}")
        return backup_path

    def restore(self, backup_path: Path, db_path: Path) -> None:
        """
        Put a backup back over the live database file, then delete the backup.

        The database connection must be closed before calling this.

        Args:
            backup_path: Backup created by create_backup().
            db_path: Live database file to overwrite.

        Raises:
            BackupError: If the copy fails. The backup is never deleted in
                         that case.
        """
        try:
            shutil.copy2(backup_path, db_path)
        except OSError as e:
            raise BackupError(
                f"Failed to restore database from backup: {e}. "
                f"Copy {backup_path} over {db_path} manually.",
                details={"db_path": str(db_path), "backup_path": str(backup_path)}
            ) from e

        for suffix in SQLITE_SIDE_FILE_SUFFIXES:
            Path(f"{db_path}{suffix}").unlink(missing_ok=True)

        backup_path.unlink(missing_ok=True)

        logger.info(f"DB has been restored from {backup_path}")
