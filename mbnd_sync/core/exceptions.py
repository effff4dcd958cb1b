"""
Errors raised by mbnd-sync.

Every failure that stops a run is a SyncError subclass, so the CLI maps
each kind to its own exit code:

    SyncError
        ConfigError      mbnd.yaml unreadable or holding bad values
        ValidationError  bad inputs (files, CSV header, date format, user)
        DatabaseError    Navidrome database cannot be opened, read or written
        BackupError      copying the database file to or from the backup failed

A CSV track missing from Navidrome is not an error. It is counted,
written to the not-found report, and the run goes on.
"""


class SyncError(Exception):
    """
    Root of the mbnd-sync error types.

    Attributes:
        message: Text shown to the user.
        details: Extra context for the logs (paths, ids, the wrapped error).

    Example:
        try:
            await synchronizer.run(SyncAction.FULL_SYNC)
        except SyncError as e:
            logger.error(f"Sync failed: {e.message}")
            if e.details:
                logger.debug(f"Details: {e.details}")
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        return self.message


class ConfigError(SyncError):
    """
    mbnd.yaml is not valid YAML, a section is not a mapping, or a value
    is out of range (e.g. a concurrency below 1).

    Example:
        raise ConfigError(
            "'sync.concurrency' must be a positive integer",
            details={'field': 'sync.concurrency', 'value': -1}
        )
    """
    pass


class ValidationError(SyncError):
    """
    The inputs of a run are unusable.

    File, header and date-format problems are caught before the backup
    is taken. An unknown Navidrome user is only detected once the
    database is open, in which case the usual restore still runs.

    Example:
        raise ValidationError(
            "'Skip Count' missing in your CSV headers",
            details={'column': 'Skip Count', 'path': 'MusicBee_Export.csv'}
        )
    """
    pass


class DatabaseError(SyncError):
    """
    The Navidrome database failed: not a SQLite file, locked, or a
    statement raised (constraint violations included). Raised during a
    sync phase, it triggers a restore from the backup.

    Example:
        raise DatabaseError(
            "Failed to create annotation: UNIQUE constraint failed",
            details={'item_type': 'album', 'item_id': 'abc123'}
        )
    """
    pass


class BackupError(SyncError):
    """
    The database file could not be copied to or back from the backup.

    Before the run this only aborts it. During a restore the database may
    be left half-updated; details['backup_path'] names the file to copy
    back by hand.
    """
    pass
