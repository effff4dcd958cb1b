"""
mbnd-sync: Sync MusicBee listening history into Navidrome.

This package copies play counts, ratings, loved flags and last played
dates from a MusicBee CSV export into the SQLite database of a Navidrome
server, then derives album and artist annotations from the tracks.

Architecture:
    A full sync runs 3 phases, one after the other:

    TRACKS (musicbee/, sync/matcher, sync/resolver):
        - Read the MusicBee CSV export, keep rows with something to sync
        - Look up Navidrome tracks by title and file name
        - Pick the best candidate by comparing folders from the file upwards
        - Write only the fields where MusicBee is ahead

    ALBUMS (sync/aggregates):
        - Sum track play counts, average track ratings, latest play date
        - Write only the fields where the tracks are ahead

    ARTISTS (sync/aggregates):
        - Same as albums; single-track artists never get a rating

    The database file is backed up before the first write and restored
    if anything fails, including Ctrl+C.

Modules:
    core/       - Configuration, logging, progress bars, backup, exceptions
    musicbee/   - CSV export reader and record model
    navidrome/  - Async database access and row models
    sync/       - Matching, conflict resolution, aggregation, orchestration
    utils/      - Date and rating helpers
    cli.py      - Command-line interface

Usage:
    Command Line:
        mbnd full-sync --user admin
        mbnd full-sync --first --csv MusicBee_Export.csv --db navidrome.db
        mbnd albums-sync
        mbnd artists-sync

    Python API:
        import asyncio
        from mbnd_sync.core import load_config, setup_logging
        from mbnd_sync.sync import Synchronizer, SyncAction

        config = load_config()
        setup_logging(config.paths.logs_directory)
        report = asyncio.run(Synchronizer(config).run(SyncAction.FULL_SYNC))

Dependencies:
    - aiosqlite: Async SQLite access
    - click: CLI framework
    - rich-click: CLI colors
    - rich: Progress bars
    - tqdm: Progress-bar friendly console logging
    - pyyaml: Configuration file parsing
"""

__version__ = "0.1.0"
__author__ = "mbnd-sync"
__license__ = "MIT"

# Convenience imports for common usage
from mbnd_sync.core import (
    BackupError,
    Config,
    ConfigError,
    DatabaseError,
    SyncError,
    ValidationError,
    get_logger,
    load_config,
    setup_logging,
)
from mbnd_sync.sync import SyncAction, SyncReport, Synchronizer

__all__ = [
    # Version
    "__version__",
    # Core
    "Config",
    "load_config",
    "setup_logging",
    "get_logger",
    # Exceptions
    "SyncError",
    "ConfigError",
    "ValidationError",
    "DatabaseError",
    "BackupError",
    # Sync
    "Synchronizer",
    "SyncAction",
    "SyncReport",
]
