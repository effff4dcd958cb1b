"""
Sync orchestration: MusicBee CSV -> Navidrome database.

A run goes through these states, in order:

    INIT            check the datetime format, then the input files
    BACKUP_TAKEN    copy the database file aside
    USERS_RESOLVED  open the database and pick the Navidrome user
    TRACKS_PHASE    full sync only: match and update every eligible CSV row
    ALBUMS_PHASE    full sync and albums sync: derive album annotations
    ARTISTS_PHASE   full sync and artists sync: derive artist annotations
    CLOSED          close the database and report

Any exception after the backup was taken (including Ctrl+C, SIGTERM and
task cancellation) goes FAILED -> RESTORING -> RERAISED: the database is
closed, the backup is copied back over it, and the exception propagates
unchanged. Recovery is file-level; there is no row-level rollback.

Concurrency:
    Within a phase, items run as asyncio tasks gated by a semaphore
    (sync.concurrency, 20 by default). Database calls and CSV reads
    (run in a worker thread) suspend; matching and resolution are plain
    functions. Rows of a batch that match the same track are serialized
    by a per-track lock. Phases never overlap, since albums and artists
    are derived from what the tracks phase wrote.

Usage:
    synchronizer = Synchronizer(config)
    report = asyncio.run(synchronizer.run(SyncAction.FULL_SYNC))
"""

import asyncio
import signal
import time
from collections import defaultdict
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Callable, Iterable, TypeVar

from mbnd_sync.core.backup import BackupManager
from mbnd_sync.core.config import Config
from mbnd_sync.core.exceptions import ValidationError
from mbnd_sync.core.logger import (
    format_summary_message,
    get_logger,
    log_track_not_found,
)
from mbnd_sync.core.progress import (
    AggregateProgressBar,
    NullProgressBar,
    TrackProgressBar,
)
from mbnd_sync.musicbee.models import ImportRecord
from mbnd_sync.musicbee.reader import MusicBeeReader
from mbnd_sync.navidrome.database import NavidromeDatabase
from mbnd_sync.navidrome.models import AggregateStats, ItemType
from mbnd_sync.sync.aggregates import resolve_aggregate
from mbnd_sync.sync.matcher import find_best_match
from mbnd_sync.sync.resolver import ResolveOptions, resolve_track
from mbnd_sync.utils import format_elapsed, validate_datetime_format


logger = get_logger(__name__)

T = TypeVar("T")

INTERRUPT_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class SyncAction(str, Enum):
    """What a run synchronizes. Values are the CLI command names."""
    FULL_SYNC = "full-sync"
    ALBUMS_SYNC = "albums-sync"
    ARTISTS_SYNC = "artists-sync"


class SyncState(Enum):
    INIT = "init"
    BACKUP_TAKEN = "backup_taken"
    USERS_RESOLVED = "users_resolved"
    TRACKS_PHASE = "tracks_phase"
    ALBUMS_PHASE = "albums_phase"
    ARTISTS_PHASE = "artists_phase"
    CLOSED = "closed"
    FAILED = "failed"
    RESTORING = "restoring"
    RERAISED = "reraised"


class TrackOutcome(Enum):
    UPDATED = "updated"
    NOT_FOUND = "not_found"
    UNCHANGED = "unchanged"


@dataclass
class SyncReport:
    """
    Counts of a completed run.

    Attributes:
        action: What was synchronized.
        tracks_updated: Tracks whose annotation was written.
        tracks_not_found: CSV rows with no matching Navidrome track.
        tracks_unchanged: Matched tracks that were already up to date.
        albums_updated: Albums whose annotation was written.
        artists_updated: Artists whose annotation was written.
        elapsed: Wall-clock duration of the run, in seconds.
        backup_path: The backup taken before the run (kept on success).
    """
    action: SyncAction
    tracks_updated: int = 0
    tracks_not_found: int = 0
    tracks_unchanged: int = 0
    albums_updated: int = 0
    artists_updated: int = 0
    elapsed: float = 0.0
    backup_path: Path | None = None


class Synchronizer:
    """
    Runs one synchronization against a Navidrome database.

    A Synchronizer is meant for a single run() call.

    Attributes:
        config: Effective configuration (file + CLI overrides).
        backup_manager: Creates and restores the pre-run backup.
        state: Current SyncState, for logging and tests.
        backup_path: Backup of the current run, once taken.
    """

    def __init__(
        self,
        config: Config,
        backup_manager: BackupManager | None = None,
        database_factory: Callable[[Path], NavidromeDatabase] = NavidromeDatabase
    ) -> None:
        self.config = config
        self.backup_manager = backup_manager or BackupManager(config.paths.backup_directory)
        self._database_factory = database_factory

        self.state = SyncState.INIT
        self.database: NavidromeDatabase | None = None
        self.user: dict[str, Any] | None = None
        self.backup_path: Path | None = None

        self._resolve_options = ResolveOptions(
            first_run=config.sync.first_run,
            allow_rating_downgrade=config.sync.allow_rating_downgrade,
        )
        self._semaphore: asyncio.Semaphore | None = None
        self._signal_loop: asyncio.AbstractEventLoop | None = None
        self._installed_signals: list[signal.Signals] = []
        # Per-batch serialization of rows matching the same track
        self._track_locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._touched_tracks: set[str] = set()

    # =========================================================================
    # Run
    # =========================================================================

    async def run(
        self,
        action: SyncAction,
        album_ids: Iterable[str] | None = None,
        artist_ids: Iterable[str] | None = None
    ) -> SyncReport:
        """
        Run a synchronization.

        Args:
            action: Full sync, albums only or artists only.
            album_ids: Restrict the albums phase to these albums (all by default).
            artist_ids: Restrict the artists phase to these artists (all by default).

        Returns:
            SyncReport with the counts of the run.

        Raises:
            ValidationError: Bad datetime format, missing file, missing CSV
                             column or unknown user.
            BackupError: The backup could not be taken or restored.
            DatabaseError: The database could not be opened or written.
            Anything else raised during a phase, after the database was restored.
        """
        started_at = time.monotonic()
        report = SyncReport(action=action)

        self._set_state(SyncState.INIT)
        self._validate_inputs(action)

        self.backup_path = self.backup_manager.create_backup(self.config.paths.db_file)
        report.backup_path = self.backup_path
        self._set_state(SyncState.BACKUP_TAKEN)

        self._semaphore = asyncio.Semaphore(self.config.sync.concurrency)
        self._install_signal_handlers()
        try:
            await self._open_database()
            await self._resolve_user()

            if action is SyncAction.FULL_SYNC:
                await self._sync_tracks(report)
            if action in (SyncAction.FULL_SYNC, SyncAction.ALBUMS_SYNC):
                report.albums_updated = await self._sync_aggregates(ItemType.ALBUM, album_ids)
            if action in (SyncAction.FULL_SYNC, SyncAction.ARTISTS_SYNC):
                report.artists_updated = await self._sync_aggregates(ItemType.ARTIST, artist_ids)

            await self._close_database()
            self._set_state(SyncState.CLOSED)
        except BaseException as e:
            self._set_state(SyncState.FAILED)
            logger.error(f"Sync failed: {e!r}")
            await self._restore()
            self._set_state(SyncState.RERAISED)
            raise
        finally:
            self._remove_signal_handlers()

        report.elapsed = time.monotonic() - started_at
        logger.info(f"Sync completed in {format_elapsed(report.elapsed)}")
        return report

    def _set_state(self, state: SyncState) -> None:
        logger.debug(f"State: {self.state.value} -> {state.value}")
        self.state = state

    def _validate_inputs(self, action: SyncAction) -> None:
        """
        Check everything that can be checked before touching the database.

        The datetime format is checked first, before any file access.
        """
        validate_datetime_format(self.config.sync.datetime_format)

        paths = self.config.paths
        if action is SyncAction.FULL_SYNC and not paths.csv_file.exists():
            raise ValidationError(
                f"CSV file not found: {paths.csv_file}",
                details={"path": str(paths.csv_file)}
            )
        if not paths.db_file.exists():
            raise ValidationError(
                f"Database file not found: {paths.db_file}",
                details={"path": str(paths.db_file)}
            )

    # =========================================================================
    # Database and user
    # =========================================================================

    async def _open_database(self) -> None:
        database = self._database_factory(self.config.paths.db_file)
        self.database = database
        await database.open()

    async def _close_database(self) -> None:
        if self.database is not None:
            database, self.database = self.database, None
            await database.close()

    async def _resolve_user(self) -> None:
        user_name = self.config.sync.user
        user = await self._require_database().get_user(user_name)
        if user is None:
            message = f"User {user_name} not found" if user_name else "No user found in the database"
            raise ValidationError(message, details={"user": user_name})

        self.user = user
        logger.info(f"Navidrome user: {user.get('user_name', user['id'])}")
        self._set_state(SyncState.USERS_RESOLVED)

    def _require_database(self) -> NavidromeDatabase:
        if self.database is None:
            raise RuntimeError("Database is not open")
        return self.database

    @property
    def _user_id(self) -> str:
        if self.user is None:
            raise RuntimeError("User is not resolved")
        return self.user["id"]

    # =========================================================================
    # Failure path
    # =========================================================================

    async def _restore(self) -> None:
        """Close the database and put the pre-run backup back."""
        self._set_state(SyncState.RESTORING)
        try:
            await self._close_database()
        except Exception as e:
            # The file is overwritten next, a failed close must not stop that
            logger.warning(f"Error while closing the database: {e}")

        if self.backup_path is None:
            return

        logger.warning("Restoring the database from the backup taken before the run...")
        self.backup_manager.restore(self.backup_path, self.config.paths.db_file)
        logger.info("The database has been restored to its state before the run")

    def _install_signal_handlers(self) -> None:
        """
        Turn SIGINT/SIGTERM into cancellation of the running task.

        Cancellation reaches the failure path like any other exception.
        Not supported on Windows event loops, where Ctrl+C raises
        KeyboardInterrupt instead.
        """
        task = asyncio.current_task()
        if task is None:
            return

        loop = asyncio.get_running_loop()
        for sig in INTERRUPT_SIGNALS:
            try:
                loop.add_signal_handler(sig, self._on_interrupt, sig, task)
            except (NotImplementedError, RuntimeError, ValueError):
                continue
            self._installed_signals.append(sig)
        self._signal_loop = loop

    def _remove_signal_handlers(self) -> None:
        if self._signal_loop is None:
            return
        for sig in self._installed_signals:
            self._signal_loop.remove_signal_handler(sig)
        self._installed_signals.clear()
        self._signal_loop = None

    def _on_interrupt(self, sig: signal.Signals, task: asyncio.Task) -> None:
        if self.state in (SyncState.FAILED, SyncState.RESTORING):
            logger.warning(f"Received {sig.name}, restore in progress, please wait...")
            return
        logger.warning(f"Received {sig.name}, aborting...")
        task.cancel()

    # =========================================================================
    # Bounded concurrency
    # =========================================================================

    async def _bounded(self, coro: Awaitable[T]) -> T:
        semaphore = self._semaphore
        if semaphore is None:
            raise RuntimeError("Semaphore is not initialized")
        async with semaphore:
            return await coro

    async def _gather(self, coros: Iterable[Awaitable[T]]) -> list[T]:
        """
        Run coroutines under the semaphore and wait for all of them.

        If one fails, the others are cancelled and awaited before the
        error propagates, so nothing keeps using the database afterwards.
        """
        tasks = [asyncio.ensure_future(self._bounded(coro)) for coro in coros]
        try:
            return list(await asyncio.gather(*tasks))
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    def _make_progress(self, bar_class: type, total: int, description: str):
        if self.config.output.verbose:
            return NullProgressBar(total=total, description=description)
        return bar_class(total=total, description=description)

    # =========================================================================
    # Tracks phase
    # =========================================================================

    async def _sync_tracks(self, report: SyncReport) -> None:
        self._set_state(SyncState.TRACKS_PHASE)
        sync_options = self.config.sync

        reader = MusicBeeReader(self.config.paths.csv_file, sync_options.datetime_format)
        # File reads run off the event loop
        total = await asyncio.to_thread(reader.count_eligible)
        batches = reader.iter_batches(sync_options.batch_size)

        with self._make_progress(TrackProgressBar, total, "Tracks") as progress:
            while True:
                batch = await asyncio.to_thread(next, batches, None)
                if batch is None:
                    break
                self._track_locks.clear()
                self._touched_tracks.clear()
                outcomes = await self._gather(
                    self._sync_track(record, progress) for record in batch
                )
                for outcome in outcomes:
                    if outcome is TrackOutcome.UPDATED:
                        report.tracks_updated += 1
                    elif outcome is TrackOutcome.NOT_FOUND:
                        report.tracks_not_found += 1
                    else:
                        report.tracks_unchanged += 1

        logger.info(format_summary_message("tracks", report.tracks_updated))
        if report.tracks_not_found > 0:
            logger.warning(f"{report.tracks_not_found} tracks not found")

    async def _sync_track(self, record: ImportRecord, progress) -> TrackOutcome:
        """
        Look up, match, resolve and write one CSV record.

        Several rows of a batch can match the same Navidrome track (the same
        file under two library roots). Those are applied one after the
        other under a per-track lock, each resolved against the annotation
        the previous one wrote.
        """
        database = self._require_database()
        sync_options = self.config.sync

        candidates = await database.find_tracks(self._user_id, record.title, record.filename)
        track = find_best_match(record, candidates)

        if track is None:
            log_track_not_found(
                logger,
                title=record.title,
                file_path=record.file_path,
                filename=record.filename,
                show=self.config.output.verbose or sync_options.show_not_found,
            )
            progress.update(not_found=True)
            return TrackOutcome.NOT_FOUND

        logger.debug(f"processing track: {record.file_path}")

        async with self._track_locks[track.id]:
            existing = track.annotation
            if track.id in self._touched_tracks:
                # Lookup result is stale, another row of this batch got here first
                existing = await database.get_annotation(ItemType.MEDIA_FILE, self._user_id, track.id)
            self._touched_tracks.add(track.id)

            update = resolve_track(record, existing, self._resolve_options)
            if not update:
                progress.update(updated=False)
                return TrackOutcome.UNCHANGED

            await database.upsert_annotation(
                ItemType.MEDIA_FILE,
                self._user_id,
                track.id,
                update,
                needs_create=not existing.exists,
            )
        progress.update(updated=True)
        return TrackOutcome.UPDATED

    # =========================================================================
    # Albums / artists phases
    # =========================================================================

    async def _sync_aggregates(self, kind: ItemType, ids: Iterable[str] | None) -> int:
        """
        Derive and write album or artist annotations.

        Returns:
            Number of entities updated.
        """
        database = self._require_database()
        if kind is ItemType.ALBUM:
            self._set_state(SyncState.ALBUMS_PHASE)
            stats_list = await database.get_album_stats(self._user_id, ids)
            label = "albums"
        else:
            self._set_state(SyncState.ARTISTS_PHASE)
            stats_list = await database.get_artist_stats(self._user_id, ids)
            label = "artists"

        logger.info(f"{len(stats_list)} {label} to process")

        with self._make_progress(AggregateProgressBar, len(stats_list), label.capitalize()) as progress:
            results = await self._gather(
                self._sync_aggregate(stats, progress) for stats in stats_list
            )

        updated = sum(1 for result in results if result)
        logger.info(format_summary_message(label, updated))
        return updated

    async def _sync_aggregate(self, stats: AggregateStats, progress) -> bool:
        update = resolve_aggregate(stats)
        if not update:
            progress.update(updated=False)
            return False

        await self._require_database().upsert_annotation(
            stats.kind,
            self._user_id,
            stats.id,
            update,
            needs_create=not stats.annotation.exists,
        )
        logger.debug(f"Updated {stats.kind.value}: {stats.name}")
        progress.update(updated=True)
        return True
