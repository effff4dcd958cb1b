"""
Command-line interface for mbnd-sync.

This module implements the CLI using Click, providing the three sync
commands. rich-click is used for the output colors.

Commands:
    mbnd full-sync          Tracks from the CSV, then albums, then artists
    mbnd albums-sync        Recompute album annotations from their tracks
    mbnd artists-sync       Recompute artist annotations from their tracks

Usage:
    # First sync ever: add MusicBee play counts to Navidrome's
    mbnd full-sync --first --user admin

    # Later syncs
    mbnd full-sync --user admin --csv ~/MusicBee_Export.csv --db ./navidrome.db

    # Only refresh albums / artists
    mbnd albums-sync
    mbnd artists-sync

Configuration:
    Every option can also be set in an optional mbnd.yaml in the current
    directory (or the file given with --config). Command-line options win.

Exit Codes:
    0    Success
    1    Configuration or validation error (nothing was written)
    2    Database error (database restored if a sync phase had started)
    3    Other sync error
    130  Interrupted (database restored)

Stop Navidrome before syncing: it must not write to the database while
mbnd-sync runs, and it caches annotations.
"""

import asyncio
import sys
from pathlib import Path
from typing import Callable, Optional

import rich_click as click

# Configure rich-click for better help formatting
click.rich_click.USE_RICH_MARKUP = True
click.rich_click.STYLE_ERRORS_SUGGESTION = "magenta italic"
click.rich_click.ERRORS_SUGGESTION = ""
click.rich_click.MAX_WIDTH = 100
click.rich_click.OPTION_GROUPS = {
    "mbnd full-sync": [
        {
            "name": "Input Files",
            "options": ["--csv", "--db", "--config"],
        },
        {
            "name": "Sync Options",
            "options": [
                "--user",
                "--first",
                "--datetime-format",
                "--allow-rating-downgrade",
            ],
        },
        {
            "name": "Output",
            "options": ["--verbose", "--show-not-found", "--help"],
        },
    ],
}

from mbnd_sync import __version__
from mbnd_sync.core import (
    BackupError,
    Config,
    ConfigError,
    DatabaseError,
    SyncError,
    ValidationError,
    apply_overrides,
    get_logger,
    load_config,
    setup_logging,
    shutdown_logging,
)
from mbnd_sync.sync import SyncAction, SyncReport, Synchronizer

logger = get_logger(__name__)


def _common_options(command: Callable) -> Callable:
    """Options shared by every sync command."""
    command = click.option(
        "--verbose",
        is_flag=True,
        help="Log every processed item instead of showing progress bars"
    )(command)
    command = click.option(
        "--config", "config_path",
        type=click.Path(path_type=Path),
        default=None,
        metavar="<mbnd.yaml>",
        help="Configuration file (default: ./mbnd.yaml if present)"
    )(command)
    command = click.option(
        "--db",
        type=click.Path(path_type=Path),
        default=None,
        metavar="<navidrome.db>",
        help="Navidrome database file (default: ./navidrome.db)"
    )(command)
    command = click.option(
        "--user", "-u",
        type=str,
        default=None,
        metavar="<username>",
        help="Navidrome user to sync (default: first user)"
    )(command)
    return command


@click.group()
@click.version_option(__version__, "--version", prog_name="mbnd-sync")
def cli() -> None:
    """
    mbnd-sync: Sync MusicBee listening history into Navidrome.

    Copies play counts, ratings, loved tracks and last played dates from a
    MusicBee CSV export into the Navidrome database, then derives album
    and artist play counts, ratings and play dates from their tracks.

    \b
    BASIC USAGE:
        mbnd full-sync --first     # First sync: add play counts
        mbnd full-sync             # Later syncs
        mbnd albums-sync           # Albums only
        mbnd artists-sync          # Artists only

    The database is backed up before any change and restored on failure.
    Stop Navidrome before running.
    """


@cli.command("full-sync")
@_common_options
@click.option(
    "--first", "-f",
    is_flag=True,
    help="First sync: add MusicBee play counts to Navidrome's"
)
@click.option(
    "--csv",
    type=click.Path(path_type=Path),
    default=None,
    metavar="<export.csv>",
    help="MusicBee CSV export (default: ./MusicBee_Export.csv)"
)
@click.option(
    "--datetime-format",
    type=str,
    default=None,
    metavar="<format>",
    help="strftime format of the 'Last Played' column (default: %d/%m/%Y %H:%M)"
)
@click.option(
    "--show-not-found",
    is_flag=True,
    help="Print MusicBee tracks missing from Navidrome"
)
@click.option(
    "--allow-rating-downgrade",
    is_flag=True,
    help="Let a lower non-zero MusicBee rating replace Navidrome's"
)
def full_sync(
    user: Optional[str],
    db: Optional[Path],
    config_path: Optional[Path],
    verbose: bool,
    first: bool,
    csv: Optional[Path],
    datetime_format: Optional[str],
    show_not_found: bool,
    allow_rating_downgrade: bool
) -> None:
    """Sync tracks from the MusicBee CSV, then albums and artists."""
    _run_sync(
        SyncAction.FULL_SYNC,
        config_path,
        user=user,
        db=db,
        csv=csv,
        datetime_format=datetime_format,
        # Flags only override the file when given
        verbose=verbose or None,
        first_run=first or None,
        show_not_found=show_not_found or None,
        allow_rating_downgrade=allow_rating_downgrade or None,
    )


@cli.command("albums-sync")
@_common_options
def albums_sync(
    user: Optional[str],
    db: Optional[Path],
    config_path: Optional[Path],
    verbose: bool
) -> None:
    """Recompute album play counts, ratings and play dates from their tracks."""
    _run_sync(SyncAction.ALBUMS_SYNC, config_path, user=user, db=db, verbose=verbose or None)


@cli.command("artists-sync")
@_common_options
def artists_sync(
    user: Optional[str],
    db: Optional[Path],
    config_path: Optional[Path],
    verbose: bool
) -> None:
    """Recompute artist play counts, ratings and play dates from their tracks."""
    _run_sync(SyncAction.ARTISTS_SYNC, config_path, user=user, db=db, verbose=verbose or None)


def _run_sync(action: SyncAction, config_path: Optional[Path], **overrides) -> None:
    """
    Execute a sync based on CLI options.

    This is the main orchestration function that:
    1. Loads configuration and applies CLI overrides
    2. Sets up logging
    3. Runs the synchronizer
    4. Reports results

    Raises:
        SystemExit: On fatal errors (with appropriate exit code).
    """
    try:
        config = _load_configuration(config_path, overrides)
    except ConfigError as e:
        click.echo(f"Configuration error: {e.message}", err=True)
        sys.exit(1)

    try:
        setup_logging(config.paths.logs_directory, verbose=config.output.verbose)
        logger.info(f"mbnd-sync {__version__} starting: {action.value}")

        report = asyncio.run(Synchronizer(config).run(action))
        _print_report(report)

        logger.info("mbnd-sync completed successfully")

    except ValidationError as e:
        click.echo(f"Error: {e.message}", err=True)
        logger.error(f"Validation error: {e.message}")
        sys.exit(1)

    except DatabaseError as e:
        click.echo(f"Database error: {e.message}", err=True)
        logger.error(f"Database error: {e.message}", exc_info=True)
        sys.exit(2)

    except BackupError as e:
        click.echo(f"Backup error: {e.message}", err=True)
        if e.details.get("backup_path"):
            click.echo(f"Backup file: {e.details['backup_path']}", err=True)
        logger.error(f"Backup error: {e.message}", exc_info=True)
        sys.exit(3)

    except SyncError as e:
        click.echo(f"Error: {e.message}", err=True)
        logger.error(f"Error: {e.message}", exc_info=True)
        sys.exit(3)

    except (KeyboardInterrupt, asyncio.CancelledError):
        click.echo("\nInterrupted by user", err=True)
        logger.info("Interrupted by user")
        sys.exit(130)

    except Exception as e:
        click.echo(f"Unexpected error: {e}", err=True)
        logger.exception("Unexpected error")
        sys.exit(1)

    finally:
        shutdown_logging()


def _load_configuration(config_path: Optional[Path], overrides: dict) -> Config:
    """
    Load mbnd.yaml (if any) and layer the command-line values on top.

    Raises:
        ConfigError: If the configuration file is invalid.
    """
    return apply_overrides(load_config(config_path), **overrides)


def _print_report(report: SyncReport) -> None:
    """Print the summary of a completed run."""
    logger.info("=" * 60)
    logger.info(f"{'SYNC SUMMARY':^60}")
    logger.info("=" * 60)
    if report.action is SyncAction.FULL_SYNC:
        logger.info(f"Tracks updated:    {report.tracks_updated}")
        logger.info(f"Tracks unchanged:  {report.tracks_unchanged}")
        logger.info(f"Tracks not found:  {report.tracks_not_found}")
    if report.action in (SyncAction.FULL_SYNC, SyncAction.ALBUMS_SYNC):
        logger.info(f"Albums updated:    {report.albums_updated}")
    if report.action in (SyncAction.FULL_SYNC, SyncAction.ARTISTS_SYNC):
        logger.info(f"Artists updated:   {report.artists_updated}")
    if report.backup_path is not None:
        logger.info(f"Backup kept at:    {report.backup_path}")
    logger.info("=" * 60)


def main() -> None:
    """
    Entry point for the CLI.

    This function is called when running `mbnd` from the command line.
    It invokes the Click CLI group.
    """
    cli()


if __name__ == "__main__":
    main()
