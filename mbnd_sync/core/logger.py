"""
Logging setup for mbnd-sync.

One run writes to four places:
    - the console, through tqdm.write() so live progress bars survive
    - log_full_<timestamp>.log with every record (DEBUG and above)
    - log_errors_<timestamp>.log with ERROR and CRITICAL only
    - not_found_tracks_<timestamp>.log listing CSV tracks with no match

Whatever reaches the console also reaches log_full, so a run can be
reviewed afterwards without re-running it in verbose mode.

Usage:
    from mbnd_sync.core.logger import setup_logging, get_logger

    setup_logging(Path("logs"), verbose=True)
    logger = get_logger(__name__)
"""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import TextIO

from tqdm import tqdm


FILE_LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
FILE_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Extra fields carried by not-found records
NOT_FOUND_FIELDS = ("not_found_title", "not_found_path", "not_found_filename")


class Colors:
    """ANSI escapes used in console messages."""
    RESET = "\033[0m"
    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    BLUE = "\033[34m"
    WHITE = "\033[37m"
    BOLD = "\033[1m"


class ColoredConsoleFormatter(logging.Formatter):
    """Renders "LEVEL: message" with the level name colored."""

    LEVEL_COLORS = {
        logging.DEBUG: Colors.BLUE,
        logging.INFO: Colors.GREEN,
        logging.WARNING: Colors.YELLOW,
        logging.ERROR: Colors.RED,
        logging.CRITICAL: Colors.BOLD + Colors.RED,
    }

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno, Colors.WHITE)
        return f"{color}{record.levelname}{Colors.RESET}: {record.getMessage()}"


class TqdmLoggingHandler(logging.Handler):
    """
    Console handler that prints above an active progress bar.

    A bare stderr write lands in the middle of the bar's redraw; tqdm.write()
    clears the bar line first and repaints it afterwards.

    Attributes:
        stream: Target stream. When None, sys.stderr is looked up on every
                emit so a redirected stderr is honoured.
    """

    def __init__(self, stream: TextIO | None = None) -> None:
        super().__init__()
        self.stream = stream

    def emit(self, record: logging.LogRecord) -> None:
        try:
            tqdm.write(self.format(record), file=self.stream or sys.stderr)
        except Exception:
            self.handleError(record)


class NotFoundTrackHandler(logging.Handler):
    """
    Writes unmatched MusicBee tracks to a plain-text report.

    Each entry is the title followed by the full Windows path and a blank
    line, ready to be searched for in MusicBee:

        Song Title
        V:\\Music\\Artist\\Album\\01 - Song Title.mp3

    Only records carrying the NOT_FOUND_FIELDS extras are written. The
    level is ignored, so the report stays complete when the console only
    prints a count.
    """

    def __init__(self, report_path: Path) -> None:
        super().__init__()
        self.report_path = report_path
        self.report_file: TextIO | None = None

    def open(self) -> None:
        """Create (or truncate) the report file."""
        self.report_file = open(self.report_path, "w", encoding="utf-8")

    @staticmethod
    def full_path(folder: str, filename: str) -> str:
        separator = "\\" if "\\" in folder else "/"
        folder = folder.rstrip("/\\")
        return f"{folder}{separator}{filename}" if folder else filename

    def emit(self, record: logging.LogRecord) -> None:
        if self.report_file is None or not hasattr(record, "not_found_title"):
            return
        try:
            path = self.full_path(
                getattr(record, "not_found_path", ""),
                getattr(record, "not_found_filename", ""),
            )
            self.report_file.write(f"{record.not_found_title}\n{path}\n\n")
            self.report_file.flush()
        except Exception:
            self.handleError(record)

    def close(self) -> None:
        if self.report_file is not None:
            try:
                self.report_file.close()
            except OSError:
                pass
            self.report_file = None
        super().close()


class ErrorOnlyFilter(logging.Filter):
    """Lets ERROR and CRITICAL through."""

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno >= logging.ERROR


def _file_handler(path: Path) -> logging.FileHandler:
    handler = logging.FileHandler(path, mode="w", encoding="utf-8")
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(FILE_LOG_FORMAT, FILE_DATE_FORMAT))
    return handler


def setup_logging(logs_dir: Path, verbose: bool = False) -> None:
    """
    Install the console, log-file and not-found handlers on the root logger.

    Call once per run, after the configuration is loaded. Handlers left by
    a previous call are closed and replaced.

    Args:
        logs_dir: Directory for this run's files. Created when missing.
        verbose: Show DEBUG records on the console (INFO otherwise).
    """
    logs_dir.mkdir(parents=True, exist_ok=True)
    stamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    for handler in root_logger.handlers[:]:
        handler.close()
    root_logger.handlers.clear()

    console = TqdmLoggingHandler()
    console.setLevel(logging.DEBUG if verbose else logging.INFO)
    console.setFormatter(ColoredConsoleFormatter())
    root_logger.addHandler(console)

    root_logger.addHandler(_file_handler(logs_dir / f"log_full_{stamp}.log"))

    errors = _file_handler(logs_dir / f"log_errors_{stamp}.log")
    errors.addFilter(ErrorOnlyFilter())
    root_logger.addHandler(errors)

    not_found = NotFoundTrackHandler(logs_dir / f"not_found_tracks_{stamp}.log")
    not_found.open()
    root_logger.addHandler(not_found)

    # aiosqlite logs every statement at DEBUG
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Module logger, named after the module (pass __name__)."""
    return logging.getLogger(name)


def format_not_found_message(file_path: str, filename: str) -> str:
    return (
        f"{Colors.RED}Track not found{Colors.RESET}: "
        f"path: {file_path} | filename: {filename}"
    )


def format_summary_message(label: str, updated: int, not_found: int | None = None) -> str:
    """
    End-of-phase line, e.g. "120 tracks updated, 3 not found".

    The not-found part is left out when not_found is None or zero.
    """
    message = f"{Colors.GREEN}{updated}{Colors.RESET} {label} updated"
    if not_found:
        message += f", {Colors.YELLOW}{not_found}{Colors.RESET} not found"
    return message


def log_track_not_found(
    logger: logging.Logger,
    title: str,
    file_path: str,
    filename: str,
    show: bool = False
) -> None:
    """
    Record a CSV track that has no match in Navidrome.

    The entry always goes to the not-found report. With show=True it is
    also logged at WARNING so it appears on the console; otherwise DEBUG.
    """
    extra = dict(zip(NOT_FOUND_FIELDS, (title, file_path, filename)))
    logger.log(
        logging.WARNING if show else logging.DEBUG,
        format_not_found_message(file_path, filename),
        extra=extra,
    )


def shutdown_logging() -> None:
    """Flush, close and detach every root handler."""
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        try:
            handler.flush()
            handler.close()
        except OSError:
            pass
        root_logger.removeHandler(handler)
