"""
Configuration management for mbnd-sync.

This module handles loading, validating, and providing access to the
application configuration. Configuration comes from two places:

    1. An optional mbnd.yaml file (current working directory by default)
    2. Command-line flags, which override values from the file

Every setting has a default, so the file is entirely optional.

Example mbnd.yaml:
    paths:
      csv: "MusicBee_Export.csv"
      db: "navidrome.db"
      backup_directory: "backups"
      logs_directory: "logs"

    sync:
      user: null               # First Navidrome user when null
      first_run: false         # Add MusicBee play counts to Navidrome ones
      datetime_format: "%d/%m/%Y %H:%M"
      concurrency: 20
      batch_size: 500
      show_not_found: false
      allow_rating_downgrade: false

    output:
      verbose: false
"""

from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

import yaml

from mbnd_sync.core.exceptions import ConfigError


# Default configuration file name (looked up in current working directory)
CONFIG_FILENAME = "mbnd.yaml"

DEFAULT_CSV_FILENAME = "MusicBee_Export.csv"
DEFAULT_DB_FILENAME = "navidrome.db"
DEFAULT_BACKUP_DIRECTORY = "backups"
DEFAULT_LOGS_DIRECTORY = "logs"

# MusicBee default export format, e.g. "28/04/2009 07:38"
DEFAULT_DATETIME_FORMAT = "%d/%m/%Y %H:%M"

# SQLite has a single writer; 20 in-flight units is enough to overlap I/O
DEFAULT_CONCURRENCY = 20
DEFAULT_BATCH_SIZE = 500


@dataclass(frozen=True)
class PathsConfig:
    """
    File locations used by a run.

    Attributes:
        csv_file: MusicBee CSV export. Only required for a full sync.
        db_file: Navidrome SQLite database file.
        backup_directory: Where the pre-run database copy is written.
        logs_directory: Where log files and the not-found report are written.
    """
    csv_file: Path
    db_file: Path
    backup_directory: Path
    logs_directory: Path


@dataclass(frozen=True)
class SyncOptions:
    """
    Behaviour of the synchronization engine.

    Attributes:
        user: Navidrome user name. None selects the first user in the database.
        first_run: Add MusicBee play counts to the Navidrome ones instead of
                   treating them as a snapshot. Only meant for the very first sync.
        datetime_format: strptime format of the "Last Played" column.
        concurrency: Maximum number of tracks/albums/artists processed at once.
        batch_size: Number of CSV rows handed to the track phase at a time.
        show_not_found: Print tracks missing from Navidrome on the console.
        allow_rating_downgrade: Let a lower non-zero MusicBee rating replace
                                the Navidrome one.
    """
    user: str | None = None
    first_run: bool = False
    datetime_format: str = DEFAULT_DATETIME_FORMAT
    concurrency: int = DEFAULT_CONCURRENCY
    batch_size: int = DEFAULT_BATCH_SIZE
    show_not_found: bool = False
    allow_rating_downgrade: bool = False


@dataclass(frozen=True)
class OutputConfig:
    """
    Console output configuration.

    Attributes:
        verbose: Log every processed item instead of rendering progress bars.
    """
    verbose: bool = False


@dataclass(frozen=True)
class Config:
    """
    Complete application configuration.

    Created by load_config() and treated as immutable. Use
    apply_overrides() to layer command-line values on top.

    Example:
        config = load_config()
        print(f"Syncing into: {config.paths.db_file}")
        print(f"Using {config.sync.concurrency} concurrent units")
    """
    paths: PathsConfig
    sync: SyncOptions
    output: OutputConfig


def default_config() -> Config:
    """Return the configuration used when no mbnd.yaml is present."""
    return Config(
        paths=PathsConfig(
            csv_file=_expand(DEFAULT_CSV_FILENAME),
            db_file=_expand(DEFAULT_DB_FILENAME),
            backup_directory=_expand(DEFAULT_BACKUP_DIRECTORY),
            logs_directory=_expand(DEFAULT_LOGS_DIRECTORY),
        ),
        sync=SyncOptions(),
        output=OutputConfig(),
    )


def load_config(config_path: Path | None = None) -> Config:
    """
    Load and validate configuration from mbnd.yaml.

    Args:
        config_path: Optional explicit path to config file.
                     If None, looks for mbnd.yaml in current working directory
                     and falls back to defaults when it does not exist.

    Returns:
        Config: A frozen dataclass containing all configuration values.

    Raises:
        ConfigError: If an explicit config file is not found, has invalid
                     YAML syntax, or contains invalid values.
    """
    explicit = config_path is not None
    if config_path is None:
        config_path = Path.cwd() / CONFIG_FILENAME

    if not config_path.exists():
        if explicit:
            raise ConfigError(
                f"Configuration file not found: {config_path}",
                details={"file_path": str(config_path)}
            )
        return default_config()

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            content = f.read()
    except IOError as e:
        raise ConfigError(
            f"Failed to read configuration file: {e}",
            details={"file_path": str(config_path), "original_error": str(e)}
        ) from e

    try:
        raw_config = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ConfigError(
            f"Invalid YAML syntax in configuration file: {e}",
            details={"file_path": str(config_path), "original_error": str(e)}
        ) from e

    # An empty file is a valid "use defaults" file
    if raw_config is None:
        return default_config()

    if not isinstance(raw_config, dict):
        raise ConfigError(
            "Configuration file must contain a YAML dictionary",
            details={"file_path": str(config_path)}
        )

    _validate_config(raw_config)

    return Config(
        paths=_parse_paths_config(raw_config.get("paths")),
        sync=_parse_sync_options(raw_config.get("sync")),
        output=_parse_output_config(raw_config.get("output")),
    )


def apply_overrides(config: Config, **overrides: Any) -> Config:
    """
    Return a copy of config with command-line values applied.

    Keyword arguments whose value is None are ignored, so callers can pass
    every CLI option straight through.

    Args:
        config: Base configuration (from load_config()).
        **overrides: Any of csv, db, user, first_run, datetime_format,
                     show_not_found, allow_rating_downgrade, verbose.

    Returns:
        Config: New frozen configuration.
    """
    values = {key: value for key, value in overrides.items() if value is not None}

    paths = config.paths
    if "csv" in values:
        paths = replace(paths, csv_file=_expand(str(values["csv"])))
    if "db" in values:
        paths = replace(paths, db_file=_expand(str(values["db"])))

    sync_fields = {
        key: values[key]
        for key in ("user", "first_run", "datetime_format", "show_not_found", "allow_rating_downgrade")
        if key in values
    }
    sync = replace(config.sync, **sync_fields)

    output = config.output
    if "verbose" in values:
        output = replace(output, verbose=bool(values["verbose"]))

    return Config(paths=paths, sync=sync, output=output)


def _expand(value: str) -> Path:
    """Expand ~ and make a path absolute (without requiring it to exist)."""
    return Path(value.strip()).expanduser().absolute()


def _validate_config(raw_config: dict[str, Any]) -> None:
    """
    Validate the raw configuration dictionary structure.

    Raises:
        ConfigError: If a known section is present but not a dictionary.
    """
    for section in ("paths", "sync", "output"):
        if section in raw_config and raw_config[section] is not None:
            if not isinstance(raw_config[section], dict):
                raise ConfigError(
                    f"Section '{section}' must be a dictionary",
                    details={"section": section}
                )


def _parse_path_field(section: dict[str, Any], key: str, default: str) -> Path:
    raw = section.get(key)
    if raw is None:
        return _expand(default)
    if not isinstance(raw, str) or not raw.strip():
        raise ConfigError(
            f"'paths.{key}' must be a non-empty string",
            details={"field": f"paths.{key}"}
        )
    return _expand(raw)


def _parse_paths_config(paths_section: dict[str, Any] | None) -> PathsConfig:
    """
    Parse the paths configuration section, applying defaults.

    Raises:
        ConfigError: If a path field is present but empty or not a string.
    """
    section = paths_section or {}
    return PathsConfig(
        csv_file=_parse_path_field(section, "csv", DEFAULT_CSV_FILENAME),
        db_file=_parse_path_field(section, "db", DEFAULT_DB_FILENAME),
        backup_directory=_parse_path_field(section, "backup_directory", DEFAULT_BACKUP_DIRECTORY),
        logs_directory=_parse_path_field(section, "logs_directory", DEFAULT_LOGS_DIRECTORY),
    )


def _parse_positive_int(section: dict[str, Any], key: str, default: int) -> int:
    raw = section.get(key)
    if raw is None:
        return default
    # bool is an int subclass; "true" is not a valid count
    if isinstance(raw, bool) or not isinstance(raw, int) or raw < 1:
        raise ConfigError(
            f"'sync.{key}' must be a positive integer",
            details={"field": f"sync.{key}", "value": raw}
        )
    return raw


def _parse_flag(section: dict[str, Any], key: str, prefix: str) -> bool:
    raw = section.get(key, False)
    if raw is None:
        return False
    if not isinstance(raw, bool):
        raise ConfigError(
            f"'{prefix}.{key}' must be true or false",
            details={"field": f"{prefix}.{key}", "value": raw}
        )
    return raw


def _parse_sync_options(sync_section: dict[str, Any] | None) -> SyncOptions:
    """
    Parse and validate the sync configuration section.

    The datetime format is only checked for type here; the format/parse
    round-trip check happens when a run starts.

    Raises:
        ConfigError: If any value has the wrong type or range.
    """
    section = sync_section or {}

    user = section.get("user")
    if user is not None and (not isinstance(user, str) or not user.strip()):
        raise ConfigError(
            "'sync.user' must be a non-empty string or null",
            details={"field": "sync.user"}
        )

    datetime_format = section.get("datetime_format", DEFAULT_DATETIME_FORMAT)
    if not isinstance(datetime_format, str) or not datetime_format:
        raise ConfigError(
            "'sync.datetime_format' must be a non-empty string",
            details={"field": "sync.datetime_format"}
        )

    return SyncOptions(
        user=user.strip() if user else None,
        first_run=_parse_flag(section, "first_run", "sync"),
        datetime_format=datetime_format,
        concurrency=_parse_positive_int(section, "concurrency", DEFAULT_CONCURRENCY),
        batch_size=_parse_positive_int(section, "batch_size", DEFAULT_BATCH_SIZE),
        show_not_found=_parse_flag(section, "show_not_found", "sync"),
        allow_rating_downgrade=_parse_flag(section, "allow_rating_downgrade", "sync"),
    )


def _parse_output_config(output_section: dict[str, Any] | None) -> OutputConfig:
    section = output_section or {}
    return OutputConfig(verbose=_parse_flag(section, "verbose", "output"))
