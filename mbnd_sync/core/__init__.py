"""
Core module for mbnd-sync.

This module provides the foundational components used throughout the application:
    - exceptions: Custom exception classes for error handling
    - config: Configuration loading and validation
    - logger: Logging system with multiple outputs
    - progress: Rich progress bars for the sync phases
    - backup: Backup and restore of the Navidrome database file

Usage:
    from mbnd_sync.core import (
        Config, load_config,
        BackupManager,
        setup_logging, get_logger,
        SyncError, ConfigError, DatabaseError
    )
"""

from mbnd_sync.core.backup import BackupManager
from mbnd_sync.core.config import (
    Config,
    OutputConfig,
    PathsConfig,
    SyncOptions,
    apply_overrides,
    default_config,
    load_config,
)
from mbnd_sync.core.exceptions import (
    BackupError,
    ConfigError,
    DatabaseError,
    SyncError,
    ValidationError,
)
from mbnd_sync.core.logger import (
    get_logger,
    log_track_not_found,
    setup_logging,
    shutdown_logging,
)

__all__ = [
    # Config
    "Config",
    "PathsConfig",
    "SyncOptions",
    "OutputConfig",
    "apply_overrides",
    "default_config",
    "load_config",
    # Backup
    "BackupManager",
    # Exceptions
    "SyncError",
    "ConfigError",
    "ValidationError",
    "DatabaseError",
    "BackupError",
    # Logger
    "setup_logging",
    "get_logger",
    "log_track_not_found",
    "shutdown_logging",
]
