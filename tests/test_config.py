"""Test configuration loading and overrides"""

from pathlib import Path

import pytest

from mbnd_sync.core.config import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_CONCURRENCY,
    DEFAULT_DATETIME_FORMAT,
    apply_overrides,
    default_config,
    load_config,
)
from mbnd_sync.core.exceptions import ConfigError


class TestLoadConfig:
    """Test mbnd.yaml parsing"""

    def test_defaults_without_file(self, temp_dir, monkeypatch):
        monkeypatch.chdir(temp_dir)

        config = load_config()

        assert config.paths.csv_file == Path.cwd() / "MusicBee_Export.csv"
        assert config.paths.db_file.name == "navidrome.db"
        assert config.sync.user is None
        assert config.sync.datetime_format == DEFAULT_DATETIME_FORMAT
        assert config.sync.concurrency == DEFAULT_CONCURRENCY
        assert config.sync.batch_size == DEFAULT_BATCH_SIZE
        assert config.output.verbose is False

    def test_explicit_missing_file(self, temp_dir):
        with pytest.raises(ConfigError):
            load_config(temp_dir / "missing.yaml")

    def test_empty_file_uses_defaults(self, temp_dir):
        path = temp_dir / "mbnd.yaml"
        path.write_text("", encoding="utf-8")

        assert load_config(path).sync == default_config().sync

    def test_full_file(self, temp_dir):
        path = temp_dir / "mbnd.yaml"
        path.write_text(
            f"""
paths:
  csv: "{temp_dir / 'export.csv'}"
  db: "{temp_dir / 'nd.db'}"
sync:
  user: admin
  first_run: true
  datetime_format: "%Y-%m-%d %H:%M"
  concurrency: 5
  batch_size: 100
  show_not_found: true
  allow_rating_downgrade: true
output:
  verbose: true
""",
            encoding="utf-8",
        )

        config = load_config(path)

        assert config.paths.csv_file == temp_dir / "export.csv"
        assert config.paths.db_file == temp_dir / "nd.db"
        assert config.sync.user == "admin"
        assert config.sync.first_run is True
        assert config.sync.datetime_format == "%Y-%m-%d %H:%M"
        assert config.sync.concurrency == 5
        assert config.sync.batch_size == 100
        assert config.sync.show_not_found is True
        assert config.sync.allow_rating_downgrade is True
        assert config.output.verbose is True

    @pytest.mark.parametrize("content", [
        "sync: [1, 2]",
        "sync:\n  concurrency: 0",
        "sync:\n  batch_size: true",
        "sync:\n  first_run: 'yes'",
        "paths:\n  db: ''",
        "- just\n- a list",
        "sync: {user: [",
    ])
    def test_invalid_files(self, temp_dir, content):
        path = temp_dir / "mbnd.yaml"
        path.write_text(content, encoding="utf-8")

        with pytest.raises(ConfigError):
            load_config(path)


class TestApplyOverrides:
    """Test command-line overrides"""

    def test_none_values_ignored(self):
        config = default_config()
        assert apply_overrides(config, user=None, verbose=None, csv=None) == config

    def test_overrides(self, temp_dir):
        config = apply_overrides(
            default_config(),
            csv=temp_dir / "a.csv",
            db=temp_dir / "b.db",
            user="admin",
            first_run=True,
            verbose=True,
        )

        assert config.paths.csv_file == temp_dir / "a.csv"
        assert config.paths.db_file == temp_dir / "b.db"
        assert config.sync.user == "admin"
        assert config.sync.first_run is True
        assert config.output.verbose is True
