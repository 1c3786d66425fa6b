"""Tests for run settings and the TOML config loader."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from redis_dump.config.loader import load_store_config
from redis_dump.config.models import (
    FLUSH_WITHOUT_FORCE_MESSAGE,
    DumpSettings,
    RestoreSettings,
    StoreConfig,
)


# ------------------------------------------------------------------
# Settings models
# ------------------------------------------------------------------


class TestDumpSettings:
    def test_defaults(self):
        settings = DumpSettings()
        assert settings.connection == "localhost:6379"
        assert settings.databases == []
        assert settings.batch_size == 100
        assert settings.output_file == "redis-dump.json"

    def test_negative_database_rejected(self):
        with pytest.raises(ValidationError):
            DumpSettings(databases=[0, -1])

    def test_zero_batch_size_rejected(self):
        with pytest.raises(ValidationError):
            DumpSettings(batch_size=0)


class TestRestoreSettings:
    """flush requires force; the check runs before any connection."""

    def test_defaults_are_safe(self):
        settings = RestoreSettings()
        assert settings.flush is False
        assert settings.force is False

    def test_flush_without_force_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            RestoreSettings(flush=True)
        assert FLUSH_WITHOUT_FORCE_MESSAGE in str(exc_info.value)

    def test_flush_with_force_accepted(self):
        settings = RestoreSettings(flush=True, force=True)
        assert settings.flush and settings.force

    def test_force_alone_accepted(self):
        assert RestoreSettings(force=True).force


# ------------------------------------------------------------------
# load_store_config
# ------------------------------------------------------------------


class TestLoadStoreConfig:
    """TOML profiles and defaults."""

    def test_profiles_and_defaults(self, tmp_path):
        path = tmp_path / "redis-dump.toml"
        path.write_text(
            "[defaults]\n"
            "batch_size = 250\n"
            "database_count = 4\n"
            "\n"
            "[profiles.local]\n"
            'url = "redis://localhost:6379"\n'
            'description = "Local"\n'
            "\n"
            "[profiles.cloud]\n"
            'url = "redis://:[YOUR-PASSWORD]@cache.example.com:6380"\n'
            'password = "s3cret"\n'
        )
        config = load_store_config(path)
        assert config.batch_size == 250
        assert config.database_count == 4
        assert set(config.profiles) == {"local", "cloud"}
        assert config.profiles["local"].description == "Local"
        assert config.profiles["cloud"].password == "s3cret"

    def test_defaults_when_table_missing(self, tmp_path):
        path = tmp_path / "redis-dump.toml"
        path.write_text('[profiles.a]\nurl = "localhost:6379"\n')
        config = load_store_config(path)
        assert config.batch_size == 100
        assert config.database_count == 16

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError, match="Store config not found"):
            load_store_config(tmp_path / "nope.toml")

    def test_default_path_is_cwd(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        Path("redis-dump.toml").write_text('[profiles.x]\nurl = "localhost:1"\n')
        assert "x" in load_store_config().profiles

    def test_profile_without_url_rejected(self, tmp_path):
        path = tmp_path / "redis-dump.toml"
        path.write_text('[profiles.broken]\ndescription = "no url"\n')
        with pytest.raises(ValidationError):
            load_store_config(path)

    def test_invalid_default_rejected(self, tmp_path):
        path = tmp_path / "redis-dump.toml"
        path.write_text("[defaults]\nbatch_size = 0\n")
        with pytest.raises(ValidationError):
            load_store_config(path)

    def test_empty_config(self):
        config = StoreConfig()
        assert config.profiles == {}
