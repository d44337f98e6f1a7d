"""
Unit tests for SnapshotConfig.

Tests defaults, JSON loading/saving and environment parsing.
"""

import json
from pathlib import Path

import pytest

from memsnap.config import SnapshotConfig
from memsnap.errors import ConfigError

ENV_KEYS = [
    "MEMSNAP_INCLUDES",
    "MEMSNAP_EXCLUDES",
    "MEMSNAP_ARTIFACT_NAME",
    "MEMSNAP_CACHE_DIR",
    "MEMSNAP_CACHE_NAME",
    "MEMSNAP_OUTPUT_DIR",
    "MEMSNAP_MAX_CONCURRENCY",
    "MEMSNAP_FAIL_ON_PATH_ERRORS",
    "MEMSNAP_STALE_POLICY",
]


class TestSnapshotConfigDefaults:
    """Tests for default configuration values."""

    def test_default_values(self):
        """Defaults name mem.zip and cache/writeCache.json."""
        config = SnapshotConfig()

        assert config.includes == []
        assert config.excludes == []
        assert config.artifact_name == "mem.zip"
        assert config.cache_dir == "cache"
        assert config.cache_name == "writeCache.json"
        assert config.stale_policy == "keep"
        assert config.fail_on_path_errors is False
        assert config.emit is True

    def test_derived_paths(self):
        """cache_path and artifact_path join directory and name."""
        config = SnapshotConfig(cache_dir="c", output_dir="out", artifact_name="fs.bin")
        assert config.cache_path == Path("c") / "writeCache.json"
        assert config.artifact_path == Path("out") / "fs.bin"


class TestSnapshotConfigValidate:
    """Tests for validate()."""

    def test_valid_config_returns_self(self):
        config = SnapshotConfig(includes=["src/**"])
        assert config.validate() is config

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"max_concurrency": 0},
            {"max_concurrency": True},
            {"stale_policy": "delete"},
            {"artifact_name": ""},
            {"cache_name": ""},
            {"includes": "src/**"},
            {"excludes": [1, 2]},
        ],
    )
    def test_invalid_values(self, kwargs):
        with pytest.raises(ConfigError):
            SnapshotConfig(**kwargs).validate()


class TestSnapshotConfigLoad:
    """Tests for SnapshotConfig.load() and save()."""

    def test_load_without_file_returns_defaults(self, tmp_path):
        config = SnapshotConfig.load(tmp_path / "missing.json")
        assert config == SnapshotConfig()

    def test_load_ignores_unknown_keys(self, tmp_path):
        """Unknown keys are dropped, known keys applied."""
        path = tmp_path / "memsnap.json"
        path.write_text(json.dumps({"includes": ["src/**"], "memory": "old.zip", "bogus": 1}))

        config = SnapshotConfig.load(path)

        assert config.includes == ["src/**"]
        assert config.artifact_name == "mem.zip"

    def test_load_invalid_json_raises(self, tmp_path):
        path = tmp_path / "memsnap.json"
        path.write_text("{nope")
        with pytest.raises(ConfigError):
            SnapshotConfig.load(path)

    def test_load_non_object_raises(self, tmp_path):
        path = tmp_path / "memsnap.json"
        path.write_text("[1, 2]")
        with pytest.raises(ConfigError):
            SnapshotConfig.load(path)

    def test_save_then_load(self, tmp_path):
        """A saved config loads back equal."""
        path = tmp_path / "nested" / "memsnap.json"
        original = SnapshotConfig(
            includes=["src/**"],
            excludes=["*.map"],
            output_dir="build",
            stale_policy="prune",
        )

        original.save(path)

        assert SnapshotConfig.load(path) == original


class TestSnapshotConfigFromEnv:
    """Tests for SnapshotConfig.from_env()."""

    def test_explicit_mapping(self):
        """Values are read from the given mapping."""
        env = {
            "MEMSNAP_INCLUDES": "src/**, lib/*.js",
            "MEMSNAP_EXCLUDES": "tty.ts,",
            "MEMSNAP_ARTIFACT_NAME": "fs.zip",
            "MEMSNAP_MAX_CONCURRENCY": "8",
            "MEMSNAP_FAIL_ON_PATH_ERRORS": "true",
            "MEMSNAP_STALE_POLICY": "prune",
        }

        config = SnapshotConfig.from_env(env)

        assert config.includes == ["src/**", "lib/*.js"]
        assert config.excludes == ["tty.ts"]
        assert config.artifact_name == "fs.zip"
        assert config.max_concurrency == 8
        assert config.fail_on_path_errors is True
        assert config.stale_policy == "prune"

    def test_empty_mapping_gives_defaults(self):
        assert SnapshotConfig.from_env({}) == SnapshotConfig()

    def test_custom_prefix(self):
        config = SnapshotConfig.from_env({"SNAP_OUTPUT_DIR": "out"}, prefix="SNAP_")
        assert config.output_dir == "out"

    def test_bad_concurrency_raises(self):
        with pytest.raises(ConfigError):
            SnapshotConfig.from_env({"MEMSNAP_MAX_CONCURRENCY": "many"})

    def test_process_env_with_dotenv(self, tmp_path, monkeypatch):
        """Without a mapping, .env in the working directory is loaded."""
        for key in ENV_KEYS:
            monkeypatch.delenv(key, raising=False)
        (tmp_path / ".env").write_text("MEMSNAP_INCLUDES=src/**\nMEMSNAP_CACHE_DIR=.memcache\n")
        monkeypatch.chdir(tmp_path)

        config = SnapshotConfig.from_env()

        assert config.includes == ["src/**"]
        assert config.cache_dir == ".memcache"
