"""
Configuration management for memsnap builds.

A build is described by an explicit SnapshotConfig: which globs to include
and exclude, where the artifact lives and where the write cache is kept.
"""

from __future__ import annotations

import json
import os
from collections.abc import Mapping
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from .errors import ConfigError

DEFAULT_ARTIFACT_NAME = "mem.zip"
DEFAULT_CACHE_DIR = "cache"
DEFAULT_CACHE_NAME = "writeCache.json"
DEFAULT_OUTPUT_DIR = "dist"
DEFAULT_MAX_CONCURRENCY = 32

ENV_PREFIX = "MEMSNAP_"

STALE_POLICIES = ("keep", "prune")


def _filter_dataclass_fields(data: dict[str, Any], cls: type) -> dict[str, Any]:
    """Filter dict to only include fields that exist in the dataclass."""
    valid_fields = {f.name for f in fields(cls)}
    return {k: v for k, v in data.items() if k in valid_fields}


def _split_list(value: str) -> list[str]:
    """Split a comma separated env value, dropping blanks."""
    return [part.strip() for part in value.split(",") if part.strip()]


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class SnapshotConfig:
    """
    Complete snapshot build configuration.

    Paths (cache_dir, output_dir) are used as given; relative values are
    resolved against the process working directory at build time.
    """

    includes: list[str] = field(default_factory=list)
    excludes: list[str] = field(default_factory=list)
    artifact_name: str = DEFAULT_ARTIFACT_NAME
    cache_dir: str = DEFAULT_CACHE_DIR
    cache_name: str = DEFAULT_CACHE_NAME
    output_dir: str = DEFAULT_OUTPUT_DIR

    # Writer behavior
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY
    fail_on_path_errors: bool = False
    stale_policy: str = "keep"  # "keep" | "prune"

    # Write the artifact to output_dir after finalizing
    emit: bool = True

    @property
    def cache_path(self) -> Path:
        return Path(self.cache_dir) / self.cache_name

    @property
    def artifact_path(self) -> Path:
        return Path(self.output_dir) / self.artifact_name

    def validate(self) -> "SnapshotConfig":
        """
        Check field values, raising ConfigError on the first problem.

        Returns:
            self, so calls can be chained after construction
        """
        if not isinstance(self.includes, list) or not all(isinstance(p, str) for p in self.includes):
            raise ConfigError("includes must be a list of strings")
        if not isinstance(self.excludes, list) or not all(isinstance(p, str) for p in self.excludes):
            raise ConfigError("excludes must be a list of strings")
        if not self.artifact_name:
            raise ConfigError("artifact_name must not be empty")
        if not self.cache_name:
            raise ConfigError("cache_name must not be empty")
        if isinstance(self.max_concurrency, bool) or not isinstance(self.max_concurrency, int) or self.max_concurrency < 1:
            raise ConfigError(f"max_concurrency must be a positive integer, got {self.max_concurrency!r}")
        if self.stale_policy not in STALE_POLICIES:
            raise ConfigError(f"stale_policy must be one of {STALE_POLICIES}, got {self.stale_policy!r}")
        return self

    @classmethod
    def load(cls, path: Path | str) -> "SnapshotConfig":
        """
        Load configuration from a JSON file.

        Unknown keys are ignored. A missing file yields the defaults.

        Raises:
            ConfigError: If the file is not valid JSON or a value is invalid
        """
        path = Path(path)
        if not path.exists():
            return cls()

        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as e:
            raise ConfigError(f"Cannot read config {path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigError(f"Config {path} must contain a JSON object")

        return cls(**_filter_dataclass_fields(data, cls)).validate()

    def save(self, path: Path | str) -> None:
        """Save configuration to a JSON file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w", encoding="utf-8") as f:
            json.dump(asdict(self), f, indent=2)

    @classmethod
    def from_env(
        cls,
        env: Mapping[str, str] | None = None,
        prefix: str = ENV_PREFIX,
    ) -> "SnapshotConfig":
        """
        Build configuration from environment variables.

        When env is None the process environment is used, after loading a
        .env file from the working directory if one exists.

        Recognized keys (with the default prefix): MEMSNAP_INCLUDES and
        MEMSNAP_EXCLUDES (comma separated), MEMSNAP_ARTIFACT_NAME,
        MEMSNAP_CACHE_DIR, MEMSNAP_CACHE_NAME, MEMSNAP_OUTPUT_DIR,
        MEMSNAP_MAX_CONCURRENCY, MEMSNAP_FAIL_ON_PATH_ERRORS,
        MEMSNAP_STALE_POLICY.
        """
        if env is None:
            env_file = Path.cwd() / ".env"
            if env_file.exists():
                load_dotenv(env_file)
            env = os.environ

        data: dict[str, Any] = {}
        for key in ("includes", "excludes"):
            value = env.get(f"{prefix}{key.upper()}")
            if value is not None:
                data[key] = _split_list(value)
        for key in ("artifact_name", "cache_dir", "cache_name", "output_dir", "stale_policy"):
            value = env.get(f"{prefix}{key.upper()}")
            if value:
                data[key] = value.strip()

        concurrency = env.get(f"{prefix}MAX_CONCURRENCY")
        if concurrency:
            try:
                data["max_concurrency"] = int(concurrency)
            except ValueError as e:
                raise ConfigError(f"{prefix}MAX_CONCURRENCY must be an integer, got {concurrency!r}") from e

        fail = env.get(f"{prefix}FAIL_ON_PATH_ERRORS")
        if fail:
            data["fail_on_path_errors"] = _parse_bool(fail)

        return cls(**data).validate()


__all__ = [
    "SnapshotConfig",
    "DEFAULT_ARTIFACT_NAME",
    "DEFAULT_CACHE_DIR",
    "DEFAULT_CACHE_NAME",
    "DEFAULT_OUTPUT_DIR",
    "STALE_POLICIES",
]
