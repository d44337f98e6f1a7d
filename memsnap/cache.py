"""ContentCache - persisted virtual path -> content fingerprint mapping.

The cache is what makes builds incremental: a file whose fingerprint
matches its cache entry is already represented in the prior artifact and
is not written again. The cache records the fingerprint of the artifact its
entries describe; entries are only trusted against that exact artifact.
"""

from __future__ import annotations

import hashlib
import logging
import os
import tempfile
from collections.abc import Iterable, Iterator
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)

CACHE_VERSION = 1
FINGERPRINT_ALGORITHM = "sha256"


def fingerprint(content: bytes) -> str:
    """
    Compute the content fingerprint of raw bytes.

    Pure function of the bytes: equal content gives equal fingerprints in
    every process. Modification time and size are never consulted.
    """
    return hashlib.sha256(content).hexdigest()


class CacheDocument(BaseModel):
    """On-disk schema of the write cache."""

    version: Literal[1] = CACHE_VERSION
    algorithm: Literal["sha256"] = FINGERPRINT_ALGORITHM
    entries: list[tuple[str, str]] = Field(default_factory=list)
    artifact_digest: str | None = None  # fingerprint of the emitted artifact


class ContentCache:
    """
    In-memory virtual path -> fingerprint mapping.

    Directories never appear here; only file content is fingerprinted.
    """

    def __init__(
        self,
        pairs: Iterable[tuple[str, str]] | None = None,
        artifact_digest: str | None = None,
    ):
        self._entries: dict[str, str] = dict(pairs) if pairs is not None else {}
        # None until the artifact holding these entries has been emitted
        self.artifact_digest = artifact_digest

    def get(self, virtual_path: str) -> str | None:
        return self._entries.get(virtual_path)

    def set(self, virtual_path: str, digest: str) -> None:
        """Insert or replace the fingerprint for a virtual path."""
        self._entries[virtual_path] = digest

    def discard(self, virtual_path: str) -> None:
        self._entries.pop(virtual_path, None)

    def paths(self) -> set[str]:
        return set(self._entries)

    def items(self) -> Iterator[tuple[str, str]]:
        return iter(self._entries.items())

    def to_pairs(self) -> list[tuple[str, str]]:
        """Entries as a pair list sorted by virtual path."""
        return sorted(self._entries.items())

    def __contains__(self, virtual_path: object) -> bool:
        return virtual_path in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ContentCache):
            return NotImplemented
        return self._entries == other._entries

    def __repr__(self) -> str:
        return f"ContentCache({len(self._entries)} entries)"


def load_cache(cache_path: Path | str) -> ContentCache:
    """
    Load a persisted cache.

    Any failure yields an empty cache, which turns this build into a full
    rebuild. Never raises.

    Args:
        cache_path: Path to the cache JSON document

    Returns:
        The loaded cache, or an empty one
    """
    path = Path(cache_path)
    if not path.exists():
        logger.debug("no write cache at %s, starting empty", path)
        return ContentCache()

    try:
        document = CacheDocument.model_validate_json(path.read_bytes())
    except OSError as e:
        logger.warning("cannot read write cache %s: %s; rebuilding from scratch", path, e)
        return ContentCache()
    except ValidationError as e:
        logger.warning(
            "write cache %s is corrupt or from an incompatible version (%d error(s)); rebuilding from scratch",
            path,
            e.error_count(),
        )
        return ContentCache()

    logger.debug("loaded %d write cache entries from %s", len(document.entries), path)
    return ContentCache(document.entries, document.artifact_digest)


def persist_cache(cache: ContentCache, cache_path: Path | str) -> bool:
    """
    Persist the cache atomically.

    Failure is logged and reported, never raised: losing the cache only
    costs incrementality on the next build.

    Returns:
        True if the cache was written
    """
    path = Path(cache_path)
    document = CacheDocument(entries=cache.to_pairs(), artifact_digest=cache.artifact_digest)

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_path = tempfile.mkstemp(suffix=".tmp", prefix="cache_", dir=path.parent)
    except OSError as e:
        logger.warning("cannot persist write cache to %s: %s", path, e)
        return False

    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(document.model_dump_json())
        os.replace(temp_path, path)
    except OSError as e:
        try:
            os.unlink(temp_path)
        except OSError:
            pass
        logger.warning("cannot persist write cache to %s: %s", path, e)
        return False

    logger.debug("persisted %d write cache entries to %s", len(cache), path)
    return True


__all__ = [
    "CACHE_VERSION",
    "FINGERPRINT_ALGORITHM",
    "CacheDocument",
    "ContentCache",
    "fingerprint",
    "load_cache",
    "persist_cache",
]
