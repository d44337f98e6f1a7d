"""SnapshotWriter - decide which selected paths must be (re)written into an image.

Two phases per build:

1. Observe (concurrent): stat, read and fingerprint every selected path,
   bounded by a semaphore. Read-only, so safe to fan out.
2. Apply (single consumer): results are taken one at a time as they
   complete and applied to the shared image and cache.

Directories are created unconditionally on every build and never touch the
cache. Files are written only when their fingerprint differs from the cache.
An entry of the other kind left by an earlier build (a file where a
directory is now selected, or the reverse) is replaced, and the cache
entries of whatever it held are dropped.
"""

from __future__ import annotations

import asyncio
import logging
import posixpath
import stat
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

import aiofiles
import aiofiles.os

from .cache import ContentCache, fingerprint
from .config import DEFAULT_MAX_CONCURRENCY
from .errors import ImagePathError, PathReadError
from .image import VirtualFilesystemImage
from .selection import to_virtual_path

if TYPE_CHECKING:
    from .config import SnapshotConfig

logger = logging.getLogger(__name__)


class StalePolicy(Enum):
    """What happens to entries for paths that are no longer selected."""

    KEEP = "keep"    # Additive snapshots: nothing is ever removed
    PRUNE = "prune"  # Drop unselected files from the image and the cache


@dataclass
class PathFailure:
    """A selected path that could not be stat'ed, read or written."""

    path: str
    virtual_path: str | None
    error: str


@dataclass
class _Observation:
    path: str
    virtual_path: str | None
    is_dir: bool = False
    content: bytes | None = None
    digest: str | None = None
    failure: PathFailure | None = None


@dataclass
class WriteResult:
    """Outcome of one writer pass. The cache is updated by side effect."""

    image: VirtualFilesystemImage
    written: list[str] = field(default_factory=list)      # content writes issued
    skipped: list[str] = field(default_factory=list)      # cache hits
    directories: list[str] = field(default_factory=list)  # directory creations issued
    failures: list[PathFailure] = field(default_factory=list)
    pruned: list[str] = field(default_factory=list)
    replaced: list[str] = field(default_factory=list)     # prior entries of the other kind removed

    @property
    def ok(self) -> bool:
        return not self.failures


class SnapshotWriter:
    """
    Apply a path selection to a virtual filesystem image.

    Usage:
        writer = SnapshotWriter(max_concurrency=16)
        result = await writer.write(paths, root, cache, prior_image)
    """

    def __init__(
        self,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        fail_on_path_errors: bool = False,
        stale_policy: StalePolicy = StalePolicy.KEEP,
    ):
        """
        Args:
            max_concurrency: Upper bound on concurrent stat/read operations
            fail_on_path_errors: Raise PathReadError after the pass if any
                path failed, instead of only reporting it
            stale_policy: Handling of entries for paths no longer selected
        """
        if max_concurrency < 1:
            raise ValueError(f"max_concurrency must be >= 1, got {max_concurrency}")
        self.max_concurrency = max_concurrency
        self.fail_on_path_errors = fail_on_path_errors
        self.stale_policy = stale_policy

    @classmethod
    def from_config(cls, config: "SnapshotConfig") -> "SnapshotWriter":
        return cls(
            max_concurrency=config.max_concurrency,
            fail_on_path_errors=config.fail_on_path_errors,
            stale_policy=StalePolicy(config.stale_policy),
        )

    async def write(
        self,
        paths: Sequence[str],
        root: str,
        cache: ContentCache,
        prior_image: VirtualFilesystemImage | None = None,
    ) -> WriteResult:
        """
        Write every selected path into the image.

        Args:
            paths: Absolute paths from the selector
            root: Common root used to compute virtual paths
            cache: Write cache, updated in place for every content write
            prior_image: Image loaded from the previous artifact, mutated in
                place when given; otherwise a new empty image is used

        Returns:
            WriteResult holding the image and the decisions taken

        Raises:
            PathReadError: If fail_on_path_errors is set and any path failed
        """
        image = prior_image if prior_image is not None else VirtualFilesystemImage()
        result = WriteResult(image=image)
        semaphore = asyncio.Semaphore(self.max_concurrency)
        selected: set[str] = set()

        tasks = [asyncio.ensure_future(self._observe(path, root, semaphore)) for path in paths]
        try:
            for next_done in asyncio.as_completed(tasks):
                observation = await next_done
                if observation.virtual_path is not None:
                    selected.add(observation.virtual_path)
                self._apply(observation, cache, result)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        if self.stale_policy is StalePolicy.PRUNE:
            self._prune(selected, cache, result)

        logger.info(
            "snapshot pass: %d written, %d unchanged, %d directories, %d failed, %d pruned, %d replaced",
            len(result.written),
            len(result.skipped),
            len(result.directories),
            len(result.failures),
            len(result.pruned),
            len(result.replaced),
        )

        if result.failures:
            for failure in result.failures:
                logger.warning("could not snapshot %s: %s", failure.path, failure.error)
            if self.fail_on_path_errors:
                raise PathReadError(result.failures, result)

        return result

    async def _observe(self, path: str, root: str, semaphore: asyncio.Semaphore) -> _Observation:
        """Stat, read and fingerprint one path. Never raises for I/O errors."""
        try:
            virtual_path = to_virtual_path(path, root)
        except ValueError as e:
            return _Observation(path, None, failure=PathFailure(path, None, str(e)))

        async with semaphore:
            try:
                st = await aiofiles.os.stat(path)
                if stat.S_ISDIR(st.st_mode):
                    return _Observation(path, virtual_path, is_dir=True)
                if not stat.S_ISREG(st.st_mode):
                    return _Observation(
                        path,
                        virtual_path,
                        failure=PathFailure(path, virtual_path, "not a regular file or directory"),
                    )
                async with aiofiles.open(path, "rb") as f:
                    content = await f.read()
            except OSError as e:
                return _Observation(
                    path,
                    virtual_path,
                    failure=PathFailure(path, virtual_path, f"{type(e).__name__}: {e}"),
                )

        digest = await asyncio.to_thread(fingerprint, content)
        return _Observation(path, virtual_path, content=content, digest=digest)

    def _apply(self, observation: _Observation, cache: ContentCache, result: WriteResult) -> None:
        """Apply one observation to the image and cache."""
        if observation.failure is not None:
            result.failures.append(observation.failure)
            return

        virtual_path = observation.virtual_path
        image = result.image
        try:
            if observation.is_dir:
                logger.debug("creating directory %s", virtual_path)
                self._clear_files_along(virtual_path, cache, result)
                image.makedirs(virtual_path)
                result.directories.append(virtual_path)
                return

            if cache.get(virtual_path) == observation.digest:
                logger.debug("unchanged %s", virtual_path)
                result.skipped.append(virtual_path)
                return

            logger.debug("writing to %s", virtual_path)
            if image.is_dir(virtual_path):
                # A directory from an earlier build is now a file
                for removed in image.remove_tree(virtual_path):
                    cache.discard(removed)
                logger.debug("replaced directory %s with a file", virtual_path)
                result.replaced.append(virtual_path)
            parent = posixpath.dirname(virtual_path)
            self._clear_files_along(parent, cache, result)
            image.makedirs(parent)
            image.write_file(virtual_path, observation.content)
        except ImagePathError as e:
            result.failures.append(PathFailure(observation.path, virtual_path, str(e)))
            return

        cache.set(virtual_path, observation.digest)
        result.written.append(virtual_path)

    def _clear_files_along(self, directory: str, cache: ContentCache, result: WriteResult) -> None:
        """Remove files from earlier builds standing where directory or an ancestor must be."""
        current = directory
        while current != "/":
            if result.image.remove_file(current):
                cache.discard(current)
                logger.debug("replaced file %s with a directory", current)
                result.replaced.append(current)
            current = posixpath.dirname(current)

    def _prune(self, selected: set[str], cache: ContentCache, result: WriteResult) -> None:
        """Drop files and cache entries whose virtual path was not selected this pass."""
        stale = (cache.paths() | set(result.image.files)) - selected
        for virtual_path in sorted(stale):
            cache.discard(virtual_path)
            if result.image.remove_file(virtual_path):
                logger.debug("pruned %s", virtual_path)
                result.pruned.append(virtual_path)


__all__ = ["SnapshotWriter", "StalePolicy", "WriteResult", "PathFailure"]
