"""Build entry point - one incremental snapshot build from a SnapshotConfig.

select -> derive root -> load cache + prior image -> write -> finalize
-> emit artifact -> persist cache.

The persisted cache names the artifact it describes. It is trusted on the
next build only when that artifact is the one found on disk, so a build
that fails or never emits cannot leave the cache ahead of the artifact.

Only one build may run against a given cache file and artifact at a time;
both are read at the start and rewritten at the end.
"""

from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

from .cache import ContentCache, fingerprint, load_cache, persist_cache
from .codec import finalize, load_prior_artifact
from .config import SnapshotConfig
from .selection import derive_root, select_paths
from .writer import SnapshotWriter, WriteResult

logger = logging.getLogger(__name__)


@dataclass
class BuildResult:
    """Outcome of build_snapshot."""

    artifact: bytes | None
    artifact_path: Path
    paths: list[str] = field(default_factory=list)
    root: str | None = None
    write: WriteResult | None = None
    cache_persisted: bool = False
    emitted: bool = False

    @property
    def produced(self) -> bool:
        """False when the selection was empty and nothing was built."""
        return self.artifact is not None


def emit_artifact(artifact: bytes, artifact_path: Path | str) -> Path:
    """
    Atomically write artifact bytes, creating the output directory.

    Raises:
        OSError: If the artifact cannot be written
    """
    path = Path(artifact_path)
    path.parent.mkdir(parents=True, exist_ok=True)

    fd, temp_path = tempfile.mkstemp(suffix=".tmp", prefix="artifact_", dir=path.parent)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(artifact)
        os.replace(temp_path, path)
    except Exception:
        try:
            os.unlink(temp_path)
        except OSError:
            pass
        raise

    logger.info("emitted %s (%d bytes)", path, len(artifact))
    return path


async def build_snapshot(
    config: SnapshotConfig,
    cwd: str | os.PathLike[str] | None = None,
    writer: SnapshotWriter | None = None,
) -> BuildResult:
    """
    Run one snapshot build.

    An empty selection is a valid outcome: no artifact is produced and
    neither the cache file nor the artifact is touched.

    The cache is persisted even when finalizing, the writer or emitting
    fails; persistence problems are logged, never raised.

    Args:
        config: Build configuration
        cwd: Base for relative include/exclude patterns (default: process cwd)
        writer: Writer to use instead of one built from config

    Returns:
        BuildResult with the artifact bytes (or None)

    Raises:
        PathReadError: If configured to fail on per-path errors
        OSError: If the artifact cannot be emitted
    """
    config.validate()
    artifact_path = config.artifact_path
    paths = await select_paths(config.includes, config.excludes, cwd=cwd)

    if not paths:
        logger.info("no paths matched %s, skipping snapshot", config.includes)
        return BuildResult(artifact=None, artifact_path=artifact_path)

    root = derive_root(paths)
    logger.debug("snapshot root %s for %d path(s)", root, len(paths))

    prior = load_prior_artifact(artifact_path)
    prior_image, prior_digest = prior if prior is not None else (None, None)
    cache = load_cache(config.cache_path)
    if len(cache) and (prior_digest is None or cache.artifact_digest != prior_digest):
        # Entries only hold for the exact artifact they were recorded against
        logger.warning(
            "write cache %s (%d entries) does not match the prior artifact; rebuilding from scratch",
            config.cache_path,
            len(cache),
        )
        cache = ContentCache()
    cache.artifact_digest = None

    writer = writer or SnapshotWriter.from_config(config)
    result = BuildResult(artifact=None, artifact_path=artifact_path, paths=paths, root=root)

    try:
        result.write = await writer.write(paths, root, cache, prior_image)
        result.artifact = finalize(result.write.image)
        if config.emit:
            emit_artifact(result.artifact, artifact_path)
            result.emitted = True
            cache.artifact_digest = fingerprint(result.artifact)
    finally:
        result.cache_persisted = persist_cache(cache, config.cache_path)

    return result


__all__ = ["BuildResult", "build_snapshot", "emit_artifact"]
