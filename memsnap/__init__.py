"""memsnap: incremental virtual-filesystem snapshot builder.

Packs a selection of real files into one compressed in-memory filesystem
image, rewriting only content that changed since the previous build:

- Selection: include globs + gitignore-style excludes -> absolute paths
- Cache: virtual path -> content fingerprint, persisted between builds
- Writer: directories always, files only when their fingerprint changed
- Codec: image <-> compressed artifact bytes
"""

__version__ = "0.1.0"

# Selection
from .selection import derive_root, select_paths, to_virtual_path

# Cache
from .cache import ContentCache, fingerprint, load_cache, persist_cache

# Image & codec
from .image import VirtualFilesystemImage
from .codec import (
    compress,
    decompress,
    deserialize,
    finalize,
    load_artifact,
    load_prior_artifact,
    load_prior_image,
    serialize,
)

# Writer & build
from .writer import PathFailure, SnapshotWriter, StalePolicy, WriteResult
from .builder import BuildResult, build_snapshot, emit_artifact

# Config & errors
from .config import SnapshotConfig
from .errors import (
    ConfigError,
    EmptySelectionError,
    ImageFormatError,
    ImagePathError,
    PathReadError,
    SnapshotError,
)

__all__ = [
    # Selection
    "select_paths",
    "derive_root",
    "to_virtual_path",
    # Cache
    "ContentCache",
    "fingerprint",
    "load_cache",
    "persist_cache",
    # Image & codec
    "VirtualFilesystemImage",
    "serialize",
    "deserialize",
    "compress",
    "decompress",
    "finalize",
    "load_artifact",
    "load_prior_artifact",
    "load_prior_image",
    # Writer & build
    "SnapshotWriter",
    "StalePolicy",
    "WriteResult",
    "PathFailure",
    "BuildResult",
    "build_snapshot",
    "emit_artifact",
    # Config & errors
    "SnapshotConfig",
    "SnapshotError",
    "ConfigError",
    "EmptySelectionError",
    "ImageFormatError",
    "ImagePathError",
    "PathReadError",
]
