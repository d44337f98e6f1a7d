"""Exception hierarchy for snapshot builds."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .writer import PathFailure, WriteResult


class SnapshotError(Exception):
    """Base class for snapshot build failures."""

    pass


class ConfigError(SnapshotError):
    """Snapshot configuration is invalid or unreadable."""

    pass


class EmptySelectionError(SnapshotError):
    """A root was requested for an empty path selection."""

    pass


class ImageFormatError(SnapshotError):
    """Artifact bytes could not be decompressed or decoded into an image."""

    pass


class ImagePathError(SnapshotError):
    """Invalid operation against a virtual filesystem image."""

    def __init__(self, path: str, message: str):
        super().__init__(f"{path}: {message}")
        self.path = path


class PathReadError(SnapshotError):
    """
    One or more selected paths could not be stat'ed or read.

    Carries the failures and the partial result so callers can still
    inspect the image and cache state produced before the error surfaced.
    """

    def __init__(self, failures: list["PathFailure"], result: "WriteResult"):
        shown = ", ".join(f.path for f in failures[:3])
        more = f" (+{len(failures) - 3} more)" if len(failures) > 3 else ""
        super().__init__(f"{len(failures)} path(s) failed: {shown}{more}")
        self.failures = failures
        self.result = result


__all__ = [
    "SnapshotError",
    "ConfigError",
    "EmptySelectionError",
    "ImageFormatError",
    "ImagePathError",
    "PathReadError",
]
