"""VirtualFilesystemImage - in-memory tree of directories and file contents."""

from __future__ import annotations

import posixpath
from collections.abc import Iterator

from .errors import ImagePathError


def normalize_path(path: str) -> str:
    """
    Normalize a virtual path to an absolute, "/"-rooted form.

    Relative paths are treated as relative to "/". Empty paths and "."
    resolve to "/".
    """
    if not path:
        return "/"
    return posixpath.normpath("/" + path.lstrip("/"))


def _ancestors(path: str) -> list[str]:
    """Ancestors of a normalized path, nearest to root first, excluding "/"."""
    parts = [p for p in path.split("/") if p]
    return ["/" + "/".join(parts[:i]) for i in range(1, len(parts))]


class VirtualFilesystemImage:
    """
    Mutable in-memory filesystem image addressed by virtual paths.

    Directories are an explicit set that always contains "/". Files map a
    path to raw bytes. A path is never both a file and a directory.

    Not safe for concurrent mutation; a build applies writes one at a time.
    """

    def __init__(self) -> None:
        self._directories: set[str] = {"/"}
        self._files: dict[str, bytes] = {}

    def makedirs(self, path: str) -> bool:
        """
        Create a directory and any missing ancestors.

        Creating an existing directory is a no-op.

        Returns:
            True if at least one directory was created

        Raises:
            ImagePathError: If the path or an ancestor is a file
        """
        path = normalize_path(path)
        created = False
        for directory in [*_ancestors(path), path]:
            if directory in self._files:
                raise ImagePathError(directory, "is a file")
            if directory not in self._directories:
                self._directories.add(directory)
                created = True
        return created

    def write_file(self, path: str, content: bytes) -> None:
        """
        Write a whole file, replacing existing content.

        Raises:
            ImagePathError: If the parent directory does not exist or the
                path is a directory
        """
        path = normalize_path(path)
        if path in self._directories:
            raise ImagePathError(path, "is a directory")
        parent = posixpath.dirname(path)
        if parent not in self._directories:
            raise ImagePathError(path, f"parent directory {parent} does not exist")
        self._files[path] = bytes(content)

    def read_file(self, path: str) -> bytes:
        path = normalize_path(path)
        try:
            return self._files[path]
        except KeyError:
            raise ImagePathError(path, "no such file") from None

    def remove_file(self, path: str) -> bool:
        """Remove a file. Returns False if it was not present."""
        return self._files.pop(normalize_path(path), None) is not None

    def remove_tree(self, path: str) -> list[str]:
        """
        Remove a directory together with every directory and file beneath it.

        Returns:
            Sorted paths of the files that were removed

        Raises:
            ImagePathError: If the path is the root or not a directory
        """
        path = normalize_path(path)
        if path == "/":
            raise ImagePathError(path, "cannot remove the root directory")
        if path not in self._directories:
            raise ImagePathError(path, "no such directory")

        prefix = path + "/"
        removed = sorted(f for f in self._files if f.startswith(prefix))
        for file_path in removed:
            del self._files[file_path]
        self._directories = {d for d in self._directories if d != path and not d.startswith(prefix)}
        return removed

    def exists(self, path: str) -> bool:
        path = normalize_path(path)
        return path in self._files or path in self._directories

    def is_file(self, path: str) -> bool:
        return normalize_path(path) in self._files

    def is_dir(self, path: str) -> bool:
        return normalize_path(path) in self._directories

    def listdir(self, path: str = "/") -> list[str]:
        """Sorted names of the direct children of a directory."""
        path = normalize_path(path)
        if path not in self._directories:
            raise ImagePathError(path, "no such directory")
        names = set()
        for entry in (*self._directories, *self._files):
            if entry != path and posixpath.dirname(entry) == path:
                names.add(posixpath.basename(entry))
        return sorted(names)

    @property
    def directories(self) -> frozenset[str]:
        return frozenset(self._directories)

    @property
    def files(self) -> dict[str, bytes]:
        """Copy of the file mapping."""
        return dict(self._files)

    def iter_files(self) -> Iterator[tuple[str, bytes]]:
        """Files in sorted path order."""
        for path in sorted(self._files):
            yield path, self._files[path]

    def __len__(self) -> int:
        return len(self._files)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, VirtualFilesystemImage):
            return NotImplemented
        return self._directories == other._directories and self._files == other._files

    def __repr__(self) -> str:
        return f"VirtualFilesystemImage({len(self._directories)} dirs, {len(self._files)} files)"


__all__ = ["VirtualFilesystemImage", "normalize_path"]
