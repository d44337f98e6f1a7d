"""Path selection - expand include globs, drop gitignore-style excludes, rebase onto a root."""

from __future__ import annotations

import asyncio
import glob
import logging
import os
from collections.abc import Iterable, Sequence

import pathspec

from .errors import EmptySelectionError

logger = logging.getLogger(__name__)


def compile_excludes(excludes: Sequence[str]) -> pathspec.GitIgnoreSpec | None:
    """
    Compile exclusion patterns into a gitignore-style matcher.

    Later negated patterns ("!keep.ts") re-include what earlier ones dropped.

    Returns:
        The compiled spec, or None when there is nothing to exclude
    """
    lines = [p for p in excludes if p and p.strip()]
    if not lines:
        return None
    return pathspec.GitIgnoreSpec.from_lines(lines)


def is_excluded(path: str, base: str, spec: pathspec.GitIgnoreSpec | None, is_dir: bool = False) -> bool:
    """
    Check an absolute path against the exclusion spec.

    The path is matched relative to base. Directories are also tried with a
    trailing slash so "build/" style patterns apply to them.
    """
    if spec is None:
        return False
    relative = os.path.relpath(path, base).replace(os.sep, "/")
    candidates = [relative]
    if is_dir:
        candidates.append(f"{relative}/")
    return any(spec.match_file(candidate) for candidate in candidates)


def _expand_pattern(pattern: str, base: str, spec: pathspec.GitIgnoreSpec | None) -> list[str]:
    """Glob one include pattern and filter it. Runs in a worker thread."""
    full = pattern if os.path.isabs(pattern) else os.path.join(base, pattern)
    matches = []
    for match in glob.glob(full, recursive=True):
        path = os.path.normpath(os.path.abspath(match))
        if is_excluded(path, base, spec, is_dir=os.path.isdir(path)):
            continue
        matches.append(path)
    logger.debug("pattern %s matched %d path(s)", pattern, len(matches))
    return matches


async def select_paths(
    includes: Sequence[str],
    excludes: Sequence[str] = (),
    cwd: str | os.PathLike[str] | None = None,
) -> list[str]:
    """
    Resolve include/exclude globs into a deduplicated list of absolute paths.

    Every include pattern is expanded concurrently; the same exclusion spec
    is applied to all of them. No match is not an error.

    Args:
        includes: Shell-glob patterns ("**" spans directories)
        excludes: Gitignore-style exclusion patterns
        cwd: Base for relative patterns and exclusion matching

    Returns:
        Absolute, normalized paths in first-seen order
    """
    base = os.path.abspath(cwd) if cwd is not None else os.getcwd()
    spec = compile_excludes(excludes)

    results = await asyncio.gather(
        *(asyncio.to_thread(_expand_pattern, pattern, base, spec) for pattern in includes)
    )

    unique = list(dict.fromkeys(path for group in results for path in group))
    logger.debug("selected %d unique path(s) from %d pattern(s)", len(unique), len(includes))
    return unique


def derive_root(paths: Iterable[str]) -> str:
    """
    Lowest common ancestor directory of the selected paths.

    The common prefix is aligned on directory boundaries. A lone selected
    path is rebased onto its parent so it keeps its own name in the image.
    The filesystem is never touched.

    Raises:
        EmptySelectionError: If paths is empty
    """
    unique = list(dict.fromkeys(paths))
    if not unique:
        raise EmptySelectionError("Cannot derive a root from an empty selection")

    root = os.path.commonpath(unique)
    if len(unique) == 1:
        root = os.path.dirname(root) or root
    return root


def to_virtual_path(path: str, root: str) -> str:
    """
    Rebase an absolute path under "/" relative to root.

    Raises:
        ValueError: If path is not inside root
    """
    relative = os.path.relpath(path, root)
    if relative == os.curdir:
        return "/"
    if relative == os.pardir or relative.startswith(os.pardir + os.sep):
        raise ValueError(f"{path} is outside root {root}")
    return "/" + relative.replace(os.sep, "/")


__all__ = [
    "compile_excludes",
    "is_excluded",
    "select_paths",
    "derive_root",
    "to_virtual_path",
]
