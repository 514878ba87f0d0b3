"""
Utility functions for filesystem probing and project discovery.
"""

from __future__ import annotations

import asyncio
import os
import stat
from collections.abc import Callable, Iterable
from pathlib import Path

from .types import PathKind

DEFAULT_CANDIDATE_EXTENSIONS = (".js", ".mjs", ".jsx", ".ts", ".mts", ".cts", ".tsx")
DEFAULT_IGNORED_DIRECTORIES = ("node_modules", ".git")
CONFIG_FILE_NAME = "add-js-extension.toml"


def _stat_kind(pathname: str) -> PathKind:
    try:
        st = os.stat(pathname)
    except (FileNotFoundError, NotADirectoryError):
        return PathKind.MISSING
    if stat.S_ISDIR(st.st_mode):
        return PathKind.DIRECTORY
    return PathKind.FILE


class FileSystemProbe:
    """
    Existence and kind lookups for candidate paths.

    A missing path is a normal result, not an error. Any other OS error
    (permission denied, I/O failure) propagates to the caller.

    Attributes:
        cache: Whether results are memoized for the lifetime of the probe
        calls: Number of probes that actually hit the filesystem
    """

    def __init__(self, cache: bool = False) -> None:
        """
        Initialize the probe.

        Args:
            cache: Memoize results per path. Only suitable for one-shot runs,
                since results are not durable across filesystem changes.
        """
        self.cache = cache
        self.calls = 0
        self._results: dict[str, PathKind] = {}

    async def probe(self, pathname: str | Path) -> PathKind:
        """
        Report whether a path is missing, a file, or a directory.

        Args:
            pathname: Path to check

        Returns:
            The PathKind of the path
        """
        key = os.fspath(pathname)
        if self.cache and key in self._results:
            return self._results[key]

        self.calls += 1
        kind = await asyncio.to_thread(_stat_kind, key)
        if self.cache:
            self._results[key] = kind
        return kind

    async def is_file(self, pathname: str | Path) -> bool:
        return await self.probe(pathname) is PathKind.FILE

    async def is_directory(self, pathname: str | Path) -> bool:
        return await self.probe(pathname) is PathKind.DIRECTORY

    def clear(self) -> None:
        self._results.clear()


def _read_text(pathname: str) -> str | None:
    try:
        return Path(pathname).read_text(encoding="utf-8")
    except (FileNotFoundError, NotADirectoryError):
        return None


async def read_text_or_none(pathname: str | Path) -> str | None:
    """
    Read a UTF-8 text file, returning None if it does not exist.

    Raises:
        UnicodeDecodeError: If the file is not valid UTF-8
        OSError: For any failure other than the file being absent
    """
    return await asyncio.to_thread(_read_text, os.fspath(pathname))


def is_candidate_file(
    pathname: str | Path, extensions: Iterable[str] = DEFAULT_CANDIDATE_EXTENSIONS
) -> bool:
    """
    Check whether a file is worth processing, based on its extension.

    Args:
        pathname: File to check
        extensions: Accepted extensions, including the leading dot

    Returns:
        True if the file name ends with one of the extensions
    """
    name = os.fspath(pathname)
    return any(name.endswith(ext) for ext in extensions)


def find_project_root(
    start_path: Path | None = None, marker: str = CONFIG_FILE_NAME
) -> Path | None:
    """
    Find the closest directory containing a marker file.

    Starts from the given path (or current directory) and walks up the directory
    tree until it finds a directory containing the marker.

    Args:
        start_path: Starting file or directory (default: current directory)
        marker: File name to look for (default: the configuration file)

    Returns:
        Path to the directory containing the marker, or None if not found
    """
    if start_path is None:
        start_path = Path.cwd()

    current = Path(start_path).resolve()
    if current.is_file():
        current = current.parent

    # Walk up the directory tree
    while current != current.parent:
        if (current / marker).is_file():
            return current
        current = current.parent

    # Check the root directory itself
    if (current / marker).is_file():
        return current

    return None


def make_ignore_predicate(names: Iterable[str]) -> Callable[[Path], bool]:
    """
    Build a predicate telling whether a directory should be skipped.

    Args:
        names: Directory names to skip wherever they appear

    Returns:
        A callable returning True for paths that have one of the names
    """
    ignored = frozenset(names)

    def should_ignore(path: Path) -> bool:
        return path.name in ignored

    return should_ignore


def find_candidate_files(
    directory: Path,
    should_ignore: Callable[[Path], bool] | None = None,
    extensions: Iterable[str] = DEFAULT_CANDIDATE_EXTENSIONS,
) -> list[Path]:
    """
    Recursively find all files worth processing in a directory.

    Args:
        directory: Directory to search
        should_ignore: Predicate for directories to skip entirely
        extensions: Accepted file extensions

    Returns:
        Sorted list of candidate file paths
    """
    if should_ignore is None:
        should_ignore = make_ignore_predicate(DEFAULT_IGNORED_DIRECTORIES)
    extensions = tuple(extensions)

    found: list[Path] = []
    for root, dirnames, filenames in os.walk(directory):
        root_path = Path(root)
        # pruned in place, os.walk skips them
        dirnames[:] = [d for d in dirnames if not should_ignore(root_path / d)]
        for filename in filenames:
            if is_candidate_file(filename, extensions):
                found.append(root_path / filename)

    return sorted(found)
