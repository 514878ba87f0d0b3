"""
Package lookup functionality.

This module provides the PackageFinder class which locates the directory
owning a bare specifier's package, the way Node walks ancestor
node_modules folders, and reads that package's package.json.
"""

from __future__ import annotations

import asyncio
import json
import os

from .types import ManifestStatus, PackageManifest, PathKind
from .utils import FileSystemProbe

PACKAGE_ROOT_DIRECTORY = "node_modules"
MANIFEST_FILE_NAME = "package.json"


def split_package_specifier(specifier: str) -> tuple[str, str]:
    """
    Split a bare specifier into its package name and sub-path.

    A scoped specifier ("@scope/name/...") needs two segments to form the
    package name, any other specifier uses its first segment.

    Args:
        specifier: A bare specifier, e.g. "colors/safe" or "@scope/pkg/sub"

    Returns:
        Tuple of (package_name, sub_path); sub_path is "" for a package root

    Raises:
        ValueError: If a scoped specifier has no package name after the scope

    Example:
        ```python
        split_package_specifier("colors/safe")  # ("colors", "safe")
        split_package_specifier("@scope/pkg/a/b")  # ("@scope/pkg", "a/b")
        ```
    """
    parts = specifier.split("/")
    if specifier.startswith("@"):
        if len(parts) < 2 or not parts[1]:
            raise ValueError(f"Invalid scoped package specifier: {specifier!r}")
        return "/".join(parts[:2]), "/".join(parts[2:])
    return parts[0], "/".join(parts[1:])


def _load_manifest(pathname: str) -> PackageManifest:
    try:
        with open(pathname, "rb") as f:
            raw = f.read()
    except (FileNotFoundError, NotADirectoryError):
        return PackageManifest(ManifestStatus.ABSENT)

    try:
        data = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        return PackageManifest(ManifestStatus.INVALID)

    # Only a JSON object can own an "exports" property
    has_exports = isinstance(data, dict) and "exports" in data
    return PackageManifest(ManifestStatus.VALID, has_exports_map=has_exports)


class PackageFinder:
    """
    Finds installed packages and reads their manifests.

    Attributes:
        probe: Filesystem probe used for existence checks
        package_root: Name of the per-directory package folder ("node_modules")
    """

    def __init__(
        self, probe: FileSystemProbe, package_root: str = PACKAGE_ROOT_DIRECTORY
    ) -> None:
        self.probe = probe
        self.package_root = package_root

    async def find_package_directory(
        self, start_directory: str, package_name: str
    ) -> str | None:
        """
        Find the directory of a package by walking up from a directory.

        For a module '/a/b/c/alice.js' importing 'bob', this checks
        /a/b/c/node_modules/bob, /a/b/node_modules/bob, /a/node_modules/bob
        and /node_modules/bob, stopping at the first one that exists.

        Args:
            start_directory: Directory of the importing file
            package_name: Package name, possibly scoped

        Returns:
            Path to the package directory, or None if not found
        """
        current = os.path.abspath(start_directory)

        while True:
            candidate = os.path.join(current, self.package_root, package_name)
            if await self.probe.probe(candidate) is not PathKind.MISSING:
                return candidate

            parent = os.path.dirname(current)
            if parent == current:
                # reached the root of the filesystem
                return None
            current = parent

    async def read_manifest(self, package_directory: str) -> PackageManifest:
        """
        Read a package's package.json.

        A missing manifest is ABSENT and an unparsable one is INVALID; neither
        raises. Other I/O errors propagate.

        Args:
            package_directory: Directory of the package

        Returns:
            PackageManifest describing the manifest
        """
        pathname = os.path.join(package_directory, MANIFEST_FILE_NAME)
        return await asyncio.to_thread(_load_manifest, pathname)
