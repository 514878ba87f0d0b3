"""
Specifier resolution functionality.

This module decides, for a single import specifier, whether Node's ES module
resolver would fail to find the imported file as written, and if so which
minimal rewrite makes it succeed.

Node's ESM resolution differs from require() in the ways that matter here:

- Relative and absolute specifiers get no default extensions. `import './file'`
  fails even when ./file.js exists, and importing a directory is an
  ERR_UNSUPPORTED_DIR_IMPORT error, there is no implicit index.js.
- Bare specifiers are looked up in the node_modules folders of the importing
  file's ancestors, stopping at the first match. The package sub-path
  ("./safe" for "colors/safe") is then resolved like a relative URL inside
  the package folder, unless package.json has an "exports" key, in which case
  only the exports map decides what the sub-path means.

The guiding principle is to only rewrite when the import would certainly fail
otherwise and the replacement is known to exist.
"""

from __future__ import annotations

import os
import posixpath
import re

from .config import RewriteConfig
from .finder import PackageFinder, split_package_specifier
from .types import FileMetaData, ManifestStatus, SpecifierKind
from .utils import FileSystemProbe, is_candidate_file

# Every source module is emitted by the compiler as a same-named .js file, so a
# .ts or .tsx sibling is as good as the .js file itself.
SOURCE_EXTENSIONS = (".js", ".ts", ".tsx")
EMITTED_EXTENSION = ".js"
INDEX_FILE = "index.js"

_URL_SCHEME = re.compile(r"^[A-Za-z][A-Za-z0-9+.-]*:")
_WORD_START = re.compile(r"^\w")


def classify_specifier(specifier: str, alias_prefix: str | None = "src/") -> SpecifierKind:
    """
    Classify a specifier from its lexical form alone.

    Args:
        specifier: The decoded specifier string
        alias_prefix: Prefix of project-relative alias specifiers, or None/""
            to disable alias detection

    Returns:
        The SpecifierKind of the specifier
    """
    if not specifier:
        return SpecifierKind.OTHER
    if specifier in (".", "..") or specifier.startswith(("./", "../")):
        return SpecifierKind.RELATIVE
    if specifier.startswith("/") or os.path.isabs(specifier):
        return SpecifierKind.ABSOLUTE
    if alias_prefix and specifier.startswith(alias_prefix):
        return SpecifierKind.ALIAS
    if specifier.startswith("#") or _URL_SCHEME.match(specifier) or "\\" in specifier:
        return SpecifierKind.OTHER

    if specifier.startswith("@"):
        parts = specifier.split("/")
        if len(parts) < 2 or not parts[0][1:] or not parts[1]:
            return SpecifierKind.OTHER
        return SpecifierKind.BARE_SUBPATH if len(parts) > 2 else SpecifierKind.BARE_SIMPLE

    if not _WORD_START.match(specifier):
        return SpecifierKind.OTHER
    return SpecifierKind.BARE_SUBPATH if "/" in specifier else SpecifierKind.BARE_SIMPLE


def _names_directory(specifier: str) -> bool:
    # "./dir/", "." and ".." can only ever name a directory
    return specifier.rsplit("/", 1)[-1] in ("", ".", "..")


class SpecifierResolver:
    """
    Decides whether and how a specifier must be rewritten.

    Attributes:
        config: Rewrite options (alias prefix, relative mode, extensions)
        probe: Filesystem probe shared by all lookups
        finder: Package finder for bare specifiers
    """

    def __init__(
        self,
        config: RewriteConfig | None = None,
        probe: FileSystemProbe | None = None,
        finder: PackageFinder | None = None,
    ) -> None:
        """
        Initialize the resolver.

        Args:
            config: Rewrite options (default: RewriteConfig())
            probe: Filesystem probe (default: an uncached probe)
            finder: Package finder (default: one sharing the probe)
        """
        self.config = config or RewriteConfig()
        self.probe = probe or FileSystemProbe()
        self.finder = finder or PackageFinder(self.probe)

    async def resolve(
        self,
        importing_file: str,
        specifier: str,
        file_meta_data: FileMetaData,
    ) -> str | None:
        """
        Compute the rewritten specifier, if a rewrite is needed and safe.

        Args:
            importing_file: Absolute path of the file containing the import
            specifier: The specifier as written in the import
            file_meta_data: Context of the importing file

        Returns:
            The new specifier, or None to leave the import unchanged
        """
        if not is_candidate_file(importing_file, self.config.extensions):
            return None

        kind = classify_specifier(specifier, self.config.alias_prefix)
        importing_directory = os.path.dirname(importing_file)

        if kind in (SpecifierKind.RELATIVE, SpecifierKind.ABSOLUTE):
            return await self.resolve_path_specifier(importing_directory, specifier)
        if kind is SpecifierKind.BARE_SUBPATH:
            return await self.resolve_package_subpath(importing_directory, specifier)
        if kind is SpecifierKind.ALIAS:
            return await self.resolve_alias(specifier, file_meta_data)

        # Package roots resolve through "main"/"exports", never by extension
        return None

    async def resolve_path_specifier(self, base_directory: str, specifier: str) -> str | None:
        """
        Resolve a relative or absolute specifier.

        Probes <target>.js, <target>.ts and <target>.tsx, then <target> as a
        directory.

        Args:
            base_directory: Directory relative specifiers are resolved against
            specifier: A relative or absolute specifier

        Returns:
            specifier + ".js", specifier + "/index.js", or None
        """
        if os.path.isabs(specifier):
            target = specifier
        else:
            target = os.path.join(base_directory, specifier)
        return await self._probe_target(os.path.normpath(target), specifier)

    async def _probe_target(self, target: str, specifier: str) -> str | None:
        if not _names_directory(specifier):
            for extension in SOURCE_EXTENSIONS:
                if await self.probe.is_file(target + extension):
                    return specifier + EMITTED_EXTENSION

        if await self.probe.is_directory(target):
            if specifier.endswith("/"):
                return specifier + INDEX_FILE
            return f"{specifier}/{INDEX_FILE}"

        return None

    async def resolve_package_subpath(self, importing_directory: str, specifier: str) -> str | None:
        """
        Resolve a bare specifier that points inside a package.

        A package whose package.json declares "exports" is left alone: either
        the exports map has an entry for the sub-path, or the import is illegal
        and appending an extension would break the package's contract. There
        is no directory/index.js fallback for packages.

        Args:
            importing_directory: Directory of the importing file
            specifier: A bare specifier with a sub-path, e.g. "colors/safe"

        Returns:
            specifier + ".js", or None
        """
        try:
            package_name, sub_path = split_package_specifier(specifier)
        except ValueError:
            return None
        if not sub_path or _names_directory(sub_path):
            return None

        package_directory = await self.finder.find_package_directory(
            importing_directory, package_name
        )
        if package_directory is None:
            return None

        manifest = await self.finder.read_manifest(package_directory)
        if manifest.status is ManifestStatus.VALID and manifest.has_exports_map:
            return None

        candidate = os.path.normpath(os.path.join(package_directory, sub_path))
        if await self.probe.is_file(candidate + EMITTED_EXTENSION):
            return specifier + EMITTED_EXTENSION
        return None

    def alias_root(self, file_meta_data: FileMetaData) -> str | None:
        """
        Find the directory alias specifiers are anchored to.

        The caller's pathname for the importing file, from its first alias
        segment on (e.g. "src/lib/util.ts"), is stripped from the absolute
        pathname; what remains is the project directory. A relative pathname
        without alias segment (e.g. "test/main.ts") is stripped whole, which
        anchors aliases at the directory the pathname is relative to.

        Args:
            file_meta_data: Context of the importing file

        Returns:
            The anchor directory (ending with a separator), or None if the
            pathname is absolute without alias segment, or does not end the
            absolute pathname
        """
        prefix = self.config.alias_prefix
        pathname = file_meta_data.pathname.replace(os.sep, "/")
        absolute = file_meta_data.absolute_pathname.replace(os.sep, "/")

        if pathname.startswith(prefix):
            tail = pathname
        elif "/" + prefix in pathname:
            tail = pathname[pathname.find("/" + prefix) + 1 :]
        elif not os.path.isabs(file_meta_data.pathname):
            # no alias segment: anchor at the directory the pathname is relative to
            tail = posixpath.normpath(pathname)
        else:
            return None

        if not absolute.endswith("/" + tail):
            return None
        return absolute[: len(absolute) - len(tail)]

    async def resolve_alias(self, specifier: str, file_meta_data: FileMetaData) -> str | None:
        """
        Resolve a project-relative alias specifier such as "src/lib/util".

        Without relative mode the alias form is kept and only the extension or
        index file is appended. In relative mode the specifier is rewritten to
        a path relative to the importing file.

        Args:
            specifier: A specifier starting with the alias prefix
            file_meta_data: Context of the importing file

        Returns:
            The new specifier, or None
        """
        root = self.alias_root(file_meta_data)
        if root is None:
            return None

        target = os.path.normpath(os.path.join(root, specifier))
        if not self.config.relative:
            return await self._probe_target(target, specifier)

        importing_directory = os.path.dirname(file_meta_data.absolute_pathname)
        relative = os.path.relpath(target, importing_directory).replace(os.sep, "/")
        if relative not in (".", "..") and not relative.startswith("../"):
            # same directory or below
            relative = "./" + relative
        if specifier.endswith("/") and not relative.endswith("/"):
            relative += "/"

        if relative.endswith(EMITTED_EXTENSION):
            stem = target[: -len(EMITTED_EXTENSION)]
            for extension in SOURCE_EXTENSIONS:
                if await self.probe.is_file(stem + extension):
                    return relative
            return None

        return await self._probe_target(target, relative)
