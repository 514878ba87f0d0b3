"""
Type definitions for the package.

This module contains the core data structures used throughout the package
for representing import specifiers, the rewrites decided for them, and the
filesystem facts the resolver relies on.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class PathKind(Enum):
    """Outcome of a filesystem probe."""

    MISSING = "missing"
    FILE = "file"
    DIRECTORY = "directory"


class SpecifierKind(Enum):
    """
    Lexical classification of an import specifier.

    Attributes:
        RELATIVE: Starts with "./" or "../" (or is "." / "..")
        ABSOLUTE: A filesystem-absolute path, e.g. "/opt/app/config"
        BARE_SIMPLE: A package root, e.g. "colors" or "@babel/types"
        BARE_SUBPATH: A path inside a package, e.g. "colors/safe"
        ALIAS: Starts with the configured source-root prefix, e.g. "src/lib/util"
        OTHER: URL-like ("node:fs", "file:///x.js") or "#imports" specifiers
    """

    RELATIVE = "relative"
    ABSOLUTE = "absolute"
    BARE_SIMPLE = "bare-simple"
    BARE_SUBPATH = "bare-subpath"
    ALIAS = "alias"
    OTHER = "other"


class ManifestStatus(Enum):
    """Classification of a package's package.json file."""

    ABSENT = "absent"
    INVALID = "invalid"
    VALID = "valid"


class TransformationKind(Enum):
    """Kinds of rewrites this package performs."""

    JS_IMPORT_EXTENSION = "js-import-extension"


@dataclass(frozen=True)
class PackageManifest:
    """
    The facts read from a package's package.json.

    Attributes:
        status: Whether the manifest is absent, unparsable, or valid
        has_exports_map: True if the manifest declares an "exports" key
    """

    status: ManifestStatus
    has_exports_map: bool = False


@dataclass(frozen=True)
class SourceLocation:
    """
    A position within a source file.

    Attributes:
        offset: Character index into the decoded source text
        line: 1-based line number
        column: 0-based column, in characters
    """

    offset: int
    line: int
    column: int


@dataclass(frozen=True)
class CandidateSpecifier:
    """
    A string-literal module specifier found in an import or export statement.

    Attributes:
        start: Start of the literal, quotes included
        end: End of the literal (exclusive)
        original_value: The literal exactly as written, e.g. "'./util'"
        quote_character: The quote used, either ' or "
        specifier: The decoded string value, e.g. "./util"
        node_type: tree-sitter type of the statement owning the literal
    """

    start: SourceLocation
    end: SourceLocation
    original_value: str
    quote_character: str
    specifier: str
    node_type: str = "import_statement"


@dataclass
class FileMetaData:
    """
    Per-file context threaded through specifier resolution.

    Attributes:
        pathname: Path of the file as given by the caller
        absolute_pathname: Absolute, normalized path of the file
        source_mapping_url: Value of a trailing sourceMappingURL comment, if any
    """

    pathname: str
    absolute_pathname: str
    source_mapping_url: str | None = None


@dataclass(frozen=True)
class Transformation:
    """
    A decided textual rewrite of one specifier literal.

    Attributes:
        start: Start of the span to replace
        end: End of the span to replace (exclusive)
        original_value: Text currently in the span
        new_value: Replacement text, quotes included
        kind: What kind of rewrite this is
    """

    start: SourceLocation
    end: SourceLocation
    original_value: str
    new_value: str
    kind: TransformationKind = TransformationKind.JS_IMPORT_EXTENSION

    def describe(self) -> str:
        return f"{self.kind.value} {self.original_value} -> {self.new_value}"


@dataclass
class ProcessingResult:
    """
    Outcome of processing one file in a batch.

    Attributes:
        pathname: The processed file
        transformations: Rewrites performed (or that would be, in a dry run)
        error: The exception that stopped processing, if any
    """

    pathname: str
    transformations: list[Transformation] = field(default_factory=list)
    error: BaseException | None = None


@dataclass
class BatchSummary:
    """Totals for a batch run over many files."""

    files_processed: int = 0
    files_rewritten: int = 0
    rewrites: int = 0
    failures: list[ProcessingResult] = field(default_factory=list)

    def add(self, result: ProcessingResult) -> None:
        self.files_processed += 1
        if result.error is not None:
            self.failures.append(result)
            return
        if result.transformations:
            self.files_rewritten += 1
            self.rewrites += len(result.transformations)
