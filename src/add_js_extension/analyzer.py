"""
Import analysis functionality.

This module provides the ImportAnalyzer class which is responsible for:
- Parsing JavaScript and TypeScript sources with tree-sitter
- Extracting the string-literal specifiers of top-level import and export
  statements, with their exact spans and quoting
- Asking the SpecifierResolver for a verdict on each specifier
- Turning the verdicts into Transformations
"""

from __future__ import annotations

import asyncio
import functools
import re
from bisect import bisect_right
from collections.abc import Sequence
from dataclasses import replace
from pathlib import Path

import tree_sitter_javascript
import tree_sitter_typescript
from tree_sitter import Language, Node, Parser, Tree

from .resolver import SpecifierResolver
from .types import CandidateSpecifier, FileMetaData, SourceLocation, Transformation

SPECIFIER_STATEMENTS = frozenset({"import_statement", "export_statement"})
QUOTE_CHARACTERS = ("'", '"')
SOURCE_MAPPING_MARKER = "sourceMappingURL="

_SIMPLE_ESCAPES = {
    "n": "\n",
    "t": "\t",
    "r": "\r",
    "b": "\b",
    "f": "\f",
    "v": "\v",
    "0": "\0",
}

_LINE_TERMINATOR_ESCAPES = {
    "\n": "\\n",
    "\r": "\\r",
    "\u2028": "\\u2028",
    "\u2029": "\\u2029",
}

# `from './x.json' assert { type: 'json' }`, the import attributes syntax
# TypeScript emitted before 5.3
_IMPORT_ASSERTION = re.compile(
    r"""(?P<head>\b(?:from|import)\s*"""
    r"""(?P<quote>['"])(?:\\.|(?!(?P=quote))[^\\\n])*(?P=quote)\s*)"""
    r"""assert(?=\s*\{)"""
)


class SourceParseError(ValueError):
    """Raised when a source file contains syntax errors."""

    def __init__(self, pathname: str, line: int, column: int) -> None:
        self.pathname = pathname
        self.line = line
        self.column = column
        super().__init__(f"syntax error at {pathname}:{line}:{column}")


@functools.cache
def get_language(name: str) -> Language:
    """Load a tree-sitter grammar: "javascript", "typescript" or "tsx"."""
    if name == "typescript":
        return Language(tree_sitter_typescript.language_typescript())
    if name == "tsx":
        return Language(tree_sitter_typescript.language_tsx())
    if name == "javascript":
        return Language(tree_sitter_javascript.language())
    raise ValueError(f"Unsupported language: {name}")


def language_for_path(pathname: str | Path) -> str:
    suffix = Path(pathname).suffix.lower()
    if suffix in {".ts", ".mts", ".cts"}:
        return "typescript"
    if suffix == ".tsx":
        return "tsx"
    return "javascript"


def decode_escape(sequence: str) -> str:
    """Decode one JavaScript string escape sequence, backslash included."""
    body = sequence[1:]
    if not body:
        return ""
    head = body[0]
    if head in "\r\n\u2028\u2029":
        # line continuation
        return ""
    if head == "x":
        return chr(int(body[1:3], 16))
    if head == "u":
        digits = body[2:-1] if body.startswith("u{") else body[1:5]
        return chr(int(digits, 16))
    return _SIMPLE_ESCAPES.get(head, head)


def quote_string(value: str, quote_character: str) -> str:
    """Write a value as a JavaScript string literal delimited by quote_character."""
    escaped = value.replace("\\", "\\\\").replace(quote_character, "\\" + quote_character)
    for terminator, escape in _LINE_TERMINATOR_ESCAPES.items():
        escaped = escaped.replace(terminator, escape)
    return f"{quote_character}{escaped}{quote_character}"


def mask_import_assertions(source_code: str) -> str:
    """
    Spell deprecated `assert { ... }` import attributes as `with { ... }`.

    The keyword is padded to keep its length, so every offset into the
    masked text is valid in the original text.

    Args:
        source_code: Text of a module

    Returns:
        Text the grammars accept, of the same length
    """
    return _IMPORT_ASSERTION.sub(lambda m: m.group("head") + "with  ", source_code)


class _OffsetTable:
    """Maps tree-sitter byte offsets to character offsets."""

    def __init__(self, text: str, source_bytes: bytes) -> None:
        self._offsets: Sequence[int] | None = None
        if len(text) != len(source_bytes):
            offsets = [0]
            total = 0
            for char in text:
                total += len(char.encode("utf-8"))
                offsets.append(total)
            self._offsets = offsets

    def char_index(self, byte_offset: int) -> int:
        if self._offsets is None:
            return byte_offset
        return max(0, bisect_right(self._offsets, byte_offset) - 1)


class ImportAnalyzer:
    """
    Finds the import specifiers of a module and decides their rewrites.

    Attributes:
        resolver: SpecifierResolver consulted for every specifier
    """

    def __init__(self, resolver: SpecifierResolver | None = None) -> None:
        self.resolver = resolver or SpecifierResolver()

    def parse(self, source_code: str, pathname: str | Path) -> Tree:
        """
        Parse a source file, picking the grammar from its extension.

        Args:
            source_code: Text of the file
            pathname: Path of the file, used for grammar selection and errors

        Returns:
            The tree-sitter syntax tree

        Raises:
            SourceParseError: If the source contains syntax errors
        """
        parser = Parser(get_language(language_for_path(pathname)))
        source_bytes = source_code.encode("utf-8")
        tree = parser.parse(mask_import_assertions(source_code).encode("utf-8"))

        error = _first_error(tree.root_node)
        if error is not None:
            row, byte_column = error.start_point
            line_start = error.start_byte - byte_column
            prefix = source_bytes[line_start : error.start_byte]
            column = len(prefix.decode("utf-8", errors="replace"))
            raise SourceParseError(str(pathname), row + 1, column)

        return tree

    def extract_candidates(
        self, tree: Tree, source_code: str, file_meta_data: FileMetaData
    ) -> list[CandidateSpecifier]:
        """
        Extract the specifiers of top-level import and export statements.

        Statements without a string-literal source (`export const x = 1`,
        `import x = require('y')`) are skipped. Single-line top-level comments
        carrying a sourceMappingURL are recorded in file_meta_data.

        Args:
            tree: Syntax tree of the file
            source_code: Text the tree was parsed from
            file_meta_data: Context of the file, updated in place

        Returns:
            CandidateSpecifiers in source order
        """
        source_bytes = source_code.encode("utf-8")
        offsets = _OffsetTable(source_code, source_bytes)
        candidates: list[CandidateSpecifier] = []

        for node in tree.root_node.children:
            if node.type == "comment":
                url = _source_mapping_url(node, source_bytes)
                if url:
                    file_meta_data.source_mapping_url = url
                continue

            if node.type not in SPECIFIER_STATEMENTS:
                continue

            source = node.child_by_field_name("source")
            if source is None or source.type != "string":
                continue

            raw = source_bytes[source.start_byte : source.end_byte].decode("utf-8")
            quote_character = raw[:1]
            if quote_character not in QUOTE_CHARACTERS:
                continue

            candidates.append(
                CandidateSpecifier(
                    start=_location(source.start_byte, source.start_point, offsets),
                    end=_location(source.end_byte, source.end_point, offsets),
                    original_value=raw,
                    quote_character=quote_character,
                    specifier=_decode_string(source, source_bytes),
                    node_type=node.type,
                )
            )

        return candidates

    async def collect(
        self, tree: Tree, source_code: str, file_meta_data: FileMetaData
    ) -> tuple[list[Transformation], FileMetaData]:
        """
        Decide the rewrites for every specifier of a parsed module.

        All specifiers are resolved concurrently; the result keeps source order.

        Args:
            tree: Syntax tree of the file
            source_code: Text the tree was parsed from
            file_meta_data: Context of the file (not modified)

        Returns:
            Tuple of (transformations in source order, updated file metadata)
        """
        meta = replace(file_meta_data)
        candidates = self.extract_candidates(tree, source_code, meta)

        verdicts = await asyncio.gather(
            *(
                self.resolver.resolve(meta.absolute_pathname, candidate.specifier, meta)
                for candidate in candidates
            )
        )

        transformations = [
            Transformation(
                start=candidate.start,
                end=candidate.end,
                original_value=candidate.original_value,
                new_value=quote_string(new_specifier, candidate.quote_character),
            )
            for candidate, new_specifier in zip(candidates, verdicts)
            if new_specifier is not None
        ]
        return transformations, meta

    async def transform_source(
        self, source_code: str, file_meta_data: FileMetaData
    ) -> tuple[list[Transformation], FileMetaData]:
        """Parse a source and collect its transformations."""
        tree = self.parse(source_code, file_meta_data.pathname)
        return await self.collect(tree, source_code, file_meta_data)


def _first_error(root: Node) -> Node | None:
    stack = [root]
    while stack:
        node = stack.pop()
        if node.type == "ERROR" or node.is_missing:
            return node
        if node.has_error:
            stack.extend(reversed(node.children))
    return None


def _location(byte_offset: int, point: tuple[int, int], offsets: _OffsetTable) -> SourceLocation:
    row, byte_column = point
    offset = offsets.char_index(byte_offset)
    line_start = offsets.char_index(byte_offset - byte_column)
    return SourceLocation(offset=offset, line=row + 1, column=offset - line_start)


def _decode_string(node: Node, source_bytes: bytes) -> str:
    parts: list[str] = []
    for child in node.named_children:
        text = source_bytes[child.start_byte : child.end_byte].decode("utf-8")
        if child.type == "escape_sequence":
            parts.append(decode_escape(text))
        else:
            parts.append(text)
    return "".join(parts)


def _source_mapping_url(node: Node, source_bytes: bytes) -> str | None:
    if node.start_point[0] != node.end_point[0]:
        return None
    text = source_bytes[node.start_byte : node.end_byte].decode("utf-8")
    _, marker, value = text.partition(SOURCE_MAPPING_MARKER)
    if not marker:
        return None
    value = value.strip()
    if value.endswith("*/"):
        value = value[:-2].rstrip()
    return value or None
