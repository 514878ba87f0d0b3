"""
Rewrite management functionality.

This module provides the RewriteManager class which orchestrates the rewrite
of whole files: reading them, collecting their transformations, applying
them, writing the result back, and reporting what changed. It also runs
batches of files concurrently.
"""

from __future__ import annotations

import asyncio
import os
import shutil
import sys
import tempfile
from collections.abc import Iterable
from pathlib import Path

from .analyzer import ImportAnalyzer, SourceParseError
from .config import RewriteConfig
from .resolver import SpecifierResolver
from .transformation import apply_transformations
from .types import BatchSummary, FileMetaData, ProcessingResult, Transformation
from .utils import FileSystemProbe, find_candidate_files, make_ignore_predicate

# Rewritten files are staged next to their target under this name prefix
TEMPORARY_FILE_PREFIX = ".add-js-extension-"


def _read_source(pathname: str) -> str:
    with open(pathname, encoding="utf-8", newline="") as f:
        return f.read()


def _write_source(pathname: str, source_code: str) -> None:
    # The target is replaced as a whole, or not at all
    temporary = tempfile.NamedTemporaryFile(
        "w",
        encoding="utf-8",
        newline="",
        dir=os.path.dirname(os.path.abspath(pathname)),
        prefix=TEMPORARY_FILE_PREFIX,
        suffix=".tmp",
        delete=False,
    )
    try:
        with temporary:
            temporary.write(source_code)
        shutil.copymode(pathname, temporary.name)
        os.replace(temporary.name, pathname)
    except BaseException:
        os.unlink(temporary.name)
        raise


def format_report(
    pathname: str, transformations: list[Transformation], dry_run: bool = False
) -> str:
    """
    Format the report printed for a rewritten file.

    Args:
        pathname: The rewritten file
        transformations: Rewrites performed
        dry_run: Phrase the report as a preview

    Returns:
        Multi-line report text
    """
    count = len(transformations)
    verb = "would perform" if dry_run else "performed"
    plural = "" if count == 1 else "s"
    lines = [f"{verb} {count} transformation{plural} in {pathname}:"]
    lines.extend(f"    {t.describe()}" for t in transformations)
    return "\n".join(lines)


class RewriteManager:
    """
    Processes files, writing back the ones whose imports need rewriting.

    This is the main class for using the package.

    Attributes:
        config: Rewrite options
        probe: Filesystem probe shared by every resolution
        analyzer: ImportAnalyzer collecting the transformations
    """

    def __init__(
        self,
        config: RewriteConfig | None = None,
        probe: FileSystemProbe | None = None,
    ) -> None:
        """
        Initialize the rewrite manager.

        Args:
            config: Rewrite options (default: RewriteConfig())
            probe: Filesystem probe (default: an uncached probe, suitable for
                long-lived sessions such as watch mode)
        """
        self.config = config or RewriteConfig()
        self.probe = probe or FileSystemProbe()
        self.analyzer = ImportAnalyzer(SpecifierResolver(self.config, self.probe))

    async def transform_file(self, pathname: str | Path) -> tuple[str, list[Transformation]]:
        """
        Compute the rewritten text of a file without writing it.

        Args:
            pathname: File to transform

        Returns:
            Tuple of (new source text, transformations applied)

        Raises:
            SourceParseError: If the file cannot be parsed
            UnicodeDecodeError: If the file is not valid UTF-8
            OSError: If the file cannot be read
        """
        pathname = os.fspath(pathname)
        source_code = await asyncio.to_thread(_read_source, pathname)

        meta = FileMetaData(pathname=pathname, absolute_pathname=os.path.abspath(pathname))
        transformations, _ = await self.analyzer.transform_source(source_code, meta)

        return apply_transformations(transformations, source_code), transformations

    async def rewrite_file(self, pathname: str | Path) -> ProcessingResult:
        """
        Rewrite the imports of one file in place.

        The file is written back, as a whole, only if at least one import was
        rewritten (and this is not a dry run).

        Args:
            pathname: File to process

        Returns:
            ProcessingResult listing the rewrites performed
        """
        pathname = os.fspath(pathname)
        new_source, transformations = await self.transform_file(pathname)
        result = ProcessingResult(pathname=pathname, transformations=transformations)

        if not transformations:
            return result

        if not self.config.dry_run:
            await asyncio.to_thread(_write_source, pathname, new_source)

        if not self.config.quiet:
            print(format_report(pathname, transformations, dry_run=self.config.dry_run))

        return result

    async def process_file(self, pathname: str | Path) -> int:
        """
        Rewrite one file and count the rewrites.

        Args:
            pathname: File to process

        Returns:
            Number of rewrites performed
        """
        result = await self.rewrite_file(pathname)
        return len(result.transformations)

    async def process_files(self, pathnames: Iterable[str | Path]) -> BatchSummary:
        """
        Process many files as one concurrent group.

        A file that fails (syntax error, unreadable, not UTF-8) is reported on
        stderr and does not stop the others.

        Args:
            pathnames: Files to process

        Returns:
            BatchSummary with totals and failures
        """
        paths = [os.fspath(p) for p in pathnames]
        outcomes = await asyncio.gather(
            *(self.rewrite_file(p) for p in paths), return_exceptions=True
        )

        summary = BatchSummary()
        for pathname, outcome in zip(paths, outcomes):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                report_failure(pathname, outcome)
                outcome = ProcessingResult(pathname=pathname, error=outcome)
            summary.add(outcome)

        return summary

    async def process_directory(self, directory: str | Path) -> BatchSummary:
        """
        Process every candidate file below a directory.

        Args:
            directory: Directory to scan; ignored directory names from the
                configuration are skipped

        Returns:
            BatchSummary with totals and failures
        """
        files = await asyncio.to_thread(
            find_candidate_files,
            Path(directory),
            make_ignore_predicate(self.config.ignore),
            self.config.extensions,
        )
        return await self.process_files(files)


def report_failure(pathname: str, error: Exception) -> None:
    """Print why a file could not be processed."""
    if isinstance(error, SourceParseError):
        detail = f"syntax error at line {error.line}, column {error.column}"
    elif isinstance(error, UnicodeDecodeError):
        detail = "file is not valid UTF-8"
    else:
        detail = str(error) or type(error).__name__
    print(f"Error: {pathname} could not be processed: {detail}", file=sys.stderr)


def report_summary(summary: BatchSummary) -> None:
    """Print the totals of a batch run."""
    plural = "" if summary.files_processed == 1 else "s"
    print(
        f"Processed {summary.files_processed} file{plural}, rewrote {summary.rewrites} "
        f"import{'' if summary.rewrites == 1 else 's'} in {summary.files_rewritten} "
        f"file{'' if summary.files_rewritten == 1 else 's'}"
    )
    if summary.failures:
        count = len(summary.failures)
        print(
            f"Warning: {count} file{'' if count == 1 else 's'} could not be processed",
            file=sys.stderr,
        )
