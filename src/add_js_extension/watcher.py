"""
Watch mode.

This module provides the WatchSession class which keeps a directory's
imports fixed while files are added or changed, typically while the
TypeScript compiler runs in watch mode and keeps re-emitting JavaScript.

Changes are received from watchfiles. Each batch of changed paths is
reconciled against the files and directories the session already knows
about, which turns it into add/change/unlink events.
"""

from __future__ import annotations

import asyncio
import os
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from watchfiles import Change, awatch

from .config import RewriteConfig
from .manager import TEMPORARY_FILE_PREFIX, RewriteManager, report_failure
from .utils import is_candidate_file, make_ignore_predicate

REPORT_INTERVAL = 0.5


class DebounceDecision(Enum):
    FIRE = "fire"
    SUPPRESS = "suppress"


def debounce(last_fire: float | None, now: float, wait: float) -> DebounceDecision:
    """
    Decide whether a debounced call may run now.

    Args:
        last_fire: Time the call last ran, or None if it never did
        now: Current time
        wait: Minimum delay between two runs

    Returns:
        FIRE if at least `wait` elapsed since the last run, SUPPRESS otherwise
    """
    if last_fire is None or now - last_fire >= wait:
        return DebounceDecision.FIRE
    return DebounceDecision.SUPPRESS


class WatchEventKind(Enum):
    ADD = "add"
    CHANGE = "change"
    UNLINK = "unlink"
    ADD_DIR = "add_dir"
    UNLINK_DIR = "unlink_dir"


@dataclass(frozen=True)
class WatchEvent:
    kind: WatchEventKind
    path: Path


def list_tree(directory: Path, should_ignore: Callable[[Path], bool]) -> list[WatchEvent]:
    """
    List every file and directory below a directory as add events.

    Args:
        directory: Root of the listing (not itself included)
        should_ignore: Predicate for directories to skip entirely

    Returns:
        ADD_DIR and ADD events, each directory before its contents
    """
    events: list[WatchEvent] = []
    for root, dirnames, filenames in os.walk(directory):
        root_path = Path(root)
        dirnames[:] = sorted(d for d in dirnames if not should_ignore(root_path / d))
        events.extend(WatchEvent(WatchEventKind.ADD_DIR, root_path / d) for d in dirnames)
        events.extend(WatchEvent(WatchEventKind.ADD, root_path / f) for f in sorted(filenames))
    return events


def reconcile(
    paths: Iterable[Path],
    files: set[Path],
    directories: set[Path],
    should_ignore: Callable[[Path], bool],
) -> list[WatchEvent]:
    """
    Compute the events bringing the known tree up to date for changed paths.

    Each path is compared with what is on disk now, so a batch holding both
    the removal and the re-creation of a file becomes a single change. A
    directory that disappeared takes every known entry below it along; a
    directory that appeared is listed, since the notifications for its
    contents may have been missed.

    Args:
        paths: Paths reported as changed
        files: Files known before the batch (not modified)
        directories: Directories known before the batch (not modified)
        should_ignore: Predicate for directories to skip when listing

    Returns:
        Removals first, then additions and changes, each in path order
    """
    files = set(files)
    directories = set(directories)
    removals: list[WatchEvent] = []
    additions: list[WatchEvent] = []
    seen: set[Path] = set()

    for path in sorted(set(paths)):
        if path in seen:
            # already listed with a new parent directory
            continue
        is_directory = path.is_dir()
        is_file = not is_directory and path.is_file()

        if path in directories and not is_directory:
            below = sorted(p for p in files | directories if path in p.parents)
            for child in below:
                kind = WatchEventKind.UNLINK_DIR if child in directories else WatchEventKind.UNLINK
                removals.append(WatchEvent(kind, child))
            files.difference_update(below)
            directories.difference_update(below)
            directories.discard(path)
            removals.append(WatchEvent(WatchEventKind.UNLINK_DIR, path))
        elif path in files and not is_file:
            files.discard(path)
            removals.append(WatchEvent(WatchEventKind.UNLINK, path))

        if is_directory and path not in directories:
            directories.add(path)
            additions.append(WatchEvent(WatchEventKind.ADD_DIR, path))
            for event in list_tree(path, should_ignore):
                if event.path in files or event.path in directories:
                    continue
                if event.kind is WatchEventKind.ADD_DIR:
                    directories.add(event.path)
                else:
                    files.add(event.path)
                additions.append(event)
                seen.add(event.path)
        elif is_file:
            kind = WatchEventKind.CHANGE if path in files else WatchEventKind.ADD
            files.add(path)
            additions.append(WatchEvent(kind, path))

    return removals + additions


class WatchSession:
    """
    Watches a directory and rewrites files as they are added or changed.

    Attributes:
        directory: The watched directory
        manager: RewriteManager processing the files
        config: Rewrite options (ignore list, extensions, polling)
        directories: Number of directories currently known
        files: Number of files currently known
        candidates: Number of known files worth processing
    """

    def __init__(
        self,
        directory: str | Path,
        manager: RewriteManager,
        config: RewriteConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
        report_interval: float = REPORT_INTERVAL,
    ) -> None:
        """
        Initialize the watch session.

        Args:
            directory: Directory to watch
            manager: RewriteManager used to process files; it should use an
                uncached probe since the tree changes under it
            config: Rewrite options (default: the manager's)
            clock: Time source for the debounced status report
            report_interval: Minimum delay between two status reports
        """
        self.directory = Path(os.path.abspath(directory))
        self.manager = manager
        self.config = config or manager.config
        self.report_interval = report_interval
        self.directories = 0
        self.files = 0
        self.candidates = 0
        self._clock = clock
        self._should_ignore = make_ignore_predicate(self.config.ignore)
        self._known_files: set[Path] = set()
        self._known_directories: set[Path] = set()
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}
        self._tasks: set[asyncio.Task[int]] = set()
        self._last_report: float | None = None
        self._pending_report: asyncio.TimerHandle | None = None

    def is_of_interest(self, path: Path) -> bool:
        return is_candidate_file(path, self.config.extensions)

    def watch_filter(self, change: Change, path: str) -> bool:
        """Tell watchfiles whether a changed path belongs to the watched tree."""
        candidate = Path(path)
        if candidate.name.startswith(TEMPORARY_FILE_PREFIX):
            return False
        try:
            relative = candidate.relative_to(self.directory)
        except ValueError:
            return False
        current = self.directory
        for part in relative.parts:
            current = current / part
            if self._should_ignore(current):
                return False
        return True

    def status_line(self) -> str:
        directories = "directory" if self.directories == 1 else "directories"
        return (
            f"watching {self.directories} {directories} totalling {self.files} files, "
            f"of which {self.candidates} are of interest"
        )

    def request_report(self) -> None:
        """Print the status line now, or once the debounce window has passed."""
        now = self._clock()
        if debounce(self._last_report, now, self.report_interval) is DebounceDecision.FIRE:
            self._last_report = now
            self._pending_report = None
            if not self.config.quiet:
                print(self.status_line())
            return

        if self._pending_report is not None:
            self._pending_report.cancel()
        loop = asyncio.get_running_loop()
        self._pending_report = loop.call_later(self.report_interval, self.request_report)

    def handle_event(self, event: WatchEvent) -> None:
        """Update the counters for an event and schedule processing if needed."""
        interesting = self.is_of_interest(event.path)

        if event.kind is WatchEventKind.ADD:
            self._known_files.add(event.path)
            self.files += 1
            if interesting:
                self.candidates += 1
        elif event.kind is WatchEventKind.UNLINK:
            self._known_files.discard(event.path)
            self.files -= 1
            if interesting:
                self.candidates -= 1
        elif event.kind is WatchEventKind.ADD_DIR:
            self._known_directories.add(event.path)
            self.directories += 1
        elif event.kind is WatchEventKind.UNLINK_DIR:
            self._known_directories.discard(event.path)
            self.directories -= 1

        if event.kind is not WatchEventKind.CHANGE:
            self.request_report()

        if interesting and event.kind in (WatchEventKind.ADD, WatchEventKind.CHANGE):
            task = asyncio.create_task(self.process(event.path))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def process(self, path: Path) -> int:
        """
        Process one file, never concurrently with another run on the same path.

        Failures are reported and the session goes on.

        Returns:
            Number of rewrites performed
        """
        key = os.fspath(path)
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._lock_users[key] = self._lock_users.get(key, 0) + 1
        try:
            async with lock:
                try:
                    return await self.manager.process_file(key)
                except Exception as e:
                    report_failure(key, e)
                    return 0
        finally:
            self._lock_users[key] -= 1
            if not self._lock_users[key]:
                del self._lock_users[key]
                del self._locks[key]

    async def scan(self) -> list[WatchEvent]:
        """List the whole tree and handle every entry not known yet."""
        listing = await asyncio.to_thread(list_tree, self.directory, self._should_ignore)
        events = [
            event
            for event in listing
            if event.path not in self._known_files and event.path not in self._known_directories
        ]
        for event in events:
            self.handle_event(event)
        return events

    async def handle_changes(self, changes: Iterable[tuple[Change, str]]) -> list[WatchEvent]:
        """
        Handle one batch of changes reported by watchfiles.

        Args:
            changes: (Change, path) pairs

        Returns:
            The events the batch turned into
        """
        paths = [Path(path) for _, path in changes]
        events = await asyncio.to_thread(
            reconcile,
            paths,
            self._known_files,
            self._known_directories,
            self._should_ignore,
        )
        for event in events:
            self.handle_event(event)
        return events

    async def drain(self) -> None:
        """Wait for every scheduled file to be processed."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    async def run(self, stop_event: asyncio.Event | None = None) -> None:
        """
        Process the whole tree, then watch it until stopped or cancelled.

        Args:
            stop_event: Event ending the watch once set (default: watch
                until the task is cancelled)
        """
        print(f"Started watching directory {self.directory}")
        try:
            await self.scan()
            async for changes in awatch(
                self.directory,
                watch_filter=self.watch_filter,
                stop_event=stop_event,
                force_polling=self.config.force_polling or None,
                poll_delay_ms=int(self.config.poll_interval * 1000),
            ):
                await self.handle_changes(changes)
            await self.drain()
        finally:
            if self._pending_report is not None:
                self._pending_report.cancel()
