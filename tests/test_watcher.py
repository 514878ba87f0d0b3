"""Tests for watch mode."""

from __future__ import annotations

import asyncio
import shutil
from collections.abc import Callable
from pathlib import Path

import pytest
from watchfiles import Change

from add_js_extension import RewriteConfig, RewriteManager, WatchSession
from add_js_extension.utils import make_ignore_predicate
from add_js_extension.watcher import (
    DebounceDecision,
    WatchEvent,
    WatchEventKind,
    debounce,
    list_tree,
    reconcile,
)

MakeProject = Callable[[dict[str, str]], Path]

IGNORE_NOTHING = make_ignore_predicate([])


class FakeClock:
    def __init__(self, now: float = 100.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def quiet_session(project: Path, **options: object) -> WatchSession:
    return WatchSession(project, RewriteManager(RewriteConfig(quiet=True, **options)))


class TestDebounce:
    """Tests for the debounce decision."""

    def test_first_call_fires(self) -> None:
        assert debounce(None, 5.0, 0.5) is DebounceDecision.FIRE

    def test_call_within_window_is_suppressed(self) -> None:
        assert debounce(5.0, 5.2, 0.5) is DebounceDecision.SUPPRESS

    def test_call_after_window_fires(self) -> None:
        assert debounce(5.0, 5.5, 0.5) is DebounceDecision.FIRE
        assert debounce(5.0, 9.0, 0.5) is DebounceDecision.FIRE


class TestListTree:
    """Tests for list_tree."""

    def test_directories_come_before_their_contents(self, make_project: MakeProject) -> None:
        project = make_project({"dist/a.js": "", "dist/sub/b.js": "", "top.js": ""})

        events = list_tree(project, IGNORE_NOTHING)

        assert events == [
            WatchEvent(WatchEventKind.ADD_DIR, project / "dist"),
            WatchEvent(WatchEventKind.ADD, project / "top.js"),
            WatchEvent(WatchEventKind.ADD_DIR, project / "dist" / "sub"),
            WatchEvent(WatchEventKind.ADD, project / "dist" / "a.js"),
            WatchEvent(WatchEventKind.ADD, project / "dist" / "sub" / "b.js"),
        ]

    def test_ignored_directories_are_skipped(self, make_project: MakeProject) -> None:
        project = make_project({"dist/a.js": "", "node_modules/pkg/b.js": ""})

        events = list_tree(project, make_ignore_predicate(["node_modules"]))

        assert {e.path for e in events} == {project / "dist", project / "dist" / "a.js"}


class TestReconcile:
    """Tests for reconcile."""

    def test_new_changed_and_removed_files(self, make_project: MakeProject) -> None:
        project = make_project({"edited.js": "", "added.js": ""})
        gone = project / "gone.js"
        known = {project / "edited.js", gone}

        events = reconcile(
            [project / "added.js", project / "edited.js", gone], known, set(), IGNORE_NOTHING
        )

        assert events == [
            WatchEvent(WatchEventKind.UNLINK, gone),
            WatchEvent(WatchEventKind.ADD, project / "added.js"),
            WatchEvent(WatchEventKind.CHANGE, project / "edited.js"),
        ]
        assert known == {project / "edited.js", gone}

    def test_removed_directory_takes_its_contents(self, make_project: MakeProject) -> None:
        project = make_project({})
        old = project / "old"
        files = {old / "a.js", old / "deep" / "b.js", project / "keep.js"}
        directories = {old, old / "deep"}

        events = reconcile([old, old / "a.js"], files, directories, IGNORE_NOTHING)

        assert events == [
            WatchEvent(WatchEventKind.UNLINK, old / "a.js"),
            WatchEvent(WatchEventKind.UNLINK_DIR, old / "deep"),
            WatchEvent(WatchEventKind.UNLINK, old / "deep" / "b.js"),
            WatchEvent(WatchEventKind.UNLINK_DIR, old),
        ]

    def test_new_directory_is_listed(self, make_project: MakeProject) -> None:
        """Test that files created with their directory are found even if unreported."""
        project = make_project({"lib/a.js": "", "lib/sub/b.js": ""})
        lib = project / "lib"

        events = reconcile([lib, lib / "a.js"], set(), set(), IGNORE_NOTHING)

        assert events == [
            WatchEvent(WatchEventKind.ADD_DIR, lib),
            WatchEvent(WatchEventKind.ADD_DIR, lib / "sub"),
            WatchEvent(WatchEventKind.ADD, lib / "a.js"),
            WatchEvent(WatchEventKind.ADD, lib / "sub" / "b.js"),
        ]

    def test_file_replaced_by_directory(self, make_project: MakeProject) -> None:
        project = make_project({"x/": ""})
        x = project / "x"

        assert reconcile([x], {x}, set(), IGNORE_NOTHING) == [
            WatchEvent(WatchEventKind.UNLINK, x),
            WatchEvent(WatchEventKind.ADD_DIR, x),
        ]

    def test_removed_and_recreated_file_is_a_change(self, make_project: MakeProject) -> None:
        project = make_project({"main.js": ""})
        main = project / "main.js"

        assert reconcile([main, main], {main}, set(), IGNORE_NOTHING) == [
            WatchEvent(WatchEventKind.CHANGE, main),
        ]

    def test_short_lived_unknown_file(self, make_project: MakeProject) -> None:
        project = make_project({})

        assert reconcile([project / "tmp.js"], set(), set(), IGNORE_NOTHING) == []


class TestWatchSession:
    """Tests for WatchSession."""

    def test_initial_scan_rewrites_and_counts(self, make_project: MakeProject) -> None:
        project = make_project(
            {
                "main.js": "import x from './util'\n",
                "util.js": "",
                "style.css": "",
                "lib/": "",
                "node_modules/pkg/index.js": "",
            }
        )
        session = quiet_session(project)

        async def scenario() -> None:
            await session.scan()
            await session.drain()

        asyncio.run(scenario())

        assert (session.directories, session.files, session.candidates) == (1, 3, 2)
        assert session.status_line() == (
            "watching 1 directory totalling 3 files, of which 2 are of interest"
        )
        assert (project / "main.js").read_text() == "import x from './util.js'\n"

    def test_changes_are_processed(self, make_project: MakeProject) -> None:
        project = make_project({"util.ts": "", "widgets/index.ts": ""})
        session = quiet_session(project)
        main = project / "main.js"

        async def scenario() -> None:
            await session.scan()
            await session.drain()

            main.write_text("import x from './util'\n")
            events = await session.handle_changes({(Change.added, str(main))})
            await session.drain()
            assert events == [WatchEvent(WatchEventKind.ADD, main)]
            assert main.read_text() == "import x from './util.js'\n"

            main.write_text("export * from './widgets' // re-export\n")
            events = await session.handle_changes({(Change.modified, str(main))})
            await session.drain()
            assert events == [WatchEvent(WatchEventKind.CHANGE, main)]
            assert main.read_text() == "export * from './widgets/index.js' // re-export\n"

            main.unlink()
            events = await session.handle_changes({(Change.deleted, str(main))})
            assert events == [WatchEvent(WatchEventKind.UNLINK, main)]

        asyncio.run(scenario())

        assert (session.directories, session.files, session.candidates) == (1, 2, 2)

    def test_removed_directory_updates_counters(self, make_project: MakeProject) -> None:
        project = make_project({"lib/a.js": "", "lib/sub/b.ts": "", "keep.js": ""})
        session = quiet_session(project)

        async def scenario() -> None:
            await session.scan()
            await session.drain()
            shutil.rmtree(project / "lib")
            await session.handle_changes({(Change.deleted, str(project / "lib"))})

        asyncio.run(scenario())

        assert (session.directories, session.files, session.candidates) == (0, 1, 1)

    def test_watch_filter(self, make_project: MakeProject) -> None:
        project = make_project({})
        session = quiet_session(project)

        assert session.watch_filter(Change.added, str(project / "dist" / "a.js"))
        assert not session.watch_filter(
            Change.added, str(project / "node_modules" / "pkg" / "a.js")
        )
        assert not session.watch_filter(Change.added, str(project / ".git" / "index"))
        assert not session.watch_filter(
            Change.added, str(project / ".add-js-extension-abc.tmp")
        )
        assert not session.watch_filter(Change.added, "/elsewhere/a.js")

    def test_stopped_run_processes_the_tree(
        self, make_project: MakeProject, capsys: pytest.CaptureFixture[str]
    ) -> None:
        project = make_project({"main.js": "import x from './util'\n", "util.js": ""})
        session = quiet_session(project)

        async def scenario() -> None:
            stop = asyncio.Event()
            stop.set()
            await session.run(stop_event=stop)

        asyncio.run(scenario())

        assert (project / "main.js").read_text() == "import x from './util.js'\n"
        assert f"Started watching directory {project}" in capsys.readouterr().out

    def test_run_rewrites_files_as_they_appear(self, make_project: MakeProject) -> None:
        project = make_project({"util.ts": ""})
        session = quiet_session(project, force_polling=True, poll_interval=0.05)
        main = project / "main.js"
        expected = "import x from './util.js'\n"

        async def scenario() -> str:
            stop = asyncio.Event()
            task = asyncio.create_task(session.run(stop_event=stop))
            await asyncio.sleep(0.5)
            main.write_text("import x from './util'\n")
            for _ in range(200):
                await asyncio.sleep(0.05)
                if main.read_text() == expected:
                    break
            stop.set()
            await task
            return main.read_text()

        assert asyncio.run(scenario()) == expected
        assert session.files == 2

    def test_failure_is_reported_and_watching_goes_on(
        self, make_project: MakeProject, capsys: pytest.CaptureFixture[str]
    ) -> None:
        project = make_project({"broken.js": "import {\n", "ok.js": "import x from './util'\n"})
        (project / "util.js").write_text("")
        session = quiet_session(project)

        async def scenario() -> None:
            await session.scan()
            await session.drain()

        asyncio.run(scenario())

        assert "broken.js could not be processed" in capsys.readouterr().err
        assert (project / "ok.js").read_text() == "import x from './util.js'\n"

    def test_reports_are_debounced(
        self, make_project: MakeProject, capsys: pytest.CaptureFixture[str]
    ) -> None:
        project = make_project({})
        clock = FakeClock()
        session = WatchSession(project, RewriteManager(), clock=clock, report_interval=10.0)

        async def scenario() -> None:
            session.request_report()
            clock.now += 1.0
            session.request_report()
            session.request_report()

        asyncio.run(scenario())

        out = capsys.readouterr().out
        lines = [line for line in out.splitlines() if line.startswith("watching")]
        assert lines == ["watching 0 directories totalling 0 files, of which 0 are of interest"]

    def test_quiet_session_prints_no_status(
        self, make_project: MakeProject, capsys: pytest.CaptureFixture[str]
    ) -> None:
        project = make_project({"a.js": ""})
        session = quiet_session(project)

        asyncio.run(session.scan())

        assert "totalling" not in capsys.readouterr().out

    def test_process_serializes_per_path(self, make_project: MakeProject) -> None:
        project = make_project({"main.js": "import x from './util'\n", "util.js": ""})
        session = quiet_session(project)
        path = project / "main.js"

        async def scenario() -> list[int]:
            return await asyncio.gather(session.process(path), session.process(path))

        counts = asyncio.run(scenario())

        assert sorted(counts) == [0, 1]
        assert path.read_text() == "import x from './util.js'\n"

    def test_locks_are_released_after_processing(self, make_project: MakeProject) -> None:
        """Test that a long session does not keep a lock per file ever seen."""
        project = make_project({"a.js": "", "b.js": "import {\n"})
        session = quiet_session(project)

        async def scenario() -> None:
            await asyncio.gather(
                session.process(project / "a.js"),
                session.process(project / "a.js"),
                session.process(project / "b.js"),
            )

        asyncio.run(scenario())

        assert session._locks == {}
        assert session._lock_users == {}
