"""Tests for utility functions."""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from add_js_extension import FileSystemProbe, is_candidate_file
from add_js_extension.types import PathKind
from add_js_extension.utils import (
    CONFIG_FILE_NAME,
    find_candidate_files,
    find_project_root,
    make_ignore_predicate,
    read_text_or_none,
)


class TestFileSystemProbe:
    """Tests for FileSystemProbe."""

    def test_probe_missing(self, tmp_path: Path) -> None:
        """Test that a missing path is a normal result."""
        probe = FileSystemProbe()

        assert asyncio.run(probe.probe(tmp_path / "nope.js")) is PathKind.MISSING

    def test_probe_file_and_directory(self, tmp_path: Path) -> None:
        """Test telling files from directories."""
        (tmp_path / "util.js").write_text("export default 1")
        (tmp_path / "widgets").mkdir()
        probe = FileSystemProbe()

        assert asyncio.run(probe.probe(tmp_path / "util.js")) is PathKind.FILE
        assert asyncio.run(probe.probe(tmp_path / "widgets")) is PathKind.DIRECTORY
        assert asyncio.run(probe.is_file(tmp_path / "util.js")) is True
        assert asyncio.run(probe.is_directory(tmp_path / "util.js")) is False

    def test_probe_through_a_file_is_missing(self, tmp_path: Path) -> None:
        """Test that using a file as a directory component reports MISSING."""
        (tmp_path / "util.js").write_text("")
        probe = FileSystemProbe()

        assert asyncio.run(probe.probe(tmp_path / "util.js" / "index.js")) is PathKind.MISSING

    def test_unexpected_errors_propagate(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test that errors other than not-found are raised."""

        def denied(path: str) -> None:
            raise PermissionError(13, "Permission denied", path)

        monkeypatch.setattr("add_js_extension.utils.os.stat", denied)
        probe = FileSystemProbe()

        with pytest.raises(PermissionError):
            asyncio.run(probe.probe(tmp_path / "secret.js"))

    def test_cached_probe_reuses_results(self, tmp_path: Path) -> None:
        """Test that a cached probe does not see later changes."""
        target = tmp_path / "late.js"
        probe = FileSystemProbe(cache=True)

        assert asyncio.run(probe.probe(target)) is PathKind.MISSING
        target.write_text("")
        assert asyncio.run(probe.probe(target)) is PathKind.MISSING
        assert probe.calls == 1

        probe.clear()
        assert asyncio.run(probe.probe(target)) is PathKind.FILE

    def test_uncached_probe_sees_changes(self, tmp_path: Path) -> None:
        """Test that an uncached probe always hits the filesystem."""
        target = tmp_path / "late.js"
        probe = FileSystemProbe()

        assert asyncio.run(probe.probe(target)) is PathKind.MISSING
        target.write_text("")
        assert asyncio.run(probe.probe(target)) is PathKind.FILE
        assert probe.calls == 2


class TestReadTextOrNone:
    """Tests for read_text_or_none."""

    def test_reads_existing_file(self, tmp_path: Path) -> None:
        (tmp_path / "package.json").write_text('{"name": "x"}')

        assert asyncio.run(read_text_or_none(tmp_path / "package.json")) == '{"name": "x"}'

    def test_missing_file(self, tmp_path: Path) -> None:
        assert asyncio.run(read_text_or_none(tmp_path / "package.json")) is None


class TestIsCandidateFile:
    """Tests for is_candidate_file."""

    @pytest.mark.parametrize(
        "pathname",
        [
            "index.js",
            "lib/util.mjs",
            "App.jsx",
            "main.ts",
            "types.d.ts",
            "x.mts",
            "x.cts",
            "App.tsx",
        ],
    )
    def test_candidates(self, pathname: str) -> None:
        assert is_candidate_file(pathname) is True

    @pytest.mark.parametrize("pathname", ["style.css", "data.json", "README.md", "index.js.map"])
    def test_non_candidates(self, pathname: str) -> None:
        assert is_candidate_file(pathname) is False

    def test_custom_extensions(self) -> None:
        assert is_candidate_file("main.ts", extensions=[".js"]) is False
        assert is_candidate_file(Path("dist/main.js"), extensions=[".js"]) is True


class TestFindProjectRoot:
    """Tests for find_project_root function."""

    def test_find_project_root_in_current_dir(self, tmp_path: Path) -> None:
        """Test finding the marker in the start directory."""
        project_root = tmp_path / "project"
        project_root.mkdir()
        (project_root / CONFIG_FILE_NAME).write_text("relative = true")

        found = find_project_root(project_root)

        assert found == project_root

    def test_find_project_root_in_parent(self, tmp_path: Path) -> None:
        """Test finding the marker in a parent directory."""
        project_root = tmp_path / "project"
        project_root.mkdir()
        (project_root / CONFIG_FILE_NAME).write_text("relative = true")

        subdir = project_root / "dist" / "lib"
        subdir.mkdir(parents=True)

        found = find_project_root(subdir)

        assert found == project_root

    def test_find_project_root_from_file(self, tmp_path: Path) -> None:
        """Test starting the search from a file."""
        project_root = tmp_path / "project"
        (project_root / "dist").mkdir(parents=True)
        (project_root / CONFIG_FILE_NAME).write_text("")
        source = project_root / "dist" / "index.js"
        source.write_text("")

        assert find_project_root(source) == project_root

    def test_find_project_root_not_found(self, tmp_path: Path) -> None:
        """Test when the marker is not found."""
        some_dir = tmp_path / "some_dir"
        some_dir.mkdir()

        found = find_project_root(some_dir, marker="no-such-marker.toml")

        assert found is None

    def test_find_project_root_defaults_to_cwd(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test that find_project_root defaults to current directory."""
        project_root = tmp_path / "project"
        project_root.mkdir()
        (project_root / CONFIG_FILE_NAME).write_text("")

        monkeypatch.chdir(project_root)

        found = find_project_root()

        assert found == project_root


class TestFindCandidateFiles:
    """Tests for find_candidate_files and make_ignore_predicate."""

    def test_finds_sources_and_skips_ignored(self, tmp_path: Path) -> None:
        """Test recursive listing with the default ignore list."""
        for relative in [
            "index.js",
            "lib/util.ts",
            "lib/style.css",
            "node_modules/colors/safe.js",
            ".git/hooks/x.js",
        ]:
            path = tmp_path / relative
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text("")

        found = find_candidate_files(tmp_path)

        assert found == [tmp_path / "index.js", tmp_path / "lib" / "util.ts"]

    def test_injected_predicate(self, tmp_path: Path) -> None:
        """Test that the ignore predicate is fully replaceable."""
        for relative in ["keep/a.js", "coverage/b.js", "node_modules/c.js"]:
            path = tmp_path / relative
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text("")

        found = find_candidate_files(tmp_path, make_ignore_predicate(["coverage"]))

        assert found == [tmp_path / "keep" / "a.js", tmp_path / "node_modules" / "c.js"]
