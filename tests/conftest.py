"""Pytest configuration and fixtures."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pytest


@pytest.fixture
def make_project(tmp_path: Path) -> Callable[[dict[str, str]], Path]:
    """
    Build a small JavaScript project on disk.

    The returned factory takes a mapping of relative path to file content and
    returns the project root. Paths ending with "/" create empty directories.

    Example:
        ```python
        project = make_project({
            "src/index.ts": "import x from './util'",
            "src/util.ts": "export default 1",
            "src/empty/": "",
        })
        ```
    """
    project_root = tmp_path / "project"

    def _make(files: dict[str, str]) -> Path:
        project_root.mkdir(exist_ok=True)
        for relative, content in files.items():
            path = project_root / relative
            if relative.endswith("/"):
                path.mkdir(parents=True, exist_ok=True)
                continue
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
        return project_root

    return _make
