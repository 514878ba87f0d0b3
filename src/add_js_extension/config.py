"""
Configuration loading.

Settings come from three layers, later ones winning: built-in defaults, an
add-js-extension.toml file, and command-line flags.
"""

from __future__ import annotations

import sys
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

from .utils import (
    CONFIG_FILE_NAME,
    DEFAULT_CANDIDATE_EXTENSIONS,
    DEFAULT_IGNORED_DIRECTORIES,
    find_project_root,
)

TOOL_TABLE = "add-js-extension"


@dataclass(frozen=True)
class RewriteConfig:
    """
    Options controlling how specifiers are rewritten.

    Attributes:
        relative: Rewrite alias specifiers ("src/...") into relative ones
        alias_prefix: Prefix marking a project-relative alias specifier
        extensions: File extensions worth processing
        ignore: Directory names skipped when listing or watching files
        dry_run: Report rewrites without writing files
        quiet: Suppress per-file reports
        poll_interval: Seconds between two polls when watch mode polls
        force_polling: Poll the tree in watch mode instead of relying on
            filesystem notifications (network drives, containers)
    """

    relative: bool = False
    alias_prefix: str = "src/"
    extensions: tuple[str, ...] = DEFAULT_CANDIDATE_EXTENSIONS
    ignore: tuple[str, ...] = DEFAULT_IGNORED_DIRECTORIES
    dry_run: bool = False
    quiet: bool = False
    poll_interval: float = 0.5
    force_polling: bool = False
    source: Path | None = field(default=None, compare=False)

    def merge(self, **overrides: Any) -> RewriteConfig:
        """Return a copy with every non-None override applied."""
        values = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **values)


_EXPECTED_TYPES: dict[str, type | tuple[type, ...]] = {
    "relative": bool,
    "alias_prefix": str,
    "extensions": list,
    "ignore": list,
    "dry_run": bool,
    "quiet": bool,
    "poll_interval": (int, float),
    "force_polling": bool,
}


def _coerce(config_path: Path, table: dict[str, Any]) -> dict[str, Any]:
    values: dict[str, Any] = {}
    for raw_key, value in table.items():
        key = raw_key.replace("-", "_")
        if key not in _EXPECTED_TYPES:
            raise ValueError(f"Unknown option {raw_key!r} in {config_path}")
        expected = _EXPECTED_TYPES[key]
        # bool is an int subclass; reject it for numeric options
        if not isinstance(value, expected) or (key == "poll_interval" and isinstance(value, bool)):
            raise ValueError(f"Option {raw_key!r} in {config_path} has the wrong type")
        if isinstance(value, list):
            if not all(isinstance(item, str) for item in value):
                raise ValueError(f"Option {raw_key!r} in {config_path} must be a list of strings")
            value = tuple(value)
        values[key] = value
    return values


def load_config_file(config_path: Path) -> RewriteConfig:
    """
    Load settings from a TOML file.

    Options may sit at the top level of the file or in a
    [tool.add-js-extension] table. Dashes in keys map to underscores.

    Args:
        config_path: Path to the TOML file

    Returns:
        RewriteConfig with the file's settings over the defaults

    Raises:
        ValueError: If the file cannot be read or holds invalid options
    """
    try:
        data = tomllib.loads(config_path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, tomllib.TOMLDecodeError) as e:
        raise ValueError(f"Could not read configuration file {config_path}: {e}") from e

    table = data.get("tool", {}).get(TOOL_TABLE)
    if table is None:
        table = {k: v for k, v in data.items() if k != "tool"}
    if not isinstance(table, dict):
        raise ValueError(f"[tool.{TOOL_TABLE}] in {config_path} must be a table")

    return replace(RewriteConfig(**_coerce(config_path, table)), source=config_path)


def load_config(start_path: Path | None = None, config_path: Path | None = None) -> RewriteConfig:
    """
    Resolve the configuration for a run.

    Args:
        start_path: File or directory the run targets; the configuration file
            is searched for from there upward
        config_path: Explicit configuration file, skipping the search

    Returns:
        RewriteConfig, the defaults if no configuration file was found
    """
    if config_path is not None:
        return load_config_file(config_path)

    root = find_project_root(start_path, marker=CONFIG_FILE_NAME)
    if root is None:
        return RewriteConfig()
    return load_config_file(root / CONFIG_FILE_NAME)

