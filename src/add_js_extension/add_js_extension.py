"""
Main entry point for the add-js-extension package.

This module provides the command-line interface for the package.
It can be invoked via:
- The `add-js-extension` command (after installation)
- `python -m add_js_extension`
- Direct import and call to main()
"""

from __future__ import annotations

import asyncio
import sys
from collections.abc import Sequence
from pathlib import Path

from .config import load_config
from .manager import RewriteManager, report_summary
from .utils import FileSystemProbe, is_candidate_file
from .watcher import WatchSession


def main(argv: Sequence[str] | None = None) -> int:
    """
    Main entry point for the command-line tool.

    Parses command-line arguments, loads the configuration, and rewrites a
    single file, a whole directory, or keeps watching a directory.

    Args:
        argv: Command-line arguments (default: sys.argv[1:])

    Returns:
        Exit code (0 for success, non-zero for errors)
    """
    import argparse

    parser = argparse.ArgumentParser(
        description=(
            'Append the ".js" extension to the import specifiers that Node\'s ES module '
            "resolver cannot find as written"
        )
    )
    parser.add_argument(
        "path",
        type=Path,
        help="File to rewrite, or directory to rewrite (or watch) recursively",
    )
    parser.add_argument(
        "--watch",
        action="store_true",
        help="Keep watching the directory and rewrite files as they are added or changed",
    )
    parser.add_argument(
        "--relative",
        action="store_true",
        default=None,
        help="Rewrite alias imports (e.g. 'src/lib/util') into relative imports",
    )
    parser.add_argument(
        "--alias-prefix",
        help="Prefix of project-relative alias imports (default: 'src/')",
    )
    parser.add_argument(
        "--ignore",
        action="append",
        dest="ignore",
        help="Directory name to skip (node_modules and .git are always skipped). Can be specified multiple times.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="Configuration file (default: add-js-extension.toml found from PATH upward)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        default=None,
        help="Only report the rewrites, don't write any file",
    )
    parser.add_argument(
        "--quiet",
        action="store_true",
        default=None,
        help="Don't report rewritten files (errors are still reported)",
    )
    parser.add_argument(
        "--poll-interval",
        type=float,
        help="Seconds between two polls when watch mode polls (default: 0.5)",
    )
    parser.add_argument(
        "--force-polling",
        action="store_true",
        default=None,
        help="Poll for changes in watch mode instead of using filesystem notifications",
    )

    args = parser.parse_args(argv)

    try:
        target: Path = args.path
        if not target.exists():
            print(f"Error: Path does not exist: {target}", file=sys.stderr)
            return 1

        config = load_config(target, args.config)
        if config.source is not None and not args.quiet:
            print(f"Using configuration file: {config.source}")

        ignore = None
        if args.ignore:
            ignore = tuple(dict.fromkeys(config.ignore + tuple(args.ignore)))
        config = config.merge(
            relative=args.relative,
            alias_prefix=args.alias_prefix,
            ignore=ignore,
            dry_run=args.dry_run,
            quiet=args.quiet,
            poll_interval=args.poll_interval,
            force_polling=args.force_polling,
        )

        if args.watch:
            if not target.is_dir():
                print(f"Error: --watch requires a directory: {target}", file=sys.stderr)
                return 1
            # An uncached probe: the watched tree changes between two batches
            session = WatchSession(target, RewriteManager(config))
            try:
                asyncio.run(session.run())
            except KeyboardInterrupt:
                print("\nStopped watching")
            return 0

        manager = RewriteManager(config, FileSystemProbe(cache=True))

        if target.is_dir():
            summary = asyncio.run(manager.process_directory(target))
        else:
            if not is_candidate_file(target, config.extensions):
                print(
                    f"Error: Not a JavaScript or TypeScript file: {target}",
                    file=sys.stderr,
                )
                return 1
            summary = asyncio.run(manager.process_files([target]))

        if not config.quiet:
            report_summary(summary)

        return 1 if summary.failures else 0

    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        import traceback

        traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
