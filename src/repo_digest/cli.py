"""repo-digest: dump a directory as one Markdown document.

The document holds an ASCII tree of every non-ignored entry followed by the
content of every included file, in the same order.

Usage
-----
Run `python -m repo_digest.cli --help` for full options. Common examples:
    - Scan ./src into docs.md:
        repo-digest --dir ./src --output docs.md

    - Ignore logs and dependencies:
        repo-digest --ignore "**/*.log,**/node_modules/**"

    - Skip files above 1 MiB except Markdown, sorted by size:
        repo-digest --max-file-size 1048576 --always-include md --sort size
"""

from __future__ import annotations

import argparse
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from repo_digest import __version__
from repo_digest.config import SortDirection, SortMethod
from repo_digest.config_files import resolve_settings
from repo_digest.exceptions import RepoDigestError
from repo_digest.logging import logger, setup_logging
from repo_digest.output_construction import build_document

if TYPE_CHECKING:
    from collections.abc import Sequence

    from repo_digest.settings import Settings


class _CommaListAction(argparse.Action):
    """Split comma-separated values, accumulating across repeated flags."""

    def __call__(
        self,
        parser: argparse.ArgumentParser,  # noqa: ARG002
        namespace: argparse.Namespace,
        values: str | Sequence[Any] | None,
        option_string: str | None = None,  # noqa: ARG002
    ) -> None:
        current = list(getattr(namespace, self.dest) or [])
        current.extend(v.strip() for v in str(values).split(",") if v.strip())
        setattr(namespace, self.dest, current)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="repo-digest",
        description="Generate a Markdown document with the tree view and file contents of a directory.",
    )
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    p.add_argument("--dir", dest="directory", type=str, default=None, help='Directory to scan (default: ".").')
    p.add_argument("--output", type=str, default=None, help='Output file (default: "digest.md").')
    p.add_argument(
        "--ignore",
        action=_CommaListAction,
        default=None,
        help='Comma-separated ignore globs (repeatable, default: "**/.git").',
    )
    p.add_argument("--included-paths-file", type=str, default=None, help="File to save included paths.")
    p.add_argument("--excluded-paths-file", type=str, default=None, help="File to save excluded paths.")
    p.add_argument("--config", type=str, default=None, help="Path to a JSON or YAML config file.")
    p.add_argument(
        "--max-file-size",
        type=int,
        default=None,
        help="Maximum file size to include, in bytes (default: no limit).",
    )
    p.add_argument(
        "--always-include",
        dest="always_include_extensions",
        action=_CommaListAction,
        default=None,
        help="Comma-separated extensions exempt from --max-file-size (repeatable).",
    )
    p.add_argument("--header", type=str, default=None, help="Literal header written before the tree view.")
    p.add_argument(
        "--file-template",
        type=str,
        default=None,
        help="Template for file sections, with {{path}}, {{extension}} and {{content}} placeholders.",
    )
    p.add_argument(
        "--sort",
        type=str,
        choices=[m.value for m in SortMethod],
        default=None,
        help="Sort method (default: name).",
    )
    p.add_argument(
        "--sort-direction",
        type=str,
        choices=[d.value for d in SortDirection],
        default=None,
        help="Sort direction (default: asc).",
    )
    p.add_argument("--log-file", type=str, default=None, help="Log file path.")
    return p


def parse_args(argv: Sequence[str] | None = None) -> Settings:
    """Parse command-line arguments into settings.

    Config files and ``.env`` defaults are merged underneath the arguments.

    Args:
        argv (Sequence[str] | None): the arguments, ``sys.argv[1:]`` when None

    Returns:
        Settings: the resolved settings
    """
    args = vars(build_parser().parse_args(argv))
    config_path = args.pop("config")
    return resolve_settings(args, config_path)


def main(argv: Sequence[str] | None = None) -> int:
    try:
        settings = parse_args(argv)
    except (RepoDigestError, ValidationError) as e:
        logger.error("configuration_error", error=str(e))
        print(f"Configuration error: {e}")
        return 1

    if settings.log_file:
        setup_logging(settings.log_file)

    print(f"Scanning directory: {settings.directory}")
    print(f"Output file: {settings.output}")
    if settings.ignore:
        print(f"Ignore patterns: {', '.join(settings.ignore)}")

    try:
        result = build_document(settings)
    except (RepoDigestError, OSError) as e:
        logger.exception("scan_failed", error=str(e))
        print(f"Error: {e}")
        return 1

    print(f"Wrote {settings.output} included={len(result.included_paths)} excluded={len(result.excluded_paths)}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
