from __future__ import annotations

import asyncio
import os
from typing import TYPE_CHECKING

from repo_digest.config import DEFAULT_HEADER, TREE_VIEW_CLOSE, TREE_VIEW_OPEN, ScanResult
from repo_digest.exceptions import FileProcessingError
from repo_digest.file_manipulation import (
    OutputSink,
    default_section_body,
    default_section_heading,
    file_extension,
    file_size,
    is_too_big,
    normalize_extensions,
    read_text,
    render_template,
    tree_line,
    write_paths_file,
)
from repo_digest.filters import IgnoreRules, escape_pattern
from repo_digest.logging import logger
from repo_digest.traversal import DepthOpenState, traverse

if TYPE_CHECKING:
    from pathlib import Path

    from repo_digest.settings import Settings


def build_ignore_rules(settings: Settings) -> IgnoreRules:
    """Compile the ignore patterns of a run, adding the files the run writes.

    The output document and the path lists are ignored whenever they live
    under the scanned directory, so a scan never reads its own output.

    Args:
        settings (Settings): the run settings

    Returns:
        IgnoreRules: the configured patterns plus one literal pattern per written file
    """
    root = settings.directory
    root_resolved = root.resolve()
    extra: list[str] = []
    for sink in (settings.output, settings.included_paths_file, settings.excluded_paths_file):
        if sink is None:
            continue
        try:
            rel = sink.resolve().relative_to(root_resolved)
        except ValueError:
            continue
        joined = os.path.normpath(os.path.join(root, rel)).replace("\\", "/")
        extra.append(escape_pattern(joined))
    return settings.ignore_rules.extend(extra)


async def write_tree_view(
    settings: Settings,
    sink: OutputSink,
    ignore: IgnoreRules | None = None,
) -> None:
    """Append one connector line per non-ignored entry to ``sink``.

    The tree lists every entry the traversal visits, whatever its size.

    Args:
        settings (Settings): the run settings
        sink (OutputSink): where lines are appended
        ignore (IgnoreRules | None): compiled ignore rules, built from ``settings`` when None
    """

    async def on_file(path: Path, _rel: str, depth: int, is_last: bool, open_state: DepthOpenState) -> None:
        await sink.write(tree_line(path.name, open_state.levels(depth), is_last=is_last, is_dir=False))

    async def on_directory(path: Path, _rel: str, depth: int, is_last: bool, open_state: DepthOpenState) -> None:
        await sink.write(tree_line(path.name, open_state.levels(depth), is_last=is_last, is_dir=True))

    await traverse(
        settings.directory,
        settings.directory,
        ignore or build_ignore_rules(settings),
        on_file,
        on_directory,
        0,
        DepthOpenState(),
        settings.sort_policy,
    )


async def write_file_content(
    settings: Settings,
    sink: OutputSink | None = None,
    ignore: IgnoreRules | None = None,
) -> ScanResult:
    """Append the content of every included file to the output.

    Files larger than ``max_file_size`` are recorded as excluded unless their
    extension is listed in ``always_include_extensions``. Each included file is
    emitted through ``file_template`` when set, or as a ``## <path>`` heading
    followed by a fenced block tagged with the extension. The included and
    excluded path lists are written to their sinks once the scan is done.

    Args:
        settings (Settings): the run settings
        sink (OutputSink | None): where sections are appended, ``settings.output`` when None
        ignore (IgnoreRules | None): compiled ignore rules, built from ``settings`` when None

    Raises:
        FileProcessingError: if a file cannot be stat'ed or read

    Returns:
        ScanResult: included and excluded relative paths, in traversal order
    """
    sink = sink or OutputSink(settings.output)
    result = ScanResult()
    always_include = normalize_extensions(settings.always_include_extensions)

    async def on_file(path: Path, rel: str, _depth: int, _is_last: bool, _open_state: DepthOpenState) -> None:
        extension = file_extension(path)
        try:
            if settings.max_file_size is not None:
                size = await file_size(path)
                if is_too_big(size, settings.max_file_size) and extension not in always_include:
                    result.excluded_paths.append(rel)
                    logger.info("file_excluded", path=rel, size=size, max_file_size=settings.max_file_size)
                    return
            result.included_paths.append(rel)
            content = await read_text(path)
        except OSError as e:
            raise FileProcessingError(file=path, reason=str(e)) from e

        if settings.file_template:
            text = render_template(settings.file_template, path=rel, extension=extension, content=content)
            await sink.write(text + "\n\n")
        else:
            await sink.write(default_section_heading(rel))
            await sink.write(default_section_body(extension, content))

    await traverse(
        settings.directory,
        settings.directory,
        ignore or build_ignore_rules(settings),
        on_file,
        None,
        0,
        DepthOpenState(),
        settings.sort_policy,
    )

    if settings.included_paths_file:
        await write_paths_file(settings.included_paths_file, result.included_paths)
    if settings.excluded_paths_file:
        await write_paths_file(settings.excluded_paths_file, result.excluded_paths)
    return result


async def render(settings: Settings) -> ScanResult:
    """Write the whole document: header, tree view, then file contents.

    Args:
        settings (Settings): the run settings

    Raises:
        OSError: if the scanned directory cannot be listed
        FileProcessingError: if a file cannot be read

    Returns:
        ScanResult: included and excluded relative paths
    """
    logger.info(
        "scan_started",
        directory=str(settings.directory),
        output=str(settings.output),
        ignore=settings.ignore,
        sort=str(settings.sort),
        sort_direction=str(settings.sort_direction),
    )
    ignore = build_ignore_rules(settings)
    sink = OutputSink(settings.output)
    header = settings.header if settings.header is not None else DEFAULT_HEADER
    await sink.reset(header + TREE_VIEW_OPEN)
    await write_tree_view(settings, sink, ignore)
    await sink.write(TREE_VIEW_CLOSE)
    result = await write_file_content(settings, sink, ignore)
    logger.info(
        "scan_finished",
        output=str(settings.output),
        included=len(result.included_paths),
        excluded=len(result.excluded_paths),
    )
    return result


def build_document(settings: Settings) -> ScanResult:
    """Run :func:`render` on a fresh event loop."""
    return asyncio.run(render(settings))
