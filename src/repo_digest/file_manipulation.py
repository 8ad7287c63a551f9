from __future__ import annotations

import asyncio
import os
import re
from pathlib import Path
from typing import TYPE_CHECKING

from repo_digest.config import (
    BLANK_INDENT,
    BRANCH,
    CONTENT_PLACEHOLDER,
    EXTENSION_PLACEHOLDER,
    LAST_BRANCH,
    PATH_PLACEHOLDER,
    PIPE_INDENT,
)

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

_PLACEHOLDER = re.compile(
    "|".join(re.escape(p) for p in (PATH_PLACEHOLDER, EXTENSION_PLACEHOLDER, CONTENT_PLACEHOLDER)),
)


def relpath(path: Path, root: Path) -> str:
    """Send the relative path of path from root.

    Args:
        path (Path): the path to "relativise"
        root (Path): the root to relativise from

    Returns:
        str: the relative path from root to path, with POSIX separators
    """
    return os.path.relpath(path, root).replace("\\", "/")


def file_extension(path: Path | str) -> str:
    """Lower-cased extension of a file name, without its dot.

    Names made only of a leading dot and a stem (``.env``) have no extension.

    Args:
        path (Path | str): the file path

    Returns:
        str: the extension, or an empty string if there is none
    """
    return os.path.splitext(os.path.basename(path))[1][1:].lower()


def normalize_extensions(extensions: Iterable[str]) -> set[str]:
    """Lower-case extensions and strip a leading dot.

    Args:
        extensions (Iterable[str]): extensions such as ``"MD"`` or ``".json"``

    Returns:
        set[str]: the normalized extensions
    """
    return {e.strip().lower().removeprefix(".") for e in extensions if e and e.strip()}


def is_too_big(size: int, max_file_size: int | None) -> bool:
    """Whether a file size exceeds the configured limit (None means no limit)."""
    if max_file_size is None:
        return False
    return size > max_file_size


def build_indent(levels: Sequence[bool]) -> str:
    """Build the connector prefix for a tree line.

    Args:
        levels (Sequence[bool]): for each ancestor depth, whether it still has siblings to render

    Returns:
        str: one continuation bar or blank segment per level
    """
    return "".join(PIPE_INDENT if is_open else BLANK_INDENT for is_open in levels)


def tree_line(name: str, levels: Sequence[bool], *, is_last: bool, is_dir: bool) -> str:
    """Render one line of the tree view.

    Args:
        name (str): base name of the entry
        levels (Sequence[bool]): open flags of the levels above the entry
        is_last (bool): whether the entry is the last of its siblings
        is_dir (bool): whether the entry is a directory (rendered with a trailing ``/``)

    Returns:
        str: the line, newline-terminated
    """
    branch = LAST_BRANCH if is_last else BRANCH
    suffix = "/" if is_dir else ""
    return f"{build_indent(levels)}{branch}{name}{suffix}\n"


def render_template(template: str, *, path: str, extension: str, content: str) -> str:
    """Substitute every placeholder of a file template in a single pass.

    Substituted values are never scanned again, so a file whose content
    contains ``{{path}}`` is emitted verbatim.

    Args:
        template (str): the template text
        path (str): value for ``{{path}}``
        extension (str): value for ``{{extension}}``
        content (str): value for ``{{content}}``

    Returns:
        str: the rendered text
    """
    values = {
        PATH_PLACEHOLDER: path,
        EXTENSION_PLACEHOLDER: extension,
        CONTENT_PLACEHOLDER: content,
    }
    return _PLACEHOLDER.sub(lambda m: values[m.group(0)], template)


def default_section_heading(rel: str) -> str:
    """Markdown heading naming a file by its relative path."""
    return f"## {rel}\n"


def default_section_body(extension: str, content: str) -> str:
    """Fenced code block tagged with the file extension, followed by a blank line."""
    return f"```{extension}\n{content}\n```\n\n"


def _append(path: Path, data: str) -> None:
    parent = path.parent
    if str(parent) not in {"", "."}:
        parent.mkdir(parents=True, exist_ok=True)
    with path.open("a", encoding="utf-8") as f:
        f.write(data)


def _overwrite(path: Path, data: str) -> None:
    parent = path.parent
    if str(parent) not in {"", "."}:
        parent.mkdir(parents=True, exist_ok=True)
    path.write_text(data, encoding="utf-8")


async def append_to_file(path: Path, data: str) -> None:
    """Append text to a file, creating missing parent directories."""
    await asyncio.to_thread(_append, path, data)


async def write_text(path: Path, data: str) -> None:
    """Overwrite a file with text, creating missing parent directories."""
    await asyncio.to_thread(_overwrite, path, data)


async def read_text(path: Path) -> str:
    """Read a whole file as UTF-8 text, replacing undecodable bytes.

    Args:
        path (Path): the file to read

    Returns:
        str: the file content
    """
    return await asyncio.to_thread(path.read_text, encoding="utf-8", errors="replace")


async def file_size(path: Path) -> int:
    """Size of a file in bytes."""
    st = await asyncio.to_thread(path.stat)
    return st.st_size


async def write_paths_file(path: Path, paths: Sequence[str]) -> None:
    """Persist a list of relative paths, one per line (overwrite)."""
    await write_text(path, "\n".join(paths))


class OutputSink:
    """Append-only text sink backed by a file.

    Appends are serialized so that concurrent writers keep document order.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self._lock = asyncio.Lock()

    async def reset(self, data: str = "") -> None:
        """Truncate the file and write ``data``."""
        async with self._lock:
            await write_text(self.path, data)

    async def write(self, data: str) -> None:
        """Append ``data`` to the file."""
        async with self._lock:
            await append_to_file(self.path, data)
