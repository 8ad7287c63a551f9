from __future__ import annotations

import asyncio
import os
from pathlib import Path
from typing import TYPE_CHECKING

from repo_digest.config import Entry, EntryKind, SortMethod, SortPolicy
from repo_digest.file_manipulation import relpath
from repo_digest.filters import IgnoreRules

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Sequence

    EntryCallback = Callable[[Path, str, int, bool, "DepthOpenState"], Awaitable[None]]


class DepthOpenState:
    """Per-depth flags telling whether an ancestor at that depth has siblings left.

    One instance is shared by the whole recursion. Depths never set read as
    ``False``.
    """

    def __init__(self, flags: dict[int, bool] | None = None) -> None:
        self._flags: dict[int, bool] = dict(flags or {})

    def __getitem__(self, depth: int) -> bool:
        return self._flags.get(depth, False)

    def __setitem__(self, depth: int, is_open: bool) -> None:
        self._flags[depth] = is_open

    def __repr__(self) -> str:
        return f"DepthOpenState({self._flags!r})"

    def levels(self, depth: int) -> list[bool]:
        """Flags for every level above ``depth``.

        Args:
            depth (int): the depth of the entry being rendered

        Returns:
            list[bool]: ``[self[0], ..., self[depth - 1]]``
        """
        return [self[level] for level in range(depth)]

    def snapshot(self) -> dict[int, bool]:
        """Copy of the raw flags, for inspection."""
        return dict(self._flags)


def _scan_directory(directory: Path) -> list[tuple[str, bool]]:
    with os.scandir(directory) as it:
        return [(e.name, e.is_dir()) for e in it]


def _ignore_key(directory: Path, name: str) -> str:
    return os.path.normpath(os.path.join(directory, name)).replace("\\", "/")


def _name_key(name: str) -> tuple[str, str]:
    return (name.casefold(), name)


def _extension(name: str) -> str:
    return os.path.splitext(name)[1].lower()


async def list_entries(
    directory: Path,
    root_directory: Path,
    ignore: IgnoreRules,
    depth: int = 0,
) -> list[Entry]:
    """List the non-ignored children of ``directory``.

    Args:
        directory (Path): the directory to list
        root_directory (Path): the scan root, relative to which ``Entry.rel`` is computed
        ignore (IgnoreRules): compiled ignore patterns, matched against the directory
            joined with each child name
        depth (int): the depth assigned to the children

    Returns:
        list[Entry]: the kept children, in listing order
    """
    listing = await asyncio.to_thread(_scan_directory, directory)
    entries: list[Entry] = []
    for name, is_dir in listing:
        if ignore.matches(_ignore_key(directory, name), is_dir=is_dir):
            continue
        full = directory / name
        entries.append(
            Entry(
                path=full,
                rel=relpath(full, root_directory),
                kind=EntryKind.DIRECTORY if is_dir else EntryKind.FILE,
                depth=depth,
            ),
        )
    return entries


async def sort_entries(entries: Sequence[Entry], policy: SortPolicy | None = None) -> list[Entry]:
    """Order a directory listing, directories first.

    Directories are ordered by name. Files are ordered by the policy's method:
    ``name``; ``type`` (lower-cased extension, then name); ``size`` or
    ``modified`` (which stat every file, ties broken by name). The direction
    applies to both groups, never to the directories-first rule.

    Args:
        entries (Sequence[Entry]): the listing to order
        policy (SortPolicy | None): the sort policy, name ascending when None

    Returns:
        list[Entry]: the ordered listing
    """
    policy = policy or SortPolicy()
    dirs = sorted((e for e in entries if e.is_dir), key=lambda e: _name_key(e.name), reverse=policy.reverse)
    files = [e for e in entries if not e.is_dir]

    if policy.needs_stat:
        await asyncio.gather(*(f.stat() for f in files))

    if policy.method == SortMethod.SIZE:
        files.sort(key=lambda e: (e.size, _name_key(e.name)), reverse=policy.reverse)
    elif policy.method == SortMethod.MODIFIED:
        files.sort(key=lambda e: (e.mtime, _name_key(e.name)), reverse=policy.reverse)
    elif policy.method == SortMethod.TYPE:
        files.sort(key=lambda e: (_extension(e.name), _name_key(e.name)), reverse=policy.reverse)
    else:
        files.sort(key=lambda e: _name_key(e.name), reverse=policy.reverse)
    return dirs + files


async def traverse(  # noqa: PLR0913, PLR0917
    directory: str | Path,
    root_directory: str | Path,
    ignore_patterns: Sequence[str] | IgnoreRules,
    on_file: EntryCallback,
    on_directory: EntryCallback | None = None,
    depth: int = 0,
    open_state: DepthOpenState | None = None,
    sort_policy: SortPolicy | None = None,
) -> None:
    """Visit every non-ignored entry under ``directory``, depth-first.

    Each level is listed once, filtered and sorted before any child is
    visited. Children are visited strictly one after the other; a directory's
    callback runs before its own children are listed. While a directory's
    subtree is visited, ``open_state[depth]`` tells whether that directory has
    siblings still to come; it is reset to False once the subtree is done.

    Args:
        directory (str | Path): the directory to walk
        root_directory (str | Path): the scan root used to compute relative paths
        ignore_patterns (Sequence[str] | IgnoreRules): glob patterns; a child is skipped
            when its joined path matches any of them
        on_file (EntryCallback): awaited as ``on_file(path, rel, depth, is_last, open_state)``
        on_directory (EntryCallback | None): same signature, awaited for directories
        depth (int): depth of the children of ``directory``
        open_state (DepthOpenState | None): shared connector state, created when None
        sort_policy (SortPolicy | None): ordering of each listing

    Raises:
        OSError: if ``directory`` (or any nested directory) cannot be listed
    """
    directory = Path(directory)
    root_directory = Path(root_directory)
    ignore = IgnoreRules.from_patterns(ignore_patterns)
    if open_state is None:
        open_state = DepthOpenState()

    entries = await sort_entries(
        await list_entries(directory, root_directory, ignore, depth),
        sort_policy,
    )

    for i, entry in enumerate(entries):
        is_last = i == len(entries) - 1
        if entry.is_dir:
            if on_directory is not None:
                await on_directory(entry.path, entry.rel, depth, is_last, open_state)
            open_state[depth] = not is_last
            await traverse(
                entry.path,
                root_directory,
                ignore,
                on_file,
                on_directory,
                depth + 1,
                open_state,
                sort_policy,
            )
            open_state[depth] = False
        else:
            await on_file(entry.path, entry.rel, depth, is_last, open_state)
