from __future__ import annotations

import asyncio
from enum import StrEnum, auto
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr


class SortMethod(StrEnum):
    """Key used to order files within one directory listing."""

    NAME = auto()
    SIZE = auto()
    MODIFIED = auto()
    TYPE = auto()


class SortDirection(StrEnum):
    """Direction applied to the chosen sort method."""

    ASC = auto()
    DESC = auto()


class EntryKind(StrEnum):
    """Discriminator between the two kinds of visited filesystem nodes."""

    FILE = auto()
    DIRECTORY = auto()


DEFAULT_OUTPUT = "digest.md"
DEFAULT_IGNORE: tuple[str, ...] = ("**/.git",)
DEFAULT_HEADER = "# Repo Digest\n\nGenerated with repo-digest\n\n"

TREE_VIEW_OPEN = "## Tree View:\n```\n"
TREE_VIEW_CLOSE = "```\n\n## Content:\n"

BRANCH = "├─"
LAST_BRANCH = "└─"
PIPE_INDENT = "│  "
BLANK_INDENT = "   "

PATH_PLACEHOLDER = "{{path}}"
EXTENSION_PLACEHOLDER = "{{extension}}"
CONTENT_PLACEHOLDER = "{{content}}"

CONFIG_FILES: tuple[str, ...] = (
    ".repo-digest.json",
    ".repo-digestrc",
    ".repo-digestrc.json",
    "repo-digest.config.json",
    ".repo-digest.yaml",
    ".repo-digest.yml",
)
PYPROJECT_TOOL_KEY = "repo-digest"
ENV_CONFIG_VAR = "REPO_DIGEST_CONFIG"
ENV_LOG_FILE_VAR = "REPO_DIGEST_LOG_FILE"


class SortPolicy(BaseModel):
    """Ordering applied to every directory listing during traversal."""

    model_config = ConfigDict(frozen=True)

    method: SortMethod = Field(default=SortMethod.NAME, description="Sort key for files")
    direction: SortDirection = Field(default=SortDirection.ASC, description="Sort direction")

    @property
    def reverse(self) -> bool:
        """Whether the listing is sorted in descending order."""
        return self.direction == SortDirection.DESC

    @property
    def needs_stat(self) -> bool:
        """Whether ordering requires per-file metadata."""
        return self.method in {SortMethod.SIZE, SortMethod.MODIFIED}


class Entry(BaseModel):
    """One filesystem node found in a directory listing.

    Attributes:
        path: Path of the node as reached from the scan directory.
        rel: Path relative to the scan root, with POSIX separators.
        kind: Whether the node is a file or a directory.
        depth: Nesting level, the scan root's children being at depth 0.

    Size and modification time are fetched on first use by :meth:`stat` and
    cached for the lifetime of the entry.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    path: Path = Field(..., description="Path joined from the scanned directory")
    rel: str = Field(..., description="Path relative to the scan root")
    kind: EntryKind = Field(..., description="File or directory")
    depth: int = Field(default=0, ge=0, description="Nesting level below the scan root")

    _size: int | None = PrivateAttr(default=None)
    _mtime: float | None = PrivateAttr(default=None)

    @property
    def name(self) -> str:
        """Base name of the entry."""
        return self.path.name

    @property
    def is_dir(self) -> bool:
        """Whether the entry is a directory."""
        return self.kind == EntryKind.DIRECTORY

    @property
    def size(self) -> int | None:
        """Cached byte size, or None when not fetched yet."""
        return self._size

    @property
    def mtime(self) -> float | None:
        """Cached POSIX modification time, or None when not fetched yet."""
        return self._mtime

    async def stat(self) -> tuple[int, float]:
        """Fetch and cache size and modification time.

        Returns:
            tuple[int, float]: the byte size and the POSIX mtime of the entry
        """
        if self._size is None or self._mtime is None:
            st = await asyncio.to_thread(self.path.stat)
            self._size = st.st_size
            self._mtime = st.st_mtime
        return self._size, self._mtime


class ScanResult(BaseModel):
    """Relative paths accumulated by one content pass."""

    included_paths: list[str] = Field(default_factory=list, description="Files whose content was emitted")
    excluded_paths: list[str] = Field(default_factory=list, description="Files skipped by the size limit")
