from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping
    from pathlib import Path


@pytest.fixture
def make_tree(tmp_path: Path) -> Callable[[Mapping[str, str | bytes | None]], Path]:
    """Create files (or empty directories, for None values) under ``tmp_path / "root"``.

    Returns:
        Callable: a builder returning the created root directory.
    """

    def build(layout: Mapping[str, str | bytes | None]) -> Path:
        root = tmp_path / "root"
        root.mkdir(exist_ok=True)
        for rel, content in layout.items():
            target = root / rel
            if content is None:
                target.mkdir(parents=True, exist_ok=True)
                continue
            target.parent.mkdir(parents=True, exist_ok=True)
            if isinstance(content, bytes):
                target.write_bytes(content)
            else:
                target.write_text(content, encoding="utf-8")
        return root

    return build
