from __future__ import annotations

import asyncio
from pathlib import Path
from typing import TYPE_CHECKING

import pytest

from repo_digest import output_construction
from repo_digest.config import DEFAULT_HEADER, SortMethod
from repo_digest.exceptions import FileProcessingError
from repo_digest.file_manipulation import OutputSink
from repo_digest.output_construction import build_document, build_ignore_rules, write_file_content, write_tree_view
from repo_digest.settings import Settings

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from pytest_mock import MockerFixture

    MakeTree = Callable[[Mapping[str, str | bytes | None]], Path]


def tree_section(document: str) -> list[str]:
    body = document.split("## Tree View:\n```\n", 1)[1].split("```\n\n## Content:\n", 1)[0]
    return body.splitlines()


def tree_names(lines: list[str]) -> set[str]:
    names: set[str] = set()
    for line in lines:
        for glyph in ("├─", "└─"):
            if glyph in line:
                names.add(line.split(glyph, 1)[1].rstrip("/"))
    return names


@pytest.mark.unit
def test_tree_view_connectors(make_tree: MakeTree, tmp_path: Path) -> None:
    root = make_tree({"a/x.txt": "x", "a/b/y.txt": "y", "c.txt": "c"})
    out = tmp_path / "tree.md"
    settings = Settings(directory=root, output=out)

    asyncio.run(write_tree_view(settings, OutputSink(out)))

    assert out.read_text(encoding="utf-8").splitlines() == [
        "├─a/",
        "│  ├─b/",
        "│  │  └─y.txt",
        "│  └─x.txt",
        "└─c.txt",
    ]


@pytest.mark.unit
def test_tree_view_closes_connectors_below_last_directory(make_tree: MakeTree, tmp_path: Path) -> None:
    root = make_tree({"a/f.txt": "f", "z/g.txt": "g", "z/deep/h.txt": "h"})
    out = tmp_path / "tree.md"

    asyncio.run(write_tree_view(Settings(directory=root, output=out), OutputSink(out)))

    assert out.read_text(encoding="utf-8").splitlines() == [
        "├─a/",
        "│  └─f.txt",
        "└─z/",
        "   ├─deep/",
        "   │  └─h.txt",
        "   └─g.txt",
    ]


@pytest.mark.unit
def test_write_file_content_default_format(make_tree: MakeTree, tmp_path: Path) -> None:
    root = make_tree({"index.ts": "export const x = 1;", "utils/helper.ts": "helper", "Makefile": "all: build"})
    out = tmp_path / "out.md"

    result = asyncio.run(write_file_content(Settings(directory=root, output=out)))

    assert result.included_paths == ["utils/helper.ts", "index.ts", "Makefile"]
    assert result.excluded_paths == []
    assert out.read_text(encoding="utf-8") == (
        "## utils/helper.ts\n```ts\nhelper\n```\n\n"
        "## index.ts\n```ts\nexport const x = 1;\n```\n\n"
        "## Makefile\n```\nall: build\n```\n\n"
    )


@pytest.mark.unit
def test_write_file_content_with_template(make_tree: MakeTree, tmp_path: Path) -> None:
    root = make_tree({"App.PY": "print('hi')"})
    out = tmp_path / "out.md"
    settings = Settings(
        directory=root,
        output=out,
        file_template="### {{path}} [{{extension}}]\n{{content}}\n-- {{path}}",
    )

    asyncio.run(write_file_content(settings))

    assert out.read_text(encoding="utf-8") == "### App.PY [py]\nprint('hi')\n-- App.PY\n\n"


@pytest.mark.unit
def test_size_limit_excludes_large_files(make_tree: MakeTree, tmp_path: Path) -> None:
    root = make_tree({"small.ts": "x", "large.ts": "x" * 10_000})
    out = tmp_path / "out.md"

    result = asyncio.run(write_file_content(Settings(directory=root, output=out, max_file_size=1000)))

    assert result.included_paths == ["small.ts"]
    assert result.excluded_paths == ["large.ts"]
    assert "x" * 10_000 not in out.read_text(encoding="utf-8")


@pytest.mark.unit
@pytest.mark.parametrize("allowed", ["md", ".MD", "Md"])
def test_always_include_extensions_bypass_size_limit(make_tree: MakeTree, tmp_path: Path, allowed: str) -> None:
    root = make_tree({"small.ts": "x", "large.md": "x" * 10_000, "large.ts": "x" * 10_000})
    out = tmp_path / "out.md"
    settings = Settings(directory=root, output=out, max_file_size=1000, always_include_extensions=[allowed])

    result = asyncio.run(write_file_content(settings))

    assert result.included_paths == ["large.md", "small.ts"]
    assert result.excluded_paths == ["large.ts"]


@pytest.mark.unit
def test_path_lists_are_written(make_tree: MakeTree, tmp_path: Path) -> None:
    root = make_tree({"a.ts": "a", "b.ts": "b" * 50})
    included = tmp_path / "lists" / "included.txt"
    excluded = tmp_path / "lists" / "excluded.txt"
    settings = Settings(
        directory=root,
        output=tmp_path / "out.md",
        max_file_size=10,
        included_paths_file=included,
        excluded_paths_file=excluded,
    )

    asyncio.run(write_file_content(settings))

    assert included.read_text(encoding="utf-8") == "a.ts"
    assert excluded.read_text(encoding="utf-8") == "b.ts"


@pytest.mark.unit
def test_included_and_excluded_partition_all_files(make_tree: MakeTree, tmp_path: Path) -> None:
    root = make_tree(
        {
            "a.ts": "a",
            "big.bin": "b" * 2000,
            "docs/readme.md": "r" * 2000,
            "docs/notes.txt": "n",
            "skip.log": "l",
            "src/deep/mod.py": "m" * 3000,
        },
    )
    settings = Settings(
        directory=root,
        output=tmp_path / "out.md",
        ignore=["**/*.log"],
        max_file_size=1000,
        always_include_extensions=["md"],
    )

    result = asyncio.run(write_file_content(settings))

    all_files = {"a.ts", "big.bin", "docs/readme.md", "docs/notes.txt", "src/deep/mod.py"}
    assert set(result.included_paths).isdisjoint(result.excluded_paths)
    assert set(result.included_paths) | set(result.excluded_paths) == all_files
    assert len(result.included_paths) + len(result.excluded_paths) == len(all_files)


@pytest.mark.unit
def test_dotfiles_included_unless_ignored(make_tree: MakeTree, tmp_path: Path) -> None:
    root = make_tree({".env": "SECRET=value", ".gitignore": "node_modules/", "visible.ts": "visible"})
    out = tmp_path / "out.md"

    kept = asyncio.run(write_file_content(Settings(directory=root, output=out)))
    dropped = asyncio.run(write_file_content(Settings(directory=root, output=out, ignore=["**/.*"])))

    assert kept.included_paths == [".env", ".gitignore", "visible.ts"]
    assert dropped.included_paths == ["visible.ts"]


@pytest.mark.unit
def test_unreadable_file_aborts_scan(make_tree: MakeTree, tmp_path: Path, mocker: MockerFixture) -> None:
    root = make_tree({"a.ts": "a"})
    mocker.patch.object(output_construction, "read_text", side_effect=PermissionError("denied"))

    with pytest.raises(FileProcessingError) as exc_info:
        asyncio.run(write_file_content(Settings(directory=root, output=tmp_path / "out.md")))

    assert exc_info.value.file == root / "a.ts"
    assert isinstance(exc_info.value.__cause__, PermissionError)


@pytest.mark.unit
def test_build_ignore_rules_adds_written_files_under_root(tmp_path: Path) -> None:
    root = tmp_path / "root"
    root.mkdir()
    settings = Settings(
        directory=root,
        output=root / "digest.md",
        included_paths_file=tmp_path / "outside.txt",
        excluded_paths_file=root / "lists" / "excluded.txt",
    )

    rules = build_ignore_rules(settings)

    assert rules.matches(f"{root.as_posix()}/digest.md")
    assert rules.matches(f"{root.as_posix()}/lists/excluded.txt")
    assert not rules.matches(f"{tmp_path.as_posix()}/outside.txt")


@pytest.mark.unit
def test_build_document_layout(make_tree: MakeTree) -> None:
    root = make_tree({"src/index.ts": "main", "README.md": "# hi"})
    out = root / "digest.md"

    result = build_document(Settings(directory=root, output=out))

    document = out.read_text(encoding="utf-8")
    assert document.startswith(DEFAULT_HEADER + "## Tree View:\n```\n")
    assert tree_section(document) == ["├─src/", "│  └─index.ts", "└─README.md"]
    assert document.index("## src/index.ts") < document.index("## README.md")
    assert result.included_paths == ["src/index.ts", "README.md"]


@pytest.mark.unit
def test_build_document_custom_header_and_sort(make_tree: MakeTree, tmp_path: Path) -> None:
    root = make_tree({"script.ts": "ts", "style.css": "css", "data.json": "{}"})
    out = tmp_path / "out.md"

    result = build_document(Settings(directory=root, output=out, header="# Custom\n\n", sort=SortMethod.TYPE))

    document = out.read_text(encoding="utf-8")
    assert document.startswith("# Custom\n\n## Tree View:")
    assert tree_section(document) == ["├─style.css", "├─data.json", "└─script.ts"]
    assert result.included_paths == ["style.css", "data.json", "script.ts"]


@pytest.mark.unit
def test_tree_lists_entries_regardless_of_size(make_tree: MakeTree, tmp_path: Path) -> None:
    root = make_tree({"keep.ts": "k", "huge.ts": "h" * 5000, "lib/big.py": "b" * 5000, "empty": None})
    out = tmp_path / "out.md"

    result = build_document(Settings(directory=root, output=out, max_file_size=100))

    names = tree_names(tree_section(out.read_text(encoding="utf-8")))
    paths = set(result.included_paths) | set(result.excluded_paths)
    ancestors = {part for p in paths for part in Path(p).parts[:-1]}
    assert names == {Path(p).name for p in paths} | ancestors | {"empty"}
    assert result.excluded_paths == ["lib/big.py", "huge.ts"]


@pytest.mark.unit
def test_escaped_ignore_pattern_hides_literal_file_name(make_tree: MakeTree, tmp_path: Path) -> None:
    root = make_tree({"file[1].txt": "bracketed", "file1.txt": "plain", "lib/file[1].txt": "nested"})
    settings = Settings(directory=root, output=tmp_path / "out.md", ignore=["**/file\\[1\\].txt"])

    result = build_document(settings)

    assert result.included_paths == ["file1.txt"]
    assert tree_section((tmp_path / "out.md").read_text(encoding="utf-8")) == ["├─lib/", "└─file1.txt"]
