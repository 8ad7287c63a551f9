from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import bracex
from pathspec import PathSpec
from pathspec.patterns.gitwildmatch import GitWildMatchPattern, GitWildMatchPatternError

from repo_digest.exceptions import InvalidIgnorePatternError

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

# a backslash followed by one of these is an escape, not a Windows separator
_SEPARATOR_BACKSLASH = re.compile(r"\\(?![*?\[\]{}!#,\\])")
_BRACES = re.compile(r"([{},])")


def normalize_globs(globs: Sequence[str]) -> list[str]:
    """Normalize a sequence of path glob patterns.

    Strip whitespace, drop empty patterns and turn Windows separators into
    forward slashes. A backslash that escapes a glob metacharacter is kept.

    Args:
        globs (Sequence[str]): the glob patterns to normalize

    Returns:
        list[str]: the normalized glob patterns
    """
    out: list[str] = []
    for g in globs:
        g2 = (g or "").strip()
        if not g2:
            continue
        out.append(_SEPARATOR_BACKSLASH.sub("/", g2))
    return out


def escape_pattern(path: str) -> str:
    """Escape every glob metacharacter so that ``path`` matches only itself.

    Args:
        path (str): a literal POSIX path

    Returns:
        str: a pattern matching exactly ``path``
    """
    return _BRACES.sub(r"\\\1", GitWildMatchPattern.escape(path))


def expand_braces(pattern: str) -> list[str]:
    """Expand ``{a,b}`` alternations and ``{1..3}`` ranges, keeping escapes.

    Args:
        pattern (str): a glob pattern

    Raises:
        InvalidIgnorePatternError: if the expansion grows past the bracex limit

    Returns:
        list[str]: every pattern obtained by expanding the groups, left to right
    """
    try:
        return bracex.expand(pattern, keep_escapes=True)
    except bracex.ExpansionLimitException as e:
        raise InvalidIgnorePatternError(pattern=pattern, reason=str(e)) from e


def _anchor(pattern: str) -> str:
    # a rooted gitwildmatch line matches from the start of the path, like a shell glob
    return pattern if pattern.startswith("/") else f"/{pattern}"


@dataclass(frozen=True)
class GlobMatcher:
    """One ignore glob compiled to a :class:`PathSpec`."""

    pattern: str
    spec: PathSpec | None = None
    negate: bool = False

    def matches(self, path: str) -> bool:
        """Check whether a POSIX path matches the pattern.

        Comments never match. A negated pattern matches every path its body does not.
        """
        if self.spec is None:
            return False
        return self.spec.match_file(path) != self.negate


def compile_pattern(pattern: str) -> GlobMatcher:
    """Compile a glob pattern, failing fast when it is malformed.

    Args:
        pattern (str): the glob pattern to compile

    Raises:
        InvalidIgnorePatternError: if the pattern is empty after ``!`` or
            pathspec rejects it

    Returns:
        GlobMatcher: the compiled matcher
    """
    if pattern.startswith("#"):
        return GlobMatcher(pattern=pattern)
    body = pattern.lstrip("!")
    negate = (len(pattern) - len(body)) % 2 == 1
    if not body:
        raise InvalidIgnorePatternError(pattern=pattern, reason="empty pattern")
    try:
        spec = PathSpec.from_lines(GitWildMatchPattern, [_anchor(p) for p in expand_braces(body)])
    except (GitWildMatchPatternError, re.error) as e:
        raise InvalidIgnorePatternError(pattern=pattern, reason=str(e)) from e
    return GlobMatcher(pattern=pattern, spec=spec, negate=negate)


@dataclass(frozen=True)
class IgnoreRules:
    """Ordered glob patterns; a path is ignored when any of them matches."""

    matchers: tuple[GlobMatcher, ...] = field(default_factory=tuple)

    @classmethod
    def from_patterns(cls, patterns: Iterable[str] | IgnoreRules) -> IgnoreRules:
        """Normalize and compile a sequence of patterns.

        Args:
            patterns (Iterable[str] | IgnoreRules): raw patterns, or already compiled rules

        Returns:
            IgnoreRules: the compiled rule set
        """
        if isinstance(patterns, IgnoreRules):
            return patterns
        return cls(matchers=tuple(compile_pattern(p) for p in normalize_globs(list(patterns))))

    @property
    def patterns(self) -> list[str]:
        """The source patterns, in order."""
        return [m.pattern for m in self.matchers]

    def extend(self, patterns: Iterable[str]) -> IgnoreRules:
        """Return a new rule set with ``patterns`` appended, compiled verbatim."""
        return IgnoreRules(matchers=self.matchers + tuple(compile_pattern(p) for p in patterns))

    def matches(self, path: str, *, is_dir: bool = False) -> bool:
        """Check whether a path is ignored.

        The literal path ``.`` is always ignored. A directory is also tested
        with a trailing ``/``, so ``dist/`` and ``dist/**`` hide ``dist`` itself.

        Args:
            path (str): the path to test
            is_dir (bool): whether ``path`` names a directory

        Returns:
            bool: True if the path is ``.`` or matches any pattern
        """
        posix = path.replace("\\", "/")
        if posix == ".":
            return True
        candidates = (posix, posix.rstrip("/") + "/") if is_dir else (posix,)
        return any(m.matches(c) for m in self.matchers for c in candidates)


def should_ignore(path: str, patterns: Sequence[str] | IgnoreRules, *, is_dir: bool = False) -> bool:
    """Check whether ``path`` is excluded by ``patterns``.

    Args:
        path (str): the path to test
        patterns (Sequence[str] | IgnoreRules): glob patterns or a compiled rule set
        is_dir (bool): whether ``path`` names a directory

    Returns:
        bool: True if the path must be skipped
    """
    return IgnoreRules.from_patterns(patterns).matches(path, is_dir=is_dir)
