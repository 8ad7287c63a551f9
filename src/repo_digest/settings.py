from __future__ import annotations

from pathlib import Path

from dotenv import find_dotenv
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from repo_digest.config import DEFAULT_IGNORE, DEFAULT_OUTPUT, SortDirection, SortMethod, SortPolicy
from repo_digest.exceptions import InvalidIgnorePatternError
from repo_digest.filters import IgnoreRules, normalize_globs

ENV_FILE = find_dotenv(usecwd=True)


class Settings(BaseModel):
    """Resolved options for one scan.

    Keys are accepted in snake_case or camelCase, so config files written for
    either convention load unchanged.
    """

    model_config = ConfigDict(
        arbitrary_types_allowed=True,
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )

    directory: Path = Field(default=Path("."), alias="dir", description="Directory to scan.")
    output: Path = Field(default=Path(DEFAULT_OUTPUT), description="Output Markdown file.")
    ignore: list[str] = Field(default_factory=lambda: list(DEFAULT_IGNORE), description="Ignore globs.")
    included_paths_file: Path | None = Field(default=None, description="File listing included paths.")
    excluded_paths_file: Path | None = Field(default=None, description="File listing excluded paths.")
    header: str | None = Field(default=None, description="Literal text written before the tree view.")
    max_file_size: int | None = Field(default=None, ge=0, description="Files above are excluded (bytes).")
    always_include_extensions: list[str] = Field(
        default_factory=list,
        description="Extensions exempt from the size limit.",
    )
    file_template: str | None = Field(default=None, description="Template for each file section.")
    sort: SortMethod = Field(default=SortMethod.NAME, description="Sort method for files.")
    sort_direction: SortDirection = Field(default=SortDirection.ASC, description="Sort direction.")
    log_file: str = Field(default="", description="Log file path.")

    @field_validator("ignore", mode="after")
    @classmethod
    def _validate_ignore(cls, value: list[str]) -> list[str]:
        patterns = normalize_globs(value)
        try:
            IgnoreRules.from_patterns(patterns)
        except InvalidIgnorePatternError as e:
            raise ValueError(str(e)) from e
        return patterns

    @field_validator("sort", "sort_direction", mode="before")
    @classmethod
    def _lower_enum(cls, value: object) -> object:
        return value.strip().lower() if isinstance(value, str) else value

    @property
    def sort_policy(self) -> SortPolicy:
        """Sort method and direction as a traversal policy."""
        return SortPolicy(method=self.sort, direction=self.sort_direction)

    @property
    def ignore_rules(self) -> IgnoreRules:
        """Compiled ignore patterns."""
        return IgnoreRules.from_patterns(self.ignore)
