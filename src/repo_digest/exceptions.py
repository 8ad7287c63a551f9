from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class RepoDigestError(Exception):
    """Base exception for errors in the repo_digest package."""

    def __str__(self) -> str:
        return getattr(self, "message", self.__class__.__doc__ or "")


@dataclass(frozen=True)
class InvalidIgnorePatternError(RepoDigestError):
    """Raised when an ignore pattern cannot be compiled."""

    pattern: str
    reason: str

    @property
    def message(self) -> str:
        return f"Invalid ignore pattern {self.pattern!r}: {self.reason}"


@dataclass(frozen=True)
class ConfigFileNotFoundError(RepoDigestError):
    """Raised when an explicitly requested config file does not exist."""

    file: Path

    @property
    def message(self) -> str:
        return f"Config file not found: {self.file}"


@dataclass(frozen=True)
class ConfigLoadError(RepoDigestError):
    """Raised when a config file exists but cannot be parsed."""

    file: Path
    reason: str

    @property
    def message(self) -> str:
        return f"Failed to load config from {self.file}: {self.reason}"


@dataclass(frozen=True)
class FileProcessingError(RepoDigestError):
    """Raised when a file cannot be read during the content pass."""

    file: Path
    reason: str

    @property
    def message(self) -> str:
        return f"Failed to process {self.file}: {self.reason}"
