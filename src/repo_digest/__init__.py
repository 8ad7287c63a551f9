"""Directory tree and file contents as a single Markdown document."""

__version__ = "1.0.0"
