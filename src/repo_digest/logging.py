from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from pathlib import Path

_LOGGING_CONFIGURED = False
_FILE_HANDLER: logging.FileHandler | None = None


def setup_logging(filename: str | Path | None = None) -> structlog.BoundLogger:
    """Set up structured logging for the repo_digest package.

    The structlog pipeline is configured once. A later call with a ``filename``
    redirects the stdlib root handlers to that file, so the CLI can honour
    ``--log-file`` after the module-level logger already exists.

    Args:
        filename: Optional path to a log file. If None, logs are written to stderr.

    Returns:
        A structlog logger instance configured for the repo_digest package.
    """
    global _LOGGING_CONFIGURED, _FILE_HANDLER  # noqa: PLW0603
    if not _LOGGING_CONFIGURED:
        logging.basicConfig(
            level=logging.INFO,
            handlers=[logging.StreamHandler(sys.stderr)],
            format="%(message)s",
        )
        structlog.configure(
            processors=[
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.processors.add_log_level,
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.processors.JSONRenderer(),
            ],
            wrapper_class=structlog.make_filtering_bound_logger(logging.INFO),
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            cache_logger_on_first_use=True,
        )
        _LOGGING_CONFIGURED = True

    if filename and _FILE_HANDLER is None:
        root = logging.getLogger()
        for handler in list(root.handlers):
            root.removeHandler(handler)
        _FILE_HANDLER = logging.FileHandler(str(filename), encoding="utf-8")
        root.addHandler(_FILE_HANDLER)

    return structlog.get_logger("repo_digest")


logger = setup_logging()
