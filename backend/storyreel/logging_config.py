"""Logging setup for CLI entry points.

Library modules only call ``logging.getLogger(__name__)``; handlers are
installed here once, by whichever entry point runs the pipeline.
"""

import logging
from pathlib import Path
from typing import Optional, Union

from rich.logging import RichHandler

LOG_FORMAT = "[%(asctime)s] %(levelname)s %(name)s: %(message)s"

# Third-party loggers that are noisy at INFO
_QUIET_LOGGERS = ("httpx", "httpcore", "google_genai", "aiosqlite")

# Handlers installed by configure_logging, replaced on reconfiguration
_installed: list[logging.Handler] = []


def configure_logging(
    level: Union[str, int] = "INFO",
    log_file: Optional[Path] = None,
) -> None:
    """Install a rich console handler plus an optional append-mode file handler."""
    root = logging.getLogger()
    root.setLevel(level if isinstance(level, int) else level.upper())

    while _installed:
        handler = _installed.pop()
        root.removeHandler(handler)
        handler.close()

    console_handler = RichHandler(show_path=False, rich_tracebacks=True)
    console_handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    root.addHandler(console_handler)
    _installed.append(console_handler)

    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(file_handler)
        _installed.append(file_handler)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
