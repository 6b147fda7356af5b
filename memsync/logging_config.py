"""Logging setup for memsync.

Two sinks:
- ``logs/local-YYYY-MM-DD.log``: the ``memsync`` logger tree
- ``logs/memory-events-YYYY-MM-DD.log``: one line per save/sync/import event
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

from memsync.utils import get_memsync_home

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def _log_dir(data_dir: Optional[Path] = None) -> Path:
    log_dir = (data_dir or get_memsync_home()) / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)
    return log_dir


def setup_memsync_logging(level: str = "INFO", data_dir: Optional[Path] = None) -> logging.Logger:
    """Configure the ``memsync`` logger. Safe to call more than once."""
    logger = logging.getLogger("memsync")
    resolved = getattr(logging, str(level).upper(), None)
    if not isinstance(resolved, int):
        resolved = logging.INFO
    logger.setLevel(resolved)

    if not any(isinstance(h, logging.FileHandler) for h in logger.handlers):
        today = datetime.now().strftime("%Y-%m-%d")
        file_handler = logging.FileHandler(_log_dir(data_dir) / f"local-{today}.log")
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(file_handler)

    has_console = any(
        isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler)
        for h in logger.handlers
    )
    if resolved <= logging.DEBUG and not has_console:
        console = logging.StreamHandler()
        console.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(console)

    return logger


def log_memory_event(
    event_type: str,
    details: str,
    container_tag: str = "default",
    data_dir: Optional[Path] = None,
) -> None:
    """Append a single event line to today's memory-events log."""
    today = datetime.now().strftime("%Y-%m-%d")
    stamp = datetime.now().isoformat(timespec="seconds")
    try:
        path = _log_dir(data_dir) / f"memory-events-{today}.log"
        with open(path, "a", encoding="utf-8") as f:
            f.write(f"{stamp} | {event_type} | tag={container_tag} | {details}\n")
    except OSError as e:
        logging.getLogger(__name__).warning(f"Could not write memory event: {e}")


def log_save(container_tag: str, memory_id: str, summary: str = "", **kwargs) -> None:
    preview = summary[:50].replace("\n", " ")
    log_memory_event("save", f"id={memory_id[:16]}, {preview}", container_tag, **kwargs)


def log_sync(direction: str, count: int, success: bool, error: Optional[str] = None, **kwargs) -> None:
    details = f"direction={direction}, count={count}, success={success}"
    if error:
        details += f", error={error[:100]}"
    log_memory_event("sync", details, **kwargs)


def log_import(imported: int, skipped: int, **kwargs) -> None:
    log_memory_event("import", f"imported={imported}, skipped={skipped}", **kwargs)
