"""Filesystem helpers for memsync."""

import os
from pathlib import Path
from typing import Mapping, Optional

DATA_DIR_ENV = "MEMSYNC_DATA_DIR"


def get_memsync_home(environ: Optional[Mapping[str, str]] = None) -> Path:
    """Return the memsync data directory.

    Honors ``MEMSYNC_DATA_DIR`` when set, otherwise ``~/.memsync``. Only the
    outermost assembly point (config, CLI) should call this; components get
    their paths passed in.
    """
    env = os.environ if environ is None else environ
    custom = env.get(DATA_DIR_ENV)
    if custom:
        return Path(custom).expanduser()
    return Path.home() / ".memsync"


def secure_write_text(path: Path, text: str, mode: int = 0o600) -> None:
    """Write text to ``path`` and restrict its permissions."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        f.write(text)
    path.chmod(mode)
