"""GitHub credential resolution for memsync.

Sources, first success wins:
1. Explicit override (``MEMSYNC_GITHUB_TOKEN`` or config)
2. An authenticated ``gh`` CLI (``gh auth token``)
3. A saved token file (``github-token.json``, mode 0600)
"""

import json
import logging
import shutil
import subprocess
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Optional, Tuple

from memsync.protocols import NotAuthenticatedError
from memsync.utils import secure_write_text

if TYPE_CHECKING:
    from .device_flow import DeviceCode, DeviceFlow

logger = logging.getLogger(__name__)

GH_TIMEOUT = 10.0

SOURCE_OVERRIDE = "override"
SOURCE_GH_CLI = "gh"
SOURCE_TOKEN_FILE = "token_file"


def load_token_file(token_file: Path) -> Optional[str]:
    """Read ``{"token": ...}`` from the token file, or None if unusable."""
    if not token_file.exists():
        return None
    try:
        with open(token_file, encoding="utf-8") as f:
            data = json.load(f)
    except (json.JSONDecodeError, OSError) as e:
        logger.warning(f"Ignoring unreadable token file {token_file}: {e}")
        return None
    token = data.get("token") if isinstance(data, dict) else None
    if isinstance(token, str) and token.strip():
        return token.strip()
    return None


class CredentialProvider:
    """Resolves a GitHub bearer token without exposing which source supplied it.

    Args:
        token_file: Path of the persisted token file.
        token_override: Explicit token; always used first when set.
        gh_command: Name or path of the GitHub CLI.
    """

    def __init__(
        self,
        token_file: Path,
        token_override: Optional[str] = None,
        gh_command: str = "gh",
    ):
        self.token_file = Path(token_file)
        self.token_override = token_override or None
        self.gh_command = gh_command
        self._gh_ready: Optional[bool] = None

    def _run_gh(self, *args: str) -> subprocess.CompletedProcess:
        return subprocess.run(
            [self.gh_command, *args],
            capture_output=True,
            text=True,
            timeout=GH_TIMEOUT,
            check=False,
        )

    def gh_available(self) -> bool:
        """True if the gh CLI is installed and logged in. Checked once per instance."""
        if self._gh_ready is None:
            if shutil.which(self.gh_command) is None:
                self._gh_ready = False
            else:
                try:
                    self._gh_ready = self._run_gh("auth", "status").returncode == 0
                except (OSError, subprocess.SubprocessError) as e:
                    logger.debug(f"gh auth status failed: {e}")
                    self._gh_ready = False
        return self._gh_ready

    def is_authenticated(self) -> bool:
        """Whether any source is plausibly usable. Never prompts or writes."""
        return bool(self.token_override) or self.gh_available() or self.token_file.exists()

    def _token_from_gh(self) -> Optional[str]:
        if not self.gh_available():
            return None
        try:
            proc = self._run_gh("auth", "token")
        except (OSError, subprocess.SubprocessError) as e:
            logger.warning(f"Failed to get gh token: {e}")
            return None
        token = (proc.stdout or "").strip()
        if proc.returncode != 0 or not token:
            logger.warning(f"gh auth token failed: {(proc.stderr or '').strip()}")
            return None
        return token

    def resolve(self) -> Tuple[str, str]:
        """Return ``(token, source)`` from the first usable source.

        Raises:
            NotAuthenticatedError: if every source is exhausted.
        """
        if self.token_override:
            return self.token_override, SOURCE_OVERRIDE

        token = self._token_from_gh()
        if token:
            return token, SOURCE_GH_CLI

        token = load_token_file(self.token_file)
        if token:
            return token, SOURCE_TOKEN_FILE

        raise NotAuthenticatedError(
            "No GitHub authentication found. Run `gh auth login`, "
            "`memsync auth login`, or set MEMSYNC_GITHUB_TOKEN"
        )

    def get_token(self) -> str:
        return self.resolve()[0]

    def token_source(self) -> Optional[str]:
        """Name of the source that would supply the token, or None."""
        try:
            return self.resolve()[1]
        except NotAuthenticatedError:
            return None

    def save_token(self, token: str) -> None:
        """Persist a token for later sessions (owner read/write only)."""
        secure_write_text(self.token_file, json.dumps({"token": token}))
        logger.info(f"Saved GitHub token to {self.token_file}")

    def clear_token(self) -> bool:
        if self.token_file.exists():
            self.token_file.unlink()
            return True
        return False

    def device_login(
        self,
        flow: "DeviceFlow",
        on_code: Callable[["DeviceCode"], None],
        timeout: Optional[float] = None,
    ) -> str:
        """Interactive fallback: run the device flow and persist the token it yields."""
        token = flow.run(on_code) if timeout is None else flow.run(on_code, timeout=timeout)
        self.save_token(token)
        return token
