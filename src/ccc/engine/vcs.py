"""Version control operations on course checkouts."""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Optional, Protocol

from ccc.engine.process import CommandNotFound, run
from ccc.errors import CloneFailed, UpdateConflict

logger = logging.getLogger(__name__)

_SSH_REMOTE = re.compile(r"^git@([^:]+):(.+)$")


def normalize_remote_url(url: str) -> str:
    """``git@host:org/repo.git`` -> ``https://host/org/repo.git``; others unchanged."""
    match = _SSH_REMOTE.match(url)
    if match:
        return f"https://{match.group(1)}/{match.group(2)}"
    return url


class VcsClient(Protocol):
    def clone(self, url: str, dest: Path) -> None: ...

    def pull(self, path: Path) -> None: ...

    def is_checkout(self, path: Path) -> bool: ...

    def remote_url(self, path: Path) -> Optional[str]: ...

    def head_commit(self, path: Path) -> Optional[str]: ...


class GitClient:
    def __init__(self, executable: str = "git"):
        self.executable = executable

    def clone(self, url: str, dest: Path) -> None:
        try:
            result = run([self.executable, "clone", url, str(dest)], echo=True)
        except CommandNotFound as exc:
            raise CloneFailed(f"{exc}. Install git and try again.") from exc
        if not result.success:
            raise CloneFailed(f"git clone of {url} into {dest} failed (exit {result.exit_code})")

    def pull(self, path: Path) -> None:
        """Fast-forward only; anything needing a merge is left to the user."""
        try:
            result = run([self.executable, "-C", str(path), "pull", "--ff-only"], echo=True)
        except CommandNotFound as exc:
            raise UpdateConflict(f"{exc}. Install git and try again.") from exc
        if not result.success:
            raise UpdateConflict(
                f"git pull in {path} failed (exit {result.exit_code}).\n"
                "Local changes may conflict with the latest version; resolve them with git and retry."
            )

    def is_checkout(self, path: Path) -> bool:
        return (Path(path) / ".git").exists()

    def remote_url(self, path: Path) -> Optional[str]:
        output = self._query(path, "remote", "get-url", "origin")
        return normalize_remote_url(output) if output else None

    def head_commit(self, path: Path) -> Optional[str]:
        return self._query(path, "rev-parse", "HEAD")

    def _query(self, path: Path, *args: str) -> Optional[str]:
        try:
            result = run([self.executable, "-C", str(path), *args], capture=True)
        except CommandNotFound:
            logger.debug("%s not found", self.executable)
            return None
        if not result.success:
            return None
        return result.stdout.strip() or None
