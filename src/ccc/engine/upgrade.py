"""Self-upgrade: compare against the latest release and run its installer."""

from __future__ import annotations

import logging
import re
import tempfile
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path
from typing import Optional

import click
import httpx

from ccc.config.settings import Settings
from ccc.engine.process import run
from ccc.errors import UpgradeFailed

logger = logging.getLogger(__name__)

DISTRIBUTION = "common-course-containers"


def current_version() -> str:
    try:
        return version(DISTRIBUTION)
    except PackageNotFoundError:
        return "unknown"


def _parts(value: str) -> list[int]:
    parts = []
    for piece in value.lstrip("v").split(".")[:3]:
        match = re.match(r"\d+", piece)
        parts.append(int(match.group()) if match else 0)
    return parts + [0] * (3 - len(parts))


def version_at_least(v1: str, v2: str) -> bool:
    """True if ``v1 >= v2`` comparing major.minor.patch."""
    return _parts(v1) >= _parts(v2)


class Upgrader:
    def __init__(self, settings: Settings, client: Optional[httpx.Client] = None):
        self.settings = settings
        self.client = client or httpx.Client(timeout=30, follow_redirects=True)

    def __enter__(self) -> "Upgrader":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        self.client.close()

    def latest_version(self) -> Optional[str]:
        try:
            response = self.client.get(self.settings.update_api_url)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.debug("release lookup failed: %s", exc)
            return None
        try:
            tag = response.json().get("tag_name") or ""
        except (ValueError, AttributeError) as exc:
            raise UpgradeFailed(f"Unexpected response from {self.settings.update_api_url}") from exc
        return tag.lstrip("v") or None

    def installer_url(self, latest: str) -> str:
        return f"https://raw.githubusercontent.com/{self.settings.update_repo}/v{latest}/install.sh"

    def download_installer(self, latest: str, dest: Path) -> Path:
        try:
            response = self.client.get(self.installer_url(latest))
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise UpgradeFailed(f"Failed to download installer: {exc}") from exc
        dest.write_bytes(response.content)
        dest.chmod(0o755)
        return dest

    def upgrade(self, current: Optional[str] = None) -> bool:
        """Install the latest release if newer. Returns True if an install ran."""
        click.echo("Checking for CCC updates...")
        current = current or current_version()
        latest = self.latest_version()
        if not latest:
            raise UpgradeFailed("Failed to check for updates (no internet connection?)")

        click.echo(f"Current version: {current}")
        click.echo(f"Latest version: {latest}")
        if current != "unknown" and version_at_least(current, latest):
            click.echo("Already up to date")
            return False

        click.echo(f"Newer version available: {latest}")
        click.echo("Downloading and running installer...")
        with tempfile.TemporaryDirectory(prefix="ccc-upgrade-") as tmp:
            installer = self.download_installer(latest, Path(tmp) / "install.sh")
            click.echo(f"Running installer for version {latest}...")
            result = run(["bash", str(installer)])
        if not result.success:
            raise UpgradeFailed(f"Installation failed (exit {result.exit_code})")
        click.echo(f"Successfully updated to version {latest}")
        return True
