"""Tests for self-upgrade, with GitHub served by httpx.MockTransport."""

from __future__ import annotations

import httpx
import pytest

from ccc.config.settings import Settings
from ccc.engine.upgrade import Upgrader, version_at_least
from ccc.errors import UpgradeFailed


def _upgrader(tag="v1.2.0", installer="exit 0\n", status_code=200):
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(str(request.url))
        if status_code != 200:
            return httpx.Response(status_code)
        if request.url.host == "api.github.com":
            return httpx.Response(200, json={"tag_name": tag})
        if request.url.path.endswith("/install.sh"):
            return httpx.Response(200, text=installer)
        return httpx.Response(404)

    client = httpx.Client(transport=httpx.MockTransport(handler))
    return Upgrader(Settings(update_repo="org/ccc"), client=client), requests


class TestVersionAtLeast:
    def test_ordering(self):
        assert version_at_least("1.2.0", "1.2.0")
        assert version_at_least("1.10.0", "1.9.9")
        assert not version_at_least("1.2.0", "1.2.1")
        assert version_at_least("2.0", "1.9.9")

    def test_prefix_and_suffix(self):
        assert version_at_least("v1.2.3", "1.2.3")
        assert not version_at_least("1.2.3rc1", "1.2.4")


class TestUpgrader:
    def test_latest_version(self):
        upgrader, requests = _upgrader()
        assert upgrader.latest_version() == "1.2.0"
        assert requests == ["https://api.github.com/repos/org/ccc/releases/latest"]

    def test_latest_version_http_error(self):
        upgrader, _ = _upgrader(status_code=500)
        assert upgrader.latest_version() is None

    def test_lookup_failure(self):
        upgrader, _ = _upgrader(status_code=503)
        with pytest.raises(UpgradeFailed) as exc_info:
            upgrader.upgrade(current="1.0.0")
        assert exc_info.value.exit_code == 13

    def test_already_up_to_date(self):
        upgrader, requests = _upgrader(tag="v1.2.0")
        assert not upgrader.upgrade(current="1.2.0")
        assert len(requests) == 1

    def test_runs_installer(self, capsys):
        upgrader, requests = _upgrader(tag="v1.3.0")
        assert upgrader.upgrade(current="1.2.0")
        assert requests[-1] == "https://raw.githubusercontent.com/org/ccc/v1.3.0/install.sh"
        assert "Successfully updated to version 1.3.0" in capsys.readouterr().out

    def test_unknown_current_version_upgrades(self):
        upgrader, _ = _upgrader(tag="v1.3.0")
        assert upgrader.upgrade(current="unknown")

    def test_installer_failure(self):
        upgrader, _ = _upgrader(tag="v1.3.0", installer="exit 1\n")
        with pytest.raises(UpgradeFailed):
            upgrader.upgrade(current="1.2.0")

    def test_non_json_release_response(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, text="<html>rate limited</html>"))
        upgrader = Upgrader(Settings(update_repo="org/ccc"), client=httpx.Client(transport=transport))
        with pytest.raises(UpgradeFailed) as exc_info:
            upgrader.upgrade(current="1.0.0")
        assert "Unexpected response" in exc_info.value.message

    def test_context_manager_closes_client(self):
        upgrader, _ = _upgrader()
        with upgrader:
            assert upgrader.latest_version() == "1.2.0"
        assert upgrader.client.is_closed
