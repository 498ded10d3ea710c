"""Shared fixtures for ccc tests."""

from __future__ import annotations

from pathlib import Path
from typing import Mapping, Optional, Sequence

import pytest

from ccc.config.settings import ConfigStore, ExecutionMode, Settings
from ccc.courses.registry import CourseRegistry, StaticRegistryFetcher
from ccc.courses.resolver import CourseResolver
from ccc.engine.lifecycle import HostPlatform
from ccc.engine.vcs import normalize_remote_url
from ccc.errors import CloneFailed

REGISTRY_TEXT = """\
# course_id,repo_url,display_name,term,base_image
default,,Base CCC environment,,default
csci-0300-demo,https://github.com/example/300-demo.git,CSCI 0300 Demo,Fall 2025,
db-course,git@github.com:example/db-course.git,Databases,Spring 2026,postgres:16
no-repo,,Placeholder,,
"""

DEMO_URL = "https://github.com/example/300-demo.git"
DB_URL = "git@github.com:example/db-course.git"


class FakeVcs:
    """Clones by creating a ``.git`` directory plus the files registered for the URL."""

    def __init__(self, files: Optional[Mapping[str, Mapping[str, str]]] = None):
        self.files = dict(files or {})
        self.remotes: dict[Path, str] = {}
        self.commits: dict[Path, str] = {}
        self.cloned: list[tuple[str, Path]] = []
        self.pulled: list[Path] = []
        self.fail_clone = False

    def clone(self, url: str, dest: Path) -> None:
        if self.fail_clone:
            raise CloneFailed(f"git clone of {url} into {dest} failed (exit 128)")
        dest.mkdir(parents=True)
        (dest / ".git").mkdir()
        for name, content in self.files.get(url, {}).items():
            (dest / name).write_text(content)
        self.remotes[dest] = normalize_remote_url(url)
        self.commits[dest] = "0123456789abcdef0123456789abcdef01234567"
        self.cloned.append((url, dest))

    def pull(self, path: Path) -> None:
        self.pulled.append(path)

    def is_checkout(self, path: Path) -> bool:
        return (path / ".git").exists()

    def remote_url(self, path: Path) -> Optional[str]:
        return self.remotes.get(path)

    def head_commit(self, path: Path) -> Optional[str]:
        return self.commits.get(path)


class FakeRuntime:
    """Records runtime calls against in-memory networks, images and containers."""

    def __init__(self, name: str = "podman"):
        self.name = name
        self.networks: set[str] = set()
        self.images: set[str] = set()
        self.containers: dict[str, str] = {}
        self.calls: list[tuple] = []
        self.run_returncode = 0

    @property
    def is_podman(self) -> bool:
        return self.name == "podman"

    def network_exists(self, name: str) -> bool:
        return name in self.networks

    def create_network(self, name: str) -> None:
        self.calls.append(("create_network", name))
        self.networks.add(name)

    def remove_network(self, name: str) -> None:
        self.calls.append(("remove_network", name))
        self.networks.discard(name)

    def image_exists(self, name: str) -> bool:
        return name in self.images

    def build_image(self, tag, containerfile, context, platform, build_args) -> None:
        self.calls.append(("build_image", tag, platform, dict(build_args)))
        self.images.add(tag)

    def remove_image(self, name: str) -> None:
        self.calls.append(("remove_image", name))
        self.images.discard(name)

    def container_exists(self, name: str) -> bool:
        return name in self.containers

    def container_status(self, name: str) -> Optional[str]:
        return self.containers.get(name)

    def list_containers(self, name_filter: str) -> list[str]:
        name = name_filter.strip("^$")
        return [name] if name in self.containers else []

    def remove_container(self, container_id: str) -> None:
        self.calls.append(("remove_container", container_id))
        self.containers.pop(container_id, None)

    def run_container(self, args: Sequence[str]) -> int:
        self.calls.append(("run", list(args)))
        return self.run_returncode

    def start(self, name: str, attach: bool = False) -> None:
        self.calls.append(("start", name, attach))
        self.containers[name] = "running"

    def exec_shell(self, name: str, workdir: str) -> None:
        self.calls.append(("exec_shell", name, workdir))


@pytest.fixture
def registry():
    return CourseRegistry(StaticRegistryFetcher(REGISTRY_TEXT))


@pytest.fixture
def registry_file(tmp_path):
    path = tmp_path / "registry.csv"
    path.write_text(REGISTRY_TEXT)
    return path


@pytest.fixture
def settings(registry_file):
    return Settings(registry_file=registry_file, mode=ExecutionMode.LOCAL)


@pytest.fixture
def resolver(registry, settings):
    return CourseResolver(registry, settings)


@pytest.fixture
def store(tmp_path):
    return ConfigStore(config_dir=tmp_path / "config", environ={})


@pytest.fixture
def courses_dir(tmp_path):
    path = tmp_path / "courses"
    path.mkdir()
    return path


@pytest.fixture
def vcs():
    return FakeVcs(files={
        DEMO_URL: {"setup.sh": "echo demo setup\n", "README.md": "demo\n"},
        DB_URL: {"README.md": "databases\n"},
    })


@pytest.fixture
def runtime():
    return FakeRuntime()


@pytest.fixture
def host():
    return HostPlatform()
