"""The external container runtime (podman, or docker as a fallback)."""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Callable, Mapping, Optional, Protocol, Sequence

from ccc.engine.process import CommandNotFound, CommandResult, run
from ccc.errors import RuntimeCommandFailed, RuntimeUnavailable

logger = logging.getLogger(__name__)

RUNTIME_CANDIDATES = ("podman", "docker")
INSTALL_HINT = "Please install Podman: https://podman.io/getting-started/installation"


def detect_runtime(
    preferred: Optional[str] = None,
    which: Callable[[str], Optional[str]] = shutil.which,
) -> str:
    """Name of the runtime to use: ``preferred`` if given, else podman, else docker."""
    if preferred:
        if which(preferred):
            return preferred
        raise RuntimeUnavailable(f"Container runtime '{preferred}' not found\n{INSTALL_HINT}")
    for candidate in RUNTIME_CANDIDATES:
        if which(candidate):
            logger.debug("using container runtime %s", candidate)
            return candidate
    raise RuntimeUnavailable(f"No container runtime found (podman/docker)\n{INSTALL_HINT}")


class ContainerRuntime(Protocol):
    name: str

    @property
    def is_podman(self) -> bool: ...

    def network_exists(self, name: str) -> bool: ...

    def create_network(self, name: str) -> None: ...

    def remove_network(self, name: str) -> None: ...

    def image_exists(self, name: str) -> bool: ...

    def build_image(
        self,
        tag: str,
        containerfile: Path,
        context: Path,
        platform: str,
        build_args: Mapping[str, str],
    ) -> None: ...

    def remove_image(self, name: str) -> None: ...

    def container_exists(self, name: str) -> bool: ...

    def container_status(self, name: str) -> Optional[str]: ...

    def list_containers(self, name_filter: str) -> list[str]: ...

    def remove_container(self, container_id: str) -> None: ...

    def run_container(self, args: Sequence[str]) -> int: ...

    def start(self, name: str, attach: bool = False) -> None: ...

    def exec_shell(self, name: str, workdir: str) -> None: ...


class CliContainerRuntime:
    """Drives a podman- or docker-compatible CLI."""

    def __init__(self, executable: str):
        self.name = executable

    @property
    def is_podman(self) -> bool:
        return Path(self.name).name == "podman"

    def network_exists(self, name: str) -> bool:
        return self._query("network", "inspect", name)

    def create_network(self, name: str) -> None:
        self._call("network", "create", name)

    def remove_network(self, name: str) -> None:
        self._call("network", "rm", name)

    def image_exists(self, name: str) -> bool:
        return self._query("image", "inspect", name)

    def build_image(
        self,
        tag: str,
        containerfile: Path,
        context: Path,
        platform: str,
        build_args: Mapping[str, str],
    ) -> None:
        args = ["build", "-t", tag, "-f", str(containerfile), "--platform", platform]
        for key, value in build_args.items():
            args += ["--build-arg", f"{key}={value}"]
        args.append(str(context))
        self._call(*args)

    def remove_image(self, name: str) -> None:
        self._call("image", "rm", "--force", name)

    def container_exists(self, name: str) -> bool:
        return self._query("container", "inspect", name)

    def container_status(self, name: str) -> Optional[str]:
        result = self._run(["inspect", "-f", "{{.State.Status}}", name], capture=True)
        if not result.success:
            return None
        return result.stdout.strip() or None

    def list_containers(self, name_filter: str) -> list[str]:
        result = self._run(
            ["ps", "-a", "--filter", f"name={name_filter}", "--format", "{{.ID}}"], capture=True
        )
        if not result.success:
            raise RuntimeCommandFailed(result.args, result.exit_code, result.stderr.strip())
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    def remove_container(self, container_id: str) -> None:
        self._call("rm", "--force", container_id)

    def run_container(self, args: Sequence[str]) -> int:
        return self._run(["run", *args], echo=True).exit_code

    def start(self, name: str, attach: bool = False) -> None:
        if attach:
            self._call("start", "-ai", name)
        else:
            self._call("start", name)

    def exec_shell(self, name: str, workdir: str) -> None:
        self._call("exec", "-it", name, "bash", "-c", f"cd '{workdir}' && exec bash")

    def _run(self, args: Sequence[str], capture: bool = False, echo: bool = False) -> CommandResult:
        try:
            return run([self.name, *args], capture=capture, echo=echo)
        except CommandNotFound as exc:
            raise RuntimeUnavailable(f"Container runtime '{self.name}' not found\n{INSTALL_HINT}") from exc

    def _query(self, *args: str) -> bool:
        return self._run(args, capture=True).success

    def _call(self, *args: str) -> None:
        result = self._run(args, echo=True)
        if not result.success:
            raise RuntimeCommandFailed(result.args, result.exit_code)
