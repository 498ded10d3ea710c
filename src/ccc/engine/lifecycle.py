"""Networks, images and containers for course environments."""

from __future__ import annotations

import logging
import os
import platform
import shutil
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional, Sequence

import click

from ccc.config.settings import Settings
from ccc.courses.registry import DEFAULT_COURSE
from ccc.courses.resolver import ContainerIdentity, CourseResolver
from ccc.engine.process import run
from ccc.engine.runtime import ContainerRuntime
from ccc.errors import DelegatedCommandFailed, NotConfigured, RuntimeCommandFailed

logger = logging.getLogger(__name__)

DATA_DIR = Path(__file__).resolve().parent.parent / "data"
CONTAINERFILE = DATA_DIR / "Containerfile"


def _is_wsl() -> bool:
    try:
        return "microsoft" in Path("/proc/version").read_text().lower()
    except OSError:
        return False


def _account_names(uid: int, gid: int) -> tuple[str, str]:
    try:
        import grp
        import pwd

        return pwd.getpwuid(uid).pw_name, grp.getgrgid(gid).gr_name
    except (ImportError, KeyError):
        return str(uid), str(gid)


@dataclass(frozen=True)
class HostPlatform:
    """Facts about the host that decide which runtime flags to pass."""

    system: str = "Linux"
    machine: str = "x86_64"
    wsl: bool = False
    display: str = ""
    ssh_auth_sock: str = ""
    uid: int = 1000
    gid: int = 1000
    user: str = "user"
    group: str = "user"

    @classmethod
    def detect(cls, environ: Optional[Mapping[str, str]] = None) -> "HostPlatform":
        environ = os.environ if environ is None else environ
        system = platform.system()
        uid = os.getuid() if hasattr(os, "getuid") else 1000
        gid = os.getgid() if hasattr(os, "getgid") else 1000
        user, group = _account_names(uid, gid)
        return cls(
            system=system,
            machine=platform.machine(),
            wsl=system == "Linux" and _is_wsl(),
            display=environ.get("DISPLAY", ""),
            ssh_auth_sock=environ.get("SSH_AUTH_SOCK", ""),
            uid=uid,
            gid=gid,
            user=user,
            group=group,
        )

    @property
    def platform_tag(self) -> str:
        if self.machine in ("arm64", "aarch64"):
            return "linux/arm64"
        return "linux/amd64"

    @property
    def is_macos(self) -> bool:
        return self.system == "Darwin"

    def x11_flags(self) -> list[str]:
        if self.is_macos or (self.system == "Linux" and self.wsl):
            return ["-e", "DISPLAY=host.docker.internal:0"]
        if self.system == "Linux" and self.display:
            return ["-v", "/tmp/.X11-unix:/tmp/.X11-unix", "-e", f"DISPLAY=unix{self.display}"]
        return []

    def ssh_flags(self) -> list[str]:
        # Docker Desktop exposes the host agent at a fixed path on macOS only
        if self.ssh_auth_sock and self.is_macos:
            sock = "/run/host-services/ssh-auth.sock"
            return ["-v", f"{sock}:{sock}", "-e", f"SSH_AUTH_SOCK={sock}"]
        return []

    def xhost_argument(self) -> Optional[str]:
        if self.is_macos:
            return "+localhost"
        if self.system == "Linux" and not self.wsl and self.display:
            return "+local:"
        return None


@dataclass
class ContainerStatus:
    identity: ContainerIdentity
    runtime: str
    volume: Optional[Path]
    network: str
    platform: str
    has_runtime: bool = True
    has_image: bool = False
    has_container: bool = False
    has_network: bool = False


class ContainerManager:
    def __init__(
        self,
        runtime: ContainerRuntime,
        settings: Settings,
        resolver: CourseResolver,
        host: HostPlatform,
        courses_dir: Optional[Path] = None,
        containerfile: Path = CONTAINERFILE,
    ):
        self.runtime = runtime
        self.settings = settings
        self.resolver = resolver
        self.host = host
        self.courses_dir = courses_dir
        self.containerfile = containerfile

    # networks

    def has_network(self) -> bool:
        return self.runtime.network_exists(self.settings.network_name)

    def ensure_network(self) -> None:
        name = self.settings.network_name
        if self.runtime.network_exists(name):
            click.echo(f"Network '{name}' exists. Skipping creation.")
            return
        click.echo(f"Creating container-local network '{name}'...")
        self.runtime.create_network(name)

    def remove_network(self) -> None:
        name = self.settings.network_name
        if not self.runtime.network_exists(name):
            click.echo(f"Network '{name}' does not exist. Nothing to remove.")
            return
        click.echo(f"Removing network '{name}'...")
        self.runtime.remove_network(name)

    # images

    def build_image(self, base_image: str, image_name: str) -> bool:
        """Build ``image_name`` FROM ``base_image`` unless it exists. Returns True if built."""
        if self.runtime.image_exists(image_name):
            click.echo(f"Image '{image_name}' already exists. Skipping build.")
            return False
        click.echo(f"Building {self.runtime.name} image '{image_name}' from '{base_image}' for {self.host.platform_tag}...")
        self.runtime.build_image(
            tag=image_name,
            containerfile=self.containerfile,
            context=self.containerfile.parent,
            platform=self.host.platform_tag,
            build_args={
                "BASE_IMAGE": base_image,
                "CCC_SOURCE": f"git+https://github.com/{self.settings.update_repo}.git",
            },
        )
        return True

    def build_for(self, identity: ContainerIdentity) -> bool:
        return self.build_image(identity.base_image, identity.image_name)

    def remove_image(self, image_name: str) -> None:
        if not self.runtime.image_exists(image_name):
            logger.debug("image %s not present", image_name)
            return
        click.echo(f"Removing image '{image_name}'...")
        self.runtime.remove_image(image_name)

    def remove_images(self) -> None:
        for identity in self.resolver.identities():
            self.remove_image(identity.image_name)

    # containers

    def has_container(self, name: str) -> bool:
        return self.runtime.container_exists(name)

    def remove_containers(self, name: Optional[str] = None) -> int:
        """Force-remove containers named ``name`` (every course container if omitted)."""
        names = [name] if name else [i.container_name for i in self.resolver.identities()]
        removed = 0
        for container_name in names:
            click.echo(f"Removing all existing '{container_name}' containers...")
            for container_id in self.runtime.list_containers(f"^{container_name}$"):
                self.runtime.remove_container(container_id)
                removed += 1
        return removed

    def workdir_for(self, course_id: str) -> str:
        mount = self.settings.mount_path
        if course_id != DEFAULT_COURSE and self.courses_dir and (self.courses_dir / course_id).is_dir():
            return f"{mount}/{course_id}"
        return mount

    def container_env(self) -> list[str]:
        env = {"CCC_COURSES_DIR": self.settings.mount_path, **self.settings.environment()}
        flags: list[str] = []
        for key, value in env.items():
            flags += ["--env", f"{key}={value}"]
        return flags

    def user_flags(self) -> list[str]:
        if not self.runtime.is_podman:
            return []
        host = self.host
        return [
            "--passwd",
            "--group-entry", f"{host.group}::{host.gid}:{host.user}",
            "--passwd-entry", f"{host.user}::{host.uid}:{host.gid}:Default User:{self.settings.mount_path}:/bin/bash",
            "--userns", f"keep-id:uid={host.uid},gid={host.gid}",
        ]

    def run_flags(self, identity: ContainerIdentity, workdir: str) -> list[str]:
        """Flags for creating a long-lived interactive course container."""
        return [
            "--interactive",
            "--tty",
            "--name", identity.container_name,
            "--platform", self.host.platform_tag,
            "--network", self.settings.network_name,
            "--privileged",
            *self.user_flags(),
            "--entrypoint", "/bin/bash",
            "--security-opt", "seccomp=unconfined",
            "--cap-add=SYS_PTRACE",
            "--cap-add=NET_ADMIN",
            "--volume", f"{self._volume()}:{self.settings.mount_path}",
            "--workdir", workdir,
            *self.container_env(),
            *self.host.ssh_flags(),
            *self.host.x11_flags(),
            identity.image_name,
        ]

    def prepare_display(self) -> None:
        argument = self.host.xhost_argument()
        if argument is None:
            if self.host.system == "Linux" and not self.host.wsl:
                click.echo("$DISPLAY is not set, skipping X11 configuration")
            return
        if shutil.which("xhost") is None:
            click.secho(
                "Warning: xhost was not detected on your system. "
                "You may have issues running graphical apps like QEMU or Wireshark.",
                fg="yellow",
                err=True,
            )
            return
        run(["xhost", argument])

    def start_or_create(self, identity: ContainerIdentity, workdir: str, attach: bool = True) -> None:
        """Attach to the identity's container, starting or creating it as needed.

        ``attach`` restarts a stopped container with ``start -ai``; without it
        the container is started and a shell is opened in ``workdir``.
        """
        name = identity.container_name
        if self.runtime.container_exists(name):
            status = self.runtime.container_status(name)
            if status == "running":
                click.echo(f"Container '{name}' is already running. Attaching...")
                self.runtime.exec_shell(name, workdir)
            else:
                click.echo(f"Container '{name}' exists but is not running. Starting...")
                if attach:
                    self.runtime.start(name, attach=True)
                else:
                    self.runtime.start(name)
                    self.runtime.exec_shell(name, workdir)
            return

        self.prepare_display()
        self.ensure_network()
        click.echo(f"Creating and starting container '{name}'...")
        args = self.run_flags(identity, workdir)
        returncode = self.runtime.run_container(args)
        if returncode != 0:
            raise RuntimeCommandFailed([self.runtime.name, "run", *args], returncode)

    def run_course(self, course_id: str) -> ContainerIdentity:
        identity = self.resolver.resolve(course_id)
        self.build_for(identity)
        workdir = self.workdir_for(course_id)
        self.start_or_create(identity, workdir, attach=course_id != DEFAULT_COURSE)
        return identity

    def delegate(
        self,
        command: str,
        args: Sequence[str],
        identity: ContainerIdentity,
        verbose: bool = False,
        interactive: Optional[bool] = None,
    ) -> None:
        """Run ``ccc <command> <args>`` in a throwaway container of ``identity``.

        The child's exit status is re-raised, so a failure inside the
        container fails this process too.
        """
        if interactive is None:
            interactive = sys.stdin.isatty()
        self.ensure_network()
        self.build_for(identity)

        run_args = ["--rm"]
        if interactive:
            run_args += ["--interactive", "--tty"]
        if self.runtime.is_podman:
            run_args += ["--userns", f"keep-id:uid={self.host.uid},gid={self.host.gid}"]
        run_args += [
            "--platform", self.host.platform_tag,
            "--network", self.settings.network_name,
            "--privileged",
            "--volume", f"{self._volume()}:{self.settings.mount_path}",
            "--workdir", self.settings.mount_path,
            "--env", "DIRENV_CONFIG=/root/.config/direnv",
            *self.container_env(),
            identity.image_name,
            "ccc", "--mode", "container",
        ]
        if verbose:
            run_args.append("--verbose")
        run_args += [command, *args]

        returncode = self.runtime.run_container(run_args)
        if returncode != 0:
            raise DelegatedCommandFailed(" ".join([command, *args]), returncode)

    def status(self, identity: ContainerIdentity) -> ContainerStatus:
        return ContainerStatus(
            identity=identity,
            runtime=self.runtime.name,
            volume=self.courses_dir,
            network=self.settings.network_name,
            platform=self.host.platform_tag,
            has_runtime=shutil.which(self.runtime.name) is not None,
            has_image=self.runtime.image_exists(identity.image_name),
            has_container=self.runtime.container_exists(identity.container_name),
            has_network=self.runtime.network_exists(self.settings.network_name),
        )

    def _volume(self) -> str:
        if self.courses_dir is None:
            raise NotConfigured("No courses directory to mount into the container")
        return str(self.courses_dir)
