"""Per-invocation application state handed to every command."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

from ccc.config.settings import ConfigStore, ExecutionMode, Settings
from ccc.courses.registry import CourseRegistry
from ccc.courses.resolver import CourseResolver
from ccc.engine.installer import InstallEngine
from ccc.engine.lifecycle import ContainerManager, HostPlatform
from ccc.engine.runtime import CliContainerRuntime, ContainerRuntime, detect_runtime
from ccc.engine.vcs import GitClient, VcsClient
from ccc.errors import NotConfigured

logger = logging.getLogger(__name__)


class AppContext:
    """Configuration plus the capabilities commands run against.

    Anything not passed in is built from the user's config files and the
    real ``git`` / container runtime. The runtime is only detected when a
    command needs it.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        store: Optional[ConfigStore] = None,
        registry: Optional[CourseRegistry] = None,
        vcs: Optional[VcsClient] = None,
        runtime: Optional[ContainerRuntime] = None,
        host: Optional[HostPlatform] = None,
        verbose: bool = False,
    ):
        self.store = store or ConfigStore()
        self.settings = settings or Settings.load(self.store)
        self.registry = registry or CourseRegistry.from_file(self.settings.registry_file)
        self.vcs = vcs or GitClient()
        self._runtime = runtime
        self._host = host
        self.verbose = verbose

    @property
    def mode(self) -> ExecutionMode:
        return self.settings.resolved_mode()

    @property
    def resolver(self) -> CourseResolver:
        return CourseResolver(self.registry, self.settings)

    @property
    def runtime(self) -> ContainerRuntime:
        if self._runtime is None:
            self._runtime = CliContainerRuntime(detect_runtime(self.settings.container_runtime))
        return self._runtime

    @property
    def host(self) -> HostPlatform:
        if self._host is None:
            self._host = HostPlatform.detect()
        return self._host

    def courses_dir(self) -> Path:
        """The configured courses directory, checked for use in the current mode."""
        mode = self.mode
        path = self.store.load()
        if path is None:
            if mode != ExecutionMode.CONTAINER:
                raise NotConfigured(config_file=self.store.config_file)
            path = Path(self.settings.mount_path)
        if not path.is_dir():
            raise NotConfigured(
                f"Courses directory does not exist: {path}\n"
                "Run 'ccc init' to set up your courses directory"
            )
        if mode == ExecutionMode.CONTAINER and not os.path.ismount(path):
            raise NotConfigured(
                f"{path} is not a mountpoint. Are you running inside the container?\n"
                "If you're on the host, try: ccc run <course>"
            )
        logger.debug("courses directory: %s (%s mode)", path, mode.value)
        return path

    def engine(self) -> InstallEngine:
        return InstallEngine(self.registry, self.vcs, self.courses_dir())

    def manager(self, require_courses_dir: bool = True) -> ContainerManager:
        courses_dir = self.courses_dir() if require_courses_dir else self.store.load()
        return ContainerManager(
            runtime=self.runtime,
            settings=self.settings,
            resolver=self.resolver,
            host=self.host,
            courses_dir=courses_dir,
        )
