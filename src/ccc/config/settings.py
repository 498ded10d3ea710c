"""Configuration model and the KEY=value files it is persisted in."""

from __future__ import annotations

import logging
import os
from enum import Enum
from pathlib import Path
from typing import Mapping, Optional

from dotenv import dotenv_values
from pydantic import BaseModel, Field, ValidationError

from ccc.errors import ConfigError, NotConfigured

logger = logging.getLogger(__name__)

COURSES_DIR_KEY = "COURSES_DIR"
COURSES_DIR_ENV = "CCC_COURSES_DIR"
CONTAINER_MARKER = Path("/etc/ccc-container")

DEFAULT_SETTINGS_TEMPLATE = """\
# CCC Settings Configuration
# Customize these values to override defaults

# Container Configuration
CCC_IMAGE_PREFIX=ccc
CCC_NETWORK_NAME=net-ccc
CCC_DEFAULT_BASE_IMAGE=ubuntu:noble
CCC_MOUNT_PATH=/courses

# Update Repository
CCC_UPDATE_REPO=BrownCS/common-course-containers

# Uncomment and modify any settings you want to customize
# CCC_IMAGE_PREFIX=my-ccc
# CCC_NETWORK_NAME=my-net-ccc
# CCC_DEFAULT_BASE_IMAGE=ubuntu:jammy
# CCC_CONTAINER_RUNTIME=docker
# CCC_REGISTRY_FILE=/path/to/registry.csv
"""


class ExecutionMode(str, Enum):
    AUTO = "auto"
    HOST = "host"
    CONTAINER = "container"
    LOCAL = "local"


def default_config_dir() -> Path:
    return Path.home() / ".config" / "ccc"


def bundled_registry_file() -> Path:
    return Path(__file__).resolve().parent.parent / "data" / "registry.csv"


def read_key_values(path: Path) -> dict[str, str]:
    """Read a shell-style ``KEY=value`` file.

    Comments, a leading ``export`` and surrounding quotes are handled the way
    a shell sourcing the file would. Keys without a value are dropped.
    """
    if not path.is_file():
        return {}
    values = dotenv_values(path, interpolate=False)
    return {key: value for key, value in values.items() if value is not None}


class ConfigStore:
    """Owns ``~/.config/ccc/config`` (courses dir) and ``settings`` (overrides).

    Assumes a single user writing from one process at a time; nothing here
    takes a lock.
    """

    def __init__(self, config_dir: Optional[Path] = None, environ: Optional[Mapping[str, str]] = None):
        self.config_dir = config_dir or default_config_dir()
        self._environ = os.environ if environ is None else environ

    @property
    def config_file(self) -> Path:
        return self.config_dir / "config"

    @property
    def settings_file(self) -> Path:
        return self.config_dir / "settings"

    def save(self, path: Path) -> Path:
        """Persist ``path`` as the courses directory and return it in absolute form."""
        courses_dir = Path(path).expanduser().resolve()
        if not courses_dir.is_dir():
            raise ConfigError(f"Directory does not exist: {path}")
        self.config_dir.mkdir(parents=True, exist_ok=True)
        self.config_file.write_text(f"{COURSES_DIR_KEY}={courses_dir}\n")
        logger.debug("saved %s=%s to %s", COURSES_DIR_KEY, courses_dir, self.config_file)
        return courses_dir

    def load(self) -> Optional[Path]:
        override = self.environment_override()
        if override:
            logger.debug("courses directory from %s: %s", COURSES_DIR_ENV, override)
            return Path(override)
        saved = self.saved_courses_dir()
        return Path(saved) if saved else None

    def environment_override(self) -> Optional[str]:
        return self._environ.get(COURSES_DIR_ENV) or None

    def saved_courses_dir(self) -> Optional[str]:
        """The persisted value only, ignoring environment overrides."""
        return read_key_values(self.config_file).get(COURSES_DIR_KEY) or None

    def exists(self) -> bool:
        return self.saved_courses_dir() is not None

    def require(self) -> Path:
        courses_dir = self.load()
        if courses_dir is None:
            raise NotConfigured(config_file=self.config_file)
        return courses_dir

    def read_settings(self) -> dict[str, str]:
        return read_key_values(self.settings_file)

    def create_default_settings(self) -> bool:
        """Write the settings template unless one exists. Returns True if written."""
        if self.settings_file.exists():
            return False
        self.config_dir.mkdir(parents=True, exist_ok=True)
        self.settings_file.write_text(DEFAULT_SETTINGS_TEMPLATE)
        return True


# settings-file / environment key -> Settings field
SETTING_KEYS = {
    "CCC_IMAGE_PREFIX": "image_prefix",
    "CCC_NETWORK_NAME": "network_name",
    "CCC_DEFAULT_BASE_IMAGE": "default_base_image",
    "CCC_MOUNT_PATH": "mount_path",
    "CCC_UPDATE_REPO": "update_repo",
    "CCC_REGISTRY_FILE": "registry_file",
    "CCC_CONTAINER_RUNTIME": "container_runtime",
    "CCC_MODE": "mode",
}


class Settings(BaseModel):
    image_prefix: str = "ccc"
    network_name: str = "net-ccc"
    default_base_image: str = "ubuntu:noble"
    mount_path: str = "/courses"
    update_repo: str = "BrownCS/common-course-containers"
    registry_file: Path = Field(default_factory=bundled_registry_file)
    container_runtime: Optional[str] = None
    mode: ExecutionMode = ExecutionMode.AUTO

    @classmethod
    def load(cls, store: Optional[ConfigStore] = None, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """Defaults, then the settings file, then ``CCC_*`` environment variables."""
        store = store or ConfigStore()
        environ = os.environ if environ is None else environ
        data: dict[str, str] = {}
        for key, value in store.read_settings().items():
            if key in SETTING_KEYS and value:
                data[SETTING_KEYS[key]] = value
        for key, field_name in SETTING_KEYS.items():
            if environ.get(key):
                data[field_name] = environ[key]
        try:
            return cls(**data)
        except ValidationError as exc:
            keys = {field_name: key for key, field_name in SETTING_KEYS.items()}
            problems = [
                f"  {keys.get(str(error['loc'][0]), error['loc'][0])}: {error['msg']}"
                for error in exc.errors()
            ]
            raise ConfigError(
                f"Invalid settings (from {store.settings_file} or the environment):\n"
                + "\n".join(problems)
            ) from exc

    @property
    def default_image_name(self) -> str:
        return self.image_prefix

    @property
    def default_container_name(self) -> str:
        return f"{self.image_prefix}-default"

    @property
    def update_api_url(self) -> str:
        return f"https://api.github.com/repos/{self.update_repo}/releases/latest"

    def resolved_mode(self) -> ExecutionMode:
        if self.mode != ExecutionMode.AUTO:
            return self.mode
        return ExecutionMode.CONTAINER if CONTAINER_MARKER.exists() else ExecutionMode.HOST

    def environment(self) -> dict[str, str]:
        """Settings handed to a ccc running inside a container."""
        return {
            "CCC_IMAGE_PREFIX": self.image_prefix,
            "CCC_NETWORK_NAME": self.network_name,
            "CCC_DEFAULT_BASE_IMAGE": self.default_base_image,
            "CCC_MOUNT_PATH": self.mount_path,
            "CCC_UPDATE_REPO": self.update_repo,
        }
