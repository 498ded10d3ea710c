"""Failure kinds raised by ccc, each mapped to its own exit code."""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Sequence

import click


class CccError(click.ClickException):
    """Base class for every operational failure."""

    exit_code = 1


class ConfigError(CccError):
    exit_code = 1


class CourseNotFound(CccError):
    """Course id is not in the registry. Always shows what is available."""

    exit_code = 3

    def __init__(self, course_id: str, available: Sequence[str], hint: str = ""):
        super().__init__(f"Course '{course_id}' not found in registry")
        self.course_id = course_id
        self.available = list(available)
        self.hint = hint

    def format_message(self) -> str:
        lines = [self.message]
        if self.hint:
            lines.append(self.hint)
        lines.append("Available courses:")
        if self.available:
            lines.extend(f"  {course_id}" for course_id in self.available)
        else:
            lines.append("  (none)")
        return "\n".join(lines)


class NotConfigured(CccError):
    exit_code = 4

    def __init__(self, message: str = "No courses directory configured", config_file: Optional[Path] = None):
        if config_file is not None:
            message = (
                f"{message}\n"
                "Run 'ccc init' in the directory where you want to store courses\n"
                f"Current config file: {config_file}"
            )
        super().__init__(message)


class CloneFailed(CccError):
    exit_code = 5


class SetupScriptFailed(CccError):
    exit_code = 6

    def __init__(self, script: Path, returncode: int):
        super().__init__(f"Setup script {script} exited with status {returncode}")
        self.script = script
        self.returncode = returncode


class NotInstalled(CccError):
    exit_code = 7


class NotAVcsCheckout(CccError):
    exit_code = 8


class UpdateConflict(CccError):
    exit_code = 9


class RuntimeUnavailable(CccError):
    exit_code = 10


class RuntimeCommandFailed(CccError):
    exit_code = 11

    def __init__(self, args: Sequence[str], returncode: int, output: str = ""):
        message = f"Command failed with exit code {returncode}: {' '.join(args)}"
        if output:
            message = f"{message}\n{output}"
        super().__init__(message)
        self.command = list(args)
        self.returncode = returncode


class RegistryUnavailable(CccError):
    exit_code = 12


class UpgradeFailed(CccError):
    exit_code = 13


class DelegatedCommandFailed(CccError):
    """A ccc command run inside a container exited non-zero.

    The container already printed its own diagnostics, so the exit code is
    passed through unchanged.
    """

    def __init__(self, command: str, returncode: int):
        super().__init__(f"'ccc {command}' failed inside the container (exit {returncode})")
        self.exit_code = returncode
