"""Run external commands and report how they went."""

from __future__ import annotations

import logging
import shlex
import subprocess
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional, Sequence

import click

logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    args: list[str]
    exit_code: int
    stdout: str = ""
    stderr: str = ""

    @property
    def success(self) -> bool:
        return self.exit_code == 0


class CommandNotFound(Exception):
    """The executable for a command is not on PATH."""

    def __init__(self, executable: str):
        super().__init__(f"Command not found: {executable}")
        self.executable = executable


def format_command(args: Sequence[str]) -> str:
    return " ".join(shlex.quote(str(a)) for a in args)


def echo_command(args: Sequence[str]) -> None:
    """Show a command before running it, like a shell trace."""
    click.secho(format_command(args), fg="blue")


def run(
    args: Sequence[str],
    *,
    cwd: Optional[Path] = None,
    env: Optional[Mapping[str, str]] = None,
    capture: bool = False,
    echo: bool = False,
) -> CommandResult:
    """Run a command to completion.

    With ``capture`` the output is collected and returned. Without it the
    child inherits our stdio, so everything it prints reaches the terminal
    directly. Our own buffers are flushed first so output stays in order.
    """
    argv = [str(a) for a in args]
    if echo:
        echo_command(argv)
    logger.debug("running %s (cwd=%s)", format_command(argv), cwd)

    sys.stdout.flush()
    sys.stderr.flush()
    try:
        if capture:
            proc = subprocess.run(
                argv,
                cwd=str(cwd) if cwd else None,
                env=dict(env) if env is not None else None,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                check=False,
            )
            result = CommandResult(
                args=argv,
                exit_code=proc.returncode,
                stdout=proc.stdout or "",
                stderr=proc.stderr or "",
            )
        else:
            proc = subprocess.run(
                argv,
                cwd=str(cwd) if cwd else None,
                env=dict(env) if env is not None else None,
                check=False,
            )
            result = CommandResult(args=argv, exit_code=proc.returncode)
    except FileNotFoundError as exc:
        raise CommandNotFound(argv[0]) from exc

    if not result.success:
        logger.debug("%s exited with %d", argv[0], result.exit_code)
    return result
