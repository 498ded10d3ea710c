"""Clone, update and set up course checkouts under the courses directory."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

import click

from ccc.courses.registry import DEFAULT_COURSE, CourseRegistry, RegistryEntry
from ccc.engine.process import run
from ccc.engine.vcs import VcsClient, normalize_remote_url
from ccc.errors import CourseNotFound, NotAVcsCheckout, NotInstalled, SetupScriptFailed

logger = logging.getLogger(__name__)

SETUP_SCRIPT = "setup.sh"
ENVRC_FILE = ".envrc"
CONTEXT_VARIABLE = "CCC_EXPECTED_COURSE"

ScriptRunner = Callable[[Path, Path], int]


class SetupState(str, Enum):
    DEFAULT = "default"  # base environment, nothing to clone
    SETUP_RUN = "setup_run"
    SETUP_MISSING = "setup_missing"


@dataclass
class SetupResult:
    course_id: str
    state: SetupState
    path: Optional[Path] = None
    cloned: bool = False


@dataclass(frozen=True)
class CourseInstallation:
    basename: str
    path: Path
    course_id: str
    remote_url: str
    commit: str


def unique_path(base: Path) -> Path:
    """``base`` if free, else the first free ``base-1``, ``base-2``, ..."""
    candidate = base
    suffix = 1
    while candidate.exists() or candidate.is_symlink():
        candidate = base.with_name(f"{base.name}-{suffix}")
        suffix += 1
    return candidate


def run_setup_script(script: Path, cwd: Path) -> int:
    return run(["bash", str(script)], cwd=cwd, echo=True).exit_code


def setup_hint(course_id: str, registry_source: object) -> str:
    """What to do when a course cannot be installed from the registry."""
    script = f"{course_id}/{SETUP_SCRIPT}"
    return (
        "(1) To install a course repository manually, run:\n"
        f"       git clone <course-url> {course_id}\n"
        f"       chmod +x {script}\n"
        f"       bash {script}\n"
        "(2) To add a new course to ccc, email problem@cs.brown.edu\n"
        f"    with the course name ({course_id}) and the <course-url>\n"
        "(3) To modify the course registry locally during development,\n"
        f"    edit the registry file at {registry_source}"
    )


class InstallEngine:
    def __init__(
        self,
        registry: CourseRegistry,
        vcs: VcsClient,
        courses_dir: Path,
        script_runner: Optional[ScriptRunner] = None,
    ):
        self.registry = registry
        self.vcs = vcs
        self.courses_dir = Path(courses_dir)
        self.script_runner = script_runner or run_setup_script

    def setup(self, course_id: str) -> SetupResult:
        if course_id == DEFAULT_COURSE:
            click.echo("Default container setup complete!")
            click.echo("You are now in the base CCC container environment.")
            click.echo("To install a specific course, use: ccc setup <course-name>")
            return SetupResult(course_id=course_id, state=SetupState.DEFAULT)

        canonical = self.courses_dir / course_id
        entry = self._lookup_for_setup(course_id)

        existing = self._find_installation(course_id, entry)
        if existing is not None:
            click.echo(f"Course directory already exists: {existing}")
            click.echo("Updating repository...")
            self.vcs.pull(existing)
            return self._run_setup(course_id, existing, cloned=False)

        path = unique_path(canonical)
        if path != canonical:
            logger.debug("%s is taken, cloning into %s", canonical, path)
        self.vcs.clone(entry.repo_url, path)
        return self._run_setup(course_id, path, cloned=True)

    def update(self, name: str) -> CourseInstallation:
        """Fast-forward an existing checkout. ``name`` is a course id or a directory basename."""
        if name in ("", ".", "..") or "/" in name or "\\" in name:
            raise CourseNotFound(
                name,
                self.registry.course_ids(),
                hint=f"'{name}' is not a directory name inside {self.courses_dir}",
            )
        path = self.courses_dir / name
        if not path.is_dir():
            entries = self.registry.list_courses()
            if any(e.course_id == name for e in entries):
                raise NotInstalled(
                    f"Course '{name}' is not installed in {self.courses_dir}\n"
                    f"Run 'ccc setup {name}' first"
                )
            raise CourseNotFound(
                name,
                [e.course_id for e in entries],
                hint=f"No course directory named '{name}' in {self.courses_dir} either",
            )
        if not self.vcs.is_checkout(path):
            raise NotAVcsCheckout(f"{path} is not a git repository")

        self.vcs.pull(path)
        installation = self.inspect(path)
        if installation is None:
            installation = CourseInstallation(
                basename=path.name,
                path=path,
                course_id="",
                remote_url=self.vcs.remote_url(path) or "",
                commit=self.vcs.head_commit(path) or "",
            )
        return installation

    def installed(self) -> list[CourseInstallation]:
        if not self.courses_dir.is_dir():
            return []
        found = []
        for path in sorted(self.courses_dir.iterdir()):
            if not path.is_dir():
                logger.debug("skipping non-directory %s", path)
                continue
            installation = self.inspect(path)
            if installation is not None:
                found.append(installation)
        return found

    def inspect(self, path: Path) -> Optional[CourseInstallation]:
        """Describe ``path`` if it is a checkout of a registry course."""
        remote_url = self.vcs.remote_url(path)
        if not remote_url:
            logger.debug("no git remote for %s", path)
            return None
        entry = self.registry.find_by_url(remote_url, normalize=normalize_remote_url)
        if entry is None:
            logger.debug("%s (%s) is not a registry course", path, remote_url)
            return None
        commit = self.vcs.head_commit(path)
        if not commit:
            logger.debug("no HEAD commit in %s", path)
            return None
        return CourseInstallation(
            basename=path.name,
            path=path,
            course_id=entry.course_id,
            remote_url=remote_url,
            commit=commit,
        )

    def add_course_context(self, course_id: str, path: Path) -> bool:
        """Record the course in the checkout's ``.envrc``. Returns False if already there."""
        envrc = path / ENVRC_FILE
        if envrc.is_file() and CONTEXT_VARIABLE in envrc.read_text():
            click.echo(f"Course context already exists in {envrc}")
            return False
        with open(envrc, "a") as f:
            f.write(
                "\n# Course context information added by CCC\n"
                f'export {CONTEXT_VARIABLE}="{course_id}"\n'
            )
        click.echo(f"Course context added to {envrc}")
        return True

    def _lookup_for_setup(self, course_id: str) -> RegistryEntry:
        hint = setup_hint(course_id, getattr(self.registry.fetcher, "path", "the registry"))
        entry = self.registry.lookup(course_id, hint=hint)
        if not entry.repo_url:
            raise CourseNotFound(course_id, self.registry.course_ids(), hint=hint)
        return entry

    def _find_installation(self, course_id: str, entry: RegistryEntry) -> Optional[Path]:
        """An earlier checkout of ``entry`` at ``course_id`` or one of its ``-N`` paths."""
        canonical = self.courses_dir / course_id
        candidates = [canonical]
        if self.courses_dir.is_dir():
            candidates += sorted(
                path for path in self.courses_dir.iterdir()
                if path.name.startswith(f"{course_id}-") and path.name[len(course_id) + 1:].isdigit()
            )
        for path in candidates:
            if self._is_installation_of(path, entry):
                return path
        return None

    def _is_installation_of(self, path: Path, entry: RegistryEntry) -> bool:
        if not path.is_dir() or not self.vcs.is_checkout(path):
            return False
        return self.vcs.remote_url(path) == normalize_remote_url(entry.repo_url)

    def _run_setup(self, course_id: str, path: Path, cloned: bool) -> SetupResult:
        script = path / SETUP_SCRIPT
        if not script.is_file():
            click.secho(f"WARNING: No {SETUP_SCRIPT} found in {path}", fg="yellow", err=True)
            click.echo(
                "         Check with course staff if there should be a setup script for the course\n"
                "         Continuing without running setup script...",
                err=True,
            )
            return SetupResult(course_id=course_id, state=SetupState.SETUP_MISSING, path=path, cloned=cloned)

        script.chmod(script.stat().st_mode | 0o111)
        returncode = self.script_runner(script, path)
        if returncode != 0:
            raise SetupScriptFailed(script, returncode)

        self.add_course_context(course_id, path)
        return SetupResult(course_id=course_id, state=SetupState.SETUP_RUN, path=path, cloned=cloned)
