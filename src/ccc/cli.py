"""CLI entry point for ccc."""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

import click

from ccc.config.settings import ExecutionMode
from ccc.context import AppContext
from ccc.courses.registry import DEFAULT_COURSE
from ccc.engine.installer import SetupState, setup_hint
from ccc.engine.lifecycle import ContainerStatus
from ccc.engine.upgrade import Upgrader, current_version
from ccc.errors import CccError, ConfigError, NotInstalled

ALIASES = {"s": "setup", "ls": "list"}


class AliasedGroup(click.Group):
    """Group that also accepts the short command names in ``ALIASES``."""

    def get_command(self, ctx: click.Context, cmd_name: str) -> Optional[click.Command]:
        return super().get_command(ctx, ALIASES.get(cmd_name, cmd_name))

    def resolve_command(self, ctx: click.Context, args: list[str]):
        name, cmd, rest = super().resolve_command(ctx, args)
        return (cmd.name if cmd else name), cmd, rest


def setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        stream=sys.stderr,
    )


def _echo_table(headers: Sequence[str], rows: Sequence[Sequence[str]]) -> None:
    widths = [len(h) for h in headers]
    for row in rows:
        widths = [max(w, len(cell)) for w, cell in zip(widths, row)]
    click.echo("  ".join(f"{h:<{w}}" for h, w in zip(headers, widths)).rstrip())
    for row in rows:
        click.echo("  ".join(f"{cell:<{w}}" for cell, w in zip(row, widths)).rstrip())


def _yes_no(value: bool) -> str:
    return click.style("YES", fg="green") if value else click.style("NO", fg="red")


def _echo_status(course: str, status: ContainerStatus) -> None:
    click.echo(f"Course: {course}")
    click.echo(f"Image: {status.identity.image_name}")
    click.echo(f"Container: {status.identity.container_name}")
    click.echo(f"Base image: {status.identity.base_image}")
    click.echo(f"Volume: {status.volume or '(not configured)'}")
    click.echo(f"Network: {status.network}")
    click.echo(f"Platform: {status.platform}")
    click.echo(f"Runtime: {status.runtime}")
    click.echo("")
    click.echo(f"Has runtime? {_yes_no(status.has_runtime)}")
    click.echo(f"Built image? {_yes_no(status.has_image)}")
    click.echo(f"Set up container? {_yes_no(status.has_container)}")
    click.echo(f"Created network? {_yes_no(status.has_network)}")


def _validate_course(app: AppContext, course: str, hint: str = "") -> None:
    """Fail with the available course list unless ``course`` is known."""
    if course != DEFAULT_COURSE:
        app.registry.lookup(course, hint=hint)


@click.group(cls=AliasedGroup, invoke_without_command=True)
@click.option("-v", "--verbose", is_flag=True, help="Show detailed output.")
@click.option(
    "--mode",
    type=click.Choice([m.value for m in ExecutionMode]),
    default=None,
    help="Where course commands run: delegated to a container (host), "
    "in this process inside a container (container), or in this process "
    "without container checks (local). Defaults to auto-detection.",
)
@click.version_option(version=current_version(), prog_name="ccc")
@click.pass_context
def main(ctx: click.Context, verbose: bool, mode: Optional[str]) -> None:
    """CCC: Common Course Containers for CS courses."""
    setup_logging(verbose)
    if ctx.obj is None:
        ctx.obj = AppContext(verbose=verbose)
    app: AppContext = ctx.obj
    app.verbose = app.verbose or verbose
    if mode:
        app.settings = app.settings.model_copy(update={"mode": ExecutionMode(mode)})

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())
        click.echo("")
        click.echo("Available courses:")
        for course_id in app.registry.course_ids():
            click.echo(f"  {course_id}")
        click.echo("")
        click.echo("Example: ccc setup csci-0300-demo")


@main.command()
@click.pass_obj
def init(app: AppContext) -> None:
    """Use ./courses as the courses directory."""
    courses_dir = Path.cwd() / "courses"
    click.echo(f"Setting up courses directory at: {courses_dir}")
    if courses_dir.is_dir():
        click.echo(f"Using existing directory: {courses_dir}")
    elif courses_dir.exists():
        raise ConfigError(f"{courses_dir} exists and is not a directory")
    else:
        courses_dir.mkdir(parents=True)
        click.echo(f"Created courses directory: {courses_dir}")

    app.store.save(courses_dir)
    if app.store.create_default_settings():
        click.echo(f"Created default settings file: {app.store.settings_file}")

    click.echo(f"Configuration saved to: {app.store.config_file}")
    click.secho("Setup complete! You can now run 'ccc setup <course>' to install courses.", fg="green")
    click.echo("You can run 'ccc run <course>' to start a container.")


@main.command()
@click.argument("course")
@click.pass_obj
def setup(app: AppContext, course: str) -> None:
    """Clone COURSE and run its setup script."""
    _validate_course(app, course, hint=setup_hint(course, app.settings.registry_file))
    if app.mode == ExecutionMode.HOST:
        identity = app.resolver.resolve(course)
        app.manager().delegate("setup", [course], identity, verbose=app.verbose)
        return

    result = app.engine().setup(course)
    if result.state == SetupState.SETUP_RUN:
        click.secho(f"Course '{course}' is set up in {result.path}", fg="green")
    elif result.state == SetupState.SETUP_MISSING:
        click.echo(f"Course '{course}' downloaded to {result.path}")


@main.command()
@click.argument("name")
@click.pass_obj
def update(app: AppContext, name: str) -> None:
    """Pull the latest version of an installed course.

    NAME is a course id or the directory name of an installation.
    """
    if app.mode == ExecutionMode.HOST:
        if app.registry.get_course(name) is not None:
            identity = app.resolver.resolve(name)
        else:
            identity = app.resolver.default_identity()
        app.manager().delegate("update", [name], identity, verbose=app.verbose)
        return

    installation = app.engine().update(name)
    click.secho(f"Updated {installation.basename} to {installation.commit[:12] or 'unknown'}", fg="green")


@main.command(name="list")
@click.pass_obj
def list_installed(app: AppContext) -> None:
    """List installed courses."""
    rows = [
        (i.basename, i.course_id, i.remote_url, i.commit)
        for i in app.engine().installed()
    ]
    _echo_table(("BASENAME", "COURSE", "COURSE_REPO", "COMMIT"), rows)


@main.command()
@click.pass_obj
def courses(app: AppContext) -> None:
    """List courses available in the registry."""
    rows = [
        (e.course_id, e.display_name, e.term, e.base_image)
        for e in app.registry.list_courses()
    ]
    _echo_table(("COURSE", "NAME", "TERM", "BASE_IMAGE"), rows)


@main.group(invoke_without_command=True)
@click.pass_context
def config(ctx: click.Context) -> None:
    """Show the current configuration."""
    if ctx.invoked_subcommand is not None:
        return
    app: AppContext = ctx.obj
    saved = app.store.saved_courses_dir()
    if saved:
        click.echo(f"Courses directory: {saved}")
        click.echo(f"Config file: {app.store.config_file}")
    else:
        click.echo("No configuration found. Run 'ccc init' to set up.")
    override = app.store.environment_override()
    if override:
        click.echo(f"Overridden by CCC_COURSES_DIR: {override}")

    settings = app.settings
    click.echo(f"Settings file: {app.store.settings_file}")
    click.echo(f"  CCC_IMAGE_PREFIX={settings.image_prefix}")
    click.echo(f"  CCC_NETWORK_NAME={settings.network_name}")
    click.echo(f"  CCC_DEFAULT_BASE_IMAGE={settings.default_base_image}")
    click.echo(f"  CCC_MOUNT_PATH={settings.mount_path}")
    click.echo(f"  CCC_UPDATE_REPO={settings.update_repo}")
    click.echo(f"  CCC_REGISTRY_FILE={settings.registry_file}")
    click.echo(f"  CCC_CONTAINER_RUNTIME={settings.container_runtime or 'auto'}")
    click.echo(f"  CCC_MODE={settings.mode.value}")


@config.command(name="set-courses-dir")
@click.argument("path", type=click.Path(path_type=Path))
@click.pass_obj
def set_courses_dir(app: AppContext, path: Path) -> None:
    """Change the courses directory to PATH (must already exist)."""
    saved = app.store.save(path)
    click.echo(f"Courses directory updated to: {saved}")
    click.echo(f"Config file: {app.store.config_file}")


@main.command(name="run")
@click.argument("course")
@click.pass_obj
def run_course(app: AppContext, course: str) -> None:
    """Start or attach to the container for COURSE."""
    _validate_course(app, course)
    if app.mode == ExecutionMode.CONTAINER:
        raise CccError(
            "Cannot switch containers from inside a container\n"
            f"To switch to '{course}', exit this container and run from the host:\n"
            f"   ccc run {course}"
        )

    courses_dir = app.courses_dir()
    if course != DEFAULT_COURSE and not (courses_dir / course).is_dir():
        raise NotInstalled(
            f"Course '{course}' not set up locally\n"
            f"Run 'ccc setup {course}' first to download course content"
        )

    manager = app.manager()
    identity = app.resolver.resolve(course)
    if app.verbose:
        _echo_status(course, manager.status(identity))
        click.echo("")
    manager.run_course(course)


@main.command()
@click.argument("course", default=DEFAULT_COURSE)
@click.pass_obj
def build(app: AppContext, course: str) -> None:
    """Build the image for COURSE (the default image if omitted)."""
    _validate_course(app, course)
    identity = app.resolver.resolve(course)
    app.manager(require_courses_dir=False).build_for(identity)
    click.secho("Image build completed", fg="green")


@main.command()
@click.argument(
    "what",
    type=click.Choice(["containers", "images", "networks", "all"]),
    default="all",
)
@click.pass_obj
def clean(app: AppContext, what: str) -> None:
    """Remove ccc containers, images and/or the network."""
    manager = app.manager(require_courses_dir=False)
    if what in ("containers", "all"):
        manager.remove_containers()
    if what in ("images", "all"):
        manager.remove_images()
    if what in ("networks", "all"):
        manager.remove_network()


@main.command()
@click.argument("course", default=DEFAULT_COURSE)
@click.pass_obj
def status(app: AppContext, course: str) -> None:
    """Show container status for COURSE."""
    _validate_course(app, course)
    identity = app.resolver.resolve(course)
    _echo_status(course, app.manager(require_courses_dir=False).status(identity))


@main.command()
@click.pass_obj
def upgrade(app: AppContext) -> None:
    """Upgrade ccc itself to the latest release."""
    with Upgrader(app.settings) as upgrader:
        upgrader.upgrade()

