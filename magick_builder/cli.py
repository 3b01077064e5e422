"""CLI entry point: build-magick.

Builds every dependency into ``<root>/workspace`` and then ImageMagick into
the install prefix.  Exit status is 0 on success and 1 on any fatal error.

    build-magick                     # full build, prompts for cleanup at the end
    build-magick --dry-run           # show resolved versions vs. the ledger
    build-magick -j 8 --keep         # 8 parallel jobs, keep build files
"""

from __future__ import annotations

import os
import shutil
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import click
import structlog

from magick_builder import __version__
from magick_builder.core.logging import setup_logging
from magick_builder.exceptions import BuilderError, ConfigurationError, ExecutionError
from magick_builder.executor import TaskExecutor
from magick_builder.fetcher import Fetcher
from magick_builder.git import GitRemote
from magick_builder.ledger import BuildLedger
from magick_builder.models.environment import BuildEnvironment
from magick_builder.notify import DesktopNotifier
from magick_builder.pipeline import PipelineDriver, PipelineResult
from magick_builder.recipes import DEPENDENCIES, IMAGEMAGICK
from magick_builder.resolver.hosting import GitHubClient, GitLabClient
from magick_builder.resolver.resolver import VersionResolver

log = structlog.get_logger("magick_builder.cli")

BUG_REPORT_URL = "https://github.com/slyfox1186/imagemagick-build-script/issues"


def check_privileges(allow_root: bool) -> None:
    """Refuse to run as root; the build itself escalates only for installs."""
    if allow_root:
        return
    if hasattr(os, "geteuid") and os.geteuid() == 0:
        raise ConfigurationError("This script must be run WITHOUT root/sudo (use --allow-root to override)")


@contextmanager
def build_driver(env: BuildEnvironment) -> Iterator[PipelineDriver]:
    """Wire the components for *env* and close their HTTP clients afterwards."""
    git = GitRemote(env=env.process_env())
    resolver = VersionResolver(
        github=GitHubClient(env.user_agent, token=env.github_token),
        git=git,
        gitlab_factory=lambda host: GitLabClient(env.user_agent, host=host),
    )
    fetcher = Fetcher(env, git)
    executor = TaskExecutor(env, notifier=DesktopNotifier())
    try:
        yield PipelineDriver(env, resolver, fetcher, executor, BuildLedger(env.ledger_dir))
    finally:
        resolver.close()
        fetcher.close()


def _print_summary(driver: PipelineDriver, result: PipelineResult) -> None:
    summary = driver.progress.get_summary()
    click.echo(f"\nBuild summary (total: {summary['total_duration']}s):")
    for d in summary["dependencies"]:
        icon = {
            "recorded": "+",
            "built": "+",
            "skipped": "-",
            "failed": "!",
        }.get(d["state"], ".")
        duration = f" ({d['duration']}s)" if d["duration"] else ""
        version = f" {d['version']}" if d["version"] else ""
        click.echo(f"  [{icon}] {d['name']}{version}{duration}")
    if result.installed_version:
        click.echo(f"\nImageMagick's new version is: {result.installed_version}")


def _report_failure(exc: BuilderError, driver: PipelineDriver | None) -> None:
    click.echo("", err=True)
    if isinstance(exc, ExecutionError):
        click.echo(f"Failed to execute: {exc.command_line}", err=True)
        tail = exc.output.strip().splitlines()[-20:]
        if tail:
            click.echo("\n".join(tail), err=True)
    else:
        click.echo(str(exc), err=True)
    if driver is not None:
        failed = [p.name for p in driver.progress.items if p.state == "failed"]
        if failed:
            click.echo(f"\nFailed while building: {failed[0]}", err=True)
    click.echo(f"\nTo report a bug please visit: {BUG_REPORT_URL}", err=True)


def _cleanup(root: Path, cleanup: bool | None) -> None:
    if cleanup is None:
        if not sys.stdin.isatty():
            return
        cleanup = click.confirm("Do you want to remove the build files?", default=False)
    if cleanup and root.exists():
        shutil.rmtree(root)
        click.echo(f"Removed {root}")


@click.command()
@click.option(
    "--root",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Work directory for downloads, sources and the local prefix",
)
@click.option(
    "--prefix",
    "install_prefix",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Where ImageMagick itself is installed (default /usr/local)",
)
@click.option("-j", "--jobs", type=click.IntRange(min=1), default=None, help="Parallel build jobs")
@click.option("-v", "--verbose", is_flag=True, help="Stream build output and log debug details")
@click.option(
    "--cleanup/--keep",
    default=None,
    help="Remove or keep the work directory at the end instead of asking",
)
@click.option("--allow-root", is_flag=True, help="Permit running as root")
@click.option("--dry-run", is_flag=True, help="Resolve versions and compare with the ledger only")
@click.version_option(__version__, prog_name="build-magick")
def main(
    root: Path | None,
    install_prefix: Path | None,
    jobs: int | None,
    verbose: bool,
    cleanup: bool | None,
    allow_root: bool,
    dry_run: bool,
) -> None:
    """Build ImageMagick 7 and its dependencies from source."""
    setup_logging(verbose)
    driver: PipelineDriver | None = None
    try:
        check_privileges(allow_root)
        env = BuildEnvironment.from_env(
            root=root,
            install_prefix=install_prefix,
            jobs=jobs,
            verbose=True if verbose else None,
        )
        log.info("cli.start", root=str(env.root), prefix=str(env.install_prefix), jobs=env.jobs)

        with build_driver(env) as driver:
            if dry_run:
                for entry in driver.plan([*DEPENDENCIES, IMAGEMAGICK]):
                    state = "up to date" if entry.up_to_date else f"recorded {entry.recorded or '-'}"
                    click.echo(f"{entry.name:<14} {entry.version:<16} {state}")
                return
            result = driver.run(DEPENDENCIES, IMAGEMAGICK)
    except BuilderError as exc:
        _report_failure(exc, driver)
        sys.exit(1)

    _print_summary(driver, result)
    _cleanup(env.root, cleanup)
    click.echo("\nThe script has completed")
