"""Pipeline driver: resolve → ledger check → fetch → build → record.

Dependencies run strictly in declaration order: later ones link against
earlier ones through the shared workspace prefix.  The first exception marks
the current dependency ``failed`` and aborts the whole run; nothing after it
executes and no ledger entry is written for it.
"""

from __future__ import annotations

import os
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

import structlog

from magick_builder.exceptions import ConfigurationError
from magick_builder.executor import TaskExecutor
from magick_builder.fetcher import Fetcher
from magick_builder.ledger import BuildLedger
from magick_builder.models.dependency import BuildStep, DependencySpec
from magick_builder.models.environment import BuildEnvironment
from magick_builder.models.version import ResolvedVersion, Version
from magick_builder.progress import ProgressTracker
from magick_builder.resolver.resolver import VersionResolver

log = structlog.get_logger("magick_builder.pipeline")

Status = Literal["built", "skipped"]


@dataclass
class DependencyOutcome:
    name: str
    version: str
    status: Status
    source_dir: Path | None = None


@dataclass
class PipelineResult:
    """What a completed run did, dependency by dependency."""

    outcomes: list[DependencyOutcome] = field(default_factory=list)
    target: DependencyOutcome | None = None
    installed_version: str | None = None

    @property
    def built(self) -> list[str]:
        return [o.name for o in self.outcomes if o.status == "built"]

    @property
    def skipped(self) -> list[str]:
        return [o.name for o in self.outcomes if o.status == "skipped"]


@dataclass
class PlanEntry:
    name: str
    version: str
    recorded: str | None

    @property
    def up_to_date(self) -> bool:
        return self.recorded == self.version


def placeholders_for(version: ResolvedVersion) -> dict[str, str]:
    """Version-derived placeholders available to fetch URLs and build steps."""
    text = str(version)
    return {"version": text, "version_dashed": text.replace(".", "-")}


def validate_unique(specs: Sequence[DependencySpec]) -> None:
    seen: set[str] = set()
    for spec in specs:
        if spec.name in seen:
            raise ConfigurationError(f"duplicate dependency name: {spec.name}")
        seen.add(spec.name)


class PipelineDriver:
    """Run the ordered dependency list, then the final target."""

    def __init__(
        self,
        env: BuildEnvironment,
        resolver: VersionResolver,
        fetcher: Fetcher,
        executor: TaskExecutor,
        ledger: BuildLedger,
    ) -> None:
        self.env = env
        self.resolver = resolver
        self.fetcher = fetcher
        self.executor = executor
        self.ledger = ledger
        self.progress = ProgressTracker()
        self._sudo: bool | None = None

    # ── public ─────────────────────────────────────────────────────────────

    def run(
        self,
        dependencies: Sequence[DependencySpec],
        target: DependencySpec | None = None,
    ) -> PipelineResult:
        """Build every dependency (skipping up-to-date ones), then *target*.

        The target is never ledger-skipped and never recorded: it always
        rebuilds against the freshly assembled prefix.
        """
        specs = list(dependencies) + ([target] if target is not None else [])
        validate_unique(specs)

        self.progress = ProgressTracker()
        for spec in specs:
            self.progress.add(spec.name)

        self.env.workspace.mkdir(parents=True, exist_ok=True)
        self.env.packages_dir.mkdir(parents=True, exist_ok=True)

        result = PipelineResult()
        for spec in dependencies:
            result.outcomes.append(self._process(spec, use_ledger=True))

        if target is not None:
            result.target = self._process(target, use_ledger=False)
            result.installed_version = self.installed_version()

        log.info(
            "pipeline.done",
            built=len(result.built),
            skipped=len(result.skipped),
            target=result.target.version if result.target else None,
        )
        return result

    def plan(self, dependencies: Sequence[DependencySpec]) -> list[PlanEntry]:
        """Resolve versions and compare with the ledger without fetching or building."""
        validate_unique(dependencies)
        entries = []
        for spec in dependencies:
            version = str(self.resolver.resolve(spec.version_source))
            entries.append(PlanEntry(spec.name, version, self.ledger.get(spec.name)))
        return entries

    def installed_version(self) -> str | None:
        """Ask the freshly installed ``magick`` binary for its version."""
        magick = self.env.install_prefix / "bin" / "magick"
        output = self.executor.run([str(magick), "-version"])
        first_line = output.splitlines()[0] if output else ""
        found = Version.search(first_line)
        return str(found) if found else first_line or None

    # ── internal ───────────────────────────────────────────────────────────

    def _process(self, spec: DependencySpec, use_ledger: bool) -> DependencyOutcome:
        name = spec.name
        bound = log.bind(dependency=name)
        try:
            self.progress.transition(name, "resolving")
            version = self.resolver.resolve(spec.version_source)
            text = str(version)

            if use_ledger and self.ledger.is_up_to_date(name, text):
                bound.info(
                    "pipeline.skip",
                    version=text,
                    hint=f"remove {self.ledger.directory / (name + '.done')} to rebuild",
                )
                self.progress.transition(name, "skipped", version=text)
                return DependencyOutcome(name, text, "skipped")

            bound.info("pipeline.build", version=text)
            self.progress.transition(name, "fetching", version=text)
            values = placeholders_for(version)
            source_dir = self.fetcher.fetch(spec.fetch, **values)

            self.progress.transition(name, "building")
            for step in spec.steps:
                self._run_step(step, source_dir, values)

            if use_ledger:
                self.ledger.record(name, text)
                self.progress.transition(name, "recorded")
            else:
                self.progress.transition(name, "built")
            return DependencyOutcome(name, text, "built", source_dir)
        except Exception as exc:
            bound.error("pipeline.failed", error=str(exc))
            self.progress.transition(name, "failed", error=str(exc))
            raise

    def _run_step(self, step: BuildStep, source_dir: Path, values: dict[str, str]) -> None:
        render_values = {**values, "source": source_dir}
        argv = [self.env.render(arg, **render_values) for arg in step.argv]
        cwd = source_dir / self.env.render(step.cwd, **render_values) if step.cwd else source_dir
        if (step.requires_root and os.geteuid() != 0) or (step.privileged and self._needs_sudo()):
            argv = ["sudo", *argv]
        self.executor.run(argv, cwd=cwd, env=dict(step.env))

    def _needs_sudo(self) -> bool:
        if self._sudo is None:
            self._sudo = os.geteuid() != 0 and not _writable(self.env.install_prefix)
        return self._sudo


def _writable(path: Path) -> bool:
    """Whether *path* (or its nearest existing parent) is writable."""
    for candidate in (path, *path.parents):
        if candidate.exists():
            return os.access(candidate, os.W_OK)
    return False
