"""Tests for the pipeline driver: ordering, ledger skips and failure handling."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock

import pytest

from magick_builder.exceptions import ConfigurationError, ExecutionError, FetchError
from magick_builder.ledger import BuildLedger
from magick_builder.models.dependency import BuildStep, DependencySpec, FetchSpec, FixedVersion
from magick_builder.pipeline import PipelineDriver, placeholders_for
from magick_builder.recipes import IMAGEMAGICK
from magick_builder.resolver.resolver import VersionResolver


class FakeFetcher:
    def __init__(self, root: Path, fail_on: str | None = None):
        self.root = root
        self.fail_on = fail_on
        self.fetched: list[tuple[str, str]] = []

    def fetch(self, spec: FetchSpec, **placeholders: object) -> Path:
        if spec.url == self.fail_on:
            raise FetchError(f"failed to fetch {spec.url} twice")
        self.fetched.append((spec.url, str(placeholders["version"])))
        dest = self.root / f"{spec.url}-{placeholders['version']}"
        dest.mkdir(parents=True, exist_ok=True)
        return dest


class FakeExecutor:
    def __init__(self, fail_on: str | None = None, version_line: str = "Version: ImageMagick 7.1.1-23 Q16-HDRI"):
        self.fail_on = fail_on
        self.version_line = version_line
        self.calls: list[tuple[list[str], Path | None]] = []
        self.envs: list[dict[str, str] | None] = []

    def run(self, argv, *, cwd=None, env=None) -> str:
        argv = list(argv)
        if argv[-1] == "-version":
            return self.version_line + "\nCopyright: (C) 1999 ImageMagick Studio LLC\n"
        self.calls.append((argv, cwd))
        self.envs.append(env)
        if self.fail_on and self.fail_on in argv:
            raise ExecutionError(argv, 2, "make: *** [all] Error 2")
        return ""


def _dep(name: str, version: str = "1.0", *steps: BuildStep) -> DependencySpec:
    return DependencySpec(
        name=name,
        version_source=FixedVersion(version),
        fetch=FetchSpec(name),
        steps=steps or (BuildStep("make", name),),
    )


@pytest.fixture
def fetcher(tmp_path):
    return FakeFetcher(tmp_path / "src")


@pytest.fixture
def executor():
    return FakeExecutor()


@pytest.fixture
def driver(build_env, fetcher, executor):
    resolver = VersionResolver(MagicMock(), MagicMock(), lambda host: MagicMock())
    return PipelineDriver(build_env, resolver, fetcher, executor, BuildLedger(build_env.ledger_dir))


class TestRun:
    def test_builds_in_order_and_records(self, driver, fetcher, executor):
        result = driver.run([_dep("a"), _dep("b", "2.0"), _dep("c")])

        assert [url for url, _ in fetcher.fetched] == ["a", "b", "c"]
        assert [argv for argv, _ in executor.calls] == [["make", "a"], ["make", "b"], ["make", "c"]]
        assert result.built == ["a", "b", "c"]
        assert driver.ledger.entries() == {"a": "1.0", "b": "2.0", "c": "1.0"}
        assert [p.state for p in driver.progress.items] == ["recorded"] * 3

    def test_second_run_does_nothing(self, driver, fetcher, executor):
        deps = [_dep("a"), _dep("b")]
        driver.run(deps)
        fetcher.fetched.clear()
        executor.calls.clear()

        result = driver.run(deps)

        assert fetcher.fetched == []
        assert executor.calls == []
        assert result.skipped == ["a", "b"]
        assert [p.state for p in driver.progress.items] == ["skipped", "skipped"]

    def test_version_change_rebuilds(self, driver, fetcher):
        driver.run([_dep("a", "1.0")])
        fetcher.fetched.clear()

        driver.run([_dep("a", "1.1")])

        assert fetcher.fetched == [("a", "1.1")]
        assert driver.ledger.get("a") == "1.1"

    def test_deleting_entry_rebuilds_only_that_dependency(self, driver, fetcher):
        deps = [_dep("a"), _dep("b"), _dep("c")]
        driver.run(deps)
        fetcher.fetched.clear()

        driver.ledger.forget("b")
        driver.run(deps)

        assert fetcher.fetched == [("b", "1.0")]

    def test_build_failure_is_fatal(self, build_env, fetcher):
        executor = FakeExecutor(fail_on="b")
        resolver = VersionResolver(MagicMock(), MagicMock(), lambda host: MagicMock())
        driver = PipelineDriver(build_env, resolver, fetcher, executor, BuildLedger(build_env.ledger_dir))

        with pytest.raises(ExecutionError):
            driver.run([_dep("a"), _dep("b"), _dep("c")])

        assert [url for url, _ in fetcher.fetched] == ["a", "b"]
        assert driver.ledger.entries() == {"a": "1.0"}
        states = {p.name: p.state for p in driver.progress.items}
        assert states == {"a": "recorded", "b": "failed", "c": "pending"}
        assert "Failed to execute" in driver.progress.get("b").error

    def test_fetch_failure_is_fatal(self, build_env):
        fetcher = FakeFetcher(build_env.root / "src", fail_on="b")
        resolver = VersionResolver(MagicMock(), MagicMock(), lambda host: MagicMock())
        driver = PipelineDriver(build_env, resolver, fetcher, FakeExecutor(), BuildLedger(build_env.ledger_dir))

        with pytest.raises(FetchError):
            driver.run([_dep("a"), _dep("b"), _dep("c")])

        assert driver.ledger.get("b") is None
        assert driver.ledger.get("c") is None

    def test_target_always_rebuilt_and_never_recorded(self, driver, fetcher):
        target = _dep("ImageMagick", "7.1.1-23")
        driver.run([_dep("a")], target)
        fetcher.fetched.clear()

        result = driver.run([_dep("a")], target)

        assert fetcher.fetched == [("ImageMagick", "7.1.1-23")]
        assert driver.ledger.get("ImageMagick") is None
        assert result.target.status == "built"
        assert driver.progress.get("ImageMagick").state == "built"
        assert result.installed_version == "7.1.1-23"

    def test_duplicate_names_rejected_before_work(self, driver, fetcher):
        with pytest.raises(ConfigurationError, match="a"):
            driver.run([_dep("a"), _dep("b"), _dep("a")])
        assert fetcher.fetched == []

    def test_target_name_clash_rejected(self, driver):
        with pytest.raises(ConfigurationError):
            driver.run([_dep("a")], _dep("a"))

    def test_creates_workspace(self, driver, build_env):
        driver.run([])
        assert build_env.workspace.is_dir()
        assert build_env.packages_dir.is_dir()


class TestSteps:
    def test_placeholders_rendered(self, driver, executor, build_env):
        dep = _dep(
            "freetype",
            "2.13.2",
            BuildStep("./configure", "--prefix={prefix}", "VER-{version_dashed}"),
            BuildStep("make", "-j{jobs}", cwd="build"),
        )
        driver.run([dep])

        (configure, configure_cwd), (make, make_cwd) = executor.calls
        assert configure == ["./configure", f"--prefix={build_env.workspace}", "VER-2-13-2"]
        assert make == ["make", "-j2"]
        assert make_cwd == configure_cwd / "build"

    def test_privileged_step_uses_sudo_when_prefix_not_writable(self, driver, executor, monkeypatch):
        monkeypatch.setattr("magick_builder.pipeline.os.geteuid", lambda: 1000)
        monkeypatch.setattr("magick_builder.pipeline._writable", lambda path: False)
        driver.run([_dep("x", "1.0", BuildStep("make", "install", privileged=True), BuildStep("make"))])
        assert [argv for argv, _ in executor.calls] == [["sudo", "make", "install"], ["make"]]

    def test_privileged_step_without_sudo_when_writable(self, driver, executor, monkeypatch):
        monkeypatch.setattr("magick_builder.pipeline.os.geteuid", lambda: 1000)
        monkeypatch.setattr("magick_builder.pipeline._writable", lambda path: True)
        driver.run([_dep("x", "1.0", BuildStep("make", "install", privileged=True))])
        assert executor.calls[0][0] == ["make", "install"]

    def test_root_step_uses_sudo_even_when_prefix_writable(self, driver, executor, monkeypatch):
        monkeypatch.setattr("magick_builder.pipeline.os.geteuid", lambda: 1000)
        monkeypatch.setattr("magick_builder.pipeline._writable", lambda path: True)
        step = IMAGEMAGICK.steps[-1]
        driver.run([_dep("x", "1.0", step)])
        assert executor.calls[0][0] == ["sudo", "ldconfig", "/usr/local/lib"]

    def test_root_step_without_sudo_as_root(self, driver, executor, monkeypatch):
        monkeypatch.setattr("magick_builder.pipeline.os.geteuid", lambda: 0)
        driver.run([_dep("x", "1.0", BuildStep("ldconfig", "{install_prefix}/lib", requires_root=True))])
        assert executor.calls[0][0] == ["ldconfig", "/usr/local/lib"]

    def test_step_env_passed_as_mapping(self, driver, executor):
        driver.run([_dep("x", "1.0", BuildStep("make", env={"LDFLAGS": "{ldflags} -DLIBXML_STATIC"}))])
        assert executor.envs == [{"LDFLAGS": "{ldflags} -DLIBXML_STATIC"}]


class TestPlan:
    def test_plan_compares_with_ledger(self, driver, fetcher):
        driver.ledger.record("a", "1.0")
        driver.ledger.record("b", "0.9")

        entries = driver.plan([_dep("a"), _dep("b"), _dep("c")])

        assert [(e.name, e.version, e.recorded, e.up_to_date) for e in entries] == [
            ("a", "1.0", "1.0", True),
            ("b", "1.0", "0.9", False),
            ("c", "1.0", None, False),
        ]
        assert fetcher.fetched == []


def test_placeholders_for():
    assert placeholders_for("2.13.2") == {"version": "2.13.2", "version_dashed": "2-13-2"}


def test_installed_version_falls_back_to_first_line(build_env, fetcher):
    executor = FakeExecutor(version_line="magick: unknown build")
    resolver = VersionResolver(MagicMock(), MagicMock(), lambda host: MagicMock())
    driver = PipelineDriver(build_env, resolver, fetcher, executor, BuildLedger(build_env.ledger_dir))
    assert driver.installed_version() == "magick: unknown build"
