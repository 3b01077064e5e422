"""Process-wide build configuration, constructed once at startup."""

from __future__ import annotations

import os
import platform
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Mapping

from magick_builder.exceptions import ConfigurationError

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

_BASE_CFLAGS = "-g -O3 -pipe -march=native"

_SYSTEM_PATH = [
    "/usr/local/sbin",
    "/usr/local/bin",
    "/usr/sbin",
    "/usr/bin",
    "/sbin",
    "/bin",
]

_SYSTEM_PKG_CONFIG_PATH = [
    "/usr/local/lib64/pkgconfig",
    "/usr/local/lib/pkgconfig",
    "/usr/local/lib/{triplet}/pkgconfig",
    "/usr/local/share/pkgconfig",
    "/usr/lib64/pkgconfig",
    "/usr/lib/pkgconfig",
    "/usr/lib/{triplet}/pkgconfig",
    "/usr/share/pkgconfig",
    "/lib64/pkgconfig",
    "/lib/pkgconfig",
]

_TRUTHY = {"1", "on", "true", "yes"}


def _multiarch_triplet() -> str:
    return f"{platform.machine() or 'x86_64'}-linux-gnu"


def _join(flags: list[str]) -> str:
    return " ".join(f for f in flags if f)


@dataclass(frozen=True)
class BuildEnvironment:
    """Immutable build configuration shared by every component.

    ``root`` holds ``packages/`` (downloads, sources and the ledger) and
    ``workspace/`` (the local prefix every dependency installs into).  The
    final target installs into ``install_prefix``.
    """

    root: Path
    install_prefix: Path = Path("/usr/local")
    cc: str = "gcc"
    cxx: str = "g++"
    cflags: str = _BASE_CFLAGS
    cxxflags: str = _BASE_CFLAGS
    cppflags: str = ""
    ldflags: str = ""
    jobs: int = 1
    path: tuple[str, ...] = ()
    pkg_config_path: tuple[str, ...] = ()
    user_agent: str = DEFAULT_USER_AGENT
    verbose: bool = False
    github_token: str | None = field(default=None, repr=False)

    def __post_init__(self) -> None:
        if self.jobs < 1:
            raise ConfigurationError(f"parallelism must be a positive integer, got {self.jobs}")
        if not Path(self.install_prefix).is_absolute():
            raise ConfigurationError(f"install prefix must be absolute: {self.install_prefix}")
        object.__setattr__(self, "root", Path(self.root).absolute())
        object.__setattr__(self, "install_prefix", Path(self.install_prefix))

    # ── derived locations ──────────────────────────────────────────────────

    @property
    def packages_dir(self) -> Path:
        return self.root / "packages"

    @property
    def workspace(self) -> Path:
        return self.root / "workspace"

    @property
    def ledger_dir(self) -> Path:
        return self.packages_dir

    # ── construction ───────────────────────────────────────────────────────

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        **overrides: object,
    ) -> BuildEnvironment:
        """Build the environment from ``MAGICK_BUILD_*`` and compiler variables.

        Keyword *overrides* (CLI options) win over the environment; ``None``
        values are ignored so unset options fall through.
        """
        env = os.environ if environ is None else environ
        root = Path(env.get("MAGICK_BUILD_ROOT", "magick-build-script"))
        install_prefix = Path(env.get("MAGICK_BUILD_INSTALL_PREFIX", "/usr/local"))

        jobs_raw = env.get("MAGICK_BUILD_JOBS")
        if jobs_raw:
            try:
                jobs = int(jobs_raw)
            except ValueError:
                raise ConfigurationError(f"MAGICK_BUILD_JOBS is not an integer: {jobs_raw!r}")
        else:
            jobs = os.cpu_count() or 1

        values: dict[str, object] = {
            "root": root,
            "install_prefix": install_prefix,
            "jobs": jobs,
            "cc": env.get("CC", "gcc"),
            "cxx": env.get("CXX", "g++"),
            "user_agent": env.get("MAGICK_BUILD_USER_AGENT", DEFAULT_USER_AGENT),
            "verbose": env.get("MAGICK_BUILD_DEBUG", "").lower() in _TRUTHY,
            "github_token": env.get("GITHUB_TOKEN") or env.get("GH_TOKEN"),
        }
        values.update({k: v for k, v in overrides.items() if v is not None})

        base = cls(**values)  # type: ignore[arg-type]
        return base.with_default_paths(
            extra_cflags=env.get("CFLAGS", ""),
            extra_cxxflags=env.get("CXXFLAGS", ""),
            extra_cppflags=env.get("CPPFLAGS", ""),
            extra_ldflags=env.get("LDFLAGS", ""),
            home=env.get("HOME", str(Path.home())),
        )

    def with_default_paths(
        self,
        extra_cflags: str = "",
        extra_cxxflags: str = "",
        extra_cppflags: str = "",
        extra_ldflags: str = "",
        home: str | None = None,
    ) -> BuildEnvironment:
        """Return a copy with compiler flags and search paths rooted at the workspace."""
        ws = self.workspace
        triplet = _multiarch_triplet()
        includes = [
            f"-I{ws}/include",
            f"-I{self.install_prefix}/include",
            "-I/usr/include",
            f"-I/usr/include/{triplet}",
        ]
        libdirs = [
            f"-L{ws}/lib64",
            f"-L{ws}/lib",
            f"-L{self.install_prefix}/lib64",
            f"-L{self.install_prefix}/lib",
            "-L/usr/lib64",
            "-L/usr/lib",
        ]

        ccache = "/usr/lib/ccache/bin" if Path("/usr/lib/ccache/bin").is_dir() else "/usr/lib/ccache"
        home = home or str(Path.home())
        path = [
            f"{ws}/bin",
            ccache,
            f"{home}/.cargo/bin",
            f"{home}/.local/bin",
            *_SYSTEM_PATH,
        ]
        pkg_config = [
            f"{ws}/lib64/pkgconfig",
            f"{ws}/lib/{triplet}/pkgconfig",
            f"{ws}/lib/pkgconfig",
            f"{ws}/share/pkgconfig",
            *(p.format(triplet=triplet) for p in _SYSTEM_PKG_CONFIG_PATH),
        ]

        return replace(
            self,
            cflags=_join([_BASE_CFLAGS, *includes, extra_cflags]),
            cxxflags=_join([_BASE_CFLAGS, extra_cxxflags]),
            cppflags=_join([*includes, extra_cppflags]),
            ldflags=_join([*libdirs, extra_ldflags]),
            path=tuple(path),
            pkg_config_path=tuple(pkg_config),
        )

    # ── use ────────────────────────────────────────────────────────────────

    def process_env(self, extra: Mapping[str, str] | None = None) -> dict[str, str]:
        """Environment mapping for child processes.

        Starts from the current process environment so tools keep ``HOME``,
        locale and friends, then layers compiler and search-path settings.
        """
        env = dict(os.environ)
        env.update(
            {
                "CC": self.cc,
                "CXX": self.cxx,
                "CFLAGS": self.cflags,
                "CXXFLAGS": self.cxxflags,
                "CPPFLAGS": self.cppflags,
                "LDFLAGS": self.ldflags,
            }
        )
        if self.path:
            env["PATH"] = os.pathsep.join(self.path)
        if self.pkg_config_path:
            env["PKG_CONFIG_PATH"] = os.pathsep.join(self.pkg_config_path)
        if extra:
            env.update({k: self.render(v) for k, v in extra.items()})
        return env

    def render(self, template: str, **extra: object) -> str:
        """Substitute ``{placeholder}`` fields in a recipe string."""
        values: dict[str, object] = {
            "prefix": self.workspace,
            "workspace": self.workspace,
            "install_prefix": self.install_prefix,
            "packages": self.packages_dir,
            "jobs": self.jobs,
            "cc": self.cc,
            "cxx": self.cxx,
            "cflags": self.cflags,
            "cxxflags": self.cxxflags,
            "cppflags": self.cppflags,
            "ldflags": self.ldflags,
        }
        values.update(extra)
        return template.format_map(_KeepMissing(values))


class _KeepMissing(dict):
    """format_map helper leaving unknown placeholders untouched."""

    def __missing__(self, key: str) -> str:
        return "{" + key + "}"
