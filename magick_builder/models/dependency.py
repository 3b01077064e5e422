"""Static descriptors for buildable units."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Literal, Union

FetchKind = Literal["archive", "git"]

# Ordered (key, value) pairs standing in for dicts on frozen, hashable specs
Pairs = tuple[tuple[str, str], ...]


def as_pairs(mapping: Mapping[str, str] | Pairs | None) -> Pairs:
    if not mapping:
        return ()
    items = mapping.items() if isinstance(mapping, Mapping) else mapping
    return tuple((str(k), str(v)) for k, v in items)


@dataclass(frozen=True)
class FixedVersion:
    """Pinned to a known-good release; resolved without any network call."""

    version: str


@dataclass(frozen=True)
class GitHubTags:
    """Latest stable tag of ``owner/name`` on github.com."""

    repo: str  # e.g. "harfbuzz/harfbuzz"
    strip_prefix: str = ""
    separator_map: Pairs = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "separator_map", as_pairs(self.separator_map))


@dataclass(frozen=True)
class GitLabTags:
    """Latest stable tag of a GitLab project addressed by numeric id."""

    project_id: str  # e.g. "7950" (freetype on gitlab.freedesktop.org)
    host: str = "gitlab.freedesktop.org"
    strip_prefix: str = ""
    separator_map: Pairs = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "separator_map", as_pairs(self.separator_map))


@dataclass(frozen=True)
class GitRemoteTags:
    """Highest version-like tag advertised by any git remote."""

    url: str


VersionSource = Union[FixedVersion, GitHubTags, GitLabTags, GitRemoteTags]


@dataclass(frozen=True)
class FetchSpec:
    """Where a dependency's source comes from.

    ``url`` and ``filename`` may carry a ``{version}`` placeholder.  For
    archives ``strip_top_level=False`` keeps the wrapper directory (used when
    an archive holds several sibling components).
    """

    url: str
    kind: FetchKind = "archive"
    filename: str | None = None  # cache file name; defaults to the URL basename
    directory: str | None = None  # source dir name; derived from filename/url
    recursive: bool = False  # clone submodules too
    strip_top_level: bool = True


@dataclass(frozen=True)
class BuildStep:
    """One external command run inside the dependency's source tree.

    ``argv`` entries may contain ``{prefix}``, ``{workspace}``, ``{jobs}``,
    ``{version}``, ``{source}`` and the compiler-flag placeholders understood
    by :meth:`BuildEnvironment.render`.  ``privileged`` steps write into the
    install prefix and are run through ``sudo`` when it is not writable by the
    current user.  ``requires_root`` steps (``ldconfig``) touch system files and
    always get ``sudo`` unless already running as root.
    """

    argv: tuple[str, ...]
    cwd: str | None = None  # relative to the source directory
    env: Pairs = ()
    privileged: bool = False
    requires_root: bool = False

    def __init__(
        self,
        *argv: str,
        cwd: str | None = None,
        env: Mapping[str, str] | None = None,
        privileged: bool = False,
        requires_root: bool = False,
    ) -> None:
        if not argv:
            raise ValueError("a build step needs a command")
        object.__setattr__(self, "argv", tuple(argv))
        object.__setattr__(self, "cwd", cwd)
        object.__setattr__(self, "env", as_pairs(env))
        object.__setattr__(self, "privileged", privileged)
        object.__setattr__(self, "requires_root", requires_root)


@dataclass(frozen=True)
class DependencySpec:
    """Everything the pipeline needs to build one dependency.

    ``name`` is the ledger key and must be unique within a recipe list.
    """

    name: str
    version_source: VersionSource
    fetch: FetchSpec
    steps: tuple[BuildStep, ...] = ()

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("dependency name must not be empty")
        object.__setattr__(self, "steps", tuple(self.steps))
