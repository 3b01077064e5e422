"""Version values produced by the resolver.

A resolved version is either a parsed :class:`Version` (numeric ordering),
a :class:`CommitVersion` (short hash fallback when a remote has no usable
tags), or a plain string for pinned labels such as ``"git"`` or
``"latest"``.  ``str()`` of any of them is what the ledger stores.
"""

from __future__ import annotations

import functools
import re
from dataclasses import dataclass
from typing import Union

# Accepts an optional leading v, e.g. "v2.10.0", "7.1.1-23", "1.3"
_VERSION_RE = re.compile(r"^[vV]?(\d+)\.(\d+)(?:\.(\d+))?(?:-(\d+))?$")

# Unanchored form used to pull a version out of a ref like "refs/tags/v2.9.0^{}"
VERSION_SEARCH_RE = re.compile(r"\d+\.\d+(?:\.\d+)?(?:-\d+)?")

# rc / alpha / beta / pre* / master, optionally followed by digits, standing
# as its own component of the tag ("3.2.0-rc1", "3.2.0rc2", "v1.0-BETA.2",
# "3.0.0-preview1", "1.0-prerelease")
PRERELEASE_RE = re.compile(
    r"(?:^|[^a-z])(?:rc|alpha|beta|pre[a-z]*|master)\d*(?:[^a-z]|$)",
    re.IGNORECASE,
)


def is_prerelease(tag: str) -> bool:
    """Return True if *tag* names a release candidate, alpha, beta or branch build."""
    return PRERELEASE_RE.search(tag) is not None


def strip_v(tag: str) -> str:
    if tag[:1] in ("v", "V") and tag[1:2].isdigit():
        return tag[1:]
    return tag


@functools.total_ordering
@dataclass(frozen=True, eq=False)
class Version:
    """Semantic-ish version with numeric, component-wise ordering."""

    major: int
    minor: int
    patch: int | None = None
    build: int | None = None
    text: str = ""

    @classmethod
    def parse(cls, text: str) -> Version:
        m = _VERSION_RE.match(text.strip())
        if not m:
            raise ValueError(f"not a version string: {text!r}")
        major, minor, patch, build = m.groups()
        return cls(
            major=int(major),
            minor=int(minor),
            patch=int(patch) if patch is not None else None,
            build=int(build) if build is not None else None,
            text=strip_v(text.strip()),
        )

    @classmethod
    def search(cls, text: str) -> Version | None:
        """Extract the first version-like substring of *text*, or None."""
        m = VERSION_SEARCH_RE.search(text)
        if not m:
            return None
        return cls.parse(m.group(0))

    @property
    def sort_key(self) -> tuple[int, int, int, int]:
        # missing patch sorts as 0; missing build sorts before any build
        return (
            self.major,
            self.minor,
            self.patch if self.patch is not None else 0,
            self.build if self.build is not None else -1,
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self.sort_key == other.sort_key

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self.sort_key < other.sort_key

    def __hash__(self) -> int:
        return hash(self.sort_key)

    def __str__(self) -> str:
        if self.text:
            return self.text
        out = f"{self.major}.{self.minor}"
        if self.patch is not None:
            out += f".{self.patch}"
        if self.build is not None:
            out += f"-{self.build}"
        return out


@dataclass(frozen=True)
class CommitVersion:
    """Short commit hash used when a remote publishes no version tags."""

    sha: str

    def __post_init__(self) -> None:
        if not self.sha:
            raise ValueError("commit hash must not be empty")

    def __str__(self) -> str:
        return self.sha[:7]


ResolvedVersion = Union[Version, CommitVersion, str]
