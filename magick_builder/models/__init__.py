"""Data models for dependencies, versions and the build environment."""

from magick_builder.models.dependency import (
    BuildStep,
    DependencySpec,
    FetchSpec,
    FixedVersion,
    GitHubTags,
    GitLabTags,
    GitRemoteTags,
    VersionSource,
)
from magick_builder.models.environment import BuildEnvironment
from magick_builder.models.version import (
    CommitVersion,
    ResolvedVersion,
    Version,
    is_prerelease,
)

__all__ = [
    "BuildEnvironment",
    "BuildStep",
    "CommitVersion",
    "DependencySpec",
    "FetchSpec",
    "FixedVersion",
    "GitHubTags",
    "GitLabTags",
    "GitRemoteTags",
    "ResolvedVersion",
    "Version",
    "VersionSource",
    "is_prerelease",
]
