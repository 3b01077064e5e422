"""Version resolution against hosting APIs and git remotes."""

from magick_builder.resolver.hosting import GitHubClient, GitLabClient
from magick_builder.resolver.resolver import (
    MAX_TAG_ATTEMPTS,
    VersionResolver,
    highest_version,
    normalize_tag,
    select_stable_tag,
)

__all__ = [
    "MAX_TAG_ATTEMPTS",
    "GitHubClient",
    "GitLabClient",
    "VersionResolver",
    "highest_version",
    "normalize_tag",
    "select_stable_tag",
]
