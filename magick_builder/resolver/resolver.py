"""Resolve the latest stable version of a dependency.

Three strategies, picked by the type of :data:`VersionSource`:

- tag listing (GitHub / GitLab APIs): scan newest-first, skip prereleases,
  take the first acceptable tag; bounded to ``MAX_TAG_ATTEMPTS`` candidates.
- git remote scan: ``git ls-remote --tags``, pull version-like substrings,
  sort numerically, take the highest; fall back to the remote HEAD hash.
- fixed: returned as-is.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Mapping

import httpx
import structlog

from magick_builder.exceptions import ResolutionError
from magick_builder.git import GitCommandError, GitRemote
from magick_builder.models.dependency import (
    FixedVersion,
    GitHubTags,
    GitLabTags,
    GitRemoteTags,
    Pairs,
    VersionSource,
    as_pairs,
)
from magick_builder.models.version import (
    CommitVersion,
    ResolvedVersion,
    Version,
    is_prerelease,
    strip_v,
)
from magick_builder.resolver.hosting import GitHubClient, GitLabClient
from magick_builder.retry import RETRY_DELAY, call_with_retry

log = structlog.get_logger("magick_builder.resolver")

MAX_TAG_ATTEMPTS = 10


def normalize_tag(
    tag: str,
    strip_prefix: str = "",
    separator_map: Mapping[str, str] | Pairs | None = None,
) -> str:
    """Turn a raw tag name into the version string used for ledger and URLs."""
    if strip_prefix:
        tag = tag.removeprefix(strip_prefix)
    for old, new in as_pairs(separator_map):
        tag = tag.replace(old, new)
    return strip_v(tag)


def _as_version(text: str) -> ResolvedVersion:
    try:
        return Version.parse(text)
    except ValueError:
        return text


def select_stable_tag(
    tags: list[str],
    strip_prefix: str = "",
    separator_map: Mapping[str, str] | Pairs | None = None,
    limit: int = MAX_TAG_ATTEMPTS,
) -> ResolvedVersion:
    """Return the first non-prerelease tag among the newest *limit* tags.

    Raises ResolutionError if the window holds only prereleases (or nothing).
    """
    for tag in tags[:limit]:
        if is_prerelease(tag):
            log.debug("resolver.skip_prerelease", tag=tag)
            continue
        return _as_version(normalize_tag(tag, strip_prefix, separator_map))
    raise ResolutionError(
        f"no stable tag among the {min(len(tags), limit)} most recent tags: {tags[:limit]}"
    )


def highest_version(tags: list[str]) -> Version | None:
    """Numerically highest stable version found in *tags*, or None."""
    versions = []
    for tag in tags:
        if is_prerelease(tag):
            continue
        found = Version.search(tag)
        if found is not None:
            versions.append(found)
    if not versions:
        return None
    return max(versions)


class VersionResolver:
    """Dispatch a :data:`VersionSource` to the matching lookup strategy."""

    def __init__(
        self,
        github: GitHubClient,
        git: GitRemote,
        gitlab_factory: Callable[[str], GitLabClient],
        *,
        sleep: Callable[[float], None] = time.sleep,
        retry_delay: float = RETRY_DELAY,
    ) -> None:
        self.github = github
        self.git = git
        self._gitlab_factory = gitlab_factory
        self._gitlab: dict[str, GitLabClient] = {}
        self._sleep = sleep
        self._retry_delay = retry_delay

    def close(self) -> None:
        self.github.close()
        for client in self._gitlab.values():
            client.close()

    def resolve(self, source: VersionSource) -> ResolvedVersion:
        if isinstance(source, FixedVersion):
            return source.version
        if isinstance(source, GitHubTags):
            return self._resolve_github(source)
        if isinstance(source, GitLabTags):
            return self._resolve_gitlab(source)
        if isinstance(source, GitRemoteTags):
            return self._resolve_git_remote(source.url)
        raise ResolutionError(f"unsupported version source: {source!r}")

    # ── strategies ─────────────────────────────────────────────────────────

    def _resolve_github(self, source: GitHubTags) -> ResolvedVersion:
        try:
            tags = self.github.list_tags(source.repo, limit=MAX_TAG_ATTEMPTS)
        except httpx.HTTPError as exc:
            # API unavailable or rate limited; the git protocol still works
            log.warning("resolver.github_fallback", repo=source.repo, error=str(exc))
            return self._resolve_git_remote(f"https://github.com/{source.repo}.git")
        version = select_stable_tag(tags, source.strip_prefix, source.separator_map)
        log.info("resolver.resolved", source="github", repo=source.repo, version=str(version))
        return version

    def _resolve_gitlab(self, source: GitLabTags) -> ResolvedVersion:
        client = self._gitlab.get(source.host)
        if client is None:
            client = self._gitlab[source.host] = self._gitlab_factory(source.host)
        try:
            tags = client.list_tags(source.project_id, limit=MAX_TAG_ATTEMPTS)
        except httpx.HTTPError as exc:
            raise ResolutionError(
                f"could not list tags of GitLab project {source.project_id} on {source.host}: {exc}"
            )
        version = select_stable_tag(tags, source.strip_prefix, source.separator_map)
        log.info(
            "resolver.resolved",
            source="gitlab",
            project=source.project_id,
            version=str(version),
        )
        return version

    def _resolve_git_remote(self, url: str) -> ResolvedVersion:
        try:
            tags = call_with_retry(
                lambda: self.git.list_tags(url),
                retry_on=GitCommandError,
                label=f"ls-remote {url}",
                delay=self._retry_delay,
                sleep=self._sleep,
            )
            best = highest_version(tags)
            if best is not None:
                log.info("resolver.resolved", source="git", url=url, version=str(best))
                return best

            head = call_with_retry(
                lambda: self.git.head_commit(url),
                retry_on=GitCommandError,
                label=f"ls-remote HEAD {url}",
                delay=self._retry_delay,
                sleep=self._sleep,
            )
        except GitCommandError as exc:
            raise ResolutionError(f"could not list remote refs of {url}: {exc}")

        if not head:
            raise ResolutionError(f"{url} has no version tags and no HEAD")
        log.info("resolver.resolved", source="git", url=url, commit=head[:7])
        return CommitVersion(head)
