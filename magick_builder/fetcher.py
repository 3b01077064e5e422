"""Fetch dependency source: archive download + extract, or shallow clone.

Every fetch starts from a clean destination directory.  A failed attempt
removes whatever it left behind, so a later run can never mistake a partial
tree for a good one.  Network and extraction failures get one retry after a
fixed delay; the second failure raises :class:`FetchError`.
"""

from __future__ import annotations

import re
import shutil
import tarfile
import time
from collections.abc import Callable
from pathlib import Path, PurePosixPath

import httpx
import structlog

from magick_builder.exceptions import FetchError
from magick_builder.git import GitCommandError, GitRemote
from magick_builder.models.dependency import FetchSpec
from magick_builder.models.environment import BuildEnvironment
from magick_builder.retry import RETRY_DELAY, call_with_retry

log = structlog.get_logger("magick_builder.fetch")

_TIMEOUT = httpx.Timeout(30.0, read=120.0)
_CHUNK = 1 << 16

# ".tar.gz", ".tar.xz", ".tar.bz2", ".tgz", ... stripped to derive a directory name
_ARCHIVE_SUFFIX_RE = re.compile(r"(\.tar(\.[A-Za-z0-9]+)?|\.t[gbx]z2?|\.zip)$")


def safe_dirname(name: str) -> str:
    """Normalize a generated directory name: dots and slashes become dashes."""
    cleaned = re.sub(r"[./\\]+", "-", name).strip("-")
    if not cleaned:
        raise FetchError(f"cannot derive a directory name from {name!r}")
    return cleaned


def archive_dirname(filename: str) -> str:
    """``harfbuzz-8.3.0.tar.xz`` → ``harfbuzz-8-3-0``."""
    stem = _ARCHIVE_SUFFIX_RE.sub("", filename)
    if stem == filename and "." in filename:
        stem = filename.rsplit(".", 1)[0]
    return safe_dirname(stem)


def url_basename(url: str) -> str:
    path = httpx.URL(url).path.rstrip("/")
    return path.rsplit("/", 1)[-1]


def _remove_tree(path: Path) -> None:
    if path.is_symlink() or path.is_file():
        path.unlink()
    elif path.exists():
        shutil.rmtree(path)


def _strip_first_component(name: str) -> str | None:
    parts = PurePosixPath(name).parts
    if len(parts) <= 1:
        return None
    return str(PurePosixPath(*parts[1:]))


def extract_archive(archive: Path, dest: Path, strip_top_level: bool = True) -> None:
    """Extract *archive* into *dest*, optionally dropping the wrapper directory."""
    with tarfile.open(archive) as tar:
        members: list[tarfile.TarInfo] = []
        for member in tar.getmembers():
            if strip_top_level:
                stripped = _strip_first_component(member.name)
                if stripped is None:
                    continue
                member.name = stripped
                # hard link targets are archive-relative and need the same treatment
                if member.islnk() and member.linkname:
                    member.linkname = _strip_first_component(member.linkname) or member.linkname
            members.append(member)
        if not members:
            raise tarfile.ReadError(f"{archive.name} contains no files")
        tar.extractall(dest, members=members, filter="data")


class Fetcher:
    """Download or clone sources into ``<packages>/<dir>``."""

    def __init__(
        self,
        env: BuildEnvironment,
        git: GitRemote,
        *,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] = time.sleep,
        retry_delay: float = RETRY_DELAY,
    ) -> None:
        self.env = env
        self.git = git
        self._sleep = sleep
        self._retry_delay = retry_delay
        self._http = httpx.Client(
            headers={"User-Agent": env.user_agent},
            timeout=_TIMEOUT,
            follow_redirects=True,
            transport=transport,
        )

    def close(self) -> None:
        self._http.close()

    @property
    def packages_dir(self) -> Path:
        return self.env.packages_dir

    def fetch(self, spec: FetchSpec, **placeholders: object) -> Path:
        """Fetch according to *spec*, substituting ``{version}``-style placeholders."""
        url = self.env.render(spec.url, **placeholders)
        filename = self.env.render(spec.filename, **placeholders) if spec.filename else None
        directory = self.env.render(spec.directory, **placeholders) if spec.directory else None

        if spec.kind == "git":
            return self.clone(url, directory=directory, recursive=spec.recursive)
        return self.fetch_archive(
            url,
            filename=filename,
            directory=directory,
            strip_top_level=spec.strip_top_level,
        )

    # ── archives ───────────────────────────────────────────────────────────

    def fetch_archive(
        self,
        url: str,
        filename: str | None = None,
        directory: str | None = None,
        strip_top_level: bool = True,
    ) -> Path:
        filename = filename or url_basename(url)
        if not filename or "/" in filename:
            raise FetchError(f"cannot derive an archive file name from {url}")
        archive = self.packages_dir / filename
        dest = self.packages_dir / (safe_dirname(directory) if directory else archive_dirname(filename))
        self.packages_dir.mkdir(parents=True, exist_ok=True)

        def attempt() -> Path:
            if archive.is_file():
                log.info("fetch.cached", file=filename)
            else:
                self._download(url, archive)
            _remove_tree(dest)
            dest.mkdir(parents=True)
            try:
                extract_archive(archive, dest, strip_top_level)
            except (tarfile.TarError, OSError):
                # a corrupt cache file must not satisfy the next cache check
                archive.unlink(missing_ok=True)
                raise
            log.info("fetch.extracted", file=filename, dest=str(dest))
            return dest

        try:
            return call_with_retry(
                attempt,
                retry_on=(httpx.HTTPError, tarfile.TarError, OSError),
                label=f"fetch {filename}",
                delay=self._retry_delay,
                sleep=self._sleep,
                cleanup=lambda: _remove_tree(dest),
            )
        except (httpx.HTTPError, tarfile.TarError, OSError) as exc:
            raise FetchError(f"failed to fetch {url} as {filename!r} twice: {exc}") from exc

    def _download(self, url: str, target: Path) -> None:
        partial = target.with_name(target.name + ".part")
        log.info("fetch.download", url=url, file=target.name)
        try:
            with self._http.stream("GET", url) as resp:
                resp.raise_for_status()
                with open(partial, "wb") as fh:
                    for chunk in resp.iter_bytes(_CHUNK):
                        fh.write(chunk)
            partial.replace(target)
        finally:
            partial.unlink(missing_ok=True)

    # ── repositories ───────────────────────────────────────────────────────

    def clone(self, url: str, directory: str | None = None, recursive: bool = False) -> Path:
        name = directory or url_basename(url) or url
        dest = self.packages_dir / safe_dirname(name)
        self.packages_dir.mkdir(parents=True, exist_ok=True)

        def attempt() -> Path:
            # clones are never updated in place
            _remove_tree(dest)
            return self.git.clone(url, dest, recursive=recursive)

        try:
            result = call_with_retry(
                attempt,
                retry_on=GitCommandError,
                label=f"clone {url}",
                delay=self._retry_delay,
                sleep=self._sleep,
                cleanup=lambda: _remove_tree(dest),
            )
        except GitCommandError as exc:
            raise FetchError(f"failed to clone {url} twice: {exc}") from exc
        log.info("fetch.cloned", url=url, dest=str(result))
        return result
