"""Git helpers: remote tag listing and shallow clones."""

from __future__ import annotations

import subprocess
from collections.abc import Mapping
from pathlib import Path

import structlog

log = structlog.get_logger("magick_builder.git")

_TIMEOUT = 600  # seconds; recursive clones of large SDKs are slow


class GitCommandError(RuntimeError):
    """Raised when a git command exits non-zero, times out, or git is missing."""


def run_git(args: list[str], env: Mapping[str, str] | None = None, timeout: int = _TIMEOUT) -> str:
    """Run ``git <args>`` and return stdout, raising GitCommandError on failure."""
    cmd = ["git", *args]
    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            timeout=timeout,
            env=dict(env) if env is not None else None,
            stdin=subprocess.DEVNULL,
        )
    except subprocess.TimeoutExpired:
        raise GitCommandError(f"git command timed out after {timeout}s: {' '.join(cmd)}")
    except OSError as exc:
        raise GitCommandError(f"could not run git: {exc}")

    if result.returncode != 0:
        raise GitCommandError(
            f"git command failed (exit {result.returncode}): {result.stderr.strip()}"
        )
    return result.stdout


def parse_ls_remote(output: str) -> list[tuple[str, str]]:
    """Parse ``git ls-remote`` output into ``(ref, sha)`` pairs.

    Peeled annotated-tag entries (``refs/tags/x^{}``) are folded into their
    tag name so each tag appears once.
    """
    refs: dict[str, str] = {}
    for line in output.splitlines():
        parts = line.strip().split("\t", 1)
        if len(parts) != 2:
            continue
        sha, ref = parts
        if ref.endswith("^{}"):
            ref = ref[:-3]
        refs[ref] = sha
    return list(refs.items())


class GitRemote:
    """Read-only queries against a git remote."""

    def __init__(self, env: Mapping[str, str] | None = None) -> None:
        self.env = env

    def list_tags(self, url: str) -> list[str]:
        """Return the tag names advertised by *url* (without ``refs/tags/``)."""
        output = run_git(["ls-remote", "--tags", "--", url], env=self.env, timeout=120)
        tags = [
            ref.removeprefix("refs/tags/")
            for ref, _sha in parse_ls_remote(output)
            if ref.startswith("refs/tags/")
        ]
        log.debug("git.tags", url=url, count=len(tags))
        return tags

    def head_commit(self, url: str) -> str | None:
        """Return the full hash the remote's HEAD points at, or None."""
        output = run_git(["ls-remote", "--", url, "HEAD"], env=self.env, timeout=120)
        for ref, sha in parse_ls_remote(output):
            if ref == "HEAD":
                return sha
        return None

    def clone(self, url: str, dest: Path, *, recursive: bool = False, depth: int = 1) -> Path:
        """Shallow-clone *url* into *dest* (which must not exist yet)."""
        args = ["clone", "-q", "--depth", str(depth)]
        if recursive:
            args += ["--recursive", "--shallow-submodules"]
        args += ["--", url, str(dest)]
        log.info("git.clone", url=url, dest=str(dest), recursive=recursive)
        run_git(args, env=self.env)
        return dest
