"""Build ledger — one ``<name>.done`` file per successfully built dependency."""

from __future__ import annotations

import os
import re
import tempfile
from pathlib import Path

import structlog

log = structlog.get_logger("magick_builder.ledger")

_SUFFIX = ".done"
_SAFE_NAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._+-]*$")


class BuildLedger:
    """Persist "dependency X at version V built successfully".

    Each entry lives in its own file holding only the version string, so
    deleting one file forces exactly one dependency to rebuild.
    """

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)

    def _path(self, name: str) -> Path:
        if not _SAFE_NAME_RE.match(name):
            raise ValueError(f"invalid ledger name: {name!r}")
        return self.directory / f"{name}{_SUFFIX}"

    def get(self, name: str) -> str | None:
        """Return the recorded version for *name*, or None if absent/unreadable."""
        path = self._path(name)
        try:
            return path.read_text().strip()
        except FileNotFoundError:
            return None
        except OSError:
            log.warning("ledger.unreadable", name=name, path=str(path), exc_info=True)
            return None

    def is_up_to_date(self, name: str, version: object) -> bool:
        """True iff an entry exists and equals ``str(version)`` exactly."""
        recorded = self.get(name)
        return recorded is not None and recorded == str(version)

    def record(self, name: str, version: object) -> None:
        """Overwrite the entry for *name* with *version*.

        Written through a temporary file and renamed into place so a crash
        never leaves a half-written entry.
        """
        path = self._path(name)
        self.directory.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.directory, prefix=f".{name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w") as fh:
                fh.write(f"{version}\n")
            os.replace(tmp, path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise
        log.info("ledger.record", name=name, version=str(version))

    def forget(self, name: str) -> bool:
        """Delete the entry for *name*; returns whether one existed."""
        path = self._path(name)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        log.info("ledger.forget", name=name)
        return True

    def entries(self) -> dict[str, str]:
        """All recorded entries as ``{name: version}``."""
        if not self.directory.is_dir():
            return {}
        result: dict[str, str] = {}
        for path in sorted(self.directory.glob(f"*{_SUFFIX}")):
            name = path.name[: -len(_SUFFIX)]
            version = self.get(name) if _SAFE_NAME_RE.match(name) else None
            if version is not None:
                result[name] = version
        return result
