"""Desktop notifications for failed commands."""

from __future__ import annotations

import shutil
import subprocess
from typing import Protocol

import structlog

log = structlog.get_logger("magick_builder.notify")


class Notifier(Protocol):
    def __call__(self, message: str) -> None: ...


class DesktopNotifier:
    """Pop a ``notify-send`` bubble; silently does nothing without a desktop."""

    def __init__(self, timeout_ms: int = 5000, binary: str = "notify-send") -> None:
        self.timeout_ms = timeout_ms
        self.binary = binary

    def __call__(self, message: str) -> None:
        if shutil.which(self.binary) is None:
            log.debug("notify.unavailable", binary=self.binary)
            return
        try:
            subprocess.run(
                [self.binary, "-t", str(self.timeout_ms), message],
                capture_output=True,
                timeout=10,
                check=False,
            )
        except (OSError, subprocess.SubprocessError):
            log.debug("notify.failed", binary=self.binary, exc_info=True)


def null_notifier(message: str) -> None:
    """Notifier that drops every message."""
