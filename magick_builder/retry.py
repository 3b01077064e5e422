"""The one retry policy used for network operations.

Tag listing, downloads and clones get a single retry after a fixed delay.
Everything else fails on the first error.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import TypeVar

import structlog

log = structlog.get_logger("magick_builder.retry")

T = TypeVar("T")

MAX_ATTEMPTS = 2
RETRY_DELAY = 10.0  # seconds


def call_with_retry(
    fn: Callable[[], T],
    *,
    retry_on: type[BaseException] | tuple[type[BaseException], ...],
    label: str,
    attempts: int = MAX_ATTEMPTS,
    delay: float = RETRY_DELAY,
    sleep: Callable[[float], None] = time.sleep,
    cleanup: Callable[[], None] | None = None,
) -> T:
    """Call *fn*, retrying on *retry_on* up to *attempts* times in total.

    *cleanup* runs after every failed attempt (including the last) so callers
    can remove partial output.  The last exception is re-raised.
    """
    for attempt in range(1, attempts + 1):
        try:
            return fn()
        except retry_on as exc:
            if cleanup is not None:
                cleanup()
            if attempt >= attempts:
                log.error("retry.exhausted", op=label, attempts=attempts, error=str(exc))
                raise
            log.warning(
                "retry.scheduled",
                op=label,
                attempt=attempt,
                max_attempts=attempts,
                delay_seconds=delay,
                error=str(exc),
            )
            sleep(delay)
    raise AssertionError("unreachable")  # pragma: no cover
