"""Run external build commands, turning non-zero exits into fatal errors."""

from __future__ import annotations

import subprocess
from collections.abc import Callable, Mapping, Sequence
from pathlib import Path
from typing import NoReturn

import click
import structlog

from magick_builder.exceptions import ExecutionError
from magick_builder.models.environment import BuildEnvironment
from magick_builder.notify import Notifier, null_notifier

log = structlog.get_logger("magick_builder.executor")

# Exit status reported when the program itself cannot be started
_NOT_FOUND_EXIT = 127


class TaskExecutor:
    """Execute commands with the build environment applied.

    Combined stdout/stderr is always captured and returned.  With
    ``env.verbose`` the output is additionally echoed line by line as it
    arrives.  Retries are not done here.
    """

    def __init__(
        self,
        env: BuildEnvironment,
        notifier: Notifier = null_notifier,
        echo: Callable[[str], None] | None = None,
    ) -> None:
        self.env = env
        self.notifier = notifier
        self._echo = echo or (lambda line: click.echo(line, nl=False))

    def run(
        self,
        argv: Sequence[str],
        *,
        cwd: str | Path | None = None,
        env: Mapping[str, str] | None = None,
    ) -> str:
        """Run *argv* to completion and return its combined output.

        Raises :class:`ExecutionError` on a non-zero exit status or when the
        executable cannot be started.
        """
        command = [str(a) for a in argv]
        log.info("exec.start", command=" ".join(command), cwd=str(cwd) if cwd else None)

        try:
            proc = subprocess.Popen(
                command,
                cwd=str(cwd) if cwd else None,
                env=self.env.process_env(env),
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                stdin=subprocess.DEVNULL,
                text=True,
                errors="replace",
            )
        except OSError as exc:
            self._fail(ExecutionError(command, _NOT_FOUND_EXIT, str(exc)))

        chunks: list[str] = []
        assert proc.stdout is not None
        with proc.stdout:
            for line in proc.stdout:
                chunks.append(line)
                if self.env.verbose:
                    self._echo(line)
        returncode = proc.wait()
        output = "".join(chunks)

        if returncode != 0:
            self._fail(ExecutionError(command, returncode, output))

        log.debug("exec.done", command=command[0], output_bytes=len(output))
        return output

    def _fail(self, error: ExecutionError) -> NoReturn:
        log.error(
            "exec.failed",
            command=error.command_line,
            exit_code=error.exit_code,
            output_tail=error.output[-2000:],
        )
        try:
            self.notifier(f"Failed to execute: {error.command_line}")
        except Exception:
            log.debug("exec.notify_error", exc_info=True)
        raise error
