"""Custom exceptions for magick-builder."""

from __future__ import annotations


class BuilderError(Exception):
    """Base exception for all build orchestration errors."""


class ResolutionError(BuilderError):
    """Raised when no acceptable version is found for a dependency."""


class FetchError(BuilderError):
    """Raised when a download, clone or archive extraction fails after retrying."""


class ExecutionError(BuilderError):
    """Raised when an external build command exits non-zero."""

    def __init__(self, command: list[str], exit_code: int, output: str = ""):
        self.command = list(command)
        self.exit_code = exit_code
        self.output = output
        super().__init__(f"Failed to execute: {self.command_line} (exit {exit_code})")

    @property
    def command_line(self) -> str:
        return " ".join(self.command)


class ConfigurationError(BuilderError):
    """Raised when the build environment or recipe list is invalid."""
