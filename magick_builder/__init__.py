"""magick-builder: build ImageMagick 7 and its dependencies from source."""

__version__ = "4.3.0"

from magick_builder.exceptions import (
    BuilderError,
    ConfigurationError,
    ExecutionError,
    FetchError,
    ResolutionError,
)
from magick_builder.executor import TaskExecutor
from magick_builder.fetcher import Fetcher
from magick_builder.ledger import BuildLedger
from magick_builder.models import BuildEnvironment, DependencySpec, Version
from magick_builder.pipeline import PipelineDriver, PipelineResult
from magick_builder.resolver import VersionResolver

__all__ = [
    "BuildEnvironment",
    "BuildLedger",
    "BuilderError",
    "ConfigurationError",
    "DependencySpec",
    "ExecutionError",
    "FetchError",
    "Fetcher",
    "PipelineDriver",
    "PipelineResult",
    "ResolutionError",
    "TaskExecutor",
    "Version",
    "VersionResolver",
]
