"""Shared pytest fixtures for magick-builder tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from magick_builder.models.environment import BuildEnvironment


@pytest.fixture
def build_env(tmp_path: Path) -> BuildEnvironment:
    """A minimal environment rooted in a temp dir (no default search paths)."""
    return BuildEnvironment(root=tmp_path / "build", jobs=2)


@pytest.fixture
def sleeps() -> list[float]:
    """Collects delays passed to an injected ``sleep``."""
    return []
