"""Pytest configuration and shared fixtures for Dreadnot tests."""

import logging
import shutil
import tempfile
from collections.abc import Callable, Generator
from pathlib import Path
from typing import Any

import pytest

from dreadnot.deploy.module import StackModule
from dreadnot.lib.logging_config import ROOT_LOGGER_NAME
from dreadnot.models.config import DreadnotConfig, StackConfig
from dreadnot.models.deployment import Deployment


@pytest.fixture
def temp_dir() -> Generator[Path]:
    """Create a temporary directory for test file operations.

    Yields:
        Path to temporary directory

    Cleanup:
        Automatically removes directory after test
    """
    tmp = Path(tempfile.mkdtemp())
    yield tmp
    shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture(autouse=True)
def reset_logging() -> Generator[None]:
    """Remove console handlers installed by CLI invocations after each test."""
    yield
    root = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in list(root.handlers):
        root.removeHandler(handler)
    root.setLevel(logging.NOTSET)


def _build_module(name: str = "tapkick", **namespace: Any) -> StackModule:
    return StackModule.from_namespace(name, namespace)


def _make_deployment(
    name: str = "1",
    stack_name: str = "tapkick",
    region: str = "ord",
    **overrides: Any,
) -> Deployment:
    values: dict[str, Any] = {
        "environment": "production",
        "to_revision": "abc123",
        "user": "alice",
    }
    values.update(overrides)
    return Deployment(name=name, stack_name=stack_name, region=region, **values)


@pytest.fixture
def build_module() -> Callable[..., StackModule]:
    """Return a factory building a StackModule from keyword attributes.

    The keywords play the role of a stack module file's top-level names.
    """
    return _build_module


@pytest.fixture
def make_deployment() -> Callable[..., Deployment]:
    """Return a factory for unfinished deployment records."""
    return _make_deployment


@pytest.fixture
def make_config(temp_dir: Path) -> Callable[..., DreadnotConfig]:
    """Return a factory for settings rooted in ``temp_dir``.

    Stacks are given as ``name=StackConfig`` or ``name=dict`` keywords; by
    default a single ``tapkick`` stack deploys to ``ord`` and ``dfw``.
    """

    def _make(**stacks: Any) -> DreadnotConfig:
        if not stacks:
            stacks = {"tapkick": StackConfig(regions=["ord", "dfw"])}
        return DreadnotConfig(
            env="production",
            data_root=temp_dir / "data",
            stacks_dir=temp_dir / "stacks",
            stacks=stacks,
        )

    return _make


class FakeClock:
    """Manually advanced clock for cache tests."""

    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# Configure pytest
def pytest_configure(config: Any) -> None:
    """Configure pytest with marker options."""
    config.addinivalue_line(
        "markers",
        "slow: marks tests as slow (deselect with '-m \"not slow\"')",
    )
    config.addinivalue_line(
        "markers",
        "integration: marks tests as integration tests",
    )
    config.addinivalue_line(
        "markers",
        "unit: marks tests as unit tests",
    )
