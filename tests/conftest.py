"""Shared pytest fixtures for all tests."""

import pytest

import winadmin.operations  # noqa: F401  registers every template and operation
from stubs import StubExecutor
from winadmin.core.errors import SpawnFailed


@pytest.fixture
def stub() -> StubExecutor:
    return StubExecutor()


@pytest.fixture
def spawn_failure() -> SpawnFailed:
    return SpawnFailed("Executable not found: powershell.exe", executable="powershell.exe")
