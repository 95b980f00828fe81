"""Pytest configuration and fixtures for all tests."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest

from switchyard.adapters import build_adapters
from switchyard.core.models import Provider
from switchyard.core.registry import ProviderRegistry


@pytest.fixture(autouse=True)
def isolate_environment(monkeypatch):
    """Keep SWITCHYARD_* overrides from the developer's shell out of tests."""
    monkeypatch.delenv("SWITCHYARD_HOME", raising=False)
    monkeypatch.delenv("SWITCHYARD_PROJECT_PATH", raising=False)


@pytest.fixture
def home(tmp_path) -> Path:
    path = tmp_path / "home"
    path.mkdir()
    return path


@pytest.fixture
def project(tmp_path) -> Path:
    path = tmp_path / "project"
    path.mkdir()
    return path


@pytest.fixture
def data_dir(tmp_path) -> Path:
    return tmp_path / "data"


@pytest.fixture
def registry(data_dir) -> ProviderRegistry:
    return ProviderRegistry(data_dir)


@pytest.fixture
def adapters(home, project):
    return build_adapters(home, project)


def build_provider(name: str = "Relay", **overrides: Any) -> Provider:
    data: dict[str, Any] = {
        "name": name,
        "api_key": "sk-test-1234567890",
        "base_url": "https://relay.example.com",
        "model_type": "claude",
        "models": [{"id": "claude-sonnet-4"}],
    }
    data.update(overrides)
    return Provider.model_validate(data)


@pytest.fixture
def make_provider():
    """Factory for valid providers; keyword overrides replace the defaults."""
    return build_provider
