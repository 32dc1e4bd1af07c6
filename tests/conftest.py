"""
Pytest configuration and shared fixtures for itil-config tests.

This module provides reusable fixtures and test utilities used across
the test suite.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest
import yaml

from itil_config.decoder import SectionRegistry
from itil_config.logging import get_global_logger, set_global_logger


class RecordingLogger:
    """Logger that keeps every message for assertions."""

    def __init__(self) -> None:
        self.messages: list[tuple[str, str, str]] = []

    def step(self, step: int, total: int, message: str) -> None:
        self.messages.append(("step", "", message))

    def warning(self, prefix: str, message: str) -> None:
        self.messages.append(("warning", prefix, message))

    def verbose(self, prefix: str, message: str) -> None:
        self.messages.append(("verbose", prefix, message))

    def debug(self, prefix: str, message: str) -> None:
        self.messages.append(("debug", prefix, message))

    def warnings(self) -> list[str]:
        return [m for level, _, m in self.messages if level == "warning"]


@pytest.fixture(autouse=True)
def restore_global_logger():
    """Put the global logger back after each test."""
    previous = get_global_logger()
    yield
    set_global_logger(previous)


@pytest.fixture
def recording_logger() -> RecordingLogger:
    """Install a RecordingLogger as the global logger."""
    logger = RecordingLogger()
    set_global_logger(logger)
    return logger


@pytest.fixture
def tmp_test_dir(tmp_path: Path) -> Path:
    """
    Provide a temporary directory for test artifacts.

    Automatically cleaned up after test completion.
    """
    return tmp_path


@pytest.fixture
def config_dir(tmp_test_dir: Path) -> Path:
    """Provide an empty config directory."""
    path = tmp_test_dir / "config"
    path.mkdir()
    return path


@pytest.fixture
def registry() -> SectionRegistry:
    """Provide an empty, isolated extension registry."""
    return SectionRegistry()


@pytest.fixture
def base_settings() -> str:
    """Provide a complete base settings file in TOML."""
    return """
[server]
ip = "127.0.0.1"
port = 3000

[database]
url = "postgres://base"
"""


@pytest.fixture
def create_toml_file(config_dir: Path):
    """
    Factory fixture for creating TOML files in the config directory.

    Usage:
        path = create_toml_file("app.toml", '[server]\\nport = 3000\\n')
    """

    def _create(filename: str, content: str) -> Path:
        path = config_dir / filename
        path.write_text(content, encoding="utf-8")
        return path

    return _create


@pytest.fixture
def create_yaml_file(config_dir: Path):
    """
    Factory fixture for creating YAML files in the config directory.

    Usage:
        path = create_yaml_file("app.yaml", {"server": {"port": 3000}})
    """

    def _create(filename: str, data: dict[str, Any]) -> Path:
        path = config_dir / filename
        with path.open("w", encoding="utf-8") as f:
            yaml.dump(data, f)
        return path

    return _create
