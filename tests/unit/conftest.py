"""Fixtures for unit tests."""

from pathlib import Path

import pytest

from tconsole.config import Configuration
from tconsole.frameworks.pytest_runner import pytest_framework


@pytest.fixture
def project(tmp_path: Path) -> Path:
    """Create an empty project with a tests directory."""
    (tmp_path / "tests").mkdir()
    return tmp_path


@pytest.fixture
def config(project: Path) -> Configuration:
    """Create a pytest mode configuration rooted at the project."""
    return Configuration.configure(pytest_framework, root=project)
