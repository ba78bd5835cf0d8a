"""Tests for framework loading."""

from importlib.metadata import EntryPoint
from unittest.mock import patch

import pytest

from tconsole.frameworks.loading import (
    ENTRY_POINT_GROUP,
    FrameworkLoadError,
    FrameworkNotFoundError,
    InvalidFrameworkError,
    load_framework,
)
from tconsole.frameworks.pytest_runner import pytest_framework
from tconsole.frameworks.unittest_runner import unittest_framework


def test_load_framework_returns_pytest_variant() -> None:
    """Loads the pytest variant by key."""
    assert load_framework("pytest") is pytest_framework


def test_load_framework_returns_unittest_variant() -> None:
    """Loads the unittest variant by key."""
    assert load_framework("unittest") is unittest_framework


def test_load_framework_raises_for_unknown_framework() -> None:
    """Raises FrameworkNotFoundError for unknown framework key."""
    with pytest.raises(FrameworkNotFoundError) as exc_info:
        load_framework("nose")

    assert "nose" in str(exc_info.value)
    assert "Available frameworks" in str(exc_info.value)


def test_load_framework_rejects_non_runner_entry_point() -> None:
    """An entry point that does not load a FrameworkRunner is rejected."""
    broken = EntryPoint(name="broken", value="os:sep", group=ENTRY_POINT_GROUP)

    with patch("tconsole.frameworks.loading.entry_points", return_value=[broken]):
        with pytest.raises(InvalidFrameworkError) as exc_info:
            load_framework("broken")

    assert "'broken' (os:sep) provides str" in str(exc_info.value)


def test_load_errors_share_a_base() -> None:
    """Callers can handle every load failure at once."""
    assert issubclass(FrameworkNotFoundError, FrameworkLoadError)
    assert issubclass(InvalidFrameworkError, FrameworkLoadError)
