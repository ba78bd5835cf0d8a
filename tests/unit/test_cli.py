"""Tests for CLI module."""

import io
import logging
from pathlib import Path

import pytest

from tconsole.cli import parse_args, run
from tconsole.reporter import Reporter


def test_parse_args_defaults() -> None:
    """Without arguments the pytest console starts interactively."""
    args = parse_args([])

    assert args.mode == "pytest"
    assert not args.trace
    assert not args.once
    assert args.config == []
    assert args.command == []


def test_parse_args_all_options() -> None:
    """Parses all command line options."""
    args = parse_args(
        [
            "--mode",
            "unittest",
            "-t",
            "-o",
            "--config",
            "ci.py",
            "models",
            "TestUser",
        ]
    )

    assert args.mode == "unittest"
    assert args.trace
    assert args.once
    assert args.config == [Path("ci.py")]
    assert args.command == ["models", "TestUser"]


def test_parse_args_long_flags() -> None:
    """Long flag names are accepted."""
    args = parse_args(["--trace", "--once"])

    assert args.trace
    assert args.once


def test_run_unknown_mode(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    """An unknown framework exits with 1."""
    with caplog.at_level(logging.ERROR):
        exit_code = run("nose", root=tmp_path, config_paths=[tmp_path / ".tconsole.py"])

    assert exit_code == 1
    assert "Framework 'nose' not found" in caplog.text


def test_run_missing_test_directory(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    """A missing test directory exits with 1 before starting a worker."""
    with caplog.at_level(logging.ERROR):
        exit_code = run(
            "pytest",
            once=True,
            root=tmp_path,
            config_paths=[tmp_path / ".tconsole.py"],
            reporter=Reporter(stream=io.StringIO()),
        )

    assert exit_code == 1
    assert "Couldn't find test directory `tests`. Exiting." in caplog.text


def test_run_applies_configuration_file(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    """Configuration files are applied before validation."""
    (tmp_path / "tests").mkdir()
    config_file = tmp_path / ".tconsole.py"
    config_file.write_text(
        "def configure(config):\n"
        "    config.test_dir = 'spec'\n"
    )

    with caplog.at_level(logging.ERROR):
        exit_code = run("pytest", once=True, root=tmp_path, config_paths=[config_file])

    assert exit_code == 1
    assert "Couldn't find test directory `spec`." in caplog.text
