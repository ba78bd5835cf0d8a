"""Fixtures for integration tests."""

from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Protocol

import pytest

from tconsole.config import HOOK_NAMES, Configuration
from tconsole.frameworks.base import FrameworkRunner
from tconsole.worker import Worker

HOOK_LOG = "hooks.log"


class WriteFileFn(Protocol):
    """Protocol for project file creation function."""

    def __call__(self, path: str, content: str = "") -> Path:
        """Write a file below the project root and return its path."""


class MakeWorkerFn(Protocol):
    """Protocol for worker creation function."""

    def __call__(
        self,
        framework: FrameworkRunner,
        configure: Callable[[Configuration], None] | None = None,
    ) -> Worker:
        """Create a worker for the project."""


def record_hooks(config: Configuration) -> None:
    """Configurer that appends every hook call to the hook log."""
    log_path = config.root / HOOK_LOG

    def recorder(name: str) -> Callable[[], None]:
        def record() -> None:
            with log_path.open("a") as stream:
                stream.write(f"{name}\n")

        return record

    for name in HOOK_NAMES:
        config.hooks.register(name, recorder(name))


def read_hook_log(root: Path) -> list[str]:
    """Hook calls recorded so far, in order."""
    log_path = root / HOOK_LOG
    return log_path.read_text().splitlines() if log_path.exists() else []


@pytest.fixture
def project(tmp_path: Path) -> Path:
    """Create a project with test directories for both frameworks."""
    (tmp_path / "tests").mkdir()
    (tmp_path / "test").mkdir()
    return tmp_path


@pytest.fixture
def write_file(project: Path) -> WriteFileFn:
    """Return a function to write project files."""

    def _write(path: str, content: str = "") -> Path:
        file = project / path
        file.parent.mkdir(parents=True, exist_ok=True)
        file.write_text(content)
        return file

    return _write


@pytest.fixture
def make_worker(project: Path) -> Iterator[MakeWorkerFn]:
    """Return a function to create workers, stopping them afterwards."""
    workers: list[Worker] = []

    def _make(
        framework: FrameworkRunner,
        configure: Callable[[Configuration], None] | None = None,
    ) -> Worker:
        config = Configuration.configure(
            framework,
            root=project,
            configurers=[configure] if configure else [],
        )
        worker = Worker(config=config, framework=framework)
        workers.append(worker)
        return worker

    yield _make

    for worker in workers:
        worker.stop()
