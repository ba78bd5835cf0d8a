"""Resolve file sets and run them batch by batch through the worker."""

import glob
import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from tconsole.config import Configuration
from tconsole.frameworks.base import FrameworkRunner
from tconsole.models.result import TestResult
from tconsole.worker import Worker

log = logging.getLogger(__name__)


class UnknownFileSetError(Exception):
    """Raised when a file set name is not configured."""


def resolve_patterns(root: Path, patterns: Iterable[str]) -> list[str]:
    """Expand glob patterns into existing files, first occurrence wins.

    Matches of a single pattern are sorted; the order of the patterns is
    kept. Paths are relative to ``root`` unless the pattern is absolute.
    """
    files: dict[str, None] = {}
    for pattern in patterns:
        for match in sorted(glob.glob(pattern, root_dir=root, recursive=True)):
            if (root / match).is_file():
                files.setdefault(match, None)
    return list(files)


@dataclass(kw_only=True)
class Runner:
    """Turns a file set name into worker invocations and one result."""

    config: Configuration
    worker: Worker
    framework: FrameworkRunner
    last_result: TestResult | None = field(default=None, init=False)

    def resolve_files(self, file_set_name: str) -> list[str]:
        """Resolve a file set against the filesystem as it is right now.

        Raises:
            UnknownFileSetError: If no file set has this name

        """
        try:
            patterns = self.config.file_sets[file_set_name]
        except KeyError:
            available = sorted(self.config.file_sets)
            raise UnknownFileSetError(
                f"Unknown file set '{file_set_name}'. Available file sets: {available}"
            ) from None
        return resolve_patterns(self.config.root, patterns)

    def run(self, file_set_name: str, elements: Sequence[str] = ()) -> TestResult:
        """Run a file set, optionally filtered to some elements.

        Args:
            file_set_name: Name of a configured file set
            elements: Element filters forwarded to the framework

        Returns:
            Aggregate of every batch that ran

        Raises:
            UnknownFileSetError: If no file set has this name
            WorkerError: If a batch crashed; the cache is left untouched

        """
        files = self.resolve_files(file_set_name)
        log.info("Running file set %s (%d file(s))", file_set_name, len(files))
        return self._run_files(files, elements)

    def run_failed(self) -> TestResult:
        """Re-run only the tests that failed in the last run."""
        failures = self.last_result.failures if self.last_result is not None else []
        if not failures:
            log.info("No failures to re-run")
            return TestResult()

        files = list(dict.fromkeys(failure.suite for failure in failures))
        names = list(dict.fromkeys(failure.name for failure in failures))
        log.info("Re-running %d failed test(s) in %d file(s)", len(names), len(files))
        return self._run_files(files, names)

    def _run_files(self, files: Sequence[str], elements: Sequence[str]) -> TestResult:
        results: list[TestResult] = []

        for batch in self.framework.batches(files):
            result = self.worker.execute(batch, elements)
            results.append(result)

            if self.config.fail_fast and result.has_failures:
                log.info("Fail fast: stopping after %s", ", ".join(batch))
                break

        aggregate = TestResult.merge(results)
        self.config.cache_test_ids(aggregate)
        self.last_result = aggregate
        return aggregate
