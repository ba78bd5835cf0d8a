"""pytest framework variant."""

import logging
import os
import time
from collections import Counter, defaultdict
from collections.abc import Sequence
from dataclasses import dataclass

import pytest

from tconsole.frameworks.base import FrameworkRunner, matches_any
from tconsole.models.result import Failure, SuiteCounts, TestResult

log = logging.getLogger(__name__)

NODE_SEPARATOR = "::"


def suite_of(nodeid: str) -> str:
    """Test file part of a pytest node id."""
    return nodeid.split(NODE_SEPARATOR, 1)[0]


def failure_from_report(report: pytest.CollectReport | pytest.TestReport) -> Failure:
    """Build a failure record from a failed collect or test report."""
    crash = getattr(report.longrepr, "reprcrash", None)
    if crash is not None:
        location = f"{os.path.relpath(crash.path)}:{crash.lineno}"
        message = crash.message
    else:
        path, lineno, _ = report.location
        location = path if lineno is None else f"{path}:{lineno + 1}"
        message = next(iter(report.longreprtext.strip().splitlines()), "")

    return Failure(
        suite=suite_of(report.nodeid),
        name=report.nodeid,
        location=location,
        message=message,
        detail=report.longreprtext,
    )


class ResultCollector:
    """pytest plugin tallying reports into a TestResult."""

    def __init__(self, elements: Sequence[str] = ()) -> None:
        self.elements = list(elements)
        self.tallies: defaultdict[str, Counter[str]] = defaultdict(Counter)
        self.discovered: set[str] = set()
        self.failures: list[Failure] = []

    def pytest_collection_modifyitems(
        self, config: pytest.Config, items: list[pytest.Item]
    ) -> None:
        if self.elements:
            selected: list[pytest.Item] = []
            deselected: list[pytest.Item] = []
            for item in items:
                if matches_any(item.nodeid, self.elements, NODE_SEPARATOR):
                    selected.append(item)
                else:
                    deselected.append(item)
            if deselected:
                config.hook.pytest_deselected(items=deselected)
                items[:] = selected

        for item in items:
            self._discover(item.nodeid)

    def pytest_collectreport(self, report: pytest.CollectReport) -> None:
        if report.failed:
            self.tallies[suite_of(report.nodeid)]["errors"] += 1
            self.failures.append(failure_from_report(report))

    def pytest_runtest_logreport(self, report: pytest.TestReport) -> None:
        tally = self.tallies[suite_of(report.nodeid)]

        if report.when == "setup":
            tally["runs"] += 1
            if report.skipped:
                tally["skips"] += 1
            elif report.failed:
                tally["errors"] += 1
                self.failures.append(failure_from_report(report))
        elif report.when == "call":
            if report.skipped:
                tally["skips"] += 1
            elif report.failed:
                tally["failures"] += 1
                self.failures.append(failure_from_report(report))
        elif report.failed:
            tally["errors"] += 1
            self.failures.append(failure_from_report(report))

    def result(self, duration: float) -> TestResult:
        """Snapshot of everything collected so far."""
        return TestResult(
            suite_counts={
                suite: SuiteCounts(**tally) for suite, tally in self.tallies.items()
            },
            elements=frozenset(self.discovered),
            failures=list(self.failures),
            duration=duration,
        )

    def _discover(self, nodeid: str) -> None:
        suite, *names = nodeid.split(NODE_SEPARATOR)
        self.discovered.add(suite)
        for depth, name in enumerate(names, start=1):
            self.discovered.add(NODE_SEPARATOR.join([suite, *names[:depth]]))
            self.discovered.add(name.split("[", 1)[0])


@dataclass(frozen=True, kw_only=True)
class PytestRunner(FrameworkRunner):
    """Runs all files of a batch in a single ``pytest.main`` call."""

    def run_tests(
        self,
        files: Sequence[str],
        elements: Sequence[str] = (),
        *,
        verbose: bool = False,
    ) -> TestResult:
        """Run the files with pytest and collect the reports."""
        collector = ResultCollector(elements)
        args = [
            *files,
            f"--rootdir={os.getcwd()}",
            "-p",
            "no:cacheprovider",
            "--continue-on-collection-errors",
            "-v" if verbose else "-q",
        ]

        started = time.perf_counter()
        exit_code = pytest.main(args, plugins=[collector])
        duration = time.perf_counter() - started
        log.debug("pytest exited with %s after %.2fs", exit_code, duration)

        if exit_code in (pytest.ExitCode.INTERNAL_ERROR, pytest.ExitCode.USAGE_ERROR):
            raise RuntimeError(
                f"pytest could not run {list(files)}: exit code {exit_code}"
            )

        return collector.result(duration)


pytest_framework = PytestRunner(name="pytest", default_test_dir="tests")
