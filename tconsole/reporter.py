"""Plain-text rendering of console output."""

import sys
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import TextIO

from tconsole.config import Configuration
from tconsole.models.result import TestResult

STATUS_SYMBOLS = {
    "passed": "✓",
    "failed": "✗",
    "error": "!",
}


@dataclass(kw_only=True)
class Reporter:
    """Writes everything the user sees to one stream."""

    stream: TextIO = field(default_factory=lambda: sys.stdout)

    def line(self, text: str = "") -> None:
        print(text, file=self.stream, flush=True)

    def error(self, message: str) -> None:
        self.line(f"{STATUS_SYMBOLS['error']} {message}")

    def result(self, result: TestResult) -> None:
        """Print failures, then the totals of a run."""
        for failure in result.failures:
            self.line(f"{STATUS_SYMBOLS['failed']} {failure.name}")
            self.line(f"  {failure.location}: {failure.message}")
            for detail_line in failure.detail.rstrip().splitlines():
                self.line(f"    {detail_line}")
            self.line()

        totals = result.totals
        symbol = STATUS_SYMBOLS["failed" if result.has_failures else "passed"]
        self.line(
            f"{symbol} {totals.runs} tests, {totals.failures} failures, "
            f"{totals.errors} errors, {totals.skips} skips ({result.duration:.2f}s)"
        )

    def help(self, commands: Sequence[tuple[str, str]]) -> None:
        width = max(len(usage) for usage, _ in commands)
        for usage, description in commands:
            self.line(f"  {usage.ljust(width)}  {description}")

    def file_sets(self, file_sets: Mapping[str, Sequence[str]]) -> None:
        for name, patterns in file_sets.items():
            self.line(f"{name}: {', '.join(patterns)}")

    def info(self, config: Configuration, worker_state: str) -> None:
        self.line(f"Mode: {config.mode}")
        self.line(f"Test directory: {config.test_dir}")
        self.line(f"Worker: {worker_state}")
        self.line(f"Fail fast: {'on' if config.fail_fast else 'off'}")
        if config.cached_suite_counts:
            self.line("Last run:")
            for suite, counts in sorted(config.cached_suite_counts.items()):
                self.line(
                    f"  {suite}: {counts.runs} tests, {counts.failures} failures, "
                    f"{counts.errors} errors, {counts.skips} skips"
                )
