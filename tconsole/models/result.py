"""Models for test run results."""

from collections.abc import Iterable, Mapping, Sequence
from typing import Self

from pydantic import Field, NonNegativeInt

from tconsole.models.base import Model


class SuiteCounts(Model):
    """Tally of one suite (test file) in a run."""

    runs: NonNegativeInt = 0
    failures: NonNegativeInt = 0
    errors: NonNegativeInt = 0
    skips: NonNegativeInt = 0

    def __add__(self, other: "SuiteCounts") -> "SuiteCounts":
        return SuiteCounts(
            runs=self.runs + other.runs,
            failures=self.failures + other.failures,
            errors=self.errors + other.errors,
            skips=self.skips + other.skips,
        )


class Failure(Model):
    """A failed or errored test reported by the framework."""

    suite: str = Field(..., description="Test file the failure belongs to")
    name: str = Field(..., description="Test identifier usable as an element filter")
    location: str = Field(..., description="Failure location as path:line")
    message: str = Field(default="", description="One-line failure message")
    detail: str = Field(default="", description="Full traceback text")


class TestResult(Model):
    """Outcome of one run, or the aggregate of several runs.

    Only data reported by the test framework lives here. A run that never
    produced a result (crashed worker, unknown file set) is an exception,
    never an empty TestResult.
    """

    __test__ = False

    suite_counts: Mapping[str, SuiteCounts] = Field(default_factory=dict)
    elements: frozenset[str] = Field(default_factory=frozenset)
    failures: Sequence[Failure] = Field(default_factory=list)
    duration: float = Field(default=0.0, ge=0.0)

    @property
    def totals(self) -> SuiteCounts:
        """Counts summed over every suite."""
        return sum(self.suite_counts.values(), SuiteCounts())

    @property
    def has_failures(self) -> bool:
        """Whether any suite reported a failure or an error."""
        totals = self.totals
        return totals.failures > 0 or totals.errors > 0

    @classmethod
    def merge(cls, results: Iterable[Self]) -> Self:
        """Combine results in execution order.

        Counts are summed per suite, failures concatenated, elements unioned
        and durations summed.
        """
        suite_counts: dict[str, SuiteCounts] = {}
        elements: set[str] = set()
        failures: list[Failure] = []
        duration = 0.0

        for result in results:
            for suite, counts in result.suite_counts.items():
                suite_counts[suite] = suite_counts.get(suite, SuiteCounts()) + counts
            elements.update(result.elements)
            failures.extend(result.failures)
            duration += result.duration

        return cls(
            suite_counts=suite_counts,
            elements=frozenset(elements),
            failures=failures,
            duration=duration,
        )
