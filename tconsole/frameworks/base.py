"""Abstract base for test framework variants."""

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass

from tconsole.models.result import TestResult


@dataclass(frozen=True, kw_only=True)
class FrameworkRunner(ABC):
    """Runs test files with one test framework inside a forked child.

    ``batch_size`` is the number of files a single framework invocation
    accepts. ``None`` means every file of a run goes to one invocation.
    """

    name: str
    default_test_dir: str
    batch_size: int | None = None

    @abstractmethod
    def run_tests(
        self,
        files: Sequence[str],
        elements: Sequence[str] = (),
        *,
        verbose: bool = False,
    ) -> TestResult:
        """Load exactly the given files, run their tests and tally the outcome.

        Args:
            files: Test files, relative to the working directory
            elements: Element filters; empty runs every test in the files
            verbose: Whether the framework should print per-test progress

        Returns:
            Counts, discovered elements and failures of this invocation

        """

    def batches(self, files: Sequence[str]) -> list[list[str]]:
        """Split resolved files into per-invocation batches, keeping order."""
        if not files:
            return []
        if self.batch_size is None:
            return [list(files)]
        return [
            list(files[start : start + self.batch_size])
            for start in range(0, len(files), self.batch_size)
        ]


def matches_any(identifier: str, elements: Sequence[str], separator: str) -> bool:
    """Check whether any element filter selects a test identifier.

    An element selects a test when it is the identifier itself, a prefix of
    it ending at a separator or parameter bracket, or one of its parts
    (``TestUser`` selects ``tests/test_user.py::TestUser::test_name``).
    """
    if not elements:
        return True

    parts = {part.split("[", 1)[0] for part in identifier.split(separator)}
    return any(
        identifier == element
        or identifier.startswith((element + separator, element + "["))
        or element in parts
        for element in elements
    )
