"""Tests for console output rendering."""

import io

from tconsole.models.result import Failure, SuiteCounts, TestResult
from tconsole.reporter import Reporter
from tconsole.testing.factories import TestResultFactory


def render(result: TestResult) -> str:
    """Render a result to a string."""
    stream = io.StringIO()
    Reporter(stream=stream).result(result)
    return stream.getvalue()


def test_passing_totals() -> None:
    """A passing run prints a single totals line."""
    result = TestResult(
        suite_counts={
            "tests/test_a.py": SuiteCounts(runs=2),
            "tests/test_b.py": SuiteCounts(runs=3, skips=1),
        },
        duration=1.5,
    )

    assert render(result) == "✓ 5 tests, 0 failures, 0 errors, 1 skips (1.50s)\n"


def test_failures_before_totals() -> None:
    """Failures are printed with their detail before the totals."""
    result = TestResult(
        suite_counts={"tests/test_a.py": SuiteCounts(runs=2, failures=1, errors=1)},
        failures=[
            Failure(
                suite="tests/test_a.py",
                name="tests/test_a.py::test_one",
                location="tests/test_a.py:4",
                message="assert 1 == 2",
                detail="def test_one():\n>       assert 1 == 2\n",
            )
        ],
    )

    assert render(result).splitlines() == [
        "✗ tests/test_a.py::test_one",
        "  tests/test_a.py:4: assert 1 == 2",
        "    def test_one():",
        "    >       assert 1 == 2",
        "",
        "✗ 2 tests, 1 failures, 1 errors, 0 skips (0.00s)",
    ]


def test_error_prefix() -> None:
    """Errors are marked."""
    stream = io.StringIO()

    Reporter(stream=stream).error("Unknown file set 'views'")

    assert stream.getvalue() == "! Unknown file set 'views'\n"


def test_help_aligns_descriptions() -> None:
    """Command descriptions start in the same column."""
    stream = io.StringIO()

    Reporter(stream=stream).help(
        [("help", "Show help"), ("set fast on|off", "Fail fast")]
    )

    assert stream.getvalue().splitlines() == [
        "  help             Show help",
        "  set fast on|off  Fail fast",
    ]


def test_duration_has_two_decimals() -> None:
    """Durations are rounded to hundredths of a second."""
    result = TestResultFactory.build(duration=2.5)

    assert render(result).endswith("(2.50s)\n")
