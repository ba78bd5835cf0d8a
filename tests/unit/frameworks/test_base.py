"""Tests for the framework runner base class."""

from collections.abc import Sequence

import pytest

from tconsole.frameworks.base import FrameworkRunner, matches_any
from tconsole.models.result import TestResult


class RecordingFramework(FrameworkRunner):
    """Framework that records calls instead of running tests."""

    def run_tests(
        self,
        files: Sequence[str],
        elements: Sequence[str] = (),
        *,
        verbose: bool = False,
    ) -> TestResult:
        return TestResult()


FILES = ["tests/test_a.py", "tests/test_b.py", "tests/test_c.py"]


@pytest.mark.parametrize(
    ("batch_size", "expected"),
    [
        (None, [FILES]),
        (1, [[FILES[0]], [FILES[1]], [FILES[2]]]),
        (2, [FILES[:2], FILES[2:]]),
        (5, [FILES]),
    ],
)
def test_batches(batch_size: int | None, expected: list[list[str]]) -> None:
    """Files are split by batch size without reordering."""
    framework = RecordingFramework(
        name="recording", default_test_dir="tests", batch_size=batch_size
    )

    assert framework.batches(FILES) == expected


def test_batches_of_no_files() -> None:
    """No files means no invocation at all."""
    framework = RecordingFramework(name="recording", default_test_dir="tests")

    assert framework.batches([]) == []


def test_framework_runner_is_abstract() -> None:
    """FrameworkRunner cannot be instantiated without run_tests."""
    with pytest.raises(TypeError):
        FrameworkRunner(  # type: ignore[abstract]
            name="abstract", default_test_dir="tests"
        )


class TestMatchesAny:
    """Tests for element filter matching."""

    def test_no_elements_match_everything(self) -> None:
        """An empty filter selects every test."""
        assert matches_any("tests/test_user.py::test_login", [], "::")

    @pytest.mark.parametrize(
        "element",
        [
            "tests/test_user.py::TestUser::test_login",
            "tests/test_user.py",
            "tests/test_user.py::TestUser",
            "TestUser",
            "test_login",
        ],
    )
    def test_pytest_node_ids(self, element: str) -> None:
        """Node ids match by equality, prefix or part."""
        assert matches_any("tests/test_user.py::TestUser::test_login", [element], "::")

    def test_parametrized_node_ids(self) -> None:
        """Parameter brackets are ignored when matching parts and prefixes."""
        node_id = "tests/test_user.py::test_age[42]"

        assert matches_any(node_id, ["test_age"], "::")
        assert matches_any(node_id, ["tests/test_user.py::test_age"], "::")
        assert not matches_any(node_id, ["test_ag"], "::")

    def test_partial_names_do_not_match(self) -> None:
        """Only whole parts match."""
        node_id = "tests/test_user.py::TestUser::test_login"

        assert not matches_any(node_id, ["TestUse", "test_log", "tests/test_u"], "::")

    def test_unittest_ids(self) -> None:
        """unittest ids use dots as separator."""
        test_id = "test.models.test_user.UserTest.test_login"

        assert matches_any(test_id, ["UserTest"], ".")
        assert matches_any(test_id, ["test.models.test_user"], ".")
        assert matches_any(test_id, ["test_login"], ".")
        assert not matches_any(test_id, ["OrderTest", "test_logout"], ".")

    def test_any_element_is_enough(self) -> None:
        """Elements are alternatives."""
        assert matches_any("tests/test_a.py::test_one", ["test_two", "test_one"], "::")
