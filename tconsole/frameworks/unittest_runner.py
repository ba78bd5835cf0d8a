"""unittest framework variant."""

import importlib.util
import logging
import sys
import time
import traceback
import unittest
from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from functools import partial
from pathlib import Path
from types import ModuleType, TracebackType

from tconsole.frameworks.base import FrameworkRunner, matches_any
from tconsole.models.result import Failure, SuiteCounts, TestResult

log = logging.getLogger(__name__)

ExcInfo = tuple[type[BaseException], BaseException, TracebackType | None]


def module_name_for(path: str) -> str:
    """Dotted module name of a test file (``test/models/test_user.py``)."""
    return ".".join(Path(path).with_suffix("").parts)


def load_test_module(path: str) -> ModuleType:
    """Import a test file by path under its dotted module name."""
    name = module_name_for(path)
    spec = importlib.util.spec_from_file_location(name, path)
    if spec is None or spec.loader is None:
        raise ImportError(f"Cannot import test file {path}")

    module = importlib.util.module_from_spec(spec)
    sys.modules[name] = module
    try:
        spec.loader.exec_module(module)
    except BaseException:
        del sys.modules[name]
        raise
    return module


def iter_tests(suite: unittest.TestSuite) -> Iterator[unittest.TestCase]:
    """Flatten nested suites into test cases."""
    for test in suite:
        if isinstance(test, unittest.TestSuite):
            yield from iter_tests(test)
        else:
            yield test


def failure_from_exc_info(suite: str, name: str, err: ExcInfo, detail: str) -> Failure:
    """Build a failure record, locating the deepest frame inside the suite."""
    frames = traceback.extract_tb(err[2])
    suite_path = Path(suite).resolve()
    in_suite = [
        frame for frame in frames if Path(frame.filename).resolve() == suite_path
    ]
    frame = (in_suite or frames or [None])[-1]
    location = suite if frame is None else f"{suite}:{frame.lineno}"
    message = traceback.format_exception_only(err[0], err[1])[-1].strip()

    return Failure(
        suite=suite, name=name, location=location, message=message, detail=detail
    )


class RecordingResult(unittest.TextTestResult):
    """Text result that also keeps structured failure records."""

    def __init__(self, *args, suite: str, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.suite = suite
        self.records: list[Failure] = []

    def addFailure(self, test, err) -> None:
        super().addFailure(test, err)
        self.records.append(
            failure_from_exc_info(self.suite, test.id(), err, self.failures[-1][1])
        )

    def addError(self, test, err) -> None:
        super().addError(test, err)
        self.records.append(
            failure_from_exc_info(self.suite, test.id(), err, self.errors[-1][1])
        )

    def addSubTest(self, test, subtest, err) -> None:
        super().addSubTest(test, subtest, err)
        if err is not None:
            failed = issubclass(err[0], test.failureException)
            detail = (self.failures if failed else self.errors)[-1][1]
            self.records.append(
                failure_from_exc_info(self.suite, subtest.id(), err, detail)
            )

    def counts(self) -> SuiteCounts:
        return SuiteCounts(
            runs=self.testsRun,
            failures=len(self.failures),
            errors=len(self.errors),
            skips=len(self.skipped),
        )


@dataclass(frozen=True, kw_only=True)
class UnittestRunner(FrameworkRunner):
    """Imports each file and runs its tests with ``unittest``."""

    def run_tests(
        self,
        files: Sequence[str],
        elements: Sequence[str] = (),
        *,
        verbose: bool = False,
    ) -> TestResult:
        """Run every file in order and merge the per-file results."""
        started = time.perf_counter()
        results = [self._run_file(path, elements, verbose=verbose) for path in files]
        merged = TestResult.merge(results)
        return merged.model_copy(update={"duration": time.perf_counter() - started})

    def _run_file(
        self, path: str, elements: Sequence[str], *, verbose: bool
    ) -> TestResult:
        try:
            module = load_test_module(path)
        except Exception as error:
            # A test file that does not import is an error of that suite.
            log.debug("Could not import %s: %s", path, error)
            err = sys.exc_info()
            detail = "".join(traceback.format_exception(error))
            return TestResult(
                suite_counts={path: SuiteCounts(errors=1)},
                elements=frozenset({path}),
                failures=[failure_from_exc_info(path, path, err, detail)],
            )

        loaded = unittest.defaultTestLoader.loadTestsFromModule(module)
        select_all = path in elements
        tests = [
            test
            for test in iter_tests(loaded)
            if select_all or matches_any(test.id(), elements, ".")
        ]

        runner = unittest.TextTestRunner(
            stream=sys.stderr,
            verbosity=2 if verbose else 1,
            resultclass=partial(RecordingResult, suite=path),
        )
        result = runner.run(unittest.TestSuite(tests))

        return TestResult(
            suite_counts={path: result.counts()},
            elements=frozenset(self._discover(path, module.__name__, tests)),
            failures=list(result.records),
        )

    @staticmethod
    def _discover(
        path: str, module_name: str, tests: Sequence[unittest.TestCase]
    ) -> set[str]:
        discovered = {path, module_name}
        for test in tests:
            test_id = test.id()
            class_id, _, method_name = test_id.rpartition(".")
            discovered.update({test_id, class_id, type(test).__name__, method_name})
        return discovered


unittest_framework = UnittestRunner(
    name="unittest", default_test_dir="test", batch_size=1
)
