"""Console configuration and environment lifecycle hooks."""

import importlib.util
import logging
from collections.abc import Callable, Iterable, Sequence
from enum import StrEnum
from pathlib import Path
from typing import Self

from pydantic import BaseModel, ConfigDict, Field

from tconsole.frameworks.base import FrameworkRunner
from tconsole.models.result import SuiteCounts, TestResult

log = logging.getLogger(__name__)

CONFIG_FILE_NAME = ".tconsole.py"
TEST_FILE_PATTERNS = ("test_*.py", "*_test.py")
HOOK_NAMES = ("before_load", "after_load", "before_test_run")

Callback = Callable[[], None]


class LifecycleHooks:
    """Environment callbacks invoked by the worker process.

    Each hook holds at most one callback; registering again replaces it.
    Adapters that need more than a callable can subclass and override the
    hook methods. A hook without a callback does nothing.
    """

    def __init__(self) -> None:
        self._callbacks: dict[str, Callback] = {}

    def register(self, hook: str, callback: Callback) -> None:
        """Set the callback for a hook, replacing any previous one."""
        if hook not in HOOK_NAMES:
            raise ValueError(
                f"Unknown hook '{hook}'. Available hooks: {list(HOOK_NAMES)}"
            )
        self._callbacks[hook] = callback

    def registered(self, hook: str) -> Callback | None:
        """Return the callback registered for a hook, if any."""
        return self._callbacks.get(hook)

    def before_load(self) -> None:
        """Run before the worker loads include and preload paths."""
        self._call("before_load")

    def after_load(self) -> None:
        """Run once the environment is loaded."""
        self._call("after_load")

    def before_test_run(self) -> None:
        """Run in each forked child before test files are loaded."""
        self._call("before_test_run")

    def _call(self, hook: str) -> None:
        if (callback := self._callbacks.get(hook)) is not None:
            log.debug("Running %s hook", hook)
            callback()


class ConfigIssue(StrEnum):
    """Problems that prevent the console from starting."""

    MISSING_TEST_DIR = "missing-test-dir"
    MISSING_ALL_FILE_SET = "missing-all-file-set"


class ConfigValidationError(Exception):
    """Raised when the configuration is not usable."""

    def __init__(self, issues: Sequence[ConfigIssue], messages: Sequence[str]):
        super().__init__("\n".join(messages))
        self.issues = list(issues)
        self.messages = list(messages)


def patterns_under(directory: str) -> list[str]:
    """Glob patterns matching test modules anywhere below a directory."""
    return [f"{directory}/**/{pattern}" for pattern in TEST_FILE_PATTERNS]


def default_file_sets(root: Path, test_dir: str) -> dict[str, list[str]]:
    """Build the ``all`` file set plus one set per test subdirectory."""
    file_sets = {"all": patterns_under(test_dir)}

    test_path = root / test_dir
    if not test_path.is_dir():
        return file_sets

    for entry in sorted(test_path.iterdir()):
        if entry.is_dir() and not entry.name.startswith((".", "__")):
            file_sets.setdefault(
                entry.name, patterns_under(f"{test_dir}/{entry.name}")
            )
    return file_sets


class Configuration(BaseModel):
    """Everything the worker, runner and console need to know.

    Built once at startup by ``configure``. Only the cache fields change
    afterwards, after every completed run.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, validate_assignment=True)

    mode: str = Field(..., description="Framework variant name")
    root: Path = Field(..., description="Project directory")
    test_dir: str = Field(..., description="Test directory, relative to root")
    include_paths: list[str] = Field(
        default_factory=list, description="Paths prepended to sys.path in the worker"
    )
    preload_paths: list[str] = Field(
        default_factory=list,
        description="Modules or .py files loaded once by the worker",
    )
    file_sets: dict[str, list[str]] = Field(
        default_factory=dict, description="File set name to glob patterns"
    )
    fail_fast: bool = False
    trace: bool = False
    run_command: str = ""
    once: bool = False
    hooks: LifecycleHooks = Field(default_factory=LifecycleHooks, exclude=True)

    cached_suite_counts: dict[str, SuiteCounts] = Field(default_factory=dict)
    cached_elements: set[str] = Field(default_factory=set)

    @classmethod
    def configure(
        cls,
        framework: FrameworkRunner,
        *,
        root: Path | None = None,
        trace: bool = False,
        once: bool = False,
        run_command: str = "",
        configurers: Iterable[Callable[[Self], None]] = (),
        hooks: LifecycleHooks | None = None,
    ) -> Self:
        """Build the configuration for a framework variant.

        Defaults come first, then command line values, then each configurer
        in order.
        """
        root = (root or Path.cwd()).resolve()
        test_dir = framework.default_test_dir

        config = cls(
            mode=framework.name,
            root=root,
            test_dir=test_dir,
            include_paths=[".", test_dir, "src"],
            file_sets=default_file_sets(root, test_dir),
            trace=trace,
            once=once,
            run_command=run_command,
            hooks=hooks or LifecycleHooks(),
        )

        for configurer in configurers:
            configurer(config)

        return config

    def before_load(self, callback: Callback) -> Callback:
        """Register the before_load callback. Usable as a decorator."""
        self.hooks.register("before_load", callback)
        return callback

    def after_load(self, callback: Callback) -> Callback:
        """Register the after_load callback. Usable as a decorator."""
        self.hooks.register("after_load", callback)
        return callback

    def before_test_run(self, callback: Callback) -> Callback:
        """Register the before_test_run callback. Usable as a decorator."""
        self.hooks.register("before_test_run", callback)
        return callback

    def validate(self) -> list[ConfigIssue]:
        """Return the issues that prevent the console from starting."""
        issues: list[ConfigIssue] = []

        if not (self.root / self.test_dir).is_dir():
            issues.append(ConfigIssue.MISSING_TEST_DIR)

        if not self.file_sets.get("all"):
            issues.append(ConfigIssue.MISSING_ALL_FILE_SET)

        return issues

    def ensure_valid(self) -> None:
        """Raise ConfigValidationError if validate() reports anything."""
        if issues := self.validate():
            raise ConfigValidationError(
                issues, [self.describe_issue(issue) for issue in issues]
            )

    def describe_issue(self, issue: ConfigIssue) -> str:
        """Human readable message for a validation issue."""
        match issue:
            case ConfigIssue.MISSING_TEST_DIR:
                return f"Couldn't find test directory `{self.test_dir}`."
            case ConfigIssue.MISSING_ALL_FILE_SET:
                return "No `all` file set is defined in your configuration."

    def cache_test_ids(self, result: TestResult) -> None:
        """Replace the cache with the suites and elements of a run."""
        self.cached_suite_counts = dict(result.suite_counts)
        self.cached_elements = set(result.elements)


def default_config_paths(root: Path) -> list[Path]:
    """Configuration files read at startup, user file first."""
    return [Path.home() / CONFIG_FILE_NAME, root / CONFIG_FILE_NAME]


def load_configurers(
    paths: Iterable[Path],
) -> list[Callable[[Configuration], None]]:
    """Load the ``configure(config)`` function of each existing file.

    Missing files are skipped. Errors raised while executing a file
    propagate, a broken configuration file is fatal.
    """
    configurers: list[Callable[[Configuration], None]] = []

    for index, path in enumerate(paths):
        if not path.is_file():
            continue

        log.debug("Loading configuration file %s", path)
        spec = importlib.util.spec_from_file_location(f"_tconsole_config_{index}", path)
        if spec is None or spec.loader is None:
            raise ImportError(f"Cannot load configuration file {path}")
        module = importlib.util.module_from_spec(spec)
        spec.loader.exec_module(module)

        configure = getattr(module, "configure", None)
        if not callable(configure):
            log.warning("Configuration file %s has no configure(config) function", path)
            continue
        configurers.append(configure)

    return configurers
