"""Interactive read-evaluate loop."""

import logging
import readline
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

from tconsole.config import Configuration
from tconsole.models.result import TestResult
from tconsole.reporter import Reporter
from tconsole.runner import Runner, UnknownFileSetError
from tconsole.worker import Worker, WorkerError

log = logging.getLogger(__name__)

PROMPT = "tconsole> "

COMMANDS: Sequence[tuple[str, str]] = (
    ("run <set> [element ...]", "Run a file set, optionally only some elements"),
    ("<set> [element ...]", "Same as run <set>"),
    ("!failed", "Re-run the failures of the last run"),
    ("reload", "Preload the environment again"),
    ("set fast on|off", "Stop after the first failing batch"),
    ("sets", "List file sets"),
    ("files <set>", "List the files a set resolves to"),
    ("info", "Show configuration and the last run"),
    ("help", "Show this help"),
    ("exit", "Leave the console"),
)
COMMAND_NAMES = (
    "run", "!failed", "reload", "set", "sets", "files", "info", "help", "exit", "quit"
)


@dataclass(kw_only=True)
class Console:
    """Reads commands and dispatches them to the runner and the worker."""

    config: Configuration
    runner: Runner
    worker: Worker
    reporter: Reporter
    read_line: Callable[[str], str] = input
    exit_code: int = field(default=0, init=False)

    def run_loop(self) -> None:
        """Run the startup command if any, then prompt until exit or EOF."""
        if self.config.run_command and not self.dispatch(self.config.run_command):
            return

        while True:
            try:
                line = self.read_line(PROMPT)
            except EOFError:
                self.reporter.line()
                return
            except KeyboardInterrupt:
                self.reporter.line()
                continue

            if not self.dispatch(line):
                return

    def run_once(self) -> int:
        """Run the startup command (``all`` when empty) and return an exit code."""
        self.dispatch(self.config.run_command or "all")
        return self.exit_code

    def dispatch(self, line: str) -> bool:
        """Execute one command line. Returns False when the console should exit."""
        words = line.split()
        if not words:
            return True

        command, *args = words
        self.exit_code = 0

        match command:
            case "exit" | "quit":
                return False
            case "help":
                self.reporter.help(COMMANDS)
            case "run":
                self._run(args[0] if args else "all", args[1:])
            case "!failed":
                self._report(self.runner.run_failed)
            case "reload":
                self._reload()
            case "set":
                self._set(args)
            case "sets":
                self.reporter.file_sets(self.config.file_sets)
            case "files":
                self._files(args[0] if args else "all")
            case "info":
                self.reporter.info(self.config, self.worker.state)
            case _ if command in self.config.file_sets:
                self._run(command, args)
            case _:
                self._fail(
                    f"Unknown command '{command}'. "
                    "Type 'help' for a list of commands."
                )

        return True

    def complete(self, text: str, state: int) -> str | None:
        """readline completer over commands, file sets and cached elements."""
        candidates = sorted(
            {*COMMAND_NAMES, *self.config.file_sets, *self.config.cached_elements}
        )
        matches = [candidate for candidate in candidates if candidate.startswith(text)]
        return matches[state] if state < len(matches) else None

    def _run(self, file_set_name: str, elements: Sequence[str]) -> None:
        self._report(lambda: self.runner.run(file_set_name, elements))

    def _files(self, file_set_name: str) -> None:
        try:
            files = self.runner.resolve_files(file_set_name)
        except UnknownFileSetError as error:
            self._fail(str(error))
            return

        for path in files:
            self.reporter.line(path)
        self.reporter.line(f"{len(files)} file(s) in {file_set_name}")

    def _report(self, run: Callable[[], TestResult]) -> None:
        try:
            result = run()
        except UnknownFileSetError as error:
            self._fail(str(error))
            return
        except WorkerError as error:
            log.debug("Run failed: %s", error)
            self._fail(f"Test run failed: {error}")
            return

        self.reporter.result(result)
        if result.has_failures:
            self.exit_code = 1

    def _reload(self) -> None:
        self.reporter.line("Reloading the environment...")
        try:
            self.worker.reload()
        except WorkerError as error:
            self._fail(f"Reload failed: {error}")
            return
        self.reporter.line("Environment reloaded.")

    def _set(self, args: Sequence[str]) -> None:
        match args:
            case ["fast", "on"]:
                self.config.fail_fast = True
                self.reporter.line("Fail fast enabled.")
            case ["fast", "off"]:
                self.config.fail_fast = False
                self.reporter.line("Fail fast disabled.")
            case _:
                self._fail("Usage: set fast on|off")

    def _fail(self, message: str) -> None:
        self.reporter.error(message)
        self.exit_code = 1


def enable_completion(console: Console) -> None:
    """Wire readline history and tab completion to a console."""
    readline.set_completer(console.complete)
    readline.set_completer_delims(" \t\n")
    readline.parse_and_bind("tab: complete")
