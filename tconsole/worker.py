"""Preloaded worker process and the per-run forked children.

The console process owns a ``Worker``. ``Worker.start`` forks a worker
process that pays the environment preload cost once. Each ``execute`` call
sends a ``RunRequest`` to it; the worker process forks a child which runs the
test files, writes its ``TestResult`` as JSON into a pipe and exits. Test
modules, monkey patches and framework registries therefore die with the
child, while the preloaded environment survives for the next run.

The worker process leads its own process group. A terminal interrupt only
reaches the console, which then kills the whole group.
"""

import importlib
import logging
import multiprocessing
import os
import runpy
import signal
import sys
import tempfile
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from multiprocessing.connection import Connection
from multiprocessing.process import BaseProcess
from typing import NoReturn, Self

from pydantic import ValidationError

from tconsole.config import Configuration
from tconsole.frameworks.base import FrameworkRunner
from tconsole.models.protocol import RunRequest, WorkerMessage
from tconsole.models.result import TestResult

log = logging.getLogger(__name__)

STOP_TIMEOUT = 5.0
OUTPUT_TAIL = 2000


class WorkerState(StrEnum):
    """Lifecycle of the worker process."""

    UNINITIALIZED = "uninitialized"
    PRELOADING = "preloading"
    IDLE = "idle"
    RUNNING = "running"
    CRASHED = "crashed"
    SHUTDOWN = "shutdown"


class WorkerError(Exception):
    """Raised when the worker cannot produce a test result."""


class CrashError(WorkerError):
    """Raised when the worker or its test child died without a result."""


class RunInterruptedError(CrashError):
    """Raised when the user interrupted a running test child."""


class ProtocolError(WorkerError):
    """Raised when the worker answered with an unreadable message."""


@dataclass(kw_only=True)
class Worker:
    """Console-side handle of the preloaded worker process.

    ``execute`` is not reentrant; the console serializes runs.
    """

    config: Configuration
    framework: FrameworkRunner
    state: WorkerState = field(default=WorkerState.UNINITIALIZED, init=False)
    _process: BaseProcess | None = field(default=None, init=False, repr=False)
    _connection: Connection | None = field(default=None, init=False, repr=False)

    def __enter__(self) -> Self:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()

    @property
    def pid(self) -> int | None:
        """Process id of the worker process, if one is running."""
        return self._process.pid if self._process is not None else None

    def start(self) -> None:
        """Fork the worker process and wait until it has preloaded.

        Raises:
            CrashError: If the environment could not be preloaded
            RunInterruptedError: If the user interrupted the preload
            ProtocolError: If the worker answered with an unreadable message

        """
        if self.state in (
            WorkerState.PRELOADING,
            WorkerState.IDLE,
            WorkerState.RUNNING,
        ):
            raise WorkerError(f"Worker is already started ({self.state})")

        self.state = WorkerState.PRELOADING
        context = multiprocessing.get_context("fork")
        parent_connection, child_connection = context.Pipe()
        process = context.Process(
            target=serve,
            args=(child_connection, self.config, self.framework),
            name="tconsole-worker",
            daemon=True,
        )
        process.start()
        child_connection.close()
        self._process = process
        self._connection = parent_connection
        log.debug("Started worker process %s, preloading...", process.pid)

        try:
            message = self._receive()
        except KeyboardInterrupt:
            self._crash()
            raise RunInterruptedError(
                "Preload interrupted, worker terminated"
            ) from None
        except WorkerError:
            self._crash()
            raise

        if message.status != "ready":
            self._crash()
            raise CrashError(
                f"Worker failed to preload the environment: {message.message}"
            )

        self.state = WorkerState.IDLE
        log.info("Worker process %s preloaded", process.pid)

    def execute(self, files: Sequence[str], elements: Sequence[str] = ()) -> TestResult:
        """Run exactly the given files in a fresh child of the worker.

        A worker that is uninitialized or crashed is preloaded first.

        Args:
            files: Test files in execution order
            elements: Element filters forwarded to the framework

        Returns:
            The TestResult reported by the child

        Raises:
            CrashError: If the worker or the child died before reporting
            RunInterruptedError: If the run was interrupted by the user
            ProtocolError: If the reported result could not be read
            WorkerError: If the worker is running or shut down

        """
        if self.state in (WorkerState.UNINITIALIZED, WorkerState.CRASHED):
            self.start()

        if self.state is not WorkerState.IDLE:
            raise WorkerError(f"Worker cannot run tests while {self.state}")

        self.state = WorkerState.RUNNING
        log.debug("Running %d file(s): %s", len(files), ", ".join(files))

        try:
            self._send(RunRequest(files=list(files), elements=list(elements)))
            message = self._receive()
        except KeyboardInterrupt:
            self._crash()
            raise RunInterruptedError(
                "Test run interrupted, worker terminated"
            ) from None
        except WorkerError:
            self._crash()
            raise

        if message.status == "crashed":
            self._crash()
            raise CrashError(describe_crash(message))

        if message.status != "completed":
            self._crash()
            raise ProtocolError(f"Unexpected worker status '{message.status}'")

        try:
            result = TestResult.model_validate_json(message.payload or "")
        except ValidationError as error:
            self._crash()
            raise ProtocolError(
                f"Unreadable test result from worker ({error.error_count()} error(s))"
            ) from error

        self.state = WorkerState.IDLE
        return result

    def stop(self) -> None:
        """Close the channel and wait for the worker process to exit."""
        if self.state is WorkerState.SHUTDOWN:
            return

        process, connection = self._process, self._connection
        self._process = self._connection = None

        if connection is not None:
            connection.close()

        if process is not None:
            process.join(STOP_TIMEOUT)
            if process.is_alive():
                log.warning("Worker process %s did not exit, killing it", process.pid)
                kill_process_group(process)
                process.join()

        self.state = WorkerState.SHUTDOWN
        log.debug("Worker stopped")

    def reload(self) -> None:
        """Replace the worker process with a freshly preloaded one."""
        self.stop()
        self.start()

    def _send(self, request: RunRequest) -> None:
        if self._connection is None:
            raise CrashError("Worker process is not running")
        try:
            self._connection.send_bytes(request.model_dump_json().encode())
        except OSError as error:
            raise CrashError(f"Worker process is gone: {error}") from error

    def _receive(self) -> WorkerMessage:
        if self._connection is None:
            raise CrashError("Worker process is not running")
        try:
            raw = self._connection.recv_bytes()
        except (EOFError, OSError) as error:
            raise CrashError(
                f"Worker process exited unexpectedly ({self._exit_code()})"
            ) from error

        try:
            return WorkerMessage.model_validate_json(raw)
        except ValidationError as error:
            raise ProtocolError("Unreadable message from worker process") from error

    def _exit_code(self) -> str:
        if self._process is None:
            return "no process"
        self._process.join(1)
        return f"exit code {self._process.exitcode}"

    def _crash(self) -> None:
        process, connection = self._process, self._connection
        self._process = self._connection = None

        if connection is not None:
            connection.close()
        if process is not None:
            if process.is_alive():
                kill_process_group(process)
            process.join()

        self.state = WorkerState.CRASHED
        log.debug("Worker marked as crashed")


def describe_crash(message: WorkerMessage) -> str:
    """User facing description of a crashed test child."""
    description = (
        f"Test process exited with code {message.exit_code} "
        "before reporting a result"
    )
    if message.message:
        description += f"\n{message.message}"
    return description


def kill_process_group(process: BaseProcess) -> None:
    """Kill the worker process together with its running test child."""
    if process.pid is None:
        return
    try:
        os.killpg(process.pid, signal.SIGKILL)
    except ProcessLookupError:
        # Group not created yet; the worker has not forked any child.
        process.kill()


def serve(
    connection: Connection, config: Configuration, framework: FrameworkRunner
) -> None:
    """Main loop of the worker process."""
    os.setpgrp()

    try:
        preload(config)
    except Exception as error:
        log.exception("Preloading the environment failed")
        send_message(
            connection,
            WorkerMessage(
                status="preload_failed",
                message=f"{type(error).__name__}: {error}",
            ),
        )
        return

    send_message(connection, WorkerMessage(status="ready"))

    while True:
        try:
            raw = connection.recv_bytes()
        except EOFError:
            log.debug("Console closed the channel, worker exiting")
            return

        request = RunRequest.model_validate_json(raw)
        send_message(connection, run_in_child(request, config, framework))


def send_message(connection: Connection, message: WorkerMessage) -> None:
    connection.send_bytes(message.model_dump_json().encode())


def preload(config: Configuration) -> None:
    """Load the environment shared by every test run."""
    os.chdir(config.root)
    config.hooks.before_load()

    for path in reversed(config.include_paths):
        resolved = str((config.root / path).resolve())
        if resolved not in sys.path:
            sys.path.insert(0, resolved)

    for entry in config.preload_paths:
        log.debug("Preloading %s", entry)
        if entry.endswith(".py"):
            runpy.run_path(str(config.root / entry), run_name="__tconsole_preload__")
        else:
            importlib.import_module(entry)

    config.hooks.after_load()


def run_in_child(
    request: RunRequest, config: Configuration, framework: FrameworkRunner
) -> WorkerMessage:
    """Fork a child for one batch and wait for its result."""
    read_fd, write_fd = os.pipe()

    with tempfile.TemporaryFile() as output:
        pid = os.fork()
        if pid == 0:
            os.close(read_fd)
            run_child(write_fd, output.fileno(), request, config, framework)

        os.close(write_fd)
        with os.fdopen(read_fd, "rb") as stream:
            payload = stream.read()
        _, status = os.waitpid(pid, 0)
        exit_code = os.waitstatus_to_exitcode(status)

        if exit_code == 0 and payload:
            return WorkerMessage(
                status="completed", payload=payload.decode("utf-8", errors="replace")
            )

        log.warning("Test process %s exited with code %s", pid, exit_code)
        output.seek(0)
        tail = output.read().decode("utf-8", errors="replace")[-OUTPUT_TAIL:]
        return WorkerMessage(
            status="crashed", exit_code=exit_code, message=tail or None
        )


def run_child(
    write_fd: int,
    output_fd: int,
    request: RunRequest,
    config: Configuration,
    framework: FrameworkRunner,
) -> NoReturn:
    """Body of a forked test child. Never returns."""
    exit_code = 1
    try:
        if not config.trace:
            sys.stdout.flush()
            sys.stderr.flush()
            os.dup2(output_fd, 1)
            os.dup2(output_fd, 2)

        config.hooks.before_test_run()
        result = framework.run_tests(
            request.files, request.elements, verbose=config.trace
        )

        with os.fdopen(write_fd, "wb") as stream:
            stream.write(result.model_dump_json().encode())
        exit_code = 0
    except BaseException:
        log.exception("Test run failed in child %s", os.getpid())
    finally:
        try:
            sys.stdout.flush()
            sys.stderr.flush()
        finally:
            os._exit(exit_code)
