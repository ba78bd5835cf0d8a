"""CLI entry point for the test console."""

import argparse
import logging
import sys
from collections.abc import Sequence
from pathlib import Path

from tconsole.config import (
    ConfigValidationError,
    Configuration,
    default_config_paths,
    load_configurers,
)
from tconsole.console import Console, enable_completion
from tconsole.frameworks.loading import FrameworkLoadError, load_framework
from tconsole.reporter import Reporter
from tconsole.runner import Runner
from tconsole.worker import Worker, WorkerError


def run(
    mode: str,
    *,
    trace: bool = False,
    once: bool = False,
    run_command: str = "",
    config_paths: Sequence[Path] = (),
    root: Path | None = None,
    reporter: Reporter | None = None,
) -> int:
    """Start the console and return its exit code."""
    log = logging.getLogger("tconsole")
    root = root or Path.cwd()
    reporter = reporter or Reporter()

    try:
        framework = load_framework(mode)
    except FrameworkLoadError as error:
        log.error("%s", error)
        return 1

    configurers = load_configurers(config_paths or default_config_paths(root))
    config = Configuration.configure(
        framework,
        root=root,
        trace=trace,
        once=once,
        run_command=run_command,
        configurers=configurers,
    )

    try:
        config.ensure_valid()
    except ConfigValidationError as error:
        for message in error.messages:
            log.error("%s Exiting.", message)
        return 1

    with Worker(config=config, framework=framework) as worker:
        runner = Runner(config=config, worker=worker, framework=framework)
        console = Console(
            config=config, runner=runner, worker=worker, reporter=reporter
        )

        if config.once:
            return console.run_once()

        reporter.line(f"Preloading the {config.mode} environment...")
        try:
            worker.start()
        except WorkerError as error:
            reporter.error(f"Could not preload the environment: {error}")

        enable_completion(console)
        console.run_loop()

    return 0


def parse_args(argv: Sequence[str]) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="tconsole",
        description="Interactive console that re-runs tests in a preloaded worker",
    )
    parser.add_argument(
        "--mode",
        default="pytest",
        help="Framework variant (pytest, unittest)",
    )
    parser.add_argument(
        "-t",
        "--trace",
        action="store_true",
        help="Stream test output live and log debug messages",
    )
    parser.add_argument(
        "-o",
        "--once",
        action="store_true",
        help="Run the given command and then exit",
    )
    parser.add_argument(
        "--config",
        type=Path,
        action="append",
        default=[],
        help="Configuration file (default: ~/.tconsole.py and ./.tconsole.py)",
    )
    parser.add_argument(
        "command",
        nargs="*",
        help="Command to run on startup, e.g. 'all' or 'models TestUser'",
    )
    return parser.parse_args(argv)


def main() -> None:
    """CLI entry point."""
    args = parse_args(sys.argv[1:])

    logging.basicConfig(
        level=logging.DEBUG if args.trace else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )

    exit_code = run(
        args.mode,
        trace=args.trace,
        once=args.once,
        run_command=" ".join(args.command),
        config_paths=args.config,
    )
    sys.exit(exit_code)


if __name__ == "__main__":  # pragma: no cover
    main()
