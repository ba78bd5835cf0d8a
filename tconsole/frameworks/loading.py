"""Loading of framework variants from entry points."""

import logging
from importlib.metadata import EntryPoint, entry_points

from tconsole.frameworks.base import FrameworkRunner

log = logging.getLogger(__name__)

ENTRY_POINT_GROUP = "tconsole.frameworks"


class FrameworkLoadError(Exception):
    """Raised when a framework variant cannot be used."""


class FrameworkNotFoundError(FrameworkLoadError):
    """Raised when no framework variant is registered under a key."""


class InvalidFrameworkError(FrameworkLoadError):
    """Raised when an entry point does not provide a FrameworkRunner."""


def load_framework(key: str) -> FrameworkRunner:
    """Load a framework variant by key.

    Third-party packages can add variants by registering a
    ``FrameworkRunner`` instance in the ``tconsole.frameworks`` group.

    Args:
        key: The variant key as registered in pyproject.toml
             (e.g., "pytest", "unittest")

    Returns:
        The framework runner instance

    Raises:
        FrameworkNotFoundError: If no variant with the given key is found
        InvalidFrameworkError: If the entry point loads something else

    """
    entries = {entry.name: entry for entry in entry_points(group=ENTRY_POINT_GROUP)}

    if key not in entries:
        raise FrameworkNotFoundError(
            f"Framework '{key}' not found. Available frameworks: {sorted(entries)}"
        )

    return _load_runner(entries[key])


def _load_runner(entry: EntryPoint) -> FrameworkRunner:
    log.debug("Loading framework %s from %s", entry.name, entry.value)
    framework = entry.load()

    if not isinstance(framework, FrameworkRunner):
        raise InvalidFrameworkError(
            f"Entry point '{entry.name}' ({entry.value}) provides "
            f"{type(framework).__name__}, not a FrameworkRunner"
        )

    return framework
