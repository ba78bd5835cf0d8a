"""Messages exchanged between the console and its worker process.

Every message is a JSON document sent with ``Connection.send_bytes``. The
console sends a ``RunRequest`` per batch; the worker answers every request
(and its own startup) with a ``WorkerMessage``. A completed run carries the
child's serialized ``TestResult`` untouched in ``payload`` so the console is
the only side that decides whether it is readable.
"""

from collections.abc import Sequence
from typing import Literal

from pydantic import Field

from tconsole.models.base import Model

WorkerStatus = Literal["ready", "preload_failed", "completed", "crashed"]


class RunRequest(Model):
    """Ask the worker to run exactly these files."""

    files: Sequence[str] = Field(..., description="Test files, in execution order")
    elements: Sequence[str] = Field(
        default_factory=list,
        description="Optional element filters (empty means run everything)",
    )


class WorkerMessage(Model):
    """Status report sent by the worker process."""

    status: WorkerStatus
    payload: str | None = Field(
        default=None, description="TestResult JSON when status is completed"
    )
    exit_code: int | None = Field(
        default=None, description="Child exit code when status is crashed"
    )
    message: str | None = None
