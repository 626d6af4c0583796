"""
Run correlation for background work.

Every scheduler firing and operator trigger runs inside a correlation_scope
so the log lines of one batch share a run_id.
"""

import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar

# Context variable for the current run id (thread and task safe)
run_id_var: ContextVar[str] = ContextVar("run_id", default="")


def new_run_id(prefix: str = "") -> str:
    """Generate a run id, optionally prefixed with the trigger key."""
    suffix = uuid.uuid4().hex[:12]
    return f"{prefix}:{suffix}" if prefix else suffix


@contextmanager
def correlation_scope(run_id: str | None = None) -> Iterator[str]:
    """
    Bind a run id for the duration of the block.

    Usage:
        with correlation_scope(new_run_id("lunch_1_Monday")) as run_id:
            scheduler.run(...)
    """
    run_id = run_id or new_run_id()
    token = run_id_var.set(run_id)
    try:
        yield run_id
    finally:
        run_id_var.reset(token)


class CorrelationIdFilter:
    """
    Logging filter that adds run_id to log records.

    Usage:
        import logging
        handler = logging.StreamHandler()
        handler.addFilter(CorrelationIdFilter())
    """

    def filter(self, record) -> bool:
        record.run_id = run_id_var.get() or "-"
        return True
