"""
Infrastructure module: database sessions and run correlation.

Provides:
- Database sessions and transactions (db.py)
- Run-id correlation for scheduler firings (correlation.py)
"""

from shared.infrastructure.db import (
    build_engine,
    get_engine,
    SessionLocal,
    get_db_context,
    safe_commit,
)
from shared.infrastructure.correlation import (
    CorrelationIdFilter,
    correlation_scope,
    new_run_id,
)

__all__ = [
    # db
    "build_engine",
    "get_engine",
    "SessionLocal",
    "get_db_context",
    "safe_commit",
    # correlation
    "CorrelationIdFilter",
    "correlation_scope",
    "new_run_id",
]
