#!/usr/bin/env python3
# CUI // SP-CTI
"""ArcOrg Resilience - Correlation IDs for lifecycle operations.

D5: Each managed-resource operation (create/read/update/destroy/import) runs
under its own correlation ID. The ID is stamped on every log line through
CorrelationLogFilter and on the audit trail entry written for the transition.

Usage:
    from arcorg.resilience.correlation import correlation_scope, get_correlation_id

    with correlation_scope() as cid:
        reconciler.create(desired)
"""

import contextlib
import logging
import threading
import uuid
from typing import Iterator, Optional

logger = logging.getLogger("arcorg.resilience.correlation")

# Operations run sequentially per thread; concurrent operations get their own.
_thread_local = threading.local()


def generate_correlation_id() -> str:
    """Generate a 12-character correlation ID (UUID prefix)."""
    return uuid.uuid4().hex[:12]


def get_correlation_id() -> Optional[str]:
    """Get the current correlation ID, or None outside an operation."""
    return getattr(_thread_local, "correlation_id", None)


def set_correlation_id(correlation_id: str):
    _thread_local.correlation_id = correlation_id


def clear_correlation_id():
    _thread_local.correlation_id = None


@contextlib.contextmanager
def correlation_scope(correlation_id: Optional[str] = None) -> Iterator[str]:
    """Bind a correlation ID for the duration of one operation.

    The previous ID (if any) is restored on exit so nested scopes behave.
    """
    previous = get_correlation_id()
    cid = correlation_id or generate_correlation_id()
    set_correlation_id(cid)
    try:
        yield cid
    finally:
        if previous is None:
            clear_correlation_id()
        else:
            set_correlation_id(previous)


class CorrelationLogFilter(logging.Filter):
    """Stamp record.correlation_id ("-" outside an operation).

    Attached to the CLI handler in arcorg.orgs.account_manager.configure_logging.
    """

    def filter(self, record):
        record.correlation_id = get_correlation_id() or "-"
        return True
