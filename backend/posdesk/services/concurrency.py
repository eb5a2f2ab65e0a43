# Overview: Service-layer helpers for concurrency; row locking used by the returns commit.

from __future__ import annotations


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    On SQLite the write lock plus the version check on Sale serialize commits.
    """
    return query.with_for_update()
