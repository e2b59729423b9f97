# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Storage layer -- scan stores, database connection, and migrations."""

from malscope.storage.base import ScanStore
from malscope.storage.database import close_db, get_db, init_db, open_store
from malscope.storage.memory import MemoryScanStore
from malscope.storage.migrations import run_migrations
from malscope.storage.repositories.scans import ScanRepository

__all__ = [
    "MemoryScanStore",
    "ScanRepository",
    "ScanStore",
    "close_db",
    "get_db",
    "init_db",
    "open_store",
    "run_migrations",
]
