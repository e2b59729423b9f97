# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Repository modules for database access."""

from malscope.storage.repositories.scans import ScanRepository

__all__ = ["ScanRepository"]
