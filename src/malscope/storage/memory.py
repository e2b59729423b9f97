# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""In-process scan store, used by tests and ``MALSCOPE_STORE_BACKEND=memory``."""

from __future__ import annotations

import itertools

from malscope.core.constants import ScanStatus
from malscope.core.exceptions import StorageError
from malscope.models.scan import Scan
from malscope.storage.base import ScanStore


class MemoryScanStore(ScanStore):
    def __init__(self) -> None:
        self._records: dict[str, Scan] = {}
        self._order: dict[str, int] = {}
        self._seq = itertools.count()
        self.writes: list[tuple[str, str]] = []

    async def create(self, scan: Scan) -> None:
        if scan.scan_id in self._records:
            raise StorageError(f"Scan {scan.scan_id} already exists")
        self._records[scan.scan_id] = scan
        self._order[scan.scan_id] = next(self._seq)
        self.writes.append((scan.scan_id, str(scan.status)))

    async def update(self, scan: Scan, *, expected: ScanStatus | None = None) -> None:
        current = self._records.get(scan.scan_id)
        if current is None:
            raise StorageError(f"Scan {scan.scan_id} does not exist")
        if current.is_terminal:
            raise StorageError(f"Scan {scan.scan_id} is {current.status} and cannot change")
        if expected is not None and current.status != expected:
            raise StorageError(f"Scan {scan.scan_id} is {current.status}, expected {expected}")
        self._records[scan.scan_id] = scan
        self.writes.append((scan.scan_id, str(scan.status)))

    async def get(self, scan_id: str) -> Scan | None:
        return self._records.get(scan_id)

    async def list_by_owner(self, owner_id: str) -> list[Scan]:
        owned = [s for s in self._records.values() if s.owner_id == owner_id]
        return sorted(
            owned,
            key=lambda s: (s.created_at, self._order[s.scan_id]),
            reverse=True,
        )

    async def delete(self, scan_id: str) -> bool:
        if self._records.pop(scan_id, None) is None:
            return False
        self._order.pop(scan_id, None)
        return True

    def history(self, scan_id: str) -> list[str]:
        """Statuses written for *scan_id*, in write order."""
        return [status for sid, status in self.writes if sid == scan_id]
