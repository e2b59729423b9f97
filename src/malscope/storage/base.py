# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Abstract persistence interface for scan records.

The engine is the only writer. Implementations must refuse to overwrite a
record that is already ``completed`` or ``failed``.
"""

from __future__ import annotations

import abc

from malscope.core.constants import ScanStatus
from malscope.models.scan import Scan


class ScanStore(abc.ABC):
    """Async storage for :class:`Scan` records."""

    @abc.abstractmethod
    async def create(self, scan: Scan) -> None:
        """Insert a new record.

        Raises:
            StorageError: A record with the same ``scan_id`` exists.
        """

    @abc.abstractmethod
    async def update(self, scan: Scan, *, expected: ScanStatus | None = None) -> None:
        """Replace the stored record with *scan*.

        The write only lands if the stored status is still the one read
        before it, and, when given, equals *expected*.

        Raises:
            StorageError: The record does not exist, is already terminal, or
                its status is not the expected one.
        """

    @abc.abstractmethod
    async def get(self, scan_id: str) -> Scan | None:
        """Return the record, or ``None`` if unknown."""

    @abc.abstractmethod
    async def list_by_owner(self, owner_id: str) -> list[Scan]:
        """Return the owner's records, newest first."""

    @abc.abstractmethod
    async def delete(self, scan_id: str) -> bool:
        """Remove the record; return ``False`` if it did not exist."""

    async def ping(self) -> bool:
        """Readiness check."""
        return True

    async def close(self) -> None:
        """Release resources held by the store."""
