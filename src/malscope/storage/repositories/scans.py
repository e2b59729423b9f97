# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Repository for scan records."""

from __future__ import annotations

import json
from typing import Any

import aiosqlite

from malscope.core.constants import TERMINAL_STATUSES, ScanStatus
from malscope.core.exceptions import StorageError
from malscope.models.scan import Scan
from malscope.storage.base import ScanStore

_COLUMNS = (
    "id, owner_id, file_name, file_size, file_hash, status, threat_level, "
    "malware_family, confidence, static_analysis, dynamic_analysis, classification, "
    "failure_reason, failure_kind, scan_duration_ms, created_at, started_at, completed_at"
)


def _dump_json(model: Any) -> str | None:
    return None if model is None else model.model_dump_json()


def _iso(value: Any) -> str | None:
    return value.isoformat() if value is not None else None


class ScanRepository(ScanStore):
    """CRUD operations for the scans table."""

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db

    async def create(self, scan: Scan) -> None:
        """Persist a new pending scan."""
        try:
            await self._db.execute(
                f"INSERT INTO scans ({_COLUMNS}) "  # noqa: S608
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    scan.scan_id,
                    scan.owner_id,
                    scan.file_name,
                    scan.file_size,
                    scan.file_hash,
                    str(scan.status),
                    str(scan.threat_level),
                    scan.malware_family,
                    scan.confidence,
                    _dump_json(scan.static_analysis),
                    _dump_json(scan.dynamic_analysis),
                    _dump_json(scan.classification),
                    scan.failure_reason,
                    str(scan.failure_kind) if scan.failure_kind else None,
                    scan.scan_duration_ms,
                    _iso(scan.created_at),
                    _iso(scan.started_at),
                    _iso(scan.completed_at),
                ),
            )
            await self._db.execute(
                "INSERT INTO scan_transitions (scan_id, from_status, to_status) VALUES (?, NULL, ?)",
                (scan.scan_id, str(scan.status)),
            )
            await self._db.commit()
        except aiosqlite.IntegrityError as exc:
            await self._db.rollback()
            raise StorageError(f"Scan {scan.scan_id} already exists") from exc

    async def update(self, scan: Scan, *, expected: ScanStatus | None = None) -> None:
        """Overwrite the mutable columns of a non-terminal scan.

        The UPDATE is conditioned on the status read first, so a write that
        raced with another writer matches no row and is refused.
        """
        cursor = await self._db.execute(
            "SELECT status FROM scans WHERE id = ?", (scan.scan_id,)
        )
        row = await cursor.fetchone()
        if row is None:
            raise StorageError(f"Scan {scan.scan_id} does not exist")
        previous = row["status"]
        if previous in TERMINAL_STATUSES:
            raise StorageError(f"Scan {scan.scan_id} is {previous} and cannot change")
        if expected is not None and previous != expected:
            raise StorageError(f"Scan {scan.scan_id} is {previous}, expected {expected}")

        cursor = await self._db.execute(
            """
            UPDATE scans SET
                status = ?, threat_level = ?, malware_family = ?, confidence = ?,
                static_analysis = ?, dynamic_analysis = ?, classification = ?,
                failure_reason = ?, failure_kind = ?, scan_duration_ms = ?,
                started_at = ?, completed_at = ?
            WHERE id = ? AND status = ?
            """,
            (
                str(scan.status),
                str(scan.threat_level),
                scan.malware_family,
                scan.confidence,
                _dump_json(scan.static_analysis),
                _dump_json(scan.dynamic_analysis),
                _dump_json(scan.classification),
                scan.failure_reason,
                str(scan.failure_kind) if scan.failure_kind else None,
                scan.scan_duration_ms,
                _iso(scan.started_at),
                _iso(scan.completed_at),
                scan.scan_id,
                previous,
            ),
        )
        if cursor.rowcount == 0:
            await self._db.rollback()
            raise StorageError(f"Scan {scan.scan_id} changed while being updated")

        if previous != str(scan.status):
            await self._db.execute(
                "INSERT INTO scan_transitions (scan_id, from_status, to_status) VALUES (?, ?, ?)",
                (scan.scan_id, previous, str(scan.status)),
            )
        await self._db.commit()

    async def get(self, scan_id: str) -> Scan | None:
        """Retrieve a scan by ID, or None."""
        cursor = await self._db.execute(
            f"SELECT {_COLUMNS} FROM scans WHERE id = ?", (scan_id,)  # noqa: S608
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_scan(row)

    async def list_by_owner(self, owner_id: str) -> list[Scan]:
        """List an owner's scans, newest first."""
        cursor = await self._db.execute(
            f"SELECT {_COLUMNS} FROM scans WHERE owner_id = ? "  # noqa: S608
            "ORDER BY created_at DESC, rowid DESC",
            (owner_id,),
        )
        rows = await cursor.fetchall()
        return [self._row_to_scan(row) for row in rows]

    async def delete(self, scan_id: str) -> bool:
        cursor = await self._db.execute("DELETE FROM scans WHERE id = ?", (scan_id,))
        await self._db.commit()
        return cursor.rowcount > 0

    async def history(self, scan_id: str) -> list[tuple[str | None, str, str]]:
        """Return ``(from_status, to_status, recorded_at)`` rows in write order."""
        cursor = await self._db.execute(
            "SELECT from_status, to_status, recorded_at FROM scan_transitions "
            "WHERE scan_id = ? ORDER BY id",
            (scan_id,),
        )
        rows = await cursor.fetchall()
        return [(r["from_status"], r["to_status"], r["recorded_at"]) for r in rows]

    async def ping(self) -> bool:
        cursor = await self._db.execute("SELECT 1")
        row = await cursor.fetchone()
        return row is not None

    @staticmethod
    def _row_to_scan(row: aiosqlite.Row) -> Scan:
        """Convert a database row to a Scan model."""
        data = dict(row)
        data["scan_id"] = data.pop("id")
        for column in ("static_analysis", "dynamic_analysis", "classification"):
            raw = data.get(column)
            data[column] = json.loads(raw) if raw else None
        return Scan.model_validate(data)
