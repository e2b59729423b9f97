# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Tests for the storage layer: database, migrations, and scan stores."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import aiosqlite
import pytest

from malscope.core.constants import FailureKind, ScanStatus, ThreatLevel
from malscope.core.exceptions import ConfigurationError, StorageError
from malscope.models.classification import Classification, FamilyScore
from malscope.models.scan import Scan
from malscope.storage.database import close_db, get_db, init_db, open_store
from malscope.storage.memory import MemoryScanStore
from malscope.storage.migrations import (
    all_migrations,
    get_current_version,
    get_pending_migrations,
    run_migrations,
)
from malscope.storage.repositories.scans import ScanRepository

HASH = "ab" * 32


def _scan(scan_id: str = "scan-1", owner: str = "alice", **overrides) -> Scan:
    data = {
        "scan_id": scan_id,
        "owner_id": owner,
        "file_name": "invoice.pdf.exe",
        "file_size": 4096,
        "file_hash": HASH,
    }
    data.update(overrides)
    return Scan(**data)


def _completed(scan: Scan, static_report, dynamic_report) -> Scan:
    now = datetime.now(UTC)
    return scan.evolve(
        status=ScanStatus.COMPLETED,
        threat_level=ThreatLevel.CRITICAL,
        malware_family="Ransomware",
        confidence=0.94,
        static_analysis=static_report,
        dynamic_analysis=dynamic_report,
        classification=Classification(
            family="Ransomware",
            confidence=0.94,
            alternative_families=[FamilyScore(family="Trojan", confidence=0.72)],
            indicators=["File encryption routines detected"],
        ),
        scan_duration_ms=1234,
        started_at=now,
        completed_at=now,
    )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
async def db():
    """Create an in-memory database, run migrations, yield, then close."""
    conn = await init_db(":memory:")
    yield conn
    await close_db()


@pytest.fixture
def scan_repo(db: aiosqlite.Connection) -> ScanRepository:
    return ScanRepository(db)


@pytest.fixture(params=["memory", "sqlite"])
async def store(request, db):
    if request.param == "memory":
        return MemoryScanStore()
    return ScanRepository(db)


# ---------------------------------------------------------------------------
# Database connection
# ---------------------------------------------------------------------------


class TestDatabase:
    async def test_tables_created(self, db: aiosqlite.Connection) -> None:
        cursor = await db.execute("SELECT name FROM sqlite_master WHERE type='table'")
        tables = {row[0] for row in await cursor.fetchall()}
        assert {"scans", "scan_transitions", "schema_migrations"} <= tables

    async def test_get_db_returns_active_connection(self, db: aiosqlite.Connection) -> None:
        assert await get_db() is db

    async def test_get_db_before_init(self) -> None:
        with pytest.raises(StorageError, match="not initialized"):
            await get_db()

    async def test_init_is_idempotent(self, db: aiosqlite.Connection) -> None:
        assert await init_db(":memory:") is db

    async def test_unopenable_path(self, tmp_path) -> None:
        with pytest.raises(StorageError, match="Failed to initialize"):
            await init_db(tmp_path / "missing" / "dir" / "x.db")

    async def test_file_database(self, tmp_path) -> None:
        db_path = tmp_path / "malscope.db"
        await init_db(db_path)
        await close_db()
        assert db_path.exists()


class TestOpenStore:
    async def test_memory(self, settings) -> None:
        store = await open_store(settings)
        assert isinstance(store, MemoryScanStore)

    async def test_sqlite(self, settings) -> None:
        store = await open_store(settings.model_copy(update={"store_backend": "sqlite"}))
        try:
            assert isinstance(store, ScanRepository)
            assert await store.ping()
        finally:
            await close_db()

    async def test_unknown_backend(self, settings) -> None:
        with pytest.raises(ConfigurationError, match="Unknown store backend"):
            await open_store(settings.model_copy(update={"store_backend": "postgres"}))


# ---------------------------------------------------------------------------
# Migrations
# ---------------------------------------------------------------------------


class TestMigrations:
    async def test_versions_are_sequential(self) -> None:
        versions = [m.version for m in all_migrations()]
        assert versions == list(range(1, len(versions) + 1))

    async def test_fresh_connection_has_everything_pending(self) -> None:
        conn = await aiosqlite.connect(":memory:")
        try:
            assert await get_current_version(conn) == 0
            assert len(await get_pending_migrations(conn)) == len(all_migrations())
            applied = await run_migrations(conn)
            assert [m.name for m in applied] == ["initial_schema", "scan_transitions_table"]
            assert await get_pending_migrations(conn) == []
            assert await run_migrations(conn) == []
        finally:
            await conn.close()

    async def test_newer_schema_is_refused(self) -> None:
        conn = await aiosqlite.connect(":memory:")
        try:
            await run_migrations(conn)
            await conn.execute(
                "INSERT INTO schema_migrations (version, name) VALUES (99, 'from_the_future')"
            )
            await conn.commit()
            with pytest.raises(StorageError, match="newer than this build"):
                await run_migrations(conn)
        finally:
            await conn.close()

    async def test_init_without_migrations(self) -> None:
        conn = await init_db(":memory:", auto_migrate=False)
        try:
            assert await get_current_version(conn) == 0
        finally:
            await close_db()

    async def test_schema_rejects_bad_status(self, db: aiosqlite.Connection) -> None:
        with pytest.raises(aiosqlite.IntegrityError):
            await db.execute(
                "INSERT INTO scans (id, owner_id, file_name, file_size, file_hash, status, "
                "created_at) VALUES ('x', 'o', 'f', 1, 'h', 'scanning', '2026-01-01')"
            )


# ---------------------------------------------------------------------------
# Store contract (memory and SQLite)
# ---------------------------------------------------------------------------


class TestScanStore:
    async def test_create_and_get(self, store) -> None:
        scan = _scan()
        await store.create(scan)
        assert await store.get("scan-1") == scan

    async def test_get_unknown(self, store) -> None:
        assert await store.get("missing") is None

    async def test_duplicate_create(self, store) -> None:
        await store.create(_scan())
        with pytest.raises(StorageError, match="already exists"):
            await store.create(_scan())

    async def test_full_lifecycle_round_trip(self, store, static_report, dynamic_report) -> None:
        scan = _scan()
        await store.create(scan)
        analyzing = scan.evolve(status=ScanStatus.ANALYZING, started_at=datetime.now(UTC))
        await store.update(analyzing)
        done = _completed(analyzing, static_report, dynamic_report)
        await store.update(done)

        loaded = await store.get("scan-1")
        assert loaded == done
        assert loaded.static_analysis.entropy.sections[3].name == ".rsrc"
        assert loaded.classification.alternative_families[0].family == "Trojan"

    async def test_update_unknown(self, store) -> None:
        with pytest.raises(StorageError, match="does not exist"):
            await store.update(_scan())

    async def test_terminal_record_cannot_change(self, store) -> None:
        scan = _scan()
        await store.create(scan)
        failed = scan.evolve(
            status=ScanStatus.FAILED,
            failure_reason="cancelled",
            failure_kind=FailureKind.CANCELLED,
            completed_at=datetime.now(UTC),
        )
        await store.update(failed)

        with pytest.raises(StorageError, match="cannot change"):
            await store.update(failed.evolve(failure_reason="again"))
        assert (await store.get("scan-1")).failure_reason == "cancelled"

    async def test_list_by_owner_newest_first(self, store) -> None:
        base = datetime(2026, 1, 1, tzinfo=UTC)
        await store.create(_scan("old", created_at=base))
        await store.create(_scan("new", created_at=base + timedelta(hours=1)))
        await store.create(_scan("other", owner="bob", created_at=base))

        assert [s.scan_id for s in await store.list_by_owner("alice")] == ["new", "old"]
        assert [s.scan_id for s in await store.list_by_owner("bob")] == ["other"]
        assert await store.list_by_owner("nobody") == []

    async def test_list_same_timestamp_uses_insertion_order(self, store) -> None:
        stamp = datetime(2026, 1, 1, tzinfo=UTC)
        await store.create(_scan("first", created_at=stamp))
        await store.create(_scan("second", created_at=stamp))
        assert [s.scan_id for s in await store.list_by_owner("alice")] == ["second", "first"]

    async def test_delete(self, store) -> None:
        await store.create(_scan())
        assert await store.delete("scan-1") is True
        assert await store.get("scan-1") is None
        assert await store.delete("scan-1") is False

    async def test_stale_expected_status_is_refused(self, store) -> None:
        scan = _scan()
        await store.create(scan)
        await store.update(scan.evolve(status=ScanStatus.ANALYZING), expected=ScanStatus.PENDING)

        stale = scan.evolve(
            status=ScanStatus.FAILED,
            failure_reason="cancelled",
            failure_kind=FailureKind.CANCELLED,
            completed_at=datetime.now(UTC),
        )
        with pytest.raises(StorageError, match="expected pending"):
            await store.update(stale, expected=ScanStatus.PENDING)
        assert (await store.get("scan-1")).status == ScanStatus.ANALYZING

    async def test_ping(self, store) -> None:
        assert await store.ping() is True


# ---------------------------------------------------------------------------
# SQLite specifics
# ---------------------------------------------------------------------------


class TestScanRepository:
    async def test_history_records_transitions(self, scan_repo: ScanRepository) -> None:
        scan = _scan()
        await scan_repo.create(scan)
        analyzing = scan.evolve(status=ScanStatus.ANALYZING)
        await scan_repo.update(analyzing)
        await scan_repo.update(
            analyzing.evolve(
                status=ScanStatus.FAILED,
                failure_reason="static: boom",
                failure_kind=FailureKind.PHASE_FAILURE,
                completed_at=datetime.now(UTC),
            )
        )

        history = await scan_repo.history("scan-1")
        assert [(h[0], h[1]) for h in history] == [
            (None, "pending"),
            ("pending", "analyzing"),
            ("analyzing", "failed"),
        ]

    async def test_delete_cascades_history(self, scan_repo: ScanRepository, db) -> None:
        await scan_repo.create(_scan())
        await scan_repo.delete("scan-1")
        cursor = await db.execute("SELECT COUNT(*) FROM scan_transitions")
        assert (await cursor.fetchone())[0] == 0

    async def test_write_after_outside_change_is_refused(
        self, scan_repo: ScanRepository, db
    ) -> None:
        scan = _scan()
        await scan_repo.create(scan)
        await db.execute(
            "UPDATE scans SET status = 'failed', failure_reason = 'other writer', "
            "failure_kind = 'cancelled', completed_at = '2026-01-01T00:00:00+00:00' "
            "WHERE id = 'scan-1'"
        )
        await db.commit()

        with pytest.raises(StorageError, match="cannot change"):
            await scan_repo.update(scan.evolve(status=ScanStatus.ANALYZING))
        assert (await scan_repo.get("scan-1")).failure_reason == "other writer"

    async def test_failure_kind_round_trip(self, scan_repo: ScanRepository) -> None:
        scan = _scan()
        await scan_repo.create(scan)
        await scan_repo.update(
            scan.evolve(
                status=ScanStatus.FAILED,
                failure_reason="cancelled",
                failure_kind=FailureKind.CANCELLED,
                completed_at=datetime.now(UTC),
            )
        )
        loaded = await scan_repo.get("scan-1")
        assert loaded.failure_kind == FailureKind.CANCELLED
        assert loaded.is_terminal


class TestMemoryScanStore:
    async def test_history(self) -> None:
        store = MemoryScanStore()
        scan = _scan()
        await store.create(scan)
        await store.update(scan.evolve(status=ScanStatus.ANALYZING))
        assert store.history("scan-1") == ["pending", "analyzing"]
        assert store.history("other") == []
