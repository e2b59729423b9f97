# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Scan engine: owns the scan lifecycle from submission to terminal record.

Concurrency rules:

* At most one run per scan. The in-flight registry is guarded by an
  ``asyncio.Lock``; a second ``run()`` for the same scan awaits the task
  that is already running and returns the same record.
* Every persistence write for a scan happens under that scan's write lock,
  so writes land in lifecycle order and never interleave. A write lock
  lives only while a writer holds or awaits it.
* ``cancel()`` records its reason under the write lock before cancelling
  the run task. The terminal write checks that reason under the same lock,
  so no ``completed`` record can be written after a cancel was accepted.
* Terminal writes are shielded: cancelling a run while it persists its
  outcome waits for the write instead of abandoning it halfway.
"""

from __future__ import annotations

import asyncio
import contextlib
import hashlib
import logging
import secrets
import time
import uuid
from collections.abc import AsyncIterator, Coroutine
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from malscope.core.config import Settings, get_settings
from malscope.core.constants import FailureKind, ScanStatus
from malscope.core.exceptions import (
    AggregationError,
    AlreadyInProgressError,
    AuthenticationRequiredError,
    InvalidTransitionError,
    MalscopeError,
    NotFoundError,
    PhaseFailure,
    StorageError,
    ValidationError,
)
from malscope.models.scan import Scan
from malscope.scanner.context import ArtifactRef
from malscope.scanner.lifecycle import ensure_transition
from malscope.scanner.pipeline import AnalysisPipeline, PipelineOutcome
from malscope.storage.base import ScanStore

logger = logging.getLogger("malscope.scanner.engine")

DEFAULT_CANCEL_REASON = "cancelled"
SHUTDOWN_REASON = "cancelled: engine shutdown"


@dataclass
class _WriteLock:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


def _require_owner(owner_id: str | None) -> str:
    if owner_id is None or not owner_id.strip():
        raise AuthenticationRequiredError("An owner identity is required")
    return owner_id.strip()


def _elapsed_ms(started: float | None) -> int | None:
    if started is None:
        return None
    return max(0, int((time.monotonic() - started) * 1000))


def _uncancel_current() -> None:
    task = asyncio.current_task()
    if task is not None:
        task.uncancel()


class ScanEngine:
    """Submits, runs, cancels and looks up scans.

    Args:
        store: Persistence for scan records.
        pipeline: The analysis pipeline every run goes through.
        settings: Limits and deadlines; defaults to the environment.
    """

    def __init__(
        self,
        store: ScanStore,
        pipeline: AnalysisPipeline,
        settings: Settings | None = None,
    ) -> None:
        self._store = store
        self._pipeline = pipeline
        self._settings = settings or get_settings()
        self._inflight: dict[str, asyncio.Task[Scan]] = {}
        self._registry_lock = asyncio.Lock()
        self._write_locks: dict[str, _WriteLock] = {}
        self._cancel_reasons: dict[str, str] = {}
        self._artifacts: dict[str, bytes] = {}
        self._slots = asyncio.Semaphore(max(1, self._settings.max_concurrent_runs))
        self._background: set[asyncio.Task[Scan]] = set()

    @property
    def store(self) -> ScanStore:
        return self._store

    @property
    def pipeline(self) -> AnalysisPipeline:
        return self._pipeline

    def in_flight(self) -> list[str]:
        """IDs of scans with an active run in this engine."""
        return sorted(self._inflight)

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    async def submit(
        self,
        owner_id: str | None,
        file_name: str,
        file_size: int,
        content: bytes | None = None,
    ) -> Scan:
        """Register a new artifact and return its ``pending`` scan."""
        owner = _require_owner(owner_id)
        name = (file_name or "").strip()
        if not name:
            raise ValidationError("file_name must not be empty")
        if file_size is None or file_size <= 0:
            raise ValidationError("file_size must be positive")
        if content is not None and len(content) != file_size:
            raise ValidationError(
                f"file_size {file_size} does not match content length {len(content)}"
            )
        if file_size > self._settings.max_file_size:
            raise ValidationError(
                f"file_size {file_size} exceeds the limit of {self._settings.max_file_size} bytes"
            )

        if content is not None:
            file_hash = hashlib.sha256(content).hexdigest()
        else:
            nonce = secrets.token_bytes(16)
            file_hash = hashlib.sha256(
                nonce + f"{owner}\0{name}\0{file_size}".encode()
            ).hexdigest()

        scan = Scan(
            scan_id=uuid.uuid4().hex,
            owner_id=owner,
            file_name=name,
            file_size=file_size,
            file_hash=file_hash,
        )
        await self._store.create(scan)
        if content is not None:
            self._artifacts[scan.scan_id] = content

        logger.info(
            "Submitted scan %s (%s, %d bytes)",
            scan.scan_id,
            name,
            file_size,
            extra={"scan_id": scan.scan_id, "owner_id": owner, "status": scan.status},
        )
        return scan

    # ------------------------------------------------------------------
    # Running
    # ------------------------------------------------------------------

    async def run(self, scan_id: str) -> Scan:
        """Drive a scan to a terminal state and return the stored record.

        Terminal scans are returned as stored. If a run is already active,
        this waits for it instead of starting another.
        """
        claimed = await self._claim(scan_id)
        if isinstance(claimed, Scan):
            return claimed
        return await self._await_run(scan_id, claimed)

    async def start(self, scan_id: str, *, exclusive: bool = False) -> asyncio.Task[Scan]:
        """Schedule a run in the background and return the waiting task.

        With ``exclusive=True`` an already active run raises
        :class:`AlreadyInProgressError` instead of being shared.
        """
        claimed = await self._claim(scan_id, exclusive=exclusive)
        if isinstance(claimed, Scan):
            follower = asyncio.create_task(self._resolved(claimed))
        else:
            follower = asyncio.create_task(
                self._await_run(scan_id, claimed), name=f"follow:{scan_id}"
            )
        self._background.add(follower)
        follower.add_done_callback(self._on_background_done)
        return follower

    async def _claim(
        self, scan_id: str, *, exclusive: bool = False
    ) -> Scan | asyncio.Task[Scan]:
        async with self._registry_lock:
            task = self._inflight.get(scan_id)
            if task is not None:
                if exclusive:
                    raise AlreadyInProgressError(scan_id)
                logger.debug("Joining in-flight run", extra={"scan_id": scan_id})
                return task

            scan = await self._store.get(scan_id)
            if scan is None:
                raise NotFoundError(scan_id)
            if scan.is_terminal:
                return scan
            if scan.status == ScanStatus.ANALYZING:
                # Stored as analyzing but not running here: another process
                # owns it, or a previous process died mid-run.
                raise AlreadyInProgressError(scan_id)

            task = asyncio.create_task(self._execute(scan_id), name=f"scan:{scan_id}")
            self._inflight[scan_id] = task
            task.add_done_callback(lambda t: self._release(scan_id, t))
            return task

    def _release(self, scan_id: str, task: asyncio.Task[Scan]) -> None:
        if self._inflight.get(scan_id) is task:
            del self._inflight[scan_id]

    async def _await_run(self, scan_id: str, task: asyncio.Task[Scan]) -> Scan:
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if task.cancelled() and (current is None or current.cancelling() == 0):
                # Cancelled before its first step, so it never wrote anything.
                reason = self._cancel_reasons.pop(scan_id, DEFAULT_CANCEL_REASON)
                self._artifacts.pop(scan_id, None)
                return await self._fail(scan_id, FailureKind.CANCELLED, reason, None)
            raise

    async def _resolved(self, scan: Scan) -> Scan:
        return scan

    def _on_background_done(self, task: asyncio.Task[Scan]) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Background run failed: %s", exc, exc_info=exc)

    async def _execute(self, scan_id: str) -> Scan:
        try:
            return await self._drive(scan_id)
        finally:
            self._cancel_reasons.pop(scan_id, None)
            self._artifacts.pop(scan_id, None)

    async def _drive(self, scan_id: str) -> Scan:
        started: float | None = None
        try:
            async with self._slots:
                scan = await self._transition(
                    scan_id, ScanStatus.ANALYZING, started_at=datetime.now(UTC)
                )
                started = time.monotonic()
                artifact = ArtifactRef.from_scan(scan, self._artifacts.get(scan_id))
                outcome = await self._analyze(artifact)
        except asyncio.CancelledError:
            _uncancel_current()
            reason = self._cancel_reasons.get(scan_id, DEFAULT_CANCEL_REASON)
            return await self._await_write(
                self._fail(scan_id, FailureKind.CANCELLED, reason, started)
            )
        except InvalidTransitionError:
            # Finalized by cancel() before this run reached analyzing.
            return await self._require(scan_id)
        except PhaseFailure as exc:
            kind = FailureKind.TIMEOUT if exc.timed_out else FailureKind.PHASE_FAILURE
            return await self._await_write(self._fail(scan_id, kind, str(exc), started))
        except AggregationError as exc:
            logger.error("Aggregation failed: %s", exc, extra={"scan_id": scan_id})
            return await self._await_write(
                self._fail(scan_id, FailureKind.AGGREGATION_ERROR, f"aggregation: {exc}", started)
            )
        except (StorageError, NotFoundError):
            raise
        except Exception as exc:
            logger.exception("Unexpected error while analyzing", extra={"scan_id": scan_id})
            return await self._await_write(
                self._fail(scan_id, FailureKind.PHASE_FAILURE, f"internal: {exc}", started)
            )

        return await self._await_write(self._complete(scan_id, outcome, started))

    async def _analyze(self, artifact: ArtifactRef) -> PipelineOutcome:
        limit = self._settings.run_timeout
        if limit <= 0:
            return await self._pipeline.execute(artifact)
        try:
            async with asyncio.timeout(limit):
                return await self._pipeline.execute(artifact)
        except TimeoutError as exc:
            raise PhaseFailure("run", f"timed out after {limit:.1f}s", timed_out=True) from exc

    async def _await_write(self, write: Coroutine[Any, Any, Scan]) -> Scan:
        inner = asyncio.ensure_future(write)
        try:
            return await asyncio.shield(inner)
        except asyncio.CancelledError:
            _uncancel_current()
            return await inner

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    @contextlib.asynccontextmanager
    async def _write_lock(self, scan_id: str) -> AsyncIterator[None]:
        entry = self._write_locks.get(scan_id)
        if entry is None:
            entry = self._write_locks[scan_id] = _WriteLock()
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0 and self._write_locks.get(scan_id) is entry:
                del self._write_locks[scan_id]

    async def _require(self, scan_id: str) -> Scan:
        scan = await self._store.get(scan_id)
        if scan is None:
            raise NotFoundError(scan_id)
        return scan

    async def _transition(self, scan_id: str, target: ScanStatus, **changes: Any) -> Scan:
        async with self._write_lock(scan_id):
            current = await self._require(scan_id)
            return await self._persist(current, target, **changes)

    async def _persist(self, current: Scan, target: ScanStatus, **changes: Any) -> Scan:
        ensure_transition(current.status, target)
        updated = current.evolve(status=target, **changes)
        await self._store.update(updated, expected=current.status)
        logger.info(
            "Scan %s: %s -> %s",
            current.scan_id,
            current.status,
            target,
            extra={"scan_id": current.scan_id, "owner_id": current.owner_id, "status": target},
        )
        return updated

    async def _complete(self, scan_id: str, outcome: PipelineOutcome, started: float | None) -> Scan:
        async with self._write_lock(scan_id):
            current = await self._require(scan_id)
            if current.is_terminal:
                return current
            reason = self._cancel_reasons.get(scan_id)
            if reason is not None:
                return await self._persist_failure(current, FailureKind.CANCELLED, reason, started)

            verdict = outcome.verdict
            return await self._persist(
                current,
                ScanStatus.COMPLETED,
                threat_level=verdict.threat_level,
                malware_family=verdict.malware_family,
                confidence=verdict.confidence,
                static_analysis=outcome.static,
                dynamic_analysis=outcome.dynamic,
                classification=verdict.classification,
                scan_duration_ms=_elapsed_ms(started),
                completed_at=datetime.now(UTC),
            )

    async def _fail(
        self, scan_id: str, kind: FailureKind, reason: str, started: float | None
    ) -> Scan:
        async with self._write_lock(scan_id):
            current = await self._require(scan_id)
            return await self._persist_failure(current, kind, reason, started)

    async def _persist_failure(
        self, current: Scan, kind: FailureKind, reason: str, started: float | None
    ) -> Scan:
        if current.is_terminal:
            return current
        logger.warning(
            "Scan %s failed (%s): %s",
            current.scan_id,
            kind,
            reason,
            extra={"scan_id": current.scan_id, "owner_id": current.owner_id},
        )
        return await self._persist(
            current,
            ScanStatus.FAILED,
            failure_reason=reason,
            failure_kind=kind,
            scan_duration_ms=_elapsed_ms(started),
            completed_at=datetime.now(UTC),
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def fetch(self, scan_id: str, requester: str | None) -> Scan:
        """Return the scan if *requester* owns it.

        Unknown scans and scans owned by someone else both raise
        :class:`NotFoundError`, so existence is not leaked.
        """
        owner = _require_owner(requester)
        scan = await self._store.get(scan_id)
        if scan is None or scan.owner_id != owner:
            raise NotFoundError(scan_id)
        return scan

    async def list_scans(self, requester: str | None) -> list[Scan]:
        owner = _require_owner(requester)
        return await self._store.list_by_owner(owner)

    async def cancel(
        self, scan_id: str, requester: str | None, reason: str = DEFAULT_CANCEL_REASON
    ) -> Scan:
        """Stop a scan that has not finished; it ends ``failed``/``cancelled``.

        Terminal scans are returned unchanged.
        """
        scan = await self.fetch(scan_id, requester)
        if scan.is_terminal:
            return scan

        async with self._registry_lock:
            task = self._inflight.get(scan_id)
        if task is None:
            self._artifacts.pop(scan_id, None)
            return await self._fail(scan_id, FailureKind.CANCELLED, reason, None)

        async with self._write_lock(scan_id):
            current = await self._require(scan_id)
            if current.is_terminal:
                return current
            self._cancel_reasons[scan_id] = reason
        task.cancel()
        logger.info("Cancelling scan %s", scan_id, extra={"scan_id": scan_id})
        return await self._await_run(scan_id, task)

    async def delete_scan(self, scan_id: str, requester: str | None) -> None:
        """Delete an owned scan, cancelling its run first if one is active."""
        scan = await self.fetch(scan_id, requester)
        if not scan.is_terminal:
            await self.cancel(scan_id, requester, reason="cancelled: scan deleted")
        async with self._write_lock(scan_id):
            deleted = await self._store.delete(scan_id)
        self._artifacts.pop(scan_id, None)
        if not deleted:
            raise NotFoundError(scan_id)
        logger.info("Deleted scan %s", scan_id, extra={"scan_id": scan_id})

    async def shutdown(self) -> None:
        """Cancel every in-flight run and wait for each to be recorded."""
        async with self._registry_lock:
            running = list(self._inflight.items())

        for scan_id, task in running:
            async with self._write_lock(scan_id):
                self._cancel_reasons.setdefault(scan_id, SHUTDOWN_REASON)
            task.cancel()

        results = await asyncio.gather(
            *(self._await_run(scan_id, task) for scan_id, task in running),
            return_exceptions=True,
        )
        for (scan_id, _), result in zip(running, results, strict=True):
            if isinstance(result, MalscopeError):
                logger.error("Run %s did not settle: %s", scan_id, result)

        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)
        if running:
            logger.info("Engine stopped %d in-flight run(s)", len(running))
