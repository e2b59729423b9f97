# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Integration tests for the scan API endpoints."""

from __future__ import annotations

import asyncio
import hashlib

import pytest
from conftest import ScriptedClassifier, ScriptedDynamic, ScriptedStatic
from httpx import ASGITransport, AsyncClient

from malscope.api.app import create_app
from malscope.scanner.pipeline import AnalysisPipeline, PhaseTimeouts
from malscope.storage.memory import MemoryScanStore

OWNER = {"X-Owner-ID": "alice"}
OTHER = {"X-Owner-ID": "bob"}


@pytest.fixture
def analyzers():
    return ScriptedStatic(), ScriptedDynamic(), ScriptedClassifier()


@pytest.fixture
def store() -> MemoryScanStore:
    return MemoryScanStore()


@pytest.fixture
def app(settings, store, analyzers):
    """Create the API app over scripted analyzers and an in-memory store."""
    static, dynamic, classifier = analyzers
    pipeline = AnalysisPipeline(
        static, dynamic, classifier, timeouts=PhaseTimeouts.from_settings(settings)
    )
    return create_app(settings, store=store, pipeline=pipeline)


@pytest.fixture
async def client(app):
    """Provide an async HTTP client bound to the app with its lifespan running."""
    async with app.router.lifespan_context(app):
        async with AsyncClient(
            transport=ASGITransport(app=app), base_url="http://test"
        ) as ac:
            yield ac


async def _submit(client: AsyncClient, headers=OWNER, **body) -> dict:
    payload = {"file_name": "invoice.pdf.exe", "file_size": 2048, **body}
    resp = await client.post("/api/v1/scans", json=payload, headers=headers)
    assert resp.status_code == 202, resp.text
    return resp.json()


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


class TestHealth:
    async def test_health(self, client: AsyncClient) -> None:
        resp = await client.get("/api/v1/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok", "service": "malscope", "version": "0.1.0"}

    async def test_ready(self, client: AsyncClient) -> None:
        resp = await client.get("/api/v1/ready")
        data = resp.json()
        assert data["status"] == "ready"
        assert data["database"] == "connected"
        assert data["in_flight"] == 0

    async def test_ready_without_lifespan(self, app) -> None:
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            resp = await ac.get("/api/v1/ready")
        assert resp.json()["status"] == "not_ready"

    async def test_request_id_header(self, client: AsyncClient) -> None:
        resp = await client.get("/api/v1/health")
        assert resp.headers.get("X-Request-ID")


# ---------------------------------------------------------------------------
# Submission
# ---------------------------------------------------------------------------


class TestSubmit:
    async def test_json_submission(self, client: AsyncClient) -> None:
        data = await _submit(client)
        assert data["status"] in ("pending", "scanning", "completed")
        assert data["owner_id"] == "alice"
        assert data["file_name"] == "invoice.pdf.exe"
        assert len(data["file_hash"]) == 64
        assert data["file_size"] == 2048

    async def test_multipart_submission_hashes_content(self, client: AsyncClient, analyzers) -> None:
        content = b"MZ\x90\x00 sample payload"
        resp = await client.post(
            "/api/v1/scans",
            files={"file": ("dropper.exe", content, "application/octet-stream")},
            headers=OWNER,
        )
        assert resp.status_code == 202, resp.text
        data = resp.json()
        assert data["file_name"] == "dropper.exe"
        assert data["file_size"] == len(content)
        assert data["file_hash"] == hashlib.sha256(content).hexdigest()

        done = await client.post(f"/api/v1/scans/{data['scan_id']}/run", headers=OWNER)
        assert done.json()["status"] == "completed"
        static = analyzers[0]
        assert static.artifacts[0].content == content

    async def test_missing_owner(self, client: AsyncClient) -> None:
        resp = await client.post(
            "/api/v1/scans", json={"file_name": "a.exe", "file_size": 10}
        )
        assert resp.status_code == 401
        body = resp.json()
        assert body["error"] is True
        assert body["error_type"] == "AuthenticationRequiredError"

    async def test_malformed_json(self, client: AsyncClient) -> None:
        resp = await client.post(
            "/api/v1/scans",
            content=b"{not json",
            headers={**OWNER, "Content-Type": "application/json"},
        )
        assert resp.status_code == 422

    @pytest.mark.parametrize(
        "body",
        [
            {"file_name": "", "file_size": 10},
            {"file_name": "a.exe", "file_size": 0},
            {"file_name": "a.exe", "file_size": -5},
            {"file_size": 10},
        ],
    )
    async def test_invalid_submission(self, client: AsyncClient, body: dict) -> None:
        resp = await client.post("/api/v1/scans", json=body, headers=OWNER)
        assert resp.status_code == 422
        assert resp.json()["status_code"] == 422

    async def test_multipart_without_file(self, client: AsyncClient) -> None:
        resp = await client.post(
            "/api/v1/scans",
            data={"note": "x"},
            files={"other": ("a.bin", b"1")},
            headers=OWNER,
        )
        assert resp.status_code == 422


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


class TestLifecycle:
    async def test_run_to_completion(self, client: AsyncClient) -> None:
        submitted = await _submit(client)
        resp = await client.post(f"/api/v1/scans/{submitted['scan_id']}/run", headers=OWNER)
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "completed"
        assert data["threat_level"] == "high"
        assert data["malware_family"] == "Trojan"
        assert data["confidence"] == pytest.approx(0.89)
        assert data["classification"]["alternativeFamilies"][0]["family"] == "Backdoor"
        assert data["scan_duration_ms"] is not None

        fetched = await client.get(f"/api/v1/scans/{submitted['scan_id']}", headers=OWNER)
        assert fetched.json()["status"] == "completed"

    async def test_in_progress_shows_scanning(self, client: AsyncClient, analyzers) -> None:
        static = analyzers[0]
        release = static.hold()
        submitted = await _submit(client)
        await asyncio.wait_for(static.started.wait(), timeout=2)

        resp = await client.get(f"/api/v1/scans/{submitted['scan_id']}", headers=OWNER)
        assert resp.json()["status"] == "scanning"

        ready = await client.get("/api/v1/ready")
        assert ready.json()["in_flight"] == 1

        release.set()
        done = await client.post(f"/api/v1/scans/{submitted['scan_id']}/run", headers=OWNER)
        assert done.json()["status"] == "completed"

    async def test_cancel_in_flight(self, client: AsyncClient, analyzers) -> None:
        static = analyzers[0]
        static.hold()
        submitted = await _submit(client)
        await asyncio.wait_for(static.started.wait(), timeout=2)

        resp = await client.post(
            f"/api/v1/scans/{submitted['scan_id']}/cancel",
            json={"reason": "analyst request"},
            headers=OWNER,
        )
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "failed"
        assert data["failure_reason"] == "analyst request"
        assert data["failure_kind"] == "cancelled"
        assert static.cancelled

    async def test_cancel_completed_is_noop(self, client: AsyncClient) -> None:
        submitted = await _submit(client)
        await client.post(f"/api/v1/scans/{submitted['scan_id']}/run", headers=OWNER)
        resp = await client.post(f"/api/v1/scans/{submitted['scan_id']}/cancel", headers=OWNER)
        assert resp.status_code == 200
        assert resp.json()["status"] == "completed"

    async def test_phase_failure_reported(self, client: AsyncClient, analyzers) -> None:
        dynamic = analyzers[1]
        dynamic.error = RuntimeError("sandbox crashed")
        submitted = await _submit(client)
        resp = await client.post(f"/api/v1/scans/{submitted['scan_id']}/run", headers=OWNER)
        data = resp.json()
        assert data["status"] == "failed"
        assert data["failure_reason"].startswith("dynamic:")
        assert data["malware_family"] is None
        assert data["threat_level"] == "clean"

    async def test_delete(self, client: AsyncClient) -> None:
        submitted = await _submit(client)
        await client.post(f"/api/v1/scans/{submitted['scan_id']}/run", headers=OWNER)

        resp = await client.delete(f"/api/v1/scans/{submitted['scan_id']}", headers=OWNER)
        assert resp.status_code == 204

        gone = await client.get(f"/api/v1/scans/{submitted['scan_id']}", headers=OWNER)
        assert gone.status_code == 404


# ---------------------------------------------------------------------------
# Ownership and listing
# ---------------------------------------------------------------------------


class TestOwnership:
    async def test_other_owner_sees_not_found(self, client: AsyncClient) -> None:
        submitted = await _submit(client)
        scan_id = submitted["scan_id"]

        for method, path in [
            ("GET", f"/api/v1/scans/{scan_id}"),
            ("POST", f"/api/v1/scans/{scan_id}/run"),
            ("POST", f"/api/v1/scans/{scan_id}/cancel"),
            ("DELETE", f"/api/v1/scans/{scan_id}"),
        ]:
            resp = await client.request(method, path, headers=OTHER)
            assert resp.status_code == 404, (method, path)

    async def test_unknown_scan(self, client: AsyncClient) -> None:
        resp = await client.get("/api/v1/scans/does-not-exist", headers=OWNER)
        assert resp.status_code == 404
        assert resp.json()["error_type"] == "NotFoundError"

    async def test_list_is_owner_scoped(self, client: AsyncClient) -> None:
        first = await _submit(client, file_name="one.exe")
        second = await _submit(client, file_name="two.exe")
        await _submit(client, headers=OTHER, file_name="bob.exe")

        resp = await client.get("/api/v1/scans", headers=OWNER)
        ids = [s["scan_id"] for s in resp.json()]
        assert set(ids) == {first["scan_id"], second["scan_id"]}
        assert "static_analysis" not in resp.json()[0]


# ---------------------------------------------------------------------------
# API keys
# ---------------------------------------------------------------------------


class TestApiKeys:
    @pytest.fixture
    def app(self, settings, store, analyzers):
        static, dynamic, classifier = analyzers
        pipeline = AnalysisPipeline(static, dynamic, classifier)
        keyed = settings.model_copy(update={"api_keys": ["secret-key"]})
        return create_app(keyed, store=store, pipeline=pipeline)

    async def test_missing_key(self, client: AsyncClient) -> None:
        resp = await client.get("/api/v1/scans", headers=OWNER)
        assert resp.status_code == 401

    async def test_invalid_key(self, client: AsyncClient) -> None:
        resp = await client.get("/api/v1/scans", headers={**OWNER, "X-API-Key": "wrong"})
        assert resp.status_code == 403

    async def test_valid_key(self, client: AsyncClient) -> None:
        resp = await client.get("/api/v1/scans", headers={**OWNER, "X-API-Key": "secret-key"})
        assert resp.status_code == 200
        assert resp.json() == []

    async def test_health_needs_no_key(self, client: AsyncClient) -> None:
        resp = await client.get("/api/v1/health")
        assert resp.status_code == 200
