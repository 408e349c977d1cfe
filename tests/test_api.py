"""Tests for the FastAPI application."""

import asyncio

import pytest
from fastapi.testclient import TestClient

from book_forge.api.main import app, scan_book
from book_forge.factory import Services, get_services
from book_forge.models import ResolutionFailure, TransportError
from book_forge.originality import OriginalityScanner, OriginalityService, ScanPhases
from book_forge.runner import ProductionRunner

from conftest import no_sleep

PARAGRAPH = (
    "The ferryman counted coins by lantern light, stacking them in towers that "
    "leaned like the masts of sinking ships."
)


@pytest.fixture
def services(config, catalog, credentials, ledger, orchestrator, store, log_stream):
    return Services(
        config=config,
        catalog=catalog,
        credentials=credentials,
        ledger=ledger,
        orchestrator=orchestrator,
        store=store,
        log_stream=log_stream,
        runner=ProductionRunner(
            orchestrator, store, log_stream=log_stream, config=config, attempt_delay=0, sleep=no_sleep
        ),
        originality=OriginalityService(OriginalityScanner(config=config), orchestrator, log_stream),
    )


@pytest.fixture
def client(services):
    app.dependency_overrides[get_services] = lambda: services
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health(client):
    response = client.get("/api/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert "anthropic" in data["credentialed_providers"]


def test_create_and_fetch_book(client, backend):
    backend.script("outline", {"chapters": [{"title": "Crossing", "description": "The ferry leaves."}]})

    created = client.post("/api/books", json={"title": "River Coins", "tone": "Melancholic"})
    assert created.status_code == 200
    book_id = created.json()["id"]

    listed = client.get("/api/books").json()
    assert listed[0]["id"] == book_id
    assert listed[0]["chapters"] == 1

    fetched = client.get(f"/api/books/{book_id}")
    assert fetched.json()["chapters"][0]["title"] == "Crossing"

    costs = client.get(f"/api/books/{book_id}/costs").json()
    assert costs["by_agent"]["Director"]["count"] == 1

    logs = client.get("/api/logs").json()
    assert logs[0]["agent"] == "Director"


def test_unknown_book_is_404(client):
    assert client.get("/api/books/missing").status_code == 404
    assert client.post("/api/books/missing/produce").status_code == 404


def test_scan_and_resolve_issue(client, services, sample_book):
    sample_book.chapters[0].content = PARAGRAPH
    sample_book.chapters[1].content = PARAGRAPH
    asyncio.run(services.store.save_book(sample_book))

    scan = client.post(
        f"/api/books/{sample_book.id}/scan",
        json={"internal": True, "external": False, "ai_detection": False},
    )
    assert scan.status_code == 200
    assert scan.json()["new_issues"] == 1

    issues = client.get(f"/api/books/{sample_book.id}/issues", params={"issue_status": "pending"}).json()
    assert len(issues) == 1

    resolved = client.post(
        f"/api/books/{sample_book.id}/issues/{issues[0]['id']}/resolve",
        json={"action": "kept-documented", "notes": "Deliberate echo"},
    )
    assert resolved.status_code == 200
    assert resolved.json()["status"] == "ignored"
    assert resolved.json()["user_notes"] == "Deliberate echo"

    bad = client.post(
        f"/api/books/{sample_book.id}/issues/{issues[0]['id']}/resolve",
        json={"action": "shred"},
    )
    assert bad.status_code == 400


def test_outline_provider_failure_is_502(client, backend, store):
    backend.script("outline", ResolutionFailure("deepseek", "No API key configured for deepseek"))

    response = client.post("/api/books", json={"title": "Unwritten"})

    assert response.status_code == 502
    assert response.json()["detail"] == "No API key configured for deepseek"
    assert asyncio.run(store.list_books()) == []


def test_auto_rewrite_transport_failure_is_502(client, services, backend, sample_book):
    sample_book.chapters[0].content = PARAGRAPH
    sample_book.chapters[1].content = PARAGRAPH
    asyncio.run(services.store.save_book(sample_book))
    client.post(
        f"/api/books/{sample_book.id}/scan",
        json={"internal": True, "external": False, "ai_detection": False},
    )
    issue_id = client.get(f"/api/books/{sample_book.id}/issues").json()[0]["id"]
    backend.script("rewrite", TransportError("anthropic", "invalid request", is_retryable=False))

    response = client.post(
        f"/api/books/{sample_book.id}/issues/{issue_id}/resolve", json={"action": "auto-rewrite"}
    )

    assert response.status_code == 502
    assert response.json()["detail"] == "invalid request"
    stored = asyncio.run(services.store.load_book(sample_book.id))
    assert stored.originality_issues[0].status == "pending"


@pytest.mark.asyncio
async def test_scan_waits_for_running_production(services, sample_book):
    sample_book.chapters[0].content = PARAGRAPH
    sample_book.chapters[1].content = PARAGRAPH
    await services.store.save_book(sample_book)

    async with services.runner.lock(sample_book.id):
        scan = asyncio.create_task(
            scan_book(sample_book.id, ScanPhases(external=False), services=services)
        )
        await asyncio.sleep(0)
        # Production saves a chapter while the scan is queued
        book = await services.store.load_book(sample_book.id)
        book.chapters[0].status = "completed"
        await services.store.save_book(book)
        assert not scan.done()

    response = await scan
    stored = await services.store.load_book(sample_book.id)

    assert response.new_issues == 1
    assert stored.chapters[0].status == "completed"
    assert len(stored.originality_scans) == 1
