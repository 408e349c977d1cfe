"""Tests for cost computation and usage reports."""

import pytest

from book_forge.catalog import ModelCatalog
from book_forge.ledger import UsageLedger, compute_cost
from book_forge.models import UsageRecord
from book_forge.storage import UsageStore


def _record(cost=0.01, agent="Writer", chapter_id="ch-1", book_id="book-1",
            model_id="claude-4.5-sonnet", provider="anthropic", duration_ms=100.0):
    return UsageRecord(
        prompt_tokens=100,
        completion_tokens=50,
        cost=cost,
        model_id=model_id,
        provider=provider,
        book_id=book_id,
        chapter_id=chapter_id,
        agent=agent,
        duration_ms=duration_ms,
    )


def test_compute_cost_per_million_tokens():
    catalog = ModelCatalog.default()

    cost = compute_cost(catalog.get("gpt-4o"), 2_000_000, 1_000_000)

    assert cost == pytest.approx(2 * 2.50 + 1 * 10.00)


def test_compute_cost_image_model_flat_price():
    catalog = ModelCatalog.default()

    cost = compute_cost(catalog.get("flux-1.1-pro"), 0, 0, catalog.image_price("flux-1.1-pro"))

    assert cost == 0.04


def test_compute_cost_unknown_model_is_free():
    assert compute_cost(None, 1000, 1000) == 0.0


def test_summary_and_groupings():
    ledger = UsageLedger()
    ledger.record(_record(cost=0.02, agent="Writer", duration_ms=100.0))
    ledger.record(_record(cost=0.01, agent="Auditor", model_id="deepseek-r1",
                          provider="deepseek", duration_ms=300.0))
    ledger.record(_record(cost=0.03, agent="Writer", book_id="book-2", chapter_id="ch-9"))

    assert ledger.summary() == {"total_cost": pytest.approx(0.06), "count": 3}
    assert ledger.summary("book-1")["count"] == 2

    by_agent = ledger.by_agent("book-1")
    assert by_agent["Writer"]["count"] == 1
    assert by_agent["Auditor"]["avg_duration_ms"] == 300.0

    assert set(ledger.by_provider()) == {"anthropic", "deepseek"}
    assert ledger.by_model()["claude-4.5-sonnet"]["cost"] == pytest.approx(0.05)


def test_bottlenecks_rank_by_retries_then_cost():
    ledger = UsageLedger()
    for _ in range(3):
        ledger.record(_record(chapter_id="ch-slow", cost=0.01))
    ledger.record(_record(chapter_id="ch-fast", cost=0.05))
    for _ in range(2):
        ledger.record(_record(chapter_id="ch-mid", cost=0.02))
    for _ in range(2):
        ledger.record(_record(chapter_id="ch-mid-cheap", agent="Revision Specialist", cost=0.001))
    # Audits do not count as retries
    for _ in range(4):
        ledger.record(_record(chapter_id="ch-fast", agent="Auditor", cost=0.001))

    bottlenecks = ledger.bottlenecks()

    assert [b["chapter_id"] for b in bottlenecks] == ["ch-slow", "ch-mid", "ch-mid-cheap"]
    assert bottlenecks[0]["retries"] == 2
    assert bottlenecks[1]["retries"] == 1
    assert bottlenecks[1]["cost"] == pytest.approx(0.04)


def test_book_breakdown_restricted_to_book():
    ledger = UsageLedger()
    ledger.record(_record(book_id="book-1"))
    ledger.record(_record(book_id="book-2", chapter_id="ch-2"))

    report = ledger.book_breakdown("book-1")

    assert report["book_id"] == "book-1"
    assert report["count"] == 1
    assert list(report["by_chapter"]) == ["ch-1"]


def test_listeners_notified_and_unsubscribed():
    ledger = UsageLedger()
    seen = []
    unsubscribe = ledger.subscribe(seen.append)

    ledger.record(_record(cost=0.5))
    unsubscribe()
    ledger.record(_record(cost=0.5))

    assert len(seen) == 1
    assert seen[0]["total_cost"] == 0.5


def test_snapshot_persisted_and_restored(tmp_path):
    store = UsageStore(tmp_path / "usage.json")
    ledger = UsageLedger(store)
    ledger.record(_record(cost=0.25, agent="Director", chapter_id=None))

    restored = UsageLedger(store)

    assert restored.load() == 1
    assert restored.records[0].agent == "Director"
    assert restored.summary()["total_cost"] == 0.25


def test_unwritable_snapshot_does_not_lose_record(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory", encoding="utf-8")
    ledger = UsageLedger(UsageStore(blocker / "usage.json"))

    ledger.record(_record())

    assert len(ledger.records) == 1
