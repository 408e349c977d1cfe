"""Usage ledger: append-only cost records and the reports built on them."""

import logging
from collections import defaultdict
from typing import Any, Callable, Iterable

from .catalog import ModelDescriptor
from .models import UsageRecord
from .storage import UsageStore

logger = logging.getLogger(__name__)

# Agents whose calls produce chapter text; repeats of these are retries
GENERATION_AGENTS = ("Writer", "Revision Specialist")

UsageListener = Callable[[dict[str, Any]], None]


def compute_cost(
    model: ModelDescriptor | None,
    prompt_tokens: int,
    completion_tokens: int,
    image_price: float = 0.0,
) -> float:
    """Cost of one call in USD.

    Image models (no token rate, image capability) cost a flat per-unit price.
    Unknown models cost nothing.
    """
    if model is None:
        return 0.0
    if model.input_cost_per_million_tokens == 0 and model.supports("image"):
        return image_price
    return (
        prompt_tokens / 1_000_000 * model.input_cost_per_million_tokens
        + completion_tokens / 1_000_000 * model.output_cost_per_million_tokens
    )


def _group(records: Iterable[UsageRecord], key: Callable[[UsageRecord], str | None]) -> dict[str, dict]:
    totals: dict[str, dict] = defaultdict(lambda: {"cost": 0.0, "count": 0, "duration_ms": 0.0, "timed": 0})
    for record in records:
        group = key(record)
        if group is None:
            continue
        bucket = totals[group]
        bucket["cost"] += record.cost
        bucket["count"] += 1
        if record.duration_ms is not None:
            bucket["duration_ms"] += record.duration_ms
            bucket["timed"] += 1

    return {
        group: {
            "cost": bucket["cost"],
            "count": bucket["count"],
            "avg_duration_ms": bucket["duration_ms"] / bucket["timed"] if bucket["timed"] else 0.0,
        }
        for group, bucket in totals.items()
    }


class UsageLedger:
    """Append-only list of UsageRecord with a single logical writer.

    Every append persists a snapshot through the optional store and notifies
    listeners with the fresh summary.
    """

    def __init__(self, store: UsageStore | None = None):
        self.store = store
        self._records: list[UsageRecord] = []
        self._listeners: list[UsageListener] = []

    @property
    def records(self) -> list[UsageRecord]:
        return list(self._records)

    def load(self) -> int:
        """Restore the persisted snapshot; returns the number of records."""
        if self.store is None:
            return 0
        self._records = self.store.load()
        logger.info(f"Loaded {len(self._records)} usage records")
        return len(self._records)

    def subscribe(self, listener: UsageListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def record(self, usage: UsageRecord) -> None:
        self._records.append(usage)
        logger.debug(
            f"Usage: {usage.model_id} {usage.prompt_tokens}+{usage.completion_tokens} tokens "
            f"${usage.cost:.6f} ({usage.agent or 'unattributed'})"
        )

        if self.store is not None:
            try:
                self.store.save(self._records)
            except OSError as e:
                logger.error(f"Failed to persist usage snapshot: {e}")

        summary = self.summary()
        for listener in list(self._listeners):
            listener(summary)

    def _select(self, book_id: str | None) -> list[UsageRecord]:
        if book_id is None:
            return self._records
        return [r for r in self._records if r.book_id == book_id]

    def summary(self, book_id: str | None = None) -> dict[str, Any]:
        records = self._select(book_id)
        return {"total_cost": sum(r.cost for r in records), "count": len(records)}

    def by_agent(self, book_id: str | None = None) -> dict[str, dict]:
        return _group(self._select(book_id), lambda r: r.agent or "Unknown")

    def by_model(self, book_id: str | None = None) -> dict[str, dict]:
        return _group(self._select(book_id), lambda r: r.model_id)

    def by_provider(self, book_id: str | None = None) -> dict[str, dict]:
        return _group(self._select(book_id), lambda r: r.provider)

    def by_chapter(self, book_id: str | None = None) -> dict[str, dict]:
        return _group(self._select(book_id), lambda r: r.chapter_id)

    def bottlenecks(self, book_id: str | None = None) -> list[dict[str, Any]]:
        """Chapters that needed more than one generation call.

        Ranked by retries, then by total chapter cost, both descending.
        """
        records = self._select(book_id)
        generations: dict[str, int] = defaultdict(int)
        for record in records:
            if record.chapter_id and record.agent in GENERATION_AGENTS:
                generations[record.chapter_id] += 1

        per_chapter = _group(records, lambda r: r.chapter_id)
        ranked = []
        for chapter_id, calls in generations.items():
            retries = calls - 1
            if retries <= 0:
                continue
            stats = per_chapter[chapter_id]
            ranked.append({
                "chapter_id": chapter_id,
                "retries": retries,
                "cost": stats["cost"],
                "count": stats["count"],
                "avg_duration_ms": stats["avg_duration_ms"],
            })

        ranked.sort(key=lambda item: (item["retries"], item["cost"]), reverse=True)
        return ranked

    def book_breakdown(self, book_id: str) -> dict[str, Any]:
        """Every report restricted to one book."""
        return {
            "book_id": book_id,
            **self.summary(book_id),
            "by_agent": self.by_agent(book_id),
            "by_model": self.by_model(book_id),
            "by_provider": self.by_provider(book_id),
            "by_chapter": self.by_chapter(book_id),
            "bottlenecks": self.bottlenecks(book_id),
        }

    def detailed_analytics(self) -> dict[str, Any]:
        """Every report across all books."""
        return {
            **self.summary(),
            "by_agent": self.by_agent(),
            "by_model": self.by_model(),
            "by_provider": self.by_provider(),
            "by_chapter": self.by_chapter(),
            "bottlenecks": self.bottlenecks(),
        }
