"""Production runner: drives the chapter graph over whole books."""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable

from .chains.outline import generate_outline
from .config import Settings, get_config
from .graph import ChapterProductionGraph, ChapterRunResult, Mode
from .models import (
    DIRECTOR,
    Book,
    BookMetadata,
    BookNotFoundError,
    Chapter,
    ChapterNotFoundError,
    RevisionDirective,
    utcnow,
)
from .observability import AgentLogStream
from .orchestrator import RequestOrchestrator
from .storage import BookStore

logger = logging.getLogger(__name__)


class ProductionRunner:
    """Runs chapters strictly one after another within a book.

    One lock per book id: a second run on the same book waits for the first,
    different books may run concurrently. Every chapter update is written
    back to the store with a read-modify-write.
    """

    def __init__(
        self,
        orchestrator: RequestOrchestrator,
        store: BookStore,
        log_stream: AgentLogStream | None = None,
        config: Settings | None = None,
        attempt_delay: float | None = None,
        sleep: Callable[[float], Awaitable[None]] | None = None,
    ):
        self.config = config or get_config()
        self.orchestrator = orchestrator
        self.store = store
        self.log_stream = log_stream or AgentLogStream(self.config.agent_log_capacity)
        self.graph = ChapterProductionGraph(
            orchestrator,
            log_stream=self.log_stream,
            config=self.config,
            attempt_delay=attempt_delay,
            sleep=sleep,
            on_chapter_update=self._persist_chapter,
        )
        self._locks: dict[str, asyncio.Lock] = {}

    def lock(self, book_id: str) -> asyncio.Lock:
        """Per-book lock held by every load-modify-save of the book."""
        if book_id not in self._locks:
            self._locks[book_id] = asyncio.Lock()
        return self._locks[book_id]

    async def _load(self, book_id: str) -> Book:
        book = await self.store.load_book(book_id)
        if book is None:
            raise BookNotFoundError(f"Book {book_id} not found", book_id=book_id, node="runner")
        return book

    async def _persist_chapter(self, book_id: str, chapter: Chapter) -> None:
        book = await self._load(book_id)
        book.chapters = [chapter if c.id == chapter.id else c for c in book.chapters]
        book.updated_at = utcnow()
        await self.store.save_book(book)

    async def _apply_result(self, book_id: str, result: ChapterRunResult) -> Book:
        book = await self._load(book_id)
        book.chapters = [result.chapter if c.id == result.chapter.id else c for c in book.chapters]
        if result.completed:
            book.lore_bible = book.lore_bible + result.new_lore
        book.updated_at = utcnow()
        await self.store.save_book(book)
        return book

    async def _run_chapters(
        self,
        book_id: str,
        select: Callable[[Book], list[str]],
        mode: Mode,
        directive: RevisionDirective | None = None,
    ) -> dict[str, Any]:
        start_time = time.time()

        async with self.lock(book_id):
            book = await self._load(book_id)
            chapter_ids = select(book)
            cost_before = self.orchestrator.ledger.summary(book_id)["total_cost"]

            logger.info(f"Starting {mode} run for '{book.metadata.title}': {len(chapter_ids)} chapter(s)")

            completed, failed = [], []
            for chapter_id in chapter_ids:
                # Fresh read so lore appended by earlier chapters is visible
                book = await self._load(book_id)
                result = await self.graph.run(book, chapter_id, mode=mode, directive=directive)
                await self._apply_result(book_id, result)

                if result.completed:
                    completed.append(chapter_id)
                else:
                    failed.append(chapter_id)

            cost = self.orchestrator.ledger.summary(book_id)["total_cost"] - cost_before

        summary = {
            "success": not failed,
            "book_id": book_id,
            "completed": completed,
            "failed": failed,
            "runtime_sec": time.time() - start_time,
            "cost": cost,
        }
        logger.info(
            f"{mode} run finished for {book_id}: {len(completed)} completed, "
            f"{len(failed)} failed, ${cost:.4f} in {summary['runtime_sec']:.1f}s"
        )
        return summary

    async def produce_book(self, book_id: str) -> dict[str, Any]:
        """Write every chapter that is not completed yet."""
        return await self._run_chapters(
            book_id,
            lambda book: [c.id for c in book.chapters if c.status != "completed"],
            "write",
        )

    async def revise_book(self, book_id: str, directive: RevisionDirective) -> dict[str, Any]:
        """Revise every chapter that has content."""
        return await self._run_chapters(
            book_id,
            lambda book: [c.id for c in book.chapters if c.content.strip()],
            "revise",
            directive,
        )

    async def produce_chapter(self, book_id: str, chapter_id: str) -> dict[str, Any]:
        return await self._run_chapters(
            book_id, lambda book: [self._require_chapter(book, chapter_id)], "write"
        )

    async def revise_chapter(
        self, book_id: str, chapter_id: str, directive: RevisionDirective
    ) -> dict[str, Any]:
        return await self._run_chapters(
            book_id, lambda book: [self._require_chapter(book, chapter_id)], "revise", directive
        )

    @staticmethod
    def _require_chapter(book: Book, chapter_id: str) -> str:
        if book.chapter(chapter_id) is None:
            raise ChapterNotFoundError(
                f"Chapter {chapter_id} not found", book_id=book.id, node="runner"
            )
        return chapter_id

    async def create_book(self, metadata: BookMetadata) -> Book:
        """Outline a new book, save it and make it the active book."""
        book = Book(metadata=metadata)
        self.log_stream.emit(DIRECTOR, f"Designing architecture for '{metadata.title}'...")
        book.chapters = await generate_outline(self.orchestrator, metadata, book_id=book.id)
        await self.store.save_book(book)
        await self.store.save_active_id(book.id)
        self.log_stream.emit(
            DIRECTOR, f"Outline ready: {len(book.chapters)} chapters.", "success"
        )
        return book
