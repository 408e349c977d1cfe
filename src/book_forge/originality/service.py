"""Originality workflows over a book: tracked scans and issue actions."""

import logging

from ..chains.rewriter import rewrite_paragraph
from ..models import (
    ORIGINALITY_CHECKER,
    Book,
    OriginalityIssueRecord,
    PipelineError,
    utcnow,
)
from ..observability import AgentLogStream
from ..orchestrator import RequestOrchestrator
from ..utils.text import jaccard_similarity, split_paragraphs, truncate, word_count
from . import tracker
from .scanner import MIN_PARAGRAPH_CHARS, OriginalityScanner, ScanPhases

logger = logging.getLogger(__name__)


class OriginalityService:
    """Scanner and tracker applied to a book aggregate.

    Methods return the updated book; persisting it is up to the caller.
    """

    def __init__(
        self,
        scanner: OriginalityScanner,
        orchestrator: RequestOrchestrator | None = None,
        log_stream: AgentLogStream | None = None,
    ):
        self.scanner = scanner
        self.orchestrator = orchestrator
        self.log_stream = log_stream or AgentLogStream()

    async def scan_book_with_tracking(
        self, book: Book, phases: ScanPhases | None = None
    ) -> tuple[Book, tracker.TrackingResult]:
        self.log_stream.emit(ORIGINALITY_CHECKER, f"Scanning '{book.metadata.title}'...")
        scan = await self.scanner.scan_book(book, phases)
        tracking = tracker.reconcile(scan, book.originality_issues)

        updated = book.model_copy(update={
            "originality_issues": tracker.merge(book.originality_issues, tracking),
            "originality_scans": book.originality_scans + [scan],
            "updated_at": utcnow(),
        })

        severity = "success" if scan.status == "safe" else "warning"
        self.log_stream.emit(
            ORIGINALITY_CHECKER,
            f"Score {scan.overall_score}/100 ({scan.status}): {len(tracking.new_issues)} new, "
            f"{len(tracking.resolved_issues)} resolved, {len(tracking.persistent_issues)} persistent.",
            severity,
        )
        return updated, tracking

    def find_record(self, book: Book, issue_id: str) -> OriginalityIssueRecord:
        for record in book.originality_issues:
            if record.id == issue_id:
                return record
        raise PipelineError(
            f"Issue {issue_id} not found", book_id=book.id, node="originality"
        )

    def apply_action(self, book: Book, issue_id: str, action: str, notes: str | None = None) -> Book:
        """Resolve an issue by hand: ``deleted`` or ``kept-documented``."""
        record = self.find_record(book, issue_id)
        if action == "deleted":
            updated = tracker.mark_deleted(record)
        elif action == "kept-documented":
            updated = tracker.keep_documented(record, notes)
        else:
            raise PipelineError(
                f"Unsupported issue action: {action}",
                book_id=book.id,
                node="originality",
                context={"issue_id": issue_id},
            )

        return book.model_copy(update={
            "originality_issues": tracker.replace_record(book.originality_issues, updated),
            "updated_at": utcnow(),
        })

    def _locate_paragraph(self, content: str, record: OriginalityIssueRecord) -> str | None:
        paragraphs = split_paragraphs(content, MIN_PARAGRAPH_CHARS)

        if record.issue_type == "external-match":
            # The stored text is a sentence inside the paragraph
            phrase = record.original_text.strip()
            return next((p for p in paragraphs if phrase and phrase in p), None)

        if 0 <= record.paragraph_index < len(paragraphs):
            candidate = paragraphs[record.paragraph_index]
            if jaccard_similarity(truncate(candidate), record.original_text) > tracker.IDENTITY_THRESHOLD:
                return candidate

        return next(
            (
                p for p in paragraphs
                if jaccard_similarity(truncate(p), record.original_text) > tracker.IDENTITY_THRESHOLD
            ),
            None,
        )

    async def auto_fix_issue(self, book: Book, issue_id: str) -> Book:
        """Paraphrase the flagged paragraph and resolve the issue as auto-rewrite."""
        if self.orchestrator is None:
            raise PipelineError("Auto-fix needs an orchestrator", book_id=book.id, node="auto_fix")

        record = self.find_record(book, issue_id)
        if record.issue_type == "ai-signature":
            raise PipelineError(
                "AI-signature issues cover a whole chapter and cannot be auto-fixed",
                book_id=book.id,
                node="auto_fix",
                context={"issue_id": issue_id},
            )

        chapter = book.chapter(record.chapter_id)
        if chapter is None:
            raise PipelineError(
                f"Chapter {record.chapter_id} not found", book_id=book.id, node="auto_fix"
            )

        paragraph = self._locate_paragraph(chapter.content, record)
        if paragraph is None:
            raise PipelineError(
                "Flagged paragraph no longer present in the chapter",
                book_id=book.id,
                node="auto_fix",
                context={"issue_id": issue_id, "chapter_id": chapter.id},
            )

        self.log_stream.emit(ORIGINALITY_CHECKER, f"Rewriting flagged paragraph in '{chapter.title}'...")
        rewritten = await rewrite_paragraph(
            self.orchestrator, paragraph, record, book.metadata, book_id=book.id
        )

        content = chapter.content.replace(paragraph, rewritten, 1)
        new_chapter = chapter.model_copy(update={"content": content, "word_count": word_count(content)})
        resolved = tracker.mark_auto_rewritten(record)

        self.log_stream.emit(ORIGINALITY_CHECKER, "Paragraph rewritten.", "success")
        return book.model_copy(update={
            "chapters": [new_chapter if c.id == chapter.id else c for c in book.chapters],
            "originality_issues": tracker.replace_record(book.originality_issues, resolved),
            "updated_at": utcnow(),
        })
