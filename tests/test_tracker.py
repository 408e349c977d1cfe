"""Tests for originality issue tracking and the originality service."""

import pytest

from book_forge.models import (
    Book,
    BookMetadata,
    Chapter,
    OriginalityIssue,
    PipelineError,
    ScanResult,
)
from book_forge.originality import OriginalityScanner, OriginalityService, ScanPhases
from book_forge.originality import tracker

INTERNAL_ONLY = ScanPhases(internal=True, external=False, ai_detection=False)

PARAGRAPH = (
    "Old Tomas mended nets on the pier each morning, humming songs his mother had "
    "sung to him before the war took the boats."
)
OTHER = (
    "The new harbor master arrived in autumn with ledgers, rules and a dog that "
    "barked at every sail."
)


def _issue(chapter_id="ch-1", index=0, text=PARAGRAPH, issue_type="duplicate") -> OriginalityIssue:
    return OriginalityIssue(
        chapter_id=chapter_id,
        chapter_title="Chapter 1",
        paragraph_index=index,
        text=text,
        issue_type=issue_type,
        severity="high",
        match_percentage=100,
    )


def _scan(*issues: OriginalityIssue) -> ScanResult:
    return ScanResult(book_id="book-1", overall_score=90, issues=list(issues), status="safe")


class TestReconcile:
    """Issue identity across scans."""

    def test_first_scan_creates_pending_records(self):
        result = tracker.reconcile(_scan(_issue()), [])

        assert len(result.new_issues) == 1
        record = result.new_issues[0]
        assert record.status == "pending"
        assert record.original_text == PARAGRAPH
        assert result.resolved_issues == []

    def test_same_issue_persists_with_its_id(self):
        first = tracker.reconcile(_scan(_issue()), [])
        existing = tracker.merge([], first)

        second = tracker.reconcile(_scan(_issue()), existing)

        assert second.new_issues == []
        assert [r.id for r in second.persistent_issues] == [existing[0].id]

    def test_edited_paragraph_resolves_old_and_opens_new(self):
        first = tracker.reconcile(_scan(_issue()), [])
        existing = tracker.merge([], first)

        second = tracker.reconcile(_scan(_issue(text=OTHER)), existing)

        assert len(second.resolved_issues) == 1
        resolved = second.resolved_issues[0]
        assert resolved.status == "resolved"
        assert resolved.resolution_method == "manual-edit"
        assert resolved.resolved_at is not None

        assert len(second.new_issues) == 1
        assert second.new_issues[0].status == "pending"
        assert second.new_issues[0].id != resolved.id

    def test_moved_paragraph_is_a_new_issue(self):
        existing = tracker.merge([], tracker.reconcile(_scan(_issue(index=0)), []))

        result = tracker.reconcile(_scan(_issue(index=3)), existing)

        assert len(result.new_issues) == 1
        assert len(result.resolved_issues) == 1

    def test_ignored_records_are_not_revisited(self):
        existing = tracker.merge([], tracker.reconcile(_scan(_issue()), []))
        ignored = tracker.keep_documented(existing[0], "Intentional refrain")

        result = tracker.reconcile(_scan(), [ignored])

        assert result.resolved_issues == []
        assert ignored.status == "ignored"
        assert ignored.resolution_method == "kept-documented"
        assert ignored.user_notes == "Intentional refrain"

    def test_merge_keeps_closed_records(self):
        existing = tracker.merge([], tracker.reconcile(_scan(_issue()), []))
        deleted = tracker.mark_deleted(existing[0])

        merged = tracker.merge([deleted], tracker.reconcile(_scan(_issue(text=OTHER)), [deleted]))

        assert [r.status for r in merged] == ["resolved", "pending"]

    def test_each_record_absorbs_one_issue(self):
        # Two issues on the same paragraph, as when it echoes two earlier ones
        first = tracker.reconcile(_scan(_issue(index=2), _issue(index=2)), [])
        existing = tracker.merge([], first)
        assert len(existing) == 2

        second = tracker.reconcile(_scan(_issue(index=2), _issue(index=2)), existing)

        assert second.new_issues == []
        assert second.resolved_issues == []
        assert sorted(r.id for r in second.persistent_issues) == sorted(r.id for r in existing)
        assert len(tracker.merge(existing, second)) == 2


def _duplicate_book() -> Book:
    return Book(
        metadata=BookMetadata(title="Net Menders"),
        chapters=[
            Chapter(title="Morning", content=f"{PARAGRAPH}\n\n{OTHER}", status="completed"),
            Chapter(title="Evening", content=PARAGRAPH, status="completed"),
        ],
    )


@pytest.fixture
def service(orchestrator, log_stream, config):
    return OriginalityService(OriginalityScanner(config=config), orchestrator, log_stream)


class TestOriginalityService:
    """Tracked scans and issue actions on a book."""

    @pytest.mark.asyncio
    async def test_tracked_scan_records_issue_and_scan(self, service):
        book = _duplicate_book()

        updated, tracking = await service.scan_book_with_tracking(book, INTERNAL_ONLY)

        assert len(tracking.new_issues) == 1
        assert len(updated.originality_issues) == 1
        assert len(updated.originality_scans) == 1
        assert updated.originality_issues[0].chapter_id == book.chapters[1].id

        rescanned, second = await service.scan_book_with_tracking(updated, INTERNAL_ONLY)
        assert len(second.persistent_issues) == 1
        assert len(rescanned.originality_issues) == 1
        assert len(rescanned.originality_scans) == 2

    @pytest.mark.asyncio
    async def test_rescan_keeps_every_near_duplicate_record(self, service):
        refrain = (
            "Lanterns swayed above the quay while fishermen argued about tides and "
            "prices near the harbor wall"
        )
        book = Book(
            metadata=BookMetadata(title="Quay Songs"),
            chapters=[Chapter(
                title="Refrain",
                content=f"{refrain} amber\n\n{refrain} cobalt\n\n{refrain} crimson",
                status="completed",
            )],
        )

        updated, first = await service.scan_book_with_tracking(book, INTERNAL_ONLY)
        assert len(first.new_issues) == 3
        assert len(updated.originality_issues) == 3

        rescanned, second = await service.scan_book_with_tracking(updated, INTERNAL_ONLY)

        assert second.new_issues == []
        assert second.resolved_issues == []
        assert len(second.persistent_issues) == 3
        assert len(rescanned.originality_issues) == 3
        assert {r.status for r in rescanned.originality_issues} == {"pending"}

    @pytest.mark.asyncio
    async def test_apply_action_deleted(self, service):
        book, _ = await service.scan_book_with_tracking(_duplicate_book(), INTERNAL_ONLY)
        issue_id = book.originality_issues[0].id

        updated = service.apply_action(book, issue_id, "deleted")

        record = service.find_record(updated, issue_id)
        assert record.status == "resolved"
        assert record.resolution_method == "deleted"

    @pytest.mark.asyncio
    async def test_apply_action_rejects_unknown_action(self, service):
        book, _ = await service.scan_book_with_tracking(_duplicate_book(), INTERNAL_ONLY)

        with pytest.raises(PipelineError):
            service.apply_action(book, book.originality_issues[0].id, "auto-magic")

    def test_unknown_issue_id_raises(self, service):
        with pytest.raises(PipelineError):
            service.find_record(_duplicate_book(), "missing")

    @pytest.mark.asyncio
    async def test_auto_fix_rewrites_flagged_paragraph(self, service, backend):
        book, _ = await service.scan_book_with_tracking(_duplicate_book(), INTERNAL_ONLY)
        issue_id = book.originality_issues[0].id
        rewritten = "Each dawn, Tomas sat on the pier stitching torn nets and humming."
        backend.script("rewrite", {"paragraph": rewritten})

        updated = await service.auto_fix_issue(book, issue_id)

        assert updated.chapters[1].content == rewritten
        assert updated.chapters[0].content == book.chapters[0].content
        record = service.find_record(updated, issue_id)
        assert record.resolution_method == "auto-rewrite"
        assert PARAGRAPH in backend.calls_for("rewrite")[0]["prompt"]

        # The rewrite removes the duplicate from the next scan
        _, tracking = await service.scan_book_with_tracking(updated, INTERNAL_ONLY)
        assert tracking.new_issues == []

    @pytest.mark.asyncio
    async def test_auto_fix_refuses_ai_signature(self, service):
        book = _duplicate_book()
        record = tracker.reconcile(
            _scan(_issue(chapter_id=book.chapters[0].id, issue_type="ai-signature")), []
        ).new_issues[0]
        book.originality_issues = [record]

        with pytest.raises(PipelineError):
            await service.auto_fix_issue(book, record.id)
