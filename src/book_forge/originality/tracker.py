"""Issue lifecycle tracking across originality scans.

An issue keeps its identity between scans when chapter and paragraph index
match and the stored text is still more than 80% similar (word Jaccard)
to what the new scan observed.
"""

import logging
from dataclasses import dataclass, field

from ..models import OriginalityIssue, OriginalityIssueRecord, ScanResult, utcnow
from ..utils.text import jaccard_similarity

logger = logging.getLogger(__name__)

IDENTITY_THRESHOLD = 0.8


@dataclass
class TrackingResult:
    scan_result: ScanResult
    new_issues: list[OriginalityIssueRecord] = field(default_factory=list)
    resolved_issues: list[OriginalityIssueRecord] = field(default_factory=list)
    persistent_issues: list[OriginalityIssueRecord] = field(default_factory=list)


def is_same_issue(record: OriginalityIssueRecord, issue: OriginalityIssue) -> bool:
    return (
        record.chapter_id == issue.chapter_id
        and record.paragraph_index == issue.paragraph_index
        and jaccard_similarity(record.original_text, issue.text) > IDENTITY_THRESHOLD
    )


def reconcile(
    scan: ScanResult, existing_records: list[OriginalityIssueRecord]
) -> TrackingResult:
    """Classify scan findings against the pending records."""
    unmatched = [record for record in existing_records if record.status == "pending"]
    result = TrackingResult(scan_result=scan)

    # Each pending record absorbs at most one issue
    for issue in scan.issues:
        match = next((record for record in unmatched if is_same_issue(record, issue)), None)
        if match is not None:
            unmatched.remove(match)
            result.persistent_issues.append(match)
            continue

        result.new_issues.append(OriginalityIssueRecord(
            **issue.model_dump(),
            status="pending",
            created_at=utcnow(),
            original_text=issue.text,
        ))

    for record in unmatched:
        result.resolved_issues.append(record.model_copy(update={
            "status": "resolved",
            "resolved_at": utcnow(),
            "resolution_method": "manual-edit",
        }))

    logger.info(
        f"Tracking: {len(result.new_issues)} new, {len(result.persistent_issues)} persistent, "
        f"{len(result.resolved_issues)} resolved"
    )
    return result


def merge(
    existing: list[OriginalityIssueRecord], tracking: TrackingResult
) -> list[OriginalityIssueRecord]:
    """Full record list after a scan: pending records replaced by the tracked ones."""
    retained = [record for record in existing if record.status != "pending"]
    return retained + tracking.persistent_issues + tracking.new_issues + tracking.resolved_issues


def mark_auto_rewritten(record: OriginalityIssueRecord) -> OriginalityIssueRecord:
    return record.model_copy(update={
        "status": "resolved",
        "resolved_at": utcnow(),
        "resolution_method": "auto-rewrite",
    })


def mark_deleted(record: OriginalityIssueRecord) -> OriginalityIssueRecord:
    return record.model_copy(update={
        "status": "resolved",
        "resolved_at": utcnow(),
        "resolution_method": "deleted",
    })


def keep_documented(record: OriginalityIssueRecord, notes: str | None = None) -> OriginalityIssueRecord:
    """Accept the issue as intentional; it no longer participates in tracking."""
    return record.model_copy(update={
        "status": "ignored",
        "resolved_at": utcnow(),
        "resolution_method": "kept-documented",
        "user_notes": notes,
    })


def replace_record(
    records: list[OriginalityIssueRecord], updated: OriginalityIssueRecord
) -> list[OriginalityIssueRecord]:
    return [updated if record.id == updated.id else record for record in records]
