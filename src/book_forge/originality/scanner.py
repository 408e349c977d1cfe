"""Three-phase originality scanner: internal duplicates, external matches, AI signature."""

import logging
from dataclasses import dataclass

from pydantic import BaseModel

from ..config import Settings, get_config
from ..models import AIDetectionMetrics, Book, OriginalityIssue, ScanResult, ScanStatus
from ..utils.text import (
    jaccard_similarity,
    paragraph_hash,
    split_paragraphs,
    split_sentences,
    truncate,
)
from . import metrics as ai_metrics
from .search import TextSearch

logger = logging.getLogger(__name__)

MIN_PARAGRAPH_CHARS = 50
NEAR_DUPLICATE_THRESHOLD = 0.75
EXTERNAL_MATCH_THRESHOLD = 0.6
AI_FLAG_THRESHOLD = 50


class ScanPhases(BaseModel):
    """Phases to run; disabled phases score 100."""

    internal: bool = True
    external: bool = True
    ai_detection: bool = False

    @classmethod
    def from_settings(cls, config: Settings | None = None) -> "ScanPhases":
        config = config or get_config()
        return cls(
            internal=config.scan_internal,
            external=config.scan_external,
            ai_detection=config.scan_ai_detection,
        )


@dataclass
class _Paragraph:
    chapter_id: str
    chapter_title: str
    index: int
    text: str


def scan_status(overall_score: int) -> ScanStatus:
    if overall_score < 60:
        return "unsafe"
    if overall_score < 80:
        return "review-required"
    return "safe"


def extract_key_phrases(text: str) -> list[str]:
    """Sentences longer than 20 characters with at least five words."""
    return [
        sentence for sentence in split_sentences(text)
        if len(sentence) > 20 and len(sentence.split()) >= 5
    ]


class OriginalityScanner:
    """Evaluates a whole book and returns an immutable ScanResult."""

    def __init__(
        self,
        search: TextSearch | None = None,
        config: Settings | None = None,
    ):
        self.config = config or get_config()
        self.search = search

    def check_internal_consistency(self, book: Book) -> tuple[int, list[OriginalityIssue]]:
        """Exact and near duplicate paragraphs across all chapters."""
        issues: list[OriginalityIssue] = []
        paragraphs: list[_Paragraph] = []
        first_by_hash: dict[str, _Paragraph] = {}

        for chapter in book.chapters:
            kept = split_paragraphs(chapter.content, MIN_PARAGRAPH_CHARS)
            for index, text in enumerate(kept):
                paragraph = _Paragraph(chapter.id, chapter.title, index, text)
                paragraphs.append(paragraph)

                digest = paragraph_hash(text)
                first = first_by_hash.get(digest)
                if first is None:
                    first_by_hash[digest] = paragraph
                    continue

                issues.append(OriginalityIssue(
                    chapter_id=chapter.id,
                    chapter_title=chapter.title,
                    paragraph_index=index,
                    text=truncate(text),
                    issue_type="duplicate",
                    severity="high",
                    details=f'Duplicate of paragraph in "{first.chapter_title}"',
                    match_percentage=100,
                    auto_fix_suggestion="Consider paraphrasing or removing this repetition.",
                ))

        for i, earlier in enumerate(paragraphs):
            for later in paragraphs[i + 1:]:
                similarity = jaccard_similarity(earlier.text, later.text)
                if NEAR_DUPLICATE_THRESHOLD < similarity < 1.0:
                    percentage = round(similarity * 100)
                    issues.append(OriginalityIssue(
                        chapter_id=later.chapter_id,
                        chapter_title=later.chapter_title,
                        paragraph_index=later.index,
                        text=truncate(later.text),
                        issue_type="duplicate",
                        severity="medium",
                        details=f'{percentage}% similar to paragraph in "{earlier.chapter_title}"',
                        match_percentage=percentage,
                        auto_fix_suggestion="Consider rephrasing to increase diversity.",
                    ))

        score = max(0, 100 - len(issues) * 5)
        return score, issues

    async def check_external_similarity(
        self, book: Book
    ) -> tuple[int, list[OriginalityIssue], list[str]]:
        """Look up key phrases of each chapter in published works."""
        issues: list[OriginalityIssue] = []
        scanned_sources: list[str] = []

        if self.search is None:
            logger.warning("No text search configured; skipping external lookups")
            return 100, issues, scanned_sources

        limit = self.config.external_phrases_per_chapter
        for chapter in book.chapters:
            for phrase in extract_key_phrases(chapter.content)[:limit]:
                try:
                    hits = await self.search.search(phrase)
                except Exception as e:
                    logger.warning(f"External search failed for '{phrase[:40]}': {e}")
                    continue

                if not hits:
                    continue

                best = hits[0]
                similarity = jaccard_similarity(phrase, best.snippet)
                if similarity <= EXTERNAL_MATCH_THRESHOLD:
                    continue

                percentage = round(similarity * 100)
                source = f"{best.title} (Google Books)"
                issues.append(OriginalityIssue(
                    chapter_id=chapter.id,
                    chapter_title=chapter.title,
                    paragraph_index=0,
                    text=phrase,
                    issue_type="external-match",
                    severity="high" if percentage > 80 else "medium",
                    details=f'Found in: "{source}"',
                    match_percentage=percentage,
                    match_source=source,
                    auto_fix_suggestion="Consider paraphrasing this section to ensure originality.",
                ))
                scanned_sources.append(source)

        score = max(0, 100 - len(issues) * 10)
        return score, issues, scanned_sources

    def detect_ai_signature(
        self, book: Book
    ) -> tuple[int, list[OriginalityIssue], AIDetectionMetrics]:
        """Book-level heuristics plus per-chapter flags."""
        full_text = "\n\n".join(chapter.content for chapter in book.chapters)
        metrics = ai_metrics.analyze_text(full_text)
        score = round(ai_metrics.book_ai_score(metrics))

        issues: list[OriginalityIssue] = []
        for chapter in book.chapters:
            if not chapter.content.strip():
                continue
            chapter_score = ai_metrics.chapter_ai_score(chapter.content)
            if chapter_score >= AI_FLAG_THRESHOLD:
                continue
            issues.append(OriginalityIssue(
                chapter_id=chapter.id,
                chapter_title=chapter.title,
                paragraph_index=0,
                text=truncate(chapter.content),
                issue_type="ai-signature",
                severity="high" if chapter_score < 30 else "medium",
                details=f"High AI signature detected (score: {round(chapter_score)}/100)",
                match_percentage=round(100 - chapter_score),
                auto_fix_suggestion=(
                    "Add personal examples, vary sentence structure, or use more creative language."
                ),
            ))

        return score, issues, metrics

    async def scan_book(self, book: Book, phases: ScanPhases | None = None) -> ScanResult:
        """Run the enabled phases in order and aggregate the scores."""
        phases = phases or ScanPhases.from_settings(self.config)
        logger.info(f"Starting originality scan for '{book.metadata.title}'")

        issues: list[OriginalityIssue] = []
        scanned_sources: list[str] = []
        internal_score = external_score = ai_detection_score = 100
        metrics = None

        if phases.internal:
            internal_score, found = self.check_internal_consistency(book)
            issues.extend(found)

        if phases.external:
            external_score, found, scanned_sources = await self.check_external_similarity(book)
            issues.extend(found)

        if phases.ai_detection:
            ai_detection_score, found, metrics = self.detect_ai_signature(book)
            issues.extend(found)

        overall_score = round((internal_score + external_score + ai_detection_score) / 3)
        status = scan_status(overall_score)

        logger.info(
            f"Scan complete for '{book.metadata.title}': {overall_score}/100 ({status}), "
            f"{len(issues)} issue(s)"
        )
        return ScanResult(
            book_id=book.id,
            overall_score=overall_score,
            internal_score=internal_score,
            external_score=external_score,
            ai_detection_score=ai_detection_score,
            issues=issues,
            status=status,
            scanned_sources=scanned_sources,
            ai_metrics=metrics,
        )
