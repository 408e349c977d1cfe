"""Pydantic data models for the book production pipeline."""

import uuid
from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

# Agent names used for log attribution and usage reports
VECTOR_RETRIEVER = "Vector Retriever"
WRITER = "Writer"
REVISION_SPECIALIST = "Revision Specialist"
AUDITOR = "Auditor"
WORLD_ARCHITECT = "World Architect"
SYSTEM_ANALYST = "System Analyst"
SYSTEM_MONITOR = "System Monitor"
DIRECTOR = "Director"
ORIGINALITY_CHECKER = "Originality Checker"

Provider = Literal[
    "google", "openai", "anthropic", "deepseek", "meta", "fal-ai", "replicate"
]
ChapterStatus = Literal["empty", "writing", "auditing", "completed", "error", "revising"]
LoreCategory = Literal["character", "location", "item", "event", "rule"]
Severity = Literal["low", "medium", "high"]
IssueType = Literal["duplicate", "external-match", "ai-signature"]
IssueStatus = Literal["pending", "resolved", "ignored"]
ResolutionMethod = Literal["auto-rewrite", "manual-edit", "kept-documented", "deleted"]
ScanStatus = Literal["safe", "review-required", "unsafe"]
LogSeverity = Literal["info", "success", "warning", "critical"]
TargetLength = Literal["short", "standard", "long"]


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PipelineError(Exception):
    """Base exception for runner-level failures."""

    def __init__(self, message: str, book_id: str, node: str, context: dict = None):
        super().__init__(message)
        self.book_id = book_id
        self.node = node
        self.context = context or {}


class BookNotFoundError(PipelineError):
    """Raised when a book id has no stored aggregate."""

    pass


class ChapterNotFoundError(PipelineError):
    """Raised when a chapter id is not part of the book."""

    pass


class AIError(Exception):
    """Typed failure of a single orchestrated model call."""

    code = "AI_ERROR"

    def __init__(
        self,
        provider: str,
        message: str,
        is_retryable: bool = False,
        retry_after: float | None = None,
    ):
        super().__init__(message)
        self.provider = provider
        self.message = message
        self.is_retryable = is_retryable
        self.retry_after = retry_after

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(provider={self.provider!r}, message={self.message!r}, "
            f"is_retryable={self.is_retryable}, retry_after={self.retry_after})"
        )


class TransportError(AIError):
    """Network or backend failure during a call."""

    code = "TRANSPORT_ERROR"


class ResolutionFailure(AIError):
    """No credentialed provider or backend is available for the request."""

    code = "RESOLUTION_FAILURE"

    def __init__(self, provider: str, message: str):
        super().__init__(provider, message, is_retryable=False)


class MalformedResponse(AIError):
    """Structured output was missing or could not be parsed."""

    code = "MALFORMED_RESPONSE"

    def __init__(self, provider: str, message: str, raw: str | None = None):
        super().__init__(provider, message, is_retryable=False)
        self.raw = raw


class UsageRecord(BaseModel):
    """Cost and token usage of one completed provider call."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    cost: float = 0.0
    model_id: str
    provider: Provider
    timestamp: datetime = Field(default_factory=utcnow)
    book_id: str | None = None
    chapter_id: str | None = None
    agent: str | None = None
    duration_ms: float | None = None


class UnifiedResponse(BaseModel):
    """Normalized envelope returned by the orchestrator for every provider."""

    content: Any
    usage: UsageRecord


class LoreEntry(BaseModel):
    """Structured fact extracted from accepted content."""

    id: str = Field(default_factory=new_id)
    name: str
    category: LoreCategory = "event"
    description: str = ""
    traits: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    relationships: str | None = None
    is_new: bool = False


class Chapter(BaseModel):
    """One content unit of a book."""

    id: str = Field(default_factory=new_id)
    title: str
    description: str | None = None
    content: str = ""
    word_count: int = 0
    status: ChapterStatus = "empty"
    audit_notes: str | None = None
    failure_diagnosis: str | None = None


class BookMetadata(BaseModel):
    """Book-level settings used by every agent prompt."""

    title: str
    subtitle: str = ""
    description: str = ""
    language: str = "English"
    tone: str = "Creative"
    target_length: TargetLength = "standard"
    keywords: list[str] = Field(default_factory=list)


class OriginalityIssue(BaseModel):
    """A single finding produced by one originality scan."""

    id: str = Field(default_factory=new_id)
    chapter_id: str
    chapter_title: str = ""
    paragraph_index: int
    text: str
    issue_type: IssueType
    severity: Severity
    details: str = ""
    match_percentage: int | None = None
    match_source: str | None = None
    auto_fix_suggestion: str | None = None


class OriginalityIssueRecord(OriginalityIssue):
    """Tracked issue whose identity survives minor text edits."""

    status: IssueStatus = "pending"
    created_at: datetime = Field(default_factory=utcnow)
    original_text: str = ""
    resolved_at: datetime | None = None
    resolution_method: ResolutionMethod | None = None
    user_notes: str | None = None


class AIDetectionMetrics(BaseModel):
    """Lexical heuristics behind the AI-signature sub-score."""

    perplexity: float
    burstiness: float
    vocabulary_diversity: float
    cliche_density: float
    overall_risk: Severity = "low"
    readability_grade: float | None = None  # informational only


class ScanResult(BaseModel):
    """Point-in-time originality evaluation of a whole book."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    book_id: str
    timestamp: datetime = Field(default_factory=utcnow)
    overall_score: int
    internal_score: int = 100
    external_score: int = 100
    ai_detection_score: int = 100
    issues: list[OriginalityIssue] = Field(default_factory=list)
    status: ScanStatus
    scanned_sources: list[str] = Field(default_factory=list)
    ai_metrics: AIDetectionMetrics | None = None


class Book(BaseModel):
    """Aggregate persisted by the book store."""

    id: str = Field(default_factory=new_id)
    metadata: BookMetadata
    chapters: list[Chapter] = Field(default_factory=list)
    lore_bible: list[LoreEntry] = Field(default_factory=list)
    originality_issues: list[OriginalityIssueRecord] = Field(default_factory=list)
    originality_scans: list[ScanResult] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def chapter(self, chapter_id: str) -> Chapter | None:
        for chapter in self.chapters:
            if chapter.id == chapter_id:
                return chapter
        return None


class AgentLog(BaseModel):
    """One entry of the capped agent log stream."""

    id: str = Field(default_factory=new_id)
    timestamp: datetime = Field(default_factory=utcnow)
    agent: str
    message: str
    severity: LogSeverity = "info"
    detail: str | None = None


class RevisionDirective(BaseModel):
    """Structured instruction driving the revision variant of production."""

    strategies: list[str] = Field(default_factory=list)
    instruction: str = ""
    expansion_factor: float = Field(default=1.0, gt=0)


# Output schemas for agent chains


class RetrievalOutput(BaseModel):
    """Output schema for the lore relevance call."""

    relevant_ids: list[str] = Field(
        default_factory=list,
        description="Ids of the lore entries relevant to the chapter goal",
    )


class AuditResult(BaseModel):
    """Output schema for the consistency audit call."""

    is_pass: bool = Field(description="Whether the draft is consistent with the lore")
    score: float = Field(description="Consistency score from 0-100")
    feedback: str = Field(default="", description="Contradictions and required fixes")


class ExtractedLore(BaseModel):
    """Single lore entry as returned by the extraction call."""

    name: str
    category: LoreCategory = "event"
    description: str = ""
    traits: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    relationships: str | None = None


class LoreExtractionOutput(BaseModel):
    """Output schema for the lore extraction call."""

    entries: list[ExtractedLore] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def wrap_bare_list(cls, data: Any) -> Any:
        if isinstance(data, list):
            return {"entries": data}
        return data


class DiagnosisOutput(BaseModel):
    """Output schema for the repair-instruction call."""

    fix_instruction: str = Field(description="Actionable instruction for the writer")


class OutlineChapter(BaseModel):
    title: str
    description: str = ""


class OutlineOutput(BaseModel):
    """Output schema for the outline call."""

    chapters: list[OutlineChapter] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def wrap_bare_list(cls, data: Any) -> Any:
        if isinstance(data, list):
            return {"chapters": data}
        return data


class ParagraphRewriteOutput(BaseModel):
    """Output schema for the originality auto-fix call."""

    paragraph: str
