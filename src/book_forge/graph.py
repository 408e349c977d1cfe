"""LangGraph state machine for producing one chapter.

retrieve -> generate -> audit -> extract -> complete, with a repair loop
through diagnose on a failed audit and through stall on any provider error.
Both loops share one attempt counter; running out of attempts ends in the
terminal ``error`` status.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Literal, Optional, TypedDict

from langgraph.graph import END, StateGraph

from .chains.auditor import (
    FRESH_FAILURE_REASON,
    REVISION_FAILURE_REASON,
    audit_chapter,
    diagnose_failure,
)
from .chains.lore import extract_lore
from .chains.retriever import retrieve_relevant_lore
from .chains.writer import revise_chapter, write_chapter
from .config import Settings, get_config
from .models import (
    AUDITOR,
    REVISION_SPECIALIST,
    SYSTEM_ANALYST,
    SYSTEM_MONITOR,
    VECTOR_RETRIEVER,
    WORLD_ARCHITECT,
    WRITER,
    AIError,
    AuditResult,
    Book,
    BookMetadata,
    Chapter,
    ChapterNotFoundError,
    LoreEntry,
    RevisionDirective,
)
from .observability import AgentLogStream
from .orchestrator import RequestOrchestrator
from .utils.text import word_count

logger = logging.getLogger(__name__)

Mode = Literal["write", "revise"]
ChapterUpdateHook = Callable[[str, Chapter], Awaitable[None]]


class ChapterState(TypedDict, total=False):
    """State carried through one chapter production run."""

    book_id: str
    metadata: BookMetadata
    lore_bible: list[LoreEntry]
    chapter: Chapter
    mode: Mode
    directive: Optional[RevisionDirective]
    source_content: str
    attempt: int
    max_attempts: int
    active_lore: list[LoreEntry]
    draft: str
    audit: Optional[AuditResult]
    fix_instruction: str
    new_lore: list[LoreEntry]
    error: Optional[str]


@dataclass
class ChapterRunResult:
    """Outcome of one production run."""

    chapter: Chapter
    new_lore: list[LoreEntry] = field(default_factory=list)
    attempts: int = 0

    @property
    def completed(self) -> bool:
        return self.chapter.status == "completed"


class ChapterProductionGraph:
    """Builds and runs the per-chapter write -> audit -> repair graph."""

    def __init__(
        self,
        orchestrator: RequestOrchestrator,
        log_stream: AgentLogStream | None = None,
        config: Settings | None = None,
        max_attempts: int | None = None,
        attempt_delay: float | None = None,
        sleep: Callable[[float], Awaitable[None]] | None = None,
        on_chapter_update: ChapterUpdateHook | None = None,
    ):
        self.config = config or get_config()
        self.orchestrator = orchestrator
        self.log_stream = log_stream or AgentLogStream(self.config.agent_log_capacity)
        self.max_attempts = max_attempts if max_attempts is not None else self.config.max_chapter_attempts
        self.attempt_delay = (
            attempt_delay if attempt_delay is not None else self.config.attempt_delay_seconds
        )
        self.sleep = sleep or asyncio.sleep
        self.on_chapter_update = on_chapter_update
        self.app = self.build_graph().compile()

    # Nodes

    async def start_node(self, state: ChapterState) -> dict:
        status = "revising" if state["mode"] == "revise" else "writing"
        chapter = state["chapter"].model_copy(update={"status": status, "failure_diagnosis": None})
        await self._publish(state["book_id"], chapter)
        return {
            "chapter": chapter,
            "attempt": 0,
            "fix_instruction": "",
            "new_lore": [],
            "error": None,
        }

    async def retrieve_node(self, state: ChapterState) -> dict:
        chapter = state["chapter"]
        writer_agent = REVISION_SPECIALIST if state["mode"] == "revise" else WRITER
        self.log_stream.emit(
            VECTOR_RETRIEVER, f"Searching structured memory for '{chapter.title}' context..."
        )
        try:
            active_lore = await retrieve_relevant_lore(
                self.orchestrator,
                chapter.description or chapter.title,
                state["lore_bible"],
                book_id=state["book_id"],
                chapter_id=chapter.id,
            )
        except AIError as e:
            return {"error": e.message}

        self.log_stream.emit(
            VECTOR_RETRIEVER,
            f"{len(active_lore)} relevant entries injected into {writer_agent}'s context.",
            "success",
        )
        return {"active_lore": active_lore, "error": None}

    async def generate_node(self, state: ChapterState) -> dict:
        chapter = state["chapter"]
        attempt_label = f"(Attempt {state['attempt'] + 1})"
        try:
            if state["mode"] == "revise":
                self.log_stream.emit(
                    REVISION_SPECIALIST, f"Refactoring chapter content {attempt_label}..."
                )
                source = chapter.model_copy(update={"content": state["source_content"]})
                draft = await revise_chapter(
                    self.orchestrator,
                    source,
                    state["metadata"],
                    state["active_lore"],
                    state["directive"] or RevisionDirective(),
                    fix_instruction=state["fix_instruction"] or None,
                    book_id=state["book_id"],
                )
            else:
                self.log_stream.emit(
                    WRITER, f"Generating draft using active context {attempt_label}..."
                )
                draft = await write_chapter(
                    self.orchestrator,
                    chapter,
                    state["metadata"],
                    state["active_lore"],
                    fix_instruction=state["fix_instruction"] or None,
                    book_id=state["book_id"],
                )
        except AIError as e:
            return {"error": e.message}
        return {"draft": draft, "error": None}

    async def audit_node(self, state: ChapterState) -> dict:
        self.log_stream.emit(AUDITOR, "Reviewing semantic consistency with Lore Bible...")
        try:
            audit = await audit_chapter(
                self.orchestrator,
                state["draft"],
                state["active_lore"],
                book_id=state["book_id"],
                chapter_id=state["chapter"].id,
                excerpt_chars=self.config.audit_excerpt_chars,
            )
        except AIError as e:
            return {"error": e.message}
        return {"audit": audit, "error": None}

    async def extract_node(self, state: ChapterState) -> dict:
        audit = state["audit"]
        self.log_stream.emit(
            WORLD_ARCHITECT,
            f"Approved (Score: {audit.score}). Extracting new structured data...",
            "success",
        )
        try:
            new_lore = await extract_lore(
                self.orchestrator,
                state["draft"],
                book_id=state["book_id"],
                chapter_id=state["chapter"].id,
                excerpt_chars=self.config.audit_excerpt_chars,
            )
        except AIError as e:
            return {"error": e.message}
        return {"new_lore": new_lore, "error": None}

    async def complete_node(self, state: ChapterState) -> dict:
        draft = state["draft"]
        chapter = state["chapter"].model_copy(update={
            "content": draft,
            "word_count": word_count(draft),
            "status": "completed",
            "audit_notes": state["audit"].feedback,
            "failure_diagnosis": None,
        })
        await self._publish(state["book_id"], chapter)
        logger.info(f"Chapter '{chapter.title}' completed after {state['attempt'] + 1} attempt(s)")
        return {"chapter": chapter}

    async def diagnose_node(self, state: ChapterState) -> dict:
        attempt = state["attempt"] + 1
        feedback = state["audit"].feedback
        reason = REVISION_FAILURE_REASON if state["mode"] == "revise" else FRESH_FAILURE_REASON
        self.log_stream.emit(SYSTEM_ANALYST, f"Consistency Breach: {feedback[:80]}...", "warning")

        try:
            fix_instruction = await diagnose_failure(
                self.orchestrator,
                reason,
                feedback,
                book_id=state["book_id"],
                chapter_id=state["chapter"].id,
            )
        except AIError as e:
            # Counted already; keep the previous instruction
            self.log_stream.emit(SYSTEM_MONITOR, f"API Stall: {e.message}. Retrying...", "critical", e.message)
            await self.sleep(self.attempt_delay)
            return {"attempt": attempt}

        self.log_stream.emit(
            SYSTEM_ANALYST,
            f'Generated Fix Instruction: "{fix_instruction[:80]}..."',
            "critical",
            fix_instruction,
        )
        chapter = state["chapter"].model_copy(update={"failure_diagnosis": fix_instruction})
        await self._publish(state["book_id"], chapter)
        return {"attempt": attempt, "fix_instruction": fix_instruction, "chapter": chapter}

    async def stall_node(self, state: ChapterState) -> dict:
        message = state.get("error") or "unknown error"
        self.log_stream.emit(SYSTEM_MONITOR, f"API Stall: {message}. Retrying...", "critical", message)
        await self.sleep(self.attempt_delay)
        return {"attempt": state["attempt"] + 1, "error": None}

    async def fail_node(self, state: ChapterState) -> dict:
        chapter = state["chapter"].model_copy(update={"status": "error"})
        await self._publish(state["book_id"], chapter)
        self.log_stream.emit(
            SYSTEM_MONITOR,
            f"Chapter '{chapter.title}' failed after {state['attempt']} attempts.",
            "critical",
            chapter.failure_diagnosis,
        )
        return {"chapter": chapter}

    # Routing

    @staticmethod
    def route_after_step(state: ChapterState) -> str:
        return "stall" if state.get("error") else "continue"

    @staticmethod
    def route_after_audit(state: ChapterState) -> str:
        if state.get("error"):
            return "stall"
        return "pass" if state["audit"].is_pass else "fail"

    @staticmethod
    def route_next_attempt(state: ChapterState) -> str:
        return "retry" if state["attempt"] < state["max_attempts"] else "exhausted"

    def build_graph(self) -> StateGraph:
        """Build the LangGraph state machine."""
        graph = StateGraph(ChapterState)

        graph.add_node("start", self.start_node)
        graph.add_node("retrieve", self.retrieve_node)
        graph.add_node("generate", self.generate_node)
        graph.add_node("audit", self.audit_node)
        graph.add_node("extract", self.extract_node)
        graph.add_node("complete", self.complete_node)
        graph.add_node("diagnose", self.diagnose_node)
        graph.add_node("stall", self.stall_node)
        graph.add_node("fail", self.fail_node)

        graph.set_entry_point("start")
        graph.add_edge("start", "retrieve")
        graph.add_conditional_edges(
            "retrieve", self.route_after_step, {"continue": "generate", "stall": "stall"}
        )
        graph.add_conditional_edges(
            "generate", self.route_after_step, {"continue": "audit", "stall": "stall"}
        )
        graph.add_conditional_edges(
            "audit",
            self.route_after_audit,
            {"pass": "extract", "fail": "diagnose", "stall": "stall"},
        )
        graph.add_conditional_edges(
            "extract", self.route_after_step, {"continue": "complete", "stall": "stall"}
        )
        graph.add_conditional_edges(
            "diagnose", self.route_next_attempt, {"retry": "retrieve", "exhausted": "fail"}
        )
        graph.add_conditional_edges(
            "stall", self.route_next_attempt, {"retry": "retrieve", "exhausted": "fail"}
        )
        graph.add_edge("complete", END)
        graph.add_edge("fail", END)

        return graph

    async def run(
        self,
        book: Book,
        chapter_id: str,
        mode: Mode = "write",
        directive: RevisionDirective | None = None,
    ) -> ChapterRunResult:
        """Drive one chapter to ``completed`` or ``error``."""
        chapter = book.chapter(chapter_id)
        if chapter is None:
            raise ChapterNotFoundError(
                f"Chapter {chapter_id} not found", book_id=book.id, node="graph"
            )

        initial_state: ChapterState = {
            "book_id": book.id,
            "metadata": book.metadata,
            "lore_bible": list(book.lore_bible),
            "chapter": chapter,
            "mode": mode,
            "directive": directive,
            "source_content": chapter.content,
            "attempt": 0,
            "max_attempts": self.max_attempts,
            "active_lore": [],
            "draft": "",
            "audit": None,
        }

        # Every attempt visits at most six nodes
        recursion_limit = self.max_attempts * 8 + 10
        final_state = await self.app.ainvoke(initial_state, {"recursion_limit": recursion_limit})

        result = ChapterRunResult(
            chapter=final_state["chapter"],
            new_lore=final_state.get("new_lore", []) if final_state["chapter"].status == "completed" else [],
            attempts=final_state["attempt"] + (1 if final_state["chapter"].status == "completed" else 0),
        )
        return result

    async def _publish(self, book_id: str, chapter: Chapter) -> None:
        if self.on_chapter_update is not None:
            await self.on_chapter_update(book_id, chapter)
