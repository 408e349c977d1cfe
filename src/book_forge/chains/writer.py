"""Writer chains: fresh chapter prose and directive-driven revision."""

import logging

from langchain_core.prompts import PromptTemplate

from ..catalog import TaskProfile
from ..models import (
    REVISION_SPECIALIST,
    WRITER,
    BookMetadata,
    Chapter,
    LoreEntry,
    RevisionDirective,
)
from ..orchestrator import RequestOptions, RequestOrchestrator
from ..utils.tokens import revision_output_budget
from .retriever import lore_to_json

logger = logging.getLogger(__name__)

TARGET_LENGTH_WORDS = {
    "short": 1500,
    "standard": 3000,
    "long": 5000,
}

FIX_DIRECTIVE = """CRITICAL REVISION DIRECTIVE: Your previous attempt failed. Address the following issues explicitly and without deviation: "{fix_instruction}". Ensure all previous errors are resolved."""

WRITER_SYSTEM = """You are an elite KDP Author.
Language: {language}. Tone: {tone}.
ACTIVE MEMORY (Vector Retrieved): {lore_json}.
Write FULL prose of roughly {target_words} words. Maintain strict consistency with the active memory.
{fix_directive}"""

WRITER_USER = """Write Chapter: "{title}". Goal: {goal}."""

REVISION_SYSTEM = """You are an expert Revision Specialist for KDP books.
Language: {language}. Original Tone: {tone}.
Goal: Refactor the provided text based on the following instructions:
Selected Strategies: {strategies}.
Custom Instruction: {instruction}.
Expand the content by approximately {expansion_factor} times the original word count, while maintaining quality and coherence.
ACTIVE MEMORY (for consistency): {lore_json}.
{fix_directive}
Focus on enhancing description, character development, world-building, and narrative depth as per the instructions.
Ensure the revised output is coherent, flowing prose in markdown format, suitable for a book chapter. Do not include any conversational filler."""

REVISION_USER = '''Original Content for Revision: """
{content}
"""'''

writer_system_prompt = PromptTemplate.from_template(WRITER_SYSTEM)
writer_user_prompt = PromptTemplate.from_template(WRITER_USER)
revision_system_prompt = PromptTemplate.from_template(REVISION_SYSTEM)
revision_user_prompt = PromptTemplate.from_template(REVISION_USER)


def _fix_directive(fix_instruction: str | None) -> str:
    if not fix_instruction:
        return ""
    return FIX_DIRECTIVE.format(fix_instruction=fix_instruction)


async def write_chapter(
    orchestrator: RequestOrchestrator,
    chapter: Chapter,
    metadata: BookMetadata,
    active_lore: list[LoreEntry],
    fix_instruction: str | None = None,
    book_id: str | None = None,
) -> str:
    """Write a chapter from scratch."""
    system = writer_system_prompt.format(
        language=metadata.language,
        tone=metadata.tone or "Creative",
        lore_json=lore_to_json(active_lore),
        target_words=TARGET_LENGTH_WORDS[metadata.target_length],
        fix_directive=_fix_directive(fix_instruction),
    )
    prompt = writer_user_prompt.format(
        title=chapter.title, goal=chapter.description or chapter.title
    )

    response = await orchestrator.execute(
        TaskProfile.WRITING,
        prompt,
        RequestOptions(
            system_instruction=system,
            agent=WRITER,
            book_id=book_id,
            chapter_id=chapter.id,
        ),
    )
    return response.content


async def revise_chapter(
    orchestrator: RequestOrchestrator,
    chapter: Chapter,
    metadata: BookMetadata,
    active_lore: list[LoreEntry],
    directive: RevisionDirective,
    fix_instruction: str | None = None,
    book_id: str | None = None,
) -> str:
    """Rewrite existing chapter content following a revision directive.

    The output budget follows the token count of the existing content scaled
    by the expansion factor.
    """
    model = orchestrator.resolver.resolve(TaskProfile.WRITING)
    budget = revision_output_budget(
        chapter.content,
        directive.expansion_factor,
        model.max_output_tokens,
        model.id,
    )

    system = revision_system_prompt.format(
        language=metadata.language,
        tone=metadata.tone or "Creative",
        strategies=", ".join(directive.strategies) or "General revision and improvement",
        instruction=directive.instruction or "None",
        expansion_factor=directive.expansion_factor,
        lore_json=lore_to_json(active_lore),
        fix_directive=_fix_directive(fix_instruction),
    )
    prompt = revision_user_prompt.format(content=chapter.content)

    response = await orchestrator.execute(
        TaskProfile.WRITING,
        prompt,
        RequestOptions(
            system_instruction=system,
            agent=REVISION_SPECIALIST,
            book_id=book_id,
            chapter_id=chapter.id,
            max_output_tokens=budget,
        ),
    )
    return response.content
