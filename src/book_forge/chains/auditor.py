"""Auditor chains: consistency audit and failure diagnosis."""

import logging

from langchain_core.output_parsers import PydanticOutputParser
from langchain_core.prompts import PromptTemplate

from ..catalog import TaskProfile
from ..config import settings
from ..models import (
    AUDITOR,
    SYSTEM_ANALYST,
    AuditResult,
    DiagnosisOutput,
    LoreEntry,
)
from ..orchestrator import RequestOptions, RequestOrchestrator
from .retriever import lore_to_json

logger = logging.getLogger(__name__)

AUDITOR_SYSTEM = """You are a Senior Editor & Consistency Checker. Compare the text with the Lore Bible. Flag any contradictions.

Set is_pass to false when the text contradicts the lore. Score consistency from 0 to 100 and explain every contradiction in the feedback."""

AUDITOR_USER = """Text: {content}

Active Lore to Check Against: {lore_json}

{format_instructions}"""

ANALYST_SYSTEM = """You are a highly skilled AI System Analyst. Your task is to diagnose failures in content generation and provide precise, actionable, and unambiguous instructions to the 'Writer' or 'Revision Specialist' agent to rectify the errors.
When a content audit fails, you receive a 'Reason' (the type of failure) and 'Feedback' (details from the auditor). Your output MUST be a specific, direct instruction for the writing agent on how to fix the content to pass the audit. Do not just restate the problem; provide a clear path to resolution. If consistency failed, specify which lore entries were violated and how to integrate them. If content was too short, instruct on specific areas to expand."""

ANALYST_USER = """Reason for failure: "{reason}". Detailed feedback from auditor: "{feedback}". Based on this, provide a concise, actionable, and specific instruction for the writing agent to correct the content and pass the audit. Focus on how to fix it.

{format_instructions}"""

audit_parser = PydanticOutputParser(pydantic_object=AuditResult)
diagnosis_parser = PydanticOutputParser(pydantic_object=DiagnosisOutput)
audit_prompt = PromptTemplate.from_template(AUDITOR_USER)
diagnosis_prompt = PromptTemplate.from_template(ANALYST_USER)

FRESH_FAILURE_REASON = "Consistency Audit Failed"
REVISION_FAILURE_REASON = "Refactor Consistency Audit Failed"


async def audit_chapter(
    orchestrator: RequestOrchestrator,
    content: str,
    active_lore: list[LoreEntry],
    book_id: str | None = None,
    chapter_id: str | None = None,
    excerpt_chars: int | None = None,
) -> AuditResult:
    """Score a draft against the retrieved lore."""
    limit = excerpt_chars if excerpt_chars is not None else settings.audit_excerpt_chars
    prompt = audit_prompt.format(
        content=content[:limit],
        lore_json=lore_to_json(active_lore),
        format_instructions=audit_parser.get_format_instructions(),
    )

    response = await orchestrator.execute(
        TaskProfile.AUDIT,
        prompt,
        RequestOptions(
            system_instruction=AUDITOR_SYSTEM,
            is_json=True,
            schema=AuditResult,
            agent=AUDITOR,
            book_id=book_id,
            chapter_id=chapter_id,
        ),
    )
    result: AuditResult = response.content
    logger.info(f"Audit {'passed' if result.is_pass else 'failed'} (score {result.score})")
    return result


async def diagnose_failure(
    orchestrator: RequestOrchestrator,
    reason: str,
    feedback: str,
    book_id: str | None = None,
    chapter_id: str | None = None,
) -> str:
    """Turn audit feedback into a fix instruction for the next attempt."""
    prompt = diagnosis_prompt.format(
        reason=reason,
        feedback=feedback,
        format_instructions=diagnosis_parser.get_format_instructions(),
    )

    response = await orchestrator.execute(
        TaskProfile.AUDIT,
        prompt,
        RequestOptions(
            system_instruction=ANALYST_SYSTEM,
            is_json=True,
            schema=DiagnosisOutput,
            agent=SYSTEM_ANALYST,
            book_id=book_id,
            chapter_id=chapter_id,
        ),
    )
    return response.content.fix_instruction
