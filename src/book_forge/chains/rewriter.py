"""Paragraph rewriter used to auto-fix originality issues."""

import logging

from langchain_core.output_parsers import PydanticOutputParser
from langchain_core.prompts import PromptTemplate

from ..catalog import TaskProfile
from ..models import ORIGINALITY_CHECKER, BookMetadata, OriginalityIssueRecord, ParagraphRewriteOutput
from ..orchestrator import RequestOptions, RequestOrchestrator

logger = logging.getLogger(__name__)

REWRITER_SYSTEM = """You are an elite KDP Author. Language: {language}. Tone: {tone}.
Paraphrase the paragraph so it keeps its meaning and role in the chapter but shares as little wording as possible with the original. Vary sentence length and structure."""

REWRITER_USER = """Issue: {details}
Suggestion: {suggestion}

Paragraph:
\"\"\"
{paragraph}
\"\"\"

{format_instructions}"""

rewriter_parser = PydanticOutputParser(pydantic_object=ParagraphRewriteOutput)
rewriter_system_prompt = PromptTemplate.from_template(REWRITER_SYSTEM)
rewriter_prompt = PromptTemplate.from_template(REWRITER_USER)


async def rewrite_paragraph(
    orchestrator: RequestOrchestrator,
    paragraph: str,
    issue: OriginalityIssueRecord,
    metadata: BookMetadata,
    book_id: str | None = None,
) -> str:
    prompt = rewriter_prompt.format(
        details=issue.details or issue.issue_type,
        suggestion=issue.auto_fix_suggestion or "Rephrase for originality.",
        paragraph=paragraph,
        format_instructions=rewriter_parser.get_format_instructions(),
    )

    response = await orchestrator.execute(
        TaskProfile.WRITING,
        prompt,
        RequestOptions(
            system_instruction=rewriter_system_prompt.format(
                language=metadata.language, tone=metadata.tone
            ),
            is_json=True,
            schema=ParagraphRewriteOutput,
            agent=ORIGINALITY_CHECKER,
            book_id=book_id,
            chapter_id=issue.chapter_id,
        ),
    )
    return response.content.paragraph.strip()
