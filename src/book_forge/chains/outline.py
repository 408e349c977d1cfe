"""Director chain: chapter outline for a new book."""

import logging

from langchain_core.output_parsers import PydanticOutputParser
from langchain_core.prompts import PromptTemplate

from ..catalog import TaskProfile
from ..models import DIRECTOR, BookMetadata, Chapter, OutlineOutput
from ..orchestrator import RequestOptions, RequestOrchestrator

logger = logging.getLogger(__name__)

DIRECTOR_SYSTEM = """You are the KDP Production Director. Design professional book architecture."""

DIRECTOR_USER = """Outline "{title}" in {language}.
Description: {description}
Tone: {tone}. Target length: {target_length}.
Keywords: {keywords}

{format_instructions}"""

outline_parser = PydanticOutputParser(pydantic_object=OutlineOutput)
outline_prompt = PromptTemplate.from_template(DIRECTOR_USER)


async def generate_outline(
    orchestrator: RequestOrchestrator,
    metadata: BookMetadata,
    book_id: str | None = None,
) -> list[Chapter]:
    """Empty chapters for the outlined book."""
    prompt = outline_prompt.format(
        title=metadata.title,
        language=metadata.language,
        description=metadata.description or "-",
        tone=metadata.tone,
        target_length=metadata.target_length,
        keywords=", ".join(metadata.keywords) or "-",
        format_instructions=outline_parser.get_format_instructions(),
    )

    response = await orchestrator.execute(
        TaskProfile.OUTLINE,
        prompt,
        RequestOptions(
            system_instruction=DIRECTOR_SYSTEM,
            is_json=True,
            schema=OutlineOutput,
            agent=DIRECTOR,
            book_id=book_id,
        ),
    )

    chapters = [
        Chapter(title=item.title, description=item.description or None)
        for item in response.content.chapters
    ]
    logger.info(f"Outlined {len(chapters)} chapters for '{metadata.title}'")
    return chapters
