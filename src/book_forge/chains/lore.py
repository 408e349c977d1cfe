"""World Architect chain: extract structured lore from accepted content."""

import logging

from langchain_core.output_parsers import PydanticOutputParser
from langchain_core.prompts import PromptTemplate

from ..catalog import TaskProfile
from ..config import settings
from ..models import WORLD_ARCHITECT, LoreEntry, LoreExtractionOutput
from ..orchestrator import RequestOptions, RequestOrchestrator

logger = logging.getLogger(__name__)

LORE_SYSTEM = """Extract structured Lore (characters, rules, locations). Identify relationships between entities.
Each entry needs a name, a category (character, location, item, event or rule) and a description."""

LORE_USER = """{content}

{format_instructions}"""

lore_parser = PydanticOutputParser(pydantic_object=LoreExtractionOutput)
lore_prompt = PromptTemplate.from_template(LORE_USER)


async def extract_lore(
    orchestrator: RequestOrchestrator,
    content: str,
    book_id: str | None = None,
    chapter_id: str | None = None,
    excerpt_chars: int | None = None,
) -> list[LoreEntry]:
    """New lore entries with fresh ids, flagged ``is_new``."""
    limit = excerpt_chars if excerpt_chars is not None else settings.audit_excerpt_chars
    prompt = lore_prompt.format(
        content=content[:limit],
        format_instructions=lore_parser.get_format_instructions(),
    )

    response = await orchestrator.execute(
        TaskProfile.AUDIT,
        prompt,
        RequestOptions(
            system_instruction=LORE_SYSTEM,
            is_json=True,
            schema=LoreExtractionOutput,
            agent=WORLD_ARCHITECT,
            book_id=book_id,
            chapter_id=chapter_id,
        ),
    )

    entries = [
        LoreEntry(**extracted.model_dump(), is_new=True)
        for extracted in response.content.entries
    ]
    logger.info(f"Extracted {len(entries)} lore entries")
    return entries
