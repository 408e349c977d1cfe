"""Lore retrieval chain: pick the lore entries relevant to a chapter goal."""

import json
import logging

from langchain_core.output_parsers import PydanticOutputParser
from langchain_core.prompts import PromptTemplate

from ..catalog import TaskProfile
from ..models import VECTOR_RETRIEVER, LoreEntry, RetrievalOutput
from ..orchestrator import RequestOptions, RequestOrchestrator

logger = logging.getLogger(__name__)

RETRIEVER_SYSTEM = """You are a Semantic Search Engine. Given a chapter goal and a list of Lore, identify the 5 most relevant entries."""

RETRIEVER_USER = """Chapter Goal: {chapter_goal}

Available Lore Bible: {lore_json}

{format_instructions}"""

retriever_parser = PydanticOutputParser(pydantic_object=RetrievalOutput)
retriever_prompt = PromptTemplate.from_template(RETRIEVER_USER)


def lore_to_json(lore: list[LoreEntry]) -> str:
    return json.dumps(
        [entry.model_dump(exclude={"is_new"}) for entry in lore], ensure_ascii=False
    )


async def retrieve_relevant_lore(
    orchestrator: RequestOrchestrator,
    chapter_goal: str,
    lore: list[LoreEntry],
    book_id: str | None = None,
    chapter_id: str | None = None,
) -> list[LoreEntry]:
    """Lore entries relevant to the goal, in lore bible order.

    An empty lore bible returns [] without calling a provider.
    """
    if not lore:
        return []

    prompt = retriever_prompt.format(
        chapter_goal=chapter_goal,
        lore_json=lore_to_json(lore),
        format_instructions=retriever_parser.get_format_instructions(),
    )
    response = await orchestrator.execute(
        TaskProfile.AUDIT,
        prompt,
        RequestOptions(
            system_instruction=RETRIEVER_SYSTEM,
            is_json=True,
            schema=RetrievalOutput,
            agent=VECTOR_RETRIEVER,
            book_id=book_id,
            chapter_id=chapter_id,
        ),
    )

    relevant_ids = set(response.content.relevant_ids)
    selected = [entry for entry in lore if entry.id in relevant_ids]
    logger.info(f"Retrieved {len(selected)}/{len(lore)} lore entries for '{chapter_goal[:60]}'")
    return selected
