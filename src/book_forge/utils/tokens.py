"""Token counting utilities for output budgets."""

import logging

import tiktoken

logger = logging.getLogger(__name__)

DEFAULT_ENCODING = "cl100k_base"

# Model encoding mappings; everything else uses cl100k_base
MODEL_ENCODINGS = {
    "gpt-4o": "o200k_base",
    "gpt-5.2": "o200k_base",
    "gpt-5-mini": "o200k_base",
}


def count_tokens(text: str, model: str | None = None) -> int:
    """Count tokens in text for the specified model."""
    try:
        encoding_name = MODEL_ENCODINGS.get(model or "", DEFAULT_ENCODING)
        encoding = tiktoken.get_encoding(encoding_name)
        return len(encoding.encode(text))
    except Exception as e:
        logger.warning(f"Token counting failed for model {model}: {e}")
        # Fallback: rough estimate (4 chars per token)
        return len(text) // 4


def revision_output_budget(
    content: str,
    expansion_factor: float,
    max_output_tokens: int,
    model: str | None = None,
    floor: int = 1024,
) -> int:
    """
    Output token budget for a revision.

    Args:
        content: Existing chapter content
        expansion_factor: Requested growth of the text (1.0 keeps its length)
        max_output_tokens: Model ceiling, 0 when unknown
        model: Model id used to pick the encoding
        floor: Minimum budget so short chapters can still grow

    Returns:
        Token budget clamped to the model ceiling
    """
    budget = max(floor, int(count_tokens(content, model) * expansion_factor))
    if max_output_tokens:
        budget = min(budget, max_output_tokens)

    logger.info(
        f"Revision budget: {budget} tokens (expansion {expansion_factor}, model {model})"
    )
    return budget
