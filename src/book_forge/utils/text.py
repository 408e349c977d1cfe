"""Text helpers shared by the chains and the originality scanner."""

import hashlib
import re

PARAGRAPH_BREAK = re.compile(r"\n\s*\n+")
SENTENCE_BREAK = re.compile(r"[.!?]+")
WHITESPACE = re.compile(r"\s+")


def strip_markdown_code_blocks(text: str) -> str:
    """Remove markdown code fences and cut the JSON document out of LLM output.

    Some LLMs wrap JSON in ```json ... ``` blocks or add commentary before or
    after it. The first object or array is located by bracket matching.
    """
    cleaned = text
    if "```json" in cleaned:
        cleaned = cleaned.split("```json")[1].split("```")[0].strip()
    elif "```" in cleaned:
        cleaned = cleaned.split("```")[1].split("```")[0].strip()

    starts = [i for i in (cleaned.find("{"), cleaned.find("[")) if i != -1]
    if not starts:
        return cleaned.strip()

    start_idx = min(starts)
    opener = cleaned[start_idx]
    closer = "}" if opener == "{" else "]"

    depth = 0
    in_string = False
    escaped = False
    for i in range(start_idx, len(cleaned)):
        char = cleaned[i]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == opener:
            depth += 1
        elif char == closer:
            depth -= 1
            if depth == 0:
                return cleaned[start_idx:i + 1]

    # Unbalanced, let the JSON parser report it
    return cleaned[start_idx:]


def normalize_text(text: str) -> str:
    """Lowercase and collapse whitespace."""
    return WHITESPACE.sub(" ", text.lower()).strip()


def paragraph_hash(text: str) -> str:
    return hashlib.sha1(normalize_text(text).encode("utf-8")).hexdigest()


def split_paragraphs(content: str, min_length: int = 0) -> list[str]:
    """Split on blank lines, keeping paragraphs longer than ``min_length``."""
    paragraphs = [p.strip() for p in PARAGRAPH_BREAK.split(content or "")]
    return [p for p in paragraphs if p and len(p) > min_length]


def split_sentences(text: str) -> list[str]:
    return [s.strip() for s in SENTENCE_BREAK.split(text or "") if s.strip()]


def word_tokens(text: str) -> list[str]:
    return [w for w in WHITESPACE.split((text or "").lower()) if w]


def word_count(text: str) -> int:
    return len((text or "").split())


def jaccard_similarity(a: str, b: str) -> float:
    """Word-level Jaccard similarity of two texts (0.0 when both are empty)."""
    words_a = set(word_tokens(a))
    words_b = set(word_tokens(b))
    union = words_a | words_b
    if not union:
        return 0.0
    return len(words_a & words_b) / len(union)


def truncate(text: str, limit: int = 200) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + "..."
