"""Lexical heuristics for the AI-signature phase.

All scores are on a 0-100 scale where higher reads as more human.
"""

import math

import textstat

from ..models import AIDetectionMetrics, Severity
from ..utils.text import split_sentences

AI_CLICHES = frozenset({
    "delve",
    "tapestry",
    "landscape",
    "realm",
    "nuanced",
    "multifaceted",
    "paradigm",
    "leverage",
    "synergy",
    "holistic",
    "robust",
    "innovative",
    "cutting-edge",
    "state-of-the-art",
})


def _words(text: str) -> list[str]:
    return text.split()


def perplexity_proxy(text: str) -> float:
    """Unique-word ratio scaled by 200 and capped at 100."""
    words = _words(text)
    if not words:
        return 0.0
    return min(100.0, len(set(words)) / len(words) * 200)


def burstiness(text: str) -> float:
    """Coefficient of variation of sentence lengths; 50 with fewer than two sentences."""
    lengths = [len(sentence.split()) for sentence in split_sentences(text)]
    if len(lengths) < 2:
        return 50.0

    mean = sum(lengths) / len(lengths)
    variance = sum((length - mean) ** 2 for length in lengths) / len(lengths)
    return min(100.0, math.sqrt(variance) / mean * 100)


def vocabulary_diversity(text: str) -> float:
    """Type-token ratio scaled by 150 and capped at 100."""
    words = _words(text.lower())
    if not words:
        return 0.0
    return min(100.0, len(set(words)) / len(words) * 150)


def cliche_density(text: str) -> float:
    words = _words(text.lower())
    if not words:
        return 0.0
    count = sum(1 for word in words if word in AI_CLICHES)
    return min(100.0, count / len(words) * 1000)


def book_ai_score(metrics: AIDetectionMetrics) -> float:
    return (
        metrics.perplexity * 0.3
        + metrics.burstiness * 0.3
        + metrics.vocabulary_diversity * 0.2
        + (100 - metrics.cliche_density) * 0.2
    )


def chapter_ai_score(text: str) -> float:
    return (
        perplexity_proxy(text) * 0.4
        + burstiness(text) * 0.4
        + vocabulary_diversity(text) * 0.2
    )


def risk_level(score: float) -> Severity:
    if score < 40:
        return "high"
    if score < 70:
        return "medium"
    return "low"


def analyze_text(text: str) -> AIDetectionMetrics:
    metrics = AIDetectionMetrics(
        perplexity=perplexity_proxy(text),
        burstiness=burstiness(text),
        vocabulary_diversity=vocabulary_diversity(text),
        cliche_density=cliche_density(text),
        readability_grade=textstat.flesch_kincaid_grade(text) if text.strip() else None,
    )
    metrics.overall_risk = risk_level(book_ai_score(metrics))
    return metrics
