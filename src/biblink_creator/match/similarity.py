"""Set-based string similarity over word or character shingles."""

import math

from ..core.models import ShingleUnit, SimilarityMeasure, SimilaritySelector


def shingles(text: str, size: int, unit: ShingleUnit) -> set[str]:
    """Return the set of ``size``-long sliding windows over ``text``.

    Word shingles split on single spaces and are re-joined with a space.
    An empty text, or one shorter than ``size`` tokens, has no shingles.
    """
    size = max(size, 1)
    if not text:
        return set()
    if unit is ShingleUnit.WORD:
        words = text.split(" ")
        return {" ".join(words[i : i + size]) for i in range(len(words) - size + 1)}
    return {text[i : i + size] for i in range(len(text) - size + 1)}


def coefficient(a: str, b: str, selector: SimilaritySelector) -> float:
    """Similarity of two strings in [0, 1]; 0.0 whenever a denominator would be zero."""
    shingles_a = shingles(a, selector.size, selector.unit)
    shingles_b = shingles(b, selector.size, selector.unit)
    common = len(shingles_a & shingles_b)

    if selector.measure is SimilarityMeasure.COSINE:
        denominator = math.sqrt(len(shingles_a) * len(shingles_b))
        return common / denominator if denominator else 0.0
    if selector.measure is SimilarityMeasure.DICE:
        denominator = len(shingles_a) + len(shingles_b)
        return 2 * common / denominator if denominator else 0.0
    if selector.measure is SimilarityMeasure.JACCARD:
        union = len(shingles_a | shingles_b)
        return common / union if union else 0.0
    smallest = min(len(shingles_a), len(shingles_b))
    return common / smallest if smallest else 0.0
