"""
Folding classifier output into categories and computing the rating.

Both steps are pure and deterministic: the same word list always yields
the same categories in the same order and the same score.
"""

import math
from typing import Iterable

from profanity_checker.models import ProfanityCategory, ProfanityWord, Rating, Severity

CATEGORY_SEVERITY: dict[str, Severity] = {
    "Sexual/Crude": Severity.strong,
    "Religious/Profane": Severity.mild,
    "Slurs/Hate Speech": Severity.strong,
    "General Profanity": Severity.moderate,
    "Violence/Threats": Severity.moderate,
    "Scatological": Severity.mild,
    "Insults": Severity.mild,
    "Substance References": Severity.mild,
}

CATEGORY_ICONS: dict[str, str] = {
    "Sexual/Crude": "🔞",
    "Religious/Profane": "⛪",
    "Slurs/Hate Speech": "🚫",
    "General Profanity": "🤬",
    "Violence/Threats": "⚔️",
    "Scatological": "💩",
    "Insults": "😤",
    "Substance References": "🚬",
}
DEFAULT_ICON = "⚠️"

# Occurrences beyond this no longer raise the volume factor
VOLUME_CAP = 100

SEVERITY_WEIGHTS = {Severity.strong: 3, Severity.moderate: 2, Severity.mild: 1}


def categorize(words: Iterable[ProfanityWord]) -> list[ProfanityCategory]:
    """
    Group flagged words into categories.

    Words are sorted by count within a category and categories by total
    count, both descending. A category's severity comes from the fixed
    table, not from its words; unknown categories count as moderate.

    Args:
        words: Flat word list from the classifier

    Returns:
        Categories ordered by total count
    """
    grouped: dict[str, list[ProfanityWord]] = {}
    for word in words:
        grouped.setdefault(word.category, []).append(word)

    categories = []
    for name, category_words in grouped.items():
        category_words.sort(key=lambda w: w.count, reverse=True)
        categories.append(
            ProfanityCategory(
                name=name,
                words=category_words,
                total_count=sum(w.count for w in category_words),
                severity=CATEGORY_SEVERITY.get(name, Severity.moderate),
                icon=CATEGORY_ICONS.get(name, DEFAULT_ICON),
            )
        )

    categories.sort(key=lambda c: c.total_count, reverse=True)
    return categories


def calculate_rating(categories: Iterable[ProfanityCategory]) -> tuple[Rating, int]:
    """
    Compute the rating label and 0-100 score.

    The score blends severity (weighted mean: strong=3, moderate=2,
    mild=1) with volume (total occurrences, capped at 100).

    Args:
        categories: Aggregated categories

    Returns:
        Tuple of (rating, score)

    Examples:
        >>> calculate_rating([])
        (<Rating.clean: 'Clean'>, 0)
    """
    categories = list(categories)
    total = sum(c.total_count for c in categories)
    if total == 0:
        return Rating.clean, 0

    strong = sum(c.total_count for c in categories if c.severity == Severity.strong)
    moderate = sum(c.total_count for c in categories if c.severity == Severity.moderate)
    mild = total - strong - moderate

    weighted = (
        strong * SEVERITY_WEIGHTS[Severity.strong]
        + moderate * SEVERITY_WEIGHTS[Severity.moderate]
        + mild * SEVERITY_WEIGHTS[Severity.mild]
    )
    raw = weighted / max(total, 1) * min(total, VOLUME_CAP)
    # Round half up
    score = math.floor(min(max(raw, 0), 100) + 0.5)

    if score <= 15:
        return Rating.mild, score
    if score <= 40:
        return Rating.moderate, score
    if score <= 70:
        return Rating.heavy, score
    return Rating.extreme, score
