"""Resolution of a suggested category name to a configured category.

Resolution runs two passes over the categories in their canonical order:

1. Exact: case-insensitive, whitespace-trimmed equality; first match wins.
2. Fuzzy: the candidate with the highest calculate_similarity score, if that
   score is strictly greater than SIMILARITY_THRESHOLD. On ties the earlier
   candidate is kept.

calculate_similarity is a cheap character-membership heuristic, not an edit
distance: 1.0 for equal strings, 0.8 when one contains the other, otherwise
the share of the suggestion's characters that occur anywhere in the
candidate, relative to the longer string.
"""

from typing import Optional, Sequence

from src.categorization.state.models import Category


SIMILARITY_THRESHOLD = 0.6

SUBSTRING_SCORE = 0.8


def normalize_name(name: str) -> str:
    return name.strip().lower()


def calculate_similarity(suggested: str, candidate: str) -> float:
    """Score how closely two category names match (0.0-1.0).

    Example:
        >>> calculate_similarity("Bugfix", "Bug Fix")
        0.8571428571428571
    """
    s1 = normalize_name(suggested)
    s2 = normalize_name(candidate)

    if s1 == s2:
        return 1.0
    if s1 in s2 or s2 in s1:
        return SUBSTRING_SCORE

    longer = max(len(s1), len(s2))
    common = sum(1 for char in s1 if char in s2)
    return common / longer


def resolve_category(
    suggested_name: str,
    categories: Sequence[Category],
) -> Optional[Category]:
    """Find the configured category a suggestion refers to.

    Args:
        suggested_name: Category name as written by the model.
        categories: Candidate categories in canonical order.

    Returns:
        The matching Category, or None if nothing matched exactly and no
        candidate scored above SIMILARITY_THRESHOLD. A blank suggestion
        never matches.
    """
    target = normalize_name(suggested_name)
    if not target:
        return None

    for category in categories:
        if normalize_name(category.name) == target:
            return category

    best: Optional[Category] = None
    best_score = 0.0
    for category in categories:
        score = calculate_similarity(target, category.name)
        if score > best_score and score > SIMILARITY_THRESHOLD:
            best = category
            best_score = score

    return best
