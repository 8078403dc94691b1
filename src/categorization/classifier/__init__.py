"""Prompting, reply parsing, and category resolution.

This package provides:
- build_prompts: System/user prompt construction
- parse_category_response: Reply grammar parsing
- resolve_category: Exact-then-fuzzy category matching
"""

from src.categorization.classifier.models import (
    CategorizationResult,
    CategorySuggestion,
)
from src.categorization.classifier.parser import (
    PARSE_FAILURE_MESSAGE,
    parse_category_response,
)
from src.categorization.classifier.prompts import PromptPair, build_prompts
from src.categorization.classifier.resolver import (
    SIMILARITY_THRESHOLD,
    calculate_similarity,
    resolve_category,
)

__all__ = [
    "CategorizationResult",
    "CategorySuggestion",
    "PARSE_FAILURE_MESSAGE",
    "PromptPair",
    "SIMILARITY_THRESHOLD",
    "build_prompts",
    "calculate_similarity",
    "parse_category_response",
    "resolve_category",
]
