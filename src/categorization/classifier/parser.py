"""Parsing of model replies into a CategorySuggestion.

A single pattern accepts both layouts models commonly produce:

    Category: Bug Fix, Confidence: 0.9
    Category: Bug Fix
    Confidence: 0.9

Matching is case-insensitive and the first occurrence wins. The confidence
is returned as parsed; range validation is left to callers.
"""

import logging
import re

from src.categorization.classifier.models import CategorySuggestion
from src.categorization.errors import ParseError


logger = logging.getLogger(__name__)


PARSE_FAILURE_MESSAGE = "Could not parse AI category response"

CATEGORY_RESPONSE_PATTERN = re.compile(
    r"Category:[ \t]*(?P<name>[^,\n]+?)[ \t\r]*[,\n]\s*"
    r"Confidence:\s*(?P<confidence>-?(?:\d+(?:\.\d*)?|\.\d+))",
    re.IGNORECASE,
)


def parse_category_response(text: str) -> CategorySuggestion:
    """Extract the suggested category and confidence from a model reply.

    Args:
        text: Raw reply text.

    Returns:
        CategorySuggestion with the trimmed name and float confidence.

    Raises:
        ParseError: If ``Category:`` followed by ``Confidence:`` is not found.

    Example:
        >>> parse_category_response("Category: Bug Fix, Confidence: 0.9")
        CategorySuggestion(name='Bug Fix', confidence=0.9)
    """
    match = CATEGORY_RESPONSE_PATTERN.search(text or "")
    if match is None or not match.group("name").strip():
        logger.warning(
            "Model reply did not match category grammar",
            extra={"response_preview": (text or "")[:200]},
        )
        raise ParseError(PARSE_FAILURE_MESSAGE, response_text=text or "")

    return CategorySuggestion(
        name=match.group("name").strip(),
        confidence=float(match.group("confidence")),
    )
