"""Prompt construction for pull request categorization.

The system prompt lists the organization's categories as a numbered list
(in the order given) and pins the reply to a two-line grammar that
classifier/parser.py understands:

    Category: <exact name>
    Confidence: <decimal 0.0-1.0>

Source:
- src/categorization/classifier/parser.py (reply grammar)
- src/categorization/state/repository.py (canonical category order)
"""

from typing import NamedTuple, Optional, Sequence


CATEGORIZATION_SYSTEM_PROMPT = """You are an expert at categorizing GitHub pull requests into investment areas. Analyze the pull request title, body, and diff, then select exactly one category from the list below.

Available categories:
{category_list}

Rules:
- Choose exactly ONE category from the list above.
- Copy the category name verbatim, with the same spelling, spacing, and capitalization.
- Do not invent new categories and do not abbreviate or paraphrase category names.
- Rate your confidence as a decimal number between 0.0 and 1.0.

Respond with exactly these two lines and nothing else:
Category: <exact category name>
Confidence: <decimal between 0.0 and 1.0>{example}"""

# Example reply; included only when this category is configured
EXAMPLE_CATEGORY = "Bug Fix"

EXAMPLE_REPLY = """

Example:
Category: {category}
Confidence: 0.9"""


class PromptPair(NamedTuple):
    """System and user prompts for one categorization request."""

    system: str
    user: str


def _format_category_list(category_names: Sequence[str]) -> str:
    return "\n".join(
        f"{index}. {name}" for index, name in enumerate(category_names, start=1)
    )


def build_user_prompt(title: str, description: Optional[str], diff: str) -> str:
    """Build the user prompt: Title, Body, and Diff sections in that order."""
    return f"Title: {title}\nBody: {description or ''}\nDiff:\n{diff}"


def build_prompts(
    category_names: Sequence[str],
    title: str,
    description: Optional[str],
    diff: str,
) -> PromptPair:
    """Build the categorization prompts for a pull request.

    Args:
        category_names: Category names in canonical order.
        title: Pull request title.
        description: Pull request body; None renders as an empty body.
        diff: Unified diff text.

    Returns:
        PromptPair with the system and user prompts.

    Raises:
        ValueError: If no category names are given.

    Example:
        >>> prompts = build_prompts(["Bug Fix", "Feature"], "Fix crash", None, diff)
        >>> "1. Bug Fix" in prompts.system
        True
    """
    if not category_names:
        raise ValueError("At least one category is required to build prompts")

    system = CATEGORIZATION_SYSTEM_PROMPT.format(
        category_list=_format_category_list(category_names),
        example=(
            EXAMPLE_REPLY.format(category=EXAMPLE_CATEGORY)
            if EXAMPLE_CATEGORY in category_names
            else ""
        ),
    )
    return PromptPair(system=system, user=build_user_prompt(title, description, diff))
