"""Categorization result models.

This module defines the data models produced while categorizing a pull
request: the model's parsed suggestion and the final persisted result.

The models use Pydantic for validation, consistent with the package's
approach in state/models.py and config.py.
"""

from pydantic import BaseModel, Field


class CategorySuggestion(BaseModel):
    """Category name and confidence parsed from a model reply.

    The name is whatever the model wrote (trimmed); it is not guaranteed to
    match a configured category. Confidence is kept as reported, so values
    outside 0.0-1.0 are possible.

    Attributes:
        name: Suggested category name.
        confidence: Model-reported confidence score.
    """

    name: str = Field(..., min_length=1, description="Suggested category name")

    confidence: float = Field(..., description="Model-reported confidence")


class CategorizationResult(BaseModel):
    """Outcome of a successful categorization run.

    Attributes:
        pr_id: Pull request record id.
        pr_number: Pull request number on GitHub.
        category_id: Resolved category id.
        category_name: Resolved category name (as configured, not as suggested).
        confidence: Confidence persisted with the category.
        provider: Provider that produced the suggestion.
        model_id: Model that produced the suggestion.
    """

    pr_id: int
    pr_number: int
    category_id: int
    category_name: str
    confidence: float
    provider: str
    model_id: str

    @property
    def message(self) -> str:
        return (
            f"PR #{self.pr_number} categorized as '{self.category_name}' "
            f"with confidence {self.confidence}"
        )

    def to_response(self) -> dict:
        """Build the JSON payload returned to API callers."""
        return {
            "success": True,
            "category": {
                "id": self.category_id,
                "name": self.category_name,
                "confidence": self.confidence,
            },
            "message": self.message,
        }
