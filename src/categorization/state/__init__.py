"""Pull request records, the ai_status state machine, and persistence."""

from src.categorization.state.models import (
    AiSettings,
    AiStatus,
    Category,
    InvalidTransitionError,
    Organization,
    PullRequest,
    Repository,
    is_valid_transition,
    source_statuses,
)
from src.categorization.state.repository import (
    CategorizationStore,
    InMemoryCategorizationStore,
    PostgresCategorizationStore,
)

__all__ = [
    "AiSettings",
    "AiStatus",
    "CategorizationStore",
    "Category",
    "InMemoryCategorizationStore",
    "InvalidTransitionError",
    "Organization",
    "PostgresCategorizationStore",
    "PullRequest",
    "Repository",
    "is_valid_transition",
    "source_statuses",
]
