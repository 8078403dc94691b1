"""Persistence-layer records and the ai_status state machine.

This module defines the data models the categorization pipeline reads from
and writes to the relational store, including:
- AiStatus: Enum of categorization lifecycle states
- PullRequest, Repository, Organization, Category: Store records
- AiSettings: Per-organization AI provider/model selection
- VALID_TRANSITIONS: Map defining allowed ai_status transitions

The models use Pydantic for validation, consistent with the rest of the
package (classifier/models.py, config.py).
"""

from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from src.categorization.errors import CategorizationError


# Sentinel the settings screen stores when AI categorization is switched off
NO_MODEL_SELECTED = "__none__"


class AiStatus(str, Enum):
    """Categorization lifecycle of a pull request.

    Stage Flow:
        none → processing → completed | error

    A new categorization attempt restarts at processing from any state.

    Attributes:
        NONE: Never categorized.
        PROCESSING: A categorization run is in flight.
        COMPLETED: Category and confidence are assigned.
        ERROR: The last run failed; error_message holds the reason.
    """

    NONE = "none"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


class AIProviderName(str, Enum):
    """LLM providers an organization can select."""

    OPENAI = "openai"
    GOOGLE = "google"
    ANTHROPIC = "anthropic"


class Category(BaseModel):
    """An investment-area category pull requests are classified into.

    Categories with no organization_id are system-wide defaults available to
    every organization.
    """

    id: int
    organization_id: Optional[int] = None
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    color: Optional[str] = None
    is_default: bool = False


class Organization(BaseModel):
    """A GitHub organization and its App installation."""

    id: int
    name: str = ""
    installation_id: Optional[int] = None


class Repository(BaseModel):
    """A tracked repository.

    Attributes:
        full_name: Repository path in format "{owner}/{repo}".
    """

    id: int
    organization_id: Optional[int] = None
    name: str = ""
    full_name: str

    def split_full_name(self) -> Optional[tuple[str, str]]:
        """Split full_name into (owner, repo), or None if malformed."""
        owner, _, repo = self.full_name.partition("/")
        if not owner or not repo or "/" in repo:
            return None
        return owner, repo


class PullRequest(BaseModel):
    """A pull request record as seen by the categorization pipeline.

    The pipeline only reads number/title/description and writes the
    ai_status, category_id, confidence and error_message fields. The store
    keeps the invariants:
    - category_id and confidence are set iff ai_status is completed
    - error_message is set iff ai_status is error
    """

    id: int
    repository_id: int
    number: int = Field(..., gt=0)
    title: str
    description: Optional[str] = None
    ai_status: AiStatus = AiStatus.NONE
    category_id: Optional[int] = None
    confidence: Optional[float] = None
    error_message: Optional[str] = None


class AiSettings(BaseModel):
    """AI configuration of an organization (keys are never included)."""

    provider: Optional[str] = None
    selected_model_id: Optional[str] = None

    @property
    def is_enabled(self) -> bool:
        return bool(self.selected_model_id) and self.selected_model_id != NO_MODEL_SELECTED


# Valid ai_status transitions
#
# - PROCESSING can restart at PROCESSING: a duplicate request for the same
#   pull request takes over the in-flight run
# - COMPLETED and ERROR are terminal for a run, but a new run may start
VALID_TRANSITIONS: Dict[AiStatus, List[AiStatus]] = {
    AiStatus.NONE: [AiStatus.PROCESSING],
    AiStatus.PROCESSING: [
        AiStatus.COMPLETED,
        AiStatus.ERROR,
        AiStatus.PROCESSING,
    ],
    AiStatus.COMPLETED: [AiStatus.PROCESSING],
    AiStatus.ERROR: [AiStatus.PROCESSING],
}


class InvalidTransitionError(CategorizationError):
    """Raised when an invalid ai_status transition is attempted.

    Stores raise it instead of writing the new status, so a pull request
    never skips processing or leaves a terminal state for another one.

    Attributes:
        from_status: The current status.
        to_status: The attempted target status.
    """

    http_status = 409

    def __init__(self, from_status: AiStatus, to_status: AiStatus):
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Invalid transition from {from_status.value} to {to_status.value}"
        )


def is_valid_transition(from_status: AiStatus, to_status: AiStatus) -> bool:
    """Check if an ai_status transition is valid.

    Example:
        >>> is_valid_transition(AiStatus.NONE, AiStatus.PROCESSING)
        True
        >>> is_valid_transition(AiStatus.NONE, AiStatus.COMPLETED)
        False
    """
    return to_status in VALID_TRANSITIONS.get(from_status, [])


def source_statuses(to_status: AiStatus) -> List[AiStatus]:
    """Statuses a pull request may be in when moving to ``to_status``."""
    return [
        from_status
        for from_status, targets in VALID_TRANSITIONS.items()
        if to_status in targets
    ]
