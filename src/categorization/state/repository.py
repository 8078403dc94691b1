"""Persistence collaborators for the categorization pipeline.

This module defines the CategorizationStore protocol the orchestrator depends
on, and two implementations:
- InMemoryCategorizationStore: dictionaries, for local development and tests
- PostgresCategorizationStore: asyncpg connection pool against the
  dashboard schema (migrations/001_ai_categorization.sql)

Both implementations keep the pull request field invariants:
- update_pull_request clears category_id/confidence and writes error_message
- update_pull_request_category sets category_id/confidence and completes
  the run in a single statement, so no partial assignment is ever visible
- both writes follow VALID_TRANSITIONS and raise InvalidTransitionError
  instead of applying an illegal ai_status move

Source:
- src/categorization/state/models.py (records, AiStatus)
- migrations/001_ai_categorization.sql (schema definition)
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional, Protocol, runtime_checkable

import asyncpg

from src.categorization.errors import CategorizationError, DatabaseError
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


logger = logging.getLogger(__name__)


# Organization-scoped keys in the settings table
AI_PROVIDER_KEY = "ai_provider"
AI_SELECTED_MODEL_ID_KEY = "ai_selected_model_id"
AI_API_KEY_KEYS: Dict[str, str] = {
    "openai": "ai_openai_api_key",
    "google": "ai_google_api_key",
    "anthropic": "ai_anthropic_api_key",
}


@runtime_checkable
class CategorizationStore(Protocol):
    """Protocol defining the persistence operations the pipeline consumes.

    The store owns pull requests, repositories, organizations, categories
    and organization settings. The pipeline only reads them, apart from
    the ai_status/category fields of a pull request.
    """

    async def find_pull_request_by_id(self, pr_id: int) -> Optional[PullRequest]:
        ...

    async def find_repository_by_id(self, repository_id: int) -> Optional[Repository]:
        ...

    async def find_organization_by_id(self, organization_id: int) -> Optional[Organization]:
        ...

    async def get_organization_ai_settings(self, organization_id: int) -> AiSettings:
        ...

    async def get_organization_api_key(
        self, organization_id: int, provider: str
    ) -> Optional[str]:
        ...

    async def get_organization_categories(self, organization_id: int) -> List[Category]:
        """Return organization and default categories in canonical order.

        Canonical order is default categories first, then by name.
        """
        ...

    async def find_category_by_name_and_org(
        self, organization_id: int, name: str
    ) -> Optional[Category]:
        """Case-insensitive lookup, organization categories before defaults."""
        ...

    async def update_pull_request(
        self,
        pr_id: int,
        ai_status: AiStatus,
        error_message: Optional[str] = None,
    ) -> None:
        """Write ai_status and error_message, clearing any category assignment.

        Raises:
            InvalidTransitionError: If the current status cannot move to
                ai_status.
        """
        ...

    async def update_pull_request_category(
        self, pr_id: int, category_id: int, confidence: float
    ) -> None:
        """Assign category and confidence and mark the run completed.

        Raises:
            InvalidTransitionError: If the pull request is not processing.
        """
        ...

    async def health_check(self) -> bool:
        ...


def _canonical_order(categories: List[Category]) -> List[Category]:
    return sorted(categories, key=lambda c: (not c.is_default, c.name))


def _check_transition(pull_request: PullRequest, to_status: AiStatus) -> None:
    if not is_valid_transition(pull_request.ai_status, to_status):
        logger.warning(
            "Invalid ai_status transition attempted",
            extra={
                "pr_id": pull_request.id,
                "from_status": pull_request.ai_status.value,
                "to_status": to_status.value,
            },
        )
        raise InvalidTransitionError(pull_request.ai_status, to_status)


class InMemoryCategorizationStore:
    """Dictionary-backed CategorizationStore for local development and tests."""

    def __init__(self):
        self.pull_requests: Dict[int, PullRequest] = {}
        self.repositories: Dict[int, Repository] = {}
        self.organizations: Dict[int, Organization] = {}
        self.categories: Dict[int, Category] = {}
        self.settings: Dict[int, Dict[str, Optional[str]]] = {}

    def add_pull_request(self, pull_request: PullRequest) -> None:
        self.pull_requests[pull_request.id] = pull_request

    def add_repository(self, repository: Repository) -> None:
        self.repositories[repository.id] = repository

    def add_organization(self, organization: Organization) -> None:
        self.organizations[organization.id] = organization

    def add_category(self, category: Category) -> None:
        self.categories[category.id] = category

    def set_organization_setting(
        self, organization_id: int, key: str, value: Optional[str]
    ) -> None:
        self.settings.setdefault(organization_id, {})[key] = value

    async def find_pull_request_by_id(self, pr_id: int) -> Optional[PullRequest]:
        return self.pull_requests.get(pr_id)

    async def find_repository_by_id(self, repository_id: int) -> Optional[Repository]:
        return self.repositories.get(repository_id)

    async def find_organization_by_id(self, organization_id: int) -> Optional[Organization]:
        return self.organizations.get(organization_id)

    async def get_organization_ai_settings(self, organization_id: int) -> AiSettings:
        org_settings = self.settings.get(organization_id, {})
        return AiSettings(
            provider=org_settings.get(AI_PROVIDER_KEY) or None,
            selected_model_id=org_settings.get(AI_SELECTED_MODEL_ID_KEY),
        )

    async def get_organization_api_key(
        self, organization_id: int, provider: str
    ) -> Optional[str]:
        key = AI_API_KEY_KEYS.get(provider)
        if key is None:
            return None
        return self.settings.get(organization_id, {}).get(key)

    async def get_organization_categories(self, organization_id: int) -> List[Category]:
        return _canonical_order(
            [
                c
                for c in self.categories.values()
                if c.organization_id == organization_id or c.organization_id is None
            ]
        )

    async def find_category_by_name_and_org(
        self, organization_id: int, name: str
    ) -> Optional[Category]:
        wanted = name.lower()
        for scope in (organization_id, None):
            for category in self.categories.values():
                if category.organization_id == scope and category.name.lower() == wanted:
                    return category
        return None

    async def update_pull_request(
        self,
        pr_id: int,
        ai_status: AiStatus,
        error_message: Optional[str] = None,
    ) -> None:
        pull_request = self.pull_requests[pr_id]
        _check_transition(pull_request, ai_status)
        self.pull_requests[pr_id] = pull_request.model_copy(
            update={
                "ai_status": ai_status,
                "error_message": error_message,
                "category_id": None,
                "confidence": None,
            }
        )

    async def update_pull_request_category(
        self, pr_id: int, category_id: int, confidence: float
    ) -> None:
        pull_request = self.pull_requests[pr_id]
        _check_transition(pull_request, AiStatus.COMPLETED)
        self.pull_requests[pr_id] = pull_request.model_copy(
            update={
                "ai_status": AiStatus.COMPLETED,
                "error_message": None,
                "category_id": category_id,
                "confidence": confidence,
            }
        )

    async def health_check(self) -> bool:
        return True


class PostgresCategorizationStore:
    """PostgreSQL implementation of the CategorizationStore protocol.

    Uses an asyncpg connection pool. The database schema from
    migrations/001_ai_categorization.sql must be applied before use.

    Attributes:
        connection_string: PostgreSQL connection URL.
        min_pool_size: Minimum connections in pool.
        max_pool_size: Maximum connections in pool.

    Example:
        >>> async with PostgresCategorizationStore("postgresql://...") as store:
        ...     pr = await store.find_pull_request_by_id(42)
    """

    def __init__(
        self,
        connection_string: str,
        min_pool_size: int = 2,
        max_pool_size: int = 10,
    ):
        self.connection_string = connection_string
        self.min_pool_size = min_pool_size
        self.max_pool_size = max_pool_size
        self._pool: Optional[asyncpg.Pool] = None

    @property
    def pool(self) -> asyncpg.Pool:
        """Get the connection pool, raising if not connected.

        Raises:
            DatabaseError: If the pool is not initialized.
        """
        if self._pool is None:
            raise DatabaseError(
                "Database pool not initialized. Call connect() first."
            )
        return self._pool

    async def connect(self) -> None:
        """Initialize the connection pool.

        Raises:
            DatabaseError: If connection fails.
        """
        if self._pool is not None:
            logger.warning("Connection pool already initialized")
            return

        try:
            logger.info(
                "Connecting to PostgreSQL",
                extra={
                    "min_pool_size": self.min_pool_size,
                    "max_pool_size": self.max_pool_size,
                },
            )
            self._pool = await asyncpg.create_pool(
                self.connection_string,
                min_size=self.min_pool_size,
                max_size=self.max_pool_size,
            )
            logger.info("PostgreSQL connection pool established")
        except Exception as e:
            logger.error(
                "Failed to connect to PostgreSQL",
                extra={"error": str(e)},
            )
            raise DatabaseError(
                f"Failed to connect to PostgreSQL: {e}",
                original_error=e,
            ) from e

    async def disconnect(self) -> None:
        """Close the connection pool."""
        if self._pool is not None:
            logger.info("Closing PostgreSQL connection pool")
            await self._pool.close()
            self._pool = None

    async def __aenter__(self) -> "PostgresCategorizationStore":
        await self.connect()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.disconnect()

    @asynccontextmanager
    async def _connection(self, operation: str) -> AsyncIterator[asyncpg.Connection]:
        """Acquire a pooled connection, wrapping driver errors in DatabaseError."""
        try:
            async with self.pool.acquire() as conn:
                yield conn
        except CategorizationError:
            raise
        except Exception as e:
            logger.error(
                "Database operation failed",
                extra={"operation": operation, "error": str(e)},
            )
            raise DatabaseError(
                f"Failed to {operation}: {e}",
                original_error=e,
            ) from e

    async def find_pull_request_by_id(self, pr_id: int) -> Optional[PullRequest]:
        async with self._connection("find pull request") as conn:
            row = await conn.fetchrow(
                """
                SELECT id, repository_id, number, title, description,
                       ai_status, category_id, category_confidence, error_message
                FROM pull_requests
                WHERE id = $1
                """,
                pr_id,
            )
        if row is None:
            return None
        return PullRequest(
            id=row["id"],
            repository_id=row["repository_id"],
            number=row["number"],
            title=row["title"],
            description=row["description"],
            ai_status=AiStatus(row["ai_status"] or AiStatus.NONE.value),
            category_id=row["category_id"],
            confidence=row["category_confidence"],
            error_message=row["error_message"],
        )

    async def find_repository_by_id(self, repository_id: int) -> Optional[Repository]:
        async with self._connection("find repository") as conn:
            row = await conn.fetchrow(
                "SELECT id, organization_id, name, full_name FROM repositories WHERE id = $1",
                repository_id,
            )
        return Repository(**dict(row)) if row is not None else None

    async def find_organization_by_id(self, organization_id: int) -> Optional[Organization]:
        async with self._connection("find organization") as conn:
            row = await conn.fetchrow(
                "SELECT id, name, installation_id FROM organizations WHERE id = $1",
                organization_id,
            )
        return Organization(**dict(row)) if row is not None else None

    async def _get_organization_setting(
        self, conn: asyncpg.Connection, organization_id: int, key: str
    ) -> Optional[str]:
        return await conn.fetchval(
            """
            SELECT value FROM settings
            WHERE organization_id = $1 AND key = $2 AND user_id IS NULL
            """,
            organization_id,
            key,
        )

    async def get_organization_ai_settings(self, organization_id: int) -> AiSettings:
        async with self._connection("get AI settings") as conn:
            provider = await self._get_organization_setting(
                conn, organization_id, AI_PROVIDER_KEY
            )
            model_id = await self._get_organization_setting(
                conn, organization_id, AI_SELECTED_MODEL_ID_KEY
            )
        return AiSettings(provider=provider or None, selected_model_id=model_id)

    async def get_organization_api_key(
        self, organization_id: int, provider: str
    ) -> Optional[str]:
        key = AI_API_KEY_KEYS.get(provider)
        if key is None:
            logger.warning(
                "API key requested for unknown provider",
                extra={"organization_id": organization_id, "provider": provider},
            )
            return None
        async with self._connection("get API key") as conn:
            return await self._get_organization_setting(conn, organization_id, key)

    async def get_organization_categories(self, organization_id: int) -> List[Category]:
        async with self._connection("list categories") as conn:
            rows = await conn.fetch(
                """
                SELECT id, organization_id, name, description, color,
                       COALESCE(is_default, FALSE) AS is_default
                FROM categories
                WHERE organization_id = $1 OR organization_id IS NULL
                ORDER BY is_default DESC, name ASC
                """,
                organization_id,
            )
        return [Category(**dict(row)) for row in rows]

    async def find_category_by_name_and_org(
        self, organization_id: int, name: str
    ) -> Optional[Category]:
        async with self._connection("find category") as conn:
            row = await conn.fetchrow(
                """
                SELECT id, organization_id, name, description, color,
                       COALESCE(is_default, FALSE) AS is_default
                FROM categories
                WHERE (organization_id = $1 OR organization_id IS NULL)
                  AND lower(name) = lower($2)
                ORDER BY organization_id IS NULL, id
                LIMIT 1
                """,
                organization_id,
                name,
            )
        return Category(**dict(row)) if row is not None else None

    async def update_pull_request(
        self,
        pr_id: int,
        ai_status: AiStatus,
        error_message: Optional[str] = None,
    ) -> None:
        async with self._connection("update pull request") as conn:
            updated = await conn.fetchval(
                """
                UPDATE pull_requests
                SET ai_status = $2,
                    error_message = $3,
                    category_id = NULL,
                    category_confidence = NULL
                WHERE id = $1 AND ai_status = ANY($4::text[])
                RETURNING id
                """,
                pr_id,
                ai_status.value,
                error_message,
                [status.value for status in source_statuses(ai_status)],
            )
            if updated is None:
                await self._reject_transition(conn, pr_id, ai_status)
        logger.debug(
            "Updated pull request status",
            extra={"pr_id": pr_id, "ai_status": ai_status.value},
        )

    async def update_pull_request_category(
        self, pr_id: int, category_id: int, confidence: float
    ) -> None:
        async with self._connection("update pull request category") as conn:
            updated = await conn.fetchval(
                """
                UPDATE pull_requests
                SET category_id = $2,
                    category_confidence = $3,
                    ai_status = $4,
                    error_message = NULL
                WHERE id = $1 AND ai_status = ANY($5::text[])
                RETURNING id
                """,
                pr_id,
                category_id,
                confidence,
                AiStatus.COMPLETED.value,
                [status.value for status in source_statuses(AiStatus.COMPLETED)],
            )
            if updated is None:
                await self._reject_transition(conn, pr_id, AiStatus.COMPLETED)

    async def _reject_transition(
        self, conn: asyncpg.Connection, pr_id: int, to_status: AiStatus
    ) -> None:
        """Raise for a guarded UPDATE that matched no row."""
        current = await conn.fetchval(
            "SELECT ai_status FROM pull_requests WHERE id = $1", pr_id
        )
        if current is None:
            raise DatabaseError(f"Pull request {pr_id} does not exist")
        from_status = AiStatus(current)
        logger.warning(
            "Invalid ai_status transition attempted",
            extra={
                "pr_id": pr_id,
                "from_status": from_status.value,
                "to_status": to_status.value,
            },
        )
        raise InvalidTransitionError(from_status, to_status)

    async def health_check(self) -> bool:
        try:
            async with self.pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
            return True
        except Exception as e:
            logger.warning(
                "Database health check failed",
                extra={"error": str(e)},
            )
            return False
