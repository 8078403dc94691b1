"""Unit tests for state models and the in-memory categorization store."""

import asyncio
from contextlib import asynccontextmanager
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.categorization.errors import DatabaseError
from src.categorization.state import (
    AiSettings,
    AiStatus,
    CategorizationStore,
    Category,
    InMemoryCategorizationStore,
    InvalidTransitionError,
    PostgresCategorizationStore,
    PullRequest,
    Repository,
    is_valid_transition,
    source_statuses,
)
from src.categorization.state.repository import (
    AI_PROVIDER_KEY,
    AI_SELECTED_MODEL_ID_KEY,
)


MIGRATION = (
    Path(__file__).resolve().parents[2] / "migrations" / "001_ai_categorization.sql"
)


def run_async(coro):
    return asyncio.run(coro)


@pytest.fixture
def store():
    store = InMemoryCategorizationStore()
    store.add_pull_request(PullRequest(id=1, repository_id=1, number=3, title="t"))
    store.add_category(Category(id=1, organization_id=7, name="Refactor"))
    store.add_category(Category(id=2, organization_id=7, name="Bug Fix"))
    store.add_category(Category(id=3, organization_id=None, name="Feature", is_default=True))
    store.add_category(Category(id=4, organization_id=None, name="bug fix", is_default=True))
    store.add_category(Category(id=5, organization_id=8, name="Other Org"))
    return store


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "from_status,to_status,expected",
    [
        (AiStatus.NONE, AiStatus.PROCESSING, True),
        (AiStatus.NONE, AiStatus.COMPLETED, False),
        (AiStatus.NONE, AiStatus.ERROR, False),
        (AiStatus.PROCESSING, AiStatus.COMPLETED, True),
        (AiStatus.PROCESSING, AiStatus.ERROR, True),
        (AiStatus.PROCESSING, AiStatus.PROCESSING, True),
        (AiStatus.COMPLETED, AiStatus.PROCESSING, True),
        (AiStatus.COMPLETED, AiStatus.ERROR, False),
        (AiStatus.ERROR, AiStatus.PROCESSING, True),
        (AiStatus.ERROR, AiStatus.COMPLETED, False),
    ],
)
def test_ai_status_transitions(from_status, to_status, expected):
    assert is_valid_transition(from_status, to_status) is expected


def test_invalid_transition_error_message():
    error = InvalidTransitionError(AiStatus.NONE, AiStatus.COMPLETED)
    assert str(error) == "Invalid transition from none to completed"


@pytest.mark.parametrize(
    "full_name,expected",
    [
        ("acme/widgets", ("acme", "widgets")),
        ("widgets", None),
        ("/widgets", None),
        ("acme/", None),
        ("acme/widgets/extra", None),
    ],
)
def test_split_full_name(full_name, expected):
    assert Repository(id=1, full_name=full_name).split_full_name() == expected


@pytest.mark.parametrize(
    "model_id,enabled",
    [(None, False), ("", False), ("__none__", False), ("gpt-4o", True)],
)
def test_ai_settings_enabled(model_id, enabled):
    assert AiSettings(provider="openai", selected_model_id=model_id).is_enabled is enabled


def test_pull_request_number_must_be_positive():
    with pytest.raises(ValueError):
        PullRequest(id=1, repository_id=1, number=0, title="t")


# ---------------------------------------------------------------------------
# InMemoryCategorizationStore
# ---------------------------------------------------------------------------


def test_in_memory_store_satisfies_protocol(store):
    assert isinstance(store, CategorizationStore)


def test_categories_are_org_plus_defaults_in_canonical_order(store):
    categories = run_async(store.get_organization_categories(7))

    assert [c.id for c in categories] == [3, 4, 2, 1]


def test_find_category_prefers_organization_over_default(store):
    category = run_async(store.find_category_by_name_and_org(7, "BUG FIX"))

    assert category.id == 2


def test_find_category_falls_back_to_default(store):
    category = run_async(store.find_category_by_name_and_org(7, "feature"))

    assert category.id == 3


def test_find_category_ignores_other_organizations(store):
    assert run_async(store.find_category_by_name_and_org(7, "Other Org")) is None


def test_ai_settings_and_keys(store):
    store.set_organization_setting(7, AI_PROVIDER_KEY, "anthropic")
    store.set_organization_setting(7, AI_SELECTED_MODEL_ID_KEY, "claude-sonnet")
    store.set_organization_setting(7, "ai_anthropic_api_key", "sk-ant")

    settings = run_async(store.get_organization_ai_settings(7))

    assert settings.provider == "anthropic"
    assert settings.selected_model_id == "claude-sonnet"
    assert run_async(store.get_organization_api_key(7, "anthropic")) == "sk-ant"
    assert run_async(store.get_organization_api_key(7, "openai")) is None
    assert run_async(store.get_organization_api_key(7, "cohere")) is None


def test_category_update_completes_and_clears_error(store):
    async def scenario():
        await store.update_pull_request(1, AiStatus.PROCESSING)
        await store.update_pull_request(1, AiStatus.ERROR, error_message="failed")
        await store.update_pull_request(1, AiStatus.PROCESSING)
        await store.update_pull_request_category(1, 2, 0.9)

    run_async(scenario())
    pr = store.pull_requests[1]

    assert pr.ai_status == AiStatus.COMPLETED
    assert pr.category_id == 2
    assert pr.confidence == 0.9
    assert pr.error_message is None


def test_status_update_clears_category_assignment(store):
    async def scenario():
        await store.update_pull_request(1, AiStatus.PROCESSING)
        await store.update_pull_request_category(1, 2, 0.9)
        await store.update_pull_request(1, AiStatus.PROCESSING)

    run_async(scenario())
    pr = store.pull_requests[1]

    assert pr.ai_status == AiStatus.PROCESSING
    assert pr.category_id is None
    assert pr.confidence is None


def test_status_write_skipping_processing_is_rejected(store):
    with pytest.raises(InvalidTransitionError) as exc_info:
        run_async(store.update_pull_request(1, AiStatus.COMPLETED))

    assert exc_info.value.from_status == AiStatus.NONE
    assert exc_info.value.to_status == AiStatus.COMPLETED
    assert store.pull_requests[1].ai_status == AiStatus.NONE


def test_category_write_requires_processing(store):
    with pytest.raises(InvalidTransitionError):
        run_async(store.update_pull_request_category(1, 2, 0.9))

    pr = store.pull_requests[1]
    assert pr.ai_status == AiStatus.NONE
    assert pr.category_id is None


def test_completed_run_cannot_be_overwritten_with_error(store):
    async def scenario():
        await store.update_pull_request(1, AiStatus.PROCESSING)
        await store.update_pull_request_category(1, 2, 0.9)
        await store.update_pull_request(1, AiStatus.ERROR, error_message="late")

    with pytest.raises(InvalidTransitionError):
        run_async(scenario())

    pr = store.pull_requests[1]
    assert pr.ai_status == AiStatus.COMPLETED
    assert pr.category_id == 2


@pytest.mark.parametrize(
    "to_status,expected",
    [
        (AiStatus.PROCESSING, {AiStatus.NONE, AiStatus.PROCESSING, AiStatus.COMPLETED, AiStatus.ERROR}),
        (AiStatus.COMPLETED, {AiStatus.PROCESSING}),
        (AiStatus.ERROR, {AiStatus.PROCESSING}),
        (AiStatus.NONE, set()),
    ],
)
def test_source_statuses(to_status, expected):
    assert set(source_statuses(to_status)) == expected


# ---------------------------------------------------------------------------
# PostgresCategorizationStore (no database)
# ---------------------------------------------------------------------------


def _store_with_connection(conn) -> PostgresCategorizationStore:
    pg_store = PostgresCategorizationStore("postgresql://localhost/categorizer")

    @asynccontextmanager
    async def acquire():
        yield conn

    pool = MagicMock()
    pool.acquire = acquire
    pg_store._pool = pool
    return pg_store


def test_postgres_store_requires_connect():
    pg_store = PostgresCategorizationStore("postgresql://localhost/categorizer")

    with pytest.raises(DatabaseError):
        run_async(pg_store.find_pull_request_by_id(1))


def test_postgres_health_check_is_false_when_not_connected():
    pg_store = PostgresCategorizationStore("postgresql://localhost/categorizer")

    assert run_async(pg_store.health_check()) is False


def test_postgres_status_write_is_guarded_by_allowed_sources():
    conn = AsyncMock()
    conn.fetchval.return_value = 1

    run_async(_store_with_connection(conn).update_pull_request(1, AiStatus.ERROR, "x"))

    args = conn.fetchval.await_args.args
    assert "ai_status = ANY($4::text[])" in args[0]
    assert args[1:] == (1, "error", "x", ["processing"])


def test_postgres_rejected_status_write_raises_invalid_transition():
    conn = AsyncMock()
    # guarded UPDATE matches no row, then the current status is read back
    conn.fetchval.side_effect = [None, "none"]

    with pytest.raises(InvalidTransitionError) as exc_info:
        run_async(
            _store_with_connection(conn).update_pull_request(1, AiStatus.COMPLETED)
        )

    assert exc_info.value.from_status == AiStatus.NONE
    assert exc_info.value.to_status == AiStatus.COMPLETED


def test_postgres_category_write_outside_processing_is_rejected():
    conn = AsyncMock()
    conn.fetchval.side_effect = [None, "completed"]

    with pytest.raises(InvalidTransitionError) as exc_info:
        run_async(
            _store_with_connection(conn).update_pull_request_category(1, 2, 0.95)
        )

    assert exc_info.value.from_status == AiStatus.COMPLETED
    assert conn.fetchval.await_args_list[0].args[-1] == ["processing"]


def test_postgres_write_to_missing_pull_request_is_database_error():
    conn = AsyncMock()
    conn.fetchval.side_effect = [None, None]

    with pytest.raises(DatabaseError):
        run_async(
            _store_with_connection(conn).update_pull_request(1, AiStatus.PROCESSING)
        )


def test_confidence_column_keeps_double_precision():
    schema = MIGRATION.read_text()
    column = next(
        line for line in schema.splitlines() if "category_confidence" in line
    )

    assert "DOUBLE PRECISION" in column
