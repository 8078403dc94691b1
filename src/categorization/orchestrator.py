"""Categorization orchestrator driving one pull request through the pipeline.

Receives a pull request id and drives it through:
lookups → preconditions → processing → diff → prompt → generate → parse →
resolve → completed.

Failures before ``processing`` is set (missing records, misconfiguration,
no categories) are raised without touching the pull request. Every failure
after that point is written back as ``ai_status = error`` with an
error_message before it is raised to the caller, so no partial category
assignment is ever persisted.

The diff fetch is the only retried step: an AuthenticationError invalidates
the cached installation token and the fetch is repeated exactly once with a
freshly acquired token.

Source:
- src/categorization/state/repository.py (CategorizationStore)
- src/categorization/github/tokens.py (InstallationTokenManager)
- src/categorization/github/client.py (GitHubClient)
- src/categorization/providers/gateway.py (create_provider)
- src/categorization/classifier/ (build_prompts, parse_category_response, resolve_category)
- src/categorization/metrics.py (CategorizationMetrics)
"""

import logging
import time
from typing import Callable, List, Optional

from src.categorization.classifier.models import CategorizationResult
from src.categorization.classifier.parser import parse_category_response
from src.categorization.classifier.prompts import build_prompts
from src.categorization.classifier.resolver import resolve_category
from src.categorization.errors import (
    AuthenticationError,
    CategorizationError,
    ConfigurationError,
    NotFoundError,
    ResolutionError,
    UpstreamFetchError,
)
from src.categorization.github.client import GitHubClient
from src.categorization.github.tokens import InstallationTokenManager
from src.categorization.metrics import CategorizationMetrics
from src.categorization.providers.base import AIProvider
from src.categorization.providers.gateway import create_provider
from src.categorization.state.models import (
    AIProviderName,
    AiStatus,
    Category,
    Organization,
    PullRequest,
)
from src.categorization.state.repository import CategorizationStore

logger = logging.getLogger(__name__)


ProviderFactory = Callable[..., AIProvider]


class CategorizationOrchestrator:
    """Categorizes pull requests with the organization's AI provider.

    Accepts all dependencies via constructor injection.

    Attributes:
        store: Persistence collaborator for records and ai_status writes.
        token_manager: Installation token cache shared across runs.
        github_client: Diff retrieval client.
        provider_factory: Builds an AIProvider from (provider, model_id, api_key).
        metrics: Optional Prometheus metrics sink.
        generation_timeout: Request timeout passed to provider clients.

    Example:
        >>> orchestrator = CategorizationOrchestrator(store, tokens, github)
        >>> result = await orchestrator.categorize_pull_request(42)
        >>> result.message
        "PR #7 categorized as 'Bug Fix' with confidence 0.95"
    """

    def __init__(
        self,
        store: CategorizationStore,
        token_manager: InstallationTokenManager,
        github_client: GitHubClient,
        provider_factory: ProviderFactory = create_provider,
        metrics: Optional[CategorizationMetrics] = None,
        generation_timeout: Optional[float] = None,
    ):
        self.store = store
        self.token_manager = token_manager
        self.github_client = github_client
        self.provider_factory = provider_factory
        self.metrics = metrics
        self.generation_timeout = generation_timeout

    async def categorize_pull_request(self, pr_id: int) -> CategorizationResult:
        """Categorize a pull request and persist the outcome.

        Args:
            pr_id: Pull request record id.

        Returns:
            CategorizationResult describing the assigned category.

        Raises:
            NotFoundError: If the pull request, repository, or installation
                is missing. ai_status is left untouched.
            ConfigurationError: If the organization is not set up for AI
                categorization. ai_status is left untouched.
            CategorizationError: Any failure after processing started; the
                pull request is left in ai_status = error.
        """
        logger.info("Starting categorization", extra={"pr_id": pr_id})

        pull_request = await self.store.find_pull_request_by_id(pr_id)
        if pull_request is None:
            raise NotFoundError("PR not found")

        repository = await self.store.find_repository_by_id(pull_request.repository_id)
        if repository is None:
            raise NotFoundError("Repository not found")

        owner_repo = repository.split_full_name()
        if owner_repo is None:
            raise ConfigurationError("Invalid repository full_name format")
        owner, repo = owner_repo

        if repository.organization_id is None:
            raise ConfigurationError("Repository has no associated organization")

        organization = await self.store.find_organization_by_id(
            repository.organization_id
        )
        if organization is None or organization.installation_id is None:
            raise NotFoundError("Organization has no GitHub App installation")

        provider = await self._build_provider(organization.id)

        categories = await self.store.get_organization_categories(organization.id)
        if not categories:
            raise ConfigurationError("No categories found for organization")

        return await self._run(
            pull_request, organization, owner, repo, provider, categories
        )

    async def _build_provider(self, organization_id: int) -> AIProvider:
        """Check the organization's AI settings and construct its provider."""
        settings = await self.store.get_organization_ai_settings(organization_id)

        if not settings.is_enabled:
            raise ConfigurationError(
                "AI categorization disabled for organization (no model selected)"
            )
        if not settings.provider:
            raise ConfigurationError("AI provider not set for organization")

        provider_name = settings.provider
        if provider_name not in {p.value for p in AIProviderName}:
            raise ConfigurationError(f"Unsupported AI provider: {provider_name}")

        api_key = await self.store.get_organization_api_key(
            organization_id, provider_name
        )
        if not api_key:
            raise ConfigurationError(
                f"API key for {provider_name} not set for organization"
            )

        return self.provider_factory(
            provider_name,
            settings.selected_model_id,
            api_key,
            timeout=self.generation_timeout,
        )

    async def _run(
        self,
        pull_request: PullRequest,
        organization: Organization,
        owner: str,
        repo: str,
        provider: AIProvider,
        categories: List[Category],
    ) -> CategorizationResult:
        """Execute the state machine from processing to a terminal state."""
        pr_id = pull_request.id
        started = time.monotonic()

        await self.store.update_pull_request(pr_id, AiStatus.PROCESSING)
        logger.info(
            "Categorization processing",
            extra={
                "pr_id": pr_id,
                "repository": f"{owner}/{repo}",
                "pr_number": pull_request.number,
                "provider": provider.name,
                "model_id": provider.model_id,
                "category_count": len(categories),
            },
        )

        stage = "diff_fetch"
        try:
            diff = await self._fetch_diff(
                organization.installation_id, owner, repo, pull_request.number
            )

            stage = "generation"
            prompts = build_prompts(
                [category.name for category in categories],
                pull_request.title,
                pull_request.description,
                diff,
            )
            generation = await provider.generate(prompts.system, prompts.user)

            stage = "parse"
            suggestion = parse_category_response(generation.text)

            stage = "resolution"
            category = resolve_category(suggestion.name, categories)
            if category is None:
                raise ResolutionError(
                    f"AI suggested category '{suggestion.name}' not found "
                    f"for organization {organization.id}",
                    suggested_name=suggestion.name,
                    record_message=(
                        f"AI suggested category '{suggestion.name}' not found"
                    ),
                )

            stored = await self.store.find_category_by_name_and_org(
                organization.id, category.name
            )
            if stored is None:
                raise ResolutionError(
                    f"Category '{category.name}' not found after resolution",
                    suggested_name=suggestion.name,
                )

            stage = "persistence"
            await self.store.update_pull_request_category(
                pr_id, stored.id, suggestion.confidence
            )

        except ResolutionError as exc:
            await self._fail(pr_id, stage, exc.record_message, provider.name, started)
            raise
        except CategorizationError as exc:
            await self._fail(pr_id, stage, exc.message, provider.name, started)
            raise
        except Exception as exc:
            await self._fail(
                pr_id,
                stage,
                f"Categorization failed: {exc}",
                provider.name,
                started,
            )
            raise

        if self.metrics is not None:
            self.metrics.record_run(
                provider.name, success=True, duration_seconds=time.monotonic() - started
            )

        result = CategorizationResult(
            pr_id=pr_id,
            pr_number=pull_request.number,
            category_id=stored.id,
            category_name=stored.name,
            confidence=suggestion.confidence,
            provider=provider.name,
            model_id=provider.model_id,
        )
        logger.info(
            result.message,
            extra={
                "pr_id": pr_id,
                "category_id": stored.id,
                "suggested_name": suggestion.name,
                "confidence": suggestion.confidence,
            },
        )
        return result

    async def _fetch_diff(
        self,
        installation_id: int,
        owner: str,
        repo: str,
        pr_number: int,
    ) -> str:
        """Fetch the diff, retrying once with a fresh token on auth failure.

        Raises:
            UpstreamFetchError: If the fetch fails, including after the retry.
        """
        token = await self.token_manager.get(installation_id)
        try:
            return await self.github_client.fetch_diff(
                owner, repo, pr_number, token.token
            )
        except AuthenticationError as exc:
            logger.warning(
                "Installation token rejected, refreshing and retrying diff fetch",
                extra={
                    "installation_id": installation_id,
                    "pr_number": pr_number,
                    "status_code": exc.status_code,
                },
            )
            await self.token_manager.invalidate(installation_id)
            if self.metrics is not None:
                self.metrics.record_diff_retry()

            try:
                token = await self.token_manager.get(installation_id)
                return await self.github_client.fetch_diff(
                    owner, repo, pr_number, token.token
                )
            except CategorizationError as retry_exc:
                raise UpstreamFetchError(
                    "Failed to fetch PR diff after refreshing installation token: "
                    f"{retry_exc.message}",
                    status_code=getattr(retry_exc, "status_code", None),
                ) from retry_exc
        except UpstreamFetchError as exc:
            raise UpstreamFetchError(
                f"Failed to fetch PR diff: {exc.message}",
                status_code=exc.status_code,
                response_body=exc.response_body,
                request_url=exc.request_url,
            ) from exc

    async def _fail(
        self,
        pr_id: int,
        stage: str,
        error_message: str,
        provider_name: str,
        started: float,
    ) -> None:
        """Record ai_status = error for a run that already started processing."""
        logger.error(
            "Categorization failed",
            extra={"pr_id": pr_id, "stage": stage, "error": error_message},
        )

        try:
            await self.store.update_pull_request(
                pr_id, AiStatus.ERROR, error_message=error_message
            )
        except CategorizationError:
            logger.exception(
                "Failed to record ai_status error",
                extra={"pr_id": pr_id, "stage": stage},
            )

        if self.metrics is not None:
            self.metrics.record_failure(stage)
            self.metrics.record_run(
                provider_name, success=False, duration_seconds=time.monotonic() - started
            )
