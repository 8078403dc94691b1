"""GitHub API client for pull request diffs.

This module provides an async wrapper around the GitHub REST API that
retrieves the unified diff of a pull request using an installation token.

Failures are classified so the orchestrator can react to them:
- AuthenticationError: the token is expired, invalid, or otherwise rejected
- RateLimitError: GitHub rate limit exhausted
- UpstreamFetchError: every other failure

The client never retries on its own; the single retry after an
authentication failure is owned by the orchestrator because it needs a new
token from the InstallationTokenManager.

Source:
- src/categorization/github/tokens.py (InstallationToken)
- src/categorization/config.py (github_base_url, github_timeout_seconds)
"""

import logging
from typing import Any, Dict, Optional

import httpx

from src.categorization.errors import (
    AuthenticationError,
    RateLimitError,
    UpstreamFetchError,
)


logger = logging.getLogger(__name__)


DIFF_MEDIA_TYPE = "application/vnd.github.v3.diff"

# Lower-cased fragments GitHub uses when rejecting a token
AUTH_FAILURE_MARKERS = (
    "github token expired",
    "expired",
    "bad credentials",
    "invalid",
)


def is_auth_failure(status_code: Optional[int], message: str) -> bool:
    """Decide whether a failed request was rejected for its credentials.

    Args:
        status_code: HTTP status of the failed response, if there was one.
        message: Error text (response body or exception message).

    Returns:
        True for 401 responses, or when the text carries one of the
        AUTH_FAILURE_MARKERS (case-insensitive).
    """
    if status_code == 401:
        return True
    lowered = (message or "").lower()
    return any(marker in lowered for marker in AUTH_FAILURE_MARKERS)


class GitHubClient:
    """Async GitHub API client for diff retrieval.

    Attributes:
        base_url: Base URL for GitHub API (default: https://api.github.com).
        timeout: Request timeout in seconds.

    Example:
        >>> client = GitHubClient()
        >>> async with client:
        ...     diff = await client.fetch_diff("octo", "app", 42, token.token)
    """

    def __init__(
        self,
        base_url: str = "https://api.github.com",
        timeout: float = 30.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize the GitHub client.

        Args:
            base_url: Base URL for GitHub API. Use this to support
                      GitHub Enterprise Server endpoints.
            timeout: Request timeout in seconds.
            http_client: Optional pre-built client (used by tests).
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = http_client

    @property
    def client(self) -> httpx.AsyncClient:
        """Get the HTTP client, creating it if necessary."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers={
                    "X-GitHub-Api-Version": "2022-11-28",
                    "User-Agent": "PR-Categorizer/1.0",
                },
                timeout=self.timeout,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client and release resources."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "GitHubClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    def _parse_int_header(self, headers: httpx.Headers, name: str) -> Optional[int]:
        value = headers.get(name)
        if value is not None:
            try:
                return int(value)
            except ValueError:
                pass
        return None

    def _is_rate_limited(self, response: httpx.Response) -> bool:
        if response.status_code == 429:
            return True
        if response.status_code == 403:
            remaining = self._parse_int_header(
                response.headers, "x-ratelimit-remaining"
            )
            return remaining == 0
        return False

    async def fetch_diff(
        self,
        owner: str,
        repo: str,
        pr_number: int,
        token: str,
    ) -> str:
        """Fetch the unified diff of a pull request.

        Args:
            owner: Repository owner (user or organization).
            repo: Repository name.
            pr_number: Pull request number.
            token: Installation access token.

        Returns:
            The diff text, possibly empty.

        Raises:
            AuthenticationError: If GitHub rejects the token.
            RateLimitError: If the rate limit is exhausted.
            UpstreamFetchError: For any other failure.
        """
        path = f"/repos/{owner}/{repo}/pulls/{pr_number}"
        headers: Dict[str, str] = {
            "Authorization": f"Bearer {token}",
            "Accept": DIFF_MEDIA_TYPE,
        }

        logger.debug(
            "Fetching pull request diff",
            extra={"owner": owner, "repo": repo, "pr_number": pr_number},
        )

        try:
            response = await self.client.get(path, headers=headers)
        except httpx.RequestError as e:
            request_url = f"{self.base_url}{path}"
            if is_auth_failure(None, str(e)):
                raise AuthenticationError(
                    f"GitHub authentication failed: {e}",
                    request_url=request_url,
                ) from e
            raise UpstreamFetchError(
                f"Failed to fetch diff for {owner}/{repo}#{pr_number}: {e}",
                request_url=request_url,
            ) from e

        if response.status_code < 400:
            return response.text

        error_body = response.text
        logger.warning(
            "GitHub diff request failed",
            extra={
                "status_code": response.status_code,
                "path": path,
                "response_body": error_body[:500],
            },
        )

        if self._is_rate_limited(response):
            raise RateLimitError(
                message="GitHub API rate limit exceeded",
                reset_at=self._parse_int_header(response.headers, "x-ratelimit-reset"),
                status_code=response.status_code,
                response_body=error_body,
                request_url=str(response.url),
            )

        if is_auth_failure(response.status_code, error_body):
            raise AuthenticationError(
                f"GitHub authentication failed: {response.status_code}",
                status_code=response.status_code,
                response_body=error_body,
                request_url=str(response.url),
            )

        raise UpstreamFetchError(
            f"GitHub API error: {response.status_code}",
            status_code=response.status_code,
            response_body=error_body,
            request_url=str(response.url),
        )
