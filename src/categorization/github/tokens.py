"""GitHub App installation token lifecycle.

The InstallationTokenManager exchanges a signed GitHub App JWT for an
installation access token, caches it per installation, and drops the cache
entry the moment a caller reports the token as rejected.

Each installation has its own asyncio.Lock so a concurrent get() and
invalidate() for the same installation never interleave: a get() either
observes the token before invalidation or acquires a fresh one after it.

Source:
- src/categorization/github/client.py (token consumer)
- src/categorization/config.py (github_app_id, github_app_private_key)
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

import httpx
from github import Auth

from src.categorization.errors import ConfigurationError, UpstreamFetchError
from src.categorization.metrics import CategorizationMetrics


logger = logging.getLogger(__name__)


# GitHub caps App JWTs at ten minutes
APP_JWT_EXPIRY_SECONDS = 600

# Backdated to tolerate clock drift between us and GitHub
APP_JWT_ISSUED_AT_OFFSET = -60

# Assumed lifetime when the exchange response carries no expires_at
DEFAULT_TOKEN_LIFETIME = timedelta(hours=1)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class InstallationToken:
    """A short-lived installation access token.

    Attributes:
        installation_id: GitHub App installation the token is scoped to.
        token: Bearer credential for GitHub API calls.
        expires_at: When GitHub stops accepting the token (UTC).
    """

    installation_id: int
    token: str
    expires_at: datetime

    def is_expired(self, now: datetime, buffer_seconds: int = 0) -> bool:
        return self.expires_at - now <= timedelta(seconds=buffer_seconds)


def _parse_expires_at(value: Optional[str], now: datetime) -> datetime:
    if not value:
        return now + DEFAULT_TOKEN_LIFETIME
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class InstallationTokenManager:
    """Acquires, caches, and invalidates installation access tokens.

    Attributes:
        base_url: Base URL for GitHub API.
        refresh_buffer_seconds: Cached tokens expiring within this window
            are re-acquired instead of returned.
        timeout: Request timeout in seconds for the token exchange.

    Example:
        >>> manager = InstallationTokenManager(app_id="12345", private_key=pem)
        >>> token = await manager.get(987)
        >>> await manager.invalidate(987)
    """

    def __init__(
        self,
        app_id: str,
        private_key: str,
        base_url: str = "https://api.github.com",
        refresh_buffer_seconds: int = 300,
        timeout: float = 30.0,
        http_client: Optional[httpx.AsyncClient] = None,
        clock: Callable[[], datetime] = _utcnow,
        metrics: Optional[CategorizationMetrics] = None,
    ):
        """Initialize the token manager.

        Args:
            app_id: GitHub App identifier, the JWT issuer.
            private_key: PEM encoded GitHub App private key.
            base_url: Base URL for GitHub API.
            refresh_buffer_seconds: Early-refresh window for cached tokens.
            timeout: Request timeout in seconds.
            http_client: Optional pre-built client (used by tests).
            clock: Source of the current UTC time.
            metrics: Optional metrics sink for token acquisitions.

        Raises:
            ConfigurationError: If the App credentials are missing.
        """
        if not app_id or not str(app_id).strip():
            raise ConfigurationError(
                "GitHub App ID is not configured", http_status=500
            )
        if not private_key or not private_key.strip():
            raise ConfigurationError(
                "GitHub App private key is not configured", http_status=500
            )

        try:
            self._app_auth = Auth.AppAuth(
                app_id,
                private_key,
                jwt_expiry=APP_JWT_EXPIRY_SECONDS,
                jwt_issued_at=APP_JWT_ISSUED_AT_OFFSET,
            )
        except (AssertionError, TypeError, ValueError) as e:
            raise ConfigurationError(
                f"Invalid GitHub App credentials: {e}", http_status=500
            ) from e

        self.base_url = base_url.rstrip("/")
        self.refresh_buffer_seconds = refresh_buffer_seconds
        self.timeout = timeout
        self._client = http_client
        self._clock = clock
        self._metrics = metrics
        self._tokens: Dict[int, InstallationToken] = {}
        self._locks: Dict[int, asyncio.Lock] = {}

    @property
    def client(self) -> httpx.AsyncClient:
        """Get the HTTP client, creating it if necessary."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client and release resources."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    def _lock_for(self, installation_id: int) -> asyncio.Lock:
        # setdefault is atomic with respect to the event loop
        return self._locks.setdefault(installation_id, asyncio.Lock())

    async def get(self, installation_id: int) -> InstallationToken:
        """Return a usable token for the installation.

        A cached token is returned while it is outside the refresh buffer;
        otherwise a fresh token is exchanged for and cached.

        Raises:
            ConfigurationError: If the App credentials cannot sign a JWT or
                are rejected by GitHub.
            UpstreamFetchError: If the token exchange fails otherwise.
        """
        async with self._lock_for(installation_id):
            cached = self._tokens.get(installation_id)
            if cached is not None and not cached.is_expired(
                self._clock(), self.refresh_buffer_seconds
            ):
                logger.debug(
                    "Using cached installation token",
                    extra={
                        "installation_id": installation_id,
                        "expires_at": cached.expires_at.isoformat(),
                    },
                )
                return cached

            token = await self._exchange(installation_id)
            self._tokens[installation_id] = token
            return token

    async def invalidate(self, installation_id: int) -> None:
        """Drop the cached token so the next get() re-acquires one."""
        async with self._lock_for(installation_id):
            removed = self._tokens.pop(installation_id, None)
        logger.info(
            "Invalidated installation token",
            extra={
                "installation_id": installation_id,
                "was_cached": removed is not None,
            },
        )

    def _create_app_jwt(self) -> str:
        try:
            return self._app_auth.create_jwt()
        except Exception as e:
            raise ConfigurationError(
                f"Failed to generate GitHub App JWT: {e}", http_status=500
            ) from e

    async def _exchange(self, installation_id: int) -> InstallationToken:
        """Exchange an App JWT for an installation access token."""
        app_jwt = self._create_app_jwt()
        path = f"/app/installations/{installation_id}/access_tokens"

        logger.info(
            "Requesting installation access token",
            extra={"installation_id": installation_id},
        )

        try:
            response = await self.client.post(
                path,
                headers={
                    "Authorization": f"Bearer {app_jwt}",
                    "Accept": "application/vnd.github+json",
                    "X-GitHub-Api-Version": "2022-11-28",
                },
            )
        except httpx.RequestError as e:
            raise UpstreamFetchError(
                f"Installation token request failed: {e}",
                request_url=f"{self.base_url}{path}",
            ) from e

        if response.status_code == 401:
            raise ConfigurationError(
                f"GitHub rejected the App credentials: {response.text[:200]}",
                http_status=500,
            )
        if response.status_code >= 400:
            logger.error(
                "Installation token request failed",
                extra={
                    "installation_id": installation_id,
                    "status_code": response.status_code,
                    "response_body": response.text[:500],
                },
            )
            raise UpstreamFetchError(
                f"Failed to get installation token: {response.status_code}",
                status_code=response.status_code,
                response_body=response.text,
                request_url=str(response.url),
            )

        try:
            data: Dict[str, Any] = response.json()
            if not isinstance(data.get("token"), str) or not data["token"]:
                raise ValueError("response has no token")
            token = InstallationToken(
                installation_id=installation_id,
                token=data["token"],
                expires_at=_parse_expires_at(data.get("expires_at"), self._clock()),
            )
        except (AttributeError, TypeError, ValueError) as e:
            logger.error(
                "Malformed installation token response",
                extra={
                    "installation_id": installation_id,
                    "status_code": response.status_code,
                    "error": str(e),
                },
            )
            raise UpstreamFetchError(
                f"Malformed installation token response: {e}",
                status_code=response.status_code,
                response_body=response.text,
                request_url=str(response.url),
            ) from e

        if self._metrics is not None:
            self._metrics.record_token_issued()

        logger.info(
            "Cached new installation token",
            extra={
                "installation_id": installation_id,
                "expires_at": token.expires_at.isoformat(),
            },
        )
        return token
