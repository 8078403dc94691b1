"""Error taxonomy for the categorization pipeline.

Every failure the pipeline can surface to a caller is a CategorizationError
carrying the HTTP status the API layer responds with. Lower layers wrap
third-party exceptions (httpx, LangChain provider SDKs, asyncpg) into this
hierarchy so the orchestrator only has to reason about these types.

Source:
- src/categorization/github/client.py (AuthenticationError, UpstreamFetchError)
- src/categorization/providers/gateway.py (ProviderSetupError, ModelInvocationError)
- src/categorization/orchestrator.py (all terminal errors)
"""

from typing import Optional


class CategorizationError(Exception):
    """Base class for all categorization failures.

    Attributes:
        message: Human-readable error description.
        http_status: HTTP status code reported to the API caller.
    """

    http_status: int = 500

    def __init__(self, message: str, http_status: Optional[int] = None):
        self.message = message
        if http_status is not None:
            self.http_status = http_status
        super().__init__(message)


class ConfigurationError(CategorizationError):
    """Organization, provider, model, or credential misconfiguration.

    Never retried. Raised before a pull request enters ``processing``
    whenever possible so its ai_status is left untouched.
    """

    http_status = 400


class ProviderSetupError(ConfigurationError):
    """An AI client could not be constructed or a model could not be resolved."""

    http_status = 500

    def __init__(self, message: str, provider: str, cause: Optional[Exception] = None):
        self.provider = provider
        self.cause = cause
        super().__init__(message)


class NotFoundError(CategorizationError):
    """A record the request depends on does not exist."""

    http_status = 404


class GitHubAPIError(CategorizationError):
    """Raised when a GitHub API request fails.

    Attributes:
        message: Human-readable error description.
        status_code: HTTP status code from the GitHub response, if any.
        response_body: Response body from GitHub API.
        request_url: The URL that was requested.
    """

    http_status = 500

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
        request_url: Optional[str] = None,
    ):
        self.status_code = status_code
        self.response_body = response_body
        self.request_url = request_url
        super().__init__(message)


class AuthenticationError(GitHubAPIError):
    """The installation token was rejected as expired or invalid.

    The orchestrator reacts by invalidating the cached token and retrying
    the request exactly once with a freshly acquired token.
    """


class UpstreamFetchError(GitHubAPIError):
    """Any non-authentication failure while talking to GitHub."""


class RateLimitError(UpstreamFetchError):
    """Raised when GitHub API rate limit is exceeded.

    Attributes:
        reset_at: Unix timestamp when the rate limit resets.
    """

    def __init__(self, message: str, reset_at: Optional[int] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.reset_at = reset_at


class ModelInvocationError(CategorizationError):
    """The LLM generation call failed.

    The provider's message is carried verbatim for diagnostics. Not retried.
    """

    http_status = 500

    def __init__(self, message: str, provider: str, cause: Optional[Exception] = None):
        self.provider = provider
        self.cause = cause
        super().__init__(message)


class ParseError(CategorizationError):
    """The model reply does not follow the ``Category: / Confidence:`` grammar."""

    http_status = 400

    def __init__(self, message: str, response_text: str = ""):
        self.response_text = response_text
        super().__init__(message)


class ResolutionError(CategorizationError):
    """The suggested category matched no configured category.

    Attributes:
        suggested_name: Category name as written by the model.
        record_message: Text written to the pull request's error_message;
            defaults to the caller-facing message.
    """

    http_status = 404

    def __init__(
        self,
        message: str,
        suggested_name: str,
        record_message: Optional[str] = None,
    ):
        self.suggested_name = suggested_name
        self.record_message = record_message or message
        super().__init__(message)


class DatabaseError(CategorizationError):
    """Raised when a persistence operation fails.

    Attributes:
        message: Human-readable error description.
        original_error: The underlying exception, if any.
    """

    http_status = 500

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        self.original_error = original_error
        super().__init__(message)
