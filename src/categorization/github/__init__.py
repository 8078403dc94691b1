"""GitHub access for the categorization pipeline.

This package provides:
- InstallationTokenManager: GitHub App installation token cache
- GitHubClient: Pull request diff retrieval with auth-failure classification
"""

from src.categorization.github.client import GitHubClient, is_auth_failure
from src.categorization.github.tokens import (
    InstallationToken,
    InstallationTokenManager,
)

__all__ = [
    "GitHubClient",
    "InstallationToken",
    "InstallationTokenManager",
    "is_auth_failure",
]
