"""AI-assisted pull request categorization service.

This package classifies GitHub pull requests into organization-defined
investment-area categories, providing:
- GitHub App installation token lifecycle management
- Pull request diff retrieval with authentication-failure retry
- A uniform gateway over OpenAI, Google, and Anthropic chat models
- Strict-grammar prompts, tolerant response parsing, and fuzzy category matching
- A per-request state machine persisted on the pull request record
"""
