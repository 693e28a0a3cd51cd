"""Exceptions raised by language model providers."""

from __future__ import annotations


class ProviderError(Exception):
    """Base class for provider failures."""


class MissingAPIKeyError(ProviderError):
    """No API key could be resolved for the provider."""

    def __init__(self, provider: str) -> None:
        super().__init__(f"Missing API key for {provider} provider")
        self.provider = provider


class WatsonxAuthenticationError(ProviderError):
    """The IAM token exchange failed."""
