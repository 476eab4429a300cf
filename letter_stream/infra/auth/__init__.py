"""Credential providers."""

from .token_provider import StaticTokenProvider

__all__ = ["StaticTokenProvider"]
