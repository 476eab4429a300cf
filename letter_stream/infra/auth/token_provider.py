"""
Bearer token supply for backend calls.
"""

from typing import Optional

from letter_stream.application.ports import CredentialProviderPort


class StaticTokenProvider(CredentialProviderPort):
    """Hands out a token obtained by the login flow."""

    def __init__(self, token: Optional[str] = None):
        self._token = token

    async def get_token(self) -> Optional[str]:
        return self._token
