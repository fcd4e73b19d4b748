"""
Credential persistence interface
"""
from abc import ABC, abstractmethod
from typing import Optional

from whoop_mcp.schemas.whoop import WhoopTokens


class CredentialSink(ABC):
    """
    Destination for refreshed OAuth tokens.

    The API client holds a sink and calls ``save_tokens`` after every refresh,
    before the request that triggered the refresh proceeds.
    """

    @abstractmethod
    async def save_tokens(self, tokens: WhoopTokens) -> None:
        """
        Persist a token pair

        Args:
            tokens: tokens to store
        """
        pass

    @abstractmethod
    async def load_tokens(self) -> Optional[WhoopTokens]:
        """
        Load the stored token pair

        Returns:
            tokens, or None if never authorized
        """
        pass
