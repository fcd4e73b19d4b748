"""
Whoop credential persistence

Tokens are always written encrypted; reads accept legacy plaintext rows.
"""
import logging
from typing import Optional

from whoop_mcp.integrations.base.credentials import CredentialSink
from whoop_mcp.schemas.whoop import WhoopTokens
from whoop_mcp.services.whoop_store import WhoopStore
from whoop_mcp.utils.crypto import decrypt_stored, encrypt

logger = logging.getLogger(__name__)


class CredentialStore(CredentialSink):
    """Encrypted token storage backed by the singleton tokens row"""

    def __init__(self, store: WhoopStore, secret: Optional[str] = None):
        self.store = store
        self.secret = secret

    async def save_tokens(self, tokens: WhoopTokens) -> None:
        """
        Encrypt and persist a token pair

        Raises:
            EncryptionConfigError: no encryption secret configured
        """
        await self.store.save_token_row(
            access_token=encrypt(tokens.access_token, self.secret),
            refresh_token=encrypt(tokens.refresh_token, self.secret),
            expires_at=tokens.expires_at,
        )
        logger.info("Saved Whoop tokens")

    async def load_tokens(self) -> Optional[WhoopTokens]:
        """
        Load and decrypt the stored token pair

        Returns:
            tokens, or None when nothing is stored

        Raises:
            EncryptionConfigError: encrypted row but no secret configured
            InvalidEncryptedPayload: stored ciphertext is corrupt
        """
        row = await self.store.get_token_row()
        if row is None:
            return None

        return WhoopTokens(
            access_token=decrypt_stored(row.access_token, self.secret),
            refresh_token=decrypt_stored(row.refresh_token, self.secret),
            expires_at=row.expires_at,
        )

    # Short names used by callers outside the gateway
    save = save_tokens
    load = load_tokens
