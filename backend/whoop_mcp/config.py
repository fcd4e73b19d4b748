"""
Application settings
"""
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings"""

    # App
    APP_NAME: str = "whoop-mcp-server"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    HOST: str = "0.0.0.0"
    PORT: int = 3000
    MCP_MODE: str = "http"  # http | stdio

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./whoop.db"

    # Whoop OAuth
    WHOOP_CLIENT_ID: str = ""
    WHOOP_CLIENT_SECRET: str = ""
    WHOOP_REDIRECT_URI: str = "http://localhost:3000/callback"
    WHOOP_REQUEST_TIMEOUT: float = 30.0

    # Token encryption at rest (falls back to WHOOP_CLIENT_SECRET)
    ENCRYPTION_SECRET: str = ""

    # MCP transport
    MCP_API_KEY: str = ""
    SESSION_TTL_MINUTES: int = 30
    SESSION_SWEEP_INTERVAL_MINUTES: int = 5

    # Background smart sync (0 = disabled)
    AUTO_SYNC_INTERVAL_MINUTES: int = 0

    # Logging
    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore"
    )

    @property
    def encryption_secret(self) -> Optional[str]:
        """Secret used to derive the token encryption key"""
        return self.ENCRYPTION_SECRET or self.WHOOP_CLIENT_SECRET or None


settings = Settings()
