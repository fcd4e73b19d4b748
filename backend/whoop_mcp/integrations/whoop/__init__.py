"""
Whoop integration
"""
from whoop_mcp.integrations.whoop.client import (
    TokenState, WhoopAPIError, WhoopClient, WhoopNotAuthenticatedError
)

__all__ = ["TokenState", "WhoopAPIError", "WhoopClient", "WhoopNotAuthenticatedError"]
