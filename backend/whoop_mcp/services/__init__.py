"""
Service layer
"""
from whoop_mcp.services.container import WhoopServices, close_services, get_services, set_services
from whoop_mcp.services.credential_store import CredentialStore
from whoop_mcp.services.whoop_store import WhoopStore
from whoop_mcp.services.whoop_sync import WhoopSyncService, decide_sync_action

__all__ = [
    "CredentialStore",
    "WhoopServices",
    "WhoopStore",
    "WhoopSyncService",
    "close_services",
    "decide_sync_action",
    "get_services",
    "set_services",
]
