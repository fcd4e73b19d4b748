"""
Shared integration interfaces
"""
from whoop_mcp.integrations.base.credentials import CredentialSink

__all__ = ["CredentialSink"]
