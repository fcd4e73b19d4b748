"""
Whoop MCP server: local cache and sync engine for Whoop recovery, sleep and strain data
"""

__version__ = "1.0.0"
