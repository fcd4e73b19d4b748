"""
Database configuration and session management
"""

from whoop_mcp.database.session import engine, init_db
from whoop_mcp.database.base import Base

__all__ = ["engine", "init_db", "Base"]
