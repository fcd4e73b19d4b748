"""
Database models
"""
from whoop_mcp.models.whoop import (
    WhoopToken, SyncState, Cycle, Recovery, Sleep, Workout
)

__all__ = [
    # Bookkeeping
    "WhoopToken",
    "SyncState",
    # Records
    "Cycle",
    "Recovery",
    "Sleep",
    "Workout",
]
