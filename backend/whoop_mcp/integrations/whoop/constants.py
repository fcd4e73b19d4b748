"""
Whoop constants
"""
from datetime import timedelta

from whoop_mcp.schemas.whoop import RecordKind

# Whoop API endpoints
WHOOP_API_BASE = "https://api.prod.whoop.com/developer"
WHOOP_AUTH_BASE = "https://api.prod.whoop.com/oauth/oauth2"
WHOOP_AUTH_URL = f"{WHOOP_AUTH_BASE}/auth"
WHOOP_TOKEN_URL = f"{WHOOP_AUTH_BASE}/token"

# Resource paths (relative to WHOOP_API_BASE)
PROFILE_PATH = "/v2/user/profile/basic"
BODY_MEASUREMENT_PATH = "/v2/user/measurement/body"

COLLECTION_PATHS = {
    RecordKind.CYCLE: "/v2/cycle",
    RecordKind.RECOVERY: "/v2/recovery",
    RecordKind.SLEEP: "/v2/activity/sleep",
    RecordKind.WORKOUT: "/v2/activity/workout",
}

# Maximum page size accepted by the collection endpoints
PAGE_LIMIT = 25

# Refresh the access token when it expires within this window
TOKEN_REFRESH_MARGIN = timedelta(minutes=5)

# OAuth scopes
WHOOP_SCOPES = [
    "read:profile",
    "read:body_measurement",
    "read:cycles",
    "read:recovery",
    "read:sleep",
    "read:workout",
    "offline",
]
