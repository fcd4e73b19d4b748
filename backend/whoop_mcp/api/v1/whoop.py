"""
Whoop OAuth and MCP discovery routes
"""
import asyncio
import logging
from typing import Optional, Set

from fastapi import APIRouter, HTTPException, Query, Request, status
from fastapi.responses import HTMLResponse, PlainTextResponse

from whoop_mcp.services.container import WhoopServices, get_services

router = APIRouter()
logger = logging.getLogger(__name__)

# Strong references to fire-and-forget sync tasks
_background_tasks: Set[asyncio.Task] = set()


async def _initial_sync(services: WhoopServices):
    """Full 90-day sync after a fresh authorization"""
    try:
        stats = await services.sync.full_sync()
        logger.info(f"Initial Whoop sync finished: {stats.model_dump()}")
    except Exception as e:
        logger.error(f"Initial Whoop sync failed: {str(e)}")


def launch_initial_sync(services: WhoopServices) -> asyncio.Task:
    task = asyncio.create_task(_initial_sync(services))
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)
    return task


SUCCESS_HTML = """
<!DOCTYPE html>
<html>
<head>
    <title>Whoop Connected</title>
    <meta charset="utf-8">
    <style>
        body {
            font-family: -apple-system, BlinkMacSystemFont, sans-serif;
            display: flex;
            justify-content: center;
            align-items: center;
            height: 100vh;
            margin: 0;
            background: #101518;
        }
        .card {
            background: white;
            padding: 40px;
            border-radius: 10px;
            text-align: center;
        }
        h1 { color: #333; margin-bottom: 10px; }
        p { color: #666; }
    </style>
</head>
<body>
    <div class="card">
        <h1>Authorization successful!</h1>
        <p>You can close this window. Your Whoop data is syncing in the background.</p>
    </div>
</body>
</html>
"""


@router.get("/callback")
async def whoop_oauth_callback(
    code: Optional[str] = Query(None, description="Authorization code"),
    state: Optional[str] = Query(None, description="State issued with the authorization URL"),
):
    """
    Whoop OAuth callback

    Validates the state, exchanges the code, stores the tokens and starts a
    background full sync.
    """
    if not code:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing authorization code")

    services = get_services()
    if not services.client.consume_state(state):
        logger.warning("Whoop OAuth callback with unknown or missing state")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid state parameter")

    try:
        tokens = await services.client.exchange_code_for_token(code)
        await services.credentials.save(tokens)
    except Exception as e:
        logger.error(f"Whoop OAuth callback failed: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Authorization failed. Please try again.",
        )

    logger.info("Whoop authorization successful")
    launch_initial_sync(services)
    return HTMLResponse(content=SUCCESS_HTML)


# ============ MCP client discovery ============

@router.get("/.well-known/oauth-protected-resource")
@router.get("/.well-known/oauth-protected-resource/mcp")
async def oauth_protected_resource(request: Request):
    """Advertise no authorization servers (the endpoint uses an API key, if any)"""
    return {"resource": f"https://{request.url.hostname}", "authorization_servers": []}


@router.get("/.well-known/oauth-authorization-server")
async def oauth_authorization_server():
    return {}


@router.post("/register")
async def register_client():
    return {}


@router.get("/sse")
async def deprecated_sse():
    return PlainTextResponse(
        "SSE endpoint deprecated. Use /mcp with Streamable HTTP transport.",
        status_code=status.HTTP_410_GONE,
    )
