"""
FastMCP server configuration

Streamable-HTTP transport at /mcp with optional API key auth.
"""
import logging
import secrets

from fastmcp import FastMCP
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

from whoop_mcp.config import settings
from whoop_mcp.mcp.sessions import SessionTrackingMiddleware, make_transport_closer, session_registry

logger = logging.getLogger(__name__)

MCP_PATH = "/mcp"


class APIKeyAuthMiddleware(BaseHTTPMiddleware):
    """API key auth for the MCP endpoint"""

    async def dispatch(self, request, call_next):
        if request.method == "OPTIONS":
            return await call_next(request)

        if not settings.MCP_API_KEY:
            return await call_next(request)

        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            if secrets.compare_digest(auth_header[7:], settings.MCP_API_KEY):
                return await call_next(request)

        # Some clients only support a custom header
        api_key = request.headers.get("X-API-Key", "")
        if api_key and secrets.compare_digest(api_key, settings.MCP_API_KEY):
            return await call_next(request)

        client_host = request.client.host if request.client else "unknown"
        logger.warning(f"MCP auth failed from {client_host}")
        return JSONResponse(
            status_code=401,
            content={
                "jsonrpc": "2.0",
                "id": "auth-error",
                "error": {
                    "code": -32001,
                    "message": "Unauthorized: Invalid or missing API key"
                }
            }
        )


class AcceptHeaderMiddleware:
    """
    Append text/event-stream to the Accept header of POST /mcp

    Streamable-HTTP rejects POSTs that do not accept SSE; some clients only
    send application/json.
    """

    def __init__(self, app, path: str = MCP_PATH):
        self.app = app
        self.path = path

    async def __call__(self, scope, receive, send):
        if (
            scope["type"] == "http"
            and scope["method"] == "POST"
            and scope["path"].startswith(self.path)
        ):
            headers = list(scope["headers"])
            accept = b""
            for name, value in headers:
                if name == b"accept":
                    accept = value
                    break
            if b"text/event-stream" not in accept:
                new_accept = accept + b", text/event-stream" if accept else b"application/json, text/event-stream"
                headers = [(n, v) for n, v in headers if n != b"accept"]
                headers.append((b"accept", new_accept))
                scope = dict(scope, headers=headers)

        await self.app(scope, receive, send)


mcp = FastMCP(
    name="whoop-mcp-server",
    instructions="""
    Access to the user's Whoop data: recovery, sleep, strain and workouts.

    Available tools:
    - get_today: today's recovery, last night's sleep and current strain
    - get_recovery_trends: recovery, HRV and resting heart rate over time
    - get_sleep_analysis: sleep duration, performance and efficiency over time
    - get_strain_history: daily strain, calories and workouts over time
    - sync_data: pull fresh data from Whoop
    - get_auth_url: link a Whoop account

    Data is cached locally and refreshed from Whoop at most hourly.
    """
)


def get_mcp_app():
    """MCP ASGI app with session tracking, Accept shim and optional API key auth"""
    # Registers the tools on the server
    from . import tools  # noqa: F401

    mcp_app = mcp.http_app(path=MCP_PATH)

    session_registry.closer = make_transport_closer(mcp_app, MCP_PATH)
    mcp_app.add_middleware(SessionTrackingMiddleware, registry=session_registry, path=MCP_PATH)

    if settings.MCP_API_KEY:
        mcp_app.add_middleware(APIKeyAuthMiddleware)
        logger.info(f"MCP Server initialized with API Key auth: {mcp.name}")
    else:
        logger.warning(f"MCP Server initialized WITHOUT auth: {mcp.name}")

    mcp_app.add_middleware(AcceptHeaderMiddleware, path=MCP_PATH)

    return mcp_app
