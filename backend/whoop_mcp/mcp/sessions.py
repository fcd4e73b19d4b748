"""
MCP session bookkeeping

Streamable-HTTP sessions that go idle are evicted by a periodic sweep and
their server-side transport is closed.
"""
import logging
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Dict, List, Optional

import httpx
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from whoop_mcp.config import settings
from whoop_mcp.utils.datetime_helper import utc_now

logger = logging.getLogger(__name__)

SESSION_HEADER = "mcp-session-id"

SessionCloser = Callable[[str], Awaitable[None]]


class SessionRegistry:
    """session id -> last access time"""

    def __init__(
        self,
        ttl: timedelta,
        closer: Optional[SessionCloser] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.ttl = ttl
        self.closer = closer
        self.clock = clock
        self._sessions: Dict[str, datetime] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def touch(self, session_id: str, now: Optional[datetime] = None) -> None:
        """Record activity on a session (registers it if new)"""
        if session_id not in self._sessions:
            logger.info(f"MCP session opened: {session_id}")
        self._sessions[session_id] = now or self.clock()

    def remove(self, session_id: str) -> bool:
        return self._sessions.pop(session_id, None) is not None

    def get(self, session_id: str) -> Optional[datetime]:
        return self._sessions.get(session_id)

    def stale(self, now: Optional[datetime] = None) -> List[str]:
        """Sessions idle for longer than the TTL"""
        now = now or self.clock()
        return [
            session_id
            for session_id, last_access in self._sessions.items()
            if now - last_access > self.ttl
        ]

    async def sweep(self, now: Optional[datetime] = None) -> List[str]:
        """
        Evict idle sessions and close their transports

        Returns:
            evicted session ids
        """
        evicted = self.stale(now)
        for session_id in evicted:
            self.remove(session_id)
            if self.closer is None:
                continue
            try:
                await self.closer(session_id)
            except Exception as e:
                logger.warning(f"Failed to close MCP session {session_id}: {str(e)}")

        if evicted:
            logger.info(f"Evicted {len(evicted)} idle MCP sessions")
        return evicted


class SessionTrackingMiddleware(BaseHTTPMiddleware):
    """Records MCP session activity from the session header"""

    def __init__(self, app, registry: SessionRegistry, path: str = "/mcp"):
        super().__init__(app)
        self.registry = registry
        self.path = path

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)

        if not request.url.path.startswith(self.path):
            return response

        session_id = request.headers.get(SESSION_HEADER) or response.headers.get(SESSION_HEADER)
        if not session_id:
            return response

        if request.method == "DELETE":
            if self.registry.remove(session_id):
                logger.info(f"MCP session closed by client: {session_id}")
        elif response.status_code < 400:
            self.registry.touch(session_id)

        return response


def make_transport_closer(app, path: str = "/mcp") -> SessionCloser:
    """
    Closer that terminates a session the way a client would: DELETE on the endpoint

    Args:
        app: the MCP ASGI app
        path: streamable-HTTP endpoint path
    """

    async def close_session(session_id: str) -> None:
        headers = {SESSION_HEADER: session_id}
        if settings.MCP_API_KEY:
            headers["Authorization"] = f"Bearer {settings.MCP_API_KEY}"

        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://whoop-mcp.internal") as client:
            response = await client.delete(path, headers=headers)
        logger.info(f"Closed idle MCP session {session_id}: {response.status_code}")

    return close_session


session_registry = SessionRegistry(ttl=timedelta(minutes=settings.SESSION_TTL_MINUTES))
