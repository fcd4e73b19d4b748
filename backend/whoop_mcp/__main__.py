"""
Entry point: ``python -m whoop_mcp``

MCP_MODE=stdio serves the tools on stdin/stdout; anything else starts the
HTTP server.
"""
import asyncio
import logging
import sys

from whoop_mcp.config import settings

logger = logging.getLogger("whoop_mcp")


async def run_stdio():
    from whoop_mcp.database.session import engine, init_db
    from whoop_mcp.mcp.server import mcp
    from whoop_mcp.mcp import tools  # noqa: F401
    from whoop_mcp.scheduler.jobs import shutdown_scheduler, start_scheduler
    from whoop_mcp.services.container import close_services

    await init_db()
    start_scheduler(sweep_sessions=False)
    logger.info("Whoop MCP server running on stdio")
    try:
        await mcp.run_async(transport="stdio")
    finally:
        shutdown_scheduler()
        await close_services()
        await engine.dispose()


def main():
    if settings.MCP_MODE == "stdio":
        # stdout carries the protocol
        logging.basicConfig(
            level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            stream=sys.stderr,
        )
        asyncio.run(run_stdio())
        return

    import uvicorn

    uvicorn.run(
        "whoop_mcp.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
    )


if __name__ == "__main__":
    main()
