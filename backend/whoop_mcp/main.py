"""
FastAPI application (HTTP transport)
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from whoop_mcp.config import settings
from whoop_mcp.database.session import engine, init_db
from whoop_mcp.services.container import close_services, get_services

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


# Created before the lifespan so its lifespan can be nested
from whoop_mcp.mcp import get_mcp_app

mcp_app = get_mcp_app()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown, wrapping the MCP session manager lifespan"""
    logger.info(f"{settings.APP_NAME} v{settings.APP_VERSION} starting...")

    await init_db()

    try:
        if await get_services().load_tokens():
            logger.info("Whoop credentials loaded")
        else:
            logger.info("No Whoop credentials stored; use get_auth_url to authorize")
    except Exception as e:
        logger.error(f"Failed to load stored Whoop credentials: {str(e)}")

    from whoop_mcp.scheduler.jobs import start_scheduler
    start_scheduler()

    logger.info(f"{settings.APP_NAME} listening on http://{settings.HOST}:{settings.PORT}/mcp")

    async with mcp_app.lifespan(mcp_app):
        yield

    logger.info(f"{settings.APP_NAME} shutting down...")

    from whoop_mcp.scheduler.jobs import shutdown_scheduler
    shutdown_scheduler()

    await close_services()

    await engine.dispose()
    logger.info("Database connections closed")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Whoop MCP server: cached Whoop recovery, sleep and strain data for AI assistants",
    lifespan=lifespan,
    debug=settings.DEBUG,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Accept", "Authorization", "X-API-Key", "Mcp-Session-Id"],
    expose_headers=["Mcp-Session-Id"],
)


@app.get("/health")
async def health_check():
    """Health check"""
    row = await get_services().store.get_token_row()
    return {"status": "ok", "authenticated": row is not None}


from whoop_mcp.api.v1 import whoop

app.include_router(whoop.router, tags=["Whoop"])

# Streamable HTTP endpoint at /mcp; lifespan managed above
app.mount("", mcp_app)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "whoop_mcp.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
    )
