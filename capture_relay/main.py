"""
Capture Relay - camera capture notifications over WebSocket

The main FastAPI application entry point.
"""

# Load .env file FIRST, before any other imports
# .env.local overrides .env for machine-specific settings
from pathlib import Path
from dotenv import load_dotenv
_env_root = Path(__file__).parent.parent
load_dotenv(_env_root / ".env", override=True)
load_dotenv(_env_root / ".env.local", override=True)

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from starlette.responses import FileResponse
from starlette.staticfiles import StaticFiles

from .api import router as api_router
from .api import websocket_router
from .config import Settings, settings
from .relay.service import RelayService

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger("relay.main")


def create_app(config: Optional[Settings] = None, relay: Optional[RelayService] = None) -> FastAPI:
    """Build the application around a relay service."""
    config = config or settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # --- Startup ---
        logger.info("Capture Relay starting up...")
        service = relay or RelayService(config)
        app.state.relay = service
        try:
            await service.start()
        except Exception as e:
            logger.error("Failed to start relay: %s", e)

        logger.info("Capture Relay startup complete")

        yield  # Application runs here

        # --- Shutdown ---
        logger.info("Capture Relay shutting down...")
        try:
            await service.stop()
        except Exception as e:
            logger.error("Error stopping relay: %s", e)
        app.state.relay = None
        logger.info("Capture Relay shutdown complete")

    app = FastAPI(
        title="Capture Relay",
        description="Relays camera capture notifications to connected observers.",
        version="0.1.0",
        debug=config.debug,
        lifespan=lifespan,
    )
    app.state.relay = None

    app.include_router(api_router, prefix="/api/v1")
    app.include_router(websocket_router)

    index = config.server.static_dir / "index.html"

    @app.get("/", include_in_schema=False)
    async def observer_page():
        return FileResponse(str(index), media_type="text/html")

    # Directory is created by the capture source on start
    app.mount(
        "/images",
        StaticFiles(directory=str(config.capture.image_dir), check_dir=False),
        name="images",
    )

    return app


app = create_app()


def run() -> None:
    """Console entry point: serve the app with uvicorn."""
    import uvicorn

    logger.info("Listening on %s:%d", settings.server.host, settings.server.port)
    uvicorn.run(
        app,
        host=settings.server.host,
        port=settings.server.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
