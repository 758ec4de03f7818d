# chatrelay/main.py

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from chatrelay.core.config import VERSION, settings
from chatrelay.core.errors import ChatError
from chatrelay.core.logging import setup_logging, get_logger
from chatrelay.core.network import access_urls, detect_lan_address
from chatrelay.api.routes import root, health, metrics, rooms, moderation
from chatrelay.api import websocket as websocket_module

# Configure logging first
setup_logging()
logger = get_logger(__name__)

# FastAPI app
app = FastAPI(title="LAN Chat Relay", version=VERSION)

# CORS (LAN clients and the admin page are served from other origins)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# REST routes
app.include_router(root.router)
app.include_router(health.router)
app.include_router(metrics.router)
app.include_router(rooms.router)
app.include_router(moderation.router)

# WebSocket routes
app.include_router(websocket_module.router)


@app.exception_handler(ChatError)
async def chat_error_handler(request: Request, exc: ChatError):
    """Render domain errors as ``{"error", "message", "details"}`` 4xx bodies."""
    logger.info("%s %s -> %d %s", request.method, request.url.path, exc.status_code, exc.code)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.on_event("startup")
async def startup_event():
    logger.info("🚀 Chat relay v%s starting on %s:%s", VERSION, settings.HOST, settings.PORT)
    urls = access_urls(detect_lan_address(), settings.PORT)
    logger.info("📍 Local:     %s", urls["local"])
    logger.info("🌐 LAN:       %s", urls["lan"])
    logger.info("💬 WebSocket: %s", urls["websocket"])
    if not settings.ADMIN_TOKEN:
        logger.warning("ADMIN_TOKEN is not set - admin endpoints are open to the whole network")


def run() -> None:
    import uvicorn
    uvicorn.run("chatrelay.main:app", host=settings.HOST, port=settings.PORT)


if __name__ == "__main__":
    run()

# ============================================================================
# END OF FILE
# ============================================================================
