from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging

from broadcast_hub.routers import rooms
from broadcast_hub.routers import signaling
from broadcast_hub.services.hub import SignalingHub
from broadcast_hub.config import settings

logging.basicConfig(level=settings.LOG_LEVEL.upper())
logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    app = FastAPI(title="Broadcast Signaling Hub")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # One hub per application instance
    app.state.hub = SignalingHub()

    app.include_router(signaling.router)
    app.include_router(rooms.router)

    @app.get("/config")
    async def rtc_config():
        """Expose ICE server config to clients.

        Environment variables (optional):
        - STUN_SERVER: e.g. stun:stun.l.google.com:19302
        - TURN_URL: e.g. turn:turn.example.com:3478
        - TURN_USERNAME
        - TURN_PASSWORD
        """
        return {"iceServers": settings.ice_servers()}

    @app.get("/health")
    async def health_check():
        return {"status": "healthy", "message": "Signaling hub is running"}

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    logger.info("Starting signaling hub on %s:%s", settings.HOST, settings.PORT)
    uvicorn.run(app, host=settings.HOST, port=settings.PORT)
