import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from config import settings

logging.basicConfig(level=settings.log_level.upper())
logger = logging.getLogger(__name__)

from routers.game_router import router as game_router
from routers.ws_router import router as ws_router, SessionGateway
from services.presence import PresenceMonitor
from services.room_store import RoomStore


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Undercover backend starting up...")
    store = RoomStore()
    presence = PresenceMonitor()
    gateway = SessionGateway(store, presence=presence)
    app.state.room_store = store
    app.state.gateway = gateway
    presence.start(gateway.expire)
    yield
    await presence.stop()
    logger.info(f"Backend shutting down ({len(store)} live rooms dropped).")


app = FastAPI(
    title="Undercover",
    version="0.1.0",
    description="Real-time session server for the party game \"Who's the Undercover\"",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "OPTIONS"],
    allow_headers=["Content-Type"],
)


@app.get("/health")
async def health_check():
    return {"status": "ok", "service": "undercover", "version": "0.1.0"}


app.include_router(game_router, prefix="/api")
app.include_router(ws_router)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=settings.debug)
