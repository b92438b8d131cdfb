from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from datetime import timedelta
import asyncio
import logging

from backend.app.core.config import settings
from backend.app.core.database import AsyncSessionLocal, init_models
from backend.app.api.local import router as local_router
from backend.app.api.online import router as online_router
from backend.app.services.game_service import game_service

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)


# --- LIFESPAN MANAGER (Schema + Janitor) ---
async def abandoned_game_watcher():
    """Background task that finishes online games nobody is playing anymore"""
    abandon_after = timedelta(minutes=settings.online.abandon_after_minutes)
    while True:
        try:
            async with AsyncSessionLocal() as db:
                expired = await game_service.expire_abandoned_games(db, abandon_after)
            if expired:
                logger.info("Expired %d abandoned game(s): %s", len(expired), expired)
        except Exception as e:
            logger.error("Janitor loop error: %s", e)

        await asyncio.sleep(settings.online.janitor_interval_seconds)

@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: make sure the tables exist
    logger.info("Initializing database schema...")
    await init_models()

    janitor = asyncio.create_task(abandoned_game_watcher())

    yield

    janitor.cancel()
# -------------------------------------------------

app = FastAPI(title="Connect Four", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://localhost:3000"], # Allow Vite (5173) and React default (3000)
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routers
app.include_router(local_router, prefix="/local", tags=["Local"])
app.include_router(online_router, prefix="/online", tags=["Online"])


@app.get("/health")
async def health():
    return {"status": "ok"}
