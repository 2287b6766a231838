import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from runtracker.api.sessions import router as sessions_router
from runtracker.api.best_efforts import router as best_efforts_router
from runtracker.api.deps import SessionRegistry, build_store
from runtracker.db import init_db
from runtracker.core.config import settings

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    # Demo timers live on this loop; release them before it goes away
    app.state.registry.stop_all()


app = FastAPI(lifespan=lifespan)

# Allow CORS for local frontend
origins = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Create DB tables (best_efforts, tracked_runs) on startup
init_db()

# Ensure uploads directory exists
os.makedirs(settings.uploads_dir, exist_ok=True)

app.state.registry = SessionRegistry(build_store(settings), settings)
logger.info(
    "Best efforts backend: %s, unit: %s", settings.best_efforts_backend, settings.distance_unit
)

app.include_router(sessions_router)
app.include_router(best_efforts_router)


@app.get("/")
def root():
    return {"message": "Run tracker backend is running"}
