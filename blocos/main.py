"""FastAPI application entry point."""
import logging
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from blocos.config import settings
from blocos.database import Base, engine

# Import routers
from blocos.routers import events, overrides

# Import all models so Base.metadata knows about them
from blocos.models.event import BaseEvent                # noqa: F401
from blocos.models.override import UserEventOverride     # noqa: F401

logging.basicConfig(level=settings.LOG_LEVEL)

app = FastAPI(
    title="Blocos",
    description="Carnival bloco calendar — events and per-user attendance overrides",
    version="0.1.0",
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routers
app.include_router(events.router, prefix="/api/events", tags=["Events"])
app.include_router(overrides.router, prefix="/api/overrides", tags=["Overrides"])


@app.on_event("startup")
def on_startup():
    """Create database tables on startup (for SQLite dev mode)."""
    if settings.DATABASE_URL.startswith("sqlite"):
        Base.metadata.create_all(bind=engine)


@app.get("/api/health")
def health_check():
    return {"status": "ok"}
