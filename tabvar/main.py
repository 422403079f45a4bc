"""Tabvar FastAPI backend: main application entry point."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tabvar import config
from tabvar.routers.crags import crags_router
from tabvar.routers.external_refs import external_refs_router
from tabvar.routers.search import search_router
from tabvar.routers.sync import sync_router

from tabvar.db import connection, migrations
from tabvar.sloper import SloperSyncEngine

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("tabvar")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle."""
    logger.info("Tabvar backend starting up")

    # 1. Initialize DB connection
    db = await connection.get_connection()

    # 2. Run migrations
    await migrations.run_migrations(db)

    # 3. Sloper sync engine (runs only on request)
    app.state.sloper_sync = SloperSyncEngine(db)
    if not config.SLOPER_URL:
        logger.warning("TABVAR_SLOPER_URL is not set; Sloper syncs will fail")

    yield

    logger.info("Tabvar backend shutting down")
    await connection.close_connection()


app = FastAPI(
    title="Tabvar API",
    description="Backend API for the Tabvar crag and route database",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS: allow the frontend dev server
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        config.FRONTEND_ORIGIN,
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routers
app.include_router(sync_router)
app.include_router(external_refs_router)
app.include_router(crags_router)
app.include_router(search_router)


@app.get("/api/health")
def health():
    """Health check endpoint."""
    return {
        "status": "ok",
        "db": "connected" if connection.is_connected() else "disconnected",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("tabvar.main:app", host=config.HOST, port=config.PORT)
