# main.py
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from core.providers import init_providers, shutdown_providers
from core.settings import get_settings
from health.router import router as health_router

# ---------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------

logging.basicConfig(
    level=getattr(logging, get_settings().log_level, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


# ---------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    init_providers(app)
    try:
        yield
    finally:
        shutdown_providers(app)


app = FastAPI(title="Storage Service", lifespan=lifespan)

app.include_router(health_router)


@app.get("/")
async def root():
    return {"status": "ok", "message": "storage service running"}


# ---------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------

if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
