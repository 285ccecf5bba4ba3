"""
Main FastAPI Application
"""

from __future__ import annotations
import logging
import os

from fastapi import FastAPI

from territory import __version__
from territory import rulebook
from territory.routes.api_claims import router as claims_router
from territory.utils.env import env_bool

logging.basicConfig(
    level=logging.DEBUG if env_bool("TERRITORY_DEBUG") else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

app = FastAPI(title="run-territory", version=__version__)
APP_VERSION = os.getenv("APP_VERSION", app.version)

# Include API routers
app.include_router(claims_router)


@app.get("/api/health")
def health():
    return {
        "status": "ok",
        "version": APP_VERSION,
        "rules_version": rulebook.version(),
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8080)
