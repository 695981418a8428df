"""
Baymax API
==========
FastAPI application entry point. Mount routers here.
"""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from baymax.config import get_settings
from baymax.routers import health_checks, medications, profile, readings, sessions

settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(
    title="Baymax API",
    description="Patient vitals monitoring — analytics and health-check backend",
    version="0.1.0",
    docs_url="/api/docs" if settings.environment != "production" else None,
    redoc_url="/api/redoc" if settings.environment != "production" else None,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(sessions.router)
app.include_router(health_checks.router)
app.include_router(readings.router)
app.include_router(profile.router)
app.include_router(medications.router)


@app.get("/api/v1/health")
async def health_check() -> dict:
    return {"status": "ok", "service": "baymax-api"}
