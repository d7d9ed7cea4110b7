from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import CONFIG
from .db import initialize_db
from .routes import events as events_routes
from .routes import pregnancies as pregnancy_routes
from .routes import summaries as summary_routes
from .routes import timeline as timeline_routes

initialize_db()

app = FastAPI(
    title="Carelog API",
    version="0.1.0",
    description="Baby care and pregnancy tracking: daily summaries, weekly stats and a merged timeline",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CONFIG.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(events_routes.router)
app.include_router(pregnancy_routes.router)
app.include_router(summary_routes.router)
app.include_router(timeline_routes.router)


@app.get("/health")
async def health() -> dict:
    return {"status": "ok"}


@app.get("/")
async def root() -> dict:
    return {"status": "Carelog API is running", "reference_timezone": CONFIG.reference_timezone}
