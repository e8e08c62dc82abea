from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import CONFIG
from .routes import predictions as prediction_routes

app = FastAPI(
    title="Rhythm API",
    version="0.1.0",
    description="Turns logged feeds, naps and diapers into next-step guidance and a daily plan",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CONFIG.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
    allow_credentials=False,
)

app.include_router(prediction_routes.router)


@app.get("/health")
async def health() -> dict:
    return {"status": "ok"}
