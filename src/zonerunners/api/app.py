"""
FastAPI application factory for the Zone Runners API.
"""

import os
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from zonerunners.api.sessions import SessionManager
from zonerunners.api.routers import games, runners, world

# Load .env: project root first, then CWD
_project_root = Path(__file__).resolve().parents[3]  # src/zonerunners/api/app.py → project root
load_dotenv(_project_root / ".env")
load_dotenv(Path.cwd() / ".env")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    application = FastAPI(
        title="Zone Runners API",
        description="REST API for the Zone Runners idle progression engine",
        version="0.1.0",
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    db_path = os.environ.get("ZONERUNNERS_DB_PATH", "data/zonerunners.db")
    os.makedirs(os.path.dirname(db_path) or ".", exist_ok=True)
    application.state.session_manager = SessionManager(db_path=db_path)

    application.include_router(games.router, prefix="/api/games", tags=["games"])
    application.include_router(runners.router, prefix="/api/runners", tags=["runners"])
    application.include_router(world.router, prefix="/api/world", tags=["world"])

    @application.get("/api/health")
    def health_check():
        return {"status": "ok"}

    return application


app = create_app()
