# ticketdesk/main.py
import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles
from fastapi.middleware.cors import CORSMiddleware

from ticketdesk.api.routes import (
    health,
    auth,
    users,
    tickets,
    comments,
)

from ticketdesk.core.config import Settings, settings as default_settings
from ticketdesk.core.errors import register_error_handlers
from ticketdesk.core.logging import setup_logging, RequestIdMiddleware
from ticketdesk.db.session import Database


def _mount_ui(app: FastAPI, conf: Settings) -> None:
    base_dir = Path(__file__).resolve().parents[1]
    ui_dist = Path(conf.ui_dist_dir or os.getenv("UI_DIST_DIR") or (base_dir / "front" / "dist"))

    if ui_dist.exists():
        app.mount("/", StaticFiles(directory=str(ui_dist), html=True), name="ui")
    else:
        @app.get("/", include_in_schema=False)
        def root():
            return {"status": "ok", "ui": "not built", "build_at": str(ui_dist)}


def create_app(conf: Optional[Settings] = None) -> FastAPI:
    conf = conf or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # БД відкриваємо на старті й закриваємо на зупинці
        db = Database(conf.database_url, echo=conf.db_echo)
        db.connect()
        if conf.db_create_all:
            await db.create_all()
        app.state.db = db
        try:
            yield
        finally:
            await db.dispose()

    app = FastAPI(
        title="Ticket Desk",
        version="0.1.0",
        docs_url="/api/docs",
        redoc_url=None,
        openapi_url="/api/openapi.json",
        lifespan=lifespan,
    )
    app.state.settings = conf

    # ==== Middlewares ====
    app.add_middleware(
        CORSMiddleware,
        allow_origins=conf.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestIdMiddleware)

    register_error_handlers(app)

    # ==== API під /api ====
    app.include_router(health.router,   prefix="/api",         tags=["health"])
    app.include_router(auth.router,     prefix="/api/auth",    tags=["auth"])
    app.include_router(users.router,    prefix="/api/users",   tags=["users"])
    app.include_router(tickets.router,  prefix="/api/tickets", tags=["tickets"])
    app.include_router(comments.router, prefix="/api/tickets", tags=["comments"])

    # ==== Статика (SPA) ====
    _mount_ui(app, conf)
    return app


setup_logging(default_settings.log_level)
app = create_app()
