from __future__ import annotations

import logging
import sqlite3
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .activities import ActivityStore, ActivityValidationError
from .cache import SQLiteCache, UpstashCache
from .chat_history import ChatHistoryStore
from .config import AppConfig, load_config
from .crypto import MessageCipher
from .db import Database
from .llm_client import ChatModel
from .routes import activities as activity_routes
from .routes import analytics as analytics_routes
from .routes import chat as chat_routes

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)


def _field_name(location) -> str:
    parts = [str(part) for part in location if part not in ("body", "query", "path", "header")]
    return ".".join(parts) or "request"


async def _activity_validation_handler(request: Request, exc: ActivityValidationError) -> JSONResponse:
    logger.info("activity rejected", extra={"path": request.url.path, "issues": exc.issues})
    return JSONResponse(status_code=422, content={"detail": "Validation failed", "errors": exc.issues})


async def _request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    issues = [{"field": _field_name(error.get("loc", ())), "message": error.get("msg", "")} for error in exc.errors()]
    return JSONResponse(status_code=422, content={"detail": "Validation failed", "errors": issues})


async def _data_store_handler(request: Request, exc: sqlite3.Error) -> JSONResponse:
    logger.error("data store failure", extra={"path": request.url.path}, exc_info=exc)
    return JSONResponse(status_code=500, content={"error": "Data store failure", "details": str(exc)})


def _build_cache(config: AppConfig, db: Database):
    if config.uses_upstash:
        return UpstashCache(base_url=config.upstash_redis_url, token=config.upstash_redis_token)
    return SQLiteCache(db)


def create_app(
    config: Optional[AppConfig] = None,
    *,
    chat_model: Optional[ChatModel] = None,
    cache=None,
) -> FastAPI:
    """Build the API with its collaborators; nothing is created at import time."""
    config = config or load_config()
    configure_logging(config.log_level)

    db = Database(config.resolved_database_path)
    db.initialize()
    cipher = MessageCipher(config.chat_encryption_key)

    app = FastAPI(
        title="BebeKnock API",
        version="0.1.0",
        description="Baby activity tracking with period summaries and an AI consultant",
    )
    app.state.config = config
    app.state.db = db
    app.state.store = ActivityStore(db)
    app.state.cipher = cipher
    app.state.history = ChatHistoryStore(db, cipher, limit=config.chat_history_limit)
    app.state.cache = cache if cache is not None else _build_cache(config, db)
    app.state.chat_model = chat_model or ChatModel(api_key=config.openai_api_key, model=config.openai_model)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
        allow_credentials=False,
    )
    app.add_exception_handler(ActivityValidationError, _activity_validation_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
    app.add_exception_handler(sqlite3.Error, _data_store_handler)

    app.include_router(activity_routes.router)
    app.include_router(analytics_routes.router)
    app.include_router(chat_routes.router)

    @app.get("/health")
    async def health() -> dict:
        return {"status": "ok"}

    logger.info("app created", extra={"database": str(db.path), "cache": type(app.state.cache).__name__})
    return app
