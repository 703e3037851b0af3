"""Accessors for the collaborators built by ``create_app``."""
from __future__ import annotations

from fastapi import Request

from .activities import ActivityStore
from .chat_history import ChatHistoryStore
from .config import AppConfig
from .db import Database
from .llm_client import ChatModel


def get_config(request: Request) -> AppConfig:
    return request.app.state.config


def get_db(request: Request) -> Database:
    return request.app.state.db


def get_store(request: Request) -> ActivityStore:
    return request.app.state.store


def get_history(request: Request) -> ChatHistoryStore:
    return request.app.state.history


def get_cache(request: Request):
    return request.app.state.cache


def get_chat_model(request: Request) -> ChatModel:
    return request.app.state.chat_model
