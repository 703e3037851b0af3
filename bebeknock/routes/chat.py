"""Chat endpoints: streamed answers plus shared history."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncIterator, Dict, List, Optional, Union

from fastapi import APIRouter, Depends, Header, HTTPException, Query
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.background import BackgroundTask

from ..activities import ActivityStore
from ..auth import AuthContext, get_auth_context, require_child_access
from ..chat_context import build_chat_context
from ..chat_history import ChatHistoryStore
from ..config import AppConfig
from ..db import Database
from ..dependencies import get_cache, get_chat_model, get_config, get_db, get_history, get_store
from ..llm_client import ChatModel
from ..schemas import ChatRequest, ShareTurnRequest

router = APIRouter(prefix="/api/chat", tags=["chat"])
logger = logging.getLogger(__name__)

STREAM_ERROR_MESSAGE = "죄송해요, 응답 중 오류가 발생했어요. 다시 시도해주세요."


def _resolve_baby_id(body_value: Optional[Union[int, str]], header_value: Optional[str]) -> int:
    candidate = body_value if body_value is not None else header_value
    if candidate in (None, ""):
        raise HTTPException(status_code=401, detail="Unauthorized or missing baby id.")
    try:
        return int(candidate)
    except (TypeError, ValueError) as exc:
        raise HTTPException(status_code=401, detail="Unauthorized or missing baby id.") from exc


async def summarize_turn(
    chat_model: ChatModel,
    history: ChatHistoryStore,
    turn_id: int,
    message: str,
    outcome: Dict[str, str],
) -> None:
    """Runs after the response is sent; never raises."""
    reply = outcome.get("reply") or ""
    if not reply:
        return
    try:
        summary = await chat_model.summarize_conversation(message, reply)
        if summary:
            await asyncio.to_thread(history.save_summary, turn_id, summary)
    except Exception:
        logger.exception("turn summarization failed", extra={"turn_id": turn_id})


async def _relay_reply(
    chat_model: ChatModel,
    history: ChatHistoryStore,
    *,
    turn_id: int,
    child_id: int,
    system_prompt: str,
    prior_turns: List[Dict[str, str]],
    message: str,
    outcome: Dict[str, str],
) -> AsyncIterator[str]:
    chunks: List[str] = []
    try:
        async for piece in chat_model.stream_reply(system_prompt, prior_turns, message):
            chunks.append(piece)
            yield piece
    except Exception:
        logger.exception("chat stream failed", extra={"child_id": child_id, "turn_id": turn_id})
        yield STREAM_ERROR_MESSAGE
        return

    reply = "".join(chunks)
    if reply:
        await asyncio.to_thread(history.save_reply, turn_id, reply)
        outcome["reply"] = reply


@router.post("")
async def chat(
    payload: ChatRequest,
    x_baby_id: Optional[str] = Header(None),
    auth: AuthContext = Depends(get_auth_context),
    db: Database = Depends(get_db),
    store: ActivityStore = Depends(get_store),
    history: ChatHistoryStore = Depends(get_history),
    cache: Any = Depends(get_cache),
    chat_model: ChatModel = Depends(get_chat_model),
    config: AppConfig = Depends(get_config),
):
    child_id = _resolve_baby_id(payload.baby_id, x_baby_id)
    child = await asyncio.to_thread(require_child_access, db, auth, child_id, hide_existence=True)
    logger.info(
        "child-scoped request",
        extra={"method": "POST", "path": "/api/chat", "child_id": child_id},
    )

    message = payload.messages[-1].content
    prior_turns = [entry.model_dump() for entry in payload.messages[:-1]]
    try:
        system_prompt = await build_chat_context(
            store=store,
            history=history,
            cache=cache,
            config=config,
            child=child,
            user_id=auth.user_id,
            user_name=auth.name,
            relation=auth.relation_for(child["family_id"]),
        )
        turn_id = await asyncio.to_thread(history.record_user_message, child_id, auth.user_id, message)
    except Exception as exc:
        logger.exception("chat setup failed", extra={"child_id": child_id})
        return JSONResponse(status_code=500, content={"error": "Internal Server Error", "details": str(exc)})

    outcome: Dict[str, str] = {}
    stream = _relay_reply(
        chat_model,
        history,
        turn_id=turn_id,
        child_id=child_id,
        system_prompt=system_prompt,
        prior_turns=prior_turns,
        message=message,
        outcome=outcome,
    )
    return StreamingResponse(
        stream,
        media_type="text/plain; charset=utf-8",
        background=BackgroundTask(summarize_turn, chat_model, history, turn_id, message, outcome),
    )


@router.get("/history")
def chat_history(
    baby_id: int = Query(..., alias="babyId"),
    auth: AuthContext = Depends(get_auth_context),
    db: Database = Depends(get_db),
    history: ChatHistoryStore = Depends(get_history),
) -> Dict[str, Any]:
    require_child_access(db, auth, baby_id, hide_existence=True)
    logger.info(
        "child-scoped request",
        extra={"method": "GET", "path": "/api/chat/history", "child_id": baby_id},
    )
    return {"messages": history.visible_history(baby_id, auth.user_id)}


@router.post("/share")
def share_turn(
    payload: ShareTurnRequest,
    auth: AuthContext = Depends(get_auth_context),
    db: Database = Depends(get_db),
    history: ChatHistoryStore = Depends(get_history),
) -> Dict[str, Any]:
    turn = history.get_turn(payload.message_id)
    if turn is None:
        raise HTTPException(status_code=404, detail="Message not found.")
    require_child_access(db, auth, turn.child_id)
    if turn.user_id != auth.user_id:
        raise HTTPException(status_code=403, detail="Only the author can change sharing.")
    updated = history.set_shared(turn.id, auth.user_id, payload.is_shared)
    return {"id": updated.id, "isShared": updated.is_shared, "sharedAt": updated.shared_at}
