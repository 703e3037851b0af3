"""OpenAI chat completions: streamed replies and turn summaries."""
from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, Awaitable, Callable, Dict, List, Optional, TypeVar

from openai import APIError, APIStatusError, AsyncOpenAI

from .prompts import SUMMARY_PROMPT_TEMPLATE

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_RETRIES = 3
INITIAL_BACKOFF_SECONDS = 1.0


def _is_overloaded(exc: Exception) -> bool:
    if isinstance(exc, APIStatusError) and exc.status_code == 503:
        return True
    text = str(exc).lower()
    return "503" in text or "overloaded" in text


def _normalize_history(history: List[Dict[str, str]]) -> List[Dict[str, str]]:
    normalized: List[Dict[str, str]] = []
    for entry in history:
        content = (entry.get("content") or "").strip()
        if not content:
            continue
        role = "user" if entry.get("role") == "user" else "assistant"
        normalized.append({"role": role, "content": content})
    return normalized


class ChatModel:
    def __init__(
        self,
        *,
        api_key: str,
        model: str,
        client: Optional[AsyncOpenAI] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.model = model
        self._client = client or AsyncOpenAI(api_key=api_key)
        self._sleep = sleep

    async def stream_reply(
        self,
        system_prompt: str,
        history: List[Dict[str, str]],
        message: str,
    ) -> AsyncIterator[str]:
        """Yield reply text as it arrives; errors propagate to the caller."""
        messages = [{"role": "system", "content": system_prompt}]
        messages.extend(_normalize_history(history))
        messages.append({"role": "user", "content": message})
        stream = await self._client.chat.completions.create(
            model=self.model,
            messages=messages,
            stream=True,
        )
        async for chunk in stream:
            if not chunk.choices:
                continue
            delta = chunk.choices[0].delta.content
            if delta:
                yield delta

    async def _with_backoff(self, call: Callable[[], Awaitable[T]]) -> T:
        delay = INITIAL_BACKOFF_SECONDS
        attempt = 0
        while True:
            try:
                return await call()
            except APIError as exc:
                if attempt >= MAX_RETRIES or not _is_overloaded(exc):
                    raise
                attempt += 1
                logger.warning(
                    "model overloaded, retrying",
                    extra={"delay_seconds": delay, "attempts_left": MAX_RETRIES - attempt + 1},
                )
                await self._sleep(delay)
                delay *= 2

    async def summarize_conversation(self, user_message: str, reply: str) -> str:
        """Three-sentence plain summary of one exchange, or "" when the model keeps failing."""
        prompt = SUMMARY_PROMPT_TEMPLATE.format(user_message=user_message, reply=reply)

        async def _call():
            return await self._client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                temperature=0.2,
            )

        try:
            completion = await self._with_backoff(_call)
        except APIError:
            logger.exception("conversation summarization failed after retries")
            return ""
        content = completion.choices[0].message.content if completion.choices else None
        return (content or "").strip()
