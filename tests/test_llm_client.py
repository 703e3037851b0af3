from __future__ import annotations

import asyncio
from types import SimpleNamespace

import httpx
from openai import APIError

from bebeknock.llm_client import ChatModel

REQUEST = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")


def _overloaded() -> APIError:
    return APIError("503 Service Unavailable: model is overloaded", REQUEST, body=None)


def _completion(text: str):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=text))])


def _chunk(text):
    return SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=text))])


class FakeCompletions:
    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.calls = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def _model(outcomes):
    completions = FakeCompletions(outcomes)
    client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    delays = []

    async def record_sleep(seconds):
        delays.append(seconds)

    model = ChatModel(api_key="sk-test", model="gpt-4o-mini", client=client, sleep=record_sleep)
    return model, completions, delays


def test_stream_joins_deltas_and_drops_empty_history() -> None:
    async def stream():
        for piece in (_chunk("안녕"), SimpleNamespace(choices=[]), _chunk(None), _chunk("하세요")):
            yield piece

    model, completions, _ = _model([stream()])

    async def collect():
        history = [{"role": "user", "content": "  "}, {"role": "model", "content": "이전 답변"}]
        return [piece async for piece in model.stream_reply("시스템", history, "질문")]

    assert asyncio.run(collect()) == ["안녕", "하세요"]
    sent = completions.calls[0]
    assert sent["stream"] is True
    assert sent["messages"] == [
        {"role": "system", "content": "시스템"},
        {"role": "assistant", "content": "이전 답변"},
        {"role": "user", "content": "질문"},
    ]


def test_summary_retries_with_doubling_backoff() -> None:
    model, completions, delays = _model([_overloaded(), _overloaded(), _completion("  요약 문장.  ")])
    assert asyncio.run(model.summarize_conversation("질문", "답변")) == "요약 문장."
    assert delays == [1.0, 2.0]
    assert "[사용자]: 질문" in completions.calls[0]["messages"][0]["content"]


def test_summary_gives_up_after_three_retries() -> None:
    model, completions, delays = _model([_overloaded() for _ in range(4)])
    assert asyncio.run(model.summarize_conversation("질문", "답변")) == ""
    assert len(completions.calls) == 4
    assert delays == [1.0, 2.0, 4.0]


def test_other_api_errors_are_not_retried() -> None:
    model, completions, delays = _model([APIError("invalid request", REQUEST, body=None)])
    assert asyncio.run(model.summarize_conversation("질문", "답변")) == ""
    assert len(completions.calls) == 1
    assert delays == []
