from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from bebeknock.db import to_db_timestamp, utc_now
from bebeknock.routes.chat import STREAM_ERROR_MESSAGE

from .helpers import FakeChatModel, build_client


def _body(child_id=None, *messages: str) -> dict:
    texts = messages or ("오늘 수유 몇 번 했어?",)
    entries = []
    for index, text in enumerate(texts):
        entries.append({"role": "user" if index % 2 == 0 else "assistant", "content": text})
    body = {"messages": entries}
    if child_id is not None:
        body["babyId"] = child_id
    return body


def _rows(app):
    with app.state.db.connection() as conn:
        return conn.execute("SELECT * FROM chat_messages ORDER BY id").fetchall()


def test_streams_reply_and_stores_encrypted_turn(tmp_path) -> None:
    model = FakeChatModel()
    client, app, seeded = build_client(tmp_path, chat_model=model)

    response = client.post("/api/chat", json=_body(seeded.child_id), headers=seeded.headers)
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")
    assert response.text == "안녕하세요. 오늘 수유는 3회예요."

    rows = _rows(app)
    assert len(rows) == 1
    cipher = app.state.cipher
    assert rows[0]["message"] != "오늘 수유 몇 번 했어?"
    assert cipher.decrypt(rows[0]["message"]) == "오늘 수유 몇 번 했어?"
    assert cipher.decrypt(rows[0]["reply"]) == "안녕하세요. 오늘 수유는 3회예요."
    assert cipher.decrypt(rows[0]["summary"]) == model.summary
    assert model.summary_calls == [
        {"message": "오늘 수유 몇 번 했어?", "reply": "안녕하세요. 오늘 수유는 3회예요."}
    ]


def test_prompt_carries_child_and_prior_turns(tmp_path) -> None:
    model = FakeChatModel()
    client, app, seeded = build_client(tmp_path, chat_model=model)
    turn_id = app.state.history.record_user_message(seeded.child_id, seeded.user_id, "이전 질문")
    app.state.history.save_summary(turn_id, "지난번엔 낮잠 횟수를 상담함.")

    body = _body(seeded.child_id, "첫 질문", "첫 답변", "후속 질문")
    assert client.post("/api/chat", json=body, headers=seeded.headers).status_code == 200

    call = model.stream_calls[0]
    assert "하린" in call["system_prompt"]
    assert "엄마님에게" in call["system_prompt"]
    assert "- 지난번엔 낮잠 횟수를 상담함." in call["system_prompt"]
    assert call["message"] == "후속 질문"
    assert call["history"] == [
        {"role": "user", "content": "첫 질문"},
        {"role": "assistant", "content": "첫 답변"},
    ]


def test_baby_id_from_header_or_numeric_string(tmp_path) -> None:
    client, _, seeded = build_client(tmp_path)
    headers = dict(seeded.headers, **{"X-Baby-Id": str(seeded.child_id)})
    assert client.post("/api/chat", json=_body(), headers=headers).status_code == 200
    assert client.post("/api/chat", json=_body(str(seeded.child_id)), headers=seeded.headers).status_code == 200


@pytest.mark.parametrize(
    "use_session, baby",
    [(False, "own"), (True, None), (True, "garbage-header"), (True, "garbage-body"), (True, "empty-body")],
)
def test_unauthorized_requests(tmp_path, use_session, baby) -> None:
    client, app, seeded = build_client(tmp_path)
    headers = dict(seeded.headers) if use_session else {}
    if baby == "garbage-header":
        headers["X-Baby-Id"] = "not-a-number"
    child_id = {"own": seeded.child_id, "garbage-body": "not-a-number", "empty-body": ""}.get(baby)
    response = client.post("/api/chat", json=_body(child_id), headers=headers)
    assert response.status_code == 401
    assert _rows(app) == []


@pytest.mark.parametrize("target", ["other", "missing"])
def test_foreign_and_missing_children_look_the_same(tmp_path, target) -> None:
    model = FakeChatModel()
    client, _, seeded = build_client(tmp_path, chat_model=model)
    child_id = seeded.other_child_id if target == "other" else 9999
    response = client.post("/api/chat", json=_body(child_id), headers=seeded.headers)
    assert response.status_code == 403
    assert model.stream_calls == []


def test_stream_failure_ends_with_apology(tmp_path) -> None:
    model = FakeChatModel(["부분 응답 "], error=RuntimeError("model overloaded"))
    client, app, seeded = build_client(tmp_path, chat_model=model)

    response = client.post("/api/chat", json=_body(seeded.child_id), headers=seeded.headers)
    assert response.status_code == 200
    assert response.text == "부분 응답 " + STREAM_ERROR_MESSAGE

    row = _rows(app)[0]
    assert row["reply"] == ""
    assert row["summary"] is None
    assert model.summary_calls == []


def test_summary_failure_is_swallowed(tmp_path) -> None:
    model = FakeChatModel(summary_error=RuntimeError("summarizer down"))
    client, app, seeded = build_client(tmp_path, chat_model=model)

    response = client.post("/api/chat", json=_body(seeded.child_id), headers=seeded.headers)
    assert response.status_code == 200
    assert len(model.summary_calls) == 1
    row = _rows(app)[0]
    assert app.state.cipher.decrypt(row["reply"]) == "안녕하세요. 오늘 수유는 3회예요."
    assert row["summary"] is None


def test_setup_failure_returns_json_error(tmp_path, monkeypatch) -> None:
    async def broken_context(**kwargs):
        raise RuntimeError("context unavailable")

    monkeypatch.setattr("bebeknock.routes.chat.build_chat_context", broken_context)
    client, app, seeded = build_client(tmp_path)

    response = client.post("/api/chat", json=_body(seeded.child_id), headers=seeded.headers)
    assert response.status_code == 500
    assert response.json() == {"error": "Internal Server Error", "details": "context unavailable"}
    assert _rows(app) == []


def test_history_is_capped_per_child(tmp_path) -> None:
    client, app, seeded = build_client(tmp_path, chat_history_limit=2)
    for question in ("첫째", "둘째", "셋째"):
        client.post("/api/chat", json=_body(seeded.child_id, question), headers=seeded.headers)

    messages = [app.state.cipher.decrypt(row["message"]) for row in _rows(app)]
    assert messages == ["둘째", "셋째"]


def test_history_and_sharing(tmp_path) -> None:
    client, app, seeded = build_client(tmp_path)
    partner = app.state.db.create_user(name="준호")
    app.state.db.add_family_member(family_id=seeded.family_id, user_id=partner, relation="father")
    partner_turn = app.state.history.record_user_message(seeded.child_id, partner, "아빠 질문")

    for question in ("첫째", "둘째"):
        client.post("/api/chat", json=_body(seeded.child_id, question), headers=seeded.headers)

    listed = client.get("/api/chat/history", params={"babyId": seeded.child_id}, headers=seeded.headers)
    assert listed.status_code == 200
    messages = listed.json()["messages"]
    assert [item["message"] for item in messages] == ["첫째", "둘째"]
    assert all(item["is_mine"] for item in messages)

    denied = client.post(
        "/api/chat/share", json={"messageId": partner_turn, "isShared": True}, headers=seeded.headers
    )
    assert denied.status_code == 403

    own_turn = messages[0]["id"]
    shared = client.post("/api/chat/share", json={"messageId": own_turn, "isShared": True}, headers=seeded.headers)
    assert shared.status_code == 200
    assert shared.json()["isShared"] is True
    assert shared.json()["sharedAt"]

    missing = client.post("/api/chat/share", json={"messageId": 9999, "isShared": True}, headers=seeded.headers)
    assert missing.status_code == 404

    outsider = client.get("/api/chat/history", params={"babyId": seeded.child_id}, headers=seeded.other_headers)
    assert outsider.status_code == 403


def test_deleted_activity_leaves_the_prompt(tmp_path) -> None:
    model = FakeChatModel()
    client, app, seeded = build_client(tmp_path, chat_model=model)
    taken_at = datetime.now(timezone.utc) - timedelta(hours=2)
    created = client.post(
        "/api/v1/activities",
        json={
            "child_id": seeded.child_id,
            "type": "TEMPERATURE",
            "start_time": taken_at.isoformat(),
            "details": {"kind": "temperature", "celsius": 39.7},
        },
        headers=seeded.headers,
    ).json()
    with app.state.db.connection() as conn:
        conn.execute(
            "UPDATE activities SET created_at = ? WHERE id = ?",
            (to_db_timestamp(utc_now() - timedelta(hours=1)), created["id"]),
        )
        conn.commit()

    client.post("/api/chat", json=_body(seeded.child_id), headers=seeded.headers)
    assert "39.7°C" in model.stream_calls[0]["system_prompt"]

    assert client.delete(f"/api/v1/activities/{created['id']}", headers=seeded.headers).status_code == 204
    client.post("/api/chat", json=_body(seeded.child_id), headers=seeded.headers)
    assert "39.7" not in model.stream_calls[1]["system_prompt"]
