from __future__ import annotations

import sqlite3
from datetime import datetime, timedelta, timezone

import pytest

from .helpers import build_client


@pytest.fixture
def env(tmp_path):
    return build_client(tmp_path)


def _post(client, seeded, activity_type, when, details, end=None):
    body = {
        "child_id": seeded.child_id,
        "type": activity_type,
        "start_time": when.isoformat(),
        "details": details,
    }
    if end is not None:
        body["end_time"] = end.isoformat()
    response = client.post("/api/v1/activities", json=body, headers=seeded.headers)
    assert response.status_code == 201


def test_summary_compares_adjacent_windows(env) -> None:
    client, _, seeded = env
    now = datetime.now(timezone.utc)
    recent = now - timedelta(days=1)
    older = now - timedelta(days=8)
    formula = {"kind": "feeding", "feeding_type": "FORMULA", "amount_ml": 100}

    _post(client, seeded, "FEEDING", recent, formula)
    _post(client, seeded, "FEEDING", recent + timedelta(hours=3), dict(formula, amount_ml=150))
    _post(client, seeded, "FEEDING", older, formula)
    _post(client, seeded, "DIAPER", older, {"kind": "diaper", "diaper_type": "BOTH"})
    _post(
        client,
        seeded,
        "SLEEP",
        recent,
        {"kind": "sleep", "sleep_type": "NAP"},
        end=recent + timedelta(minutes=90),
    )

    response = client.get(f"/api/v1/analytics/{seeded.child_id}/summary", headers=seeded.headers)
    assert response.status_code == 200
    body = response.json()
    assert body["days"] == 7
    assert body["current"]["feeding_count"] == 2
    assert body["current"]["feeding_avg_amount"] == 125
    assert body["current"]["sleep_avg_hours"] == 1.5
    assert body["previous"]["stool_count"] == 1
    assert body["previous"]["urine_count"] == 1

    comparison = body["comparison"]
    assert comparison["feeding"] == {"diff": 1, "trend": "increased", "message": "Feeding: 1 more than last period"}
    assert comparison["sleep"]["trend"] == "first_time"
    assert comparison["diaper"]["trend"] == "decreased"
    assert comparison["medicine"]["message"] == "Medicine: No records in either period"


def test_invalid_window_and_foreign_child(env) -> None:
    client, _, seeded = env
    assert client.get(
        f"/api/v1/analytics/{seeded.child_id}/summary", params={"days": 0}, headers=seeded.headers
    ).status_code == 422
    assert client.get(f"/api/v1/analytics/{seeded.other_child_id}/summary", headers=seeded.headers).status_code == 403


def test_store_failure_surfaces_as_server_error(env, monkeypatch) -> None:
    client, app, seeded = env

    def broken(*args, **kwargs):
        raise sqlite3.OperationalError("database is locked")

    monkeypatch.setattr(app.state.store, "fetch_bundle", broken)
    response = client.get(f"/api/v1/analytics/{seeded.child_id}/summary", headers=seeded.headers)
    assert response.status_code == 500
    assert response.json()["error"] == "Data store failure"


@pytest.mark.parametrize("days, status", [(365, 200), (366, 422), (1000000, 422)])
def test_window_length_is_capped(env, days, status) -> None:
    client, _, seeded = env
    response = client.get(
        f"/api/v1/analytics/{seeded.child_id}/summary", params={"days": days}, headers=seeded.headers
    )
    assert response.status_code == status
