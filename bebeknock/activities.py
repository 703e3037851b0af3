"""Activity and measurement persistence plus write-time validation."""
from __future__ import annotations

import json
import sqlite3
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from .db import Database, from_db_timestamp, to_db_timestamp, utc_now
from .schemas import (
    DETAILS_KIND_BY_TYPE,
    ActivityBundle,
    ActivityEvent,
    ActivityPayload,
    ActivityType,
    FeedingType,
    Measurement,
    MeasurementPayload,
)
from .utils import as_local

MAX_TEMPERATURE_CELSIUS = 45.0

BUNDLE_FIELDS = {
    ActivityType.FEEDING: "feedings",
    ActivityType.SLEEP: "sleeps",
    ActivityType.DIAPER: "diapers",
    ActivityType.TEMPERATURE: "temperatures",
    ActivityType.MEDICINE: "medicines",
}


class ActivityValidationError(Exception):
    """Raised before persistence; carries one entry per offending field."""

    def __init__(self, issues: List[Dict[str, str]]) -> None:
        super().__init__("; ".join(f"{item['field']}: {item['message']}" for item in issues))
        self.issues = issues


def validate_activity(payload: ActivityPayload, now: Optional[datetime] = None) -> None:
    now = now or utc_now()
    issues: List[Dict[str, str]] = []

    def flag(field: str, message: str) -> None:
        issues.append({"field": field, "message": message})

    start = as_local(payload.start_time, None)
    end = as_local(payload.end_time, None) if payload.end_time else None
    if start > now:
        flag("start_time", "Start time cannot be in the future")
    if end is not None and end < start:
        flag("end_time", "End time must be on or after the start time")

    details = payload.details
    expected_kind = DETAILS_KIND_BY_TYPE[payload.type]
    if details.kind != expected_kind:
        flag("details.kind", f"Expected '{expected_kind}' details for a {payload.type.value} activity")
        raise ActivityValidationError(issues)

    if payload.type == ActivityType.FEEDING:
        if details.feeding_type is None:
            flag("details.feeding_type", "Feeding type is required")
        elif details.feeding_type != FeedingType.BREAST and not (details.amount_ml and details.amount_ml > 0):
            flag("details.amount_ml", "Amount must be greater than 0")
        if details.duration_minutes is not None and details.duration_minutes < 0:
            flag("details.duration_minutes", "Duration cannot be negative")
    elif payload.type == ActivityType.SLEEP:
        if end is None:
            flag("end_time", "Sleep requires an end time")
        if details.sleep_type is None:
            flag("details.sleep_type", "Sleep type is required")
    elif payload.type == ActivityType.DIAPER:
        if details.diaper_type is None:
            flag("details.diaper_type", "Diaper type is required")
    elif payload.type == ActivityType.TEMPERATURE:
        celsius = details.celsius
        if celsius is None or not 0 < celsius <= MAX_TEMPERATURE_CELSIUS:
            flag("details.celsius", "Temperature must be above 0 and at most 45°C")
    elif payload.type == ActivityType.MEDICINE:
        if not (details.name or "").strip():
            flag("details.name", "Medicine name is required")

    if issues:
        raise ActivityValidationError(issues)


def _row_to_event(row: sqlite3.Row) -> ActivityEvent:
    return ActivityEvent.model_validate(
        {
            "id": row["id"],
            "child_id": row["child_id"],
            "user_id": row["user_id"],
            "type": row["type"],
            "start_time": from_db_timestamp(row["start_time"]),
            "end_time": from_db_timestamp(row["end_time"]),
            "note": row["note"],
            "details": json.loads(row["details_json"]),
            "created_at": from_db_timestamp(row["created_at"]),
            "updated_at": from_db_timestamp(row["updated_at"]),
        }
    )


def _row_to_measurement(row: sqlite3.Row) -> Measurement:
    return Measurement(
        id=row["id"],
        child_id=row["child_id"],
        measured_at=from_db_timestamp(row["measured_at"]),
        weight_kg=row["weight_kg"],
        height_cm=row["height_cm"],
        note=row["note"],
        created_at=from_db_timestamp(row["created_at"]),
    )


class ActivityStore:
    """Reads and writes activity rows for one database."""

    def __init__(self, db: Database) -> None:
        self.db = db

    def create_activity(self, payload: ActivityPayload, *, user_id: Optional[int] = None) -> ActivityEvent:
        validate_activity(payload)
        now = to_db_timestamp(utc_now())
        with self.db.connection() as conn:
            cursor = conn.execute(
                """
                INSERT INTO activities (
                    child_id, user_id, type, start_time, end_time, note,
                    details_json, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    payload.child_id,
                    user_id,
                    payload.type.value,
                    to_db_timestamp(payload.start_time),
                    to_db_timestamp(payload.end_time) if payload.end_time else None,
                    payload.note,
                    payload.details.model_dump_json(),
                    now,
                    now,
                ),
            )
            conn.commit()
            activity_id = int(cursor.lastrowid)
        return self.get_activity(activity_id)

    def replace_activity(self, activity_id: int, payload: ActivityPayload) -> Optional[ActivityEvent]:
        validate_activity(payload)
        with self.db.connection() as conn:
            cursor = conn.execute(
                """
                UPDATE activities
                SET type = ?, start_time = ?, end_time = ?, note = ?, details_json = ?, updated_at = ?
                WHERE id = ?
                """,
                (
                    payload.type.value,
                    to_db_timestamp(payload.start_time),
                    to_db_timestamp(payload.end_time) if payload.end_time else None,
                    payload.note,
                    payload.details.model_dump_json(),
                    to_db_timestamp(utc_now()),
                    activity_id,
                ),
            )
            conn.commit()
            if cursor.rowcount == 0:
                return None
        return self.get_activity(activity_id)

    def delete_activity(self, activity_id: int) -> bool:
        with self.db.connection() as conn:
            cursor = conn.execute("DELETE FROM activities WHERE id = ?", (activity_id,))
            conn.commit()
            return cursor.rowcount > 0

    def get_activity(self, activity_id: int) -> Optional[ActivityEvent]:
        with self.db.connection() as conn:
            row = conn.execute("SELECT * FROM activities WHERE id = ?", (activity_id,)).fetchone()
        return _row_to_event(row) if row else None

    def list_activities(
        self,
        child_id: int,
        *,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        types: Optional[Iterable[ActivityType]] = None,
    ) -> List[ActivityEvent]:
        """Events for a child, newest first, with inclusive time bounds."""
        clauses = ["child_id = ?"]
        params: list = [child_id]
        if start is not None:
            clauses.append("start_time >= ?")
            params.append(to_db_timestamp(start))
        if end is not None:
            clauses.append("start_time <= ?")
            params.append(to_db_timestamp(end))
        type_values = [activity_type.value for activity_type in types or []]
        if type_values:
            clauses.append(f"type IN ({', '.join('?' for _ in type_values)})")
            params.extend(type_values)
        query = f"SELECT * FROM activities WHERE {' AND '.join(clauses)} ORDER BY start_time DESC, id DESC"
        with self.db.connection() as conn:
            rows = conn.execute(query, params).fetchall()
        return [_row_to_event(row) for row in rows]

    def fetch_bundle(
        self,
        child_id: int,
        start: datetime,
        end: Optional[datetime] = None,
        *,
        measurement_limit: int = 0,
    ) -> ActivityBundle:
        events = self.list_activities(child_id, start=start, end=end, types=BUNDLE_FIELDS.keys())
        grouped: Dict[str, List[ActivityEvent]] = {field: [] for field in BUNDLE_FIELDS.values()}
        for event in events:
            grouped[BUNDLE_FIELDS[event.type]].append(event)
        measurements = self.recent_measurements(child_id, limit=measurement_limit) if measurement_limit else []
        return ActivityBundle(measurements=measurements, **grouped)

    def add_measurement(self, payload: MeasurementPayload) -> Measurement:
        now = utc_now()
        with self.db.connection() as conn:
            cursor = conn.execute(
                """
                INSERT INTO measurements (child_id, measured_at, weight_kg, height_cm, note, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    payload.child_id,
                    to_db_timestamp(payload.measured_at or now),
                    payload.weight_kg,
                    payload.height_cm,
                    payload.note,
                    to_db_timestamp(now),
                ),
            )
            conn.commit()
            row = conn.execute("SELECT * FROM measurements WHERE id = ?", (cursor.lastrowid,)).fetchone()
        return _row_to_measurement(row)

    def recent_measurements(self, child_id: int, *, limit: int = 10) -> List[Measurement]:
        with self.db.connection() as conn:
            rows = conn.execute(
                """
                SELECT * FROM measurements
                WHERE child_id = ?
                ORDER BY measured_at DESC, id DESC
                LIMIT ?
                """,
                (child_id, limit),
            ).fetchall()
        return [_row_to_measurement(row) for row in rows]

    def latest_weight(self, child_id: int) -> Optional[float]:
        with self.db.connection() as conn:
            row = conn.execute(
                """
                SELECT weight_kg FROM measurements
                WHERE child_id = ? AND weight_kg IS NOT NULL
                ORDER BY measured_at DESC, id DESC
                LIMIT 1
                """,
                (child_id,),
            ).fetchone()
        return float(row["weight_kg"]) if row else None

    def has_entries_since(self, child_id: int, since: datetime) -> bool:
        """True when an activity or measurement row was created at or after ``since``."""
        cutoff = to_db_timestamp(since)
        with self.db.connection() as conn:
            row = conn.execute(
                """
                SELECT 1 FROM activities WHERE child_id = ? AND created_at >= ?
                UNION ALL
                SELECT 1 FROM measurements WHERE child_id = ? AND created_at >= ?
                LIMIT 1
                """,
                (child_id, cutoff, child_id, cutoff),
            ).fetchone()
        return row is not None
