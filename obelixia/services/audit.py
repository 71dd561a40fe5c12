"""Audit log aggregation for the auditor dashboard."""

from __future__ import annotations

from collections import Counter
from datetime import date, datetime, timedelta, timezone

from dateutil.parser import isoparse

AUDIT_ACTIONS = ("INSERT", "UPDATE", "DELETE")

TOP_N = 10
TIMELINE_DAYS = 7


def _created(log: dict) -> datetime:
    created = isoparse(log["created_at"])
    if created.tzinfo is None:
        created = created.replace(tzinfo=timezone.utc)
    return created


def _start_of_day(now: datetime) -> datetime:
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


def audit_stats(logs: list[dict], now: datetime | None = None) -> dict:
    now = now or datetime.now(timezone.utc)
    today = _start_of_day(now)
    week_ago = today - timedelta(days=7)

    actions = Counter(log.get("action") for log in logs)
    return {
        "total_actions": len(logs),
        "inserts": actions["INSERT"],
        "updates": actions["UPDATE"],
        "deletes": actions["DELETE"],
        "unique_users": len({log["user_id"] for log in logs if log.get("user_id")}),
        "unique_tables": len({log.get("table_name") for log in logs}),
        "today_actions": sum(1 for log in logs if _created(log) >= today),
        "week_actions": sum(1 for log in logs if _created(log) >= week_ago),
    }


def table_activity(logs: list[dict], limit: int = TOP_N) -> list[dict]:
    """Most active tables with a per-action breakdown."""
    tables: dict[str, dict] = {}
    for log in logs:
        name = log.get("table_name")
        entry = tables.setdefault(
            name, {"table_name": name, "count": 0, "inserts": 0, "updates": 0, "deletes": 0}
        )
        entry["count"] += 1
        action = log.get("action")
        if action in AUDIT_ACTIONS:
            entry[f"{action.lower()}s"] += 1
    return sorted(tables.values(), key=lambda t: t["count"], reverse=True)[:limit]


def user_activity(logs: list[dict], emails: dict[str, str], limit: int = TOP_N) -> list[dict]:
    """Most active users with their latest action time."""
    users: dict[str, dict] = {}
    for log in logs:
        user_id = log.get("user_id")
        if not user_id:
            continue
        created = _created(log)
        entry = users.setdefault(user_id, {"count": 0, "last": log["created_at"], "last_at": created})
        entry["count"] += 1
        if created > entry["last_at"]:
            entry["last"] = log["created_at"]
            entry["last_at"] = created

    activity = [
        {
            "user_id": user_id,
            "user_email": emails.get(user_id) or "Unknown user",
            "action_count": entry["count"],
            "last_action": entry["last"],
        }
        for user_id, entry in users.items()
    ]
    return sorted(activity, key=lambda u: u["action_count"], reverse=True)[:limit]


def timeline(logs: list[dict], now: datetime | None = None, days: int = TIMELINE_DAYS) -> list[dict]:
    """Per-day action counts for the last ``days`` days, zero-filled."""
    now = now or datetime.now(timezone.utc)
    buckets: dict[date, dict] = {}
    for offset in range(days - 1, -1, -1):
        day = (now - timedelta(days=offset)).date()
        buckets[day] = {"date": day.isoformat(), "inserts": 0, "updates": 0, "deletes": 0, "total": 0}

    for log in logs:
        bucket = buckets.get(_created(log).date())
        if bucket is None:
            continue
        bucket["total"] += 1
        action = log.get("action")
        if action in AUDIT_ACTIONS:
            bucket[f"{action.lower()}s"] += 1
    return list(buckets.values())
