"""Tests for audit log aggregation."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch

from obelixia.services.audit import audit_stats, table_activity, timeline, user_activity

NOW = datetime(2024, 6, 10, 15, 0, tzinfo=timezone.utc)

LOGS = [
    {"user_id": "u1", "table_name": "companies", "action": "INSERT", "created_at": "2024-06-10T09:00:00+00:00"},
    {"user_id": "u1", "table_name": "companies", "action": "UPDATE", "created_at": "2024-06-09T09:00:00+00:00"},
    {"user_id": "u2", "table_name": "visits", "action": "DELETE", "created_at": "2024-06-05T09:00:00+00:00"},
    {"user_id": None, "table_name": "goals", "action": "UPDATE", "created_at": "2024-05-01T09:00:00+00:00"},
]


def test_stats():
    stats = audit_stats(LOGS, NOW)
    assert stats == {
        "total_actions": 4,
        "inserts": 1,
        "updates": 2,
        "deletes": 1,
        "unique_users": 2,
        "unique_tables": 3,
        "today_actions": 1,
        "week_actions": 3,
    }


def test_table_activity_sorted_by_count():
    tables = table_activity(LOGS)
    assert tables[0] == {"table_name": "companies", "count": 2, "inserts": 1, "updates": 1, "deletes": 0}
    assert len(table_activity(LOGS, limit=1)) == 1


def test_user_activity_tracks_latest_action():
    users = user_activity(LOGS, {"u1": "ana@bank.ad"})
    assert users[0] == {
        "user_id": "u1",
        "user_email": "ana@bank.ad",
        "action_count": 2,
        "last_action": "2024-06-10T09:00:00+00:00",
    }
    assert users[1]["user_email"] == "Unknown user"


def test_timeline_is_zero_filled():
    days = timeline(LOGS, NOW)
    assert [d["date"] for d in days] == [
        "2024-06-04", "2024-06-05", "2024-06-06", "2024-06-07", "2024-06-08", "2024-06-09", "2024-06-10",
    ]
    assert days[1]["deletes"] == 1
    assert days[2]["total"] == 0
    assert days[-1]["inserts"] == 1


class TestAuditRoute:
    def test_summary_requires_manager(self, client, auth_headers):
        response = client.get("/audit/summary", headers=auth_headers)
        assert response.status_code == 403

    def test_summary(self, client, manager_headers):
        with patch("obelixia.database.list_audit_logs", new_callable=AsyncMock) as mock_logs, \
                patch("obelixia.database.get_profile_emails", new_callable=AsyncMock) as mock_emails:
            mock_logs.return_value = LOGS
            mock_emails.return_value = {"u1": "ana@bank.ad", "u2": "marc@bank.ad"}
            response = client.get("/audit/summary", headers=manager_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["stats"]["total_actions"] == 4
        assert len(data["timeline"]) == 7
        assert {u["user_email"] for u in data["users"]} == {"ana@bank.ad", "marc@bank.ad"}
        assert sorted(mock_emails.call_args.args[1]) == ["u1", "u2"]

    def test_summary_aggregates_users_once(self, client, manager_headers):
        with patch("obelixia.database.list_audit_logs", new_callable=AsyncMock) as mock_logs, \
                patch("obelixia.database.get_profile_emails", new_callable=AsyncMock) as mock_emails, \
                patch("obelixia.services.audit.user_activity", wraps=user_activity) as spy:
            mock_logs.return_value = LOGS
            mock_emails.return_value = {"u1": "ana@bank.ad"}
            response = client.get("/audit/summary", headers=manager_headers)

        assert response.status_code == 200
        spy.assert_called_once()
        emails = {u["user_id"]: u["user_email"] for u in response.json()["users"]}
        assert emails == {"u1": "ana@bank.ad", "u2": "Unknown user"}
