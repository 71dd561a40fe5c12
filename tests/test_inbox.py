"""Tests for the omnichannel inbox."""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

import pytest

from obelixia.remote import RemoteTransportError
from obelixia.services.inbox import (
    add_tag,
    annotate_sla,
    filter_conversations,
    new_outgoing_message,
    sla_status,
)

NOW = datetime(2024, 5, 10, 12, 0, tzinfo=timezone.utc)


def _conversation(conv_id="conv-1", **overrides):
    conv = {
        "id": conv_id,
        "contact": {"id": "ct-1", "name": "Maria Puig", "phone": "+376600000"},
        "channel": "whatsapp",
        "status": "open",
        "priority": "normal",
        "last_message": {
            "content": "Quisiera información sobre el TPV",
            "timestamp": "2024-05-10T11:00:00+00:00",
            "is_from_contact": True,
        },
        "unread_count": 1,
        "tags": ["tpv"],
    }
    conv.update(overrides)
    return conv


CONVERSATIONS = [
    _conversation(),
    _conversation("conv-2", channel="email", contact={"id": "ct-2", "name": "Jordi Vidal"}),
    _conversation("conv-3", status="resolved", contact={"id": "ct-3", "name": "Marta Roca"}),
]


class TestFilters:
    def test_default_shows_open(self):
        result = filter_conversations(CONVERSATIONS)
        assert [c["id"] for c in result] == ["conv-1", "conv-2"]

    def test_search_matches_name_or_last_message(self):
        assert [c["id"] for c in filter_conversations(CONVERSATIONS, "jordi")] == ["conv-2"]
        assert len(filter_conversations(CONVERSATIONS, "TPV", status="all")) == 3

    def test_channel_and_status(self):
        result = filter_conversations(CONVERSATIONS, channel="whatsapp", status="all")
        assert [c["id"] for c in result] == ["conv-1", "conv-3"]


class TestSla:
    def test_states(self):
        assert sla_status(None, NOW) is None
        assert sla_status(NOW - timedelta(minutes=1), NOW) == "breached"
        assert sla_status(NOW + timedelta(minutes=10), NOW) == "at_risk"
        assert sla_status(NOW + timedelta(minutes=45), NOW) == "on_track"

    def test_parses_strings(self):
        assert sla_status("2024-05-10T12:20:00Z", NOW) == "at_risk"

    def test_annotate(self):
        annotated = annotate_sla([_conversation(sla_deadline="2024-05-10T13:00:00Z")], NOW)
        assert annotated[0]["sla_status"] == "on_track"


class TestMessages:
    def test_blank_message_rejected(self):
        with pytest.raises(ValueError):
            new_outgoing_message("conv-1", "   ", "usr_1")

    def test_new_message_is_sent(self):
        message = new_outgoing_message("conv-1", " Hola ", "usr_1")
        assert message["content"] == "Hola"
        assert message["status"] == "sent"
        assert message["is_from_contact"] is False

    def test_add_tag_without_duplicates(self):
        assert add_tag(["vip"], "vip") == ["vip"]
        assert add_tag(None, " nuevo ") == ["nuevo"]


class TestInboxRoutes:
    def test_list_conversations(self, client, auth_headers):
        with patch("obelixia.database.list_conversations", new_callable=AsyncMock) as mock_list:
            mock_list.return_value = CONVERSATIONS
            response = client.get("/inbox/conversations?channel=email", headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 1
        assert data["conversations"][0]["id"] == "conv-2"

    def test_send_message(self, client, auth_headers, mock_db):
        mock_db.functions.invoke.return_value = {"success": True, "messageId": "wamid.1"}
        with patch("obelixia.database.get_conversation", new_callable=AsyncMock) as mock_get, \
                patch("obelixia.database.insert_message", new_callable=AsyncMock) as mock_insert, \
                patch("obelixia.database.update_conversation", new_callable=AsyncMock) as mock_update:
            mock_get.return_value = _conversation()
            mock_insert.side_effect = lambda db, row: row
            response = client.post(
                "/inbox/conversations/conv-1/messages",
                json={"content": "Le llamo mañana"},
                headers=auth_headers,
            )

        assert response.status_code == 201
        data = response.json()
        assert data["message"]["status"] == "sent"
        assert data["notices"] == []
        assert mock_update.call_args.args[2]["last_message"]["content"] == "Le llamo mañana"

        body = mock_db.functions.invoke.call_args.kwargs["invoke_options"]["body"]
        assert body == {
            "action": "send_message",
            "phone": "+376600000",
            "message": "Le llamo mañana",
            "conversationId": "conv-1",
        }

    def test_send_failure_marks_message_failed(self, client, auth_headers):
        with patch("obelixia.database.get_conversation", new_callable=AsyncMock) as mock_get, \
                patch("obelixia.database.insert_message", new_callable=AsyncMock) as mock_insert, \
                patch("obelixia.database.update_conversation", new_callable=AsyncMock), \
                patch("obelixia.database.update_message_status", new_callable=AsyncMock) as mock_status, \
                patch("obelixia.remote.RemoteFunctionClient.invoke", new_callable=AsyncMock) as mock_invoke:
            mock_get.return_value = _conversation()
            mock_insert.side_effect = lambda db, row: row
            mock_invoke.side_effect = RemoteTransportError("whatsapp-business-api", "send_message", "timeout")
            response = client.post(
                "/inbox/conversations/conv-1/messages",
                json={"content": "Hola"},
                headers=auth_headers,
            )

        assert response.status_code == 201
        data = response.json()
        assert data["message"]["status"] == "failed"
        assert data["notices"][0] == {"level": "error", "message": "Error in send_message: timeout"}
        assert mock_status.call_args.args[2] == "failed"

    def test_blank_message_is_422(self, client, auth_headers):
        response = client.post(
            "/inbox/conversations/conv-1/messages",
            json={"content": "   "},
            headers=auth_headers,
        )
        assert response.status_code == 422

    def test_unknown_conversation(self, client, auth_headers):
        with patch("obelixia.database.get_conversation", new_callable=AsyncMock) as mock_get:
            mock_get.return_value = None
            response = client.get("/inbox/conversations/nope/messages", headers=auth_headers)
        assert response.status_code == 404

    def test_add_existing_tag_is_noop(self, client, auth_headers):
        with patch("obelixia.database.get_conversation", new_callable=AsyncMock) as mock_get, \
                patch("obelixia.database.update_conversation", new_callable=AsyncMock) as mock_update:
            mock_get.return_value = _conversation()
            response = client.post(
                "/inbox/conversations/conv-1/tags",
                json={"tag": "tpv"},
                headers=auth_headers,
            )

        assert response.status_code == 200
        assert response.json()["conversation"]["tags"] == ["tpv"]
        mock_update.assert_not_called()

    def test_assign(self, client, auth_headers):
        with patch("obelixia.database.get_conversation", new_callable=AsyncMock) as mock_get, \
                patch("obelixia.database.update_conversation", new_callable=AsyncMock) as mock_update:
            mock_get.return_value = _conversation()
            mock_update.return_value = _conversation(assignee_id="usr_2")
            response = client.post(
                "/inbox/conversations/conv-1/assign",
                json={"assignee_id": "usr_2"},
                headers=auth_headers,
            )

        assert response.status_code == 200
        assert response.json()["conversation"]["assignee_id"] == "usr_2"
