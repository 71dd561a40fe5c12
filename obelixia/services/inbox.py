"""Omnichannel inbox: conversation filtering, SLA state and message sending."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from dateutil.parser import isoparse

CHANNELS = ("whatsapp", "instagram", "facebook", "web", "email")
STATUSES = ("open", "pending", "resolved", "archived")
PRIORITIES = ("low", "normal", "high", "urgent")

ALL = "all"

SLA_AT_RISK_MINUTES = 30


def filter_conversations(
    conversations: list[dict],
    search: str = "",
    channel: str = ALL,
    status: str = "open",
) -> list[dict]:
    """Conversations matching a search term, channel and status.

    The search is case-insensitive on the contact name and the last message.
    ``all`` disables the channel or status filter.
    """
    term = (search or "").lower()

    def matches(conv: dict) -> bool:
        if term:
            name = ((conv.get("contact") or {}).get("name") or "").lower()
            last = ((conv.get("last_message") or {}).get("content") or "").lower()
            if term not in name and term not in last:
                return False
        if channel != ALL and conv.get("channel") != channel:
            return False
        if status != ALL and conv.get("status") != status:
            return False
        return True

    return [c for c in conversations if matches(c)]


def sla_status(deadline: str | datetime | None, now: datetime | None = None) -> str | None:
    """``breached``, ``at_risk`` (under 30 minutes left), ``on_track`` or None."""
    if not deadline:
        return None
    if isinstance(deadline, str):
        deadline = isoparse(deadline)
    if deadline.tzinfo is None:
        deadline = deadline.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)

    minutes_left = (deadline - now).total_seconds() / 60
    if minutes_left < 0:
        return "breached"
    if minutes_left < SLA_AT_RISK_MINUTES:
        return "at_risk"
    return "on_track"


def annotate_sla(conversations: list[dict], now: datetime | None = None) -> list[dict]:
    return [{**c, "sla_status": sla_status(c.get("sla_deadline"), now)} for c in conversations]


def new_outgoing_message(conversation_id: str, content: str, sender_id: str) -> dict:
    """Row for a message sent by an agent, stored before the transport runs."""
    content = (content or "").strip()
    if not content:
        raise ValueError("Message content cannot be empty")
    return {
        "id": str(uuid.uuid4()),
        "conversation_id": conversation_id,
        "content": content,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "is_from_contact": False,
        "status": "sent",
        "sender_id": sender_id,
    }


def last_message_summary(message: dict) -> dict:
    return {
        "content": message["content"],
        "timestamp": message["timestamp"],
        "is_from_contact": message.get("is_from_contact", False),
    }


def add_tag(tags: list[str] | None, tag: str) -> list[str]:
    """Append a normalized tag unless it is already present."""
    tag = tag.strip()
    current = list(tags or [])
    if tag and tag not in current:
        current.append(tag)
    return current
