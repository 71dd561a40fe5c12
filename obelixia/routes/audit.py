"""Audit dashboard routes."""

from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, Query

from .. import database
from ..auth import ManagerUser
from ..database import Database
from ..models import AuditStats, AuditSummaryResponse, TableActivity, TimelineDay, UserActivity
from ..services import audit as audit_service

router = APIRouter(prefix="/audit", tags=["audit"])


@router.get("/summary", response_model=AuditSummaryResponse)
async def audit_summary(
    user: ManagerUser,
    db: Database,
    days: int = Query(30, ge=1, le=365),
):
    """Activity statistics over the last ``days`` days of audit logs."""
    now = datetime.now(timezone.utc)
    logs = await database.list_audit_logs(db, user.organization_id, since=now - timedelta(days=days))

    top_users = audit_service.user_activity(logs, {})
    emails = await database.get_profile_emails(db, [u["user_id"] for u in top_users])
    for entry in top_users:
        entry["user_email"] = emails.get(entry["user_id"]) or entry["user_email"]

    return AuditSummaryResponse(
        stats=AuditStats(**audit_service.audit_stats(logs, now)),
        tables=[TableActivity(**t) for t in audit_service.table_activity(logs)],
        users=[UserActivity(**u) for u in top_users],
        timeline=[TimelineDay(**d) for d in audit_service.timeline(logs, now)],
    )
