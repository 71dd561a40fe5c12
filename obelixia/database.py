"""Database utilities for Supabase integration."""

from datetime import date, datetime
from typing import Annotated, Any

from fastapi import Depends

from supabase import Client, create_client

from .config import Settings, get_settings

_supabase_client: Client | None = None


def get_supabase_client(settings: Settings | None = None) -> Client:
    """Get cached Supabase client."""
    global _supabase_client
    if _supabase_client is None:
        if settings is None:
            settings = get_settings()
        # Prefer new secret key, fall back to legacy service_role_key
        api_key = settings.supabase_secret_key or settings.supabase_service_role_key
        if not api_key:
            raise ValueError("Either SUPABASE_SECRET_KEY or SUPABASE_SERVICE_ROLE_KEY must be set")
        _supabase_client = create_client(settings.supabase_url, api_key)
    return _supabase_client


def get_db(settings: Annotated[Settings, Depends(get_settings)]) -> Client:
    """FastAPI dependency for Supabase client."""
    return get_supabase_client(settings)


# Type alias for dependency injection
Database = Annotated[Client, Depends(get_db)]


# =============================================================================
# Table Names
# =============================================================================

GOALS_TABLE = "goals"
PROFILES_TABLE = "profiles"
COMPANIES_TABLE = "companies"
VISITS_TABLE = "visits"
VISIT_SHEETS_TABLE = "visit_sheets"
CONVERSATIONS_TABLE = "omnichannel_conversations"
MESSAGES_TABLE = "omnichannel_messages"
FINANCIAL_STATEMENTS_TABLE = "company_financial_statements"
INCOME_STATEMENTS_TABLE = "income_statements"
BALANCE_SHEETS_TABLE = "balance_sheets"
TPV_TERMINALS_TABLE = "company_tpv_terminals"
TPV_COMMISSIONS_TABLE = "tpv_commission_rates"
AUDIT_LOGS_TABLE = "audit_logs"


def _scoped(query, organization_id: str | None):
    """Restrict a query to one tenant when the caller belongs to one."""
    if organization_id:
        query = query.eq("organization_id", organization_id)
    return query


def _company_scoped(db: Client, table: str, columns: str, organization_id: str | None):
    """Select from a table keyed by company_id, limited to the tenant's companies."""
    if not organization_id:
        return db.table(table).select(columns)
    return (
        db.table(table)
        .select(f"{columns}, companies!inner(organization_id)")
        .eq("companies.organization_id", organization_id)
    )


def _iso(value: date | datetime | str) -> str:
    return value if isinstance(value, str) else value.isoformat()


# =============================================================================
# Goal Operations
# =============================================================================

async def list_goals(
    db: Client,
    organization_id: str | None,
    goal_level: str | None = None,
) -> list[dict]:
    """List goals, newest first."""
    query = _scoped(db.table(GOALS_TABLE).select("*"), organization_id)
    if goal_level:
        query = query.eq("goal_level", goal_level)
    result = query.order("created_at", desc=True).execute()
    return result.data or []


async def get_goal(db: Client, goal_id: str, organization_id: str | None) -> dict | None:
    """Get a goal by ID."""
    query = _scoped(db.table(GOALS_TABLE).select("*").eq("id", goal_id), organization_id)
    result = query.execute()
    return result.data[0] if result.data else None


async def insert_goals(db: Client, rows: list[dict]) -> list[dict]:
    """Insert one or more goal rows and return them as stored."""
    if not rows:
        return []
    result = db.table(GOALS_TABLE).insert(rows).execute()
    return result.data or []


async def delete_goal(db: Client, goal_id: str, organization_id: str | None) -> bool:
    """Delete a goal."""
    query = _scoped(db.table(GOALS_TABLE).delete().eq("id", goal_id), organization_id)
    result = query.execute()
    return len(result.data) > 0


async def list_active_goals_for_user(db: Client, user_id: str, today: date) -> list[dict]:
    """Goals created by a user whose period has not ended yet."""
    result = (
        db.table(GOALS_TABLE)
        .select("*")
        .eq("created_by", user_id)
        .gte("period_end", today.isoformat())
        .order("period_start", desc=True)
        .execute()
    )
    return result.data or []


async def list_goals_overlapping(
    db: Client,
    metric_types: list[str],
    start: date,
    end: date,
    organization_id: str | None,
) -> list[dict]:
    """Goals of the given metrics whose period overlaps [start, end]."""
    query = (
        db.table(GOALS_TABLE)
        .select("*")
        .in_("metric_type", metric_types)
        .gte("period_end", start.isoformat())
        .lte("period_start", end.isoformat())
    )
    result = _scoped(query, organization_id).execute()
    return result.data or []


# =============================================================================
# Profile / Company Operations
# =============================================================================

async def list_profiles(db: Client, organization_id: str | None) -> list[dict]:
    """List profiles with their office."""
    query = _scoped(db.table(PROFILES_TABLE).select("id, full_name, oficina, email"), organization_id)
    result = query.execute()
    return result.data or []


async def list_company_ids_for_gestor(db: Client, gestor_id: str) -> list[str]:
    """IDs of the companies managed by a gestor."""
    result = db.table(COMPANIES_TABLE).select("id").eq("gestor_id", gestor_id).execute()
    return [row["id"] for row in result.data or []]


async def count_companies_for_gestor(db: Client, gestor_id: str) -> int:
    result = (
        db.table(COMPANIES_TABLE)
        .select("id", count="exact")
        .eq("gestor_id", gestor_id)
        .execute()
    )
    return result.count or 0


async def list_vinculacion_for_gestor(db: Client, gestor_id: str) -> list[float]:
    """Bank linkage percentages of a gestor's companies (nulls excluded)."""
    result = (
        db.table(COMPANIES_TABLE)
        .select("vinculacion_entidad_1")
        .eq("gestor_id", gestor_id)
        .not_.is_("vinculacion_entidad_1", "null")
        .execute()
    )
    return [row["vinculacion_entidad_1"] or 0 for row in result.data or []]


# =============================================================================
# Visit Operations
# =============================================================================

async def count_visits(
    db: Client,
    gestor_id: str,
    start: str,
    end: str,
    result_value: str | None = None,
) -> int:
    """Count a gestor's visits in a period, optionally by outcome."""
    query = (
        db.table(VISITS_TABLE)
        .select("id", count="exact")
        .eq("gestor_id", gestor_id)
        .gte("visit_date", start)
        .lte("visit_date", end)
    )
    if result_value:
        query = query.eq("result", result_value)
    return query.execute().count or 0


async def list_offered_products(db: Client, gestor_id: str, start: str, end: str) -> list[list]:
    """Products offered on each of a gestor's visits in a period."""
    result = (
        db.table(VISITS_TABLE)
        .select("productos_ofrecidos")
        .eq("gestor_id", gestor_id)
        .gte("visit_date", start)
        .lte("visit_date", end)
        .not_.is_("productos_ofrecidos", "null")
        .execute()
    )
    return [row.get("productos_ofrecidos") or [] for row in result.data or []]


async def list_visit_sheets(db: Client, company_id: str, organization_id: str | None) -> list[dict]:
    """Visit sheets of a company with the gestor's profile, newest first."""
    query = _company_scoped(
        db,
        VISIT_SHEETS_TABLE,
        "*, gestor:profiles!visit_sheets_gestor_id_fkey(full_name, email)",
        organization_id,
    )
    result = query.eq("company_id", company_id).order("fecha", desc=True).execute()
    return result.data or []


async def get_visit_sheet(db: Client, sheet_id: str, organization_id: str | None) -> dict | None:
    query = _company_scoped(db, VISIT_SHEETS_TABLE, "*", organization_id)
    result = query.eq("id", sheet_id).execute()
    return result.data[0] if result.data else None


async def update_visit_sheet(db: Client, sheet_id: str, fields: dict[str, Any]) -> dict | None:
    """Apply a partial update to a visit sheet."""
    result = db.table(VISIT_SHEETS_TABLE).update(fields).eq("id", sheet_id).execute()
    return result.data[0] if result.data else None


# =============================================================================
# Omnichannel Operations
# =============================================================================

async def list_conversations(db: Client, organization_id: str | None) -> list[dict]:
    query = _scoped(db.table(CONVERSATIONS_TABLE).select("*"), organization_id)
    result = query.order("updated_at", desc=True).execute()
    return result.data or []


async def get_conversation(db: Client, conversation_id: str, organization_id: str | None) -> dict | None:
    query = _scoped(
        db.table(CONVERSATIONS_TABLE).select("*").eq("id", conversation_id), organization_id
    )
    result = query.execute()
    return result.data[0] if result.data else None


async def update_conversation(db: Client, conversation_id: str, fields: dict[str, Any]) -> dict | None:
    result = db.table(CONVERSATIONS_TABLE).update(fields).eq("id", conversation_id).execute()
    return result.data[0] if result.data else None


async def list_messages(db: Client, conversation_id: str) -> list[dict]:
    result = (
        db.table(MESSAGES_TABLE)
        .select("*")
        .eq("conversation_id", conversation_id)
        .order("timestamp")
        .execute()
    )
    return result.data or []


async def insert_message(db: Client, row: dict) -> dict | None:
    result = db.table(MESSAGES_TABLE).insert(row).execute()
    return result.data[0] if result.data else None


async def update_message_status(db: Client, message_id: str, status: str) -> None:
    db.table(MESSAGES_TABLE).update({"status": status}).eq("id", message_id).execute()


# =============================================================================
# Financial Statement Operations
# =============================================================================

async def get_company_statements(
    db: Client,
    company_id: str,
    organization_id: str | None,
) -> tuple[list[dict], list[dict]]:
    """Income statements and balance sheets of a company, tagged with fiscal_year."""
    query = _company_scoped(db, FINANCIAL_STATEMENTS_TABLE, "id, fiscal_year", organization_id)
    statements = query.eq("company_id", company_id).execute().data or []
    if not statements:
        return [], []

    years = {row["id"]: row["fiscal_year"] for row in statements}
    ids = list(years)

    income = db.table(INCOME_STATEMENTS_TABLE).select("*").in_("statement_id", ids).execute().data or []
    balance = db.table(BALANCE_SHEETS_TABLE).select("*").in_("statement_id", ids).execute().data or []

    def _tag(rows: list[dict]) -> list[dict]:
        return [{**row, "fiscal_year": years[row["statement_id"]]} for row in rows]

    return _tag(income), _tag(balance)


# =============================================================================
# TPV Operations
# =============================================================================

async def list_tpv_terminals(
    db: Client,
    organization_id: str | None,
    company_ids: list[str] | None = None,
) -> list[dict]:
    """The tenant's TPV terminals, optionally limited to a set of companies."""
    query = _company_scoped(
        db,
        TPV_TERMINALS_TABLE,
        "id, company_id, annual_revenue, affiliation_percentage, active, created_at",
        organization_id,
    )
    if company_ids is not None:
        query = query.in_("company_id", company_ids)
    return query.execute().data or []


async def list_commission_rates(db: Client, terminal_ids: list[str]) -> list[dict]:
    if not terminal_ids:
        return []
    result = db.table(TPV_COMMISSIONS_TABLE).select("*").in_("terminal_id", terminal_ids).execute()
    return result.data or []


# =============================================================================
# Audit Operations
# =============================================================================

async def list_audit_logs(
    db: Client,
    organization_id: str | None,
    since: datetime | None = None,
) -> list[dict]:
    """Audit log rows, newest first."""
    query = _scoped(
        db.table(AUDIT_LOGS_TABLE).select("id, user_id, table_name, action, created_at"),
        organization_id,
    )
    if since:
        query = query.gte("created_at", _iso(since))
    result = query.order("created_at", desc=True).execute()
    return result.data or []


async def get_profile_emails(db: Client, user_ids: list[str]) -> dict[str, str]:
    if not user_ids:
        return {}
    result = db.table(PROFILES_TABLE).select("id, email").in_("id", user_ids).execute()
    return {row["id"]: row.get("email") for row in result.data or []}
