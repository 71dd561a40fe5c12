"""Goal cascade, progress and monthly history.

Goals form a tree: company (``empresa``) goals are split evenly across
offices (``oficina``), and office goals across the gestores working there
(``individual``).
"""

from __future__ import annotations

import calendar
from collections.abc import Iterable
from datetime import date
from typing import Any

from dateutil.parser import isoparse

GOAL_LEVELS = ("empresa", "oficina", "individual")

METRIC_LABELS = {
    "new_clients": "New clients",
    "visit_sheets": "Visit sheets",
    "tpv_volume": "TPV volume",
    "conversion_rate": "Conversion rate",
    "client_facturacion": "Client billing",
    "products_per_client": "Products per client",
    "follow_ups": "Follow-ups",
    "visits": "Visits",
    "successful_visits": "Successful visits",
    "companies": "Companies",
    "products_offered": "Products offered",
    "average_vinculacion": "Average bank linkage",
    "tpv_revenue": "TPV revenue",
    "tpv_affiliation": "TPV affiliation",
    "tpv_commission": "TPV commission",
}

PERIOD_TYPES = ("monthly", "quarterly", "annual")

TPV_METRICS = ("tpv_revenue", "tpv_affiliation", "tpv_commission")

# Commission rates are only compared on domestic cards
DOMESTIC_CARD_TYPE = "NACIONAL"

SUCCESSFUL_VISIT_RESULT = "Exitosa"


class NothingToDistribute(ValueError):
    """A goal cannot be cascaded because it has no children to receive it."""


# =============================================================================
# Cascade
# =============================================================================


def split_target(total: float, parts: int) -> float:
    """Evenly divide ``total`` across ``parts`` children."""
    if parts <= 0:
        raise ValueError("parts must be positive")
    return total / parts


def unique_offices(profiles: Iterable[dict]) -> list[str]:
    """Distinct non-empty offices, in first-seen order."""
    seen: dict[str, None] = {}
    for profile in profiles:
        office = profile.get("oficina")
        if office:
            seen.setdefault(office, None)
    return list(seen)


def _child_goal(parent: dict, created_by: str | None, **fields: Any) -> dict:
    row = {
        "metric_type": parent["metric_type"],
        "period_type": parent.get("period_type"),
        "period_start": parent.get("period_start"),
        "period_end": parent.get("period_end"),
        "parent_goal_id": parent["id"],
        "weight": 1,
        "contributes_to_parent": True,
        "created_by": created_by,
    }
    if parent.get("organization_id"):
        row["organization_id"] = parent["organization_id"]
    row.update(fields)
    return row


def build_office_goals(parent: dict, offices: list[str], created_by: str | None) -> list[dict]:
    """One office goal per office, each carrying an equal share of the target."""
    if parent.get("goal_level") != "empresa":
        raise NothingToDistribute("Only company goals can be distributed to offices")
    if not offices:
        raise NothingToDistribute("No offices configured")

    share = split_target(parent["target_value"], len(offices))
    label = parent.get("description") or METRIC_LABELS.get(parent["metric_type"], parent["metric_type"])
    return [
        _child_goal(
            parent,
            created_by,
            target_value=share,
            description=f"Goal for {office} - {label}",
            goal_level="oficina",
            office=office,
        )
        for office in offices
    ]


def build_individual_goals(parent: dict, profiles: list[dict], created_by: str | None) -> list[dict]:
    """One individual goal per gestor of the parent's office."""
    if parent.get("goal_level") != "oficina" or not parent.get("office"):
        raise NothingToDistribute("Only office goals can be distributed to gestores")
    gestores = [p for p in profiles if p.get("oficina") == parent.get("office")]
    if not gestores:
        raise NothingToDistribute("No gestores in this office")

    share = split_target(parent["target_value"], len(gestores))
    return [
        _child_goal(
            parent,
            created_by,
            target_value=share,
            description=f"Goal for {gestor.get('full_name') or gestor['id']}",
            goal_level="individual",
            assigned_to=gestor["id"],
        )
        for gestor in gestores
    ]


def child_goals(goals: list[dict], parent_id: str) -> list[dict]:
    return [g for g in goals if g.get("parent_goal_id") == parent_id]


# =============================================================================
# Progress
# =============================================================================


def goal_progress(current: float, target: float) -> float:
    """Percentage of ``target`` reached, capped at 100."""
    if not target or target <= 0:
        return 0.0
    return min(100.0, current / target * 100)


def progress_status(percentage: float) -> str:
    if percentage >= 100:
        return "completed"
    if percentage >= 75:
        return "on_track"
    if percentage >= 50:
        return "in_progress"
    return "needs_attention"


def count_offered_products(offered: Iterable[list | None]) -> int:
    return sum(len(products or []) for products in offered)


def average(values: list[float]) -> float:
    return sum(values) / len(values) if values else 0.0


# =============================================================================
# Monthly history
# =============================================================================


def _parse_date(value: str | date) -> date:
    if isinstance(value, date):
        return value
    return isoparse(value).date()


def month_range(end: date, months: int) -> list[date]:
    """First day of each of the last ``months`` months, oldest first."""
    if months <= 0:
        return []
    result = []
    year, month = end.year, end.month
    for _ in range(months):
        result.append(date(year, month, 1))
        month -= 1
        if month == 0:
            year, month = year - 1, 12
    return list(reversed(result))


def month_end(first: date) -> date:
    return first.replace(day=calendar.monthrange(first.year, first.month)[1])


def _goal_for_month(goals: list[dict], metric: str, start: date, end: date) -> dict | None:
    for goal in goals:
        if (
            goal.get("metric_type") == metric
            and _parse_date(goal["period_start"]) <= end
            and _parse_date(goal["period_end"]) >= start
        ):
            return goal
    return None


def commission_progress(actual: float, target: float) -> float:
    """Lower commission is better: at or under target scores 100."""
    if not target or target <= 0:
        return 0.0
    return min(100.0, max(0.0, (target - actual) / target * 100 + 100))


def monthly_goal_history(
    goals: list[dict],
    terminals: list[dict],
    commissions: list[dict],
    months: list[date],
) -> list[dict]:
    """Revenue, affiliation and commission against goals, month by month."""
    domestic_rates = [
        c["commission_rate"] for c in commissions if c.get("card_type") == DOMESTIC_CARD_TYPE
    ]
    average_commission = average(domestic_rates)

    history = []
    for first in months:
        last = month_end(first)

        month_terminals = [t for t in terminals if _parse_date(t["created_at"]) <= last]
        active = [t for t in month_terminals if t.get("active")]

        revenue = sum(t.get("annual_revenue") or 0 for t in month_terminals)
        affiliation = average([t.get("affiliation_percentage") or 0 for t in active])

        targets = {}
        for metric in TPV_METRICS:
            goal = _goal_for_month(goals, metric, first, last)
            targets[metric] = (goal or {}).get("target_value") or 0

        history.append({
            "month": first.strftime("%Y-%m"),
            "revenue": revenue,
            "revenue_target": targets["tpv_revenue"],
            "affiliation": affiliation,
            "affiliation_target": targets["tpv_affiliation"],
            "commission": average_commission,
            "commission_target": targets["tpv_commission"],
            "revenue_progress": goal_progress(revenue, targets["tpv_revenue"]),
            "affiliation_progress": goal_progress(affiliation, targets["tpv_affiliation"]),
            "commission_progress": commission_progress(average_commission, targets["tpv_commission"]),
        })
    return history


def history_trend(history: list[dict], key: str) -> float:
    """Percent change of ``key`` between the last two months."""
    if len(history) < 2:
        return 0.0
    recent = history[-1][key]
    previous = history[-2][key]
    if previous == 0:
        return 0.0
    return (recent - previous) / previous * 100
