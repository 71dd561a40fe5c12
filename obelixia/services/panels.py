"""Administrative engine panels.

A panel is one slice of administrative data produced by an opaque edge
function: security audit, compliance monitor, threat detection, access
control, revenue engine and automation. Each panel knows its endpoint, the
actions it may run and how often it auto-refreshes. Results are kept per
tenant; the last successful fetch wins and out-of-order responses are
dropped.
"""

from __future__ import annotations

import itertools
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from supabase import Client

from .. import notices
from ..config import Settings
from ..logging_config import get_logger
from ..notices import Notice
from ..remote import RemoteFunctionClient
from ..scheduling import PollerRegistry

logger = get_logger("obelixia.panels")


class UnknownPanel(LookupError):
    pass


class UnknownAction(ValueError):
    pass


@dataclass(frozen=True)
class PanelSpec:
    """Static description of a panel."""

    name: str
    title: str
    function_setting: str
    interval_setting: str
    default_action: str
    actions: tuple[str, ...]


PANELS: dict[str, PanelSpec] = {
    spec.name: spec
    for spec in (
        PanelSpec(
            name="security_audit",
            title="Security audit",
            function_setting="security_audit_function",
            interval_setting="security_refresh_seconds",
            default_action="security_posture",
            actions=("security_posture", "vulnerability_scan", "forensic_analysis", "zero_trust_evaluation"),
        ),
        PanelSpec(
            name="compliance_monitor",
            title="Compliance monitor",
            function_setting="compliance_monitor_function",
            interval_setting="security_refresh_seconds",
            default_action="compliance_check",
            actions=("compliance_check",),
        ),
        PanelSpec(
            name="threat_detection",
            title="Threat detection",
            function_setting="threat_detection_function",
            interval_setting="threat_refresh_seconds",
            default_action="threat_detection",
            actions=("threat_detection", "incident_response", "threat_hunting", "behavioral_analytics"),
        ),
        PanelSpec(
            name="access_control",
            title="Access control",
            function_setting="access_control_function",
            interval_setting="security_refresh_seconds",
            default_action="access_analysis",
            actions=("access_analysis",),
        ),
        PanelSpec(
            name="revenue_engine",
            title="Revenue engine",
            function_setting="revenue_engine_function",
            interval_setting="revenue_refresh_seconds",
            default_action="get_trials",
            actions=(
                "get_trials", "create_trial", "analyze_trial_conversion",
                "get_usage_metrics", "calculate_billing", "generate_invoice",
                "get_affiliates", "register_affiliate", "track_referral", "calculate_commissions",
                "get_quotes", "generate_quote", "approve_quote", "get_cnae_pricing",
            ),
        ),
        PanelSpec(
            name="automation",
            title="Automation",
            function_setting="automation_function",
            interval_setting="security_refresh_seconds",
            default_action="monitor_automations",
            actions=(
                "monitor_automations", "create_workflow", "execute_workflow", "schedule_automation",
                "trigger_analysis", "optimize_process", "generate_integration",
                "handle_exception", "batch_operations", "intelligent_routing",
            ),
        ),
    )
}


def get_panel(name: str) -> PanelSpec:
    try:
        return PANELS[name]
    except KeyError:
        raise UnknownPanel(f"Unknown panel: {name}") from None


# =============================================================================
# Notices derived from results
# =============================================================================


def _count(data: dict, *path: str) -> int:
    value: Any = data
    for key in path:
        if not isinstance(value, dict):
            return 0
        value = value.get(key)
    return value if isinstance(value, int) else 0


def _threat_notices(data: dict) -> list[Notice]:
    attacks = _count(data, "active_attacks")
    return [notices.warning(f"{attacks} active attacks detected")] if attacks else []


def _vulnerability_notices(data: dict) -> list[Notice]:
    critical = _count(data, "critical_count")
    return [notices.error(f"{critical} critical vulnerabilities found")] if critical else []


def _access_notices(data: dict) -> list[Notice]:
    risky = _count(data, "statistics", "high_risk_sessions")
    return [notices.warning(f"{risky} high-risk sessions")] if risky else []


def _incident_notices(data: dict) -> list[Notice]:
    incident = data.get("incident") or {}
    if not incident:
        return []
    return [notices.info(f"Incident {incident.get('id')}: {incident.get('status')}")]


def _workflow_notices(data: dict) -> list[Notice]:
    name = (data.get("workflow") or {}).get("name")
    return [notices.success(f'Workflow "{name}" created')] if name else []


def _schedule_notices(data: dict) -> list[Notice]:
    next_run = (data.get("timing") or {}).get("nextRun")
    return [notices.success(f"Automation scheduled: {next_run}")] if next_run else []


def _automation_notices(data: dict) -> list[Notice]:
    executions = data.get("executions") or []
    failed = sum(1 for e in executions if isinstance(e, dict) and e.get("status") == "failed")
    return [notices.warning(f"{failed} failed automations")] if failed else []


NOTICE_RULES: dict[str, Callable[[dict], list[Notice]]] = {
    "threat_detection": _threat_notices,
    "vulnerability_scan": _vulnerability_notices,
    "access_analysis": _access_notices,
    "incident_response": _incident_notices,
    "create_workflow": _workflow_notices,
    "schedule_automation": _schedule_notices,
    "monitor_automations": _automation_notices,
}

SUCCESS_MESSAGES = {
    "create_trial": "Trial created",
    "register_affiliate": "Affiliate registered",
    "generate_quote": "Quote generated",
    "approve_quote": "Quote approved",
    "generate_invoice": "Invoice generated",
    "execute_workflow": "Workflow execution started",
}


def derive_notices(action: str, data: dict) -> list[Notice]:
    """Notices a panel shows after ``action`` returned ``data``."""
    result = []
    if action in SUCCESS_MESSAGES:
        result.append(notices.success(SUCCESS_MESSAGES[action]))
    rule = NOTICE_RULES.get(action)
    if rule:
        result.extend(rule(data))
    return result


# =============================================================================
# Snapshot cache
# =============================================================================


@dataclass
class PanelSnapshot:
    """Result of one panel action for one tenant."""

    panel: str
    action: str
    data: dict[str, Any]
    sequence: int
    fetched_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class PanelCache:
    """Latest snapshot per (tenant, panel, action)."""

    def __init__(self):
        self._snapshots: dict[tuple[str, str, str], PanelSnapshot] = {}

    def store(self, tenant: str, snapshot: PanelSnapshot) -> bool:
        """Keep ``snapshot`` unless a newer request already landed."""
        key = (tenant, snapshot.panel, snapshot.action)
        current = self._snapshots.get(key)
        if current is not None and current.sequence > snapshot.sequence:
            logger.debug(f"Dropping stale {snapshot.panel}.{snapshot.action} for {tenant}")
            return False
        self._snapshots[key] = snapshot
        return True

    def get(self, tenant: str, panel: str, action: str) -> PanelSnapshot | None:
        return self._snapshots.get((tenant, panel, action))

    def clear(self) -> None:
        self._snapshots.clear()


# =============================================================================
# Service
# =============================================================================


@dataclass
class PanelRun:
    snapshot: PanelSnapshot
    notices: list[Notice]
    accepted: bool


class PanelService:
    """Runs panel actions, keeps snapshots and owns the auto-refresh pollers."""

    def __init__(self, settings: Settings, db_factory: Callable[[], Client]):
        self._settings = settings
        self._db_factory = db_factory
        self._sequence = itertools.count(1)
        self.cache = PanelCache()
        self.pollers = PollerRegistry()

    def function_for(self, spec: PanelSpec) -> str:
        return getattr(self._settings, spec.function_setting)

    def interval_for(self, spec: PanelSpec) -> float:
        return getattr(self._settings, spec.interval_setting)

    async def run(
        self,
        tenant: str,
        panel: str,
        action: str | None = None,
        params: dict[str, Any] | None = None,
    ) -> PanelRun:
        """Invoke a panel action; remote errors propagate to the caller."""
        spec = get_panel(panel)
        action = action or spec.default_action
        if action not in spec.actions:
            raise UnknownAction(f"Action {action} is not available on {panel}")

        # Taken before the call so responses can be ordered by request time
        sequence = next(self._sequence)
        client = RemoteFunctionClient(self._db_factory(), tenant=tenant)
        result = await client.invoke(self.function_for(spec), action, **(params or {}))

        snapshot = PanelSnapshot(panel=panel, action=action, data=result.data, sequence=sequence)
        accepted = self.cache.store(tenant, snapshot)
        return PanelRun(snapshot=snapshot, notices=derive_notices(action, result.data), accepted=accepted)

    def snapshot(self, tenant: str, panel: str, action: str | None = None) -> PanelSnapshot | None:
        spec = get_panel(panel)
        return self.cache.get(tenant, panel, action or spec.default_action)

    def watch(self, tenant: str, panel: str, params: dict[str, Any] | None = None) -> float:
        """Start auto-refreshing a panel's default action; returns the interval."""
        spec = get_panel(panel)
        interval = self.interval_for(spec)

        async def refresh() -> None:
            await self.run(tenant, panel, params=params)

        self.pollers.start((tenant, panel), interval, refresh)
        logger.info(f"WATCH | {tenant} | {panel} every {interval:g}s")
        return interval

    async def unwatch(self, tenant: str, panel: str) -> bool:
        get_panel(panel)
        stopped = await self.pollers.stop((tenant, panel))
        if stopped:
            logger.info(f"UNWATCH | {tenant} | {panel}")
        return stopped

    def watching(self, tenant: str) -> list[str]:
        return [panel for (owner, panel) in self.pollers.keys() if owner == tenant]

    async def aclose(self) -> None:
        await self.pollers.stop_all()
