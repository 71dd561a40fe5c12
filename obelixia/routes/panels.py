"""Engine panel routes: run actions, read snapshots, manage auto-refresh."""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request, status

from ..auth import ManagerUser
from ..logging_config import get_logger
from ..models import (
    PanelInfo,
    PanelListResponse,
    PanelRunRequest,
    PanelSnapshotResponse,
    WatchRequest,
    WatchResponse,
)
from ..rate_limit import ENGINE_RATE_LIMIT, limiter
from ..services.panels import PANELS, PanelService, get_panel

logger = get_logger("obelixia.panels")
router = APIRouter(prefix="/panels", tags=["panels"])


def get_panel_service(request: Request) -> PanelService:
    """The app-wide panel service created in the lifespan."""
    return request.app.state.panels


Panels = Annotated[PanelService, Depends(get_panel_service)]


def _with_tenant(params: dict, organization_id: str | None) -> dict:
    # Engines scope their data by organization when one is given
    if organization_id and "organization_id" not in params:
        return {**params, "organization_id": organization_id}
    return params


@router.get("", response_model=PanelListResponse)
async def list_panels(user: ManagerUser, service: Panels):
    return PanelListResponse(
        panels=[
            PanelInfo(
                name=spec.name,
                title=spec.title,
                function=service.function_for(spec),
                default_action=spec.default_action,
                actions=list(spec.actions),
                refresh_seconds=service.interval_for(spec),
            )
            for spec in PANELS.values()
        ],
        watching=service.watching(user.tenant_key),
    )


@router.post("/{panel}/run", response_model=PanelSnapshotResponse)
@limiter.limit(ENGINE_RATE_LIMIT)
async def run_panel(
    request: Request,
    panel: str,
    body: PanelRunRequest,
    user: ManagerUser,
    service: Panels,
):
    """Run a panel action now.

    ``accepted`` is false when a newer request for the same action finished
    first; the returned data is then not what the panel keeps.
    """
    run = await service.run(
        user.tenant_key,
        panel,
        body.action,
        _with_tenant(body.params, user.organization_id),
    )
    return PanelSnapshotResponse(
        panel=run.snapshot.panel,
        action=run.snapshot.action,
        data=run.snapshot.data,
        fetched_at=run.snapshot.fetched_at,
        accepted=run.accepted,
        notices=run.notices,
    )


@router.get("/{panel}", response_model=PanelSnapshotResponse)
async def get_snapshot(panel: str, user: ManagerUser, service: Panels, action: str | None = None):
    """Latest data the panel holds for the caller's tenant."""
    snapshot = service.snapshot(user.tenant_key, panel, action)
    if snapshot is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No data loaded for this panel yet",
        )
    return PanelSnapshotResponse(
        panel=snapshot.panel,
        action=snapshot.action,
        data=snapshot.data,
        fetched_at=snapshot.fetched_at,
    )


@router.post("/{panel}/watch", response_model=WatchResponse)
async def watch_panel(panel: str, user: ManagerUser, service: Panels, body: WatchRequest | None = None):
    """Start auto-refreshing the panel's default action."""
    params = body.params if body else {}
    interval = service.watch(user.tenant_key, panel, _with_tenant(params, user.organization_id))
    return WatchResponse(panel=panel, watching=True, refresh_seconds=interval)


@router.delete("/{panel}/watch", response_model=WatchResponse)
async def unwatch_panel(panel: str, user: ManagerUser, service: Panels):
    get_panel(panel)
    await service.unwatch(user.tenant_key, panel)
    return WatchResponse(panel=panel, watching=False)
