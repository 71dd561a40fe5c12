"""Visit sheet routes: filtered listing and debounced autosave."""

from datetime import date
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from .. import database
from ..auth import AuthContext, CurrentUser
from ..database import Database
from ..logging_config import get_logger
from ..models import AutosaveRequest, AutosaveState, GestorOption, VisitSheet, VisitSheetListResponse
from ..rate_limit import WRITE_RATE_LIMIT, limiter
from ..services import visits as visit_service
from ..services.visits import VisitSheetAutosaver

logger = get_logger("obelixia.visits")
router = APIRouter(tags=["visits"])


def get_autosaver(request: Request) -> VisitSheetAutosaver:
    """The app-wide autosaver created in the lifespan."""
    return request.app.state.autosaver


Autosaver = Annotated[VisitSheetAutosaver, Depends(get_autosaver)]


async def _editable_sheet(db, sheet_id: str, user: AuthContext) -> dict:
    sheet = await database.get_visit_sheet(db, sheet_id, user.organization_id)
    if not sheet:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Visit sheet not found")
    if sheet.get("gestor_id") != user.user_id and not user.is_manager:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not your visit sheet")
    return sheet


@router.get("/companies/{company_id}/visit-sheets", response_model=VisitSheetListResponse)
async def list_visit_sheets(
    company_id: str,
    user: CurrentUser,
    db: Database,
    start: date | None = None,
    end: date | None = None,
    gestor_id: str = Query(visit_service.ALL),
    tipo_visita: str = Query(visit_service.ALL),
):
    """Visit sheets of a company, filtered by date range, gestor and visit type.

    The gestor options come from every sheet of the company so the filter
    list does not shrink as filters are applied.
    """
    sheets = await database.list_visit_sheets(db, company_id, user.organization_id)
    filtered = visit_service.filter_visit_sheets(sheets, start, end, gestor_id, tipo_visita)
    return VisitSheetListResponse(
        sheets=[VisitSheet(**s) for s in filtered],
        gestores=[GestorOption(**g) for g in visit_service.unique_gestores(sheets)],
        total=len(filtered),
    )


@router.patch(
    "/visit-sheets/{sheet_id}",
    response_model=AutosaveState,
    status_code=status.HTTP_202_ACCEPTED,
)
@limiter.limit(WRITE_RATE_LIMIT)
async def autosave_visit_sheet(
    request: Request,
    sheet_id: str,
    body: AutosaveRequest,
    user: CurrentUser,
    db: Database,
    autosaver: Autosaver,
):
    """Queue an edit; it is written once input pauses for the autosave delay."""
    patch = visit_service.editable_patch(body.fields)
    if not patch:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No editable fields in request",
        )
    await _editable_sheet(db, sheet_id, user)

    autosaver.submit(sheet_id, patch)
    return AutosaveState(**autosaver.state(sheet_id))


@router.post("/visit-sheets/{sheet_id}/flush", response_model=AutosaveState)
async def flush_visit_sheet(sheet_id: str, user: CurrentUser, db: Database, autosaver: Autosaver):
    """Write pending edits now instead of waiting for the debounce."""
    await _editable_sheet(db, sheet_id, user)
    written = await autosaver.flush(sheet_id)
    if written:
        logger.info(f"FLUSH | {user.user_id} | {sheet_id}")
    return AutosaveState(**autosaver.state(sheet_id))


@router.get("/visit-sheets/{sheet_id}/autosave", response_model=AutosaveState)
async def autosave_state(sheet_id: str, user: CurrentUser, db: Database, autosaver: Autosaver):
    await _editable_sheet(db, sheet_id, user)
    return AutosaveState(**autosaver.state(sheet_id))
