"""Visit sheet listing filters and the autosave pipeline."""

from __future__ import annotations

from datetime import date

from dateutil.parser import isoparse
from supabase import Client

from .. import database
from ..logging_config import log_autosave
from ..scheduling import Debouncer

ALL = "all"

# Fields a gestor may edit on a saved sheet
EDITABLE_FIELDS = frozenset({
    "fecha", "hora", "duracion", "canal", "tipo_visita", "notas_gestor",
    "productos_ofrecidos", "resultado", "proximos_pasos", "observaciones",
})


def _sheet_date(sheet: dict) -> date:
    return isoparse(sheet["fecha"]).date()


def filter_visit_sheets(
    sheets: list[dict],
    start: date | None = None,
    end: date | None = None,
    gestor_id: str = ALL,
    tipo_visita: str = ALL,
) -> list[dict]:
    """Sheets within [start, end] for one gestor and visit type."""
    result = list(sheets)
    if start:
        result = [s for s in result if _sheet_date(s) >= start]
    if end:
        result = [s for s in result if _sheet_date(s) <= end]
    if gestor_id != ALL:
        result = [s for s in result if s.get("gestor_id") == gestor_id]
    if tipo_visita != ALL:
        result = [s for s in result if s.get("tipo_visita") == tipo_visita]
    return result


def unique_gestores(sheets: list[dict]) -> list[dict]:
    """Distinct gestores appearing on the sheets, with a display name."""
    gestores: dict[str, dict] = {}
    for sheet in sheets:
        profile = sheet.get("gestor") or {}
        gestores[sheet["gestor_id"]] = {
            "id": sheet["gestor_id"],
            "name": profile.get("full_name") or profile.get("email") or "Unnamed",
        }
    return list(gestores.values())


def editable_patch(fields: dict) -> dict:
    """Drop keys that cannot be changed through autosave."""
    return {k: v for k, v in fields.items() if k in EDITABLE_FIELDS}


class VisitSheetAutosaver:
    """Debounced writer for visit sheet edits."""

    def __init__(self, db_factory, delay: float = 1.0):
        self._db_factory = db_factory
        self.debouncer = Debouncer(self._write, delay=delay)

    async def _write(self, sheet_id: str, fields: dict) -> None:
        db: Client = self._db_factory()
        try:
            await database.update_visit_sheet(db, sheet_id, fields)
        except Exception as e:
            log_autosave(sheet_id, list(fields), False, str(e))
            raise
        log_autosave(sheet_id, list(fields), True)

    def submit(self, sheet_id: str, fields: dict) -> dict:
        return self.debouncer.submit(sheet_id, fields)

    async def flush(self, sheet_id: str) -> bool:
        return await self.debouncer.flush(sheet_id)

    def state(self, sheet_id: str) -> dict:
        return {
            "sheet_id": sheet_id,
            "pending": self.debouncer.is_pending(sheet_id),
            "fields": sorted(self.debouncer.pending(sheet_id)),
            "last_error": self.debouncer.errors.get(sheet_id),
        }

    async def aclose(self) -> None:
        await self.debouncer.aclose()
