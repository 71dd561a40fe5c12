"""Tests for visit sheet filters and autosave."""

import asyncio
from datetime import date
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from obelixia import database
from obelixia.services.visits import (
    VisitSheetAutosaver,
    editable_patch,
    filter_visit_sheets,
    unique_gestores,
)

TEST_USER = "usr_TEST_ONLY_000000"

SHEETS = [
    {"id": "s1", "fecha": "2024-04-02", "gestor_id": "g1", "tipo_visita": "Primera visita",
     "gestor": {"full_name": "Ana Serra", "email": "ana@bank.ad"}},
    {"id": "s2", "fecha": "2024-04-15", "gestor_id": "g2", "tipo_visita": "Seguimiento",
     "gestor": {"full_name": None, "email": "marc@bank.ad"}},
    {"id": "s3", "fecha": "2024-05-01", "gestor_id": "g1", "tipo_visita": "Seguimiento",
     "gestor": {"full_name": "Ana Serra"}},
    {"id": "s4", "fecha": "2024-05-03", "gestor_id": "g3", "tipo_visita": "Seguimiento", "gestor": None},
]


class TestFilters:
    def test_no_filters(self):
        assert len(filter_visit_sheets(SHEETS)) == 4

    def test_date_range_is_inclusive(self):
        result = filter_visit_sheets(SHEETS, start=date(2024, 4, 15), end=date(2024, 5, 1))
        assert [s["id"] for s in result] == ["s2", "s3"]

    def test_gestor_and_type(self):
        result = filter_visit_sheets(SHEETS, gestor_id="g1", tipo_visita="Seguimiento")
        assert [s["id"] for s in result] == ["s3"]

    def test_unique_gestores_display_names(self):
        assert unique_gestores(SHEETS) == [
            {"id": "g1", "name": "Ana Serra"},
            {"id": "g2", "name": "marc@bank.ad"},
            {"id": "g3", "name": "Unnamed"},
        ]

    def test_editable_patch_drops_unknown_fields(self):
        assert editable_patch({"notas_gestor": "x", "gestor_id": "other"}) == {"notas_gestor": "x"}


class TestAutosaver:
    @pytest.mark.asyncio
    async def test_edits_within_delay_make_one_update(self):
        with patch("obelixia.database.update_visit_sheet", new_callable=AsyncMock) as mock_update:
            saver = VisitSheetAutosaver(MagicMock, delay=0.05)
            saver.submit("s1", {"notas_gestor": "Cliente"})
            saver.submit("s1", {"notas_gestor": "Cliente interesado"})

            assert saver.state("s1")["pending"] is True
            await asyncio.sleep(0.15)

        mock_update.assert_awaited_once()
        assert mock_update.call_args.args[1:] == ("s1", {"notas_gestor": "Cliente interesado"})
        assert saver.state("s1") == {"sheet_id": "s1", "pending": False, "fields": [], "last_error": None}

    @pytest.mark.asyncio
    async def test_failed_write_is_reported_in_state(self):
        with patch("obelixia.database.update_visit_sheet", new_callable=AsyncMock) as mock_update:
            mock_update.side_effect = RuntimeError("permission denied")
            saver = VisitSheetAutosaver(MagicMock, delay=0.01)
            saver.submit("s1", {"hora": "09:30"})
            await asyncio.sleep(0.1)

        assert saver.state("s1")["last_error"] == "permission denied"

    @pytest.mark.asyncio
    async def test_close_flushes_pending(self):
        with patch("obelixia.database.update_visit_sheet", new_callable=AsyncMock) as mock_update:
            saver = VisitSheetAutosaver(MagicMock, delay=60)
            saver.submit("s1", {"hora": "09:30"})
            await saver.aclose()

        mock_update.assert_awaited_once()


class TestVisitRoutes:
    def test_list_with_filters(self, client, auth_headers):
        with patch("obelixia.database.list_visit_sheets", new_callable=AsyncMock) as mock_list:
            mock_list.return_value = SHEETS
            response = client.get(
                "/companies/c1/visit-sheets?gestor_id=g1&start=2024-04-01&end=2024-04-30",
                headers=auth_headers,
            )

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 1
        assert data["sheets"][0]["id"] == "s1"
        # Gestor options come from all sheets, not the filtered ones
        assert len(data["gestores"]) == 3

    def test_autosave_then_flush(self, client, auth_headers):
        sheet = {"id": "s1", "fecha": "2024-04-02", "gestor_id": TEST_USER}
        with patch("obelixia.database.get_visit_sheet", new_callable=AsyncMock) as mock_get, \
                patch("obelixia.database.update_visit_sheet", new_callable=AsyncMock) as mock_update:
            mock_get.return_value = sheet
            first = client.patch("/visit-sheets/s1", json={"fields": {"notas_gestor": "a"}}, headers=auth_headers)
            second = client.patch(
                "/visit-sheets/s1",
                json={"fields": {"notas_gestor": "ab", "duracion": 45}},
                headers=auth_headers,
            )
            mock_update.assert_not_called()
            flushed = client.post("/visit-sheets/s1/flush", headers=auth_headers)

        assert first.status_code == 202
        assert second.json() == {
            "sheet_id": "s1",
            "pending": True,
            "fields": ["duracion", "notas_gestor"],
            "last_error": None,
        }
        assert flushed.status_code == 200
        assert flushed.json()["pending"] is False
        mock_update.assert_awaited_once()
        assert mock_update.call_args.args[1:] == ("s1", {"notas_gestor": "ab", "duracion": 45})

    def test_autosave_rejects_non_editable_fields(self, client, auth_headers):
        response = client.patch("/visit-sheets/s1", json={"fields": {"gestor_id": "x"}}, headers=auth_headers)
        assert response.status_code == 400

    def test_autosave_other_gestors_sheet_forbidden(self, client, auth_headers):
        with patch("obelixia.database.get_visit_sheet", new_callable=AsyncMock) as mock_get:
            mock_get.return_value = {"id": "s1", "fecha": "2024-04-02", "gestor_id": "someone-else"}
            response = client.patch("/visit-sheets/s1", json={"fields": {"hora": "10:00"}}, headers=auth_headers)
        assert response.status_code == 403

    def test_autosave_state(self, client, auth_headers):
        with patch("obelixia.database.get_visit_sheet", new_callable=AsyncMock) as mock_get:
            mock_get.return_value = {"id": "s9", "fecha": "2024-04-02", "gestor_id": TEST_USER}
            response = client.get("/visit-sheets/s9/autosave", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["pending"] is False

    def test_autosave_state_of_other_gestors_sheet_forbidden(self, client, auth_headers, manager_headers):
        with patch("obelixia.database.get_visit_sheet", new_callable=AsyncMock) as mock_get:
            mock_get.return_value = {"id": "s9", "fecha": "2024-04-02", "gestor_id": "someone-else"}
            queued = client.patch("/visit-sheets/s9", json={"fields": {"notas_gestor": "draft"}}, headers=manager_headers)
            response = client.get("/visit-sheets/s9/autosave", headers=auth_headers)

        assert queued.status_code == 202
        assert response.status_code == 403
        assert "notas_gestor" not in response.text

    def test_list_is_scoped_to_tenant(self, client, auth_headers):
        with patch("obelixia.database.list_visit_sheets", new_callable=AsyncMock) as mock_list:
            mock_list.return_value = []
            response = client.get("/companies/c1/visit-sheets", headers=auth_headers)

        assert response.status_code == 200
        assert mock_list.call_args.args[1:] == ("c1", "org_TEST_ONLY")

    def test_manager_cannot_autosave_other_tenants_sheet(self, client, manager_headers):
        # Sheets outside the tenant are not found by the scoped lookup
        with patch("obelixia.database.get_visit_sheet", new_callable=AsyncMock) as mock_get:
            mock_get.return_value = None
            response = client.patch("/visit-sheets/s1", json={"fields": {"hora": "10:00"}}, headers=manager_headers)

        assert response.status_code == 404
        assert mock_get.call_args.args[1:] == ("s1", "org_TEST_ONLY")
        assert client.app.state.autosaver.state("s1")["pending"] is False


class TestVisitSheetQueries:
    @pytest.mark.asyncio
    async def test_list_joins_company_tenant(self, recording_db):
        await database.list_visit_sheets(recording_db, "c1", "org_1")

        query = recording_db.queries[0]
        assert query.table == "visit_sheets"
        assert "companies!inner(organization_id)" in query.selected
        assert ("companies.organization_id", "org_1") in query.filters("eq")
        assert ("company_id", "c1") in query.filters("eq")

    @pytest.mark.asyncio
    async def test_get_sheet_joins_company_tenant(self, recording_db):
        recording_db.rows["visit_sheets"] = [{"id": "s1"}]

        assert await database.get_visit_sheet(recording_db, "s1", "org_1") == {"id": "s1"}
        assert ("companies.organization_id", "org_1") in recording_db.queries[0].filters("eq")

    @pytest.mark.asyncio
    async def test_unscoped_without_organization(self, recording_db):
        await database.list_visit_sheets(recording_db, "c1", None)

        query = recording_db.queries[0]
        assert "companies!inner" not in query.selected
        assert query.filters("eq") == [("company_id", "c1")]
