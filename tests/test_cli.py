"""Tests for the obelixia command-line interface."""

import json
from unittest.mock import MagicMock, patch

import pytest

from obelixia.cli.__main__ import main, parse_param


class TestParseParam:
    def test_json_values_keep_their_type(self):
        assert parse_param("limit=10") == ("limit", 10)
        assert parse_param("active=true") == ("active", True)
        assert parse_param('filters={"cnae": "6419"}') == ("filters", {"cnae": "6419"})

    def test_plain_strings(self):
        assert parse_param("timeRange=24h") == ("timeRange", "24h")
        assert parse_param("note=a=b") == ("note", "a=b")

    def test_missing_separator(self):
        with pytest.raises(ValueError):
            parse_param("oops")


class TestInvoke:
    def test_invoke_prints_json(self, capsys):
        db = MagicMock()
        db.functions.invoke.return_value = {"success": True, "data": {"score": 91}}

        with patch("obelixia.cli.__main__.get_supabase_client", return_value=db):
            main(["invoke", "security-audit", "security_posture", "--param", "depth=2", "--json"])

        assert json.loads(capsys.readouterr().out) == {"score": 91}
        body = db.functions.invoke.call_args.kwargs["invoke_options"]["body"]
        assert body == {"action": "security_posture", "depth": 2}

    def test_invoke_plain_output(self, capsys):
        db = MagicMock()
        db.functions.invoke.return_value = {"success": True, "active_attacks": 0, "threats": []}

        with patch("obelixia.cli.__main__.get_supabase_client", return_value=db):
            main(["invoke", "threat-detection", "threat_detection"])

        out = capsys.readouterr().out
        assert "active_attacks: 0" in out
        assert "threats: []" in out

    def test_invoke_failure_exits_1(self):
        db = MagicMock()
        db.functions.invoke.return_value = {"success": False, "error": "nope"}

        with patch("obelixia.cli.__main__.get_supabase_client", return_value=db):
            with pytest.raises(SystemExit) as exc_info:
                main(["invoke", "revenue-engine", "get_trials"])

        assert exc_info.value.code == 1

    def test_bad_param_exits_1(self):
        with patch("obelixia.cli.__main__.get_supabase_client", return_value=MagicMock()):
            with pytest.raises(SystemExit) as exc_info:
                main(["invoke", "revenue-engine", "get_trials", "--param", "broken"])

        assert exc_info.value.code == 1


class TestPanels:
    def test_panels_json(self, capsys):
        main(["panels", "--json"])

        rows = json.loads(capsys.readouterr().out)
        by_name = {r["name"]: r for r in rows}
        assert by_name["threat_detection"]["refresh_seconds"] == 30
        assert by_name["revenue_engine"]["default_action"] == "get_trials"

    def test_panels_table(self, capsys):
        main(["panels"])
        assert "automation-orchestrator" in capsys.readouterr().out


def test_serve_runs_uvicorn():
    with patch("uvicorn.run") as mock_run:
        main(["serve", "--port", "9000"])

    mock_run.assert_called_once_with("obelixia.main:app", host="127.0.0.1", port=9000, reload=False)
