"""Tests for the flowengine command line."""

import json
import logging

import pytest

from flowengine import config as config_module
from flowengine.cli import main


@pytest.fixture(autouse=True)
def isolated(tmp_path, monkeypatch):
    """Use an empty configuration file and restore root logging afterwards."""
    monkeypatch.setattr(config_module, "ENGINE_CONFIG_FILE", tmp_path / "configuration.json")
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def flow_file(tmp_path):
    def write(graph):
        path = tmp_path / "flow.json"
        path.write_text(json.dumps(graph), encoding="utf-8")
        return str(path)

    return write


GREETING_FLOW = {
    "nodes": [
        {"id": "start", "type": "trigger", "data": {"trigger_type": "manual"}},
        {
            "id": "greet",
            "type": "string",
            "data": {"operation": "prefix", "value": "Hello, ", "text": "{input.name}"},
        },
        {"id": "done", "type": "end", "data": {"message": "{greet.processed_string}"}},
    ],
    "edges": [
        {"id": "e1", "source": "start", "target": "greet"},
        {"id": "e2", "source": "greet", "target": "done"},
    ],
}


def run_main(argv):
    with pytest.raises(SystemExit) as exc_info:
        main(argv)
    return exc_info.value.code


class TestRun:
    def test_successful_run_prints_summary(self, flow_file, capsys):
        path = flow_file(GREETING_FLOW)

        code = run_main(
            ["run", path, "--input", '{"name": "Ann"}', "--quiet", "--output", "--log-level", "ERROR"]
        )

        summary = json.loads(capsys.readouterr().out)
        assert code == 0
        assert summary["status"] == "completed"
        assert summary["path"] == ["start", "greet", "done"]
        assert summary["output"]["end_message"] == "Hello, Ann"

    def test_log_entries_printed(self, flow_file, capsys):
        code = run_main(["run", flow_file(GREETING_FLOW), "-i", '{"name": "Bo"}'])
        out = capsys.readouterr().out
        assert code == 0
        assert "Processing" in out
        assert "completed" in out

    def test_failed_run_exits_non_zero(self, flow_file, capsys):
        code = run_main(["run", flow_file({"nodes": [], "edges": []}), "--quiet"])
        summary = json.loads(capsys.readouterr().out)
        assert code == 1
        assert summary["error"] == "No trigger node found in workflow"

    def test_bad_input_json(self, flow_file, capsys):
        code = run_main(["run", flow_file(GREETING_FLOW), "--input", "{oops"])
        assert code == 1
        assert "Error" in capsys.readouterr().err


class TestInspect:
    def test_validate_ok(self, flow_file, capsys):
        code = run_main(["validate", flow_file(GREETING_FLOW)])
        assert code == 0
        assert "is valid" in capsys.readouterr().out

    def test_validate_reports_errors(self, flow_file, capsys):
        graph = {"nodes": [{"id": "x", "type": "teleport", "data": {}}], "edges": []}
        code = run_main(["validate", flow_file(graph)])
        out = capsys.readouterr().out
        assert code == 1
        assert "No trigger node found" in out

    def test_nodes_json(self, capsys):
        code = run_main(["nodes", "--json"])
        types = {entry["type"] for entry in json.loads(capsys.readouterr().out)}
        assert code == 0
        assert {"trigger", "end", "condition", "switch", "loop", "math", "string"} <= types

    def test_variables_for_node(self, flow_file, capsys):
        code = run_main(["variables", flow_file(GREETING_FLOW), "done"])
        out = capsys.readouterr().out
        assert code == 0
        assert "{greet.processed_string}" in out
        assert "{start.trigger_info}" in out

    def test_variables_unknown_node(self, flow_file, capsys):
        code = run_main(["variables", flow_file(GREETING_FLOW), "ghost"])
        assert code == 1
