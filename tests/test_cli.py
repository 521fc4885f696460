"""
Tests for the command line interface.
"""

import json

import pytest
import yaml

from resourcegraph.cli.main import app

from conftest import CATALOG


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "resources.yaml"
    path.write_text(yaml.safe_dump(CATALOG, sort_keys=False))
    return path


def test_check_prints_schema(config_file, capsys):
    assert app(["check", str(config_file)]) == 0
    out = capsys.readouterr().out
    schema_text, summary = out.rsplit("\n\n", 1)
    schema = json.loads(schema_text)
    assert set(schema) == {"Product", "Offer", "Book", "Note"}
    assert "4 resource(s) OK" in summary


def test_check_reports_every_problem(tmp_path, capsys):
    path = tmp_path / "broken.yaml"
    path.write_text(yaml.safe_dump({"resources": {
        "Widget": {"fields": {"id": "int", "size": "huge"}},
        "Gadget": {"fields": {"id": "int"}, "operations": ["purge"]},
    }}))
    assert app(["check", str(path)]) == 1
    out = capsys.readouterr().out
    assert "2 problem(s)" in out
    assert "[Widget.size]" in out


def test_check_missing_file(tmp_path, capsys):
    assert app(["check", str(tmp_path / "nope.yaml")]) == 1
    assert "not found" in capsys.readouterr().out


def test_serve_needs_service_url(config_file, capsys, monkeypatch):
    monkeypatch.delenv("RESOURCEGRAPH_SERVICE_URL", raising=False)
    assert app(["serve", str(config_file)]) == 1
    assert "no service URL" in capsys.readouterr().out


def test_no_command_prints_help(capsys):
    assert app([]) == 0
    assert "resourcegraph" in capsys.readouterr().out


def test_version(capsys):
    with pytest.raises(SystemExit) as exc_info:
        app(["--version"])
    assert exc_info.value.code == 0
    assert "0.1.0" in capsys.readouterr().out
