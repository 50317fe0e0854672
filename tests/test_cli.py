"""Tests for the command-line entry point."""

import json
import sys

import pytest
import yaml

from mailcraft.__main__ import main


def _run_cli(monkeypatch, *argv: str) -> int:
    monkeypatch.setattr(sys, "argv", ["mailcraft", *argv])
    return main()


@pytest.fixture
def workdir(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("LOGFIRE_TOKEN", raising=False)
    return tmp_path


def _configure(workdir, **specialists):
    paths = {
        "content": "fakes:ContentSpecialist",
        "design": "fakes:DesignSpecialist",
        "quality": "fakes:QualitySpecialist",
        "delivery": "fakes:DeliverySpecialist",
    }
    paths.update(specialists)
    (workdir / "data").mkdir(exist_ok=True)
    (workdir / "data" / "config.yaml").write_text(
        yaml.safe_dump({"retry": {"retry_delay_ms": 1}, "specialists": paths})
    )


def test_init_writes_config_template(workdir, monkeypatch):
    assert _run_cli(monkeypatch, "init") == 0

    config = yaml.safe_load((workdir / "data" / "config.yaml").read_text())
    assert config["retry"]["max_retries"] == 2
    assert set(config["specialists"]) == {"content", "design", "quality", "delivery"}


def test_config_prints_settings(workdir, monkeypatch, capsys):
    _configure(workdir)

    assert _run_cli(monkeypatch, "config") == 0
    assert "fakes:ContentSpecialist" in capsys.readouterr().out


def test_run_prints_json_response(workdir, monkeypatch, capsys):
    _configure(workdir)

    code = _run_cli(monkeypatch, "run", "--brief", "Paris flight sale", "--tone", "informative")

    response = json.loads(capsys.readouterr().out)
    assert code == 0
    assert response["status"] == "success"
    assert response["quality_check"] == "pass"


def test_run_exits_nonzero_on_failure(workdir, monkeypatch, capsys):
    _configure(workdir, content="fakes:AlwaysFailingContent")

    code = _run_cli(monkeypatch, "run", "--brief", "Paris flight sale", "--max-retries", "0")

    response = json.loads(capsys.readouterr().out)
    assert code == 1
    assert response["status"] == "error"
    assert response["failed_stage"] == "content"


def test_run_without_specialists_configured(workdir, monkeypatch):
    assert _run_cli(monkeypatch, "run", "--brief", "Paris flight sale") == 1


def test_no_command_prints_help(monkeypatch):
    assert _run_cli(monkeypatch) == 1


def test_run_with_malformed_config(workdir, monkeypatch, capsys):
    (workdir / "data").mkdir()
    (workdir / "data" / "config.yaml").write_text("retry: [unclosed\n")

    code = _run_cli(monkeypatch, "run", "--brief", "Paris flight sale")

    assert code == 1
    assert "Failed to load configuration" in capsys.readouterr().out
