from __future__ import annotations

import json

import pytest

from reflector import cli


def test_cli_run_backend_fake(monkeypatch, capsys, tmp_path) -> None:
    monkeypatch.setenv("DATA_ROOT", str(tmp_path / "data"))
    monkeypatch.setenv(
        "REFLECTOR_FAKE_PURPOSE_RESPONSES",
        json.dumps({"reply": ["Your goal was to run, were you able to do it?"]}),
    )

    exit_code = cli.main(
        ["run", "--backend", "fake", "--inference", "patterns", "--session", "s1", "--text", "Hi"]
    )

    captured = capsys.readouterr()
    assert exit_code == 0
    assert captured.out.strip() == "Your goal was to run, were you able to do it?"
    assert (tmp_path / "data" / "conversations" / "s1.json").exists()


def test_cli_run_verbose_prints_payload(monkeypatch, capsys, tmp_path) -> None:
    monkeypatch.setenv("DATA_ROOT", str(tmp_path / "data"))
    monkeypatch.setenv("REFLECTOR_FAKE_PURPOSE_RESPONSES", json.dumps({"reply": ["ok"]}))

    cli.main(["run", "--inference", "patterns", "--text", "Hi", "--verbose"])

    out = capsys.readouterr().out
    payload = json.loads(out.split("\n", 1)[1])
    assert payload["currentStage"] == "AWAITING_INITIAL"


def test_cli_smoke_reaches_conclusion(monkeypatch, capsys, tmp_path) -> None:
    monkeypatch.setenv("DATA_ROOT", str(tmp_path / "data"))

    exit_code = cli.main(["smoke"])

    out = capsys.readouterr().out
    assert exit_code == 0
    assert "[CONCLUDED]" in out
    assert "2023-10-27T00:00:00Z" in out
    record = json.loads(
        (tmp_path / "data" / "smoke" / "conversations" / "smoke-1.json").read_text(encoding="utf-8")
    )
    assert len(record["chat_history"]) == 2 * len(cli.SMOKE_USER_TURNS)
    assert record["next_goal_display"] == "Go to the gym"


def test_cli_repl_exits_on_command(monkeypatch, capsys, tmp_path) -> None:
    monkeypatch.setenv("DATA_ROOT", str(tmp_path / "data"))
    monkeypatch.setenv("REFLECTOR_FAKE_PURPOSE_RESPONSES", json.dumps({"reply": ["first"]}))
    lines = iter(["", "Hello", "/exit"])
    monkeypatch.setattr("builtins.input", lambda _prompt="": next(lines))

    exit_code = cli.main(["repl", "--inference", "patterns"])

    out = capsys.readouterr().out
    assert exit_code == 0
    assert "first" in out
    assert "[AWAITING_INITIAL]" in out


def test_cli_rejects_unknown_backend() -> None:
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["run", "--backend", "nope", "--text", "Hi"])

    assert excinfo.value.code == 2
